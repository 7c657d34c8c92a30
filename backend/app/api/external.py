"""Thin proxies to the external collaborators used by the controller UI.

Failures here are reported to the caller only; session state is never
touched.
"""

from flask import Blueprint, current_app, jsonify, redirect, request

from app.errors import GatewayUnavailable, InvalidRequest
from app.gateways import ArtistGateway, DJGateway

external = Blueprint('external', __name__)


@external.route('/artist-image/<path:artist_name>', methods=['GET'])
def artist_image(artist_name):
    try:
        image_url = ArtistGateway.from_config(current_app.config).find_artist_image(artist_name)
    except GatewayUnavailable as exc:
        current_app.logger.warning(f"[artist-image] unavailable: {exc.message}")
        return jsonify({'error': {'code': exc.code, 'message': exc.message}}), 503
    if not image_url:
        return jsonify({'error': {'code': 'NOT_FOUND', 'message': f'No image found for {artist_name}'}}), 404
    return redirect(image_url, code=307)


@external.route('/vdj', methods=['POST'])
def vdj():
    data = request.get_json(silent=True) or {}
    script = data.get('script')
    if not script:
        raise InvalidRequest('A "script" parameter is required.')
    try:
        result = DJGateway.from_config(current_app.config).run_script(script)
    except GatewayUnavailable as exc:
        current_app.logger.warning(f"[vdj] {exc.message}")
        raise
    return jsonify({'result': result})
