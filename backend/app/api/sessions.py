from flask import Blueprint, jsonify, request

from app.errors import InvalidRequest
from app.services import trivia
from app.services.trivia.store import build_snapshot

sessions = Blueprint('sessions', __name__)


def _int_field(data, name, required=True):
    value = data.get(name)
    if value is None:
        if required:
            raise InvalidRequest(f'{name} is required')
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{name} must be an integer')


@sessions.route('', methods=['POST'])
def create_session():
    game_session = trivia.create_session()
    return jsonify(build_snapshot(game_session)), 201


@sessions.route('/<string:session_id>', methods=['GET'])
def get_session(session_id):
    return jsonify(trivia.snapshot(session_id))


@sessions.route('/<string:session_id>/leaderboard', methods=['GET'])
def get_leaderboard(session_id):
    return jsonify({'players': trivia.leaderboard(session_id)})


@sessions.route('/<string:session_id>/players', methods=['POST'])
def join_session(session_id):
    data = request.get_json(silent=True) or {}
    player = trivia.join(session_id, data.get('name'), player_id=data.get('player_id'))
    return jsonify(player), 201


@sessions.route('/<string:session_id>/players/<string:player_id>', methods=['GET'])
def get_player(session_id, player_id):
    return jsonify(trivia.get_player(session_id, player_id))


@sessions.route('/<string:session_id>/players/<string:player_id>', methods=['DELETE'])
def leave_session(session_id, player_id):
    trivia.leave(session_id, player_id)
    return jsonify({'message': 'You have left the game.'})


@sessions.route('/<string:session_id>/start', methods=['POST'])
def start_session(session_id):
    return jsonify(trivia.start_session(session_id))


@sessions.route('/<string:session_id>/advance', methods=['POST'])
def advance_question(session_id):
    data = request.get_json(silent=True) or {}
    expected = _int_field(data, 'expected_question_id')
    return jsonify(trivia.advance_question(session_id, expected))


@sessions.route('/<string:session_id>/dashboard-view', methods=['POST'])
def set_dashboard_view(session_id):
    data = request.get_json(silent=True) or {}
    if 'view' not in data:
        raise InvalidRequest('view is required')
    return jsonify(trivia.set_dashboard_view(session_id, data.get('view')))


@sessions.route('/<string:session_id>/answers', methods=['POST'])
def submit_answer(session_id):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    if not player_id:
        raise InvalidRequest('player_id is required')
    question_id = _int_field(data, 'question_id')
    result = trivia.submit_answer(session_id, player_id, question_id, data.get('answer') or '')
    return jsonify(result), 200 if result['duplicate'] else 201


@sessions.route('/<string:session_id>/detected-artist', methods=['POST'])
def record_detected_artist(session_id):
    data = request.get_json(silent=True) or {}
    question_id = _int_field(data, 'question_id', required=False)
    return jsonify(trivia.record_detected_artist(session_id, data.get('artist_name'), question_id=question_id))


@sessions.route('/<string:session_id>/reset-scores', methods=['POST'])
def reset_scores(session_id):
    trivia.reset_scores(session_id)
    return jsonify(trivia.snapshot(session_id))
