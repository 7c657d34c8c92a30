from functools import wraps
from typing import Any, Callable, Dict

from flask import current_app, request
from flask_socketio import emit

from app import socketio
from app.errors import InvalidRequest, TriviaError
from app.services import trivia
from app.services.trivia import broadcaster


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _require(data: Dict[str, Any], name: str) -> Any:
    value = data.get(name)
    if value in (None, ''):
        raise InvalidRequest(f'{name} is required')
    return value


def _optional_int(data: Dict[str, Any], name: str) -> Any:
    value = data.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{name} must be an integer')


def command(handler: Callable[[Dict[str, Any]], Any]) -> Callable[[Any], Dict[str, Any]]:
    """Wrap an event handler so its acknowledgement is always an ok/error envelope."""

    @wraps(handler)
    def wrapper(data=None):
        try:
            result = handler(data or {})
        except TriviaError as exc:
            return {'ok': False, 'error': exc.to_dict()}
        return {'ok': True, 'data': result}

    return wrapper


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    # Socket.IO drops the sid from every room on its own
    current_app.logger.debug(f"[disconnect] sid={_get_sid()}")


@command
def handle_subscribe(data):
    session_id = _require(data, 'session_id')
    last_seq = _optional_int(data, 'last_seq')
    current = broadcaster.attach_socket(session_id, _get_sid(), last_seq=last_seq)
    return {'room': broadcaster.room(session_id), 'seq': current['seq']}


@command
def handle_unsubscribe(data):
    session_id = _require(data, 'session_id')
    broadcaster.detach_socket(session_id, _get_sid())
    return {'room': broadcaster.room(session_id)}


@command
def handle_join(data):
    return trivia.join(_require(data, 'session_id'), data.get('name'), player_id=data.get('player_id'))


@command
def handle_submit_answer(data):
    return trivia.submit_answer(
        _require(data, 'session_id'),
        _require(data, 'player_id'),
        _optional_int(data, 'question_id'),
        data.get('answer') or '',
    )


@command
def handle_start_session(data):
    return trivia.start_session(_require(data, 'session_id'))


@command
def handle_advance_question(data):
    session_id = _require(data, 'session_id')
    return trivia.advance_question(session_id, _optional_int(data, 'expected_question_id'))


@command
def handle_set_dashboard_view(data):
    session_id = _require(data, 'session_id')
    if 'view' not in data:
        raise InvalidRequest('view is required')
    return trivia.set_dashboard_view(session_id, data.get('view'))


def handle_ping(data):
    emit('pong', data or {})


_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'subscribe': handle_subscribe,
    'unsubscribe': handle_unsubscribe,
    'join': handle_join,
    'submit_answer': handle_submit_answer,
    'start_session': handle_start_session,
    'advance_question': handle_advance_question,
    'set_dashboard_view': handle_set_dashboard_view,
    'ping': handle_ping,
}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    for event, handler in _HANDLERS.items():
        socketio.on_event(event, handler, namespace=broadcaster.namespace)
