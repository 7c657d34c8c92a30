"""Error taxonomy shared by the HTTP and Socket.IO command channels.

Every rule violation raised by the trivia services is a ``TriviaError``. The
transport layer renders it the same way in both channels:
``{"error": {"code": ..., "message": ..., **details}}``.
"""

from typing import Any, Dict, Optional

from flask import jsonify


class TriviaError(Exception):
    code = 'TRIVIA_ERROR'
    status = 400
    default_message = 'Request could not be applied'

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {'code': self.code, 'message': self.message}
        body.update(self.details)
        return body


class InvalidRequest(TriviaError):
    code = 'INVALID_REQUEST'
    status = 400
    default_message = 'Invalid request'


class SessionNotFound(TriviaError):
    code = 'SESSION_NOT_FOUND'
    status = 404
    default_message = 'Game session not found'


class InvalidTransition(TriviaError):
    code = 'INVALID_TRANSITION'
    status = 409
    default_message = 'That action is not allowed in the current session status'


class EmptyRoster(TriviaError):
    code = 'EMPTY_ROSTER'
    status = 409
    default_message = 'At least one player must join before the game can start'


class StaleCursor(TriviaError):
    code = 'STALE_CURSOR'
    status = 409
    default_message = 'The session has already moved past that question'


class InvalidDashboardView(TriviaError):
    code = 'INVALID_DASHBOARD_VIEW'
    status = 422
    default_message = 'That dashboard view is not available right now'


class SessionNotJoinable(TriviaError):
    code = 'SESSION_NOT_JOINABLE'
    status = 409
    default_message = 'This game is not accepting new players'


class DuplicatePlayer(TriviaError):
    code = 'DUPLICATE_PLAYER'
    status = 409
    default_message = 'You are already in this game'


class QuestionMismatch(TriviaError):
    code = 'QUESTION_MISMATCH'
    status = 409
    default_message = 'That question is not currently open for answers'


class UnknownPlayer(TriviaError):
    code = 'UNKNOWN_PLAYER'
    status = 404
    default_message = 'Player is not part of this game'


class GatewayUnavailable(TriviaError):
    code = 'GATEWAY_UNAVAILABLE'
    status = 502
    default_message = 'External service is unavailable'


class StoreUnavailable(TriviaError):
    code = 'STORE_UNAVAILABLE'
    status = 503
    default_message = 'Game storage is unavailable, please retry'


def register_error_handlers(app) -> None:
    @app.errorhandler(TriviaError)
    def handle_trivia_error(exc: TriviaError):
        if exc.status >= 500:
            app.logger.warning(f"[error] code={exc.code} message={exc.message}")
        return jsonify({'error': exc.to_dict()}), exc.status
