from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import func

from app import db
from app.errors import DuplicatePlayer, InvalidRequest, SessionNotJoinable, UnknownPlayer
from app.models import GameSession, Player, SessionStatus, generate_player_id
from .store import read, transact

MAX_NAME_LENGTH = 64


def _joinable_statuses():
    if current_app.config.get('ALLOW_LATE_JOIN'):
        return (SessionStatus.LOBBY, SessionStatus.IN_PROGRESS)
    return (SessionStatus.LOBBY,)


def join(session_id: str, name: str, player_id: Optional[str] = None) -> Dict[str, Any]:
    """Add a player and give it the next player number.

    The number is the session's highest number plus one, so numbers follow
    join order from 1 and are never compacted after a leave. The returned dict
    is the only place the new player's id is handed out. ``player_id`` is the
    id a retrying client already holds.
    """
    if name is not None and not isinstance(name, str):
        raise InvalidRequest('Player name must be a string')
    clean_name = (name or '').strip()
    if not clean_name:
        raise InvalidRequest('Player name is required')
    if len(clean_name) > MAX_NAME_LENGTH:
        raise InvalidRequest(f'Player name must be at most {MAX_NAME_LENGTH} characters')

    def mutator(game_session: GameSession) -> Dict[str, Any]:
        if game_session.status not in _joinable_statuses():
            raise SessionNotJoinable(status=game_session.status.value)
        if player_id and Player.query.filter_by(id=player_id, game_session_id=game_session.id).first():
            raise DuplicatePlayer()
        highest = (
            db.session.query(func.max(Player.player_number))
            .filter(Player.game_session_id == game_session.id)
            .scalar()
        )
        player = Player(
            id=generate_player_id(),
            name=clean_name,
            player_number=(highest or 0) + 1,
            score=0,
            game_session_id=game_session.id,
        )
        db.session.add(player)
        return player.to_dict(include_id=True)

    joined = transact(session_id, mutator)
    current_app.logger.info(f"[join] session={session_id} player_number={joined['player_number']}")
    return joined


def leave(session_id: str, player_id: str) -> Dict[str, Any]:
    def mutator(game_session: GameSession) -> Dict[str, Any]:
        player = Player.query.filter_by(id=player_id, game_session_id=game_session.id).first()
        if player is None:
            raise UnknownPlayer()
        gone = player.to_dict()
        db.session.delete(player)
        return gone

    gone = transact(session_id, mutator)
    current_app.logger.info(f"[leave] session={session_id} player_number={gone['player_number']}")
    return gone


def get_player(session_id: str, player_id: str) -> Dict[str, Any]:
    read(session_id)
    player = Player.query.filter_by(id=player_id, game_session_id=session_id).first()
    if player is None:
        raise UnknownPlayer()
    return player.to_dict(include_id=True)
