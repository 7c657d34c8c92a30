"""Session Store: the only owner of session, roster and scoring state.

Every mutation goes through ``transact``, which serialises work per session
(an in-process lock plus a row lock on the session for multi-process
deployments), commits, and only then publishes the new snapshot. Publishing
happens before the lock is released, so subscribers see snapshots in commit
order.
"""

import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from flask import current_app
from sqlalchemy.exc import DBAPIError, IntegrityError

from app import db
from app.errors import SessionNotFound, StoreUnavailable
from app.models import DashboardView, GameSession, Player, Question, SessionStatus


class NoChange(Exception):
    """Raised by a mutator when the request is valid but nothing needs committing.

    The transaction is rolled back, no revision is consumed and nothing is
    broadcast; ``transact`` returns ``result`` to the caller.
    """

    def __init__(self, result: Any = None):
        self.result = result
        super().__init__('no change')


_locks_guard = threading.Lock()
# session id -> [lock, holders and waiters]
_session_locks: Dict[str, list] = {}


@contextmanager
def session_lock(session_id: str) -> Iterator[None]:
    """Hold the in-process lock for one session.

    An entry lives only while someone holds or waits on it, so ids that are
    looked up once (or never existed) leave nothing behind.
    """
    with _locks_guard:
        entry = _session_locks.setdefault(session_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if not entry[1]:
                del _session_locks[session_id]


def _store_unavailable(exc: Exception) -> StoreUnavailable:
    db.session.rollback()
    current_app.logger.error(f"[store] unavailable: {exc.__class__.__name__}")
    return StoreUnavailable()


def read(session_id: str) -> GameSession:
    try:
        game_session = db.session.get(GameSession, session_id, populate_existing=True)
    except DBAPIError as exc:
        raise _store_unavailable(exc) from exc
    if game_session is None:
        raise SessionNotFound(session_id=session_id)
    return game_session


def read_roster(session_id: str) -> List[Player]:
    read(session_id)
    try:
        return Player.query.filter_by(game_session_id=session_id).order_by(Player.player_number).populate_existing().all()
    except DBAPIError as exc:
        raise _store_unavailable(exc) from exc


def get_question(position: Optional[int]) -> Optional[Question]:
    if position is None:
        return None
    return Question.query.filter_by(position=position).first()


def first_question() -> Optional[Question]:
    return Question.query.order_by(Question.position).first()


def next_question(after_position: int) -> Optional[Question]:
    return Question.query.filter(Question.position > after_position).order_by(Question.position).first()


def build_snapshot(game_session: GameSession) -> Dict[str, Any]:
    roster = (
        Player.query.filter_by(game_session_id=game_session.id)
        .order_by(Player.player_number)
        .populate_existing()
        .all()
    )
    payload = {
        'seq': game_session.revision,
        'session': game_session.to_dict(),
        'players': [p.to_dict() for p in roster],
        'question': None,
    }
    if game_session.status == SessionStatus.IN_PROGRESS:
        question = get_question(game_session.current_question_id)
        payload['question'] = question.to_dict() if question else None
    return payload


def snapshot(session_id: str) -> Dict[str, Any]:
    """The current canonical snapshot, as last committed."""
    game_session = read(session_id)
    try:
        return build_snapshot(game_session)
    except DBAPIError as exc:
        raise _store_unavailable(exc) from exc


def create_session() -> GameSession:
    game_session = GameSession(status=SessionStatus.LOBBY, dashboard_view=DashboardView.QR_CODE, revision=1)
    try:
        db.session.add(game_session)
        db.session.commit()
    except DBAPIError as exc:
        raise _store_unavailable(exc) from exc
    current_app.logger.info(f"[create] session={game_session.id}")
    return game_session


def transact(session_id: str, mutator: Callable[[GameSession], Any], with_snapshot: bool = False) -> Any:
    """Run ``mutator`` against the locked session row as one atomic unit.

    Any exception rolls the whole mutation back and nothing is published.
    ``IntegrityError`` is re-raised untouched so callers can resolve
    uniqueness races; other database errors become ``StoreUnavailable``.

    With ``with_snapshot`` the return value is ``(result, snapshot)``. The
    snapshot is taken before the lock is released, so it shows exactly this
    call's outcome and never a later commit.
    """
    from .broadcast import broadcaster

    with session_lock(session_id):
        try:
            # Objects read earlier in this request may be stale by now
            db.session.expire_all()
            game_session = (
                db.session.query(GameSession)
                .filter_by(id=session_id)
                .with_for_update()
                .first()
            )
            if game_session is None:
                raise SessionNotFound(session_id=session_id)
            result = mutator(game_session)
            game_session.revision = (game_session.revision or 0) + 1
            db.session.commit()
        except NoChange as unchanged:
            db.session.rollback()
            if with_snapshot:
                return unchanged.result, snapshot(session_id)
            return unchanged.result
        except IntegrityError:
            db.session.rollback()
            raise
        except DBAPIError as exc:
            raise _store_unavailable(exc) from exc
        except Exception:
            db.session.rollback()
            raise

        try:
            payload = build_snapshot(game_session)
        except DBAPIError as exc:
            # Committed but unreadable; subscribers catch up on their next snapshot
            raise _store_unavailable(exc) from exc
        broadcaster.publish(session_id, payload)
        if with_snapshot:
            return result, payload
        return result
