"""Session lifecycle: status, question cursor, dashboard view, detected artist.

Status moves LOBBY -> IN_PROGRESS -> COMPLETE and never back. The dashboard
view is an independent display mode, but only the views listed in
``ALLOWED_DASHBOARD_VIEWS`` for the current status may be shown.
"""

from typing import Any, Dict, FrozenSet, Optional, Union

from flask import current_app

from app import socketio
from app.errors import (
    EmptyRoster,
    GatewayUnavailable,
    InvalidDashboardView,
    InvalidRequest,
    InvalidTransition,
    StaleCursor,
    TriviaError,
)
from app.models import DashboardView, GameSession, Player, SessionStatus
from .store import NoChange, build_snapshot, first_question, next_question, transact

ALLOWED_DASHBOARD_VIEWS: Dict[SessionStatus, FrozenSet[Optional[DashboardView]]] = {
    SessionStatus.LOBBY: frozenset({DashboardView.QR_CODE, DashboardView.INSTRUCTIONS, None}),
    SessionStatus.IN_PROGRESS: frozenset({DashboardView.LEADERBOARD, DashboardView.INSTRUCTIONS, None}),
    SessionStatus.COMPLETE: frozenset({DashboardView.WINNER, DashboardView.LEADERBOARD, None}),
}


def allowed_dashboard_views(status: SessionStatus) -> FrozenSet[Optional[DashboardView]]:
    return ALLOWED_DASHBOARD_VIEWS[status]


def parse_dashboard_view(view: Union[str, DashboardView, None]) -> Optional[DashboardView]:
    if view is None or isinstance(view, DashboardView):
        return view
    try:
        return DashboardView(str(view).strip().upper())
    except ValueError:
        raise InvalidDashboardView(f"Unknown dashboard view '{view}'", view=view)


def _set_status(game_session: GameSession, status: SessionStatus) -> None:
    game_session.status = status
    # A view that is illegal under the new status falls back to no view
    if game_session.dashboard_view not in ALLOWED_DASHBOARD_VIEWS[status]:
        game_session.dashboard_view = None


def start_session(session_id: str) -> Dict[str, Any]:
    def mutator(game_session: GameSession) -> None:
        if game_session.status != SessionStatus.LOBBY:
            raise InvalidTransition(
                f"Cannot start a game that is {game_session.status.value}",
                status=game_session.status.value,
            )
        if not Player.query.filter_by(game_session_id=game_session.id).count():
            raise EmptyRoster()
        question = first_question()
        if question is None:
            raise InvalidTransition('No questions are loaded', status=game_session.status.value)
        _set_status(game_session, SessionStatus.IN_PROGRESS)
        game_session.current_question_id = question.position
        game_session.detected_artist = None

    _, payload = transact(session_id, mutator, with_snapshot=True)
    current_app.logger.info(
        f"[start] session={session_id} question={payload['session']['current_question_id']} players={len(payload['players'])}"
    )
    _schedule_artist_lookup(session_id, payload)
    return payload


def advance_question(session_id: str, expected_question_id: Optional[int]) -> Dict[str, Any]:
    """Move the cursor on from ``expected_question_id``.

    ``expected_question_id`` is the question the caller believes is current.
    If another advance already moved on, nothing changes and ``StaleCursor``
    carries the canonical snapshot back.
    """
    moved: Dict[str, Any] = {}

    def mutator(game_session: GameSession) -> None:
        duplicate_finish = (
            game_session.status == SessionStatus.COMPLETE
            and expected_question_id is not None
            and int(expected_question_id) == game_session.current_question_id
        )
        if game_session.status != SessionStatus.IN_PROGRESS and not duplicate_finish:
            raise InvalidTransition(
                f"Cannot advance a game that is {game_session.status.value}",
                status=game_session.status.value,
            )
        # A repeat of the advance that finished the game is stale too
        if duplicate_finish or expected_question_id is None or int(expected_question_id) != game_session.current_question_id:
            raise StaleCursor(
                expected_question_id=expected_question_id,
                current_question_id=game_session.current_question_id,
                session=build_snapshot(game_session),
            )
        previous = game_session.current_question_id
        game_session.detected_artist = None
        following = next_question(previous)
        if following is None:
            _set_status(game_session, SessionStatus.COMPLETE)
        else:
            game_session.current_question_id = following.position
        moved.update(previous=previous, current=game_session.current_question_id, status=game_session.status.value)

    try:
        _, payload = transact(session_id, mutator, with_snapshot=True)
    except StaleCursor as exc:
        current_app.logger.info(
            f"[advance-stale] session={session_id} expected={exc.details.get('expected_question_id')} current={exc.details.get('current_question_id')}"
        )
        raise
    if moved['status'] == SessionStatus.COMPLETE.value:
        current_app.logger.info(f"[finish] session={session_id} finished at question={moved['previous']}")
    else:
        current_app.logger.info(f"[advance] session={session_id} question {moved['previous']} -> {moved['current']}")
    _schedule_artist_lookup(session_id, payload)
    return payload


def set_dashboard_view(session_id: str, view: Union[str, DashboardView, None]) -> Dict[str, Any]:
    target = parse_dashboard_view(view)

    def mutator(game_session: GameSession) -> None:
        if target not in ALLOWED_DASHBOARD_VIEWS[game_session.status]:
            raise InvalidDashboardView(
                f"{target.value if target else 'None'} is not available while the game is {game_session.status.value}",
                view=target.value if target else None,
                status=game_session.status.value,
            )
        if game_session.dashboard_view == target:
            raise NoChange()
        game_session.dashboard_view = target

    _, payload = transact(session_id, mutator, with_snapshot=True)
    current_app.logger.info(f"[dashboard] session={session_id} view={target.value if target else None}")
    return payload


def record_detected_artist(session_id: str, artist_name: Optional[str], question_id: Optional[int] = None) -> Dict[str, Any]:
    """Last-write-wins artist for the current question.

    With ``question_id`` the write only lands if that question is still the
    current one, so a slow lookup cannot overwrite a later question's artist.
    """
    if artist_name is not None and not isinstance(artist_name, str):
        raise InvalidRequest('artist_name must be a string')
    name = (artist_name or '').strip() or None

    def mutator(game_session: GameSession) -> None:
        if game_session.status != SessionStatus.IN_PROGRESS:
            raise InvalidTransition(
                f"Cannot record an artist while the game is {game_session.status.value}",
                status=game_session.status.value,
            )
        if question_id is not None and int(question_id) != game_session.current_question_id:
            raise NoChange()
        if game_session.detected_artist == name:
            raise NoChange()
        game_session.detected_artist = name

    _, payload = transact(session_id, mutator, with_snapshot=True)
    return payload


def _resolve_artist(app, session_id: str, name: str, question_id: int) -> None:
    from app.gateways.artist import ArtistGateway

    try:
        image_url = ArtistGateway.from_config(app.config).find_artist_image(name)
    except GatewayUnavailable as exc:
        app.logger.warning(f"[artist-lookup] session={session_id} question={question_id} unavailable: {exc.message}")
        return
    if not image_url:
        app.logger.info(f"[artist-lookup] session={session_id} question={question_id} no match for artist")
        return
    try:
        record_detected_artist(session_id, name, question_id=question_id)
    except InvalidTransition:
        # Game finished while the lookup was in flight
        return
    except TriviaError as exc:
        app.logger.warning(f"[artist-lookup] session={session_id} question={question_id} not recorded: {exc.code}")
        return
    app.logger.info(f"[artist-lookup] session={session_id} question={question_id} artist recorded")


def _schedule_artist_lookup(session_id: str, payload: Dict[str, Any]) -> None:
    """Resolve the current question's artist off the request path.

    Gateway failures only mean no artist is shown; they never reach session
    state. Runs inline under TESTING to keep tests deterministic.
    """
    question = payload.get('question') or {}
    artist_name = question.get('artist_name')
    if not artist_name:
        return
    app = current_app._get_current_object()
    question_id = question.get('question_id')

    if app.config.get('TESTING'):
        _resolve_artist(app, session_id, artist_name, question_id)
        return

    def _worker(name: str, qid: int):
        with app.app_context():
            _resolve_artist(app, session_id, name, qid)

    socketio.start_background_task(_worker, artist_name, question_id)
