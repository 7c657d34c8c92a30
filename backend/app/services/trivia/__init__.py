"""Trivia session core: store, state machine, roster, scoring, broadcast.

HTTP routes and socket handlers import from here; transport concerns stay
out of these modules.
"""

from .broadcast import Subscription, broadcaster
from .roster import get_player, join, leave
from .scoring import leaderboard, points_for_answer, reset_scores, submit_answer
from .state_machine import (
    advance_question,
    allowed_dashboard_views,
    record_detected_artist,
    set_dashboard_view,
    start_session,
)
from .store import create_session, read, read_roster, snapshot, transact

__all__ = [
    'Subscription',
    'advance_question',
    'allowed_dashboard_views',
    'broadcaster',
    'create_session',
    'get_player',
    'join',
    'leaderboard',
    'leave',
    'points_for_answer',
    'read',
    'read_roster',
    'record_detected_artist',
    'reset_scores',
    'set_dashboard_view',
    'snapshot',
    'start_session',
    'submit_answer',
    'transact',
]
