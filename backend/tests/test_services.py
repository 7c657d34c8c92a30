import queue

import pytest

from app import db
from app.errors import EmptyRoster, InvalidDashboardView, SessionNotFound, StaleCursor
from app.models import DashboardView, GameSession, Question, SessionStatus, normalize_answer
from app.services import trivia
from app.services.trivia import store
from app.services.trivia.state_machine import ALLOWED_DASHBOARD_VIEWS, parse_dashboard_view


@pytest.fixture()
def started(flask_app, questions):
    game_session = trivia.create_session()
    sid = game_session.id
    alice = trivia.join(sid, 'Alice')
    bob = trivia.join(sid, 'Bob')
    trivia.start_session(sid)
    return sid, alice, bob


def test_points_for_answer_is_fixed_delta():
    assert trivia.points_for_answer(True, 10) == 10
    assert trivia.points_for_answer(False, 10) == 0


def test_normalize_answer():
    assert normalize_answer('  Beyoncé!! ') == 'beyonce'
    assert normalize_answer('AC/DC') == 'acdc'
    assert normalize_answer('The   Rolling\tStones') == 'the rolling stones'
    assert normalize_answer(None) == ''


def test_question_accepts_alternates(flask_app):
    question = Question(position=9, prompt='?', answer='Prince', alternate_answers='["The Artist"]')
    assert question.is_correct('prince')
    assert question.is_correct('the artist')
    assert not question.is_correct('')
    assert not question.is_correct('Madonna')


def test_dashboard_view_table_is_exhaustive():
    assert set(ALLOWED_DASHBOARD_VIEWS) == set(SessionStatus)
    for status, views in ALLOWED_DASHBOARD_VIEWS.items():
        assert None in views
        assert (DashboardView.WINNER in views) == (status == SessionStatus.COMPLETE)
        assert (DashboardView.QR_CODE in views) == (status == SessionStatus.LOBBY)


def test_parse_dashboard_view():
    assert parse_dashboard_view('winner') is DashboardView.WINNER
    assert parse_dashboard_view(None) is None
    with pytest.raises(InvalidDashboardView):
        parse_dashboard_view('FIREWORKS')


def test_join_numbers_are_gapless(flask_app):
    sid = trivia.create_session().id
    numbers = [trivia.join(sid, f'P{i}')['player_number'] for i in range(6)]
    assert numbers == list(range(1, 7))
    roster = trivia.read_roster(sid)
    assert [p.player_number for p in roster] == numbers


def test_start_with_empty_roster(flask_app, questions):
    sid = trivia.create_session().id
    with pytest.raises(EmptyRoster):
        trivia.start_session(sid)
    assert trivia.read(sid).status == SessionStatus.LOBBY


def test_each_commit_bumps_revision_once(started):
    sid, alice, _ = started
    before = trivia.snapshot(sid)['seq']
    trivia.submit_answer(sid, alice['id'], 1, 'Daft Punk')
    assert trivia.snapshot(sid)['seq'] == before + 1
    # Duplicate submission commits nothing
    trivia.submit_answer(sid, alice['id'], 1, 'Daft Punk')
    assert trivia.snapshot(sid)['seq'] == before + 1
    # Rejected operations commit nothing either
    with pytest.raises(StaleCursor):
        trivia.advance_question(sid, 7)
    assert trivia.snapshot(sid)['seq'] == before + 1


def test_stale_advance_leaves_cursor(started):
    sid, _, _ = started
    trivia.advance_question(sid, 1)
    with pytest.raises(StaleCursor) as excinfo:
        trivia.advance_question(sid, 1)
    assert excinfo.value.details['current_question_id'] == 2
    assert trivia.read(sid).current_question_id == 2


def test_subscriber_catch_up_mid_session(started):
    sid, alice, _ = started
    trivia.submit_answer(sid, alice['id'], 1, 'Daft Punk')
    expected = trivia.snapshot(sid)

    with trivia.broadcaster.subscribe(sid) as subscription:
        first = subscription.get(timeout=1)
        assert first == expected
        assert first['players'][0]['score'] == 10

        trivia.advance_question(sid, 1)
        update = subscription.get(timeout=1)
        assert update['seq'] == expected['seq'] + 1
        assert update['session']['current_question_id'] == 2

        trivia.advance_question(sid, 2)
        trivia.set_dashboard_view(sid, 'LEADERBOARD')
        seqs = [subscription.get(timeout=1)['seq'] for _ in range(2)]
        assert seqs == [update['seq'] + 1, update['seq'] + 2]
        # No-op retries are not broadcast
        trivia.set_dashboard_view(sid, 'LEADERBOARD')
        with pytest.raises(queue.Empty):
            subscription.get(timeout=0.05)

    assert trivia.broadcaster.subscriber_count(sid) == 0


def test_subscriptions_are_per_session(flask_app, questions):
    first = trivia.create_session().id
    second = trivia.create_session().id
    with trivia.broadcaster.subscribe(first) as subscription:
        subscription.get(timeout=1)
        trivia.join(second, 'Elsewhere')
        with pytest.raises(queue.Empty):
            subscription.get(timeout=0.05)
        trivia.join(first, 'Here')
        assert subscription.get(timeout=1)['players'][0]['name'] == 'Here'


def test_subscription_drops_duplicate_sequence_numbers(flask_app):
    subscription = trivia.Subscription('abc')
    subscription.deliver({'seq': 3})
    subscription.deliver({'seq': 3})
    subscription.deliver({'seq': 2})
    subscription.deliver({'seq': 4})
    assert [subscription.get(timeout=0.1)['seq'] for _ in range(2)] == [3, 4]
    subscription.close()
    assert list(subscription) == []


def test_failed_mutation_is_rolled_back(started):
    sid, _, _ = started

    def mutator(game_session):
        game_session.detected_artist = 'Half written'
        raise EmptyRoster()

    with pytest.raises(EmptyRoster):
        trivia.transact(sid, mutator)
    db.session.expire_all()
    assert db.session.get(GameSession, sid).detected_artist is None


def test_record_detected_artist_last_write_wins(started):
    sid, _, _ = started
    trivia.record_detected_artist(sid, 'Daft Punk')
    trivia.record_detected_artist(sid, 'Justice', question_id=1)
    assert trivia.read(sid).detected_artist == 'Justice'
    trivia.record_detected_artist(sid, 'Stale', question_id=2)
    assert trivia.read(sid).detected_artist == 'Justice'


def test_command_returns_the_snapshot_it_published(started):
    sid, _, _ = started
    with trivia.broadcaster.subscribe(sid) as subscription:
        subscription.get(timeout=1)
        returned = trivia.set_dashboard_view(sid, 'LEADERBOARD')
        assert subscription.get(timeout=1) == returned
        # A no-op reports the state it found, with the same seq
        assert trivia.set_dashboard_view(sid, 'LEADERBOARD') == returned

        advanced = trivia.advance_question(sid, 1)
        assert subscription.get(timeout=1) == advanced


def test_transact_with_snapshot(started):
    sid, _, _ = started
    before = trivia.snapshot(sid)['seq']

    def mutator(game_session):
        game_session.detected_artist = 'Justice'
        return 'done'

    result, payload = trivia.transact(sid, mutator, with_snapshot=True)
    assert result == 'done'
    assert payload['seq'] == before + 1
    assert payload['session']['detected_artist'] == 'Justice'


def test_session_locks_are_released(flask_app):
    with pytest.raises(SessionNotFound):
        trivia.transact('missing', lambda game_session: None)
    with pytest.raises(SessionNotFound):
        trivia.broadcaster.subscribe('missing')
    sid = trivia.create_session().id
    trivia.join(sid, 'Alice')
    trivia.snapshot(sid)
    assert store._session_locks == {}
