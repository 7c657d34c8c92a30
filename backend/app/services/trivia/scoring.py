from typing import Any, Dict, List

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app import db
from app.errors import InvalidTransition, QuestionMismatch, StoreUnavailable, UnknownPlayer
from app.models import GameSession, Player, ScoredAnswer, SessionStatus
from .store import NoChange, get_question, read_roster, transact


def points_for_answer(correct: bool, points_per_correct: int) -> int:
    """Score delta for one answer. Fixed points for a correct answer, none otherwise."""
    return points_per_correct if correct else 0


def _result(scored: ScoredAnswer, score: int, duplicate: bool) -> Dict[str, Any]:
    data = scored.to_dict()
    data['score'] = score
    data['duplicate'] = duplicate
    return data


def submit_answer(session_id: str, player_id: str, question_id: int, answer: str) -> Dict[str, Any]:
    """Score an answer exactly once per (player, question).

    A repeat submission for a pair that was already scored returns the
    original result untouched. Answers for any question other than the
    current one are rejected so late retries cannot score the wrong question.
    """
    points_per_correct = int(current_app.config.get('POINTS_PER_CORRECT_ANSWER', 1))

    def mutator(game_session: GameSession) -> Dict[str, Any]:
        if game_session.status != SessionStatus.IN_PROGRESS:
            raise InvalidTransition(
                f"Answers are not accepted while the game is {game_session.status.value}",
                status=game_session.status.value,
            )
        player = Player.query.filter_by(id=player_id, game_session_id=game_session.id).first()
        if player is None:
            raise UnknownPlayer()
        if question_id is None or int(question_id) != game_session.current_question_id:
            raise QuestionMismatch(
                question_id=question_id,
                current_question_id=game_session.current_question_id,
            )
        existing = ScoredAnswer.query.filter_by(player_id=player.id, question_id=game_session.current_question_id).first()
        if existing is not None:
            raise NoChange(_result(existing, player.score, duplicate=True))

        question = get_question(game_session.current_question_id)
        correct = bool(question and question.is_correct(answer))
        points = points_for_answer(correct, points_per_correct)
        scored = ScoredAnswer(
            game_session_id=game_session.id,
            player_id=player.id,
            question_id=game_session.current_question_id,
            answer=(answer or '')[:255],
            correct=correct,
            points=points,
        )
        player.score = (player.score or 0) + points
        db.session.add(scored)
        db.session.add(player)
        return _result(scored, player.score, duplicate=False)

    try:
        result = transact(session_id, mutator)
    except IntegrityError:
        # Another process scored this pair first; report what it recorded
        result = _prior_result(player_id, question_id)
    if result['duplicate']:
        current_app.logger.info(f"[answer-duplicate] session={session_id} question={question_id}")
    else:
        current_app.logger.info(
            f"[answer] session={session_id} question={question_id} correct={result['correct']} points={result['points']}"
        )
    return result


def _prior_result(player_id: str, question_id: int) -> Dict[str, Any]:
    scored = ScoredAnswer.query.filter_by(player_id=player_id, question_id=int(question_id)).first()
    player = db.session.get(Player, player_id)
    if scored is None or player is None:
        raise StoreUnavailable()
    return _result(scored, player.score, duplicate=True)


def reset_scores(session_id: str) -> Dict[str, Any]:
    """Zero every score and forget which answers were scored."""
    def mutator(game_session: GameSession) -> int:
        if game_session.status == SessionStatus.IN_PROGRESS:
            raise InvalidTransition('Scores cannot be reset while the game is in progress', status=game_session.status.value)
        ScoredAnswer.query.filter_by(game_session_id=game_session.id).delete(synchronize_session=False)
        players = Player.query.filter_by(game_session_id=game_session.id).all()
        for p in players:
            p.score = 0
            db.session.add(p)
        return len(players)

    count = transact(session_id, mutator)
    current_app.logger.info(f"[reset-scores] session={session_id} players={count}")
    return {'players_reset': count}


def leaderboard(session_id: str) -> List[Dict[str, Any]]:
    """Players by score, highest first; ties keep join order."""
    roster = read_roster(session_id)
    ranked = sorted(roster, key=lambda p: (-(p.score or 0), p.player_number))
    board = []
    rank = 0
    previous_score = None
    for position, player in enumerate(ranked, start=1):
        if player.score != previous_score:
            rank = position
            previous_score = player.score
        entry = player.to_dict()
        entry['rank'] = rank
        board.append(entry)
    return board
