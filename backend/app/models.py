import enum
import json
import re
import secrets
import unicodedata
import uuid
from datetime import datetime, timezone

from app import db


def _utcnow():
    return datetime.now(timezone.utc)


def generate_session_id():
    return uuid.uuid4().hex


def generate_player_id():
    """Player ids double as bearer credentials, so they must be unguessable."""
    return secrets.token_urlsafe(24)


class SessionStatus(enum.Enum):
    LOBBY = 'LOBBY'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETE = 'COMPLETE'


class DashboardView(enum.Enum):
    QR_CODE = 'QR_CODE'
    LEADERBOARD = 'LEADERBOARD'
    WINNER = 'WINNER'
    INSTRUCTIONS = 'INSTRUCTIONS'


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.String(32), primary_key=True, default=generate_session_id)
    status = db.Column(db.Enum(SessionStatus, name='session_status'), nullable=False, default=SessionStatus.LOBBY)
    current_question_id = db.Column(db.Integer, nullable=True)
    detected_artist = db.Column(db.String(255), nullable=True)
    dashboard_view = db.Column(db.Enum(DashboardView, name='dashboard_view'), nullable=True)
    # Bumped once per committed mutation; doubles as the broadcast sequence number
    revision = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    players = db.relationship(
        'Player',
        back_populates='game_session',
        order_by='Player.player_number',
        cascade='all, delete-orphan',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'status': self.status.value,
            'current_question_id': self.current_question_id,
            'detected_artist': self.detected_artist,
            'dashboard_view': self.dashboard_view.value if self.dashboard_view else None,
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.UniqueConstraint('game_session_id', 'player_number', name='uq_player_session_number'),
    )
    id = db.Column(db.String(64), primary_key=True, default=generate_player_id)
    name = db.Column(db.String(64), nullable=False)
    player_number = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    game_session_id = db.Column(db.String(32), db.ForeignKey('game_session.id'), nullable=False, index=True)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    game_session = db.relationship('GameSession', back_populates='players')
    scored_answers = db.relationship('ScoredAnswer', back_populates='player', cascade='all, delete-orphan')

    def to_dict(self, include_id=False):
        data = {
            'player_number': self.player_number,
            'name': self.name,
            'score': self.score,
            'game_session_id': self.game_session_id,
        }
        # The id is the player's credential; it only goes back to its owner
        if include_id:
            data['id'] = self.id
        return data


_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_answer(text):
    text = unicodedata.normalize('NFKD', text or '')
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    text = _PUNCTUATION.sub('', text.casefold())
    return _WHITESPACE.sub(' ', text).strip()


class Question(db.Model):
    __tablename__ = 'trivia_question'
    id = db.Column(db.Integer, primary_key=True)
    position = db.Column(db.Integer, nullable=False, unique=True, index=True)
    prompt = db.Column(db.Text, nullable=False)
    answer = db.Column(db.String(255), nullable=False)
    alternate_answers = db.Column(db.Text, nullable=True)  # JSON-encoded list of strings
    artist_name = db.Column(db.String(255), nullable=True)

    @property
    def accepted_answers(self):
        try:
            alternates = json.loads(self.alternate_answers) if self.alternate_answers else []
        except ValueError:
            alternates = []
        return [self.answer] + [a for a in alternates if isinstance(a, str)]

    def is_correct(self, submitted):
        guess = normalize_answer(submitted)
        if not guess:
            return False
        return any(guess == normalize_answer(a) for a in self.accepted_answers)

    def to_dict(self):
        # Never expose the answer to subscribers
        return {
            'question_id': self.position,
            'prompt': self.prompt,
            'artist_name': self.artist_name,
        }


class ScoredAnswer(db.Model):
    __tablename__ = 'scored_answer'
    __table_args__ = (
        db.UniqueConstraint('player_id', 'question_id', name='uq_scored_answer_player_question'),
    )
    id = db.Column(db.Integer, primary_key=True)
    game_session_id = db.Column(db.String(32), db.ForeignKey('game_session.id'), nullable=False, index=True)
    player_id = db.Column(db.String(64), db.ForeignKey('player.id'), nullable=False)
    question_id = db.Column(db.Integer, nullable=False)
    answer = db.Column(db.String(255), nullable=False, default='')
    correct = db.Column(db.Boolean, nullable=False, default=False)
    points = db.Column(db.Integer, nullable=False, default=0)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    player = db.relationship('Player', back_populates='scored_answers')

    def to_dict(self):
        return {
            'question_id': self.question_id,
            'correct': self.correct,
            'points': self.points,
        }
