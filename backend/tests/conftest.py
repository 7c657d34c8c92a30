import json
import os
import sys

import pytest

# Ensure the backend root (containing the `app` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from app import create_app, db, socketio
from app.gateways.artist import clear_token_cache


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    CORS_ORIGINS = ['http://localhost:5173']
    SOCKETIO_MESSAGE_QUEUE = None
    ALLOW_LATE_JOIN = False
    POINTS_PER_CORRECT_ANSWER = 10
    SPOTIFY_CLIENT_ID = ''
    SPOTIFY_CLIENT_SECRET = ''
    VDJ_URL = 'http://vdj.test'
    GATEWAY_TIMEOUT_SEC = 1


QUESTIONS = [
    {'position': 1, 'prompt': 'Who sang "Get Lucky"?', 'answer': 'Daft Punk', 'artist_name': 'Daft Punk'},
    {'position': 2, 'prompt': 'Which band released "Parklife"?', 'answer': 'Blur',
     'alternate_answers': ['The Blur']},
    {'position': 3, 'prompt': 'Who is known as the Queen of Pop?', 'answer': 'Madonna'},
]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import app.models  # noqa: F401
        db.create_all()
        clear_token_cache()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def _seed_questions():
    from app.models import Question
    for row in QUESTIONS:
        db.session.add(Question(
            position=row['position'],
            prompt=row['prompt'],
            answer=row['answer'],
            alternate_answers=json.dumps(row.get('alternate_answers') or []),
            artist_name=row.get('artist_name'),
        ))
    db.session.commit()


@pytest.fixture()
def questions(flask_app):
    _seed_questions()
    return QUESTIONS


@pytest.fixture()
def file_backed_app(tmp_path):
    """App on an on-disk SQLite database, so worker threads each get their own connection."""
    class FileBackedConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'trivia.db'}"

    application = create_app(FileBackedConfig)
    with application.app_context():
        import app.models  # noqa: F401
        db.create_all()
        clear_token_cache()
        _seed_questions()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def session_id(client):
    res = client.post('/api/sessions')
    assert res.status_code == 201
    return res.get_json()['session']['id']


@pytest.fixture()
def join(client):
    def _join(sid, name, **extra):
        res = client.post(f'/api/sessions/{sid}/players', json={'name': name, **extra})
        assert res.status_code == 201, res.get_json()
        return res.get_json()
    return _join


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
