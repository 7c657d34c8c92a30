import json
import logging

import click
from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created; the message queue lets
    # several server processes fan out to the same rooms
    socketio.init_app(
        flask_app,
        cors_allowed_origins=allowed_origins,
        message_queue=flask_app.config.get('SOCKETIO_MESSAGE_QUEUE'),
    )

    from app.errors import register_error_handlers
    register_error_handlers(flask_app)

    from app.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    from app.api.external import external
    flask_app.register_blueprint(external, url_prefix='/api')

    from app.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates all tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('seed-questions')
    @click.argument('path', type=click.Path(exists=True, dir_okay=False))
    def seed_questions_command(path):
        """Loads trivia questions from a JSON list of objects.

        Each object needs `position`, `prompt` and `answer`; `alternate_answers`
        and `artist_name` are optional. Existing positions are overwritten.
        """
        from app.models import Question
        with open(path, encoding='utf-8') as fh:
            rows = json.load(fh)
        with flask_app.app_context():
            for row in rows:
                question = Question.query.filter_by(position=int(row['position'])).first()
                if question is None:
                    question = Question(position=int(row['position']))
                question.prompt = row['prompt']
                question.answer = row['answer']
                question.alternate_answers = json.dumps(row.get('alternate_answers') or [])
                question.artist_name = row.get('artist_name')
                db.session.add(question)
            db.session.commit()
            print(f'Loaded {len(rows)} questions.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_questions_command)

    return flask_app
