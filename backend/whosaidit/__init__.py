from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from datetime import timedelta
import logging
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    allowed_origins = flask_app.config.get('CORS_ORIGINS', '*')
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One engine and connection registry per application
    from whosaidit.services import ENGINE_KEY, CONNECTIONS_KEY
    from whosaidit.services.games import GameEngine
    from whosaidit.services.rooms import RoomRepository
    from whosaidit.services.questions import QuestionCache, QuestionSupplier
    from whosaidit.sessions import ConnectionRegistry

    cfg = flask_app.config
    rooms = RoomRepository(
        code_length=int(cfg.get('ROOM_CODE_LENGTH', 6)),
        max_code_attempts=int(cfg.get('ROOM_CODE_MAX_ATTEMPTS', 10)),
        ttl=timedelta(hours=int(cfg.get('ROOM_TTL_HOURS', 24))),
    )
    questions = QuestionSupplier(QuestionCache(ttl_sec=int(cfg.get('QUESTION_CACHE_TTL_SEC', 0))))
    flask_app.extensions[ENGINE_KEY] = GameEngine(
        rooms,
        questions,
        min_players=int(cfg.get('MIN_PLAYERS', 3)),
        name_min_length=int(cfg.get('NAME_MIN_LENGTH', 2)),
        name_max_length=int(cfg.get('NAME_MAX_LENGTH', 20)),
        max_answer_length=int(cfg.get('MAX_ANSWER_LENGTH', 200)),
    )
    flask_app.extensions[CONNECTIONS_KEY] = ConnectionRegistry()

    # Import and register blueprints here
    from whosaidit.main import main
    flask_app.register_blueprint(main)

    from whosaidit.api.rooms import rooms as rooms_bp
    flask_app.register_blueprint(rooms_bp, url_prefix='/api/rooms')

    # Register Socket.IO event handlers
    from whosaidit.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=cfg.get('SOCKETIO_NAMESPACE', '/ws'))

    from whosaidit.services.rooms.expiry import start_expiry_sweeper, sweep_expired_rooms
    start_expiry_sweeper(flask_app)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from whosaidit.data.questions import QUESTION_TEMPLATES
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            added = questions.seed(QUESTION_TEMPLATES)
            print(f'Database has been reset and seeded with {added} questions!')

    @click.command('seed-questions')
    def seed_questions_command():
        """Inserts the bundled question templates that are not stored yet."""
        from whosaidit.data.questions import QUESTION_TEMPLATES
        with flask_app.app_context():
            added = questions.seed(QUESTION_TEMPLATES)
            print(f'Seeded {added} new questions ({questions.count()} active).')

    @click.command('purge-rooms')
    def purge_rooms_command():
        """Deletes rooms past their expiry."""
        with flask_app.app_context():
            purged = sweep_expired_rooms(flask_app)
            print(f'Purged {purged} expired rooms.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_questions_command)
    flask_app.cli.add_command(purge_rooms_command)

    return flask_app
