import os
import random
import sys
import pytest

# Ensure the backend root (containing the `whosaidit` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from whosaidit import create_app, db, socketio
from whosaidit.services import ENGINE_KEY


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = '*'
    SOCKETIO_NAMESPACE = '/ws'
    ROOM_SWEEP_INTERVAL_SEC = 0
    QUESTION_CACHE_TTL_SEC = 0
    MIN_PLAYERS = 3


TEST_QUESTIONS = [
    "What would {name} do with a million dollars?",
    "What is {name}'s secret talent?",
    "What would {name} name their pet dragon?",
    "What is {name}'s go-to karaoke song?",
    "What would {name} bring to a desert island?",
]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import whosaidit.models  # noqa: F401
        db.create_all()
        engine = application.extensions[ENGINE_KEY]
        engine.questions.seed(TEST_QUESTIONS)
        # Seeded randomness keeps target and question picks reproducible
        engine._random = random.Random(1234)
        engine.questions._random = random.Random(1234)
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def engine(flask_app):
    return flask_app.extensions[ENGINE_KEY]


@pytest.fixture()
def make_room(engine):
    """Create a room with a host and the given guests; returns ``(code, [player ids])`` in join order."""
    def _make(host='Alice', *guests):
        guests = guests or ('Bob', 'Cara')
        room, host_id = engine.create_room(host)
        ids = [host_id]
        for name in guests:
            _, pid = engine.join_room(room.code, name)
            ids.append(pid)
        return room.code, ids
    return _make


@pytest.fixture()
def sio_factory(flask_app):
    """Build Socket.IO test clients on /ws; all of them are disconnected afterwards."""
    clients = []

    def _connect():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws',
        )
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass
