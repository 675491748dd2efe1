import os
import sys
import pytest

# Ensure the backend root (containing the `codeduel` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from codeduel import create_app, db, socketio
from codeduel.models import seed_challenges
from codeduel.services.duel.evaluation import EvaluationResult, GuardedEvaluator


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_SEED_CHALLENGES = False
    SOCKETIO_NAMESPACE = '/ws'
    CORS_ORIGINS = '*'
    DEFAULT_TIME_LIMIT_SEC = 300
    MAX_TIME_LIMIT_SEC = 3600
    EVALUATION_TIMEOUT_SEC = 2
    EVALUATION_WORKERS = 2


class SchedulerTestConfig(TestConfig):
    ENABLE_SCHEDULER_IN_TESTS = True
    COUNTDOWN_TICK_SEC = 0.05


class ScriptedEvaluator:
    """Scores code of the form ``score:<n>``; anything else scores 0."""

    def __init__(self):
        self.calls = []

    def evaluate(self, code, challenge):
        self.calls.append((code, challenge.id if challenge else None))
        if code.startswith('score:'):
            score = int(code.split(':', 1)[1])
            return EvaluationResult(score=score, passed=score > 0, output=f'scored {score}')
        return EvaluationResult(score=0, passed=False, output='no score')


class RecordingGateway:
    """Captures coordinator events instead of emitting them."""

    def __init__(self):
        self.sent = []      # (connection_id, event, data)
        self.global_events = []  # (event, data)

    def to_connection(self, connection_id, event, data=None):
        self.sent.append((connection_id, event, data))

    def to_connections(self, connection_ids, event, data=None):
        for sid in connection_ids:
            self.to_connection(sid, event, data)

    def to_room(self, room, event, data=None, skip=None):
        self.to_connections(
            [p.connection_id for p in room.participants if p.connection_id != skip],
            event,
            data,
        )

    def to_all(self, event, data=None):
        self.global_events.append((event, data))

    def events_for(self, connection_id, event=None):
        return [d for sid, e, d in self.sent if sid == connection_id and (event is None or e == event)]

    def names_for(self, connection_id):
        return [e for sid, e, d in self.sent if sid == connection_id]

    def clear(self):
        self.sent.clear()
        self.global_events.clear()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
        seed_challenges()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def scheduled_app():
    """App whose countdowns run as real background tasks."""
    application = create_app(SchedulerTestConfig)
    with application.app_context():
        db.create_all()
        seed_challenges()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def evaluator():
    return ScriptedEvaluator()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def coordinator(flask_app, gateway, evaluator):
    """The app's coordinator with a recording gateway and scripted evaluator."""
    coord = flask_app.extensions['codeduel']
    coord.gateway = gateway
    coord.evaluator.evaluator = evaluator
    return coord


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield make
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except RuntimeError:
            pass
