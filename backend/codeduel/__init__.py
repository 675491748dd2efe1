from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'

    db.init_app(flask_app)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from codeduel.main import main
    flask_app.register_blueprint(main)

    from codeduel.api.rooms import api
    flask_app.register_blueprint(api, url_prefix='/api')

    flask_app.extensions['codeduel'] = _build_coordinator(flask_app)

    from codeduel.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=flask_app.config.get('SOCKETIO_NAMESPACE', '/ws'))

    from codeduel.models import seed_challenges

    if flask_app.config.get('AUTO_SEED_CHALLENGES', True):
        with flask_app.app_context():
            db.create_all()
            seed_challenges()

    @click.command('seed-challenges')
    def seed_challenges_command():
        """Creates tables and inserts the built-in challenges."""
        with flask_app.app_context():
            db.create_all()
            added = seed_challenges()
            print(f'Seeded {added} challenge(s).')

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the challenge table."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            seed_challenges()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(seed_challenges_command)
    flask_app.cli.add_command(db_reset_command)

    return flask_app


def get_coordinator():
    return current_app.extensions['codeduel']


def _build_coordinator(flask_app):
    from codeduel.services.duel.broadcast import BroadcastGateway
    from codeduel.services.duel.challenges import ChallengeCatalog
    from codeduel.services.duel.evaluation import GuardedEvaluator, load_evaluator
    from codeduel.services.duel.scheduler import CountdownScheduler
    from codeduel.services.duel.session import SessionCoordinator

    cfg = flask_app.config
    evaluator = GuardedEvaluator(
        load_evaluator(cfg.get('EVALUATOR_CLASS', 'codeduel.services.duel.evaluation.StaticEvaluator')),
        timeout=float(cfg.get('EVALUATION_TIMEOUT_SEC', 10)),
        workers=int(cfg.get('EVALUATION_WORKERS', 4)),
    )
    coordinator = SessionCoordinator(
        gateway=BroadcastGateway(socketio, cfg.get('SOCKETIO_NAMESPACE', '/ws')),
        catalog=ChallengeCatalog(),
        evaluator=evaluator,
        default_rating=int(cfg.get('DEFAULT_RATING', 1350)),
        default_time_limit=int(cfg.get('DEFAULT_TIME_LIMIT_SEC', 300)),
        max_time_limit=int(cfg.get('MAX_TIME_LIMIT_SEC', 3600)),
    )
    # Countdown tasks are off in tests; they drive expire_countdown directly.
    enabled = not cfg.get('TESTING') or bool(cfg.get('ENABLE_SCHEDULER_IN_TESTS'))
    coordinator.scheduler = CountdownScheduler(
        flask_app,
        socketio,
        on_expire=coordinator.expire_countdown,
        tick=float(cfg.get('COUNTDOWN_TICK_SEC', 1)),
        heartbeat=int(cfg.get('TIMER_HEARTBEAT_SEC', 0)),
        enabled=enabled,
    )
    return coordinator
