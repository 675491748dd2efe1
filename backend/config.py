import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///codeduel.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000',
        ).split(',') if o.strip()
    ]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Player defaults
    DEFAULT_RATING = int(os.environ.get('DEFAULT_RATING', '1350'))
    # Room countdown (seconds)
    DEFAULT_TIME_LIMIT_SEC = int(os.environ.get('DEFAULT_TIME_LIMIT_SEC', '300'))
    MAX_TIME_LIMIT_SEC = int(os.environ.get('MAX_TIME_LIMIT_SEC', '3600'))
    COUNTDOWN_TICK_SEC = float(os.environ.get('COUNTDOWN_TICK_SEC', '1'))
    # Optional: heartbeat interval for countdown logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
    # Submission evaluation
    EVALUATOR_CLASS = os.environ.get('EVALUATOR_CLASS', 'codeduel.services.duel.evaluation.StaticEvaluator')
    EVALUATION_TIMEOUT_SEC = float(os.environ.get('EVALUATION_TIMEOUT_SEC', '10'))
    EVALUATION_WORKERS = int(os.environ.get('EVALUATION_WORKERS', '4'))
    # Create tables and insert built-in challenges on startup
    AUTO_SEED_CHALLENGES = os.environ.get('AUTO_SEED_CHALLENGES', '1') not in ('0', 'false', 'False')
    # Countdown background tasks are skipped under TESTING unless enabled here
    ENABLE_SCHEDULER_IN_TESTS = False
