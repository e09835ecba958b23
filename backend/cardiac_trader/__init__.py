import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

ROUNDS_EXTENSION = 'cardiac_trader.rounds'


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One round controller per game session, all talking to the same game service
    from cardiac_trader.services.backend_api import BackendAPI
    from cardiac_trader.services.rounds.registry import RoundControllerRegistry
    flask_app.extensions[ROUNDS_EXTENSION] = RoundControllerRegistry(
        flask_app, socketio, BackendAPI.from_config(flask_app.config)
    )

    from cardiac_trader.routes import main
    flask_app.register_blueprint(main)

    from cardiac_trader.api.games import games
    # Mounted under /api to match the browser API client
    flask_app.register_blueprint(games, url_prefix='/api/game')

    # Register Socket.IO event handlers
    from cardiac_trader.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the session cache."""
        import cardiac_trader.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Session cache has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app


def round_registry(flask_app=None):
    from flask import current_app
    flask_app = flask_app or current_app
    return flask_app.extensions[ROUNDS_EXTENSION]
