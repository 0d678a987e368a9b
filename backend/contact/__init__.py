from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS', [])
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from contact.services.game import coordinator
    coordinator.init_app(flask_app)

    from contact.main import main
    flask_app.register_blueprint(main)

    from contact.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from contact.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    # Importing here ensures the handlers bind to the initialized socketio instance
    from contact.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates every table."""
        import contact.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('purge-games')
    @click.option('--room', 'room_id', default=None, help='Only purge games of this room.')
    def purge_games_command(room_id):
        """Deletes completed games from storage."""
        from contact import store
        with flask_app.app_context():
            purged = store.purge_completed_games(room_id=room_id)
            print(f'Purged {purged} completed game(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_games_command)

    return flask_app
