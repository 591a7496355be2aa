from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
default_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
socketio = SocketIO(async_mode=None)


def _allowed_origins(flask_app):
    origins = list(default_origins)
    client_url = flask_app.config.get('CLIENT_URL')
    if client_url and client_url not in origins:
        origins.insert(0, client_url)
    return origins


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = _allowed_origins(flask_app)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Service objects live for the lifetime of this app instance
    from wagerpong.ledger import EscrowLedger
    from wagerpong.relay import RoomRegistry
    flask_app.extensions['escrow_ledger'] = EscrowLedger(
        fee_bps=flask_app.config.get('FEE_BPS', 100),
        fee_recipient=flask_app.config.get('FEE_RECIPIENT'),
        max_duration=flask_app.config.get('MAX_MATCH_DURATION_SEC', 7 * 24 * 60 * 60),
    )
    flask_app.extensions['room_registry'] = RoomRegistry()

    from wagerpong.main import main
    flask_app.register_blueprint(main)

    from wagerpong.api.matches import ledger_api
    flask_app.register_blueprint(ledger_api, url_prefix='/api')

    from wagerpong.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Ledger calls are authenticated per request; there is no login session
    from wagerpong.auth import load_caller_from_request, unauthorized
    login_manager.request_loader(load_caller_from_request)
    login_manager.unauthorized_handler(unauthorized)

    @click.command('db-reset')
    @click.option('--seed-balance', default=10 ** 18, show_default=True,
                  help='Balance credited to each seeded account.')
    def db_reset_command(seed_balance):
        """Drops, recreates, and seeds the database with demo accounts."""
        from wagerpong.ledger import get_ledger
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            ledger = get_ledger()
            seeded = [
                '0x' + '11' * 20,
                '0x' + '22' * 20,
            ]
            for address in seeded:
                api_key = ledger.open_account(address)
                ledger.deposit(address, seed_balance)
                click.echo(f'{address} api_key={api_key}')
            click.echo('Database has been reset and seeded!')

    @click.command('sweep-expired')
    @click.option('--caller', default=None, help='Address recorded as the caller of cancelExpired.')
    def sweep_expired_command(caller):
        """Cancel every pending match whose deadline has passed, refunding hosts."""
        from wagerpong.ledger import get_ledger
        with flask_app.app_context():
            ledger = get_ledger()
            cancelled = ledger.sweep_expired(caller or ledger.fee_recipient)
            click.echo(f'Cancelled {len(cancelled)} expired match(es): {cancelled}')

    @click.command('list-pending')
    def list_pending_command():
        """Print every pending match."""
        from wagerpong.ledger import get_ledger
        with flask_app.app_context():
            matches = get_ledger().pending_matches()
            click.echo(f'Found {len(matches)} pending match(es):')
            for match in matches:
                click.echo(
                    f'  #{match.id} host={match.host} wager={match.wager} '
                    f'difficulty={match.difficulty} expires_at={match.expires_at}'
                )

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(sweep_expired_command)
    flask_app.cli.add_command(list_pending_command)

    return flask_app
