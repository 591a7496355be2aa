import os
import sys
import pytest

# Ensure the backend root (containing the `wagerpong` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from wagerpong import create_app, db, socketio

HOST = '0x' + 'aa' * 20
CHALLENGER = '0x' + 'bb' * 20
OUTSIDER = '0x' + 'cc' * 20
FEE_RECIPIENT = '0x' + 'fe' * 20
STARTING_BALANCE = 10_000


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    FEE_BPS = 100
    FEE_RECIPIENT = FEE_RECIPIENT
    MAX_MATCH_DURATION_SEC = 7 * 24 * 60 * 60
    FAUCET_ENABLED = True
    READY_POLL_INTERVAL_SEC = 0.01
    READY_POLL_MAX_ATTEMPTS = 5
    READY_POLL_BACKOFF = 2.0


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def flask_app(clock):
    application = create_app(TestConfig)
    application.extensions['escrow_ledger'].clock = clock
    with application.app_context():
        # Ensure models are imported so tables are created
        import wagerpong.models  # noqa: F401
        db.create_all()
    # Requests push their own app context so per-request state (the
    # authenticated caller on flask.g) does not leak between calls
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def ledger(app_ctx):
    return app_ctx.extensions['escrow_ledger']


@pytest.fixture()
def accounts(flask_app):
    """Open and fund host, challenger and outsider accounts; returns address -> api key."""
    keys = {}
    with flask_app.app_context():
        ledger = flask_app.extensions['escrow_ledger']
        for address in (HOST, CHALLENGER, OUTSIDER):
            keys[address] = ledger.open_account(address)
            ledger.deposit(address, STARTING_BALANCE)
    return keys


@pytest.fixture()
def auth(accounts):
    def headers(address):
        return {'X-Address': address, 'Authorization': f'Bearer {accounts[address]}'}
    return headers


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


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


@pytest.fixture()
def sio_factory(flask_app):
    """Open extra relay connections; all are closed at teardown."""
    opened = []

    def connect():
        c = socketio.test_client(flask_app, namespace='/ws')
        c.get_received('/ws')
        opened.append(c)
        return c

    yield connect
    for c in opened:
        if c.is_connected('/ws'):
            c.disconnect(namespace='/ws')
