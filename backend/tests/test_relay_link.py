import logging
import random

import pytest
from socketio import exceptions as sio_exceptions

from matchclient import LocalLedgerGateway, MatchClient, Outcome, PollPolicy, RelayLink
from conftest import CHALLENGER, HOST

HOUR = 3600
FAST = PollPolicy(interval=0.01, max_attempts=5, backoff=2.0)


class FakeSocket:
    """Stands in for ``socketio.Client``; ``replies`` maps an outgoing event
    to the (event, data) pairs the relay answers with."""

    def __init__(self, fail_connect=False, fail_emit=False, replies=None):
        self.connected = False
        self.fail_connect = fail_connect
        self.fail_emit = fail_emit
        self.replies = replies or {}
        self.handlers = {}
        self.sent = []

    def on(self, event, handler, namespace=None):
        self.handlers[(event, namespace)] = handler

    def connect(self, url, namespaces=None, transports=None):
        if self.fail_connect:
            raise sio_exceptions.ConnectionError('connection refused')
        self.connected = True

    def disconnect(self):
        self.connected = False

    def emit(self, event, data=None, namespace=None):
        if self.fail_emit:
            raise sio_exceptions.BadNamespaceError(f'{namespace} is not a connected namespace.')
        self.sent.append((event, data, namespace))
        for reply, payload in self.replies.pop(event, []):
            self.fire(reply, payload, namespace)

    def fire(self, event, data, namespace='/ws'):
        self.handlers[(event, namespace)](data)

    def events(self):
        return [event for event, _, _ in self.sent]


def miss(side, simulation):
    return 0 if simulation.ball['y'] > 300 else 500


def test_sends_are_dropped_until_connected():
    socket = FakeSocket()
    link = RelayLink('http://relay.test', client=socket)
    link.send_paddle(1, 200)
    assert socket.sent == []

    assert link.connect() is True
    link.send_paddle(1, 200)
    assert socket.sent == [('paddle-move', {'matchId': 1, 'y': 200}, '/ws')]

    link.disconnect()
    assert not link.connected
    link.send_scores(1, {'left': 1, 'right': 0})
    assert len(socket.sent) == 1


def test_unreachable_relay_falls_back_to_polling(caplog):
    socket = FakeSocket(fail_connect=True)
    link = RelayLink('http://relay.test', client=socket)
    with caplog.at_level(logging.WARNING, logger='matchclient.relay_link'):
        assert link.connect() is False
    assert 'ledger polling only' in caplog.text
    link.announce_created()
    assert socket.sent == []


def test_send_errors_are_swallowed():
    socket = FakeSocket(fail_emit=True)
    link = RelayLink('http://relay.test', client=socket)
    link.connect()
    link.send_ball(1, {'x': 1})
    assert socket.sent == []


def test_no_relay_configured():
    link = RelayLink(None)
    assert link.client is None
    assert link.connect() is False
    link.join(3)
    link.on('anything', lambda data: None)


def test_incoming_telemetry_is_filtered():
    socket = FakeSocket()
    link = RelayLink('http://relay.test', client=socket)

    for bad in ({'y': 'top'}, {'y': True}, {}, [1, 2], None):
        socket.fire('opponent-paddle', bad)
    assert link.opponent_y is None
    socket.fire('opponent-paddle', {'y': 120})
    assert link.opponent_y == 120.0

    socket.fire('ball-sync', {'x': 1, 'y': 2})
    socket.fire('ball-sync', 'fast')
    assert link.latest_ball is None
    ball = {'x': 1, 'y': 2, 'dx': 3, 'dy': 4, 'speed': 5}
    socket.fire('ball-sync', ball)
    assert link.latest_ball == ball

    # Joining a room starts from a clean slate
    link.join(9)
    assert link.opponent_y is None
    assert link.latest_ball is None


@pytest.fixture()
def active_match(flask_app, accounts):
    host = MatchClient(LocalLedgerGateway(flask_app, HOST), HOST, policy=FAST, sleep=lambda s: None)
    match_id = host.create_match(1, HOUR, 100).match['matchId']
    challenger = MatchClient(LocalLedgerGateway(flask_app, CHALLENGER), CHALLENGER, policy=FAST,
                             sleep=lambda s: None)
    challenger.join_match(match_id)
    return match_id


def test_challenger_adopts_the_hosts_ball(flask_app, active_match):
    relayed = {'x': 700, 'y': 50, 'dx': 3, 'dy': 0, 'speed': 3}
    socket = FakeSocket(replies={'join-game': [('ball-sync', relayed)]})
    relay = RelayLink('http://relay.test', client=socket)
    relay.connect()
    client = MatchClient(LocalLedgerGateway(flask_app, CHALLENGER), CHALLENGER, relay=relay,
                         policy=FAST, sleep=lambda s: None, rng=random.Random(3))
    seen = []

    def controller(side, simulation):
        seen.append(dict(simulation.ball))
        return miss(side, simulation)

    result = client.play(active_match, controller=controller)

    assert seen[0] == {'x': 700.0, 'y': 50.0, 'dx': 3.0, 'dy': 0.0, 'speed': 3.0}
    assert relay.latest_ball is None
    assert result.outcome is Outcome.SETTLED
    assert result.winner == HOST
    events = socket.events()
    assert events[0] == 'join-game'
    assert 'ball-update' not in events
    assert events.count('score-update') == 10
    assert 'paddle-move' in events


def test_host_follows_relayed_opponent_and_sends_ball(flask_app, active_match):
    socket = FakeSocket(replies={'join-game': [('opponent-paddle', {'y': 480})]})
    relay = RelayLink('http://relay.test', client=socket)
    relay.connect()
    client = MatchClient(LocalLedgerGateway(flask_app, HOST), HOST, relay=relay,
                         policy=FAST, sleep=lambda s: None, rng=random.Random(3))

    result = client.play(active_match, max_frames=5)

    assert result.outcome is Outcome.UNFINISHED
    assert client.loop.simulation.paddles['right'] == 480.0
    events = socket.events()
    assert events.count('ball-update') == 5
    assert events.count('paddle-move') == 5
