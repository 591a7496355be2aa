from conftest import CHALLENGER, HOST

NS = '/ws'


def names(received):
    return [pkt['name'] for pkt in received]


def find(received, name):
    return [pkt['args'] for pkt in received if pkt['name'] == name]


def test_socket_connect_and_join(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected(NS):
        sio_client.connect(namespace=NS)
    assert sio_client.is_connected(NS)
    assert 'connected' in names(sio_client.get_received(NS))

    sio_client.emit('join-game', {'matchId': 7}, namespace=NS)
    received = sio_client.get_received(NS)
    assert find(received, 'game-joined') == [[{'playerNumber': 1, 'matchId': 7}]]
    assert find(received, 'player-count') == [[1]]


def test_second_arrival_is_announced_and_third_rejected(flask_app, sio_factory):
    first, second, third = sio_factory(), sio_factory(), sio_factory()
    first.emit('join-game', 7, namespace=NS)
    first.get_received(NS)

    second.emit('join-game', {'gameId': 7}, namespace=NS)
    assert find(second.get_received(NS), 'game-joined')[0][0]['playerNumber'] == 2
    assert find(first.get_received(NS), 'player-count') == [[2]]

    third.emit('join-game', {'matchId': 7}, namespace=NS)
    received = third.get_received(NS)
    assert 'game-joined' not in names(received)
    assert find(received, 'error')
    assert flask_app.extensions['room_registry'].member_count(7) == 2


def test_join_requires_match_id(sio_client):
    sio_client.get_received(NS)
    sio_client.emit('join-game', {'nothing': True}, namespace=NS)
    assert find(sio_client.get_received(NS), 'error') == [[{'message': 'matchId is required'}]]


def test_movement_goes_to_opponent_and_scores_to_everyone(sio_factory):
    host, challenger = sio_factory(), sio_factory()
    for c in (host, challenger):
        c.emit('join-game', {'matchId': 3}, namespace=NS)
    host.get_received(NS)
    challenger.get_received(NS)

    host.emit('paddle-move', {'matchId': 3, 'y': 120}, namespace=NS)
    host.emit('ball-update', {'matchId': 3, 'ball': {'x': 1, 'y': 2, 'dx': 3, 'dy': 4, 'speed': 5}}, namespace=NS)
    assert host.get_received(NS) == []
    received = challenger.get_received(NS)
    assert find(received, 'opponent-paddle') == [[{'y': 120}]]
    assert find(received, 'ball-sync') == [[{'x': 1, 'y': 2, 'dx': 3, 'dy': 4, 'speed': 5}]]

    challenger.emit('score-update', {'matchId': 3, 'scores': {'left': 0, 'right': 1}}, namespace=NS)
    assert find(host.get_received(NS), 'score-sync') == [[{'left': 0, 'right': 1}]]
    assert find(challenger.get_received(NS), 'score-sync') == [[{'left': 0, 'right': 1}]]


def test_telemetry_from_outside_the_room_is_dropped(sio_factory):
    member, stranger = sio_factory(), sio_factory()
    member.emit('join-game', {'matchId': 5}, namespace=NS)
    member.get_received(NS)
    stranger.emit('paddle-move', {'matchId': 5, 'y': 10}, namespace=NS)
    stranger.emit('score-update', {'matchId': 5, 'scores': {'left': 9, 'right': 0}}, namespace=NS)
    assert member.get_received(NS) == []


def test_lobby_announcements_fan_out(sio_factory):
    host, other = sio_factory(), sio_factory()

    other.emit('game-created', namespace=NS)
    assert 'game-created' in names(host.get_received(NS))
    assert other.get_received(NS) == []

    other.emit('game-joined', {'gameId': 9, 'host': HOST, 'player': CHALLENGER}, namespace=NS)
    received = host.get_received(NS)
    assert find(received, 'player-joined-game') == [[{'gameId': 9, 'host': HOST, 'player': CHALLENGER}]]
    assert find(received, 'game-joined') == [[{'gameId': 9, 'host': HOST, 'player': CHALLENGER}]]

    host.emit('game-cancelled', {'gameId': 9}, namespace=NS)
    assert find(other.get_received(NS), 'game-cancelled') == [[{'gameId': 9}]]


def test_disconnect_cleans_up_rooms(flask_app, sio_factory):
    registry = flask_app.extensions['room_registry']
    first, second = sio_factory(), sio_factory()
    first.emit('join-game', {'matchId': 11}, namespace=NS)
    second.emit('join-game', {'matchId': 11}, namespace=NS)
    second.get_received(NS)

    first.disconnect(namespace=NS)
    assert registry.member_count(11) == 1
    assert find(second.get_received(NS), 'player-count') == [[1]]

    second.disconnect(namespace=NS)
    assert registry.get(11) is None
    assert registry.snapshot() == []


def test_rejoin_after_disconnect_gets_a_fresh_slot(sio_factory):
    first, second, late = sio_factory(), sio_factory(), sio_factory()
    first.emit('join-game', {'matchId': 2}, namespace=NS)
    second.emit('join-game', {'matchId': 2}, namespace=NS)
    first.disconnect(namespace=NS)

    late.emit('join-game', {'matchId': 2}, namespace=NS)
    assert find(late.get_received(NS), 'game-joined') == [[{'playerNumber': 2, 'matchId': 2}]]


def test_ledger_transitions_push_hint_to_room(client, auth, sio_factory):
    res = client.post('/api/matches', json={'difficulty': 5, 'duration': 3600, 'value': 100}, headers=auth(HOST))
    match_id = res.get_json()['matchId']
    watcher = sio_factory()
    watcher.emit('join-game', {'matchId': match_id}, namespace=NS)
    watcher.get_received(NS)

    client.post(f'/api/matches/{match_id}/join', json={'value': 100}, headers=auth(CHALLENGER))
    assert find(watcher.get_received(NS), 'match-updated') == [[{'matchId': match_id, 'state': 'active'}]]


def test_relay_rooms_snapshot(client, sio_factory):
    c = sio_factory()
    c.emit('join-game', {'matchId': 4}, namespace=NS)
    c.emit('score-update', {'matchId': 4, 'scores': {'left': 2, 'right': 1}}, namespace=NS)
    data = client.get('/api/relay/rooms').get_json()
    assert data['count'] == 1
    assert data['rooms'][0]['matchId'] == 4
    assert data['rooms'][0]['players'] == 1
    assert data['rooms'][0]['scores'] == {'left': 2, 'right': 1}


def test_malformed_telemetry_is_dropped(flask_app, sio_factory):
    host, challenger = sio_factory(), sio_factory()
    for c in (host, challenger):
        c.emit('join-game', {'matchId': 6}, namespace=NS)
    host.get_received(NS)
    challenger.get_received(NS)

    bad = [
        ('score-update', {'matchId': 6, 'scores': [1, 2]}),
        ('score-update', {'matchId': 6, 'scores': {'left': 'one', 'right': 0}}),
        ('score-update', {'matchId': 6, 'scores': {'left': True, 'right': 0}}),
        ('score-update', {'matchId': 6}),
        ('paddle-move', {'matchId': 6}),
        ('paddle-move', {'matchId': 6, 'y': 'top'}),
        ('ball-update', {'matchId': 6, 'ball': 'fast'}),
        ('ball-update', {'matchId': 6, 'ball': {'x': 1, 'y': 2}}),
        ('paddle-move', 'not-a-dict'),
    ]
    for event, payload in bad:
        host.emit(event, payload, namespace=NS)

    assert host.get_received(NS) == []
    assert challenger.get_received(NS) == []
    session = flask_app.extensions['room_registry'].get(6)
    assert session.scores == {'left': 0, 'right': 0}
    assert session.paddles == {}
    assert session.ball is None

    # The connection keeps working afterwards
    host.emit('paddle-move', {'matchId': 6, 'y': 42.5}, namespace=NS)
    assert find(challenger.get_received(NS), 'opponent-paddle') == [[{'y': 42.5}]]


def test_unknown_events_get_no_reply(sio_client):
    sio_client.get_received(NS)
    sio_client.emit('ping', {'t': 1}, namespace=NS)
    assert sio_client.get_received(NS) == []
