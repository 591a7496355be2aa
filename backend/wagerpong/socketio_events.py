import math

from flask import current_app, request
from flask_socketio import join_room, leave_room, emit
from wagerpong.relay import BALL_FIELDS, RoomRegistry, room_name
from typing import Any, Optional


def _registry() -> RoomRegistry:
    return current_app.extensions['room_registry']


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _match_id(data: Any) -> Optional[int]:
    """Accept ``{"matchId": n}``, ``{"gameId": n}`` or a bare id."""
    raw = data
    if isinstance(data, dict):
        raw = data.get('matchId', data.get('gameId'))
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to relay'})


def handle_disconnect(reason=None):
    registry = _registry()
    sid = _get_sid()
    with registry.lock:
        for match_id in registry.disconnect(sid):
            remaining = registry.member_count(match_id)
            if remaining:
                emit('player-count', remaining, to=room_name(match_id))
    current_app.logger.debug(f"[relay-disconnect] sid={sid}")


def handle_join_game(data):
    match_id = _match_id(data)
    if match_id is None:
        emit('error', {'message': 'matchId is required'})
        return
    registry = _registry()
    sid = _get_sid()
    with registry.lock:
        ordinal = registry.join(match_id, sid)
        if ordinal is None:
            emit('error', {'message': f'Match {match_id} already has two players', 'matchId': match_id})
            return
        room = room_name(match_id)
        join_room(room)
        emit('game-joined', {'playerNumber': ordinal, 'matchId': match_id})
        emit('player-count', registry.member_count(match_id), to=room)
    current_app.logger.debug(f"[relay-join] match={match_id} sid={sid} ordinal={ordinal}")


def handle_leave_game(data):
    match_id = _match_id(data)
    if match_id is None:
        emit('error', {'message': 'matchId is required'})
        return
    registry = _registry()
    room = room_name(match_id)
    with registry.lock:
        registry.leave(match_id, _get_sid())
        leave_room(room)
        remaining = registry.member_count(match_id)
        if remaining:
            emit('player-count', remaining, to=room)
    emit('left', {'room': room})


def handle_game_created(data=None):
    # Hint only: listeners re-query the ledger for pending matches
    emit('game-created', data or {}, broadcast=True, include_self=False)


def handle_game_joined(data):
    data = data or {}
    emit('game-joined', data, broadcast=True, include_self=False)
    if data.get('host'):
        emit('player-joined-game', {
            'gameId': data.get('gameId', data.get('matchId')),
            'host': data.get('host'),
            'player': data.get('player', data.get('challenger')),
        }, broadcast=True, include_self=False)


def handle_game_cancelled(data):
    emit('game-cancelled', data or {}, broadcast=True, include_self=False)


def _member_room(data) -> Optional[int]:
    # Telemetry from sessions outside the room is dropped
    if not isinstance(data, dict):
        return None
    match_id = _match_id(data)
    if match_id is None or not _registry().is_member(match_id, _get_sid()):
        return None
    return match_id


def _number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _ball(data) -> Optional[dict]:
    ball = data.get('ball')
    if not isinstance(ball, dict) or not all(_number(ball.get(k)) for k in BALL_FIELDS):
        return None
    return {k: ball[k] for k in BALL_FIELDS}


def _scores(data) -> Optional[dict]:
    scores = data.get('scores')
    if not isinstance(scores, dict):
        return None
    values = [scores.get(side) for side in ('left', 'right')]
    if not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in values):
        return None
    return {'left': values[0], 'right': values[1]}


def handle_paddle_move(data):
    match_id = _member_room(data)
    if match_id is None or not _number(data.get('y')):
        return
    y = data['y']
    registry = _registry()
    with registry.lock:
        registry.record_paddle(match_id, _get_sid(), y)
        emit('opponent-paddle', {'y': y}, to=room_name(match_id), include_self=False)


def handle_ball_update(data):
    match_id = _member_room(data)
    ball = _ball(data) if match_id is not None else None
    if ball is None:
        return
    registry = _registry()
    with registry.lock:
        registry.record_ball(match_id, ball)
        emit('ball-sync', ball, to=room_name(match_id), include_self=False)


def handle_score_update(data):
    match_id = _member_room(data)
    scores = _scores(data) if match_id is not None else None
    if scores is None:
        return
    registry = _registry()
    with registry.lock:
        registry.record_scores(match_id, scores)
        emit('score-sync', scores, to=room_name(match_id))


_HANDLERS = (
    ('connect', handle_connect),
    ('disconnect', handle_disconnect),
    ('join-game', handle_join_game),
    ('leave-game', handle_leave_game),
    ('game-created', handle_game_created),
    ('game-joined', handle_game_joined),
    ('game-cancelled', handle_game_cancelled),
    ('paddle-move', handle_paddle_move),
    ('ball-update', handle_ball_update),
    ('score-update', handle_score_update),
)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register relay event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from wagerpong import socketio
    for event, handler in _HANDLERS:
        socketio.on_event(event, handler, namespace='/ws')

    if testing:
        for event, handler in _HANDLERS:
            socketio.on_event(event, handler, namespace='/')
