import logging
from typing import Any, Callable, Dict, Optional

import socketio
from socketio import exceptions as sio_exceptions

logger = logging.getLogger(__name__)

BALL_FIELDS = ('x', 'y', 'dx', 'dy', 'speed')


class RelayLink:
    """Best-effort connection to the match relay.

    Every send is fire-and-forget: while disconnected (or when no relay URL
    is configured) messages are dropped and the client keeps working from
    ledger polling alone.
    """

    def __init__(self, url: Optional[str] = None, namespace: str = '/ws',
                 client: Optional[socketio.Client] = None):
        self.url = url
        self.namespace = namespace
        self.client = client if client is not None else (socketio.Client(reconnection=True) if url else None)
        self.opponent_y: Optional[float] = None
        self.latest_ball: Optional[Dict[str, Any]] = None
        if self.client is not None:
            self.client.on('opponent-paddle', self._on_opponent_paddle, namespace=namespace)
            self.client.on('ball-sync', self._on_ball_sync, namespace=namespace)

    @property
    def connected(self) -> bool:
        return bool(self.client is not None and self.client.connected)

    def connect(self) -> bool:
        if self.client is None or self.connected:
            return self.connected
        try:
            self.client.connect(self.url, namespaces=[self.namespace], transports=['websocket'])
        except sio_exceptions.ConnectionError as exc:
            logger.warning("relay unreachable at %s, continuing with ledger polling only: %s", self.url, exc)
            return False
        return True

    def disconnect(self) -> None:
        if self.connected:
            self.client.disconnect()

    def on(self, event: str, handler: Callable[..., None]) -> None:
        if self.client is not None:
            self.client.on(event, handler, namespace=self.namespace)

    def _send(self, event: str, data: Any = None) -> None:
        if not self.connected:
            logger.debug("relay offline, dropped %s", event)
            return
        try:
            self.client.emit(event, data, namespace=self.namespace)
        except sio_exceptions.SocketIOError as exc:
            logger.debug("relay send %s dropped: %s", event, exc)

    def join(self, match_id: int) -> None:
        self.opponent_y = None
        self.latest_ball = None
        self._send('join-game', {'matchId': match_id})

    def leave(self, match_id: int) -> None:
        self._send('leave-game', {'matchId': match_id})

    def announce_created(self) -> None:
        self._send('game-created', {})

    def announce_joined(self, match_id: int, host: str, challenger: str) -> None:
        self._send('game-joined', {'gameId': match_id, 'host': host, 'player': challenger})

    def announce_cancelled(self, match_id: int) -> None:
        self._send('game-cancelled', {'gameId': match_id})

    def send_paddle(self, match_id: int, y: float) -> None:
        self._send('paddle-move', {'matchId': match_id, 'y': y})

    def send_ball(self, match_id: int, ball: Dict[str, float]) -> None:
        self._send('ball-update', {'matchId': match_id, 'ball': ball})

    def send_scores(self, match_id: int, scores: Dict[str, int]) -> None:
        self._send('score-update', {'matchId': match_id, 'scores': scores})

    def _on_opponent_paddle(self, data):
        y = data.get('y') if isinstance(data, dict) else None
        if isinstance(y, (int, float)) and not isinstance(y, bool):
            self.opponent_y = float(y)

    def _on_ball_sync(self, data):
        # Only complete snapshots are worth adopting
        if isinstance(data, dict) and all(k in data for k in BALL_FIELDS):
            self.latest_ball = data
