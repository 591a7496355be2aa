"""Live-session registry for the real-time relay.

The relay never sees wagers or results; it only knows which socket sessions
are watching which match and the last telemetry each room carried. All of it
is ephemeral and lost on restart.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

MAX_ROOM_SIZE = 2
BALL_FIELDS = ('x', 'y', 'dx', 'dy', 'speed')


def room_name(match_id) -> str:
    return f"game-{match_id}"


@dataclass
class LiveSession:
    match_id: int
    members: List[str] = field(default_factory=list)
    paddles: Dict[str, float] = field(default_factory=dict)
    ball: Optional[Dict[str, Any]] = None
    scores: Dict[str, int] = field(default_factory=lambda: {'left': 0, 'right': 0})

    def to_dict(self):
        return {
            'matchId': self.match_id,
            'players': len(self.members),
            'ball': self.ball,
            'scores': dict(self.scores),
        }


class RoomRegistry:
    """Rooms keyed by match id, at most two sessions each.

    Callers hold ``lock`` across a membership change and the broadcast it
    triggers, so a broadcast always reflects membership at that moment.
    """

    def __init__(self, max_room_size: int = MAX_ROOM_SIZE):
        self.max_room_size = max_room_size
        self.lock = threading.RLock()
        self._rooms: Dict[int, LiveSession] = {}
        self._sid_rooms: Dict[str, Set[int]] = {}

    def join(self, match_id: int, sid: str) -> Optional[int]:
        """Register ``sid`` in the room; returns its 1-based ordinal, or None when full."""
        with self.lock:
            session = self._rooms.get(match_id)
            if session is None:
                session = LiveSession(match_id=match_id)
                self._rooms[match_id] = session
            if sid in session.members:
                return session.members.index(sid) + 1
            if len(session.members) >= self.max_room_size:
                return None
            session.members.append(sid)
            self._sid_rooms.setdefault(sid, set()).add(match_id)
            return len(session.members)

    def leave(self, match_id: int, sid: str) -> bool:
        """Remove ``sid`` from one room; returns True when the room was destroyed."""
        with self.lock:
            session = self._rooms.get(match_id)
            rooms = self._sid_rooms.get(sid)
            if rooms is not None:
                rooms.discard(match_id)
                if not rooms:
                    self._sid_rooms.pop(sid, None)
            if session is None:
                return False
            if sid in session.members:
                session.members.remove(sid)
                session.paddles.pop(sid, None)
            if not session.members:
                del self._rooms[match_id]
                return True
            return False

    def disconnect(self, sid: str) -> List[int]:
        """Drop ``sid`` from every room it joined; returns the rooms it left."""
        with self.lock:
            match_ids = sorted(self._sid_rooms.get(sid, set()))
            for match_id in match_ids:
                self.leave(match_id, sid)
            self._sid_rooms.pop(sid, None)
            return match_ids

    def is_member(self, match_id: int, sid: str) -> bool:
        with self.lock:
            session = self._rooms.get(match_id)
            return bool(session and sid in session.members)

    def member_count(self, match_id: int) -> int:
        with self.lock:
            session = self._rooms.get(match_id)
            return len(session.members) if session else 0

    def get(self, match_id: int) -> Optional[LiveSession]:
        with self.lock:
            return self._rooms.get(match_id)

    def record_paddle(self, match_id: int, sid: str, y: float) -> None:
        with self.lock:
            session = self._rooms.get(match_id)
            if session is not None:
                session.paddles[sid] = y

    def record_ball(self, match_id: int, ball: Dict[str, Any]) -> None:
        with self.lock:
            session = self._rooms.get(match_id)
            if session is not None:
                session.ball = dict(ball)

    def record_scores(self, match_id: int, scores: Dict[str, int]) -> None:
        """Store a score pair the caller has already checked."""
        with self.lock:
            session = self._rooms.get(match_id)
            if session is not None:
                session.scores = {'left': scores['left'], 'right': scores['right']}

    def snapshot(self) -> List[Dict[str, Any]]:
        with self.lock:
            return [self._rooms[mid].to_dict() for mid in sorted(self._rooms)]
