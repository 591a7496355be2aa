import enum
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

from .errors import LedgerRejected, MatchClientError, PollAborted
from .polling import PollPolicy, poll_until
from .relay_link import RelayLink
from .simulation import LEFT, RIGHT, PongSimulation, SimulationLoop

logger = logging.getLogger(__name__)

ZERO_ADDRESS = '0x' + '00' * 20
FRAME_SECONDS = 1 / 60

# (player side, simulation) -> paddle position, or None for the AI proxy
Controller = Callable[[str, PongSimulation], Optional[float]]


class Outcome(enum.Enum):
    CREATED = 'created'
    JOINED = 'joined'
    CANCELLED = 'cancelled'
    SETTLED = 'settled'
    UNFINISHED = 'unfinished'
    # Race losses: another call reached the ledger first
    ALREADY_SETTLED = 'already_settled'
    ALREADY_TAKEN = 'already_taken'
    ALREADY_STARTED = 'already_started'
    ALREADY_CANCELLED = 'already_cancelled'

    @property
    def benign_race(self) -> bool:
        return self in _RACE_OUTCOMES


_RACE_OUTCOMES = frozenset({
    Outcome.ALREADY_SETTLED, Outcome.ALREADY_TAKEN,
    Outcome.ALREADY_STARTED, Outcome.ALREADY_CANCELLED,
})

_RACE_LOSSES = {
    ('complete', 'MatchNotActive'): Outcome.ALREADY_SETTLED,
    ('join', 'MatchUnavailable'): Outcome.ALREADY_TAKEN,
    ('cancel', 'NotCancellable'): Outcome.ALREADY_STARTED,
    ('cancel_expired', 'NotCancellable'): Outcome.ALREADY_CANCELLED,
}


def classify(error: LedgerRejected, operation: str) -> Optional[Outcome]:
    """Map a ledger rejection to a benign race outcome, or None if the player must see it."""
    return _RACE_LOSSES.get((operation, error.code))


def is_ready(match: dict) -> bool:
    challenger = (match.get('challenger') or '').lower()
    return match.get('state') == 'active' and bool(challenger) and challenger != ZERO_ADDRESS


def _never_ready(match: dict) -> Optional[str]:
    if match.get('state') in ('cancelled', 'completed'):
        return f"match {match.get('matchId')} is already {match.get('state')}"
    return None


@dataclass
class Result:
    outcome: Outcome
    match: Optional[dict] = None
    winner: Optional[str] = None


class MatchClient:
    """One player's view of the match lifecycle.

    The ledger decides everything; the relay only speeds things up. Every
    ledger race loss is folded into a benign ``Outcome`` and everything else
    surfaces as ``MatchClientError``.
    """

    def __init__(self, gateway, address: str, relay: Optional[RelayLink] = None,
                 policy: Optional[PollPolicy] = None, sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        self.gateway = gateway
        self.address = address.lower()
        self.relay = relay or RelayLink(None)
        self.policy = policy or PollPolicy()
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.state = 'idle'
        self.loop: Optional[SimulationLoop] = None
        self._submitted: Dict[int, Result] = {}
        self.notifications: Set[int] = set()
        self.relay.on('player-joined-game', self._on_player_joined)

    # ---- lobby ----

    def pending_matches(self):
        return self.gateway.pending_matches()

    def create_match(self, difficulty: int, duration: int, value: int) -> Result:
        match = self._call('create', self.gateway.create, difficulty, duration, value)
        self.relay.announce_created()
        logger.info("created match %s wager=%s", match['matchId'], value)
        return Result(Outcome.CREATED, match)

    def join_match(self, match_id: int) -> Result:
        match = self._call('get_match', self.gateway.get_match, match_id)
        try:
            joined = self.gateway.join(match_id, match['wager'])
        except LedgerRejected as exc:
            outcome = self._race_or_raise(exc, 'join', match_id)
            return Result(outcome, match)
        self.relay.announce_joined(match_id, joined['host'], self.address)
        logger.info("joined match %s", match_id)
        return Result(Outcome.JOINED, joined)

    def cancel_match(self, match_id: int) -> Result:
        try:
            match = self.gateway.cancel(match_id)
        except LedgerRejected as exc:
            return Result(self._race_or_raise(exc, 'cancel', match_id))
        self.relay.announce_cancelled(match_id)
        return Result(Outcome.CANCELLED, match)

    def cancel_expired(self, match_id: int) -> Result:
        try:
            match = self.gateway.cancel_expired(match_id)
        except LedgerRejected as exc:
            return Result(self._race_or_raise(exc, 'cancel_expired', match_id))
        self.relay.announce_cancelled(match_id)
        return Result(Outcome.CANCELLED, match)

    # ---- readiness ----

    def await_ready(self, match_id: int) -> dict:
        """Poll the ledger until the match is active with a challenger present."""
        self._suspend('waiting')
        try:
            match = poll_until(
                lambda: self.gateway.get_match(match_id),
                is_ready,
                self.policy,
                sleep=self.sleep,
                abort=_never_ready,
                on_wait=lambda attempt, m: logger.info(
                    "match %s not ready (state=%s), attempt %d", match_id, m.get('state'), attempt + 1),
            )
        except PollAborted as exc:
            self.state = 'idle'
            raise MatchClientError(str(exc)) from exc
        except MatchClientError:
            self.state = 'error'
            raise
        if self.address not in (match['host'].lower(), match['challenger'].lower()):
            self.state = 'idle'
            raise MatchClientError(f"{self.address} is not a participant of match {match_id}")
        self.state = 'ready'
        return match

    # ---- play and settlement ----

    def play(self, match_id: int, controller: Optional[Controller] = None,
             max_frames: int = 500_000, frame_seconds: float = 0.0) -> Result:
        """Run the local simulation once the ledger shows the match ready, then settle."""
        match = self.await_ready(match_id)
        side = LEFT if match['host'].lower() == self.address else RIGHT
        remote = RIGHT if side == LEFT else LEFT
        simulation = PongSimulation(match['difficulty'], self.rng)
        self.loop = SimulationLoop(simulation)
        self.relay.join(match_id)
        self.loop.resume()
        self.state = 'playing'
        try:
            for _ in range(max_frames):
                if side == RIGHT and self.relay.latest_ball is not None:
                    # Host owns the ball; the challenger follows its snapshots
                    simulation.adopt_ball(self.relay.latest_ball)
                    self.relay.latest_ball = None
                targets = {
                    side: controller(side, simulation) if controller else None,
                    remote: self.relay.opponent_y,
                }
                scored = self.loop.tick(targets[LEFT], targets[RIGHT])
                self.relay.send_paddle(match_id, simulation.paddles[side])
                if side == LEFT:
                    self.relay.send_ball(match_id, dict(simulation.ball))
                if scored:
                    self.relay.send_scores(match_id, dict(simulation.scores))
                if simulation.finished:
                    break
                if frame_seconds:
                    self.sleep(frame_seconds)
        finally:
            self._suspend('settling' if simulation.finished else 'idle')

        if not simulation.finished:
            logger.warning("match %s stopped after %d frames without a winner", match_id, simulation.frames)
            return Result(Outcome.UNFINISHED, match)
        winner = match['host'] if simulation.winner == LEFT else match['challenger']
        return self.submit_result(match_id, winner)

    def submit_result(self, match_id: int, winner: str) -> Result:
        """Report the winner once. A second report from either side is a no-op."""
        if match_id in self._submitted:
            return self._submitted[match_id]
        try:
            match = self.gateway.complete(match_id, winner)
            result = Result(Outcome.SETTLED, match, winner)
        except LedgerRejected as exc:
            outcome = self._race_or_raise(exc, 'complete', match_id)
            result = Result(outcome, None, winner)
        self._submitted[match_id] = result
        self.state = 'done'
        return result

    # ---- internals ----

    def _suspend(self, state: str) -> None:
        if self.loop is not None:
            self.loop.suspend()
        self.state = state

    def _call(self, operation: str, fn, *args):
        try:
            return fn(*args)
        except LedgerRejected as exc:
            logger.error("%s rejected by ledger: %s", operation, exc)
            raise

    def _race_or_raise(self, exc: LedgerRejected, operation: str, match_id: int) -> Outcome:
        outcome = classify(exc, operation)
        if outcome is None:
            logger.error("%s on match %s rejected: %s", operation, match_id, exc)
            raise exc
        logger.info("%s on match %s lost a race (%s): %s", operation, match_id, exc.code, outcome.value)
        return outcome

    def _on_player_joined(self, data):
        if not isinstance(data, dict):
            return
        if (data.get('host') or '').lower() == self.address:
            # Someone matched our wager; the UI should pull the host back in
            self.notifications.add(data.get('gameId'))
