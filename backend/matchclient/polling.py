"""Poll-with-backoff for ledger state the client cannot be pushed.

Ledger transitions reach a client late. Instead of ad hoc timers every wait
goes through ``poll_until`` with an explicit ``PollPolicy``, so the loop can
later be swapped for an event subscription without touching callers.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import LedgerRejected, LedgerUnavailable, PollAborted, ReadinessTimeout

logger = logging.getLogger(__name__)

# Codes that can be a propagation delay rather than a final answer
TRANSIENT_CODES = frozenset({'MatchNotFound'})


@dataclass(frozen=True)
class PollPolicy:
    interval: float = 2.0
    max_attempts: int = 10
    backoff: float = 1.5
    max_interval: float = 30.0

    def delay(self, attempt: int) -> float:
        """Sleep before attempt ``attempt + 1`` (attempts are 0-based)."""
        return min(self.interval * (self.backoff ** attempt), self.max_interval)

    @classmethod
    def from_config(cls, cfg: dict) -> 'PollPolicy':
        return cls(
            interval=float(cfg.get('interval', cls.interval)),
            max_attempts=int(cfg.get('maxAttempts', cls.max_attempts)),
            backoff=float(cfg.get('backoff', cls.backoff)),
        )


def poll_until(fetch: Callable[[], Any],
               ready: Callable[[Any], bool],
               policy: PollPolicy,
               sleep: Callable[[float], None] = time.sleep,
               abort: Optional[Callable[[Any], Optional[str]]] = None,
               on_wait: Optional[Callable[[int, Any], None]] = None) -> Any:
    """Call ``fetch`` until ``ready(value)`` holds, sleeping per ``policy``.

    Unreachable ledger and not-yet-visible matches count as failed attempts.
    ``abort(value)`` may return a reason to stop early, raising PollAborted.
    Raises ReadinessTimeout once ``policy.max_attempts`` are spent.
    """
    last = None
    for attempt in range(policy.max_attempts):
        try:
            last = fetch()
        except LedgerUnavailable as exc:
            logger.warning("poll attempt %d: ledger unavailable (%s)", attempt + 1, exc)
        except LedgerRejected as exc:
            if exc.code not in TRANSIENT_CODES:
                raise
            logger.info("poll attempt %d: %s", attempt + 1, exc.code)
        else:
            if ready(last):
                return last
            reason = abort(last) if abort else None
            if reason:
                raise PollAborted(last, reason)
            if on_wait:
                on_wait(attempt, last)
        if attempt + 1 < policy.max_attempts:
            sleep(policy.delay(attempt))
    raise ReadinessTimeout(policy.max_attempts, last)
