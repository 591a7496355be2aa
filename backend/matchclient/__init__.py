"""Per-player match client.

Bridges the ledger (authoritative, polled) and the relay (fast, lossy): waits
for a match to become ready, runs the local simulation, and reports the
result exactly once.
"""

from .client import MatchClient, Outcome, Result, classify, is_ready
from .errors import (
    LedgerRejected, LedgerUnavailable, MatchClientError, PollAborted, ReadinessTimeout,
)
from .gateway import HttpLedgerGateway, LocalLedgerGateway
from .polling import PollPolicy, poll_until
from .relay_link import RelayLink
from .simulation import PongSimulation, SimulationLoop

__all__ = [
    'MatchClient', 'Outcome', 'Result', 'classify', 'is_ready',
    'LedgerRejected', 'LedgerUnavailable', 'MatchClientError', 'PollAborted', 'ReadinessTimeout',
    'HttpLedgerGateway', 'LocalLedgerGateway', 'PollPolicy', 'poll_until',
    'RelayLink', 'PongSimulation', 'SimulationLoop',
]
