"""Escrow ledger: match state machine, wager custody and payouts.

HTTP routes and CLI commands call into ``EscrowLedger``; nothing else
mutates matches, balances or player records.
"""

from .errors import LedgerError
from .escrow import EscrowLedger, get_ledger, normalize_address
from .fees import split_pot

__all__ = ['EscrowLedger', 'LedgerError', 'get_ledger', 'normalize_address', 'split_pot']
