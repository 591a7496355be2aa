"""Ledger rejections.

Every rejection carries a stable ``code`` (the name clients match on) and the
HTTP status the API answers with. Raising one inside a ledger operation rolls
back everything that operation touched.
"""


class LedgerError(Exception):
    code = 'LedgerError'
    status = 400

    def __init__(self, message=None, **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self):
        payload = {'error': self.code, 'message': self.message}
        payload.update(self.details)
        return payload


# Precondition violations
class InvalidWager(LedgerError):
    code = 'InvalidWager'


class InvalidDifficulty(LedgerError):
    code = 'InvalidDifficulty'


class InvalidDuration(LedgerError):
    code = 'InvalidDuration'


class InvalidAddress(LedgerError):
    code = 'InvalidAddress'


class InvalidAmount(LedgerError):
    code = 'InvalidAmount'


class WagerMismatch(LedgerError):
    code = 'WagerMismatch'


class InvalidWinner(LedgerError):
    code = 'InvalidWinner'


class MatchNotExpired(LedgerError):
    code = 'MatchNotExpired'


class InsufficientFunds(LedgerError):
    code = 'InsufficientFunds'
    status = 402


class Unauthorized(LedgerError):
    code = 'Unauthorized'
    status = 403


class SelfJoin(LedgerError):
    code = 'SelfJoin'
    status = 403


class MatchNotFound(LedgerError):
    code = 'MatchNotFound'
    status = 404


class PlayerNotFound(LedgerError):
    code = 'PlayerNotFound'
    status = 404


class AccountNotFound(LedgerError):
    code = 'AccountNotFound'
    status = 404


class AccountExists(LedgerError):
    code = 'AccountExists'
    status = 409


# State guard losses: the match moved on before this call landed
class MatchUnavailable(LedgerError):
    code = 'MatchUnavailable'
    status = 409


class NotCancellable(LedgerError):
    code = 'NotCancellable'
    status = 409


class MatchNotActive(LedgerError):
    code = 'MatchNotActive'
    status = 409


class MatchExpired(LedgerError):
    code = 'MatchExpired'
    status = 410


class TransferFailed(LedgerError):
    code = 'TransferFailed'
    status = 502


class FaucetDisabled(LedgerError):
    code = 'FaucetDisabled'
    status = 403


class LedgerBusy(LedgerError):
    """A balance kept changing under a read-modify-write; safe to retry."""
    code = 'LedgerBusy'
    status = 503
