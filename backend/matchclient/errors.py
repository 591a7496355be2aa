class MatchClientError(Exception):
    """A failure the player should see (misconfiguration, rejected call, exhausted retries)."""


class LedgerUnavailable(MatchClientError):
    """The ledger could not be reached. Treated as transient while polling."""


class LedgerRejected(MatchClientError):
    """The ledger refused a call. ``code`` is the ledger's error name."""

    def __init__(self, code, message=None, status=None, payload=None):
        super().__init__(f'{code}: {message}' if message else code)
        self.code = code
        self.message = message or code
        self.status = status
        self.payload = payload or {}


class ReadinessTimeout(MatchClientError):
    def __init__(self, attempts, last_value=None):
        super().__init__(f'Match was not ready after {attempts} attempts')
        self.attempts = attempts
        self.last_value = last_value


class PollAborted(MatchClientError):
    """Polling saw a value from which readiness can never be reached."""

    def __init__(self, value, reason):
        super().__init__(reason)
        self.value = value
