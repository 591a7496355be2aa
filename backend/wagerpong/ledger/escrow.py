import json
import re
import secrets
import time
from contextlib import contextmanager
from typing import Callable, List, Optional

from flask import current_app
from sqlalchemy import or_

from wagerpong import db, bcrypt
from wagerpong.models import (
    Account, Match, PlayerRecord, LedgerEvent,
    PENDING, ACTIVE, COMPLETED, CANCELLED, ZERO_ADDRESS, MAX_AMOUNT,
)
from .errors import (
    AccountExists, AccountNotFound, FaucetDisabled, InsufficientFunds,
    InvalidAddress, InvalidAmount, InvalidDifficulty, InvalidDuration,
    InvalidWager, InvalidWinner, LedgerBusy, MatchExpired, MatchNotActive, MatchNotExpired,
    MatchNotFound, MatchUnavailable, NotCancellable, PlayerNotFound, SelfJoin,
    TransferFailed, Unauthorized, WagerMismatch, LedgerError,
)
from .fees import split_pot

_ADDRESS_RE = re.compile(r'^0x[0-9a-fA-F]{40}$')

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 10
# Read-modify-write retries on a balance before giving up with LedgerBusy
SWAP_ATTEMPTS = 5


def normalize_address(address) -> str:
    if not isinstance(address, str) or not _ADDRESS_RE.match(address.strip()):
        raise InvalidAddress(f'Not a 20-byte hex address: {address!r}')
    return address.strip().lower()


def _as_amount(value, error_cls=InvalidAmount) -> int:
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(value, bool) or not isinstance(value, int):
        raise error_cls(f'Amount must be an integer, got {value!r}')
    if value > MAX_AMOUNT:
        raise error_cls(f'Amount exceeds {MAX_AMOUNT}')
    return value


class EscrowLedger:
    """Authority over matches, wagers and payouts.

    Each mutating operation runs in one database transaction. The state
    transition itself is a conditional UPDATE on the expected current state,
    so when two calls race on the same match only one passes the guard and
    the other is rejected. Any failure, including a refused transfer, rolls
    the whole operation back.
    """

    def __init__(self, fee_bps: int, fee_recipient: Optional[str], max_duration: int,
                 clock: Callable[[], float] = time.time):
        self.fee_bps = int(fee_bps)
        self.fee_recipient = normalize_address(fee_recipient) if fee_recipient else ZERO_ADDRESS
        self.max_duration = int(max_duration)
        self.clock = clock

    def now(self) -> int:
        return int(self.clock())

    # ---- accounts ----

    def open_account(self, address: str) -> str:
        """Create an account and return its API key. The key is only shown once."""
        address = normalize_address(address)
        api_key = secrets.token_urlsafe(32)
        with self._transaction():
            account = db.session.get(Account, address)
            if account is not None and account.api_key_hash:
                raise AccountExists(f'Account {address} already exists')
            if account is None:
                # Accounts that only ever received value exist without a key
                account = Account(address=address, balance=0)
                db.session.add(account)
            account.api_key_hash = bcrypt.generate_password_hash(api_key).decode('utf-8')
        current_app.logger.info(f"[account-open] address={address}")
        return api_key

    def verify_api_key(self, address: str, api_key: str) -> Optional[Account]:
        try:
            address = normalize_address(address)
        except InvalidAddress:
            return None
        account = db.session.get(Account, address)
        if not account or not account.api_key_hash or not api_key:
            return None
        if not bcrypt.check_password_hash(account.api_key_hash, api_key):
            return None
        return account

    def deposit(self, address: str, amount) -> int:
        if not current_app.config.get('FAUCET_ENABLED', False):
            raise FaucetDisabled('Deposits are disabled on this ledger')
        address = normalize_address(address)
        amount = _as_amount(amount)
        if amount <= 0:
            raise InvalidAmount('Deposit must be positive')
        with self._transaction():
            self._credit(address, amount)
        current_app.logger.info(f"[deposit] address={address} amount={amount}")
        return self.balance(address)

    def balance(self, address: str) -> int:
        account = db.session.get(Account, normalize_address(address))
        if account is None:
            raise AccountNotFound(f'No account {address}')
        return account.balance

    def set_accepts_transfers(self, address: str, accepts: bool) -> None:
        address = normalize_address(address)
        with self._transaction():
            account = self._get_or_create_account(address)
            account.accepts_transfers = bool(accepts)

    # ---- match lifecycle ----

    def create(self, caller: str, difficulty, duration, value) -> Match:
        caller = normalize_address(caller)
        value = _as_amount(value, InvalidWager)
        if value <= 0:
            raise InvalidWager('Wager must be greater than zero')
        if isinstance(difficulty, bool) or not isinstance(difficulty, int) \
                or not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY:
            raise InvalidDifficulty(f'Difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}')
        if isinstance(duration, bool) or not isinstance(duration, int) \
                or not 0 < duration <= self.max_duration:
            raise InvalidDuration(f'Duration must be in (0, {self.max_duration}] seconds')

        now = self.now()
        with self._transaction():
            self._debit(caller, value)
            match = Match(
                host=caller,
                wager=value,
                difficulty=difficulty,
                state=PENDING,
                escrow=value,
                created_at=now,
                expires_at=now + duration,
            )
            db.session.add(match)
            db.session.flush()
            self._ensure_record(caller)
            self._emit(match.id, 'MatchCreated', host=caller, wager=value,
                       difficulty=difficulty, expiresAt=match.expires_at)
        current_app.logger.info(
            f"[match-create] match={match.id} host={caller} wager={value} "
            f"difficulty={difficulty} expires_at={match.expires_at}"
        )
        return match

    def join(self, caller: str, match_id: int, value) -> Match:
        caller = normalize_address(caller)
        value = _as_amount(value, WagerMismatch)
        match = self.get_match(match_id)
        if match.state != PENDING:
            raise MatchUnavailable(f'Match {match_id} is {match.state}', state=match.state)
        if caller == match.host:
            raise SelfJoin('Host cannot join their own match')
        if value != match.wager:
            raise WagerMismatch(f'Wager must be exactly {match.wager}', wager=match.wager)
        if self.now() >= match.expires_at:
            raise MatchExpired(f'Match {match_id} expired at {match.expires_at}')

        with self._transaction():
            self._debit(caller, value)
            self._transition(match, PENDING, MatchUnavailable, {
                Match.challenger: caller,
                Match.state: ACTIVE,
                Match.escrow: match.wager + value,
            })
            self._ensure_record(caller)
            self._emit(match.id, 'MatchJoined', host=match.host, challenger=caller)
        current_app.logger.info(f"[match-join] match={match.id} host={match.host} challenger={caller}")
        return match

    def cancel(self, caller: str, match_id: int) -> Match:
        caller = normalize_address(caller)
        match = self.get_match(match_id)
        if match.state != PENDING:
            raise NotCancellable(f'Match {match_id} is {match.state}', state=match.state)
        if caller != match.host:
            raise Unauthorized('Only the host can cancel a pending match')
        self._refund_host(match, caller, reason='host')
        current_app.logger.info(f"[match-cancel] match={match.id} host={match.host} refund={match.wager}")
        return match

    def cancel_expired(self, caller: str, match_id: int) -> Match:
        """Refund the host of a pending match past its deadline. Anyone may call."""
        caller = normalize_address(caller)
        match = self.get_match(match_id)
        if match.state != PENDING:
            raise NotCancellable(f'Match {match_id} is {match.state}', state=match.state)
        if self.now() < match.expires_at:
            raise MatchNotExpired(f'Match {match_id} expires at {match.expires_at}')
        self._refund_host(match, caller, reason='expired')
        current_app.logger.info(
            f"[match-expire] match={match.id} host={match.host} refund={match.wager} caller={caller}"
        )
        return match

    def complete(self, caller: str, match_id: int, winner: str) -> Match:
        caller = normalize_address(caller)
        match = self.get_match(match_id)
        if match.state != ACTIVE:
            raise MatchNotActive(f'Match {match_id} is {match.state}', state=match.state)
        participants = match.participants()
        if caller not in participants:
            raise Unauthorized('Only a participant can report the result')
        try:
            winner = normalize_address(winner)
        except InvalidAddress:
            raise InvalidWinner(f'Winner {winner!r} is not a participant')
        if winner not in participants:
            raise InvalidWinner(f'Winner {winner} is not a participant')
        loser = match.challenger if winner == match.host else match.host

        payout, fee = split_pot(match.wager, self.fee_bps)
        with self._transaction():
            self._transition(match, ACTIVE, MatchNotActive, {
                Match.state: COMPLETED,
                Match.escrow: 0,
                Match.winner: winner,
                Match.settled_at: self.now(),
            })
            if fee:
                self._credit(self.fee_recipient, fee)
            self._credit(winner, payout)
            self._bump_record(winner, wins=1, total_winnings=payout, matches_played=1)
            self._bump_record(loser, matches_played=1)
            self._emit(match.id, 'MatchCompleted', winner=winner, loser=loser,
                       payout=payout, fee=fee, reportedBy=caller)
        current_app.logger.info(
            f"[match-complete] match={match.id} winner={winner} payout={payout} fee={fee} reported_by={caller}"
        )
        return match

    def sweep_expired(self, caller: str) -> List[int]:
        """Cancel every pending match past its deadline; returns the cancelled ids."""
        now = self.now()
        expired = [m.id for m in Match.query.filter(Match.state == PENDING, Match.expires_at <= now)
                   .order_by(Match.id).all()]
        cancelled = []
        for match_id in expired:
            try:
                self.cancel_expired(caller, match_id)
            except (NotCancellable, TransferFailed) as exc:
                current_app.logger.warning(f"[sweep-skip] match={match_id} reason={exc.code}")
                continue
            cancelled.append(match_id)
        return cancelled

    # ---- queries ----

    def get_match(self, match_id) -> Match:
        if isinstance(match_id, bool):
            raise MatchNotFound(f'No match {match_id!r}')
        try:
            match_id = int(match_id)
        except (TypeError, ValueError):
            raise MatchNotFound(f'No match {match_id!r}')
        match = db.session.get(Match, match_id)
        if match is None:
            raise MatchNotFound(f'No match {match_id}', exists=False)
        return match

    def pending_matches(self, include_expired: bool = True) -> List[Match]:
        query = Match.query.filter(Match.state == PENDING)
        if not include_expired:
            query = query.filter(Match.expires_at > self.now())
        return query.order_by(Match.id).all()

    def player_record(self, address: str) -> PlayerRecord:
        address = normalize_address(address)
        record = db.session.get(PlayerRecord, address)
        if record is None:
            raise PlayerNotFound(f'No record for {address}', exists=False)
        return record

    def match_history(self, address: str) -> List[int]:
        address = normalize_address(address)
        rows = (Match.query.with_entities(Match.id)
                .filter(or_(Match.host == address, Match.challenger == address))
                .order_by(Match.id).all())
        return [row[0] for row in rows]

    def funds_locked(self, match_id) -> int:
        return self.get_match(match_id).escrow

    def match_events(self, match_id) -> List[LedgerEvent]:
        match = self.get_match(match_id)
        return LedgerEvent.query.filter_by(match_id=match.id).order_by(LedgerEvent.id).all()

    # ---- internals ----

    @contextmanager
    def _transaction(self):
        try:
            yield
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def _transition(self, match: Match, expected_state: str, guard_error, values) -> None:
        updated = (Match.query
                   .filter(Match.id == match.id, Match.state == expected_state)
                   .update(values, synchronize_session=False))
        if updated != 1:
            raise guard_error(f'Match {match.id} is no longer {expected_state}')
        db.session.expire(match)

    def _refund_host(self, match: Match, caller: str, reason: str) -> None:
        with self._transaction():
            self._transition(match, PENDING, NotCancellable, {
                Match.state: CANCELLED,
                Match.escrow: 0,
                Match.settled_at: self.now(),
            })
            self._credit(match.host, match.wager)
            self._emit(match.id, 'MatchCancelled', host=match.host, refund=match.wager,
                       reason=reason, caller=caller)

    def _get_or_create_account(self, address: str) -> Account:
        account = db.session.get(Account, address)
        if account is None:
            account = Account(address=address, balance=0, accepts_transfers=True)
            db.session.add(account)
            db.session.flush()
        return account

    def _debit(self, address: str, amount: int) -> None:
        def take(balance):
            if balance < amount:
                raise InsufficientFunds(f'{address} cannot cover {amount}')
            return balance - amount

        if db.session.get(Account, address) is None:
            raise InsufficientFunds(f'{address} cannot cover {amount}')
        self._swap(Account, Account.address, address, Account.balance, take)

    def _credit(self, address: str, amount: int) -> None:
        account = self._get_or_create_account(address)
        if not account.accepts_transfers:
            raise TransferFailed(f'Transfer of {amount} to {address} was rejected')
        self._swap(Account, Account.address, address, Account.balance, lambda balance: balance + amount)

    def _swap(self, model, key_column, key, column, apply):
        """Read ``column``, compute ``apply(value)`` and write it back only if
        the row still holds the value that was read."""
        for _ in range(SWAP_ATTEMPTS):
            row = db.session.get(model, key, populate_existing=True, with_for_update=True)
            current = getattr(row, column.key)
            updated = (model.query
                       .filter(key_column == key, column == current)
                       .update({column: apply(current)}, synchronize_session=False))
            db.session.expire(row)
            if updated == 1:
                return
        raise LedgerBusy(f'{model.__tablename__} {key} kept changing, retry later')

    def _ensure_record(self, address: str) -> PlayerRecord:
        record = db.session.get(PlayerRecord, address)
        if record is None:
            record = PlayerRecord(address=address, wins=0, total_winnings=0, matches_played=0)
            db.session.add(record)
            db.session.flush()
        return record

    def _bump_record(self, address: str, wins: int = 0, matches_played: int = 0,
                     total_winnings: int = 0) -> None:
        record = self._ensure_record(address)
        PlayerRecord.query.filter(PlayerRecord.address == address).update({
            PlayerRecord.wins: PlayerRecord.wins + wins,
            PlayerRecord.matches_played: PlayerRecord.matches_played + matches_played,
        }, synchronize_session=False)
        db.session.expire(record)
        if total_winnings:
            self._swap(PlayerRecord, PlayerRecord.address, address, PlayerRecord.total_winnings,
                       lambda total: total + total_winnings)

    def _emit(self, match_id: int, kind: str, **payload) -> None:
        db.session.add(LedgerEvent(
            match_id=match_id,
            kind=kind,
            payload=json.dumps(payload),
            created_at=self.now(),
        ))


def get_ledger() -> EscrowLedger:
    return current_app.extensions['escrow_ledger']


__all__ = ['EscrowLedger', 'get_ledger', 'normalize_address', 'LedgerError']
