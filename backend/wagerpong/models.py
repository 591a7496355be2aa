from wagerpong import db
from flask_login import UserMixin
import json
from sqlalchemy.types import Numeric, String, TypeDecorator

ZERO_ADDRESS = '0x' + '00' * 20

PENDING = 'pending'
ACTIVE = 'active'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
MATCH_STATES = (PENDING, ACTIVE, COMPLETED, CANCELLED)

# uint256 range
MAX_AMOUNT = 2 ** 256 - 1


class Amount(TypeDecorator):
    """Exact non-negative integer amount, unbounded up to uint256.

    NUMERIC(78, 0) where the database has exact decimals. SQLite would round
    NUMERIC through float, so there the value is kept as decimal text and all
    arithmetic happens in Python.
    """
    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'sqlite':
            return dialect.type_descriptor(String(78))
        return dialect.type_descriptor(Numeric(78, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        return str(value) if dialect.name == 'sqlite' else value

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


class Account(UserMixin, db.Model):
    """Simulated chain account. Balances are integer smallest-unit amounts."""
    __tablename__ = 'account'
    address = db.Column(db.String(42), primary_key=True)
    balance = db.Column(Amount, nullable=False, default=0)
    api_key_hash = db.Column(db.String(128), nullable=True)
    # A receiver that rejects value makes transfers to it fail
    accepts_transfers = db.Column(db.Boolean, nullable=False, default=True)

    def get_id(self):
        return self.address

    def to_dict(self):
        return {
            'address': self.address,
            'balance': self.balance,
        }


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    host = db.Column(db.String(42), nullable=False, index=True)
    challenger = db.Column(db.String(42), nullable=True, index=True)
    wager = db.Column(Amount, nullable=False)
    difficulty = db.Column(db.Integer, nullable=False)
    state = db.Column(db.String(16), nullable=False, default=PENDING, index=True)
    escrow = db.Column(Amount, nullable=False, default=0)
    winner = db.Column(db.String(42), nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False)
    expires_at = db.Column(db.BigInteger, nullable=False)
    settled_at = db.Column(db.BigInteger, nullable=True)

    def participants(self):
        return {a for a in (self.host, self.challenger) if a}

    def to_dict(self):
        return {
            'exists': True,
            'matchId': self.id,
            'host': self.host,
            'challenger': self.challenger or ZERO_ADDRESS,
            'wager': self.wager,
            'difficulty': self.difficulty,
            'state': self.state,
            'escrow': self.escrow,
            'winner': self.winner,
            'createdAt': self.created_at,
            'expiresAt': self.expires_at,
            'settledAt': self.settled_at,
        }


class PlayerRecord(db.Model):
    __tablename__ = 'player_record'
    address = db.Column(db.String(42), primary_key=True)
    wins = db.Column(db.Integer, nullable=False, default=0)
    total_winnings = db.Column(Amount, nullable=False, default=0)
    matches_played = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'address': self.address,
            'wins': self.wins,
            'totalWinnings': self.total_winnings,
            'matchesPlayed': self.matches_played,
        }


class LedgerEvent(db.Model):
    """Append-only log of ledger transitions, for off-chain indexers."""
    __tablename__ = 'ledger_event'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.Text, nullable=True)  # JSON-encoded
    created_at = db.Column(db.BigInteger, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'matchId': self.match_id,
            'kind': self.kind,
            'payload': json.loads(self.payload) if self.payload else {},
            'createdAt': self.created_at,
        }
