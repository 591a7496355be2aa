"""create account, match, player_record and ledger_event tables

Revision ID: 3a7c1e9b2f40
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# Exact uint256-range amounts; SQLite keeps them as decimal text
AMOUNT = sa.Numeric(precision=78, scale=0).with_variant(sa.String(length=78), 'sqlite')


# revision identifiers, used by Alembic.
revision = '3a7c1e9b2f40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'account' not in existing_tables:
        op.create_table(
            'account',
            sa.Column('address', sa.String(length=42), primary_key=True),
            sa.Column('balance', AMOUNT, nullable=False, server_default='0'),
            sa.Column('api_key_hash', sa.String(length=128), nullable=True),
            sa.Column('accepts_transfers', sa.Boolean(), nullable=False, server_default=sa.true()),
        )

    if 'match' not in existing_tables:
        op.create_table(
            'match',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('host', sa.String(length=42), nullable=False),
            sa.Column('challenger', sa.String(length=42), nullable=True),
            sa.Column('wager', AMOUNT, nullable=False),
            sa.Column('difficulty', sa.Integer(), nullable=False),
            sa.Column('state', sa.String(length=16), nullable=False, server_default='pending'),
            sa.Column('escrow', AMOUNT, nullable=False, server_default='0'),
            sa.Column('winner', sa.String(length=42), nullable=True),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
            sa.Column('expires_at', sa.BigInteger(), nullable=False),
            sa.Column('settled_at', sa.BigInteger(), nullable=True),
        )
        op.create_index('ix_match_host', 'match', ['host'])
        op.create_index('ix_match_challenger', 'match', ['challenger'])
        op.create_index('ix_match_state', 'match', ['state'])

    if 'player_record' not in existing_tables:
        op.create_table(
            'player_record',
            sa.Column('address', sa.String(length=42), primary_key=True),
            sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_winnings', AMOUNT, nullable=False, server_default='0'),
            sa.Column('matches_played', sa.Integer(), nullable=False, server_default='0'),
        )

    if 'ledger_event' not in existing_tables:
        op.create_table(
            'ledger_event',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id'), nullable=False),
            sa.Column('kind', sa.String(length=32), nullable=False),
            sa.Column('payload', sa.Text(), nullable=True),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
        )
        op.create_index('ix_ledger_event_match_id', 'ledger_event', ['match_id'])


def downgrade():
    op.drop_index('ix_ledger_event_match_id', table_name='ledger_event')
    op.drop_table('ledger_event')
    op.drop_table('player_record')
    op.drop_index('ix_match_state', table_name='match')
    op.drop_index('ix_match_challenger', table_name='match')
    op.drop_index('ix_match_host', table_name='match')
    op.drop_table('match')
    op.drop_table('account')
