"""Create yield ledger tables"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c1e2a9d4b10'
down_revision = None
branch_labels = None
depends_on = None

# SQLite keeps money as zero-padded text (models.FixedPoint)
MONEY = sa.Numeric(precision=36, scale=18).with_variant(sa.String(length=40), 'sqlite')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('identifier', sa.String(length=160), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'wallet_addresses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('network', sa.String(length=16), nullable=False),
        sa.Column('address', sa.String(length=128), nullable=False, unique=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_wallet_addresses_user_id', 'wallet_addresses', ['user_id'])

    for table, extra in (
        ('deposits', [
            sa.Column('network', sa.String(length=16), nullable=True),
            sa.Column('tx_reference', sa.String(length=128), nullable=True),
            sa.Column('proof_reference', sa.String(length=255), nullable=True),
            sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        ]),
        ('withdrawals', [
            sa.Column('destination', sa.String(length=255), nullable=False),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        ]),
        ('bank_cashouts', [
            sa.Column('bank_name', sa.String(length=120), nullable=False),
            sa.Column('account_number', sa.String(length=64), nullable=False),
            sa.Column('account_name', sa.String(length=120), nullable=False),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        ]),
    ):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('address', sa.String(length=128), nullable=False),
            sa.Column('symbol', sa.String(length=16), nullable=False),
            sa.Column('amount', MONEY, nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
            *extra,
            *_timestamps(),
        )
    op.create_index('idx_deposit_balance', 'deposits', ['user_id', 'address', 'symbol', 'status'])
    op.create_index('idx_withdrawal_balance', 'withdrawals', ['user_id', 'address', 'symbol', 'status'])
    op.create_index('idx_cashout_balance', 'bank_cashouts', ['user_id', 'address', 'symbol', 'status'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('address', sa.String(length=128), nullable=False),
        sa.Column('symbol', sa.String(length=16), nullable=False),
        sa.Column('principal', MONEY, nullable=False),
        sa.Column('days', sa.Integer(), nullable=False),
        sa.Column('daily_rate', sa.Numeric(precision=10, scale=6), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('last_credited', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'address', 'symbol', name='uq_subscription_user_address_symbol'),
    )
    op.create_index('idx_subscription_status_start', 'subscriptions', ['status', 'start_date'])

    op.create_table(
        'profit_ledger',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('address', sa.String(length=128), nullable=False),
        sa.Column('symbol', sa.String(length=16), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.UniqueConstraint('user_id', 'address', 'symbol', 'day', name='uq_profit_day'),
    )
    op.create_index('idx_profit_user_day', 'profit_ledger', ['user_id', 'day'])

    op.create_table(
        'referral_codes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )

    op.create_table(
        'referral_relations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('referrer_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('referee_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_index('ix_referral_relations_referrer_id', 'referral_relations', ['referrer_id'])

    op.create_table(
        'referral_rewards',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tier', sa.SmallInteger(), nullable=False),
        sa.Column('source_day', sa.Date(), nullable=False),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.UniqueConstraint('user_id', 'source_user_id', 'source_day', 'tier', name='uq_comm_day'),
        sa.CheckConstraint('tier IN (1, 2)', name='chk_reward_tier'),
    )
    op.create_index('ix_referral_rewards_user_id', 'referral_rewards', ['user_id'])
    op.create_index('idx_rewards_day_status', 'referral_rewards', ['source_day', 'status'])


def downgrade():
    op.drop_table('referral_rewards')
    op.drop_table('referral_relations')
    op.drop_table('referral_codes')
    op.drop_table('profit_ledger')
    op.drop_table('subscriptions')
    op.drop_table('bank_cashouts')
    op.drop_table('withdrawals')
    op.drop_table('deposits')
    op.drop_table('wallet_addresses')
    op.drop_table('users')
