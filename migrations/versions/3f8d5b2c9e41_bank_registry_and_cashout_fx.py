"""Bank registry and FX quote on bank cash-outs"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f8d5b2c9e41'
down_revision = '7c1e2a9d4b10'
branch_labels = None
depends_on = None

MONEY = sa.Numeric(precision=36, scale=18).with_variant(sa.String(length=40), 'sqlite')


def upgrade():
    op.create_table(
        'banks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('channel', sa.String(length=32), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.UniqueConstraint('code', name='uq_banks_code'),
    )

    with op.batch_alter_table('bank_cashouts', schema=None) as batch_op:
        batch_op.add_column(sa.Column('bank_code', sa.String(length=32), nullable=False, server_default=''))
        batch_op.add_column(sa.Column('currency', sa.String(length=8), nullable=False, server_default='PHP'))
        batch_op.add_column(sa.Column('fx_rate', MONEY, nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('fx_fee_pct', sa.Numeric(precision=10, scale=6), nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('payout_fee', MONEY, nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('gross_fiat', MONEY, nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('net_fiat', MONEY, nullable=False, server_default='0'))
        batch_op.add_column(sa.Column('reference', sa.String(length=255), nullable=True))


def downgrade():
    with op.batch_alter_table('bank_cashouts', schema=None) as batch_op:
        batch_op.drop_column('reference')
        batch_op.drop_column('net_fiat')
        batch_op.drop_column('gross_fiat')
        batch_op.drop_column('payout_fee')
        batch_op.drop_column('fx_fee_pct')
        batch_op.drop_column('fx_rate')
        batch_op.drop_column('currency')
        batch_op.drop_column('bank_code')

    op.drop_table('banks')
