"""mini-tournament prize pool tables

Revision ID: prizepool_001_initial
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = 'prizepool_001_initial'
down_revision = None
branch_labels = None
depends_on = None

# SQLAlchemy Enum은 멤버 이름을 저장함
tournament_status = sa.Enum(
    'DRAFT', 'PENDING_DEPOSIT', 'OPEN', 'IN_PROGRESS', 'AWAITING_RESULT',
    'COMPLETED', 'CANCELLED',
    name='tournamentstatus',
)
deposit_status = sa.Enum('PENDING', 'CONFIRMED', 'FAILED', 'REFUNDED', name='depositstatus')
distribution_status = sa.Enum('PENDING', 'CONFIRMED', 'FAILED', name='distributionstatus')
payout_key_type = sa.Enum('CPF', 'PHONE', 'EMAIL', 'RANDOM', name='payoutkeytype')
credit_tx_type = sa.Enum(
    'PURCHASE', 'ENTRY_FEE', 'REFUND', 'ADMIN_ADJUST', name='credittransactiontype'
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """미니 토너먼트, 에스크로 입금, 상금 분배, 크레딧 테이블 생성"""
    op.create_table(
        'mini_tournaments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organizer_id', sa.String(36), nullable=False, index=True),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('game', sa.String(100), nullable=True),
        sa.Column('format', sa.String(50), nullable=True),
        sa.Column('rules', sa.Text, nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', tournament_status, nullable=False, index=True),
        sa.Column('max_participants', sa.Integer, nullable=False),
        sa.Column('current_participants', sa.Integer, nullable=False, server_default='0'),
        sa.Column('entry_fee_credits', sa.Integer, nullable=False, server_default='0'),
        sa.Column('registration_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('prize_pool_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('prize_distribution', postgresql.JSONB, nullable=False),
        sa.Column('deposit_confirmed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('deposit_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deposit_id', sa.String(36), nullable=True),
        sa.Column('results_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('prizes_distributed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('distribution_started_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'current_participants >= 0 AND current_participants <= max_participants',
            name='ck_mini_tournament_capacity',
        ),
    )

    op.create_table(
        'mini_tournament_participants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tournament_id', sa.String(36), sa.ForeignKey('mini_tournaments.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('player_id', sa.String(36), nullable=False, index=True),
        sa.Column('registered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('placement', sa.Integer, nullable=True),
        sa.Column('prize_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('prize_paid', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('prize_paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('prize_transfer_id', sa.String(100), nullable=True),
        sa.UniqueConstraint('tournament_id', 'player_id', name='uq_participant_player'),
    )

    op.create_table(
        'prize_deposits',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tournament_id', sa.String(36), sa.ForeignKey('mini_tournaments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('organizer_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', deposit_status, nullable=False, index=True),
        sa.Column('gateway_reference', sa.String(100), nullable=False, unique=True, comment='게이트웨이 결제 ID'),
        sa.Column('displayable_code', sa.Text, nullable=True),
        sa.Column('raw_image', sa.Text, nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'prize_distributions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tournament_id', sa.String(36), sa.ForeignKey('mini_tournaments.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('participant_id', sa.String(36), sa.ForeignKey('mini_tournament_participants.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('player_id', sa.String(36), nullable=False, index=True),
        sa.Column('placement', sa.Integer, nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payout_destination', sa.String(140), nullable=False),
        sa.Column('payout_destination_type', payout_key_type, nullable=False),
        sa.Column('status', distribution_status, nullable=False, index=True),
        sa.Column('transfer_id', sa.String(100), nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tournament_id', 'participant_id', name='uq_distribution_participant'),
    )

    op.create_table(
        'user_payout_keys',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, unique=True, index=True),
        sa.Column('key', sa.String(140), nullable=False),
        sa.Column('key_type', payout_key_type, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'credit_accounts',
        sa.Column('user_id', sa.String(36), primary_key=True),
        sa.Column('balance', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('balance >= 0', name='ck_credit_balance_non_negative'),
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('tx_type', credit_tx_type, nullable=False, index=True),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('balance_after', sa.Integer, nullable=False),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('correlation_id', sa.String(64), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('integrity_hash', sa.String(64), nullable=False, comment='SHA-256 무결성 해시'),
        *_timestamps(),
    )
    op.create_index('ix_credit_tx_reference', 'credit_transactions', ['tx_type', 'reference_id'])


def downgrade() -> None:
    """테이블 삭제 (생성 역순)"""
    op.drop_index('ix_credit_tx_reference', table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_table('credit_accounts')
    op.drop_table('user_payout_keys')
    op.drop_table('prize_distributions')
    op.drop_table('prize_deposits')
    op.drop_table('mini_tournament_participants')
    op.drop_table('mini_tournaments')
    for enum in (credit_tx_type, payout_key_type, distribution_status, deposit_status, tournament_status):
        enum.drop(op.get_bind(), checkfirst=True)
