"""Initial freight core schema.

Revision ID: 20261019_001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'loads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('origin', sa.String(200), nullable=False),
        sa.Column('destination', sa.String(200), nullable=False),
        sa.Column('cargo_type', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('pickup_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_loads_owner_id', 'loads', ['owner_id'])

    op.create_table(
        'proposals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('load_id', sa.Integer(), nullable=False),
        sa.Column('carrier_id', sa.Integer(), nullable=False),
        sa.Column('vehicle', sa.String(120), nullable=False, server_default=''),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('ship_status', sa.String(20), nullable=False, server_default='pending'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['load_id'], ['loads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['carrier_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_proposals_load_id', 'proposals', ['load_id'])
    op.create_index('ix_proposals_carrier_id', 'proposals', ['carrier_id'])
    op.create_index('ix_proposals_status', 'proposals', ['status'])
    op.create_index('ix_proposals_load_carrier', 'proposals', ['load_id', 'carrier_id'])
    # At most one approved proposal per load
    op.create_index(
        'uq_proposals_load_approved',
        'proposals',
        ['load_id'],
        unique=True,
        postgresql_where=sa.text("status = 'approved'"),
        sqlite_where=sa.text("status = 'approved'"),
    )

    op.create_table(
        'commissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('rate', sa.Numeric(5, 4), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('invoice_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_commissions_proposal_id', 'commissions', ['proposal_id'], unique=True)
    op.create_index('ix_commissions_status', 'commissions', ['status'])

    op.create_table(
        'threads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('load_id', sa.Integer(), nullable=False),
        sa.Column('carrier_id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['load_id'], ['loads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['carrier_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('load_id', 'carrier_id', name='uq_threads_load_carrier'),
    )
    op.create_index('ix_threads_load_id', 'threads', ['load_id'])
    op.create_index('ix_threads_carrier_id', 'threads', ['carrier_id'])
    op.create_index('ix_threads_proposal_id', 'threads', ['proposal_id'])

    op.create_table(
        'thread_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('thread_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=True),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('reply_to_id', sa.Integer(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['thread_id'], ['threads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['reply_to_id'], ['thread_messages.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_thread_messages_thread_id', 'thread_messages', ['thread_id'])
    op.create_index('ix_thread_messages_sender_id', 'thread_messages', ['sender_id'])
    op.create_index('ix_thread_messages_thread_created', 'thread_messages', ['thread_id', 'created_at'])

    op.create_table(
        'thread_reads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('thread_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('last_read_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['thread_id'], ['threads.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('thread_id', 'user_id', name='uq_thread_reads_thread_user'),
    )
    op.create_index('ix_thread_reads_thread_id', 'thread_reads', ['thread_id'])
    op.create_index('ix_thread_reads_user_id', 'thread_reads', ['user_id'])


def downgrade() -> None:
    op.drop_table('thread_reads')
    op.drop_table('thread_messages')
    op.drop_table('threads')
    op.drop_table('commissions')
    op.drop_index('uq_proposals_load_approved', table_name='proposals')
    op.drop_table('proposals')
    op.drop_table('loads')
    op.drop_table('users')
