"""Initial schema: user credits, credit ledger, bookings, audit

Revision ID: a3c41f7e2b10
Revises: 
Create Date: 2026-03-01 09:00:12.418305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a3c41f7e2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables for the credit ledger and resource bookings."""
    # Enable UUID and btree_gist extensions
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')

    # Create enums
    op.execute("CREATE TYPE credittype AS ENUM ('cancellation', 'refund', 'promotion', 'admin_adjustment', 'migration')")
    op.execute("CREATE TYPE transactiontype AS ENUM ('earned', 'used', 'expired', 'refunded', 'adjustment')")
    op.execute("CREATE TYPE resourcetype AS ENUM ('professional', 'room', 'chamber', 'station')")
    op.execute(
        "CREATE TYPE bookingstatus AS ENUM "
        "('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no_show')"
    )

    # 1. User credits table (no dependencies)
    op.create_table(
        'user_credits',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column(
            'credit_type',
            postgresql.ENUM('cancellation', 'refund', 'promotion', 'admin_adjustment', 'migration', name='credittype', create_type=False),
            nullable=False,
        ),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_used', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('used_in_appointment_id', sa.UUID(), nullable=True),
        sa.Column('source_appointment_id', sa.UUID(), nullable=True),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_user_credits_amount_non_negative'),
        sa.CheckConstraint('NOT is_used OR used_at IS NOT NULL', name='ck_user_credits_used_at'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_credits_created_at'), 'user_credits', ['created_at'])
    op.create_index(op.f('ix_user_credits_user_id'), 'user_credits', ['user_id'])
    op.create_index(op.f('ix_user_credits_source_appointment_id'), 'user_credits', ['source_appointment_id'])
    op.create_index('ix_user_credits_user_available', 'user_credits', ['user_id', 'is_used', 'expires_at'])

    # 2. Credit transactions table (depends on user_credits)
    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('credit_id', sa.UUID(), nullable=True),
        sa.Column(
            'transaction_type',
            postgresql.ENUM('earned', 'used', 'expired', 'refunded', 'adjustment', name='transactiontype', create_type=False),
            nullable=False,
        ),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('appointment_id', sa.UUID(), nullable=True),
        sa.Column('created_by', sa.UUID(), nullable=True),
        sa.CheckConstraint('balance_after = balance_before + amount', name='ck_credit_transactions_balance'),
        sa.ForeignKeyConstraint(['credit_id'], ['user_credits.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_credit_transactions_created_at'), 'credit_transactions', ['created_at'])
    op.create_index(op.f('ix_credit_transactions_user_id'), 'credit_transactions', ['user_id'])
    op.create_index(op.f('ix_credit_transactions_credit_id'), 'credit_transactions', ['credit_id'])

    # 3. Bookings table (no dependencies)
    op.create_table(
        'bookings',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('resource_id', sa.UUID(), nullable=False),
        sa.Column(
            'resource_type',
            postgresql.ENUM('professional', 'room', 'chamber', 'station', name='resourcetype', create_type=False),
            nullable=False,
            server_default='professional',
        ),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column(
            'status',
            postgresql.ENUM(
                'scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no_show',
                name='bookingstatus', create_type=False,
            ),
            nullable=False,
            server_default='scheduled',
        ),
        sa.Column('appointment_id', sa.UUID(), nullable=True),
        sa.Column('user_id', sa.UUID(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('start_time < end_time', name='ck_bookings_time_order'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_created_at'), 'bookings', ['created_at'])
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'])
    op.create_index(op.f('ix_bookings_appointment_id'), 'bookings', ['appointment_id'])
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'])
    op.create_index('ix_bookings_resource_date', 'bookings', ['resource_id', 'booking_date'])

    # Two active bookings of one resource may not overlap. Ranges are half-open,
    # so back-to-back sessions are allowed.
    op.execute(
        """
        ALTER TABLE bookings ADD CONSTRAINT ex_bookings_resource_overlap
        EXCLUDE USING gist (
            resource_id WITH =,
            tsrange(booking_date + start_time, booking_date + end_time, '[)') WITH &&
        )
        WHERE (status IN ('scheduled', 'confirmed', 'in_progress'))
        """
    )

    # 4. Audit logs table (no dependencies)
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.UUID(), server_default=sa.text('uuid_generate_v4()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.UUID(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=False),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'])
    op.create_index(op.f('ix_audit_logs_entity_type'), 'audit_logs', ['entity_type'])
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'])


def downgrade() -> None:
    """Drop all tables."""
    # Drop tables in reverse dependency order
    op.drop_table('audit_logs')
    op.drop_table('bookings')
    op.drop_table('credit_transactions')
    op.drop_table('user_credits')

    # Drop enums
    op.execute("DROP TYPE IF EXISTS bookingstatus")
    op.execute("DROP TYPE IF EXISTS resourcetype")
    op.execute("DROP TYPE IF EXISTS transactiontype")
    op.execute("DROP TYPE IF EXISTS credittype")
