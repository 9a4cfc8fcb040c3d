"""
Offline cache table

Revision ID: 0001_cache_entries
Revises: 
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_cache_entries'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'cache_entries',
        sa.Column('collection', sa.String(length=32), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('collection', 'key'),
    )
    op.create_index('ix_cache_entries_timestamp', 'cache_entries', ['timestamp'])


def downgrade() -> None:
    op.drop_index('ix_cache_entries_timestamp', table_name='cache_entries')
    op.drop_table('cache_entries')
