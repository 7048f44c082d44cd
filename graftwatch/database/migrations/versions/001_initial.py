"""
Initial migration - Create the documents table

Revision ID: 001_initial
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the generic document table."""

    op.create_table(
        'documents',
        sa.Column('collection', sa.String(64), primary_key=True),
        sa.Column('doc_id', sa.String(128), primary_key=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_index('idx_documents_collection', 'documents', ['collection'])


def downgrade() -> None:
    """Drop the document table."""
    op.drop_index('idx_documents_collection', table_name='documents')
    op.drop_table('documents')
