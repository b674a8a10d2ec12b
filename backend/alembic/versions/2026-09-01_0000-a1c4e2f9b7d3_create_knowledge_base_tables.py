"""create_knowledge_base_tables

Revision ID: a1c4e2f9b7d3
Revises:
Create Date: 2026-09-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a1c4e2f9b7d3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the knowledge-base tables and the chunk table used for search.

    Creates the following tables:
    1. categories
    2. subcategories
    3. content_items
    4. document_chunks - Text chunks with embeddings

    Also creates:
    - HNSW index for vector similarity search (cosine distance)
    - B-tree indexes for foreign keys and lookups
    """

    # ================================
    # Enable pgvector extension if not already enabled
    # ================================
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'categories',
        sa.Column('id', sa.String(length=36), nullable=False, comment='UUID primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.Column('name', sa.String(length=255), nullable=False, comment='Display name'),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_categories')),
    )

    op.create_table(
        'subcategories',
        sa.Column('id', sa.String(length=36), nullable=False, comment='UUID primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.Column('category_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name=op.f('fk_subcategories_category_id_categories'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_subcategories')),
    )
    op.create_index(op.f('ix_subcategories_category_id'), 'subcategories', ['category_id'])

    op.create_table(
        'content_items',
        sa.Column('id', sa.String(length=36), nullable=False, comment='UUID primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.Column('subcategory_id', sa.String(length=36), nullable=False, comment='Foreign key to subcategories table'),
        sa.Column('title', sa.String(length=500), nullable=False, comment='Article title'),
        sa.Column('content', sa.Text(), nullable=False, server_default='', comment='Article body (markdown)'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='Inactive items are kept but not re-embedded'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_embedded_at', sa.DateTime(timezone=True), nullable=True, comment='When the current chunk generation was written (UTC)'),
        sa.ForeignKeyConstraint(['subcategory_id'], ['subcategories.id'], name=op.f('fk_content_items_subcategory_id_subcategories'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_content_items')),
    )
    op.create_index(op.f('ix_content_items_subcategory_id'), 'content_items', ['subcategory_id'])
    op.create_index(op.f('ix_content_items_is_active'), 'content_items', ['is_active'])

    # ================================
    # Create document_chunks table
    # ================================
    op.create_table(
        'document_chunks',
        sa.Column('id', sa.String(length=36), nullable=False, comment='UUID primary key'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.Column('content_item_id', sa.String(length=36), nullable=False, comment='Foreign key to content_items table'),
        sa.Column('generation', sa.String(length=32), nullable=False, comment='Ingestion run that wrote this row'),
        sa.Column('chunk_index', sa.Integer(), nullable=False, comment='Order of this chunk within the content item (0-indexed)'),
        sa.Column('chunk_text', sa.Text(), nullable=False, comment='The actual text content of this chunk'),
        sa.Column('chunk_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Parent item snapshot (title, subcategory_id)'),
        sa.ForeignKeyConstraint(['content_item_id'], ['content_items.id'], name=op.f('fk_document_chunks_content_item_id_content_items'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_document_chunks')),
        sa.UniqueConstraint('content_item_id', 'generation', 'chunk_index', name='uq_document_chunks_item_generation_index'),
        comment='Embedded chunks of content items for semantic search'
    )

    # 384 dimensions for sentence-transformers/all-MiniLM-L6-v2
    op.execute('ALTER TABLE document_chunks ADD COLUMN embedding vector(384) NOT NULL')

    op.create_index(op.f('ix_document_chunks_content_item_id'), 'document_chunks', ['content_item_id'])

    # HNSW index for cosine distance (<=>) ordering
    # m=16 (max connections per layer), ef_construction=64 (quality during build)
    op.execute("""
        CREATE INDEX ix_document_chunks_embedding_hnsw
        ON document_chunks
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)


def downgrade() -> None:
    """Drop all knowledge-base tables (the vector extension is left installed)."""
    op.execute('DROP INDEX IF EXISTS ix_document_chunks_embedding_hnsw')
    op.drop_index(op.f('ix_document_chunks_content_item_id'), table_name='document_chunks')
    op.drop_table('document_chunks')

    op.drop_index(op.f('ix_content_items_is_active'), table_name='content_items')
    op.drop_index(op.f('ix_content_items_subcategory_id'), table_name='content_items')
    op.drop_table('content_items')

    op.drop_index(op.f('ix_subcategories_category_id'), table_name='subcategories')
    op.drop_table('subcategories')

    op.drop_table('categories')
