"""initial content schema

Revision ID: 20260101_01
Revises:
Create Date: 2026-01-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20260101_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=False, server_default=''),
        sa.Column('roles', sa.JSON(), nullable=True),
        sa.Column('totp_secret', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'assets',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('asset_type', sa.String(), nullable=False),
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('original_name', sa.String(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('format', sa.String(), nullable=False),
        sa.Column('duration', sa.Float(), nullable=True),
        sa.Column('alt_text', sa.String(length=200), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('subtitles', sa.JSON(), nullable=True),
        sa.Column('uploaded_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'asset_locations',
        sa.Column('asset_id', sa.UUID(), sa.ForeignKey('assets.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('location_key', sa.String(), primary_key=True),
        sa.Column('storyline_id', sa.UUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_asset_locations_storyline_id', 'asset_locations', ['storyline_id'])
    op.create_table(
        'collections',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_by', sa.UUID(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('preview_version_id', sa.UUID(), nullable=True),
        sa.Column('published_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_collections_name', 'collections', ['name'])
    op.create_index('ix_collections_preview_version_id', 'collections', ['preview_version_id'])
    op.create_table(
        'storylines',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('preview_version_id', sa.UUID(), nullable=True),
        sa.Column('bags', sa.JSON(), nullable=True),
        sa.Column('stories', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_storylines_title', 'storylines', ['title'])
    op.create_index('ix_storylines_preview_version_id', 'storylines', ['preview_version_id'])
    op.create_table(
        'storyline_collections',
        sa.Column('storyline_id', sa.UUID(), sa.ForeignKey('storylines.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('collection_id', sa.UUID(), sa.ForeignKey('collections.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'info',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('en', sa.Text(), nullable=True),
        sa.Column('nl', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'settings',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('key', sa.String(), nullable=False, unique=True),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('value_type', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.UUID(), primary_key=True),
        sa.Column('user_id', sa.UUID(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String(), nullable=True),
        sa.Column('target_id', sa.UUID(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('settings')
    op.drop_table('info')
    op.drop_table('storyline_collections')
    op.drop_index('ix_storylines_preview_version_id', table_name='storylines')
    op.drop_index('ix_storylines_title', table_name='storylines')
    op.drop_table('storylines')
    op.drop_index('ix_collections_preview_version_id', table_name='collections')
    op.drop_index('ix_collections_name', table_name='collections')
    op.drop_table('collections')
    op.drop_index('ix_asset_locations_storyline_id', table_name='asset_locations')
    op.drop_table('asset_locations')
    op.drop_table('assets')
    op.drop_table('users')
