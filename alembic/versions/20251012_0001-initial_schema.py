"""Initial schema: things, mechanics, thing_mechanics

Revision ID: 20251012_0001
Revises:
Create Date: 2025-10-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20251012_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create cache tables."""
    # Create things table
    op.create_table(
        'things',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('subtype', sa.String(), nullable=True),
        sa.Column('thumbnail', sa.String(), nullable=True),
        sa.Column('image', sa.String(), nullable=True),
        sa.Column('primary_name', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('yearpublished', sa.Integer(), nullable=True),
        sa.Column('minplayers', sa.Integer(), nullable=True),
        sa.Column('maxplayers', sa.Integer(), nullable=True),
        sa.Column('playingtime', sa.Integer(), nullable=True),
        sa.Column('minplaytime', sa.Integer(), nullable=True),
        sa.Column('maxplaytime', sa.Integer(), nullable=True),
        sa.Column('minage', sa.Integer(), nullable=True),
        sa.Column('usersrated', sa.Integer(), nullable=True),
        sa.Column('average', sa.Float(), nullable=True),
        sa.Column('bayesaverage', sa.Float(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('owned', sa.Integer(), nullable=True),
        sa.Column('averageweight', sa.Float(), nullable=True),
        sa.Column('mechanics_checksum', sa.String(), nullable=True),
        sa.Column('schema_version', sa.Integer(), nullable=True),
        sa.Column('last_cached', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_things_type', 'things', ['type'])
    op.create_index('ix_things_primary_name', 'things', ['primary_name'])
    op.create_index('ix_things_mechanics_checksum', 'things', ['mechanics_checksum'])
    op.create_index('ix_things_schema_version', 'things', ['schema_version'])
    op.create_index('ix_things_last_cached', 'things', ['last_cached'])
    op.create_index('ix_things_updated_at', 'things', ['updated_at'])

    # Create mechanics table
    op.create_table(
        'mechanics',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('slug')
    )

    # Create thing_mechanics association table
    op.create_table(
        'thing_mechanics',
        sa.Column('thing_id', sa.String(), nullable=False),
        sa.Column('mechanic_id', sa.String(), nullable=False),
        sa.Column('inserted_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['thing_id'], ['things.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['mechanic_id'], ['mechanics.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('thing_id', 'mechanic_id')
    )
    op.create_index('ix_thing_mechanics_thing_id', 'thing_mechanics', ['thing_id'])
    op.create_index('ix_thing_mechanics_mechanic_id', 'thing_mechanics', ['mechanic_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('ix_thing_mechanics_mechanic_id', 'thing_mechanics')
    op.drop_index('ix_thing_mechanics_thing_id', 'thing_mechanics')
    op.drop_table('thing_mechanics')
    op.drop_table('mechanics')
    op.drop_index('ix_things_updated_at', 'things')
    op.drop_index('ix_things_last_cached', 'things')
    op.drop_index('ix_things_schema_version', 'things')
    op.drop_index('ix_things_mechanics_checksum', 'things')
    op.drop_index('ix_things_primary_name', 'things')
    op.drop_index('ix_things_type', 'things')
    op.drop_table('things')
