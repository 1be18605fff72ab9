"""Initial schema: users, stores, ratings

Revision ID: 0001
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=60), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=400), nullable=False),
        sa.Column(
            'role',
            sa.Enum('admin', 'user', 'store_owner', name='user_roles', native_enum=False),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('idx_users_name', 'users', ['name'])
    op.create_index('idx_users_role', 'users', ['role'])

    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=60), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=400), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=True),
        sa.Column('overall_rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('rating_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stores_id', 'stores', ['id'])
    op.create_index('ix_stores_email', 'stores', ['email'], unique=True)
    op.create_index('idx_stores_name', 'stores', ['name'])
    op.create_index('idx_stores_owner', 'stores', ['owner_id'])

    op.create_table(
        'ratings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_ratings_range'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'store_id', name='uq_ratings_user_store'),
    )
    op.create_index('ix_ratings_id', 'ratings', ['id'])
    op.create_index('idx_ratings_user', 'ratings', ['user_id'])
    op.create_index('idx_ratings_store', 'ratings', ['store_id'])
    op.create_index('idx_ratings_store_updated', 'ratings', ['store_id', 'updated_at'])


def downgrade() -> None:
    op.drop_table('ratings')
    op.drop_table('stores')
    op.drop_table('users')
