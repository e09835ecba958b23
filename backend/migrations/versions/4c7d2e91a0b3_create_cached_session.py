"""create cached_session table

Revision ID: 4c7d2e91a0b3
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7d2e91a0b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'cached_session' in insp.get_table_names():
        return
    op.create_table(
        'cached_session',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('difficulty_level', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=True),
        sa.Column('current_round', sa.Integer(), nullable=True),
        sa.Column('starting_capital', sa.Float(), nullable=True),
        sa.Column('current_capital', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.Float(), nullable=True),
    )
    with op.batch_alter_table('cached_session') as batch_op:
        batch_op.create_index('ix_cached_session_user_id', ['user_id'], unique=True)
        batch_op.create_index('ix_cached_session_session_id', ['session_id'], unique=False)


def downgrade():
    with op.batch_alter_table('cached_session') as batch_op:
        batch_op.drop_index('ix_cached_session_session_id')
        batch_op.drop_index('ix_cached_session_user_id')
    op.drop_table('cached_session')
