"""initial quiz schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _has_table(conn, table_name):
    return sa.inspect(conn).has_table(table_name)


def upgrade():
    conn = op.get_bind()
    # The app also calls create_all() on startup; skip tables that already exist.
    if not _has_table(conn, 'player'):
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(), nullable=False, index=True),
            sa.Column('age', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('name', 'age'),
        )
    if not _has_table(conn, 'category'):
        op.create_table(
            'category',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(), nullable=False, unique=True),
            sa.Column('description', sa.String(), nullable=True),
        )
    if not _has_table(conn, 'admin'):
        op.create_table(
            'admin',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
            sa.Column('password_hash', sa.String(), nullable=False),
            sa.Column('role', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
    if not _has_table(conn, 'gameroom'):
        op.create_table(
            'gameroom',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_code', sa.String(), nullable=False, unique=True, index=True),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('description', sa.String(), nullable=True),
            sa.Column('admin_id', sa.Integer(), sa.ForeignKey('admin.id'), nullable=True),
            sa.Column('filter_categories', sa.JSON(), nullable=True),
            sa.Column('filter_difficulties', sa.JSON(), nullable=True),
            sa.Column('max_players', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
    if not _has_table(conn, 'gamesession'):
        op.create_table(
            'gamesession',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False, index=True),
            sa.Column('room_id', sa.Integer(), sa.ForeignKey('gameroom.id'), nullable=True, index=True),
            sa.Column('current_difficulty', sa.Float(), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False),
            sa.Column('lives', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
        )
    if not _has_table(conn, 'questionbatch'):
        op.create_table(
            'questionbatch',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('category_id', sa.Integer(), sa.ForeignKey('category.id'), nullable=False),
            sa.Column('difficulty', sa.Integer(), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('generated', sa.Integer(), nullable=False),
            sa.Column('ai_provider', sa.String(), nullable=True),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
    if not _has_table(conn, 'question'):
        op.create_table(
            'question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('statement', sa.String(), nullable=False),
            sa.Column('difficulty', sa.Integer(), nullable=False, index=True),
            sa.Column('category_id', sa.Integer(), sa.ForeignKey('category.id'), nullable=False, index=True),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.Column('is_ai_generated', sa.Boolean(), nullable=False),
            sa.Column('admin_verified', sa.Boolean(), nullable=False),
            sa.Column('batch_id', sa.Integer(), sa.ForeignKey('questionbatch.id'), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
    if not _has_table(conn, 'questionoption'):
        op.create_table(
            'questionoption',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False, index=True),
            sa.Column('text', sa.String(), nullable=False),
            sa.Column('is_correct', sa.Boolean(), nullable=False),
            sa.Column('position', sa.Integer(), nullable=False),
        )
    if not _has_table(conn, 'questionexplanation'):
        op.create_table(
            'questionexplanation',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False, index=True),
            sa.Column('text', sa.String(), nullable=False),
            sa.Column('source_ref', sa.String(), nullable=True),
            sa.Column('explanation_type', sa.String(), nullable=False),
            sa.UniqueConstraint('question_id', 'explanation_type'),
        )
    if not _has_table(conn, 'playeranswer'):
        op.create_table(
            'playeranswer',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('session_id', sa.Integer(), sa.ForeignKey('gamesession.id'), nullable=False, index=True),
            sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False),
            sa.Column('selected_option_id', sa.Integer(), sa.ForeignKey('questionoption.id'), nullable=True),
            sa.Column('is_correct', sa.Boolean(), nullable=False),
            sa.Column('time_taken_seconds', sa.Float(), nullable=False),
            sa.Column('difficulty_at_answer', sa.Float(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('session_id', 'question_id'),
        )


def downgrade():
    for table in ('playeranswer', 'questionexplanation', 'questionoption', 'question', 'questionbatch',
                  'gamesession', 'gameroom', 'admin', 'category', 'player'):
        op.drop_table(table)
