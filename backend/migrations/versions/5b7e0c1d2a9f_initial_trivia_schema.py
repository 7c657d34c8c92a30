"""initial trivia schema: game_session, player, trivia_question, scored_answer

Revision ID: 5b7e0c1d2a9f
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7e0c1d2a9f'
down_revision = None
branch_labels = None
depends_on = None

session_status = sa.Enum('LOBBY', 'IN_PROGRESS', 'COMPLETE', name='session_status')
dashboard_view = sa.Enum('QR_CODE', 'LEADERBOARD', 'WINNER', 'INSTRUCTIONS', name='dashboard_view')


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'trivia_question' not in existing_tables:
        op.create_table(
            'trivia_question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('position', sa.Integer(), nullable=False),
            sa.Column('prompt', sa.Text(), nullable=False),
            sa.Column('answer', sa.String(length=255), nullable=False),
            sa.Column('alternate_answers', sa.Text(), nullable=True),
            sa.Column('artist_name', sa.String(length=255), nullable=True),
        )
        op.create_index('ix_trivia_question_position', 'trivia_question', ['position'], unique=True)

    op.create_table(
        'game_session',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('status', session_status, nullable=False),
        sa.Column('current_question_id', sa.Integer(), nullable=True),
        sa.Column('detected_artist', sa.String(length=255), nullable=True),
        sa.Column('dashboard_view', dashboard_view, nullable=True),
        sa.Column('revision', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'player',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('player_number', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('game_session_id', sa.String(length=32), sa.ForeignKey('game_session.id'), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('game_session_id', 'player_number', name='uq_player_session_number'),
    )
    op.create_index('ix_player_game_session_id', 'player', ['game_session_id'])

    op.create_table(
        'scored_answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_session_id', sa.String(length=32), sa.ForeignKey('game_session.id'), nullable=False),
        sa.Column('player_id', sa.String(length=64), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('question_id', sa.Integer(), nullable=False),
        sa.Column('answer', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('player_id', 'question_id', name='uq_scored_answer_player_question'),
    )
    op.create_index('ix_scored_answer_game_session_id', 'scored_answer', ['game_session_id'])


def downgrade():
    op.drop_index('ix_scored_answer_game_session_id', table_name='scored_answer')
    op.drop_table('scored_answer')
    op.drop_index('ix_player_game_session_id', table_name='player')
    op.drop_table('player')
    op.drop_table('game_session')
    session_status.drop(op.get_bind(), checkfirst=True)
    dashboard_view.drop(op.get_bind(), checkfirst=True)
    # trivia_question holds authored content and is left in place
