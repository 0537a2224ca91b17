"""create room, player, round, answer, vote and question tables

Revision ID: 5c2a9e71d0b4
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e71d0b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room',
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('host_id', sa.String(length=36), nullable=False),
        sa.Column('game_state', sa.String(length=16), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('total_rounds', sa.Integer(), nullable=False),
        sa.Column('used_questions', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('code'),
    )
    with op.batch_alter_table('room') as batch_op:
        batch_op.create_index(batch_op.f('ix_room_expires_at'), ['expires_at'], unique=False)

    op.create_table(
        'player',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('room_code', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('join_order', sa.Integer(), nullable=False),
        sa.Column('connection_ref', sa.String(length=64), nullable=True),
        sa.Column('is_connected', sa.Boolean(), nullable=False),
        sa.Column('has_answered', sa.Boolean(), nullable=False),
        sa.Column('has_voted', sa.Boolean(), nullable=False),
        sa.Column('is_ready', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['room_code'], ['room.code'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('player') as batch_op:
        batch_op.create_index(batch_op.f('ix_player_room_code'), ['room_code'], unique=False)

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_code', sa.String(length=16), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('question_template', sa.Text(), nullable=False),
        sa.Column('target_player_id', sa.String(length=36), nullable=False),
        sa.Column('target_player_name', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['room_code'], ['room.code'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_code', 'number', name='uq_round_room_number'),
    )
    with op.batch_alter_table('round') as batch_op:
        batch_op.create_index(batch_op.f('ix_round_room_code'), ['room_code'], unique=False)

    op.create_table(
        'answer',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('round_id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.String(length=36), nullable=False),
        sa.Column('player_name', sa.String(length=64), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['round_id'], ['round.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('round_id', 'player_id', name='uq_answer_round_player'),
    )
    with op.batch_alter_table('answer') as batch_op:
        batch_op.create_index(batch_op.f('ix_answer_round_id'), ['round_id'], unique=False)

    op.create_table(
        'vote',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('round_id', sa.Integer(), nullable=False),
        sa.Column('voter_id', sa.String(length=36), nullable=False),
        sa.Column('voted_for_player_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['round_id'], ['round.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('round_id', 'voter_id', name='uq_vote_round_voter'),
    )
    with op.batch_alter_table('vote') as batch_op:
        batch_op.create_index(batch_op.f('ix_vote_round_id'), ['round_id'], unique=False)

    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('template', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('usage_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template'),
    )
    with op.batch_alter_table('question') as batch_op:
        batch_op.create_index(batch_op.f('ix_question_is_active'), ['is_active'], unique=False)
        batch_op.create_index(batch_op.f('ix_question_usage_count'), ['usage_count'], unique=False)


def downgrade():
    with op.batch_alter_table('question') as batch_op:
        batch_op.drop_index(batch_op.f('ix_question_usage_count'))
        batch_op.drop_index(batch_op.f('ix_question_is_active'))
    op.drop_table('question')
    op.drop_table('vote')
    op.drop_table('answer')
    op.drop_table('round')
    op.drop_table('player')
    op.drop_table('room')
