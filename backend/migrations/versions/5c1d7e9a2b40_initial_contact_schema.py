"""initial contact schema: rooms, players, games, rounds, contacts, guesses, event log

Revision ID: 5c1d7e9a2b40
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c1d7e9a2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_code', sa.String(length=8), nullable=False),
        sa.Column('admin_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('round_time_minutes', sa.Integer(), nullable=False),
        sa.Column('wordmaster_guess_limit', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_room_room_code'), 'room', ['room_code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.String(length=64), nullable=False),
        sa.Column('room_pk', sa.Integer(), nullable=False),
        sa.Column('nickname', sa.String(length=64), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_ready', sa.Boolean(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['room_pk'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_pk', 'player_id', name='uq_player_room_player'),
    )
    op.create_index(op.f('ix_player_player_id'), 'player', ['player_id'], unique=False)

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_id', sa.String(length=32), nullable=False),
        sa.Column('room_code', sa.String(length=8), nullable=False),
        sa.Column('wordmaster_id', sa.String(length=64), nullable=False),
        sa.Column('target_word', sa.String(length=64), nullable=False),
        sa.Column('word_type', sa.String(length=32), nullable=True),
        sa.Column('revealed', sa.String(length=64), nullable=False),
        sa.Column('current_round_number', sa.Integer(), nullable=False),
        sa.Column('clue_giver_cursor', sa.Integer(), nullable=False),
        sa.Column('guessers_json', sa.Text(), nullable=False),
        sa.Column('scores_json', sa.Text(), nullable=False),
        sa.Column('attempts_json', sa.Text(), nullable=False),
        sa.Column('target_word_attempt_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('winner_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_game_game_id'), 'game', ['game_id'], unique=True)
    op.create_index(op.f('ix_game_room_code'), 'game', ['room_code'], unique=False)

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_pk', sa.Integer(), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('clue_giver_id', sa.String(length=64), nullable=False),
        sa.Column('clue_word', sa.String(length=64), nullable=True),
        sa.Column('clue', sa.Text(), nullable=True),
        sa.Column('clue_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('second_clue', sa.Text(), nullable=True),
        sa.Column('second_clue_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('wordmaster_guesses_remaining', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('round_ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('contact_successful', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['game_pk'], ['game.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('game_pk', 'round_number', name='uq_round_game_number'),
    )

    op.create_table(
        'contact',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('round_pk', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.String(length=64), nullable=False),
        sa.Column('word', sa.String(length=64), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['round_pk'], ['round.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('round_pk', 'player_id', name='uq_contact_round_player'),
    )

    op.create_table(
        'wordmaster_guess',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('round_pk', sa.Integer(), nullable=False),
        sa.Column('guess', sa.String(length=64), nullable=False),
        sa.Column('correct', sa.Boolean(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['round_pk'], ['round.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'game_log_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_pk', sa.Integer(), nullable=False),
        sa.Column('event', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details_json', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['game_pk'], ['game.id']),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('game_log_entry')
    op.drop_table('wordmaster_guess')
    op.drop_table('contact')
    op.drop_table('round')
    op.drop_index(op.f('ix_game_room_code'), table_name='game')
    op.drop_index(op.f('ix_game_game_id'), table_name='game')
    op.drop_table('game')
    op.drop_index(op.f('ix_player_player_id'), table_name='player')
    op.drop_table('player')
    op.drop_index(op.f('ix_room_room_code'), table_name='room')
    op.drop_table('room')
