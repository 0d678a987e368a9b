from contact import db
from contact.states import GameStatus, Role, RoomStatus, RoundState
from datetime import datetime, timezone
import json
import secrets
import string
import random


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _load_json(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


def generate_room_code(length=6):
    """Generate a unique, short room code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Room.query.filter_by(room_code=code).first():
            return code


def generate_game_id():
    return f"game_{secrets.token_hex(8)}"


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(8), unique=True, nullable=False, index=True)
    admin_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=RoomStatus.WAITING.value)
    round_time_minutes = db.Column(db.Integer, nullable=False, default=2)
    wordmaster_guess_limit = db.Column(db.Integer, nullable=False, default=3)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    players = db.relationship(
        'Player', back_populates='room', order_by='Player.id', cascade='all, delete-orphan'
    )

    def __init__(self, **kwargs):
        super(Room, self).__init__(**kwargs)
        if not self.room_code:
            self.room_code = generate_room_code()

    @property
    def room_status(self):
        return RoomStatus(self.status)

    def find_player(self, player_id):
        return next((p for p in self.players if p.player_id == player_id), None)

    def players_with_role(self, role):
        return [p for p in self.players if p.role == role.value]

    @property
    def wordmaster(self):
        found = self.players_with_role(Role.WORDMASTER)
        return found[0] if found else None

    def to_dict(self):
        return {
            'room_id': self.room_code,
            'admin_id': self.admin_id,
            'status': self.status,
            'settings': {
                'round_time_minutes': self.round_time_minutes,
                'wordmaster_guess_limit': self.wordmaster_guess_limit,
            },
            'players': [p.to_dict() for p in self.players],
            'created_at': _iso(self.created_at),
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('room_pk', 'player_id', name='uq_player_room_player'),)
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.String(64), nullable=False, index=True)
    room_pk = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False)
    nickname = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=Role.NONE.value)
    is_ready = db.Column(db.Boolean, nullable=False, default=True)
    joined_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    room = db.relationship('Room', back_populates='players')

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'nickname': self.nickname,
            'role': self.role,
            'is_ready': self.is_ready,
            'joined_at': _iso(self.joined_at),
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    # Plain code rather than a foreign key: games outlive their room
    room_code = db.Column(db.String(8), nullable=False, index=True)
    wordmaster_id = db.Column(db.String(64), nullable=False)
    target_word = db.Column(db.String(64), nullable=False)
    word_type = db.Column(db.String(32), nullable=True)
    revealed = db.Column(db.String(64), nullable=False)
    current_round_number = db.Column(db.Integer, nullable=False, default=1)
    clue_giver_cursor = db.Column(db.Integer, nullable=False, default=0)
    guessers_json = db.Column(db.Text, nullable=False, default='[]')  # JSON list of player ids
    scores_json = db.Column(db.Text, nullable=False, default='{}')  # JSON player id -> points
    attempts_json = db.Column(db.Text, nullable=False, default='{}')  # JSON player id -> bool
    target_word_attempt_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=GameStatus.ACTIVE.value)
    winner_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rounds = db.relationship(
        'Round', back_populates='game', order_by='Round.round_number', cascade='all, delete-orphan'
    )
    event_log = db.relationship(
        'GameLogEntry', back_populates='game', order_by='GameLogEntry.id', cascade='all, delete-orphan'
    )

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.game_id:
            self.game_id = generate_game_id()

    @property
    def game_status(self):
        return GameStatus(self.status)

    @property
    def is_active(self):
        return self.status == GameStatus.ACTIVE.value

    @property
    def revealed_letters(self):
        return list(self.revealed or '')

    @property
    def guessers(self):
        return _load_json(self.guessers_json, [])

    @guessers.setter
    def guessers(self, value):
        self.guessers_json = json.dumps(list(value))

    @property
    def scores(self):
        return _load_json(self.scores_json, {})

    @scores.setter
    def scores(self, value):
        self.scores_json = json.dumps(value)

    @property
    def per_letter_guess_attempts(self):
        return _load_json(self.attempts_json, {})

    @per_letter_guess_attempts.setter
    def per_letter_guess_attempts(self, value):
        self.attempts_json = json.dumps(value)

    @property
    def current_round(self):
        return self.find_round(self.current_round_number)

    def find_round(self, round_number):
        return next((r for r in self.rounds if r.round_number == round_number), None)

    @property
    def has_any_clue(self):
        return any(r.clue_word for r in self.rounds)

    def to_dict(self):
        completed = not self.is_active
        return {
            'game_id': self.game_id,
            'room_id': self.room_code,
            'wordmaster_id': self.wordmaster_id,
            'target_word': self.target_word if completed else None,
            'target_word_length': len(self.target_word),
            'word_type': self.word_type,
            'revealed_letters': self.revealed_letters,
            'current_round_number': self.current_round_number,
            'clue_giver_cursor': self.clue_giver_cursor,
            'guessers': self.guessers,
            'rounds': [r.to_dict() for r in self.rounds],
            'scores': self.scores,
            'per_letter_guess_attempts': self.per_letter_guess_attempts,
            'event_log': [e.to_dict() for e in self.event_log],
            'status': self.status,
            'winner_id': self.winner_id,
            'created_at': _iso(self.created_at),
            'completed_at': _iso(self.completed_at),
        }


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (db.UniqueConstraint('game_pk', 'round_number', name='uq_round_game_number'),)
    id = db.Column(db.Integer, primary_key=True)
    game_pk = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    round_number = db.Column(db.Integer, nullable=False)
    clue_giver_id = db.Column(db.String(64), nullable=False)
    clue_word = db.Column(db.String(64), nullable=True)
    clue = db.Column(db.Text, nullable=True)
    clue_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    second_clue = db.Column(db.Text, nullable=True)
    second_clue_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    wordmaster_guesses_remaining = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    round_ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    contact_successful = db.Column(db.Boolean, nullable=False, default=False)
    game = db.relationship('Game', back_populates='rounds')
    contacts = db.relationship(
        'Contact', back_populates='round', order_by='Contact.id', cascade='all, delete-orphan'
    )
    wordmaster_guesses = db.relationship(
        'WordmasterGuess', back_populates='round', order_by='WordmasterGuess.id', cascade='all, delete-orphan'
    )

    @property
    def state(self):
        if self.round_ended_at is not None:
            return RoundState.ENDED
        if self.clue_word is None:
            return RoundState.OPEN_AWAITING_CLUE
        return RoundState.CLUE_SUBMITTED

    @property
    def is_open(self):
        return self.round_ended_at is None

    @property
    def wordmaster_blocked(self):
        return any(g.correct for g in self.wordmaster_guesses)

    def find_contact(self, player_id):
        return next((c for c in self.contacts if c.player_id == player_id), None)

    def to_dict(self):
        ended = not self.is_open or (self.game is not None and not self.game.is_active)
        return {
            'round_number': self.round_number,
            'state': self.state.value,
            'clue_giver_id': self.clue_giver_id,
            'clue_word': self.clue_word if ended else None,
            'clue': self.clue,
            'clue_submitted_at': _iso(self.clue_submitted_at),
            'second_clue': self.second_clue,
            'second_clue_submitted_at': _iso(self.second_clue_submitted_at),
            # Contact words stay hidden until the round is over
            'contacts': [c.to_dict(reveal_word=ended) for c in self.contacts],
            'wordmaster_guesses': [g.to_dict() for g in self.wordmaster_guesses],
            'wordmaster_guesses_remaining': self.wordmaster_guesses_remaining,
            'started_at': _iso(self.started_at),
            'round_ended_at': _iso(self.round_ended_at),
            'contact_successful': self.contact_successful,
        }


class Contact(db.Model):
    __tablename__ = 'contact'
    __table_args__ = (db.UniqueConstraint('round_pk', 'player_id', name='uq_contact_round_player'),)
    id = db.Column(db.Integer, primary_key=True)
    round_pk = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False)
    player_id = db.Column(db.String(64), nullable=False)
    word = db.Column(db.String(64), nullable=False)
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    round = db.relationship('Round', back_populates='contacts')

    def to_dict(self, reveal_word=True):
        return {
            'player_id': self.player_id,
            'word': self.word if reveal_word else None,
            'submitted_at': _iso(self.submitted_at),
        }


class WordmasterGuess(db.Model):
    __tablename__ = 'wordmaster_guess'
    id = db.Column(db.Integer, primary_key=True)
    round_pk = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False)
    guess = db.Column(db.String(64), nullable=False)
    correct = db.Column(db.Boolean, nullable=False, default=False)
    timestamp = db.Column(db.DateTime(timezone=True), default=utcnow)
    round = db.relationship('Round', back_populates='wordmaster_guesses')

    def to_dict(self):
        return {
            'guess': self.guess,
            'correct': self.correct,
            'timestamp': _iso(self.timestamp),
        }


class GameLogEntry(db.Model):
    __tablename__ = 'game_log_entry'
    id = db.Column(db.Integer, primary_key=True)
    game_pk = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    event = db.Column(db.String(64), nullable=False)
    message = db.Column(db.Text, nullable=False)
    details_json = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), default=utcnow)
    game = db.relationship('Game', back_populates='event_log')

    @property
    def details(self):
        return _load_json(self.details_json, {})

    def to_dict(self):
        return {
            'event': self.event,
            'message': self.message,
            'details': self.details,
            'timestamp': _iso(self.timestamp),
        }
