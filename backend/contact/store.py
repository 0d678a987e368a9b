"""Persistence collaborator for rooms and games.

Each function performs one committed unit of work and returns the record as
it is after the mutation. Missing rooms, games or rounds raise
``NotFoundError``; storage failures are rolled back and surface as
``PersistenceError`` so callers never observe half-applied writes.
"""

import json
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from contact import db
from contact.errors import ConflictError, NotFoundError, PersistenceError
from contact.models import (
    Contact,
    Game,
    GameLogEntry,
    Player,
    Room,
    Round,
    WordmasterGuess,
    utcnow,
)
from contact.states import GameStatus, Role, RoomStatus


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError('That change conflicts with the current state') from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError() from exc


def refresh() -> None:
    """Drop cached rows so the next read comes from storage."""
    db.session.expire_all()


# ---- Rooms ----

def create_room(admin_id: str, admin_nickname: str, round_time_minutes: int = 2,
                wordmaster_guess_limit: int = 3) -> Room:
    room = Room(
        admin_id=admin_id,
        round_time_minutes=round_time_minutes,
        wordmaster_guess_limit=wordmaster_guess_limit,
        status=RoomStatus.WAITING.value,
    )
    room.players.append(Player(player_id=admin_id, nickname=admin_nickname, is_ready=True))
    db.session.add(room)
    _commit()
    return room


def find_room_by_id(room_id: Optional[str]) -> Optional[Room]:
    if not room_id:
        return None
    return Room.query.filter_by(room_code=room_id.upper()).first()


def list_rooms() -> list:
    return Room.query.order_by(Room.id).all()


def get_room(room_id: str) -> Room:
    room = find_room_by_id(room_id)
    if not room:
        raise NotFoundError('Room not found')
    return room


def add_player(room_id: str, player_id: str, nickname: str, max_players: int = 6) -> Room:
    room = get_room(room_id)
    existing = room.find_player(player_id)
    if existing:
        # Re-join after a refresh: mark ready, never duplicate
        existing.is_ready = True
        _commit()
        return room
    if room.status != RoomStatus.WAITING.value:
        raise ConflictError('This room is not accepting new players')
    if len(room.players) >= max_players:
        raise ConflictError('Room is full')
    room.players.append(Player(player_id=player_id, nickname=nickname, is_ready=True))
    _commit()
    return room


def remove_player(room_id: str, player_id: str) -> Optional[Room]:
    """Remove a player; returns None when the room was destroyed."""
    room = get_room(room_id)
    player = room.find_player(player_id)
    if not player:
        raise NotFoundError('Player is not in this room')
    remaining = [p for p in room.players if p.player_id != player_id]
    if not remaining:
        db.session.delete(room)
        _commit()
        return None
    room.players.remove(player)
    if room.admin_id == player_id:
        room.admin_id = remaining[0].player_id
    _commit()
    return room


def set_player_ready(room_id: str, player_id: str, is_ready: bool) -> Room:
    room = get_room(room_id)
    player = room.find_player(player_id)
    if not player:
        raise NotFoundError('Player is not in this room')
    player.is_ready = bool(is_ready)
    _commit()
    return room


def reset_players_ready(room_id: str) -> Room:
    room = get_room(room_id)
    for p in room.players:
        p.is_ready = False
    _commit()
    return room


def update_player_role(room_id: str, player_id: str, role: Role) -> Room:
    room = get_room(room_id)
    player = room.find_player(player_id)
    if not player:
        raise NotFoundError('Player is not in this room')
    if role == Role.WORDMASTER:
        holder = room.wordmaster
        if holder and holder.player_id != player_id:
            raise ConflictError('Another player is already the Wordmaster')
    player.role = role.value
    _commit()
    return room


def update_room_settings(room_id: str, round_time_minutes: Optional[int] = None,
                         wordmaster_guess_limit: Optional[int] = None) -> Room:
    room = get_room(room_id)
    if round_time_minutes is not None:
        room.round_time_minutes = round_time_minutes
    if wordmaster_guess_limit is not None:
        room.wordmaster_guess_limit = wordmaster_guess_limit
    _commit()
    return room


def update_room_status(room_id: str, status: RoomStatus) -> Room:
    room = get_room(room_id)
    room.status = status.value
    _commit()
    return room


def delete_room(room_id: str) -> bool:
    room = find_room_by_id(room_id)
    if not room:
        return False
    db.session.delete(room)
    _commit()
    return True


# ---- Games ----

def _log_entry(game: Game, event: str, message: str, details: Optional[dict] = None) -> GameLogEntry:
    entry = GameLogEntry(
        event=event,
        message=message,
        details_json=json.dumps(details) if details else None,
    )
    game.event_log.append(entry)
    return entry


def create_game(room_id: str, wordmaster_id: str, target_word: str, word_type: Optional[str],
                players: Iterable[Player]) -> Game:
    players = list(players)
    word = target_word.strip().upper()
    game = Game(
        room_code=room_id.upper(),
        wordmaster_id=wordmaster_id,
        target_word=word,
        word_type=word_type,
        revealed=word[0],
        current_round_number=1,
        clue_giver_cursor=0,
        status=GameStatus.ACTIVE.value,
    )
    game.guessers = [p.player_id for p in players if p.role == Role.GUESSER.value]
    game.scores = {p.player_id: 0 for p in players}
    game.per_letter_guess_attempts = {}
    _log_entry(game, 'game_started', 'Game started! The Wordmaster has chosen the secret word.')
    db.session.add(game)
    _commit()
    return game


def find_game_by_id(game_id: Optional[str]) -> Optional[Game]:
    if not game_id:
        return None
    return Game.query.filter_by(game_id=game_id).first()


def get_game(game_id: str) -> Game:
    game = find_game_by_id(game_id)
    if not game:
        raise NotFoundError('Game not found')
    return game


def find_active_game_by_room(room_id: str) -> Optional[Game]:
    return Game.query.filter_by(room_code=room_id.upper(), status=GameStatus.ACTIVE.value).first()


def list_games() -> list:
    return Game.query.order_by(Game.id).all()


def find_games_by_room(room_id: str) -> list:
    return Game.query.filter_by(room_code=room_id.upper()).order_by(Game.created_at.desc()).all()


def _get_round(game: Game, round_number: int) -> Round:
    rnd = game.find_round(round_number)
    if not rnd:
        raise NotFoundError(f'Round {round_number} not found')
    return rnd


def start_new_round(game_id: str, clue_giver_id: str, wordmaster_guess_limit: int) -> Game:
    game = get_game(game_id)
    if game.find_round(game.current_round_number):
        raise ConflictError(f'Round {game.current_round_number} already exists')
    game.rounds.append(Round(
        round_number=game.current_round_number,
        clue_giver_id=clue_giver_id,
        wordmaster_guesses_remaining=wordmaster_guess_limit,
        started_at=utcnow(),
    ))
    _commit()
    return game


def submit_clue(game_id: str, round_number: int, clue: str, clue_word: Optional[str] = None,
                is_second_clue: bool = False) -> Game:
    game = get_game(game_id)
    rnd = _get_round(game, round_number)
    if is_second_clue:
        rnd.second_clue = clue
        rnd.second_clue_submitted_at = utcnow()
    else:
        rnd.clue_word = clue_word.strip().upper()
        rnd.clue = clue
        rnd.clue_submitted_at = utcnow()
    _commit()
    return game


def add_contact(game_id: str, round_number: int, player_id: str, word: str) -> Game:
    """Record a contact; an existing entry for the player is replaced."""
    game = get_game(game_id)
    rnd = _get_round(game, round_number)
    contact = rnd.find_contact(player_id)
    if contact:
        contact.word = word.strip().upper()
        contact.submitted_at = utcnow()
    else:
        rnd.contacts.append(Contact(player_id=player_id, word=word.strip().upper(), submitted_at=utcnow()))
    _commit()
    return game


def update_contact(game_id: str, round_number: int, player_id: str, word: str) -> Game:
    return add_contact(game_id, round_number, player_id, word)


def remove_contact(game_id: str, round_number: int, player_id: str) -> Game:
    game = get_game(game_id)
    rnd = _get_round(game, round_number)
    contact = rnd.find_contact(player_id)
    if contact:
        rnd.contacts.remove(contact)
        _commit()
    return game


def add_wordmaster_guess(game_id: str, round_number: int, guess: str, correct: bool) -> Game:
    game = get_game(game_id)
    rnd = _get_round(game, round_number)
    rnd.wordmaster_guesses.append(WordmasterGuess(guess=guess.strip().upper(), correct=correct, timestamp=utcnow()))
    rnd.wordmaster_guesses_remaining = max(0, rnd.wordmaster_guesses_remaining - 1)
    _commit()
    return game


def end_round(game_id: str, round_number: int, contact_successful: bool,
              new_letter: Optional[str] = None, advance_cursor: bool = True) -> Game:
    """Close a round, advance the round counter and the clue-giver cursor.

    ``new_letter`` is appended to the revealed letters and clears every
    player's target-word attempt for the new letter.
    """
    game = get_game(game_id)
    rnd = _get_round(game, round_number)
    rnd.round_ended_at = utcnow()
    rnd.contact_successful = contact_successful
    game.current_round_number = round_number + 1
    guessers = game.guessers
    if guessers:
        step = 1 if advance_cursor else 0
        game.clue_giver_cursor = (game.clue_giver_cursor + step) % len(guessers)
    if new_letter:
        game.revealed = (game.revealed or '') + new_letter.upper()
        game.per_letter_guess_attempts = {}
    _commit()
    return game


def remove_guesser(game_id: str, player_id: str) -> Game:
    """Take a player out of the clue-giver rotation.

    The cursor keeps pointing at whoever would have been next.
    """
    game = get_game(game_id)
    guessers = game.guessers
    if player_id not in guessers:
        return game
    index = guessers.index(player_id)
    guessers.pop(index)
    cursor = game.clue_giver_cursor
    if index < cursor:
        cursor -= 1
    game.clue_giver_cursor = cursor % len(guessers) if guessers else 0
    game.guessers = guessers
    _commit()
    return game


def record_target_word_guess(game_id: str, player_id: str, guess: str, correct: bool,
                             points: int = 0) -> Game:
    """Record a secret-word attempt. A correct one completes the game and credits `points` in the same commit."""
    game = get_game(game_id)
    attempts = game.per_letter_guess_attempts
    attempts[player_id] = True
    game.per_letter_guess_attempts = attempts
    game.target_word_attempt_count = (game.target_word_attempt_count or 0) + 1
    if correct:
        scores = game.scores
        scores[player_id] = scores.get(player_id, 0) + points
        game.scores = scores
        game.status = GameStatus.COMPLETED.value
        game.winner_id = player_id
        game.completed_at = utcnow()
    _commit()
    return game


def update_score(game_id: str, player_id: str, points: int) -> Game:
    game = get_game(game_id)
    scores = game.scores
    scores[player_id] = scores.get(player_id, 0) + points
    game.scores = scores
    _commit()
    return game


def append_event_log_entry(game_id: str, event: str, message: str, details: Optional[dict] = None) -> Game:
    game = get_game(game_id)
    _log_entry(game, event, message, details)
    _commit()
    return game


def complete_game(game_id: str, winner_id: Optional[str] = None) -> Game:
    game = get_game(game_id)
    game.status = GameStatus.COMPLETED.value
    game.winner_id = winner_id
    game.completed_at = utcnow()
    _commit()
    return game


def delete_game(game_id: str) -> bool:
    game = find_game_by_id(game_id)
    if not game:
        return False
    db.session.delete(game)
    _commit()
    return True


def purge_completed_games(room_id: Optional[str] = None) -> int:
    query = Game.query.filter_by(status=GameStatus.COMPLETED.value)
    if room_id:
        query = query.filter_by(room_code=room_id.upper())
    games = query.all()
    for game in games:
        db.session.delete(game)
    _commit()
    return len(games)
