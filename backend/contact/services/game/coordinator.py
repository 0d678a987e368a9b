"""Session coordinator: the authoritative state machine of a Contact match.

All player actions, timer expiries and disconnects funnel through one
``SessionCoordinator`` per process. Every mutation of a room (and of its
active game) runs under that room's lock, so two mutations of the same game
never interleave; different rooms proceed independently. Persistence goes
through ``contact.store``; every resulting state change is broadcast to the
room's Socket.IO channel in the order the mutations complete.

Round lifecycle::

    OPEN_AWAITING_CLUE --submit clue--> CLUE_SUBMITTED --resolve--> ENDED

Resolution is triggered by the round timer, by a correct wordmaster block,
or (when ``RESOLVE_ON_WORDMASTER_EXHAUSTED`` is set) by the wordmaster
running out of guesses. It always re-reads the game before judging.
"""

import functools
import time
from typing import Optional

from flask import has_app_context
from flask_socketio import join_room as sio_join_room, leave_room as sio_leave_room

from contact import socketio, store
from contact.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from contact.states import ROOM_TRANSITIONS, ResolutionTrigger, Role, RoomStatus, RoundState

from .connections import (
    ConnectionContext,
    ConnectionRegistry,
    RoomLocks,
    issue_session_token,
    resolve_session_token,
)
from .scoring import (
    contact_success_points,
    first_to_guess_bonus,
    target_word_points,
    wordmaster_block_points,
)
from .timers import TimerRegistry
from .verification import (
    all_contacts_match,
    clue_word_must_start_with_revealed,
    is_valid_target_word,
    next_revealed_letter,
    strings_equal_case_insensitive,
)

NAMESPACE = '/ws'


def room_channel(room_id: str) -> str:
    return f"room:{room_id.upper()}"


def _int_or_none(value, field):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number')


class SessionCoordinator:
    def __init__(self):
        self.app = None
        self.round_timers = TimerRegistry('round')
        self.disconnect_timers = TimerRegistry('disconnect')
        self.connections = ConnectionRegistry()
        self.locks = RoomLocks()

    def init_app(self, app) -> None:
        self.app = app
        run_timers = not app.config.get('TESTING') or app.config.get('ENABLE_TIMERS_IN_TESTS')
        self.round_timers.configure(socketio, app.logger, enabled=bool(run_timers))
        self.disconnect_timers.configure(socketio, app.logger, enabled=bool(run_timers))
        self.connections.clear()
        app.extensions['contact_coordinator'] = self

    @property
    def logger(self):
        return self.app.logger

    def _config(self, key, default=None):
        return self.app.config.get(key, default)

    def _in_app_context(self, fn, *args):
        if has_app_context():
            return fn(*args)
        with self.app.app_context():
            return fn(*args)

    # ---- Broadcasting ----

    def _broadcast(self, event: str, payload: dict, room_id: str) -> None:
        socketio.emit(event, payload, to=room_channel(room_id), namespace=NAMESPACE)

    def _send_to(self, sid: str, event: str, payload: dict) -> None:
        socketio.emit(event, payload, to=sid, namespace=NAMESPACE)

    @staticmethod
    def _nickname(room, player_id: Optional[str]) -> str:
        player = room.find_player(player_id) if room is not None else None
        return player.nickname if player else (player_id or 'Someone')

    # ---- Connections ----

    def _attach(self, sid: str, ctx: ConnectionContext) -> bool:
        """Bind a connection; returns True when it cancelled a pending departure."""
        self.connections.bind(sid, ctx)
        sio_join_room(room_channel(ctx.room_id), sid=sid, namespace=NAMESPACE)
        return self.disconnect_timers.cancel(ctx.player_id)

    def _require_context(self, sid: str) -> ConnectionContext:
        ctx = self.connections.context(sid)
        if ctx is None:
            raise ValidationError('Join a room before playing')
        return ctx

    def session_token_for(self, ctx: ConnectionContext) -> str:
        return issue_session_token(self.app.config['SECRET_KEY'], ctx)

    def connect(self, sid: str, session_token: Optional[str]) -> Optional[ConnectionContext]:
        """Restore the identity carried by a session token, if it is still seated."""
        ctx = resolve_session_token(
            self.app.config['SECRET_KEY'], session_token, int(self._config('SESSION_TOKEN_MAX_AGE_SEC', 604800))
        )
        if ctx is None:
            return None
        room = store.find_room_by_id(ctx.room_id)
        if not room or not room.find_player(ctx.player_id):
            self.logger.info(f"[reconnect-stale] player={ctx.player_id} room={ctx.room_id} no longer seated")
            return None
        self._attach(sid, ctx)
        self.logger.info(f"[reconnect] player={ctx.player_id} room={ctx.room_id} sid={sid}")
        self._broadcast('player_reconnected', {'player_id': ctx.player_id, 'nickname': ctx.nickname}, ctx.room_id)
        return ctx

    def join_room(self, sid: str, room_id: Optional[str], player_id: Optional[str],
                  nickname: Optional[str] = None) -> dict:
        if not room_id or not player_id:
            raise ValidationError('room_id and player_id are required')
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            member = room.find_player(player_id)
            if member is None:
                nickname = (nickname or '').strip()
                if not nickname:
                    raise ValidationError('A nickname is required to join')
                room = store.add_player(room_id, player_id, nickname, int(self._config('MAX_PLAYERS', 6)))
                member = room.find_player(player_id)
            ctx = ConnectionContext(member.player_id, room.room_code, member.nickname)
            if self._attach(sid, ctx):
                self._broadcast('player_reconnected', {'player_id': ctx.player_id, 'nickname': ctx.nickname},
                                room.room_code)
            payload = room.to_dict()
            self._broadcast('room_updated', payload, room.room_code)
        return {'session_token': self.session_token_for(ctx), 'room': payload}

    def player_ready(self, sid: str, is_ready: bool = True) -> None:
        ctx = self._require_context(sid)
        with self.locks.for_room(ctx.room_id):
            room = store.set_player_ready(ctx.room_id, ctx.player_id, is_ready)
            self._broadcast('room_updated', room.to_dict(), room.room_code)

    def disconnect(self, sid: str) -> None:
        ctx, still_connected = self.connections.unbind(sid)
        if ctx is None or still_connected:
            return
        delay = float(self._config('DISCONNECT_GRACE_SEC', 5))
        self.logger.info(f"[disconnect-grace] player={ctx.player_id} room={ctx.room_id} grace={delay}s")
        self.disconnect_timers.schedule(ctx.player_id, delay, functools.partial(self._on_grace_expired, ctx))

    def _on_grace_expired(self, ctx: ConnectionContext) -> None:
        self._in_app_context(self.finalize_departure, ctx.room_id, ctx.player_id)

    def finalize_departure(self, room_id: str, player_id: str) -> None:
        """Apply a departure once the grace window ran out without a reconnect."""
        if self.connections.sid_for(player_id):
            return
        with self.locks.for_room(room_id):
            store.refresh()
            room = store.find_room_by_id(room_id)
            player = room.find_player(player_id) if room else None
            if player is None:
                return
            self.logger.info(f"[departure] player={player_id} room={room.room_code} status={room.status}")
            self._handle_departure(room, player)

    # ---- Room lifecycle ----

    def _require_admin(self, room, requester_id: Optional[str]) -> None:
        if not requester_id or room.admin_id != requester_id:
            raise ForbiddenError('Only the room admin can do that')

    def create_room(self, player_id: str, nickname: str):
        if not player_id or not (nickname or '').strip():
            raise ValidationError('player_id and nickname are required')
        room = store.create_room(
            player_id,
            nickname.strip(),
            round_time_minutes=int(self._config('DEFAULT_ROUND_TIME_MIN', 2)),
            wordmaster_guess_limit=int(self._config('DEFAULT_WORDMASTER_GUESSES', 3)),
        )
        self.logger.info(f"[room-created] room={room.room_code} admin={player_id}")
        return room

    def add_player(self, room_id: str, player_id: str, nickname: str):
        if not player_id or not (nickname or '').strip():
            raise ValidationError('player_id and nickname are required')
        with self.locks.for_room(room_id):
            room = store.add_player(room_id, player_id, nickname.strip(), int(self._config('MAX_PLAYERS', 6)))
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            return room

    def remove_player(self, room_id: str, player_id: str, requester_id: Optional[str] = None):
        """Leave a room, or kick someone from it when the requester is the admin."""
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            player = room.find_player(player_id)
            if player is None:
                raise NotFoundError('Player is not in this room')
            kicked = bool(requester_id) and requester_id != player_id
            if kicked:
                self._require_admin(room, requester_id)
            self.disconnect_timers.cancel(player_id)
            sid = self.connections.forget_player(player_id)
            if sid is not None:
                if kicked:
                    self._send_to(sid, 'player_kicked', {'room_id': room.room_code, 'player_id': player_id})
                sio_leave_room(room_channel(room.room_code), sid=sid, namespace=NAMESPACE)
            return self._handle_departure(room, player)

    def update_player_role(self, room_id: str, player_id: str, role, requester_id: Optional[str] = None):
        try:
            role = Role(role or Role.NONE.value)
        except ValueError:
            raise ValidationError('Invalid role. Must be wordmaster, guesser, or none')
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            if requester_id and requester_id != player_id:
                self._require_admin(room, requester_id)
            if room.room_status is not RoomStatus.WAITING:
                raise ConflictError('Roles can only change in the lobby')
            room = store.update_player_role(room_id, player_id, role)
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            return room

    def update_room_settings(self, room_id: str, requester_id: Optional[str], round_time_minutes=None,
                             wordmaster_guess_limit=None):
        round_time_minutes = _int_or_none(round_time_minutes, 'round_time_minutes')
        wordmaster_guess_limit = _int_or_none(wordmaster_guess_limit, 'wordmaster_guess_limit')
        for name, value in (('round_time_minutes', round_time_minutes),
                            ('wordmaster_guess_limit', wordmaster_guess_limit)):
            if value is not None and not 1 <= value <= 10:
                raise ValidationError(f'{name} must be between 1 and 10')
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            self._require_admin(room, requester_id)
            room = store.update_room_settings(room_id, round_time_minutes, wordmaster_guess_limit)
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            return room

    def force_room_status(self, room_id: str, requester_id: Optional[str], status):
        try:
            status = RoomStatus(status)
        except ValueError:
            raise ValidationError('Invalid status')
        if status is RoomStatus.STARTING:
            return self.request_start(room_id, requester_id)
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            self._require_admin(room, requester_id)
            current = room.room_status
            if status is current:
                return room
            if status is RoomStatus.IN_GAME or status not in ROOM_TRANSITIONS[current]:
                raise ConflictError(f'Cannot move a room from {current.value} to {status.value}')
            game = store.find_active_game_by_room(room.room_code)
            if game is not None:
                self._finish_without_winner(room, game, 'game_ended', 'The room admin ended the game.')
                self._broadcast('game_completed', {'game': store.get_game(game.game_id).to_dict(), 'winner_id': None},
                                room.room_code)
            room = store.update_room_status(room_id, status)
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            return room

    def request_start(self, room_id: str, requester_id: Optional[str]):
        """Move a ready lobby into word selection and ask the wordmaster for the secret word."""
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            self._require_admin(room, requester_id)
            if room.room_status is not RoomStatus.WAITING:
                raise ConflictError('The game can only be started from the lobby')
            if any(p.role == Role.NONE.value for p in room.players):
                raise ValidationError('All players must choose a role before starting')
            wordmaster = room.wordmaster
            if wordmaster is None:
                raise ValidationError('Need a Wordmaster to start the game')
            min_guessers = int(self._config('MIN_GUESSERS', 2))
            if len(room.players_with_role(Role.GUESSER)) < min_guessers:
                raise ValidationError(f'Need at least {min_guessers} Guessers to start the game')
            if not all(p.is_ready for p in room.players):
                raise ValidationError('Waiting for all players to return to the lobby')

            store.reset_players_ready(room_id)
            room = store.update_room_status(room_id, RoomStatus.STARTING)
            self.logger.info(f"[starting] room={room.room_code} wordmaster={wordmaster.player_id}")
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            notice = {'wordmaster_id': wordmaster.player_id, 'nickname': wordmaster.nickname}
            self._broadcast('wordmaster_choosing', notice, room.room_code)
            sid = self.connections.sid_for(wordmaster.player_id)
            if sid is not None:
                self._send_to(sid, 'show_target_word_modal', notice)
            else:
                self._broadcast('show_target_word_modal', notice, room.room_code)
            return room

    def submit_target_word(self, room_id: str, player_id: str, target_word: Optional[str],
                           word_type: Optional[str] = None):
        min_length = int(self._config('MIN_TARGET_WORD_LENGTH', 5))
        if not is_valid_target_word(target_word, min_length):
            raise ValidationError(f'Secret word must be a single word of at least {min_length} letters')
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            if room.room_status is not RoomStatus.STARTING:
                raise ConflictError('The room is not choosing a secret word')
            wordmaster = room.wordmaster
            if wordmaster is None or wordmaster.player_id != player_id:
                raise ForbiddenError('Only the Wordmaster can choose the secret word')
            if len(room.players_with_role(Role.GUESSER)) < int(self._config('MIN_GUESSERS', 2)):
                raise ConflictError('Not enough Guessers remain, return to the lobby')
            if store.find_active_game_by_room(room.room_code) is not None:
                raise ConflictError('This room already has an active game')

            game = store.create_game(room.room_code, player_id, target_word, word_type, room.players)
            room = store.update_room_status(room_id, RoomStatus.IN_GAME)
            game = self._start_round(game, room)
            self.logger.info(f"[game-start] room={room.room_code} game={game.game_id} length={len(game.target_word)}")
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            self._broadcast('game_started', {'game': game.to_dict()}, room.room_code)
            return game

    def return_to_lobby(self, room_id: str, player_id: str):
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            if room.find_player(player_id) is None:
                raise ForbiddenError('You are not in this room')
            if room.room_status is RoomStatus.COMPLETED:
                room = store.update_room_status(room_id, RoomStatus.WAITING)
            elif room.room_status is not RoomStatus.WAITING:
                raise ConflictError('The game is still in progress')
            room = store.set_player_ready(room_id, player_id, True)
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            return room

    def delete_room(self, room_id: str, requester_id: Optional[str]) -> None:
        with self.locks.for_room(room_id):
            room = store.get_room(room_id)
            self._require_admin(room, requester_id)
            code = room.room_code
            game = store.find_active_game_by_room(code)
            if game is not None:
                self._finish_without_winner(room, game, 'game_ended', 'The room was closed by its admin.')
            for p in room.players:
                self.disconnect_timers.cancel(p.player_id)
                self.connections.forget_player(p.player_id)
            store.delete_room(code)
            self.logger.info(f"[room-deleted] room={code}")
            self._broadcast('room_deleted', {'room_id': code}, code)
        self.locks.discard(code)

    def _handle_departure(self, room, player):
        """Remove a player for good, applying the rules of the room's phase."""
        status = room.room_status
        player_id, nickname = player.player_id, player.nickname
        if status is RoomStatus.IN_GAME:
            game = store.find_active_game_by_room(room.room_code)
            if game is not None:
                self._handle_in_game_departure(room, game, player_id, nickname)
        elif status is RoomStatus.STARTING and player.role == Role.WORDMASTER.value:
            store.update_room_status(room.room_code, RoomStatus.WAITING)
            self._broadcast('wordmaster_disconnected_during_setup',
                            {'player_id': player_id, 'wordmaster_nickname': nickname}, room.room_code)

        code = room.room_code
        updated = store.remove_player(code, player_id)
        if updated is None:
            self.logger.info(f"[room-destroyed] room={code} last player left")
            return None
        self._broadcast('room_updated', updated.to_dict(), code)
        self._broadcast('player_left', {'player_id': player_id, 'nickname': nickname}, code)
        return updated

    def _handle_in_game_departure(self, room, game, player_id: str, nickname: str) -> None:
        remaining = [p for p in room.players if p.player_id != player_id]
        min_guessers = int(self._config('MIN_GUESSERS', 2))
        if len(remaining) < int(self._config('MIN_PLAYERS_IN_GAME', 3)):
            self._end_game_on_disconnect(room, game, nickname, 'Not enough players',
                                         f'{nickname} disconnected. Not enough players to continue.')
            return
        if player_id == game.wordmaster_id:
            self._end_game_on_disconnect(room, game, nickname, 'Wordmaster disconnected',
                                         f'Wordmaster {nickname} disconnected. Game ended.')
            return

        game_id = game.game_id
        rnd = game.current_round
        if rnd is not None and rnd.is_open and rnd.clue_giver_id == player_id:
            round_number = rnd.round_number
            self.round_timers.cancel((game_id, round_number))
            store.append_event_log_entry(game_id, 'player_disconnected',
                                         f'Clue-giver {nickname} disconnected. Ending the round early.',
                                         {'player_id': player_id, 'round_number': round_number})
            store.remove_guesser(game_id, player_id)
            game = store.end_round(game_id, round_number, False, advance_cursor=False)
            if len(game.guessers) < min_guessers:
                self._end_game_on_disconnect(room, game, nickname, 'Not enough players',
                                             'Not enough guessers remain. Game ended.')
                return
            game = self._start_round(game, room)
            self._broadcast('player_disconnected_during_game', {
                'game': game.to_dict(),
                'player_id': player_id,
                'disconnected_player': nickname,
                'was_clue_giver': True,
            }, room.room_code)
            self._broadcast('next_round_started', {
                'game': game.to_dict(),
                'round_number': game.current_round_number,
                'clue_giver_id': game.current_round.clue_giver_id,
            }, room.room_code)
            return

        was_guesser = player_id in game.guessers
        store.append_event_log_entry(game_id, 'player_disconnected', f'{nickname} disconnected.',
                                     {'player_id': player_id})
        game = store.remove_guesser(game_id, player_id)
        if was_guesser and len(game.guessers) < min_guessers:
            self._end_game_on_disconnect(room, game, nickname, 'Not enough players',
                                         'Not enough guessers remain. Game ended.')
            return
        self._broadcast('player_disconnected_during_game', {
            'game': game.to_dict(),
            'player_id': player_id,
            'disconnected_player': nickname,
            'was_clue_giver': False,
        }, room.room_code)

    def _finish_without_winner(self, room, game, event: str, message: str):
        self.round_timers.cancel((game.game_id, game.current_round_number))
        store.append_event_log_entry(game.game_id, event, message)
        game = store.complete_game(game.game_id, None)
        store.update_room_status(room.room_code, RoomStatus.COMPLETED)
        self.logger.info(f"[game-end] game={game.game_id} winner=None reason={event}")
        return game

    def _end_game_on_disconnect(self, room, game, nickname: str, reason: str, message: str) -> None:
        game = self._finish_without_winner(room, game, 'game_ended', message)
        self._broadcast('game_ended_disconnect', {
            'game': game.to_dict(),
            'reason': reason,
            'disconnected_player': nickname,
        }, room.room_code)

    # ---- Rounds ----

    def _start_round(self, game, room):
        guessers = game.guessers
        clue_giver_id = guessers[game.clue_giver_cursor % len(guessers)]
        guess_limit = room.wordmaster_guess_limit if room is not None else int(
            self._config('DEFAULT_WORDMASTER_GUESSES', 3))
        game = store.start_new_round(game.game_id, clue_giver_id, guess_limit)
        round_number = game.current_round_number
        return store.append_event_log_entry(
            game.game_id,
            'round_started',
            f'Round {round_number} started. {self._nickname(room, clue_giver_id)} is the clue-giver.',
            {'round_number': round_number, 'clue_giver_id': clue_giver_id},
        )

    def _load_for_action(self, ctx: ConnectionContext, game_id: Optional[str]):
        game = store.find_game_by_id(game_id)
        if game is None or game.room_code != ctx.room_id:
            raise NotFoundError('Game not found')
        if not game.is_active:
            raise StaleStateError(f'game {game_id} is already completed')
        room = store.get_room(ctx.room_id)
        return room, game

    @staticmethod
    def _open_round(game, round_number):
        number = _int_or_none(round_number, 'round_number')
        if number is None:
            number = game.current_round_number
        rnd = game.find_round(number)
        if rnd is None:
            raise NotFoundError('Round not found')
        if rnd.state is RoundState.ENDED or number != game.current_round_number:
            raise StaleStateError(f'round {number} of game {game.game_id} has already ended')
        return rnd

    def _schedule_round_timer(self, game_id: str, room_id: str, round_number: int, delay: float) -> None:
        self.round_timers.schedule(
            (game_id, round_number),
            delay,
            functools.partial(self._on_round_timer, game_id, room_id, round_number),
            group=game_id,
        )

    def _on_round_timer(self, game_id: str, room_id: str, round_number: int) -> None:
        self._in_app_context(self.resolve_round, game_id, room_id, round_number, ResolutionTrigger.TIMER_EXPIRED)

    def submit_clue(self, sid: str, game_id: str, round_number, clue_word: Optional[str], clue: Optional[str],
                    is_second_clue: bool = False) -> None:
        ctx = self._require_context(sid)
        with self.locks.for_room(ctx.room_id):
            room, game = self._load_for_action(ctx, game_id)
            rnd = self._open_round(game, round_number)
            if rnd.clue_giver_id != ctx.player_id:
                raise ForbiddenError('Only the clue-giver can give a clue')
            clue = (clue or '').strip()
            if not clue:
                raise ValidationError('A clue is required')
            number = rnd.round_number

            if is_second_clue:
                if rnd.state is RoundState.OPEN_AWAITING_CLUE:
                    raise ValidationError('Give your first clue before a second one')
                if rnd.second_clue:
                    raise ValidationError('You have already given a second clue')
                store.submit_clue(game_id, number, clue, is_second_clue=True)
                game = store.append_event_log_entry(game_id, 'second_clue_submitted',
                                                    f'{ctx.nickname} gave a second clue: "{clue}"')
            else:
                if rnd.state is RoundState.CLUE_SUBMITTED:
                    if strings_equal_case_insensitive(rnd.clue_word, clue_word):
                        raise StaleStateError(f'clue for round {number} already recorded')
                    raise ValidationError('You have already given a clue this round')
                prefix = ''.join(game.revealed_letters)
                if not clue_word or not clue_word.strip().isalpha():
                    raise ValidationError('The clue word must be a single word')
                if not clue_word_must_start_with_revealed(clue_word, game.revealed_letters):
                    raise ValidationError(f'Clue word must start with "{prefix}"')
                store.submit_clue(game_id, number, clue, clue_word=clue_word)
                game = store.append_event_log_entry(
                    game_id, 'clue_submitted',
                    f'{ctx.nickname} gave a clue: "{clue}" (the clue word starts with {prefix})')

            self._broadcast('clue_submitted', {
                'game': game.to_dict(),
                'round_number': number,
                'clue': clue,
                'is_second_clue': bool(is_second_clue),
            }, room.room_code)

            if not is_second_clue:
                duration = room.round_time_minutes * 60
                self._schedule_round_timer(game_id, room.room_code, number, duration)
                self._broadcast('round_timer_started', {
                    'round_number': number,
                    'duration_sec': duration,
                    'deadline': time.time() + duration,
                }, room.room_code)

    def _require_contact_player(self, game, rnd, player_id: str) -> None:
        if player_id == game.wordmaster_id or player_id not in game.guessers:
            raise ForbiddenError('Only guessers can make contact')
        if player_id == rnd.clue_giver_id:
            raise ForbiddenError('The clue-giver cannot make contact')

    def record_contact(self, sid: str, game_id: str, round_number, word: Optional[str]) -> None:
        """Add or replace the caller's contact for the open round."""
        ctx = self._require_context(sid)
        with self.locks.for_room(ctx.room_id):
            room, game = self._load_for_action(ctx, game_id)
            rnd = self._open_round(game, round_number)
            self._require_contact_player(game, rnd, ctx.player_id)
            if rnd.state is RoundState.OPEN_AWAITING_CLUE:
                raise ValidationError('Wait for the clue before making contact')
            word = (word or '').strip()
            if not word or not word.isalpha():
                raise ValidationError('Enter the single word you think the clue-giver means')
            if rnd.find_contact(ctx.player_id) is not None:
                store.update_contact(game_id, rnd.round_number, ctx.player_id, word)
                event, message = 'contact_updated', f'{ctx.nickname} updated their contact guess.'
            else:
                store.add_contact(game_id, rnd.round_number, ctx.player_id, word)
                event, message = 'contact_clicked', f'{ctx.nickname} made CONTACT!'
            game = store.append_event_log_entry(game_id, event, message, {'player_id': ctx.player_id})
            self._broadcast('contact_updated', {'game': game.to_dict(), 'player_id': ctx.player_id},
                            room.room_code)

    def remove_contact(self, sid: str, game_id: str, round_number) -> None:
        ctx = self._require_context(sid)
        with self.locks.for_room(ctx.room_id):
            room, game = self._load_for_action(ctx, game_id)
            rnd = self._open_round(game, round_number)
            if rnd.find_contact(ctx.player_id) is None:
                raise StaleStateError(f'no contact from {ctx.player_id} in round {rnd.round_number}')
            store.remove_contact(game_id, rnd.round_number, ctx.player_id)
            game = store.append_event_log_entry(game_id, 'contact_removed',
                                                f'{ctx.nickname} withdrew their contact.',
                                                {'player_id': ctx.player_id})
            self._broadcast('contact_updated', {'game': game.to_dict(), 'player_id': ctx.player_id},
                            room.room_code)

    def wordmaster_guess(self, sid: str, game_id: str, round_number, guess: Optional[str]) -> bool:
        ctx = self._require_context(sid)
        with self.locks.for_room(ctx.room_id):
            room, game = self._load_for_action(ctx, game_id)
            rnd = self._open_round(game, round_number)
            if ctx.player_id != game.wordmaster_id:
                raise ForbiddenError('Only the Wordmaster can block a clue')
            guess = (guess or '').strip()
            if not guess:
                raise ValidationError('Enter a guess')
            if rnd.state is RoundState.OPEN_AWAITING_CLUE:
                raise ValidationError('There is no clue to block yet')
            if rnd.wordmaster_guesses_remaining <= 0:
                raise ValidationError('No guesses remaining this round')

            number = rnd.round_number
            correct = strings_equal_case_insensitive(guess, rnd.clue_word)
            game = store.add_wordmaster_guess(game_id, number, guess, correct)
            if correct:
                store.update_score(game_id, game.wordmaster_id, wordmaster_block_points())
            remaining = game.find_round(number).wordmaster_guesses_remaining
            if correct:
                message = f'Wordmaster {ctx.nickname} guessed "{guess.upper()}": correct, the clue word is blocked!'
            else:
                message = (f'Wordmaster {ctx.nickname} guessed "{guess.upper()}": wrong. '
                           f'{remaining} guess(es) remaining.')
            game = store.append_event_log_entry(game_id, 'wordmaster_guess', message,
                                                {'guess': guess.upper(), 'correct': correct,
                                                 'guesses_remaining': remaining})
            self._broadcast('wordmaster_guessed', {
                'game': game.to_dict(),
                'guess': guess.upper(),
                'correct': correct,
                'round_number': number,
                'guesses_remaining': remaining,
            }, room.room_code)

            if correct:
                self.resolve_round(game_id, room.room_code, number, ResolutionTrigger.WORDMASTER_BLOCKED)
            elif remaining == 0 and self._config('RESOLVE_ON_WORDMASTER_EXHAUSTED'):
                self.resolve_round(game_id, room.room_code, number, ResolutionTrigger.GUESSES_EXHAUSTED)
            return correct

    @staticmethod
    def _failure_reason(rnd, blocked: bool) -> str:
        if blocked:
            return 'Wordmaster blocked the clue word'
        if not rnd.contacts:
            return 'No contacts were made'
        return 'Contact guesses did not match'

    def resolve_round(self, game_id: str, room_id: str, round_number: int,
                      trigger: ResolutionTrigger) -> Optional[bool]:
        """Judge and close a round, then continue or finish the game.

        Returns whether contact succeeded, or None when there was nothing to
        resolve (completed game, unknown or already ended round).
        """
        with self.locks.for_room(room_id):
            store.refresh()
            game = store.find_game_by_id(game_id)
            if game is None or not game.is_active:
                self.logger.info(f"[round-end-skip] game={game_id} round={round_number} game not active")
                return None
            rnd = game.find_round(round_number)
            if rnd is None or not rnd.is_open:
                self.logger.info(f"[round-end-skip] game={game_id} round={round_number} round not open")
                return None
            self.round_timers.cancel((game_id, round_number))
            room = store.find_room_by_id(room_id)

            blocked = rnd.wordmaster_blocked or trigger is ResolutionTrigger.WORDMASTER_BLOCKED
            match = all_contacts_match(rnd.contacts, rnd.clue_word)
            success = trigger is not ResolutionTrigger.WORDMASTER_BLOCKED and not blocked and match.matched
            new_letter = next_revealed_letter(game.target_word, game.revealed_letters) if success else None
            success = success and new_letter is not None

            points_awarded = {}
            if success:
                points = contact_success_points()
                points_awarded[rnd.clue_giver_id] = points['clue_giver']
                for pid in match.player_ids:
                    if pid != rnd.clue_giver_id:
                        points_awarded[pid] = points['guesser']
                for pid, amount in points_awarded.items():
                    store.update_score(game_id, pid, amount)
                store.append_event_log_entry(
                    game_id, 'contact_success',
                    f'Successful CONTACT! {len(match.player_ids)} player(s) guessed "{rnd.clue_word}". '
                    f'Next letter revealed: {new_letter}',
                    {'round_number': round_number, 'new_letter': new_letter})
                reason = None
            else:
                reason = self._failure_reason(rnd, blocked)
                store.append_event_log_entry(
                    game_id, 'contact_failed',
                    f'Contact failed. {reason}. The clue word was "{rnd.clue_word}".',
                    {'round_number': round_number, 'reason': reason})

            game = store.end_round(game_id, round_number, success, new_letter)
            game = store.append_event_log_entry(game_id, 'round_ended', f'Round {round_number} ended.',
                                                {'round_number': round_number})
            rnd = game.find_round(round_number)
            last_guess = rnd.wordmaster_guesses[-1] if rnd.wordmaster_guesses else None
            self.logger.info(
                f"[round-end] game={game_id} round={round_number} trigger={trigger.value} success={success}"
            )
            self._broadcast('round_ended', {
                'game': game.to_dict(),
                'round_number': round_number,
                'trigger': trigger.value,
                'contact_successful': success,
                'reason': reason,
                'clue_word': rnd.clue_word,
                'revealed_words': [
                    {'player_id': c.player_id, 'word': c.word,
                     'is_correct': strings_equal_case_insensitive(c.word, rnd.clue_word)}
                    for c in rnd.contacts
                ],
                'new_letter': new_letter,
                'points_awarded': points_awarded,
                'wordmaster_guess': last_guess.to_dict() if last_guess else None,
                'correct_contact_players': match.player_ids,
            }, room_id)
            self._continue_game(game, room)
            return success

    def _continue_game(self, game, room) -> None:
        room_id = room.room_code if room is not None else game.room_code
        if len(game.revealed_letters) >= len(game.target_word):
            store.append_event_log_entry(game.game_id, 'game_completed',
                                         'All letters revealed. No one guessed the secret word. Game over.')
            game = store.complete_game(game.game_id, None)
            self.logger.info(f"[game-end] game={game.game_id} winner=None reason=fully_revealed")
            self._broadcast('game_completed', {'game': game.to_dict(), 'winner_id': None}, room_id)
            if room is not None:
                room = store.update_room_status(room_id, RoomStatus.COMPLETED)
                self._broadcast('room_updated', room.to_dict(), room_id)
            return
        game = self._start_round(game, room)
        self._broadcast('next_round_started', {
            'game': game.to_dict(),
            'round_number': game.current_round_number,
            'clue_giver_id': game.current_round.clue_giver_id,
        }, room_id)

    # ---- Secret word ----

    def target_word_guess(self, sid: str, game_id: str, guess: Optional[str]) -> bool:
        ctx = self._require_context(sid)
        with self.locks.for_room(ctx.room_id):
            room, game = self._load_for_action(ctx, game_id)
            player_id = ctx.player_id
            if player_id not in game.guessers:
                raise ForbiddenError('Only guessers can guess the secret word')
            if not game.has_any_clue:
                raise ValidationError('Wait for the first clue before guessing the secret word')
            if game.per_letter_guess_attempts.get(player_id):
                raise ValidationError('You already used your guess for this letter')
            guess = (guess or '').strip()
            if not guess:
                raise ValidationError('Enter a guess')

            correct = strings_equal_case_insensitive(guess, game.target_word)
            is_first = (game.target_word_attempt_count or 0) == 0
            revealed_count = len(game.revealed_letters)
            round_number = game.current_round_number
            points = target_word_points(revealed_count) + (first_to_guess_bonus() if is_first else 0)
            game = store.record_target_word_guess(game_id, player_id, guess, correct, points=points)

            if not correct:
                game = store.append_event_log_entry(game_id, 'target_word_guess',
                                                    f'{ctx.nickname} made an incorrect guess at the secret word.',
                                                    {'player_id': player_id, 'correct': False})
                self._send_to(sid, 'target_word_guess_result', {'correct': False, 'game': game.to_dict()})
                return False

            self.round_timers.cancel((game_id, round_number))
            store.append_event_log_entry(game_id, 'target_word_guess',
                                         f'{ctx.nickname} guessed the secret word "{game.target_word}"!',
                                         {'player_id': player_id, 'correct': True})
            game = store.append_event_log_entry(
                game_id, 'game_completed',
                f'Game completed! {ctx.nickname} wins with {game.scores.get(player_id, 0)} points!',
                {'winner_id': player_id, 'points': points})
            room = store.update_room_status(room.room_code, RoomStatus.COMPLETED)
            self.logger.info(f"[game-end] game={game_id} winner={player_id} points={points}")
            self._broadcast('game_completed', {
                'game': game.to_dict(),
                'winner_id': player_id,
                'points': points,
            }, room.room_code)
            self._broadcast('room_updated', room.to_dict(), room.room_code)
            return True
