from functools import wraps
from typing import Any, Dict

from flask import current_app, request
from flask_socketio import emit

from contact import db, socketio
from contact.errors import GameError, StaleStateError
from contact.services.game import coordinator


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _guarded(handler):
    """Turn domain errors into an `error` event for the sender only."""

    @wraps(handler)
    def wrapper(data=None):
        name = handler.__name__
        try:
            return handler(data if isinstance(data, dict) else {})
        except StaleStateError as exc:
            current_app.logger.info(f"[stale] {name} sid={_get_sid()} {exc}")
        except GameError as exc:
            current_app.logger.info(f"[rejected] {name} sid={_get_sid()} {exc.message}")
            emit('error', exc.to_dict())
            return {'error': exc.message}
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"[handler-error] {name} sid={_get_sid()}")
            emit('error', {'message': 'Something went wrong, please try again'})
            return {'error': 'Something went wrong, please try again'}

    return wrapper


def handle_connect(auth=None):
    token = auth.get('session_token') if isinstance(auth, dict) else None
    ctx = None
    if token:
        try:
            ctx = coordinator.connect(_get_sid(), token)
        except GameError as exc:
            current_app.logger.info(f"[reconnect-failed] sid={_get_sid()} {exc.message}")
    payload: Dict[str, Any] = {'message': 'Connected to /ws'}
    if ctx is not None:
        payload.update({'player_id': ctx.player_id, 'room_id': ctx.room_id})
    emit('connected', payload)


def handle_disconnect(reason=None):
    coordinator.disconnect(_get_sid())


@_guarded
def handle_join_room(data):
    return coordinator.join_room(_get_sid(), data.get('room_id'), data.get('player_id'), data.get('nickname'))


@_guarded
def handle_player_ready(data):
    coordinator.player_ready(_get_sid(), bool(data.get('is_ready', True)))


@_guarded
def handle_submit_clue(data):
    coordinator.submit_clue(
        _get_sid(),
        data.get('game_id'),
        data.get('round_number'),
        data.get('clue_word'),
        data.get('clue'),
        bool(data.get('is_second_clue')),
    )


@_guarded
def handle_contact_click(data):
    coordinator.record_contact(_get_sid(), data.get('game_id'), data.get('round_number'), data.get('word'))


@_guarded
def handle_update_contact(data):
    coordinator.record_contact(_get_sid(), data.get('game_id'), data.get('round_number'), data.get('word'))


@_guarded
def handle_remove_contact(data):
    coordinator.remove_contact(_get_sid(), data.get('game_id'), data.get('round_number'))


@_guarded
def handle_wordmaster_guess(data):
    coordinator.wordmaster_guess(_get_sid(), data.get('game_id'), data.get('round_number'), data.get('guess'))


@_guarded
def handle_target_word_guess(data):
    coordinator.target_word_guess(_get_sid(), data.get('game_id'), data.get('guess'))


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('join_room', handle_join_room, namespace='/ws')
    socketio.on_event('player_ready', handle_player_ready, namespace='/ws')
    socketio.on_event('submit_clue', handle_submit_clue, namespace='/ws')
    socketio.on_event('contact_click', handle_contact_click, namespace='/ws')
    socketio.on_event('update_contact', handle_update_contact, namespace='/ws')
    socketio.on_event('remove_contact', handle_remove_contact, namespace='/ws')
    socketio.on_event('wordmaster_guess', handle_wordmaster_guess, namespace='/ws')
    socketio.on_event('target_word_guess', handle_target_word_guess, namespace='/ws')
