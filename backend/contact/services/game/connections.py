"""Process-local bookkeeping for live connections.

Nothing here is persisted: the maps are rebuilt as clients (re)connect.
"""

import threading
from typing import Dict, NamedTuple, Optional, Tuple

from itsdangerous import BadSignature, URLSafeTimedSerializer

SESSION_TOKEN_SALT = 'contact-session'


class ConnectionContext(NamedTuple):
    player_id: str
    room_id: str
    nickname: str


class ConnectionRegistry:
    """Maps Socket.IO session ids to players and players to their live sid."""

    def __init__(self):
        self._by_sid: Dict[str, ConnectionContext] = {}
        self._sid_by_player: Dict[str, str] = {}
        self._lock = threading.Lock()

    def bind(self, sid: str, ctx: ConnectionContext) -> None:
        with self._lock:
            self._by_sid[sid] = ctx
            self._sid_by_player[ctx.player_id] = sid

    def unbind(self, sid: str) -> Tuple[Optional[ConnectionContext], bool]:
        """Forget a sid; returns its context and whether the player is still connected elsewhere."""
        with self._lock:
            ctx = self._by_sid.pop(sid, None)
            if ctx is None:
                return None, False
            current = self._sid_by_player.get(ctx.player_id)
            if current == sid:
                del self._sid_by_player[ctx.player_id]
                return ctx, False
            return ctx, current is not None

    def forget_player(self, player_id: str) -> Optional[str]:
        with self._lock:
            sid = self._sid_by_player.pop(player_id, None)
            if sid is not None:
                self._by_sid.pop(sid, None)
            return sid

    def context(self, sid: str) -> Optional[ConnectionContext]:
        with self._lock:
            return self._by_sid.get(sid)

    def sid_for(self, player_id: str) -> Optional[str]:
        with self._lock:
            return self._sid_by_player.get(player_id)

    def clear(self) -> None:
        with self._lock:
            self._by_sid.clear()
            self._sid_by_player.clear()


class RoomLocks:
    """One re-entrant lock per room: every mutation of a room and its game runs under it."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def for_room(self, room_id: str) -> threading.RLock:
        key = (room_id or '').upper()
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def discard(self, room_id: str) -> None:
        with self._guard:
            self._locks.pop((room_id or '').upper(), None)


def issue_session_token(secret_key: str, ctx: ConnectionContext) -> str:
    serializer = URLSafeTimedSerializer(secret_key, salt=SESSION_TOKEN_SALT)
    return serializer.dumps({'player_id': ctx.player_id, 'room_id': ctx.room_id, 'nickname': ctx.nickname})


def resolve_session_token(secret_key: str, token: Optional[str], max_age: int) -> Optional[ConnectionContext]:
    if not token:
        return None
    serializer = URLSafeTimedSerializer(secret_key, salt=SESSION_TOKEN_SALT)
    try:
        data = serializer.loads(token, max_age=max_age)
    except BadSignature:
        return None
    try:
        return ConnectionContext(data['player_id'], data['room_id'], data.get('nickname') or '')
    except (KeyError, TypeError):
        return None
