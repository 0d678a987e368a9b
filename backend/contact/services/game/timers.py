"""Cancellable deferred callbacks keyed by an exact key.

Round timers are keyed by ``(game_id, round_number)`` and grouped by game so
that scheduling a later round replaces the stale timer of the same game.
Disconnect grace timers are keyed by ``player_id``.

Timers run as Socket.IO background tasks. When the registry is disabled (the
default under TESTING), ``schedule`` only records the handle and tests
trigger expiry with ``fire``.
"""

import logging
import threading
from typing import Callable, Dict, Hashable, Optional


class TimerHandle:
    __slots__ = ('key', 'delay', 'callback', 'group', 'cancelled')

    def __init__(self, key: Hashable, delay: float, callback: Callable[[], None], group: Optional[Hashable] = None):
        self.key = key
        self.delay = delay
        self.callback = callback
        self.group = group
        self.cancelled = False


class TimerRegistry:
    def __init__(self, name: str):
        self.name = name
        self.enabled = True
        self.logger = logging.getLogger(__name__)
        self._socketio = None
        self._handles: Dict[Hashable, TimerHandle] = {}
        self._groups: Dict[Hashable, Hashable] = {}
        self._lock = threading.Lock()

    def configure(self, socketio, logger=None, enabled: bool = True) -> None:
        self.clear()
        self._socketio = socketio
        self.enabled = enabled
        if logger is not None:
            self.logger = logger

    def schedule(self, key: Hashable, delay: float, callback: Callable[[], None],
                 group: Optional[Hashable] = None) -> TimerHandle:
        handle = TimerHandle(key, delay, callback, group)
        with self._lock:
            self._discard(key)
            if group is not None:
                stale_key = self._groups.get(group)
                if stale_key is not None:
                    self._discard(stale_key)
                self._groups[group] = key
            self._handles[key] = handle
        self.logger.info(f"[timer-set] {self.name} key={key} delay={delay}s")
        if self.enabled and self._socketio is not None:
            self._socketio.start_background_task(self._run, handle)
        return handle

    def cancel(self, key: Hashable) -> bool:
        with self._lock:
            found = self._discard(key)
        if found:
            self.logger.info(f"[timer-cancel] {self.name} key={key}")
        return found

    def is_pending(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._handles

    def fire(self, key: Hashable) -> bool:
        """Expire a pending timer now, on the calling thread."""
        with self._lock:
            handle = self._handles.get(key)
        if handle is None:
            return False
        return self._fire(handle)

    def clear(self) -> None:
        with self._lock:
            for handle in self._handles.values():
                handle.cancelled = True
            self._handles.clear()
            self._groups.clear()

    def _discard(self, key: Hashable, cancel: bool = True) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancelled = cancel
        if handle.group is not None and self._groups.get(handle.group) == key:
            del self._groups[handle.group]
        return True

    def _run(self, handle: TimerHandle) -> None:
        self._socketio.sleep(handle.delay)
        try:
            self._fire(handle)
        except Exception:
            self.logger.exception(f"[timer-error] {self.name} key={handle.key}")

    def _fire(self, handle: TimerHandle) -> bool:
        with self._lock:
            if handle.cancelled or self._handles.get(handle.key) is not handle:
                self.logger.info(f"[timer-abort] {self.name} key={handle.key} no longer pending")
                return False
            # Claimed under the lock, so a later cancel finds nothing to stop
            self._discard(handle.key, cancel=False)
        self.logger.info(f"[timer-fire] {self.name} key={handle.key}")
        handle.callback()
        return True
