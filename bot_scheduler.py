"""
bot_scheduler.py - Deferred callbacks for bot moves and trick pauses

Callbacks run later as Socket.IO background tasks, so they follow whatever
async mode the server was started with (gevent greenlets or plain threads).
Each callback holds a ticket for its room; tearing a room down takes the
tickets back and a woken task without one does nothing.
"""

import logging
import threading
from typing import Callable, Dict, Set

logger = logging.getLogger(__name__)


def callback_name(callback: Callable) -> str:
    return getattr(callback, "__name__", repr(callback))


class SocketIOScheduler:
    def __init__(self, socketio):
        self.socketio = socketio
        self._pending: Dict[str, Set[object]] = {}
        self._lock = threading.Lock()

    def schedule(self, room_id: str, delay: float, callback: Callable, *args):
        ticket = object()
        with self._lock:
            self._pending.setdefault(room_id, set()).add(ticket)
        logger.debug("Room %s: scheduled %s in %.2fs", room_id, callback_name(callback), delay)
        self.socketio.start_background_task(self._run, room_id, ticket, delay, callback, args)
        return ticket

    def cancel(self, room_id: str) -> int:
        with self._lock:
            tickets = self._pending.pop(room_id, set())
        if tickets:
            logger.debug("Room %s: cancelled %d pending callbacks", room_id, len(tickets))
        return len(tickets)

    def pending(self, room_id: str) -> int:
        with self._lock:
            return len(self._pending.get(room_id, ()))

    def _claim(self, room_id: str, ticket) -> bool:
        with self._lock:
            tickets = self._pending.get(room_id)
            if not tickets or ticket not in tickets:
                return False
            tickets.discard(ticket)
            if not tickets:
                del self._pending[room_id]
            return True

    def _run(self, room_id: str, ticket, delay: float, callback: Callable, args):
        self.socketio.sleep(delay)
        if not self._claim(room_id, ticket):
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Scheduled callback %s failed", callback_name(callback))
