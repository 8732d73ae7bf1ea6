"""
broadcast.py - Fan-out of room events to connected clients

Publishing is fire-and-forget: a failed emit is logged and dropped, the
game state is never rolled back because of the transport.
"""

import logging
from typing import Dict

logger = logging.getLogger(__name__)

GAME_STATE = "game-state"
PLAYER_JOINED = "player-joined"
PLAYER_LEFT = "player-left"
GAME_STARTED = "game-started"
CARD_PLAYED = "card-played"
TRICK_WON = "trick-won"
ROUND_END = "round-end"
GAME_OVER = "game-over"
ERROR = "error"

EVENTS = (GAME_STATE, PLAYER_JOINED, PLAYER_LEFT, GAME_STARTED, CARD_PLAYED,
          TRICK_WON, ROUND_END, GAME_OVER, ERROR)


def get_room_channel(room_id: str) -> str:
    return f"jass-room-{room_id}"


class Broadcaster:
    def publish(self, room_id: str, event: str, payload: Dict):
        raise NotImplementedError


class SocketIOBroadcaster(Broadcaster):
    """Emits events to the Socket.IO room named after the game's channel."""

    def __init__(self, socketio):
        self.socketio = socketio

    def publish(self, room_id: str, event: str, payload: Dict):
        try:
            self.socketio.emit(event, payload, room=get_room_channel(room_id))
        except Exception:
            logger.warning("Failed to publish %s to room %s", event, room_id, exc_info=True)

