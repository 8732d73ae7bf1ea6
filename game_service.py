"""
game_service.py - Room operations behind the HTTP and socket handlers

Each operation mutates a room through the store, publishes the resulting
events and, when a bot holds the turn, schedules its move.
"""

import logging
import random
import uuid
from typing import Dict, Optional

import broadcast
from jass_rules import generate_room_code

logger = logging.getLogger(__name__)

MAX_ROOM_CODE_ATTEMPTS = 20


class JassService:
    def __init__(self, store, broadcaster, scheduler, rng: Optional[random.Random] = None,
                 bot_delay: float = 1.0, trick_delay: float = 2.0, idle_room_timeout: float = 300.0):
        self.store = store
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.rng = rng if rng is not None else random.Random()
        self.bot_delay = bot_delay
        self.trick_delay = trick_delay
        self.idle_room_timeout = idle_room_timeout

    # ------------------------------------------------------------------
    # Lobby
    # ------------------------------------------------------------------

    def create_room(self, player_name: str) -> Dict:
        player_id = str(uuid.uuid4())
        room_id = None
        for _ in range(MAX_ROOM_CODE_ATTEMPTS):
            candidate = generate_room_code(self.rng)
            try:
                self.store.create(candidate, player_id)
            except KeyError:
                continue
            room_id = candidate
            break
        if room_id is None:
            raise RuntimeError("Could not allocate a free room code")

        result = self.store.add_player(room_id, player_id, player_name)
        if not result["success"]:
            return result
        return {
            "success": True,
            "room_id": room_id,
            "player_id": player_id,
            "game_state": self.store.view(room_id, player_id)
        }

    def join_room(self, room_id: str, player_name: str) -> Dict:
        room_id = room_id.upper()
        player_id = str(uuid.uuid4())
        result = self.store.add_player(room_id, player_id, player_name)
        if not result["success"]:
            return result

        self.broadcaster.publish(room_id, broadcast.PLAYER_JOINED, {
            "player_id": player_id,
            "player_name": player_name,
            "player_count": len(result["game_state"]["players"]),
            "game_state": result["game_state"]
        })
        return {
            "success": True,
            "room_id": room_id,
            "player_id": player_id,
            "game_state": self.store.view(room_id, player_id)
        }

    def leave_room(self, room_id: str, player_id: str) -> Dict:
        result = self.store.remove_player(room_id, player_id)
        if not result["success"]:
            return result

        if result["room_deleted"]:
            self.scheduler.cancel(room_id)
            return {"success": True, "room_deleted": True}

        self.broadcaster.publish(room_id, broadcast.PLAYER_LEFT, {
            "player_id": player_id,
            "player_name": result["player_name"],
            "replaced_by_bot": result["replaced_by_bot"],
            "game_state": result["game_state"]
        })
        # The seat may now belong to a bot that holds the turn
        self._schedule_bot(room_id)
        return {"success": True, "room_deleted": False, "host_id": result["host_id"]}

    def set_connected(self, room_id: str, player_id: str, connected: bool):
        state = self.store.set_connected(room_id, player_id, connected)
        if state is not None:
            self.broadcaster.publish(room_id, broadcast.GAME_STATE, {"game_state": state})
        if not connected and self.store.is_abandoned(room_id):
            self.scheduler.schedule(room_id, self.idle_room_timeout, self.close_if_abandoned, room_id)

    def close_if_abandoned(self, room_id: str) -> bool:
        """Scheduled callback: drop a room nobody came back to."""
        if not self.store.delete_if_abandoned(room_id):
            return False
        self.scheduler.cancel(room_id)
        logger.info("Room %s closed, no player reconnected", room_id)
        return True

    def get_view(self, room_id: str, player_id: Optional[str] = None) -> Optional[Dict]:
        return self.store.view(room_id.upper(), player_id)

    # ------------------------------------------------------------------
    # Game flow
    # ------------------------------------------------------------------

    def start_game(self, room_id: str, player_id: str) -> Dict:
        result = self.store.start_game(room_id, player_id)
        if not result["success"]:
            return result

        self.broadcaster.publish(room_id, broadcast.GAME_STARTED, {
            "round_number": result["round_number"],
            "game_state": result["game_state"]
        })
        self._schedule_bot(room_id)
        return {"success": True, "game_state": self.store.view(room_id, player_id)}

    def next_round(self, room_id: str, player_id: str) -> Dict:
        result = self.store.start_next_round(room_id, player_id)
        if not result["success"]:
            return result

        self.broadcaster.publish(room_id, broadcast.GAME_STARTED, {
            "round_number": result["round_number"],
            "game_state": result["game_state"]
        })
        self._schedule_bot(room_id)
        return {"success": True, "game_state": self.store.view(room_id, player_id)}

    def play_card(self, room_id: str, player_id: str, card_index: int) -> Dict:
        result = self.store.play_card(room_id, player_id, card_index)
        if not result["success"]:
            return result

        self._announce_play(room_id, result)
        self._schedule_bot(room_id, after_trick=result["trick_complete"])
        return {
            "success": True,
            "trick_complete": result["trick_complete"],
            "trick_winner": result.get("trick_winner"),
            "round_over": result["round_over"],
            "game_over": result["game_over"],
            "game_state": self.store.view(room_id, player_id)
        }

    def run_bot_turn(self, room_id: str, player_id: str, version: Optional[int] = None):
        """Scheduled callback: play for the bot if it still holds the turn."""
        result = self.store.play_bot_turn(room_id, player_id, version)
        if result is None:
            logger.debug("Room %s: bot move for %s no longer applies", room_id, player_id)
            return
        if not result["success"]:
            logger.error("Room %s: bot %s made a rejected move: %s", room_id, player_id, result["message"])
            return

        self._announce_play(room_id, result)
        self._schedule_bot(room_id, after_trick=result["trick_complete"])

    def _announce_play(self, room_id: str, result: Dict):
        state = result["game_state"]
        self.broadcaster.publish(room_id, broadcast.CARD_PLAYED, {
            "player_id": result["player_id"],
            "card": result["card_played"],
            "game_state": state
        })

        if result["trick_complete"]:
            self.broadcaster.publish(room_id, broadcast.TRICK_WON, {
                "winner": result["trick_winner"],
                "trick": result["completed_trick"]
            })

        if result["round_over"]:
            self.broadcaster.publish(room_id, broadcast.ROUND_END, {
                "round_scores": state["round_scores"],
                "scores": state["scores"],
                "game_state": state
            })

        if result["game_over"]:
            self.broadcaster.publish(room_id, broadcast.GAME_OVER, {
                "winning_team": state["winning_team"],
                "scores": state["scores"],
                "game_state": state
            })

    def _schedule_bot(self, room_id: str, after_trick: bool = False):
        on_turn = self.store.bot_on_turn(room_id)
        if on_turn is None:
            return
        bot_id, version = on_turn
        # A finished trick stays on the table a little longer before the next card
        delay = self.trick_delay if after_trick else self.bot_delay
        self.scheduler.schedule(room_id, delay, self.run_bot_turn, room_id, bot_id, version)
