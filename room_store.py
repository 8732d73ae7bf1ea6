"""
room_store.py - Room registry holding one JassGame per room

Every mutation of a room runs under that room's own lock, so a play and a
bot move on the same table can never interleave. Separate rooms never
share a lock.
"""

import logging
import random
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import gevent.lock

from game_state import GameError, GameStatus, JassGame, failure
from jass_rules import WINNING_SCORE

logger = logging.getLogger(__name__)


def lock_factory_for(async_mode: str) -> Callable:
    """Room lock type for the server's async mode. Greenlets share one OS thread."""
    if async_mode == "gevent":
        return gevent.lock.RLock
    return threading.RLock


def room_not_found() -> Dict:
    return failure(GameError.ROOM_NOT_FOUND, "Room not found")


def with_snapshot(game: JassGame, result: Dict) -> Dict:
    # Snapshot taken under the room lock, so it matches the change just made
    if result["success"]:
        result["game_state"] = game.get_game_state()
    return result


class RoomStore(ABC):
    """Storage seam for rooms. Subclasses decide where games live."""

    @abstractmethod
    def create(self, room_id: str, host_id: str) -> JassGame:
        ...

    @abstractmethod
    def get(self, room_id: str) -> Optional[JassGame]:
        ...

    @abstractmethod
    def delete(self, room_id: str) -> bool:
        ...

    @abstractmethod
    def room_ids(self) -> List[str]:
        ...

    @abstractmethod
    def transaction(self, room_id: str):
        """Context manager yielding the room's game (or None) with the room locked."""

    def exists(self, room_id: str) -> bool:
        return self.get(room_id) is not None

    def add_player(self, room_id: str, player_id: str, player_name: str) -> Dict:
        with self.transaction(room_id) as game:
            if game is None:
                return room_not_found()
            return with_snapshot(game, game.add_player(player_id, player_name))

    def remove_player(self, room_id: str, player_id: str) -> Dict:
        """Remove a player; the room is deleted once no human is left in it."""
        with self.transaction(room_id) as game:
            if game is None:
                return room_not_found()
            result = with_snapshot(game, game.remove_player(player_id))
            result["room_deleted"] = False
            if result["success"] and not result["has_humans"]:
                self.delete(room_id)
                result["room_deleted"] = True
            return result

    def start_game(self, room_id: str, player_id: str) -> Dict:
        with self.transaction(room_id) as game:
            if game is None:
                return room_not_found()
            return with_snapshot(game, game.start_game(player_id))

    def play_card(self, room_id: str, player_id: str, card_index: int) -> Dict:
        with self.transaction(room_id) as game:
            if game is None:
                return room_not_found()
            return with_snapshot(game, game.play_card(player_id, card_index))

    def start_next_round(self, room_id: str, player_id: str) -> Dict:
        with self.transaction(room_id) as game:
            if game is None:
                return room_not_found()
            return with_snapshot(game, game.start_next_round(player_id))

    def set_connected(self, room_id: str, player_id: str, connected: bool) -> Optional[Dict]:
        """Update a connection flag. Returns the public snapshot, or None if nothing changed."""
        with self.transaction(room_id) as game:
            if game is None or not game.set_connected(player_id, connected):
                return None
            return game.get_game_state()

    def is_abandoned(self, room_id: str) -> bool:
        """True when the room exists but none of its humans is connected."""
        with self.transaction(room_id) as game:
            return game is not None and not game.has_connected_humans()

    def delete_if_abandoned(self, room_id: str) -> bool:
        with self.transaction(room_id) as game:
            if game is None or game.has_connected_humans():
                return False
            self.delete(room_id)
            return True

    def view(self, room_id: str, player_id: Optional[str] = None) -> Optional[Dict]:
        with self.transaction(room_id) as game:
            if game is None:
                return None
            return game.get_game_state(player_id)

    def bot_on_turn(self, room_id: str) -> Optional[Tuple[str, int]]:
        """(bot id, state version) when a bot has to move next, else None."""
        with self.transaction(room_id) as game:
            if game is None or game.status != GameStatus.PLAYING:
                return None
            player = game.current_player()
            if not player or not player["is_bot"]:
                return None
            return player["id"], game.version

    def play_bot_turn(self, room_id: str, expected_player_id: str,
                      expected_version: Optional[int] = None) -> Optional[Dict]:
        """
        Play the scheduled bot's card.

        Returns None without touching anything when the room is gone, the
        game has left PLAYING, someone other than the scheduled bot holds
        the turn, or the game moved on since the move was scheduled.
        """
        with self.transaction(room_id) as game:
            if game is None or game.status != GameStatus.PLAYING:
                return None
            if expected_version is not None and game.version != expected_version:
                return None
            player = game.current_player()
            if not player or player["id"] != expected_player_id or not player["is_bot"]:
                return None
            card_index = game.bot_move()
            return with_snapshot(game, game.play_card(player["id"], card_index))


class InMemoryRoomStore(RoomStore):
    """Process-local store: a dict of games and one lock per room."""

    def __init__(self, rng: Optional[random.Random] = None, winning_score: int = WINNING_SCORE,
                 reveal_all: bool = False, lock_factory: Callable = threading.RLock):
        self.rng = rng
        self.winning_score = winning_score
        self.reveal_all = reveal_all
        self._games: Dict[str, JassGame] = {}
        self.lock_factory = lock_factory
        self._locks: Dict[str, object] = {}
        self._registry_lock = threading.Lock()

    def create(self, room_id: str, host_id: str) -> JassGame:
        with self._registry_lock:
            if room_id in self._games:
                raise KeyError(f"Room {room_id} already exists")
            # Each room gets its own generator; a seeded store still deals reproducibly
            rng = random.Random(self.rng.getrandbits(64)) if self.rng is not None else None
            game = JassGame(room_id, host_id, rng=rng, winning_score=self.winning_score,
                            reveal_all=self.reveal_all)
            self._games[room_id] = game
            self._locks[room_id] = self.lock_factory()
        logger.info("Room %s created by %s", room_id, host_id)
        return game

    def get(self, room_id: str) -> Optional[JassGame]:
        return self._games.get(room_id)

    def delete(self, room_id: str) -> bool:
        with self._registry_lock:
            removed = self._games.pop(room_id, None) is not None
            self._locks.pop(room_id, None)
        if removed:
            logger.info("Room %s deleted", room_id)
        return removed

    def room_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._games)

    @contextmanager
    def transaction(self, room_id: str) -> Iterator[Optional[JassGame]]:
        with self._registry_lock:
            lock = self._locks.get(room_id)
        if lock is None:
            yield None
            return

        with lock:
            # The room may have been deleted while we waited for its lock
            if self._locks.get(room_id) is not lock:
                yield None
            else:
                yield self._games.get(room_id)
