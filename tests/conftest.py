import os
import random
from collections import deque
from typing import Dict, List, Tuple

# The app module reads its settings at import time
os.environ.setdefault("SOCKETIO_ASYNC_MODE", "threading")
os.environ.setdefault("JASS_BOT_DELAY", "0")
os.environ.setdefault("JASS_TRICK_DELAY", "0")

import pytest

from broadcast import Broadcaster
from game_service import JassService
from game_state import JassGame
from jass_rules import Card, PlayedCard, Rank, Suit
from room_store import InMemoryRoomStore


class RecordingBroadcaster(Broadcaster):
    """Keeps published events in memory, in order."""

    def __init__(self):
        self.events: List[Tuple[str, str, Dict]] = []

    def publish(self, room_id: str, event: str, payload: Dict):
        self.events.append((room_id, event, payload))

    def names(self, room_id: str = None) -> List[str]:
        return [event for rid, event, _ in self.events if room_id is None or rid == room_id]

    def payloads(self, event: str) -> List[Dict]:
        return [payload for _, name, payload in self.events if name == event]

    def clear(self):
        self.events = []


class ManualScheduler:
    """Queues callbacks until the test runs them."""

    def __init__(self):
        self._queue = deque()

    def schedule(self, room_id: str, delay: float, callback, *args):
        self._queue.append((room_id, delay, callback, args))

    def cancel(self, room_id: str) -> int:
        kept = deque(item for item in self._queue if item[0] != room_id)
        cancelled = len(self._queue) - len(kept)
        self._queue = kept
        return cancelled

    def pending(self, room_id: str) -> int:
        return sum(1 for item in self._queue if item[0] == room_id)

    def delays(self, room_id: str):
        return [item[1] for item in self._queue if item[0] == room_id]

    def callbacks(self, room_id: str):
        return [item[2].__name__ for item in self._queue if item[0] == room_id]

    def run_next(self) -> bool:
        if not self._queue:
            return False
        _, _, callback, args = self._queue.popleft()
        callback(*args)
        return True


SUIT_LETTERS = {"H": Suit.HEARTS, "D": Suit.DIAMONDS, "C": Suit.CLUBS, "S": Suit.SPADES}


def parse_card(code: str) -> Card:
    """'JH' -> jack of hearts, '10S' -> ten of spades."""
    return Card(SUIT_LETTERS[code[-1]], Rank(code[:-1]))


@pytest.fixture
def card():
    return parse_card


@pytest.fixture
def hand():
    def build(*codes):
        return [parse_card(code) for code in codes]
    return build


@pytest.fixture
def trick():
    def build(*codes):
        return [PlayedCard(f"p{i}", parse_card(code)) for i, code in enumerate(codes)]
    return build


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def lobby_game(rng):
    game = JassGame("ROOM42", "p0", rng=rng)
    for i in range(4):
        game.add_player(f"p{i}", f"Player {i}")
    return game


@pytest.fixture
def started_game(lobby_game):
    lobby_game.start_game("p0")
    return lobby_game


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store():
    return InMemoryRoomStore(rng=random.Random(99))


@pytest.fixture
def service(store, broadcaster, scheduler):
    return JassService(store, broadcaster, scheduler, rng=random.Random(5), bot_delay=1.0, trick_delay=2.5)
