"""
Tests for the in-memory room store and its per-room locking.
"""

import random
import threading

import gevent
import gevent.lock
import pytest

from game_state import GameError, GameStatus
from jass_rules import get_valid_card_indexes
from room_store import InMemoryRoomStore, lock_factory_for


@pytest.fixture
def room(store):
    store.create("ABC234", "host")
    store.add_player("ABC234", "host", "Host")
    return "ABC234"


def first_valid_index(game, player):
    return get_valid_card_indexes(player["cards"], game.trick, game.trump)[0]


class TestRegistry:

    def test_create_get_delete(self, store):
        game = store.create("ROOM01", "h")
        assert store.get("ROOM01") is game
        assert store.exists("ROOM01")
        assert store.room_ids() == ["ROOM01"]
        assert game.status == GameStatus.LOBBY
        assert game.host_id == "h"

        assert store.delete("ROOM01")
        assert store.get("ROOM01") is None
        assert not store.delete("ROOM01")

    def test_duplicate_room_id(self, store):
        store.create("ROOM01", "h")
        with pytest.raises(KeyError):
            store.create("ROOM01", "other")

    def test_rooms_get_separate_generators(self, store):
        a = store.create("AAAAAA", "h")
        b = store.create("BBBBBB", "h")
        assert a.rng is not b.rng

    def test_settings_passed_to_games(self):
        store = InMemoryRoomStore(winning_score=300, reveal_all=True)
        game = store.create("ROOM01", "h")
        assert game.winning_score == 300
        assert game.reveal_all

    def test_transaction_on_missing_room(self, store):
        with store.transaction("NOPE00") as game:
            assert game is None


class TestMutations:

    @pytest.mark.parametrize("call", [
        lambda s: s.add_player("NOPE00", "p", "P"),
        lambda s: s.remove_player("NOPE00", "p"),
        lambda s: s.start_game("NOPE00", "p"),
        lambda s: s.play_card("NOPE00", "p", 0),
        lambda s: s.start_next_round("NOPE00", "p"),
    ])
    def test_unknown_room(self, store, call):
        result = call(store)
        assert not result["success"]
        assert result["error"] == GameError.ROOM_NOT_FOUND

    def test_success_carries_public_snapshot(self, store, room):
        result = store.add_player(room, "guest", "Guest")
        assert result["success"]
        assert [p["id"] for p in result["game_state"]["players"]] == ["host", "guest"]

        result = store.start_game(room, "host")
        assert result["game_state"]["status"] == "PLAYING"
        assert all("cards" not in p for p in result["game_state"]["players"])

    def test_failure_has_no_snapshot(self, store, room):
        result = store.start_game(room, "guest")
        assert result["error"] == GameError.NOT_HOST
        assert "game_state" not in result

    def test_last_human_leaving_deletes_room(self, store, room):
        result = store.remove_player(room, "host")
        assert result["success"]
        assert result["room_deleted"]
        assert not store.exists(room)

    def test_leaving_with_humans_left_keeps_room(self, store, room):
        store.add_player(room, "guest", "Guest")
        result = store.remove_player(room, "host")
        assert not result["room_deleted"]
        assert store.get(room).host_id == "guest"

    def test_view(self, store, room):
        assert store.view(room, "host")["my_seat"] == 0
        assert store.view("NOPE00") is None

    def test_abandoned_room(self, store, room):
        assert not store.is_abandoned(room)
        assert not store.delete_if_abandoned(room)

        store.set_connected(room, "host", False)
        assert store.is_abandoned(room)
        assert store.delete_if_abandoned(room)
        assert not store.exists(room)
        assert not store.is_abandoned(room)
        assert not store.delete_if_abandoned(room)

    def test_set_connected(self, store, room):
        state = store.set_connected(room, "host", False)
        assert state["players"][0]["connected"] is False
        assert store.set_connected(room, "ghost", False) is None
        assert store.set_connected("NOPE00", "host", False) is None


class TestBotTurns:

    def start_with_bot_on_turn(self, store, room):
        store.start_game(room, "host")
        game = store.get(room)
        store.play_card(room, "host", first_valid_index(game, game.players[0]))
        return game

    def test_bot_on_turn(self, store, room):
        assert store.bot_on_turn(room) is None
        game = self.start_with_bot_on_turn(store, room)
        bot_id, version = store.bot_on_turn(room)
        assert bot_id == game.players[1]["id"]
        assert version == game.version

    def test_play_bot_turn(self, store, room):
        game = self.start_with_bot_on_turn(store, room)
        bot_id, version = store.bot_on_turn(room)
        result = store.play_bot_turn(room, bot_id, version)
        assert result["success"]
        assert result["player_id"] == bot_id
        assert len(game.trick) == 2
        assert len(game.players[1]["cards"]) == 8

    def test_noop_when_room_is_gone(self, store, room):
        self.start_with_bot_on_turn(store, room)
        bot_id, version = store.bot_on_turn(room)
        store.delete(room)
        assert store.play_bot_turn(room, bot_id, version) is None

    def test_noop_when_not_playing(self, store, room):
        assert store.play_bot_turn(room, "host") is None

    def test_noop_for_other_player(self, store, room):
        game = self.start_with_bot_on_turn(store, room)
        assert store.play_bot_turn(room, game.players[2]["id"]) is None
        assert store.play_bot_turn(room, "host") is None
        assert len(game.trick) == 1

    def test_noop_when_stale(self, store, room):
        game = self.start_with_bot_on_turn(store, room)
        bot_id, version = store.bot_on_turn(room)
        assert store.play_bot_turn(room, bot_id, version - 1) is None
        assert len(game.trick) == 1

    def test_duplicate_schedule_plays_once(self, store, room):
        game = self.start_with_bot_on_turn(store, room)
        bot_id, version = store.bot_on_turn(room)
        assert store.play_bot_turn(room, bot_id, version)["success"]
        assert store.play_bot_turn(room, bot_id, version) is None
        assert len(game.trick) == 2


class TestSerialization:

    def test_concurrent_plays_apply_once(self):
        store = InMemoryRoomStore(rng=random.Random(1))
        room = "RACE22"
        store.create(room, "host")
        for pid in ["host", "a", "b", "c"]:
            store.add_player(room, pid, pid.upper())
        store.start_game(room, "host")
        game = store.get(room)
        index = first_valid_index(game, game.players[0])

        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(store.play_card(room, "host", index))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r["success"] for r in results) == 1
        assert {r["error"] for r in results if not r["success"]} == {GameError.WRONG_TURN}
        assert len(game.trick) == 1
        assert len(game.players[0]["cards"]) == 8
        assert game.current_turn == 1

    def test_rooms_do_not_share_locks(self, store):
        store.create("ROOM01", "a")
        store.create("ROOM02", "b")
        with store.transaction("ROOM01") as first:
            # A second room stays usable while the first is locked
            with store.transaction("ROOM02") as second:
                assert first is not second
                assert second.room_id == "ROOM02"

    def test_greenlets_take_turns_on_one_room(self):
        store = InMemoryRoomStore(lock_factory=gevent.lock.RLock)
        store.create("ROOM01", "host")
        order = []

        def worker(n):
            with store.transaction("ROOM01"):
                order.append(("in", n))
                gevent.sleep(0.01)
                order.append(("out", n))

        gevent.joinall([gevent.spawn(worker, 1), gevent.spawn(worker, 2)])
        assert order == [("in", 1), ("out", 1), ("in", 2), ("out", 2)]

    def test_room_lock_follows_async_mode(self):
        assert lock_factory_for("gevent") is gevent.lock.RLock
        assert lock_factory_for("threading") is threading.RLock
