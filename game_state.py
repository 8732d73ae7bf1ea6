"""
game_state.py - Match controller for Schieber Jass

This file handles:
- Seating players and assigning teams
- Starting a game (bot auto-fill, dealing, trump choice)
- Turn order and card play validation
- Trick resolution and scoring
- Round / game transitions
- Per-player state snapshots
"""

import logging
import random
import uuid
from enum import Enum
from typing import Dict, List, Optional

from jass_rules import (
    NUM_PLAYERS,
    WINNING_SCORE,
    PlayedCard,
    Suit,
    calculate_trick_points,
    choose_bot_card,
    choose_trump,
    deal_cards,
    get_trick_winner,
    get_valid_card_indexes,
    get_winning_team,
    is_game_over,
    is_round_over,
    is_valid_move,
)

logger = logging.getLogger(__name__)


class GameStatus(Enum):
    LOBBY = "LOBBY"  # Waiting for players
    PLAYING = "PLAYING"  # Cards are being played
    ROUND_END = "ROUND_END"  # All 9 tricks played, waiting for the next deal
    GAME_OVER = "GAME_OVER"  # A team reached the winning score


class GameError(Enum):
    INVALID_REQUEST = "invalid_request"
    ROOM_NOT_FOUND = "room_not_found"
    ROOM_FULL = "room_full"
    ALREADY_JOINED = "already_joined"
    GAME_ALREADY_STARTED = "game_already_started"
    NOT_HOST = "not_host"
    GAME_NOT_IN_PROGRESS = "game_not_in_progress"
    PLAYER_NOT_FOUND = "player_not_found"
    WRONG_TURN = "wrong_turn"
    INVALID_CARD_INDEX = "invalid_card_index"
    ILLEGAL_MOVE = "illegal_move"
    ROUND_NOT_FINISHED = "round_not_finished"


def failure(error: GameError, message: str) -> Dict:
    return {"success": False, "error": error, "message": message}


def team_key(team: int) -> str:
    return f"team{team}"


class JassGame:
    def __init__(self, room_id: str, host_id: str, rng: Optional[random.Random] = None,
                 winning_score: int = WINNING_SCORE, reveal_all: bool = False):
        self.room_id = room_id
        self.host_id = host_id
        self.players: List[Dict] = []  # id, name, team, cards, is_bot, connected
        self.status = GameStatus.LOBBY

        self.rng = rng if rng is not None else random.Random()
        self.winning_score = winning_score
        self.reveal_all = reveal_all

        # Round state
        self.round_number = 0
        self.trump: Optional[Suit] = None
        self.trick: List[PlayedCard] = []
        self.current_turn = 0
        self.last_trick: List[PlayedCard] = []
        self.last_trick_winner: Optional[Dict] = None

        # Scores
        self.scores = {"team1": 0, "team2": 0}
        self.round_scores = {"team1": 0, "team2": 0}
        self.winning_team: Optional[int] = None

        # Bumped on every seating or gameplay change; scheduled bot moves carry the
        # version they were planned for
        self.version = 0

    # ------------------------------------------------------------------
    # Seating
    # ------------------------------------------------------------------

    def player_index(self, player_id: str) -> Optional[int]:
        return next((i for i, p in enumerate(self.players) if p["id"] == player_id), None)

    def get_player(self, player_id: str) -> Optional[Dict]:
        index = self.player_index(player_id)
        return self.players[index] if index is not None else None

    def current_player(self) -> Optional[Dict]:
        if not self.players:
            return None
        return self.players[self.current_turn]

    def is_host(self, player_id: str) -> bool:
        return player_id == self.host_id

    def has_humans(self) -> bool:
        return any(not p["is_bot"] for p in self.players)

    def has_connected_humans(self) -> bool:
        return any(not p["is_bot"] and p["connected"] for p in self.players)

    def add_player(self, player_id: str, player_name: str, is_bot: bool = False) -> Dict:
        """Seat a player. Teams alternate by join order: 1, 2, 1, 2."""
        if self.status != GameStatus.LOBBY:
            return failure(GameError.GAME_ALREADY_STARTED, "Game already started")
        if len(self.players) >= NUM_PLAYERS:
            return failure(GameError.ROOM_FULL, "Room is full")
        if self.player_index(player_id) is not None:
            return failure(GameError.ALREADY_JOINED, "Already joined")

        team = len(self.players) % 2 + 1
        self.players.append({
            "id": player_id,
            "name": player_name,
            "team": team,
            "cards": [],
            "is_bot": is_bot,
            "connected": True
        })
        self.version += 1
        logger.info("Room %s: %s (%s) seated at %d on team %d",
                    self.room_id, player_name, player_id, len(self.players) - 1, team)
        return {"success": True, "player_id": player_id, "seat": len(self.players) - 1, "team": team}

    def remove_player(self, player_id: str) -> Dict:
        """
        Take a player out of the room.

        In the lobby the seat is freed. Once cards are dealt the seat is
        handed to a bot so the table keeps four players. The host role moves
        to the first remaining human.
        """
        index = self.player_index(player_id)
        if index is None:
            return failure(GameError.PLAYER_NOT_FOUND, "Player not found")

        player = self.players[index]
        replaced_by_bot = False
        if self.status == GameStatus.LOBBY:
            self.players.pop(index)
            # Re-number teams so seating parity still holds
            for seat, p in enumerate(self.players):
                p["team"] = seat % 2 + 1
        else:
            player["is_bot"] = True
            player["connected"] = False
            replaced_by_bot = True

        if self.host_id == player_id:
            new_host = next((p for p in self.players if not p["is_bot"]), None)
            if new_host:
                self.host_id = new_host["id"]

        self.version += 1
        logger.info("Room %s: %s left (replaced by bot: %s)", self.room_id, player["name"], replaced_by_bot)
        return {
            "success": True,
            "player_name": player["name"],
            "replaced_by_bot": replaced_by_bot,
            "has_humans": self.has_humans(),
            "host_id": self.host_id
        }

    def set_connected(self, player_id: str, connected: bool) -> bool:
        player = self.get_player(player_id)
        if not player:
            return False
        player["connected"] = connected
        return True

    def _fill_with_bots(self):
        while len(self.players) < NUM_PLAYERS:
            bot_number = len(self.players) + 1
            bot_id = f"bot-{bot_number}-{uuid.uuid4().hex[:8]}"
            self.add_player(bot_id, f"Bot {bot_number}", is_bot=True)

    # ------------------------------------------------------------------
    # Game flow
    # ------------------------------------------------------------------

    def start_game(self, player_id: str) -> Dict:
        """Host starts the game; empty seats are filled with bots."""
        if not self.is_host(player_id):
            return failure(GameError.NOT_HOST, "Only the host can start the game")
        if self.status != GameStatus.LOBBY:
            return failure(GameError.GAME_ALREADY_STARTED, "Game already started")

        self._fill_with_bots()
        self._start_round()
        return {"success": True, "round_number": self.round_number, "trump": self.trump.value}

    def start_next_round(self, player_id: str) -> Dict:
        if not self.is_host(player_id):
            return failure(GameError.NOT_HOST, "Only the host can deal the next round")
        if self.status != GameStatus.ROUND_END:
            return failure(GameError.ROUND_NOT_FINISHED, "The current round is not finished")

        self._start_round()
        return {"success": True, "round_number": self.round_number, "trump": self.trump.value}

    def _start_round(self):
        """Deal, pick trump, reset per-round state. Cumulative scores carry over."""
        self.players = deal_cards(self.players, self.rng)
        self.trump = choose_trump(self.rng)
        self.trick = []
        self.last_trick = []
        self.last_trick_winner = None
        self.current_turn = 0
        self.round_scores = {"team1": 0, "team2": 0}
        self.round_number += 1
        self.status = GameStatus.PLAYING
        self.version += 1
        logger.info("Room %s: round %d dealt, trump is %s", self.room_id, self.round_number, self.trump.value)

    def play_card(self, player_id: str, card_index: int) -> Dict:
        """Play a card from the acting player's hand into the current trick."""
        if self.status != GameStatus.PLAYING:
            return failure(GameError.GAME_NOT_IN_PROGRESS, "Game is not in progress")

        player_index = self.player_index(player_id)
        if player_index is None:
            return failure(GameError.PLAYER_NOT_FOUND, "Player not found")
        if player_index != self.current_turn:
            return failure(GameError.WRONG_TURN, "Not your turn")

        player = self.players[player_index]
        if isinstance(card_index, bool) or not isinstance(card_index, int) \
                or not 0 <= card_index < len(player["cards"]):
            return failure(GameError.INVALID_CARD_INDEX, "Invalid card")

        card = player["cards"][card_index]
        if not is_valid_move(card, player["cards"], self.trick, self.trump):
            return failure(GameError.ILLEGAL_MOVE, "That card cannot be played on this trick")

        # Hand and trick change together
        player["cards"].pop(card_index)
        self.trick.append(PlayedCard(player["id"], card))
        self.version += 1
        logger.debug("Room %s: %s played %s", self.room_id, player["name"], card)

        result = {
            "success": True,
            "player_id": player["id"],
            "card_played": card.to_dict(),
            "trick_complete": False,
            "round_over": False,
            "game_over": False
        }

        if len(self.trick) == NUM_PLAYERS:
            result.update(self._complete_trick())
        else:
            self.current_turn = (self.current_turn + 1) % NUM_PLAYERS
        return result

    def _complete_trick(self) -> Dict:
        """Resolve the full trick, credit points and hand the lead to the winner."""
        position = get_trick_winner(self.trick, self.trump)
        winner_id = self.trick[position].player_id
        winner_seat = self.player_index(winner_id)
        winner = self.players[winner_seat]

        is_last_trick = is_round_over(self.players)
        points = calculate_trick_points(self.trick, self.trump, is_last_trick)

        key = team_key(winner["team"])
        self.scores[key] += points
        self.round_scores[key] += points

        self.last_trick_winner = {
            "player_id": winner_id,
            "player_name": winner["name"],
            "seat": winner_seat,
            "team": winner["team"],
            "points": points
        }
        self.last_trick = self.trick
        self.trick = []
        self.current_turn = winner_seat
        logger.info("Room %s: %s won the trick for %d points", self.room_id, winner["name"], points)

        game_over = False
        if is_last_trick:
            if is_game_over(self.scores, self.winning_score):
                self.status = GameStatus.GAME_OVER
                self.winning_team = get_winning_team(self.scores, self.winning_score)
                game_over = True
                logger.info("Room %s: game over, team %s wins %s", self.room_id, self.winning_team, self.scores)
            else:
                self.status = GameStatus.ROUND_END
                logger.info("Room %s: round %d over, round scores %s",
                            self.room_id, self.round_number, self.round_scores)

        return {
            "trick_complete": True,
            "completed_trick": [p.to_dict() for p in self.last_trick],
            "trick_winner": dict(self.last_trick_winner),
            "round_over": is_last_trick,
            "game_over": game_over
        }

    def bot_move(self) -> Optional[int]:
        """Card index the bot on turn would play, or None if no bot is on turn."""
        if self.status != GameStatus.PLAYING:
            return None
        player = self.current_player()
        if not player or not player["is_bot"]:
            return None
        return choose_bot_card(player["cards"], self.trick, self.trump, self.rng)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_game_state(self, player_id: Optional[str] = None) -> Dict:
        """Get current game state, optionally filtered for a specific player."""
        current = self.current_player() if self.status == GameStatus.PLAYING else None
        state = {
            "room_id": self.room_id,
            "status": self.status.value,
            "host_id": self.host_id,
            "round_number": self.round_number,
            "trump": self.trump.value if self.trump else None,
            "trump_symbol": self.trump.symbol if self.trump else None,
            "trick": [p.to_dict() for p in self.trick],
            "last_trick": [p.to_dict() for p in self.last_trick],
            "last_trick_winner": dict(self.last_trick_winner) if self.last_trick_winner else None,
            "current_turn": self.current_turn,
            "current_player_id": current["id"] if current else None,
            "scores": dict(self.scores),
            "round_scores": dict(self.round_scores),
            "winning_score": self.winning_score,
            "winning_team": self.winning_team,
            "version": self.version,
            "players": []
        }

        for seat, p in enumerate(self.players):
            player_data = {
                "id": p["id"],
                "name": p["name"],
                "team": p["team"],
                "seat": seat,
                "is_bot": p["is_bot"],
                "connected": p["connected"],
                "card_count": len(p["cards"])
            }
            # Only the requesting player sees their own hand
            if self.reveal_all or p["id"] == player_id:
                player_data["cards"] = [c.to_dict() for c in p["cards"]]
            state["players"].append(player_data)

        seat = self.player_index(player_id) if player_id else None
        if seat is not None:
            player = self.players[seat]
            state["my_seat"] = seat
            state["my_team"] = player["team"]
            state["my_cards"] = [c.to_dict() for c in player["cards"]]
            if self.status == GameStatus.PLAYING and seat == self.current_turn:
                state["valid_card_indexes"] = get_valid_card_indexes(player["cards"], self.trick, self.trump)
            else:
                state["valid_card_indexes"] = []

        return state
