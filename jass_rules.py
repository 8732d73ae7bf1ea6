"""
jass_rules.py - Rules engine for Schieber Jass (trump mode)

This file handles:
- Deck construction and Fisher-Yates shuffling
- Dealing and display sorting of hands
- Card point values
- Move legality (following suit, forced trump, the Buur exemption)
- Trick winner resolution
- Round / game completion checks
- Room code generation
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

NUM_PLAYERS = 4
CARDS_PER_HAND = 9
LAST_TRICK_BONUS = 5
TOTAL_TRICK_POINTS = 152
ROUND_POINTS = TOTAL_TRICK_POINTS + LAST_TRICK_BONUS  # 157
WINNING_SCORE = 1000

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no O, 0, I, 1
ROOM_CODE_LENGTH = 6


class RulesInvariantError(RuntimeError):
    """Raised when the engine reaches a state its rules guarantee can't happen."""


class Suit(Enum):
    HEARTS = "HEARTS"
    DIAMONDS = "DIAMONDS"
    CLUBS = "CLUBS"
    SPADES = "SPADES"

    @property
    def symbol(self) -> str:
        return SUIT_SYMBOLS[self]


class Rank(Enum):
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"
    ACE = "A"


SUIT_SYMBOLS = {
    Suit.HEARTS: "♥",
    Suit.DIAMONDS: "♦",
    Suit.CLUBS: "♣",
    Suit.SPADES: "♠",
}

# Display order for sorted hands
SUIT_ORDER = {
    Suit.HEARTS: 0,
    Suit.DIAMONDS: 1,
    Suit.CLUBS: 2,
    Suit.SPADES: 3,
}

# Hierarchy: 6 < 7 < 8 < 9 < 10 < J < Q < K < A
NORMAL_RANK_ORDER = {
    Rank.SIX: 0,
    Rank.SEVEN: 1,
    Rank.EIGHT: 2,
    Rank.NINE: 3,
    Rank.TEN: 4,
    Rank.JACK: 5,
    Rank.QUEEN: 6,
    Rank.KING: 7,
    Rank.ACE: 8,
}

# Hierarchy: 6 < 7 < 8 < 10 < Q < K < A < 9 (Nell) < J (Buur)
TRUMP_RANK_ORDER = {
    Rank.SIX: 0,
    Rank.SEVEN: 1,
    Rank.EIGHT: 2,
    Rank.TEN: 3,
    Rank.QUEEN: 4,
    Rank.KING: 5,
    Rank.ACE: 6,
    Rank.NINE: 7,
    Rank.JACK: 8,
}

TRUMP_POINTS = {
    Rank.JACK: 20,   # Buur
    Rank.NINE: 14,   # Nell
    Rank.ACE: 11,
    Rank.TEN: 10,
    Rank.KING: 4,
    Rank.QUEEN: 3,
    Rank.EIGHT: 0,
    Rank.SEVEN: 0,
    Rank.SIX: 0,
}

NON_TRUMP_POINTS = {
    Rank.ACE: 11,
    Rank.TEN: 10,
    Rank.KING: 4,
    Rank.QUEEN: 3,
    Rank.JACK: 2,
    Rank.NINE: 0,
    Rank.EIGHT: 0,
    Rank.SEVEN: 0,
    Rank.SIX: 0,
}


@dataclass(frozen=True)
class Card:
    suit: Suit
    rank: Rank

    def __str__(self):
        return f"{self.rank.value}{self.suit.symbol}"

    def to_dict(self):
        return {
            "suit": self.suit.value,
            "rank": self.rank.value
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Card":
        return cls(Suit(data["suit"]), Rank(data["rank"]))


@dataclass(frozen=True)
class PlayedCard:
    player_id: str
    card: Card

    def to_dict(self):
        return {
            "player_id": self.player_id,
            "card": self.card.to_dict()
        }


def _rng(rng: Optional[random.Random]):
    # Falls back to the module-level functions, which share one global generator
    return rng if rng is not None else random


def create_deck(rng: Optional[random.Random] = None) -> List[Card]:
    """Create a freshly shuffled 36-card Jass deck (6 through A in four suits)."""
    rng = _rng(rng)
    deck = [Card(suit, rank) for suit in Suit for rank in Rank]

    # Fisher-Yates: swap each position with a uniformly chosen one at or below it
    for i in range(len(deck) - 1, 0, -1):
        j = rng.randint(0, i)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def sort_hand(cards: Sequence[Card]) -> List[Card]:
    """Sort a hand by suit, then by normal rank. Display only."""
    return sorted(cards, key=lambda c: (SUIT_ORDER[c.suit], NORMAL_RANK_ORDER[c.rank]))


def deal_cards(players: Sequence[Dict], rng: Optional[random.Random] = None) -> List[Dict]:
    """
    Deal one fresh deck to four players.

    Player i receives deck[9i:9i+9], sorted for display. The player dicts
    passed in are not modified; copies with a new "cards" list are returned.
    """
    if len(players) != NUM_PLAYERS:
        raise ValueError(f"Need exactly {NUM_PLAYERS} players to deal")

    deck = create_deck(rng)
    dealt = []
    for i, player in enumerate(players):
        hand = deck[i * CARDS_PER_HAND:(i + 1) * CARDS_PER_HAND]
        dealt.append({**player, "cards": sort_hand(hand)})
    return dealt


def is_trump(card: Card, trump: Optional[Suit]) -> bool:
    return trump is not None and card.suit == trump


def get_card_value(card: Card, trump: Optional[Suit]) -> int:
    """Point value of a card. With no trump every suit uses the plain table."""
    if is_trump(card, trump):
        return TRUMP_POINTS[card.rank]
    return NON_TRUMP_POINTS[card.rank]


def calculate_trick_points(trick: Sequence[PlayedCard], trump: Optional[Suit], is_last_trick: bool) -> int:
    points = sum(get_card_value(p.card, trump) for p in trick)
    if is_last_trick:
        points += LAST_TRICK_BONUS
    return points


def is_valid_move(card: Card, hand: Sequence[Card], trick: Sequence[PlayedCard], trump: Optional[Suit]) -> bool:
    """Validate if a card can be played according to the rules."""
    # Leading the trick, any card is valid
    if not trick:
        return True

    lead_suit = trick[0].card.suit

    # --- Trump was led ---
    if trump is not None and lead_suit == trump:
        trumps_in_hand = [c for c in hand if c.suit == trump]
        if not trumps_in_hand:
            return True

        # The Buur never has to be played
        only_buur = len(trumps_in_hand) == 1 and trumps_in_hand[0].rank == Rank.JACK
        if only_buur:
            return True

        return card.suit == trump

    # --- Another suit was led ---
    has_lead_suit = any(c.suit == lead_suit for c in hand)
    if has_lead_suit:
        # Follow suit or cut with trump (Stechen). Under-trumping is not restricted.
        return card.suit == lead_suit or is_trump(card, trump)

    return True


def get_valid_cards(hand: Sequence[Card], trick: Sequence[PlayedCard], trump: Optional[Suit]) -> List[Card]:
    return [c for c in hand if is_valid_move(c, hand, trick, trump)]


def get_valid_card_indexes(hand: Sequence[Card], trick: Sequence[PlayedCard], trump: Optional[Suit]) -> List[int]:
    return [i for i, c in enumerate(hand) if is_valid_move(c, hand, trick, trump)]


def beats(challenger: Card, best: Card, lead_suit: Suit, trump: Optional[Suit]) -> bool:
    """True if challenger takes the trick away from the current best card."""
    challenger_trump = is_trump(challenger, trump)
    best_trump = is_trump(best, trump)

    if challenger_trump and not best_trump:
        return True
    if best_trump and not challenger_trump:
        return False
    if challenger_trump and best_trump:
        return TRUMP_RANK_ORDER[challenger.rank] > TRUMP_RANK_ORDER[best.rank]

    # Neither is trump: only the lead suit can win
    if challenger.suit != lead_suit:
        return False
    if best.suit != lead_suit:
        return True
    return NORMAL_RANK_ORDER[challenger.rank] > NORMAL_RANK_ORDER[best.rank]


def get_trick_winner(trick: Sequence[PlayedCard], trump: Optional[Suit]) -> int:
    """Index within the trick of the winning card, or -1 for an empty trick."""
    if not trick:
        return -1

    lead_suit = trick[0].card.suit
    winner_index = 0
    best = trick[0].card
    for i in range(1, len(trick)):
        if beats(trick[i].card, best, lead_suit, trump):
            winner_index = i
            best = trick[i].card
    return winner_index


def is_round_over(players: Sequence[Dict]) -> bool:
    return all(len(p["cards"]) == 0 for p in players)


def is_game_over(scores: Dict[str, int], winning_score: int = WINNING_SCORE) -> bool:
    return scores["team1"] >= winning_score or scores["team2"] >= winning_score


def get_winning_team(scores: Dict[str, int], winning_score: int = WINNING_SCORE) -> Optional[int]:
    """Team that crossed the winning score; the higher total if both did."""
    team1_done = scores["team1"] >= winning_score
    team2_done = scores["team2"] >= winning_score
    if team1_done and team2_done:
        return 1 if scores["team1"] >= scores["team2"] else 2
    if team1_done:
        return 1
    if team2_done:
        return 2
    return None


def choose_trump(rng: Optional[random.Random] = None) -> Suit:
    return _rng(rng).choice(list(Suit))


def choose_bot_card(hand: Sequence[Card], trick: Sequence[PlayedCard], trump: Optional[Suit],
                    rng: Optional[random.Random] = None) -> int:
    """Pick a uniformly random legal card. Returns its index in the hand."""
    valid = get_valid_card_indexes(hand, trick, trump)
    if not valid:
        logger.error("No legal move for hand %s on trick %s (trump %s)",
                     [str(c) for c in hand], [str(p.card) for p in trick], trump)
        raise RulesInvariantError("Bot has no legal card to play")
    return _rng(rng).choice(valid)


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    rng = _rng(rng)
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
