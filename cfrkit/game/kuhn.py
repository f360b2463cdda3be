"""
Kuhn poker game tree.

Kuhn poker is the smallest interesting poker game: a three card deck
(J, Q, K), one private card per player, one betting round with a single
bet size. It has 58 nodes, 30 terminals and 12 information sets, and a
known equilibrium family where the first player's game value is -1/18.
"""

from enum import IntEnum
from typing import Optional

import numpy as np

from cfrkit.errors import InvariantError
from .tree import GameTreeNode, NodeType, sample_chance_child

CHANCE = -1
PLAYER0 = 0
PLAYER1 = 1

# History characters
DEAL = "r"
CHECK = "c"
BET = "b"

TERMINAL_HISTORIES = frozenset({"rrcc", "rrcbc", "rrcbb", "rrbc", "rrbb"})


class Card(IntEnum):
    """Kuhn poker cards, ordered by rank."""
    JACK = 0
    QUEEN = 1
    KING = 2

    def __str__(self) -> str:
        return "JQK"[self.value]


class KuhnNode(GameTreeNode):
    """
    A node in the Kuhn poker tree.

    Children are built on first access and dropped again by close().
    Terminal nodes are labelled with the player whose turn it would be,
    i.e. not the player who acted last.
    """

    def __init__(
        self,
        rng: np.random.Generator,
        player: int = CHANCE,
        history: str = "",
        p0_card: Optional[Card] = None,
        p1_card: Optional[Card] = None,
    ):
        self.rng = rng
        self._player = player
        self.history = history
        self.p0_card = p0_card
        self.p1_card = p1_card

        self._children: Optional[list["KuhnNode"]] = None
        self._probabilities: Optional[list[float]] = None

    def __repr__(self) -> str:
        return (
            f"KuhnNode(player={self._player}, history={self.history!r}, "
            f"cards=({self.p0_card}, {self.p1_card}))"
        )

    def type(self) -> NodeType:
        if self.history in TERMINAL_HISTORIES:
            return NodeType.TERMINAL
        if self._player == CHANCE:
            return NodeType.CHANCE
        return NodeType.PLAYER

    def player(self) -> int:
        return self._player

    def num_children(self) -> int:
        return len(self._get_children())

    def get_child(self, i: int) -> "KuhnNode":
        return self._get_children()[i]

    def get_child_probability(self, i: int) -> float:
        self._get_children()
        return self._probabilities[i]

    def sample_child(self) -> "KuhnNode":
        return sample_chance_child(self, self.rng)

    def info_set(self, player: int) -> bytes:
        return f"{self.player_card(player)}-{self.history}".encode()

    def utility(self, player: int) -> float:
        card_player = self.player_card(player)
        card_opponent = self.player_card(1 - player)

        if self.history in ("rrcbc", "rrbc"):
            # Last player folded, the player to act wins.
            return 1.0 if self._player == player else -1.0

        if self.history == "rrcc":
            # Showdown with no bets
            return 1.0 if card_player > card_opponent else -1.0

        if self.history not in ("rrcbb", "rrbb"):
            raise InvariantError(f"unexpected terminal history: {self.history!r}")

        # Showdown with one bet called
        return 2.0 if card_player > card_opponent else -2.0

    def close(self) -> None:
        self._children = None
        self._probabilities = None

    def player_card(self, player: int) -> Optional[Card]:
        return self.p0_card if player == PLAYER0 else self.p1_card

    def _get_children(self) -> list["KuhnNode"]:
        if self._children is None:
            self._build_children()
        return self._children

    def _build_children(self) -> None:
        depth = len(self.history)
        probabilities = None

        if depth == 0:
            children = [
                KuhnNode(self.rng, CHANCE, DEAL, p0_card=card)
                for card in Card
            ]
            probabilities = [1.0 / len(children)] * len(children)
        elif depth == 1:
            # Both players can't be dealt the same card.
            children = [
                KuhnNode(self.rng, PLAYER0, self.history + DEAL, self.p0_card, card)
                for card in Card
                if card != self.p0_card
            ]
            probabilities = [1.0 / len(children)] * len(children)
        elif depth in (2, 3) or (depth == 4 and self.history == "rrcb"):
            children = [
                self._act(choice) for choice in (CHECK, BET)
            ]
        else:
            children = []

        self._children = children
        self._probabilities = probabilities

    def _act(self, choice: str) -> "KuhnNode":
        return KuhnNode(
            self.rng,
            1 - self._player,
            self.history + choice,
            self.p0_card,
            self.p1_card,
        )


def new_game(rng: Optional[np.random.Generator] = None) -> KuhnNode:
    """
    Create the root (deal) node of a Kuhn poker game.

    Args:
        rng: Random generator used for chance sampling

    Returns:
        Root chance node
    """
    return KuhnNode(rng if rng is not None else np.random.default_rng())
