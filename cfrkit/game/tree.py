"""Game tree node contract consumed by the solving engine."""

from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Callable

import numpy as np

from cfrkit.errors import InvariantError

# Tolerance for probability vectors that should sum to one.
PROB_TOLERANCE = 1e-3


class NodeType(Enum):
    """Types of nodes in an extensive-form game tree."""
    CHANCE = auto()      # Nature move (card deal)
    TERMINAL = auto()    # End of game, utilities are defined
    PLAYER = auto()      # Player decision node


class GameTreeNode(ABC):
    """
    A node in an extensive-form game tree.

    Concrete games implement this contract; every CFR variant traverses
    it. The engine never mutates node game state, but it does call
    close() exactly once on every node it has finished processing so that
    implementations can release lazily built children.
    """

    @abstractmethod
    def type(self) -> NodeType:
        """Get the type of this node."""

    @abstractmethod
    def player(self) -> int:
        """Get the acting player. Only valid for PLAYER nodes."""

    @abstractmethod
    def num_children(self) -> int:
        """Get the number of direct children of this node."""

    @abstractmethod
    def get_child(self, i: int) -> "GameTreeNode":
        """Get the ith child of this node."""

    @abstractmethod
    def get_child_probability(self, i: int) -> float:
        """Get the probability of the ith child. Only valid for CHANCE nodes."""

    @abstractmethod
    def sample_child(self) -> "GameTreeNode":
        """Sample one child according to the chance probabilities."""

    @abstractmethod
    def info_set(self, player: int) -> bytes:
        """
        Get the information set key for the given player.

        All histories indistinguishable to the player must map to the
        same key. The key is opaque to the engine.
        """

    @abstractmethod
    def utility(self, player: int) -> float:
        """Get the payoff for the given player. Only valid for TERMINAL nodes."""

    def close(self) -> None:
        """Release any resources (children lists, etc.) held by this node."""

    @property
    def is_terminal(self) -> bool:
        return self.type() == NodeType.TERMINAL

    @property
    def is_chance(self) -> bool:
        return self.type() == NodeType.CHANCE

    @property
    def is_player(self) -> bool:
        return self.type() == NodeType.PLAYER


def sample_chance_child(node: GameTreeNode, rng: np.random.Generator) -> GameTreeNode:
    """
    Sample one child of a chance node by inverse-CDF over its probabilities.

    Args:
        node: Chance node to sample from
        rng: Random generator

    Returns:
        The sampled child node

    Raises:
        InvariantError: If the child probabilities do not sum to ~1
    """
    x = rng.random()
    n = node.num_children()
    cum_prob = 0.0
    for i in range(n):
        cum_prob += node.get_child_probability(i)
        if cum_prob > x:
            return node.get_child(i)

    if cum_prob < 1.0 - PROB_TOLERANCE:
        raise InvariantError(
            f"chance probabilities sum to {cum_prob} != 1 "
            f"(node: {node}, num children: {n})"
        )

    return node.get_child(n - 1)


def visit(root: GameTreeNode, fn: Callable[[GameTreeNode], None]) -> None:
    """Call fn on every node of the tree in depth-first order."""
    fn(root)
    for i in range(root.num_children()):
        visit(root.get_child(i), fn)


def count_nodes(root: GameTreeNode) -> int:
    """Count all nodes in the tree rooted at root."""
    total = 1
    for i in range(root.num_children()):
        total += count_nodes(root.get_child(i))
    return total


def count_terminal_nodes(root: GameTreeNode) -> int:
    """Count the terminal nodes in the tree rooted at root."""
    if root.is_terminal:
        return 1

    total = 0
    for i in range(root.num_children()):
        total += count_terminal_nodes(root.get_child(i))
    return total


def count_info_sets(root: GameTreeNode) -> int:
    """Count the distinct (player, infoset key) pairs in the tree."""
    seen: set[tuple[int, bytes]] = set()

    def collect(node: GameTreeNode) -> None:
        if node.is_player:
            player = node.player()
            seen.add((player, node.info_set(player)))

    visit(root, collect)
    return len(seen)
