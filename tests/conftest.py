"""Pytest configuration and fixtures."""

import pytest
import tempfile
from pathlib import Path

import numpy as np

from cfrkit.game import new_game
from cfrkit.game.tree import GameTreeNode, NodeType
from cfrkit.solver import PolicyTable

KUHN_GAME_VALUE = -1.0 / 18


@pytest.fixture
def rng():
    """Seeded random generator for reproducible sampling."""
    return np.random.default_rng(42)


@pytest.fixture
def kuhn_factory(rng):
    """Callable returning fresh Kuhn poker roots sharing the seeded generator."""
    return lambda: new_game(rng)


@pytest.fixture
def profile():
    return PolicyTable()


@pytest.fixture
def temp_file():
    """Create a temporary file that's cleaned up after the test."""
    files = []

    def _temp_file(suffix=""):
        f = tempfile.NamedTemporaryFile(suffix=suffix, delete=False)
        files.append(Path(f.name))
        f.close()
        return Path(f.name)

    yield _temp_file

    # Cleanup
    for f in files:
        if f.exists():
            f.unlink()


class CountingNode(GameTreeNode):
    """Wraps a node and counts close() calls per wrapped node."""

    def __init__(self, inner: GameTreeNode, closes: dict):
        self.inner = inner
        self.closes = closes
        closes.setdefault(self, 0)
        self._children = {}

    def type(self) -> NodeType:
        return self.inner.type()

    def player(self) -> int:
        return self.inner.player()

    def num_children(self) -> int:
        return self.inner.num_children()

    def get_child(self, i: int) -> "CountingNode":
        if i not in self._children:
            self._children[i] = CountingNode(self.inner.get_child(i), self.closes)
        return self._children[i]

    def get_child_probability(self, i: int) -> float:
        return self.inner.get_child_probability(i)

    def sample_child(self) -> "CountingNode":
        child = self.inner.sample_child()
        for i in range(self.inner.num_children()):
            if self.inner.get_child(i) is child:
                return self.get_child(i)
        return CountingNode(child, self.closes)

    def info_set(self, player: int) -> bytes:
        return self.inner.info_set(player)

    def utility(self, player: int) -> float:
        return self.inner.utility(player)

    def close(self) -> None:
        self.closes[self] += 1
        self.inner.close()


class ToyNode(GameTreeNode):
    """
    Small hand-built tree node for engine tests.

    Player nodes take a key (shared keys make histories indistinguishable),
    chance nodes take child probabilities, terminals take player 0's payoff.
    """

    def __init__(
        self,
        node_type: NodeType,
        player: int = -1,
        key: bytes = b"",
        children=(),
        probs=(),
        payoff: float = 0.0,
        log=None,
    ):
        self.node_type = node_type
        self._player = player
        self.key = key
        self.children = list(children)
        self.probs = list(probs)
        self.payoff = payoff
        self.log = log if log is not None else []
        self.rng = np.random.default_rng(0)

    def type(self) -> NodeType:
        return self.node_type

    def player(self) -> int:
        return self._player

    def num_children(self) -> int:
        return len(self.children)

    def get_child(self, i: int) -> GameTreeNode:
        self.log.append((self.key, i))
        return self.children[i]

    def get_child_probability(self, i: int) -> float:
        return self.probs[i]

    def sample_child(self) -> GameTreeNode:
        i = int(self.rng.choice(len(self.children), p=np.asarray(self.probs) / sum(self.probs)))
        return self.get_child(i)

    def info_set(self, player: int) -> bytes:
        return self.key

    def utility(self, player: int) -> float:
        return self.payoff if player == 0 else -self.payoff


def terminal(payoff: float) -> ToyNode:
    return ToyNode(NodeType.TERMINAL, payoff=payoff)


def shared_infoset_game(log: list) -> ToyNode:
    """
    Player 0 moves, then player 1 moves without seeing player 0's action.

    Both player 1 nodes share one infoset, so a traversal that samples
    player 1 must play the same action at both.
    """
    p1_left = ToyNode(
        NodeType.PLAYER, 1, b"p1", [terminal(1.0), terminal(-1.0)], log=log,
    )
    p1_right = ToyNode(
        NodeType.PLAYER, 1, b"p1", [terminal(-1.0), terminal(1.0)], log=log,
    )
    return ToyNode(NodeType.PLAYER, 0, b"p0", [p1_left, p1_right], log=log)
