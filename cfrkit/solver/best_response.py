"""
Best response and exploitability computation.

Given a fixed strategy for every player, computes exact expected values
and the value of the maximally exploitative counter-strategy. These
evaluate the whole tree, so they are meant for small games and tests.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from cfrkit.game.tree import GameTreeNode, NodeType
from .strategy import PolicyTable, uniform_dist

StrategyFn = Callable[[GameTreeNode], np.ndarray]


@dataclass
class _Node:
    """Materialized copy of a game tree node."""
    node_type: NodeType
    player: int = -1
    key: bytes = b""
    utilities: tuple[float, float] = (0.0, 0.0)
    strategy: Optional[np.ndarray] = None
    probs: list[float] = field(default_factory=list)
    children: list["_Node"] = field(default_factory=list)


def average_strategy_fn(profile: PolicyTable) -> StrategyFn:
    """
    Get a strategy function playing the profile's average strategy.

    Infosets the profile never visited are played uniformly.
    """
    def strategy(node: GameTreeNode) -> np.ndarray:
        policy = profile.find_policy(node)
        if policy is None:
            return uniform_dist(node.num_children())
        return policy.get_average_strategy()

    return strategy


def current_strategy_fn(profile: PolicyTable) -> StrategyFn:
    """Get a strategy function playing the profile's current strategy."""
    def strategy(node: GameTreeNode) -> np.ndarray:
        policy = profile.find_policy(node)
        if policy is None:
            return uniform_dist(node.num_children())
        return policy.get_strategy()

    return strategy


def _materialize(node: GameTreeNode, strategy_fn: StrategyFn) -> _Node:
    try:
        node_type = node.type()
        if node_type == NodeType.TERMINAL:
            return _Node(node_type, utilities=(float(node.utility(0)), float(node.utility(1))))

        n = node.num_children()
        result = _Node(node_type)
        if node_type == NodeType.CHANCE:
            result.probs = [node.get_child_probability(i) for i in range(n)]
        else:
            result.player = node.player()
            result.key = node.info_set(result.player)
            result.strategy = np.asarray(strategy_fn(node), dtype=np.float64)

        result.children = [_materialize(node.get_child(i), strategy_fn) for i in range(n)]
        return result
    finally:
        node.close()


def _evaluate(node: _Node, player: int, choices: dict[bytes, int]) -> float:
    """Value for player when player follows choices where set, else the strategy."""
    if node.node_type == NodeType.TERMINAL:
        return node.utilities[player]

    if node.node_type == NodeType.CHANCE:
        return sum(p * _evaluate(c, player, choices) for p, c in zip(node.probs, node.children))

    if node.player == player and node.key in choices:
        return _evaluate(node.children[choices[node.key]], player, choices)

    return sum(
        float(p) * _evaluate(c, player, choices)
        for p, c in zip(node.strategy, node.children)
        if p > 0
    )


def _collect(
    node: _Node,
    player: int,
    reach: float,
    depth: int,
    info_sets: dict[bytes, tuple[int, list[tuple[_Node, float]]]],
) -> None:
    """Group the player's histories by infoset with their counterfactual reach."""
    if node.node_type == NodeType.TERMINAL:
        return

    if node.node_type == NodeType.CHANCE:
        for p, child in zip(node.probs, node.children):
            _collect(child, player, reach * p, depth, info_sets)
        return

    if node.player == player:
        _, histories = info_sets.setdefault(node.key, (depth, []))
        histories.append((node, reach))
        for child in node.children:
            _collect(child, player, reach, depth + 1, info_sets)
    else:
        for p, child in zip(node.strategy, node.children):
            _collect(child, player, reach * float(p), depth, info_sets)


def expected_value(root: GameTreeNode, strategy_fn: StrategyFn) -> float:
    """
    Get the exact expected value for player 0 when everyone plays strategy_fn.

    Args:
        root: Root of the game tree
        strategy_fn: Maps a player node to the acting player's strategy

    Returns:
        Expected utility of player 0
    """
    return _evaluate(_materialize(root, strategy_fn), 0, {})


def best_response_value(root: GameTreeNode, strategy_fn: StrategyFn, player: int) -> float:
    """
    Get the value of a best response for player against strategy_fn.

    The best response picks one action per infoset, deepest infosets
    first, maximizing the counterfactual value summed over the histories
    in the infoset.

    Args:
        root: Root of the game tree
        strategy_fn: Strategy played by the opponent (and ignored for player)
        player: Player computing the best response

    Returns:
        Expected utility of the best response for player
    """
    tree = _materialize(root, strategy_fn)

    info_sets: dict[bytes, tuple[int, list[tuple[_Node, float]]]] = {}
    _collect(tree, player, 1.0, 0, info_sets)

    choices: dict[bytes, int] = {}
    for key, (_, histories) in sorted(info_sets.items(), key=lambda kv: -kv[1][0]):
        n = len(histories[0][0].children)
        action_values = np.zeros(n)
        for node, reach in histories:
            if reach == 0:
                continue
            for a, child in enumerate(node.children):
                action_values[a] += reach * _evaluate(child, player, choices)
        choices[key] = int(np.argmax(action_values))

    return _evaluate(tree, player, choices)


def exploitability(
    root_factory: Callable[[], GameTreeNode],
    profile: PolicyTable,
) -> float:
    """
    Get the exploitability of the profile's average strategy.

    Defined as the mean of both players' best response values, which is
    zero exactly at a Nash equilibrium of a two-player zero-sum game.

    Args:
        root_factory: Callable returning a fresh game root
        profile: Trained policy table
    """
    strategy = average_strategy_fn(profile)
    br0 = best_response_value(root_factory(), strategy, 0)
    br1 = best_response_value(root_factory(), strategy, 1)
    return (br0 + br1) / 2
