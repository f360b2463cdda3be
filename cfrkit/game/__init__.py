"""Game tree contract and reference games."""

from .tree import (
    GameTreeNode,
    NodeType,
    count_info_sets,
    count_nodes,
    count_terminal_nodes,
    sample_chance_child,
    visit,
)
from .kuhn import Card, KuhnNode, new_game

__all__ = [
    "GameTreeNode",
    "NodeType",
    "count_info_sets",
    "count_nodes",
    "count_terminal_nodes",
    "sample_chance_child",
    "visit",
    "Card",
    "KuhnNode",
    "new_game",
]
