"""
cfrkit: Tabular Counterfactual Regret Minimization

A Python engine for computing approximate Nash equilibria of two-player,
zero-sum, extensive-form games of imperfect information using CFR and its
Monte Carlo variants (chance, external, outcome, average-strategy and
variance-reduced sampling).
"""

__version__ = "0.1.0"
