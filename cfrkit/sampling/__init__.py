"""Samplers that choose which actions a Monte Carlo CFR traversal explores."""

from .base import Sampler, check_distribution, sample_one
from .external import ExternalSampler
from .outcome import OutcomeSampler
from .average_strategy import AverageStrategyParams, AverageStrategySampler, compute_rho
from .multi_outcome import MultiOutcomeSampler, choose_k
from .robust import RobustSampler

__all__ = [
    "Sampler",
    "check_distribution",
    "sample_one",
    "ExternalSampler",
    "OutcomeSampler",
    "AverageStrategyParams",
    "AverageStrategySampler",
    "compute_rho",
    "MultiOutcomeSampler",
    "choose_k",
    "RobustSampler",
]
