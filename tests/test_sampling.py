"""Tests for action samplers."""

import pytest
import numpy as np

from cfrkit.errors import InvariantError
from cfrkit.game import NodeType
from cfrkit.sampling import (
    AverageStrategyParams,
    AverageStrategySampler,
    ExternalSampler,
    MultiOutcomeSampler,
    OutcomeSampler,
    RobustSampler,
    check_distribution,
    choose_k,
    compute_rho,
    sample_one,
)
from cfrkit.solver import NodePolicy
from conftest import ToyNode, terminal


def decision(n: int) -> ToyNode:
    return ToyNode(NodeType.PLAYER, 0, b"d", [terminal(float(i)) for i in range(n)])


class TestSampleOne:
    def test_inverse_cdf(self):
        pv = np.array([0.2, 0.5, 0.3], dtype=np.float32)
        assert sample_one(pv, 0.0) == 0
        assert sample_one(pv, 0.19) == 0
        assert sample_one(pv, 0.21) == 1
        assert sample_one(pv, 0.75) == 2

    def test_rounding_returns_last(self):
        pv = np.array([0.5, 0.4995], dtype=np.float32)
        assert sample_one(pv, 0.9999) == 1

    def test_short_distribution_is_fatal(self):
        with pytest.raises(InvariantError):
            sample_one(np.array([0.2, 0.2]), 0.9)

    def test_check_distribution(self):
        check_distribution(np.array([0.25, 0.75], dtype=np.float32))
        with pytest.raises(InvariantError):
            check_distribution(np.array([0.5, 0.6]))
        with pytest.raises(InvariantError):
            check_distribution(np.array([1.5, -0.5]))


class TestExternalSampler:
    def test_all_ones(self):
        sampler = ExternalSampler()
        assert np.allclose(sampler.sample(decision(4), NodePolicy(4)), 1.0)
        assert len(sampler.sample(decision(2), NodePolicy(2))) == 2


class TestOutcomeSampler:
    def test_single_action(self, rng):
        sampler = OutcomeSampler(0.6, rng)
        p = sampler.sample(decision(3), NodePolicy(3))
        assert np.count_nonzero(p) == 1

    def test_probability_mixes_exploration(self, rng):
        sampler = OutcomeSampler(0.5, rng)
        policy = NodePolicy(2)
        policy.current_strategy[:] = [1.0, 0.0]

        for _ in range(50):
            p = sampler.sample(decision(2), policy)
            selected = int(np.argmax(p))
            expected = 0.25 + (0.5 if selected == 0 else 0.0)
            assert p[selected] == pytest.approx(expected)

    def test_on_policy_without_exploration(self, rng):
        sampler = OutcomeSampler(0.0, rng)
        policy = NodePolicy(3)
        policy.current_strategy[:] = [0.0, 0.0, 1.0]

        p = sampler.sample(decision(3), policy)
        assert np.allclose(p, [0.0, 0.0, 1.0])

    def test_selection_frequency(self, rng):
        sampler = OutcomeSampler(0.2, rng)
        policy = NodePolicy(2)
        policy.current_strategy[:] = [0.25, 0.75]

        hits = sum(sampler.sample(decision(2), policy)[1] > 0 for _ in range(5000))
        assert hits / 5000 == pytest.approx(0.1 + 0.8 * 0.75, abs=0.03)


class TestAverageStrategySampler:
    def test_rho(self):
        params = AverageStrategyParams(epsilon=0.05, tau=1.0, beta=0.0)
        rho = compute_rho(np.array([0.0, 2.0, 8.0]), 10.0, params)
        assert np.allclose(rho, [0.05, 0.2, 0.8])

    def test_explores_everything_early(self, rng):
        sampler = AverageStrategySampler(rng=rng)
        assert np.allclose(sampler.sample(decision(3), NodePolicy(3)), 1.0)

    def test_prunes_rare_actions(self, rng):
        params = AverageStrategyParams(epsilon=0.05, tau=1.0, beta=0.0)
        sampler = AverageStrategySampler(params, rng)
        policy = NodePolicy(2)
        policy.strategy_sum[:] = [0.0, 100.0]

        kept = 0
        for _ in range(4000):
            p = sampler.sample(decision(2), policy)
            assert p[1] == pytest.approx(1.0)
            if p[0] > 0:
                assert p[0] == pytest.approx(0.05)
                kept += 1
        assert kept / 4000 == pytest.approx(0.05, abs=0.02)


class TestRobustSampler:
    def test_k_of_n(self, rng):
        sampler = RobustSampler(2, rng)
        p = sampler.sample(decision(5), NodePolicy(5))
        assert np.count_nonzero(p) == 2
        assert np.allclose(p[p > 0], 2 / 5)

    def test_small_node_all_ones(self, rng):
        sampler = RobustSampler(3, rng)
        p = sampler.sample(decision(2), NodePolicy(2))
        assert np.allclose(p, [1.0, 1.0])

    def test_invalid_k(self):
        with pytest.raises(ValueError):
            RobustSampler(0)


class TestMultiOutcomeSampler:
    def test_choose_one_is_identity(self):
        p = np.array([0.2, 0.3, 0.5])
        assert np.allclose(choose_k(p, 1), p)

    def test_inclusion_probabilities_sum_to_k(self):
        p = np.array([0.1, 0.2, 0.3, 0.4])
        assert choose_k(p, 2).sum() == pytest.approx(2.0)
        assert choose_k(p, 3).sum() == pytest.approx(3.0)

    def test_uniform_inclusion(self):
        p = np.full(4, 0.25)
        assert np.allclose(choose_k(p, 2), 0.5)

    def test_exactly_k_sampled(self, rng):
        sampler = MultiOutcomeSampler(2, 0.05, rng)
        policy = NodePolicy(4)
        for _ in range(100):
            p = sampler.sample(decision(4), policy)
            assert np.count_nonzero(p) == 2
            assert np.allclose(p[p > 0], 0.5)

    def test_small_node_all_ones(self, rng):
        sampler = MultiOutcomeSampler(2, 0.05, rng)
        assert np.allclose(sampler.sample(decision(2), NodePolicy(2)), 1.0)

    def test_inclusion_frequency(self, rng):
        sampler = MultiOutcomeSampler(2, 0.05, rng)
        policy = NodePolicy(3)
        policy.current_strategy[:] = [0.7, 0.2, 0.1]

        counts = np.zeros(3)
        for _ in range(4000):
            p = sampler.sample(decision(3), policy)
            counts += p > 0
        q = (policy.current_strategy + 0.05) / (1 + 3 * 0.05)
        assert np.allclose(counts / 4000, choose_k(q.astype(np.float64), 2), atol=0.03)

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            MultiOutcomeSampler(0)
        with pytest.raises(ValueError):
            MultiOutcomeSampler(2, epsilon=0.0)
