"""End-to-end convergence tests on Kuhn poker."""

import pytest
import numpy as np

from cfrkit.game import new_game
from cfrkit.solver import (
    CFRSolver,
    DiscountParams,
    ExternalSamplingCFR,
    PolicyTable,
    SolverConfig,
    VanillaCFR,
    average_strategy_fn,
    best_response_value,
    expected_value,
    exploitability,
    make_engine,
)
from conftest import KUHN_GAME_VALUE

BET = 1  # Action index of bet/call; 0 is check/fold


@pytest.fixture(scope="module")
def vanilla_solution():
    """Vanilla CFR trained for 10,000 iterations."""
    profile = PolicyTable()
    engine = VanillaCFR(profile)
    values = []
    for _ in range(10_000):
        values.append(engine.run(new_game()))
        profile.update()
    return profile, float(np.mean(values))


def bet_probability(profile: PolicyTable, player: int, key: str) -> float:
    return float(profile.get_average_strategy(player, key.encode())[BET])


class TestVanillaConvergence:
    def test_game_value(self, vanilla_solution):
        _, mean_value = vanilla_solution
        assert mean_value == pytest.approx(KUHN_GAME_VALUE, abs=0.01)

    def test_average_strategy_value(self, vanilla_solution):
        profile, _ = vanilla_solution
        value = expected_value(new_game(), average_strategy_fn(profile))
        assert value == pytest.approx(KUHN_GAME_VALUE, abs=0.01)

    def test_exploitability(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert exploitability(new_game, profile) < 0.01

    def test_info_sets(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert len(profile) == 12
        assert profile.iter == 10_001


class TestKuhnEquilibrium:
    """Closed-form equilibrium family, parameterized by alpha in [0, 1/3]."""

    def test_player0_jack_bluffs_at_most_a_third(self, vanilla_solution):
        profile, _ = vanilla_solution
        alpha = bet_probability(profile, 0, "J-rr")
        assert -0.05 <= alpha <= 1/3 + 0.05

    def test_player0_king_bets_three_alpha(self, vanilla_solution):
        profile, _ = vanilla_solution
        alpha = bet_probability(profile, 0, "J-rr")
        assert bet_probability(profile, 0, "K-rr") == pytest.approx(3 * alpha, abs=0.1)

    def test_player0_queen_checks(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert bet_probability(profile, 0, "Q-rr") == pytest.approx(0.0, abs=0.05)

    def test_player0_queen_calls_alpha_plus_third(self, vanilla_solution):
        profile, _ = vanilla_solution
        alpha = bet_probability(profile, 0, "J-rr")
        assert bet_probability(profile, 0, "Q-rrcb") == pytest.approx(alpha + 1/3, abs=0.1)

    def test_player0_extremes_after_check_bet(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert bet_probability(profile, 0, "J-rrcb") == pytest.approx(0.0, abs=0.05)
        assert bet_probability(profile, 0, "K-rrcb") == pytest.approx(1.0, abs=0.05)

    def test_player1_queen_calls_a_third(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert bet_probability(profile, 1, "Q-rrb") == pytest.approx(1/3, abs=0.05)

    def test_player1_jack_bluffs_a_third(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert bet_probability(profile, 1, "J-rrc") == pytest.approx(1/3, abs=0.05)

    def test_player1_king_always_bets_and_calls(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert bet_probability(profile, 1, "K-rrc") == pytest.approx(1.0, abs=0.05)
        assert bet_probability(profile, 1, "K-rrb") == pytest.approx(1.0, abs=0.05)

    def test_player1_jack_folds_to_bet(self, vanilla_solution):
        profile, _ = vanilla_solution
        assert bet_probability(profile, 1, "J-rrb") == pytest.approx(0.0, abs=0.05)


class TestDiscountedVariants:
    @pytest.mark.parametrize("params", [
        DiscountParams.cfr_plus(),
        DiscountParams.linear(),
        DiscountParams.discounted(),
    ], ids=["cfr_plus", "linear", "discounted"])
    def test_converges(self, params):
        profile = PolicyTable(params)
        engine = VanillaCFR(profile)
        for _ in range(2000):
            engine.run(new_game())
            profile.update()

        assert exploitability(new_game, profile) < 0.02


class TestSampledConvergence:
    def test_external_sampling(self):
        rng = np.random.default_rng(1)
        profile = PolicyTable()
        engine = ExternalSamplingCFR(profile, rng=rng)
        for _ in range(10_000):
            engine.run(new_game(rng))
            profile.update()

        assert exploitability(new_game, profile) < 0.05

    @pytest.mark.parametrize("algorithm", ["outcome", "vr"])
    def test_sampled_variants_improve(self, algorithm):
        rng = np.random.default_rng(2)
        profile = PolicyTable()
        uniform = exploitability(new_game, profile)

        engine = make_engine(SolverConfig(algorithm=algorithm), profile, rng)
        for _ in range(20_000):
            engine.run(new_game(rng))
            profile.update()

        assert exploitability(new_game, profile) < uniform / 2


class TestBestResponse:
    def test_best_response_beats_uniform(self):
        uniform = average_strategy_fn(PolicyTable())
        value = expected_value(new_game(), uniform)

        assert best_response_value(new_game(), uniform, 0) > value
        assert best_response_value(new_game(), uniform, 1) > -value

    def test_exploitability_non_negative(self):
        assert exploitability(new_game, PolicyTable()) > 0


class TestCFRSolver:
    def test_solve_with_callback(self):
        reports = []
        config = SolverConfig(algorithm="vanilla", num_iterations=300, report_interval=100)
        solver = CFRSolver(new_game, config)

        profile = solver.solve(callback=lambda i, v: reports.append((i, v)))

        assert [i for i, _ in reports] == [100, 200, 300]
        assert profile.iter == 301
        assert solver.num_runs == 300

    def test_runs_per_iteration(self):
        config = SolverConfig(algorithm="outcome", num_iterations=25, runs_per_iteration=4, seed=1)
        solver = CFRSolver(new_game, config)

        profile = solver.solve()

        assert solver.num_runs == 4 * 25
        assert profile.iter == 26

    def test_robust_k_reaches_engine(self):
        engine = make_engine(SolverConfig(algorithm="robust", robust_k=2), PolicyTable())
        assert engine.traversing_sampler.k == 2

    def test_continues_existing_profile(self):
        profile = PolicyTable()
        config = SolverConfig(algorithm="external", num_iterations=50, seed=3)
        CFRSolver(new_game, config, profile).solve()
        CFRSolver(new_game, config, profile).solve()
        assert profile.iter == 101

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError):
            make_engine(SolverConfig(algorithm="nope"), PolicyTable())

    @pytest.mark.parametrize("algorithm", [
        "vanilla", "chance", "external", "outcome", "average", "robust", "vr",
    ])
    def test_every_algorithm_runs(self, algorithm):
        config = SolverConfig(algorithm=algorithm, num_iterations=20, seed=0)
        profile = CFRSolver(new_game, config).solve()
        assert len(profile) > 0
        for _, _, policy in profile.records():
            assert policy.get_strategy().sum() == pytest.approx(1.0, abs=1e-5)
