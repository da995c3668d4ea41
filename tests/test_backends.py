"""
Tests for the optimization backends.

This module tests the quadratic (mean-variance), linear (mean-ES) and random
search backends, and the maximum-return portfolio.
"""

import pytest
import numpy as np

from frontierlab.infrastructure.optimization import (
    LinearBackend, MarketMoments, QuadraticBackend, RandomPortfolioSampler, RandomSearchBackend,
    ScalarObjective, SolverSettings, as_generator, canonicalize, expected_shortfall,
    max_return_portfolio, pareto_filter, variance
)
from frontierlab.domain.value_objects import FullInvestment, Group, LongOnly, RiskMeasure
from frontierlab.domain.exceptions import (
    ConstraintInfeasible, PointInfeasible, SolverError, UnboundedProblem, ValidationError
)


@pytest.fixture
def moments(returns):
    return MarketMoments.from_returns(returns)


@pytest.fixture
def canonical(base_spec):
    return canonicalize(base_spec.constraints, base_spec.assets)


@pytest.fixture
def feasible_samples(canonical):
    sampler = RandomPortfolioSampler(canonical)
    return sampler.sample(500, as_generator(0))


class TestQuadraticBackend:
    """Test mean-variance quadratic programming."""

    @pytest.fixture
    def backend(self):
        return QuadraticBackend()

    def test_minimum_variance(self, backend, moments, canonical, feasible_samples):
        solution = backend.minimize(moments, canonical, ScalarObjective.risk_only(RiskMeasure.VARIANCE))

        assert canonical.is_satisfied(solution.weights, 1e-6)
        best_sampled = min(variance(w, moments) for w in feasible_samples)
        assert variance(solution.weights, moments) <= best_sampled + 1e-9

    def test_target_return_is_met(self, backend, moments, canonical):
        objective = ScalarObjective.risk_only(RiskMeasure.VARIANCE)
        low = backend.minimize(moments, canonical, objective).weights @ moments.mu
        high = max_return_portfolio(moments, canonical).weights @ moments.mu
        target = (low + high) / 2

        solution = backend.minimize(moments, canonical, objective, target_return=target)
        assert solution.weights @ moments.mu == pytest.approx(target, abs=1e-6)
        assert canonical.is_satisfied(solution.weights, 1e-6)

    def test_unreachable_target(self, backend, moments, canonical):
        high = max_return_portfolio(moments, canonical).weights @ moments.mu
        with pytest.raises(PointInfeasible):
            backend.minimize(
                moments, canonical, ScalarObjective.risk_only(RiskMeasure.VARIANCE),
                target_return=high + 0.01
            )

    def test_mean_stddev_scalarization(self, backend, moments, canonical):
        objective = ScalarObjective(risk=RiskMeasure.STD_DEV, include_return=True, risk_aversion=0.5)
        solution = backend.minimize(moments, canonical, objective)

        assert canonical.is_satisfied(solution.weights, 1e-6)
        assert solution.objective_value <= objective.value(np.full(5, 0.2), moments) + 1e-9

    def test_rejects_expected_shortfall(self, backend, moments, canonical):
        with pytest.raises(ValidationError):
            backend.minimize(moments, canonical, ScalarObjective.risk_only(RiskMeasure.EXPECTED_SHORTFALL))

    def test_iteration_cap_is_solver_error(self, moments, canonical):
        backend = QuadraticBackend(SolverSettings(max_iterations=1))
        with pytest.raises(SolverError):
            backend.minimize(moments, canonical, ScalarObjective.risk_only(RiskMeasure.VARIANCE))


class TestLinearBackend:
    """Test mean-ES linear programming."""

    @pytest.fixture
    def backend(self):
        return LinearBackend()

    def test_minimum_expected_shortfall(self, backend, moments, canonical, feasible_samples):
        objective = ScalarObjective.risk_only(RiskMeasure.EXPECTED_SHORTFALL, p=0.95)
        solution = backend.minimize(moments, canonical, objective)

        assert canonical.is_satisfied(solution.weights, 1e-6)
        best_sampled = min(expected_shortfall(w, moments, 0.95) for w in feasible_samples)
        assert solution.objective_value <= best_sampled + 1e-9

    def test_lp_optimum_equals_historical_es(self, backend, moments, canonical):
        objective = ScalarObjective.risk_only(RiskMeasure.EXPECTED_SHORTFALL, p=0.95)
        solution = backend.minimize(moments, canonical, objective)

        assert solution.objective_value == pytest.approx(expected_shortfall(solution.weights, moments, 0.95))

    def test_target_return_is_met(self, backend, moments, canonical):
        objective = ScalarObjective.risk_only(RiskMeasure.EXPECTED_SHORTFALL)
        low = backend.minimize(moments, canonical, objective).weights @ moments.mu
        high = max_return_portfolio(moments, canonical).weights @ moments.mu
        target = low + 0.25 * (high - low)

        solution = backend.minimize(moments, canonical, objective, target_return=target)
        assert solution.weights @ moments.mu == pytest.approx(target, abs=1e-6)

    def test_unreachable_target(self, backend, moments, canonical):
        high = max_return_portfolio(moments, canonical).weights @ moments.mu
        with pytest.raises(PointInfeasible):
            backend.minimize(
                moments, canonical, ScalarObjective.risk_only(RiskMeasure.EXPECTED_SHORTFALL),
                target_return=high + 0.01
            )

    def test_return_only_delegates_to_max_return(self, backend, moments, canonical):
        solution = backend.minimize(moments, canonical, ScalarObjective.return_only())
        expected = max_return_portfolio(moments, canonical)
        assert solution.weights @ moments.mu == pytest.approx(expected.weights @ moments.mu)


class TestMaxReturnPortfolio:
    """Test the maximum-return bounding portfolio."""

    def test_long_only_concentrates_in_best_asset(self, moments, assets):
        canonical = canonicalize([FullInvestment(), LongOnly()], assets)
        solution = max_return_portfolio(moments, canonical)

        best = int(np.argmax(moments.mu))
        assert solution.weights[best] == pytest.approx(1.0, abs=1e-8)

    def test_unbounded_without_asset_bounds(self, moments, assets):
        canonical = canonicalize([FullInvestment()], assets)
        with pytest.raises(UnboundedProblem):
            max_return_portfolio(moments, canonical)

    def test_jointly_infeasible_groups(self, moments, assets):
        canonical = canonicalize(
            [FullInvestment(), LongOnly(), Group(groups=[(0, 1), (2, 3, 4)], group_max=0.2)],
            assets
        )
        with pytest.raises(ConstraintInfeasible):
            max_return_portfolio(moments, canonical)


class TestRandomSearch:
    """Test random portfolio sampling and search."""

    def test_samples_satisfy_constraints(self, canonical, feasible_samples):
        assert feasible_samples.shape == (500, 5)
        assert canonical.satisfied_mask(feasible_samples, 1e-6).all()

    def test_equal_weight_seed_is_included(self, feasible_samples):
        np.testing.assert_allclose(feasible_samples[0], np.full(5, 0.2))

    def test_sampling_is_reproducible(self, canonical):
        sampler = RandomPortfolioSampler(canonical)
        first = sampler.sample(100, as_generator(11))
        second = sampler.sample(100, as_generator(11))
        np.testing.assert_array_equal(first, second)

    def test_requires_finite_lower_bounds(self, assets):
        canonical = canonicalize([FullInvestment()], assets)
        with pytest.raises(UnboundedProblem):
            RandomPortfolioSampler(canonical)

    def test_minimize_returns_best_candidate(self, moments, canonical):
        backend = RandomSearchBackend(search_size=300, random_state=5)
        objective = ScalarObjective.risk_only(RiskMeasure.VARIANCE)
        solution = backend.minimize(moments, canonical, objective)

        values = objective.batch_values(solution.candidates, moments)
        assert solution.objective_value == pytest.approx(values.min())
        assert solution.candidates.shape[0] == 300

    def test_minimize_respects_target(self, moments, canonical):
        backend = RandomSearchBackend(search_size=300, random_state=5)
        objective = ScalarObjective.risk_only(RiskMeasure.VARIANCE)
        target = float(np.median(backend.sample(moments, canonical) @ moments.mu))

        solution = backend.minimize(moments, canonical, objective, target_return=target)
        assert solution.weights @ moments.mu >= target - 1e-6

        with pytest.raises(PointInfeasible):
            backend.minimize(moments, canonical, objective, target_return=1.0)


class TestParetoFilter:
    """Test strict Pareto filtering."""

    def test_keeps_only_non_dominated(self):
        risk = np.array([1.0, 2.0, 3.0, 2.0, 1.0])
        ret = np.array([1.0, 3.0, 2.0, 3.0, 0.5])

        kept = pareto_filter(risk, ret)
        assert kept.tolist() == [0, 1]

    def test_empty_input(self):
        assert pareto_filter(np.array([]), np.array([])).size == 0
