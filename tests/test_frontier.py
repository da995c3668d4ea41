"""
Tests for efficient frontier construction.

This module tests the exact mean-variance and mean-ES frontiers over a target
grid, the random-search frontier, and the frontier entity itself.
"""

import pytest
import numpy as np

from frontierlab.infrastructure.optimization import (
    FrontierSolver, MarketMoments, QuadraticBackend, ScalarObjective, SolverSettings, canonicalize,
    solve_frontier, variance
)
from frontierlab.infrastructure.optimization import frontier as frontier_module
from frontierlab.infrastructure.optimization.frontier import drop_dominated, thin_by_risk
from frontierlab.infrastructure.performance import ParallelProcessor, ProcessingConfig
from frontierlab.domain.entities import PortfolioSpec
from frontierlab.domain.value_objects import (
    Box, FrontierMethod, FullInvestment, FrontierPoint, RiskMeasure
)
from frontierlab.domain.exceptions import (
    AssetMismatch, ConstraintInfeasible, EmptyFrontier, PointInfeasible, SolverError, ValidationError
)
from frontierlab.domain.interfaces import IOptimizationBackend


@pytest.fixture
def solver():
    return FrontierSolver(processor=ParallelProcessor(ProcessingConfig(max_workers=2)))


def assert_constraints_hold(frontier, spec, tol=1e-6):
    canonical = canonicalize(spec.constraints, spec.assets)
    for point in frontier:
        assert canonical.is_satisfied(point.weight_vector(), tol)


class TestMeanVarianceFrontier:
    """Test the exact mean-variance frontier."""

    @pytest.fixture
    def frontier(self, solver, meanvar_spec, returns):
        return solver.solve(meanvar_spec, returns, method='mean-var', n_points=25)

    def test_point_accounting(self, frontier):
        info = frontier.info
        assert 0 < len(frontier) <= 25
        assert len(frontier) + info['skipped'] + info['dominated'] == 25
        assert info['n_targets'] == 25

    def test_metadata(self, frontier):
        assert frontier.method is FrontierMethod.MEAN_VARIANCE
        assert frontier.match_column == 'StdDev'
        assert frontier.source == 'solved'
        assert frontier.info['method'] == 'mean-var'

    def test_every_point_is_feasible(self, frontier, meanvar_spec):
        assert_constraints_hold(frontier, meanvar_spec)

    def test_sorted_and_non_dominated(self, frontier):
        risks = np.array([p.risk for p in frontier])
        rets = np.array([p.expected_return for p in frontier])

        assert np.all(np.diff(risks) >= -1e-12)
        assert np.all(np.diff(rets) >= -1e-9)

    def test_lowest_risk_point_is_minimum_variance(self, frontier, meanvar_spec, returns):
        moments = MarketMoments.from_returns(returns)
        canonical = canonicalize(meanvar_spec.constraints, meanvar_spec.assets)
        min_var = QuadraticBackend().minimize(moments, canonical, ScalarObjective.risk_only(RiskMeasure.VARIANCE))

        assert frontier.min_risk_point().metrics['var'] == pytest.approx(variance(min_var.weights, moments), rel=1e-4)

    def test_risk_column_matches_metrics(self, frontier):
        for point in frontier:
            assert point.risk == pytest.approx(point.metrics['StdDev'])
            assert point.risk == pytest.approx(np.sqrt(point.metrics['var']))

    def test_to_frame_layout(self, frontier, assets):
        frame = frontier.to_frame()

        assert list(frame.columns) == ['return', 'risk', *assets]
        assert frame.index.name == 'point'
        assert len(frame) == len(frontier)
        np.testing.assert_allclose(frame[list(assets)].sum(axis=1), 1.0, atol=1e-6)

    def test_variance_match_column(self, solver, meanvar_spec, returns):
        frontier = solver.solve(meanvar_spec, returns, method='mean-var', match_column='var', n_points=10)
        assert frontier.match_column == 'var'
        for point in frontier:
            assert point.risk == pytest.approx(point.metrics['var'])

    def test_sequential_and_parallel_agree(self, meanvar_spec, returns):
        sequential = FrontierSolver(processor=ParallelProcessor(ProcessingConfig(max_workers=1)))
        parallel = FrontierSolver(processor=ParallelProcessor(ProcessingConfig(max_workers=4)))

        a = sequential.solve(meanvar_spec, returns, n_points=8)
        b = parallel.solve(meanvar_spec, returns, n_points=8)
        np.testing.assert_allclose(a.to_frame().to_numpy(), b.to_frame().to_numpy(), atol=1e-6)


class TestMeanESFrontier:
    """Test the exact mean-ES frontier."""

    @pytest.fixture
    def frontier(self, solver, meanes_spec, returns):
        return solver.solve(meanes_spec, returns, method='mean-ES', n_points=15)

    def test_defaults_to_es_axis(self, frontier):
        assert frontier.match_column == 'ES'
        assert frontier.info['es_confidence'] == 0.95

    def test_feasible_sorted_non_dominated(self, frontier, meanes_spec):
        assert_constraints_hold(frontier, meanes_spec)
        risks = np.array([p.risk for p in frontier])
        rets = np.array([p.expected_return for p in frontier])
        assert np.all(np.diff(risks) >= -1e-12)
        assert np.all(np.diff(rets) >= -1e-9)
        assert len(frontier) + frontier.info['skipped'] + frontier.info['dominated'] == 15

    def test_es_confidence_from_spec(self, solver, base_spec, returns):
        from frontierlab.domain.value_objects import ReturnObjective, RiskObjective
        spec = base_spec.add_objective(RiskObjective('ES', p=0.9)).add_objective(ReturnObjective())
        frontier = solver.solve(spec, returns, method='mean-ES', n_points=5)
        assert frontier.info['es_confidence'] == 0.9


class TestRandomFrontier:
    """Test the random-search frontier."""

    def test_strictly_pareto_efficient(self, meanvar_spec, returns):
        solver = FrontierSolver(search_size=2000)
        frontier = solver.solve(meanvar_spec, returns, method='random', n_points=2000, random_state=42)

        risks = np.array([p.risk for p in frontier])
        rets = np.array([p.expected_return for p in frontier])
        for i in range(len(frontier)):
            others = np.arange(len(frontier)) != i
            dominated = (risks[others] <= risks[i]) & (rets[others] >= rets[i])
            assert not dominated.any()
        assert frontier.info['n_samples'] == 2000

    def test_thinned_to_requested_points(self, meanvar_spec, returns):
        frontier = solve_frontier(meanvar_spec, returns, method='random', n_points=10, random_state=1, search_size=500)
        assert 1 <= len(frontier) <= 10
        assert_constraints_hold(frontier, meanvar_spec)

    def test_reproducible_with_seed(self, meanvar_spec, returns):
        solver = FrontierSolver(search_size=300)
        a = solver.solve(meanvar_spec, returns, method='random', random_state=9)
        b = solver.solve(meanvar_spec, returns, method='random', random_state=9)
        np.testing.assert_array_equal(a.to_frame().to_numpy(), b.to_frame().to_numpy())

    def test_match_column_from_spec_risk(self, meanes_spec, returns):
        frontier = solve_frontier(meanes_spec, returns, method='random', random_state=3, search_size=300)
        assert frontier.match_column == 'ES'


class TestFrontierErrors:
    """Test input validation and failure modes."""

    def test_asset_mismatch(self, solver, meanvar_spec, returns):
        with pytest.raises(AssetMismatch) as exc_info:
            solver.solve(meanvar_spec, returns.drop(columns=['EM']), n_points=5)
        assert exc_info.value.context['missing'] == ['EM']

    def test_too_few_points(self, solver, meanvar_spec, returns):
        with pytest.raises(ValidationError):
            solver.solve(meanvar_spec, returns, n_points=1)

    def test_infeasible_constraints(self, solver, assets, returns):
        spec = PortfolioSpec(assets=assets, constraints=(FullInvestment(), Box(min=0.0, max=0.1)))
        with pytest.raises(ConstraintInfeasible):
            solver.solve(spec, returns, n_points=5)

    def test_columns_in_any_order(self, solver, meanvar_spec, returns):
        shuffled = returns[['EQM', 'CA', 'EM', 'DS', 'CTAG']]
        frontier = solver.solve(meanvar_spec, shuffled, n_points=5)
        assert frontier.assets == meanvar_spec.assets


class TestFrontierHelpers:
    """Test point ordering and thinning helpers."""

    @staticmethod
    def _point(risk, ret):
        import pandas as pd
        return FrontierPoint(weights=pd.Series([1.0], index=['A']), risk=risk, expected_return=ret)

    def test_drop_dominated(self):
        points = [self._point(2.0, 2.0), self._point(1.0, 1.0), self._point(3.0, 1.5), self._point(4.0, 3.0)]
        kept, dropped = drop_dominated(points)

        assert [p.risk for p in kept] == [1.0, 2.0, 4.0]
        assert dropped == 1

    def test_thin_by_risk_keeps_bucket_maximum(self):
        risk = np.array([0.0, 0.1, 0.2, 0.9, 1.0])
        ret = np.array([0.0, 0.5, 0.6, 0.8, 0.9])

        chosen = thin_by_risk(np.arange(5), risk, ret, 2)
        assert chosen.tolist() == [2, 4]


class TestFrontierEntity:
    """Test the frontier tables and derived points."""

    @pytest.fixture
    def frontier(self, solver, long_only_spec, returns):
        return solver.solve(long_only_spec, returns, n_points=10)

    def test_metrics_frame(self, frontier):
        metrics = frontier.metrics_frame()

        assert list(metrics.columns) == ['mean', 'StdDev', 'var', 'ES']
        np.testing.assert_allclose(metrics['StdDev'], [p.risk for p in frontier])

    def test_tangency_maximizes_return_to_risk(self, frontier):
        index, point = frontier.tangency(risk_free=0.0)
        ratios = [p.expected_return / p.risk for p in frontier]

        assert index == int(np.argmax(ratios))
        assert point is frontier[index]

    def test_summary_rounding(self, frontier):
        tables = frontier.summary(digits=3)

        assert set(tables) == {'weights', 'risk_return'}
        assert 'return_to_risk' in tables['risk_return'].columns
        assert (tables['weights'].round(3) == tables['weights']).all().all()

    def test_max_return_point_is_last(self, frontier):
        assert frontier.max_return_point().expected_return == pytest.approx(frontier[len(frontier) - 1].expected_return)


class FailingTargetsBackend(IOptimizationBackend):
    """Quadratic backend failing at chosen grid target indices, counted in call order."""

    name = "failing"

    def __init__(self, fail_at=(), error=SolverError, fail_min_risk=False):
        self.inner = QuadraticBackend()
        self.fail_at = set(fail_at)
        self.error = error
        self.fail_min_risk = fail_min_risk
        self.calls = 0

    def minimize(self, moments, canonical, objective, target_return=None):
        if target_return is None:
            if self.fail_min_risk:
                raise self.error("minimum-risk solve failed", error_code="STUB_FAILURE",
                                 context={'status': 'user_limit'})
            return self.inner.minimize(moments, canonical, objective)
        index = self.calls
        self.calls += 1
        if index in self.fail_at:
            raise self.error(f"target {index} failed", error_code="STUB_FAILURE",
                             context={'target_return': target_return, 'status': 'user_limit'})
        return self.inner.minimize(moments, canonical, objective, target_return)


class FailingTargetsSolver(FrontierSolver):
    """Frontier solver running grid targets inline through a given backend."""

    def __init__(self, backend, **kwargs):
        super().__init__(processor=ParallelProcessor(ProcessingConfig(max_workers=1)), **kwargs)
        self.backend = backend

    def exact_backend(self, method):
        return self.backend


class TestSkippedTargets:
    """Test per-target failures and their escalation."""

    def test_failed_interior_targets_are_skipped(self, meanvar_spec, returns):
        solver = FailingTargetsSolver(FailingTargetsBackend(fail_at={2, 5}))
        frontier = solver.solve(meanvar_spec, returns, n_points=8)

        assert frontier.skipped == 2
        assert frontier.info['skipped'] == 2
        assert len(frontier) + frontier.info['dominated'] == 6
        assert not frontier.to_frame().isna().any().any()
        assert_constraints_hold(frontier, meanvar_spec)

    def test_infeasible_target_is_skipped(self, meanvar_spec, returns):
        solver = FailingTargetsSolver(FailingTargetsBackend(fail_at={3}, error=PointInfeasible))
        frontier = solver.solve(meanvar_spec, returns, n_points=6)

        assert frontier.info['skipped'] == 1
        assert len(frontier) + frontier.info['dominated'] == 5

    def test_failed_endpoints_fall_back_to_bounding_portfolios(self, meanvar_spec, returns):
        solver = FailingTargetsSolver(FailingTargetsBackend(fail_at={0, 7}))
        frontier = solver.solve(meanvar_spec, returns, n_points=8)
        reference = FrontierSolver().solve(meanvar_spec, returns, n_points=8)

        assert frontier.info['skipped'] == 0
        assert frontier[0].expected_return == pytest.approx(reference[0].expected_return, abs=1e-6)
        assert frontier[0].risk == pytest.approx(reference[0].risk, abs=1e-6)
        assert frontier.max_return_point().expected_return == pytest.approx(
            reference.max_return_point().expected_return, abs=1e-6)

    def test_only_bounding_portfolios_survive(self, meanvar_spec, returns):
        solver = FailingTargetsSolver(FailingTargetsBackend(fail_at=range(8)))
        frontier = solver.solve(meanvar_spec, returns, n_points=8)

        assert len(frontier) == 2
        assert frontier.info['skipped'] == 6

    def test_min_risk_solver_failure_empties_frontier(self, meanvar_spec, returns):
        solver = FailingTargetsSolver(FailingTargetsBackend(fail_min_risk=True))
        with pytest.raises(EmptyFrontier) as exc_info:
            solver.solve(meanvar_spec, returns, n_points=5)

        context = exc_info.value.context
        assert context['method'] == 'mean-var'
        assert context['bound'] == 'min_risk'
        assert context['status'] == 'user_limit'
        assert isinstance(exc_info.value.__cause__, SolverError)

    def test_min_risk_infeasibility_is_reported(self, meanvar_spec, returns):
        solver = FailingTargetsSolver(FailingTargetsBackend(fail_min_risk=True, error=PointInfeasible))
        with pytest.raises(ConstraintInfeasible):
            solver.solve(meanvar_spec, returns, n_points=5)

    def test_max_return_solver_failure_empties_frontier(self, monkeypatch, meanes_spec, returns):
        def failing_max_return(moments, canonical, settings=None):
            raise SolverError("Maximum-return LP failed", error_code="LP_NOT_SOLVED", context={'status': 1})

        monkeypatch.setattr(frontier_module, 'max_return_portfolio', failing_max_return)
        with pytest.raises(EmptyFrontier) as exc_info:
            FrontierSolver().solve(meanes_spec, returns, method='mean-ES', n_points=5)

        assert exc_info.value.context['bound'] == 'max_return'
        assert exc_info.value.context['method'] == 'mean-ES'
        assert exc_info.value.context['cause'] == 'LP_NOT_SOLVED'

    def test_iteration_capped_solver_empties_frontier(self, meanvar_spec, returns):
        solver = FrontierSolver(settings=SolverSettings(max_iterations=1))
        with pytest.raises(EmptyFrontier) as exc_info:
            solver.solve(meanvar_spec, returns, n_points=5)
        assert exc_info.value.context['bound'] == 'min_risk'
