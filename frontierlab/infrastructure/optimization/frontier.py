"""
Efficient frontier construction.

Exact methods solve the minimum-risk and maximum-return portfolios, split the
return range between them into an evenly spaced target grid and minimize risk
at every target. The random method samples feasible portfolios and keeps the
Pareto-efficient ones.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd

from ...domain.entities import EfficientFrontier, PortfolioSpec
from ...domain.exceptions import (
    ConstraintInfeasible, EmptyFrontier, PointInfeasible, SolverError, ValidationError
)
from ...domain.interfaces import IOptimizationBackend
from ...domain.value_objects import MEAN, FrontierMethod, FrontierPoint, RiskMeasure
from ..performance.parallel_processor import ParallelProcessor, ProcessingConfig
from .constraints import CanonicalConstraints, canonicalize
from .linear import LinearBackend, max_return_portfolio
from .objectives import MarketMoments, ScalarObjective, batch_metrics, portfolio_metrics
from .optimization_result import SolverSettings
from .quadratic import QuadraticBackend
from .random_search import RandomSearchBackend, RandomState, pareto_filter

logger = logging.getLogger(__name__)

DEFAULT_N_POINTS = 25

_DEFAULT_MATCH = {
    FrontierMethod.MEAN_VARIANCE: RiskMeasure.STD_DEV,
    FrontierMethod.MEAN_ES: RiskMeasure.EXPECTED_SHORTFALL,
}


def resolve_match_column(
    method: FrontierMethod,
    match_column: Optional[str] = None,
    spec: Optional[PortfolioSpec] = None
) -> str:
    """Explicit match column, else the default risk axis of the method."""
    if match_column is not None:
        return RiskMeasure.parse(match_column).value
    if method in _DEFAULT_MATCH:
        return _DEFAULT_MATCH[method].value
    if spec is not None and spec.risk_objective is not None:
        return spec.risk_objective.measure.value
    return RiskMeasure.STD_DEV.value


def make_point(weights: np.ndarray, assets: Sequence[str], metrics: Dict[str, float], match_column: str) -> FrontierPoint:
    return FrontierPoint(
        weights=pd.Series(np.asarray(weights, dtype=float), index=list(assets)),
        risk=float(metrics[match_column]),
        expected_return=float(metrics[MEAN]),
        metrics={k: float(v) for k, v in metrics.items()},
    )


def drop_dominated(points: List[FrontierPoint], tol: float = 1e-9) -> Tuple[List[FrontierPoint], int]:
    """
    Sort by risk and drop points whose return falls below an earlier point's.

    Returns:
        (kept points ascending in risk, number dropped)
    """
    ordered = sorted(points, key=lambda p: (p.risk, -p.expected_return))
    kept: List[FrontierPoint] = []
    best = -np.inf
    for point in ordered:
        if point.expected_return >= best - tol:
            kept.append(point)
            best = max(best, point.expected_return)
    return kept, len(ordered) - len(kept)


def thin_by_risk(indices: np.ndarray, risk: np.ndarray, ret: np.ndarray, n_points: int) -> np.ndarray:
    """
    Reduce a set of candidates to at most ``n_points`` by equal-width risk buckets.

    Each non-empty bucket keeps its maximum-return member. Result is ascending in risk.
    """
    indices = np.asarray(indices, dtype=int)
    if len(indices) <= n_points:
        return indices[np.argsort(risk[indices], kind='stable')]

    r = risk[indices]
    edges = np.linspace(r.min(), r.max(), n_points + 1)
    buckets = np.clip(np.searchsorted(edges, r, side='right') - 1, 0, n_points - 1)

    chosen = []
    for bucket in np.unique(buckets):
        members = indices[buckets == bucket]
        chosen.append(members[np.argmax(ret[members])])
    chosen = np.array(chosen, dtype=int)
    return chosen[np.argsort(risk[chosen], kind='stable')]


@dataclass
class _GridTask:
    """Risk minimization at one grid target; picklable for process pools."""

    backend: IOptimizationBackend
    moments: MarketMoments
    canonical: CanonicalConstraints
    objective: ScalarObjective
    lower_fallback: np.ndarray
    upper_fallback: np.ndarray
    n_targets: int

    def __call__(self, item: Tuple[int, float]) -> Optional[np.ndarray]:
        index, target = item
        try:
            return self.backend.minimize(self.moments, self.canonical, self.objective, target).weights
        except (PointInfeasible, SolverError) as e:
            if index == 0:
                return self.lower_fallback
            if index == self.n_targets - 1:
                return self.upper_fallback
            logger.debug(f"Skipping frontier target {index} ({target:.6g}): {e}")
            return None


class FrontierSolver:
    """
    Computes efficient frontiers for a portfolio specification.

    Exact methods:
    - mean-var: quadratic programs minimizing variance at each target return
    - mean-ES: linear programs minimizing Expected Shortfall at each target return

    Random method:
    - Pareto filter over a random sample of feasible portfolios
    """

    def __init__(
        self,
        settings: Optional[SolverSettings] = None,
        n_points: int = DEFAULT_N_POINTS,
        search_size: int = 2000,
        es_confidence: float = 0.95,
        processor: Optional[ParallelProcessor] = None,
        max_batches: int = 200
    ):
        self.settings = settings or SolverSettings()
        self.n_points = n_points
        self.search_size = search_size
        self.max_batches = max_batches
        self.es_confidence = es_confidence
        self.processor = processor or ParallelProcessor(ProcessingConfig(use_processes=False))

    def with_processor(self, processor: ParallelProcessor) -> 'FrontierSolver':
        """Copy of this solver dispatching grid targets through another processor."""
        return FrontierSolver(
            settings=self.settings,
            n_points=self.n_points,
            search_size=self.search_size,
            es_confidence=self.es_confidence,
            processor=processor,
            max_batches=self.max_batches,
        )

    def exact_backend(self, method: FrontierMethod) -> IOptimizationBackend:
        """Linear programs for mean-ES, quadratic programs for mean-var."""
        if method is FrontierMethod.MEAN_ES:
            return LinearBackend(self.settings)
        return QuadraticBackend(self.settings)

    def solve(
        self,
        spec: PortfolioSpec,
        returns: pd.DataFrame,
        method: Union[str, FrontierMethod] = FrontierMethod.MEAN_VARIANCE,
        match_column: Optional[str] = None,
        n_points: Optional[int] = None,
        random_state: RandomState = None
    ) -> EfficientFrontier:
        """
        Compute the efficient frontier.

        Args:
            spec: Portfolio specification
            returns: Historical returns, one column per asset
            method: 'mean-var', 'mean-ES' or 'random'
            match_column: Risk axis of the frontier ('StdDev', 'var' or 'ES')
            n_points: Number of grid targets (exact) or maximum points (random)
            random_state: Seed or numpy Generator for the random method

        Returns:
            EfficientFrontier ascending in the match column

        Raises:
            AssetMismatch: if the returns columns differ from the spec's assets
            ConstraintInfeasible: if the constraints admit no portfolio
            UnboundedProblem: if the return (or sampling region) is unbounded
            EmptyFrontier: if a bounding portfolio fails to solve
        """
        method = FrontierMethod.parse(method)
        n_points = self.n_points if n_points is None else int(n_points)
        if n_points < 2:
            raise ValidationError(
                "A frontier needs at least two points",
                error_code="INVALID_N_POINTS",
                context={'n_points': n_points}
            )
        match = resolve_match_column(method, match_column, spec)

        aligned = spec.align_returns(returns)
        moments = MarketMoments.from_returns(aligned)
        canonical = canonicalize(spec.constraints, spec.assets)
        p = spec.es_confidence(self.es_confidence)

        if method.is_exact:
            frontier = self._solve_exact(method, spec, moments, canonical, match, n_points, p)
        else:
            frontier = self._solve_random(spec, moments, canonical, match, n_points, p, random_state)

        logger.info(f"Computed {frontier}")
        return frontier

    def _solve_exact(
        self,
        method: FrontierMethod,
        spec: PortfolioSpec,
        moments: MarketMoments,
        canonical: CanonicalConstraints,
        match: str,
        n_points: int,
        p: float
    ) -> EfficientFrontier:
        backend = self.exact_backend(method)
        if method is FrontierMethod.MEAN_ES:
            objective = ScalarObjective.risk_only(RiskMeasure.EXPECTED_SHORTFALL, p)
        else:
            objective = ScalarObjective.risk_only(RiskMeasure.VARIANCE, p)

        try:
            min_risk = backend.minimize(moments, canonical, objective)
        except PointInfeasible as e:
            raise ConstraintInfeasible(
                "Minimum-risk portfolio is infeasible under the constraints",
                error_code="MIN_RISK_INFEASIBLE",
                context=e.context
            ) from e
        except SolverError as e:
            raise self._bound_failed(method, 'min_risk', e) from e
        try:
            max_ret = max_return_portfolio(moments, canonical, self.settings)
        except SolverError as e:
            raise self._bound_failed(method, 'max_return', e) from e

        low = float(min_risk.weights @ moments.mu)
        high = float(max_ret.weights @ moments.mu)
        if high - low <= self.settings.feasibility_tol:
            # every feasible portfolio has (nearly) the same return
            targets = np.array([low])
        else:
            targets = np.linspace(low, high, n_points)
        logger.debug(f"{method.value} target grid: {len(targets)} targets in [{low:.6g}, {high:.6g}]")

        task = _GridTask(
            backend=backend,
            moments=moments,
            canonical=canonical,
            objective=objective,
            lower_fallback=min_risk.weights,
            upper_fallback=max_ret.weights,
            n_targets=len(targets),
        )
        solved = self.processor.map_parallel(task, list(enumerate(targets)))

        points = [
            make_point(w, spec.assets, portfolio_metrics(w, moments, p), match)
            for w in solved if w is not None
        ]
        skipped = len(targets) - len(points)
        if not points:
            raise EmptyFrontier(
                "Every frontier target failed to solve",
                error_code="EMPTY_FRONTIER",
                context={'method': method.value, 'n_targets': len(targets)}
            )
        if skipped:
            logger.warning(f"Skipped {skipped} of {len(targets)} {method.value} frontier targets")

        points, dominated = drop_dominated(points)
        return EfficientFrontier(
            points=tuple(points),
            method=method,
            match_column=match,
            source="solved",
            skipped=skipped,
            metadata=self._metadata(method, match, skipped, dominated, p, n_targets=len(targets)),
        )

    def _solve_random(
        self,
        spec: PortfolioSpec,
        moments: MarketMoments,
        canonical: CanonicalConstraints,
        match: str,
        n_points: int,
        p: float,
        random_state: RandomState
    ) -> EfficientFrontier:
        backend = RandomSearchBackend(
            search_size=self.search_size,
            random_state=random_state,
            max_batches=self.max_batches,
            settings=self.settings,
        )
        candidates = backend.sample(moments, canonical)
        metrics = batch_metrics(candidates, moments, p)
        risk = metrics[match].to_numpy()
        ret = metrics[MEAN].to_numpy()

        efficient = pareto_filter(risk, ret)
        selected = thin_by_risk(efficient, risk, ret, n_points)

        points = [
            make_point(candidates[i], spec.assets, metrics.iloc[i].to_dict(), match)
            for i in selected
        ]
        dominated = len(candidates) - len(efficient)
        metadata = self._metadata(FrontierMethod.RANDOM, match, 0, dominated, p, n_samples=len(candidates))
        metadata['n_efficient'] = int(len(efficient))
        return EfficientFrontier(
            points=tuple(points),
            method=FrontierMethod.RANDOM,
            match_column=match,
            source="solved",
            skipped=0,
            metadata=metadata,
        )

    @staticmethod
    def _bound_failed(method: FrontierMethod, bound: str, error: SolverError) -> EmptyFrontier:
        """Every grid target needs both bounding portfolios; a failed bound empties the frontier."""
        context = {'method': method.value, 'bound': bound, 'cause': error.error_code}
        context.update(error.context)
        return EmptyFrontier(
            f"Frontier bound '{bound}' failed to solve: {error.message}",
            error_code="EMPTY_FRONTIER",
            context=context
        )

    @staticmethod
    def _metadata(method: FrontierMethod, match: str, skipped: int, dominated: int, p: float, **counts) -> Dict[str, Any]:
        metadata = {
            'method': method.value,
            'match_column': match,
            'source': 'solved',
            'skipped': int(skipped),
            'dominated': int(dominated),
            'es_confidence': p,
        }
        metadata.update({k: int(v) for k, v in counts.items()})
        return metadata


def solve_frontier(
    spec: PortfolioSpec,
    returns: pd.DataFrame,
    method: Union[str, FrontierMethod] = FrontierMethod.MEAN_VARIANCE,
    match_column: Optional[str] = None,
    n_points: Optional[int] = None,
    random_state: RandomState = None,
    **solver_options
) -> EfficientFrontier:
    """Shortcut for ``FrontierSolver(**solver_options).solve(...)``."""
    return FrontierSolver(**solver_options).solve(
        spec, returns, method=method, match_column=match_column,
        n_points=n_points, random_state=random_state
    )
