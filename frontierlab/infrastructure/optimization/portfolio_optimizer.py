"""
Main portfolio optimizer implementation.

This module runs one scalarized optimization of a portfolio specification,
either exactly (quadratic or linear programming) or by random search, and can
retain the trace of every candidate it evaluated for later frontier extraction.
"""

import time
from typing import Optional, Union
import logging

import numpy as np
import pandas as pd

from ...domain.entities import OptimizationTrace, PortfolioSpec
from ...domain.interfaces import IOptimizationBackend
from ...domain.value_objects import FrontierMethod, OptimizeMethod, RiskMeasure
from .constraints import canonicalize
from .linear import LinearBackend
from .objectives import MarketMoments, ScalarObjective, batch_metrics, portfolio_metrics
from .optimization_result import OptimizationResult, SolverSettings
from .quadratic import QuadraticBackend
from .random_search import RandomSearchBackend, RandomState

logger = logging.getLogger(__name__)


def exact_backend(objective: ScalarObjective, settings: Optional[SolverSettings] = None) -> IOptimizationBackend:
    """Linear programming for ES objectives, quadratic programming otherwise."""
    if objective.risk is RiskMeasure.EXPECTED_SHORTFALL:
        return LinearBackend(settings)
    return QuadraticBackend(settings)


def _trace_method(objective: ScalarObjective, optimize_method: OptimizeMethod) -> FrontierMethod:
    if optimize_method is OptimizeMethod.RANDOM:
        return FrontierMethod.RANDOM
    if objective.risk is RiskMeasure.EXPECTED_SHORTFALL:
        return FrontierMethod.MEAN_ES
    return FrontierMethod.MEAN_VARIANCE


class PortfolioOptimizer:
    """
    Single-run portfolio optimizer.

    Supports:
    - Minimum variance / StdDev and mean-variance optimization (quadratic programming)
    - Minimum ES and mean-ES optimization (linear programming)
    - Maximum return under the constraints
    - Random portfolio search with a retained candidate trace
    """

    def __init__(
        self,
        settings: Optional[SolverSettings] = None,
        search_size: int = 2000,
        es_confidence: float = 0.95,
        max_batches: int = 200
    ):
        """
        Initialize the portfolio optimizer.

        Args:
            settings: Solver limits and tolerances
            search_size: Default number of random candidates
            es_confidence: ES confidence used when the spec has no ES objective
            max_batches: Sampling rounds before random search stops short of search_size
        """
        self.settings = settings or SolverSettings()
        self.search_size = search_size
        self.es_confidence = es_confidence
        self.max_batches = max_batches

    def optimize(
        self,
        spec: PortfolioSpec,
        returns: pd.DataFrame,
        optimize_method: Union[str, OptimizeMethod] = OptimizeMethod.EXACT,
        trace: bool = False,
        search_size: Optional[int] = None,
        random_state: RandomState = None
    ) -> OptimizationResult:
        """
        Optimize the specification's scalarized objective once.

        Args:
            spec: Portfolio specification
            returns: Historical returns, one column per asset
            optimize_method: 'exact' or 'random'
            trace: Keep every evaluated candidate with its metrics
            search_size: Number of random candidates (random method only)
            random_state: Seed or numpy Generator (random method only)

        Returns:
            OptimizationResult with the optimal weights

        Raises:
            AssetMismatch: if the returns columns differ from the spec's assets
            ConstraintInfeasible: if the constraints admit no portfolio
            OptimizationError: on solver failure
        """
        start_time = time.time()
        method = OptimizeMethod.parse(optimize_method)

        aligned = spec.align_returns(returns)
        moments = MarketMoments.from_returns(aligned)
        canonical = canonicalize(spec.constraints, spec.assets)
        p = spec.es_confidence(self.es_confidence)
        objective = ScalarObjective.from_spec(spec, default_p=p)

        if method is OptimizeMethod.RANDOM:
            backend = RandomSearchBackend(
                search_size=search_size or self.search_size,
                random_state=random_state,
                max_batches=self.max_batches,
                settings=self.settings,
            )
        else:
            backend = exact_backend(objective, self.settings)

        solution = backend.minimize(moments, canonical, objective)
        weights = pd.Series(solution.weights, index=list(spec.assets))

        optimization_trace = None
        if trace:
            candidates = solution.candidates
            if candidates is None:
                candidates = solution.weights[None, :]
            optimization_trace = OptimizationTrace(
                assets=spec.assets,
                weights=candidates,
                metrics=batch_metrics(candidates, moments, p),
                method=_trace_method(objective, method),
                es_confidence=p,
            )

        elapsed = time.time() - start_time
        logger.info(f"{method.value} optimization via {backend.name} backend finished in {elapsed:.3f}s")

        return OptimizationResult(
            weights=weights,
            objective_value=solution.objective_value,
            metrics=portfolio_metrics(solution.weights, moments, p),
            method=method,
            backend=backend.name,
            spec=spec,
            optimization_time=elapsed,
            iterations=solution.iterations,
            message=f"Optimization completed with status: {solution.status}",
            trace=optimization_trace,
            returns=aligned,
            metadata={
                'es_confidence': p,
                'n_candidates': 0 if solution.candidates is None else int(np.atleast_2d(solution.candidates).shape[0]),
            },
        )
