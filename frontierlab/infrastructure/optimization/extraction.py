"""
Frontier extraction from an optimization trace.

Builds an approximate frontier from candidates that were already evaluated,
without solving anything. Because only previously sampled portfolios are
available, an extracted frontier is never better than the exact one. Results
of exact runs carry no sample to extract from; their frontier is re-solved
over the run's specification and returns.
"""

from typing import Optional
import logging

import numpy as np
import pandas as pd

from ...domain.entities import EfficientFrontier, OptimizationTrace
from ...domain.exceptions import ValidationError
from ...domain.value_objects import MEAN, FrontierMethod, OptimizeMethod, RiskMeasure
from .frontier import DEFAULT_N_POINTS, FrontierSolver, make_point, resolve_match_column
from .optimization_result import OptimizationResult

logger = logging.getLogger(__name__)

SELECT_MAX_RETURN = "max_return"
SELECT_MIN_RISK = "min_risk"


def _bucket(values: np.ndarray, n_buckets: int) -> np.ndarray:
    """Equal-width bucket index of every value over the observed range."""
    low, high = float(values.min()), float(values.max())
    if high <= low:
        return np.zeros(len(values), dtype=int)
    edges = np.linspace(low, high, n_buckets + 1)
    return np.clip(np.searchsorted(edges, values, side='right') - 1, 0, n_buckets - 1)


def extract_frontier(
    trace: OptimizationTrace,
    match_column: Optional[str] = None,
    n_points: int = DEFAULT_N_POINTS,
    select: str = SELECT_MAX_RETURN
) -> EfficientFrontier:
    """
    Extract a frontier from the candidates of an optimization trace.

    Args:
        trace: Trace of a prior optimization run
        match_column: Risk axis ('StdDev', 'var' or 'ES'); defaults by trace method
        n_points: Number of buckets
        select: 'max_return' buckets the risk axis and keeps each bucket's
            highest-return candidate; 'min_risk' buckets the return axis and
            keeps each bucket's lowest-risk candidate

    Returns:
        EfficientFrontier with source 'extracted', ascending in the match column
    """
    if n_points < 1:
        raise ValidationError(
            "n_points must be at least 1",
            error_code="INVALID_N_POINTS",
            context={'n_points': n_points}
        )
    match = resolve_match_column(trace.method, match_column)
    risk = trace.metrics[match].to_numpy(dtype=float)
    ret = trace.metrics[MEAN].to_numpy(dtype=float)

    if select == SELECT_MAX_RETURN:
        buckets = _bucket(risk, n_points)
        pick, score = np.argmax, ret
    elif select == SELECT_MIN_RISK:
        buckets = _bucket(ret, n_points)
        pick, score = np.argmin, risk
    else:
        raise ValidationError(
            f"Unknown selection rule: {select}",
            error_code="UNKNOWN_SELECTION",
            context={'allowed': [SELECT_MAX_RETURN, SELECT_MIN_RISK]}
        )

    chosen = []
    for bucket in np.unique(buckets):
        members = np.flatnonzero(buckets == bucket)
        chosen.append(members[pick(score[members])])
    chosen = np.array(chosen, dtype=int)
    chosen = chosen[np.lexsort((-ret[chosen], risk[chosen]))]

    points = [
        make_point(trace.weights[i], trace.assets, trace.metrics.iloc[i].to_dict(), match)
        for i in chosen
    ]
    empty = n_points - len(np.unique(buckets))
    logger.debug(f"Extracted {len(points)} points from {len(trace)} candidates ({empty} empty buckets)")

    return EfficientFrontier(
        points=tuple(points),
        method=trace.method,
        match_column=match,
        source="extracted",
        skipped=0,
        metadata={
            'method': trace.method.value,
            'match_column': match,
            'source': 'extracted',
            'select': select,
            'n_candidates': len(trace),
            'empty_buckets': int(empty),
            'es_confidence': trace.es_confidence,
        },
    )


def frontier_from_result(
    result: OptimizationResult,
    match_column: Optional[str] = None,
    n_points: int = DEFAULT_N_POINTS,
    select: str = SELECT_MAX_RETURN,
    solver: Optional[FrontierSolver] = None,
    returns: Optional[pd.DataFrame] = None
) -> EfficientFrontier:
    """
    Frontier of a prior optimization run.

    Random-search results are extracted from their trace. Exact results are
    re-solved: mean-ES when the run minimized ES, mean-var otherwise.

    Args:
        result: Result of ``PortfolioOptimizer.optimize``
        match_column: Risk axis ('StdDev', 'var' or 'ES')
        n_points: Grid targets (exact) or buckets (random)
        select: Bucket selection rule for random results
        solver: FrontierSolver for exact results (default settings otherwise)
        returns: Returns to re-solve over; defaults to the ones the run used

    Raises:
        ValidationError: if a random result has no trace, or an exact result no returns
    """
    if result.method is OptimizeMethod.EXACT:
        returns = result.returns if returns is None else returns
        if returns is None:
            raise ValidationError(
                "Exact optimization result carries no returns to re-solve the frontier over",
                error_code="MISSING_RETURNS"
            )
        risk = result.spec.risk_objective
        method = (FrontierMethod.MEAN_ES
                  if risk is not None and risk.measure is RiskMeasure.EXPECTED_SHORTFALL
                  else FrontierMethod.MEAN_VARIANCE)
        solver = solver or FrontierSolver()
        return solver.solve(result.spec, returns, method=method, match_column=match_column, n_points=n_points)

    if result.trace is None:
        raise ValidationError(
            "Optimization result carries no trace; rerun with trace=True",
            error_code="MISSING_TRACE"
        )
    return extract_frontier(result.trace, match_column=match_column, n_points=n_points, select=select)
