"""
Portfolio optimization result classes.

This module defines the solver settings passed to every backend, the raw
solution a backend returns, and the result of a single optimization run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional
import pandas as pd
import numpy as np

from ...domain.entities import OptimizationTrace, PortfolioSpec
from ...domain.value_objects import MEAN, OptimizeMethod


# Solver-specific keyword names for the iteration cap and the time budget
_ITERATION_KEYWORDS = {
    'CLARABEL': 'max_iter',
    'OSQP': 'max_iter',
    'ECOS': 'max_iters',
    'SCS': 'max_iters',
}
_TIME_KEYWORDS = {
    'CLARABEL': 'time_limit',
    'OSQP': 'time_limit',
    'SCS': 'time_limit_secs',
}


@dataclass(frozen=True)
class SolverSettings:
    """Per-solve limits and tolerances shared by the backends."""

    qp_solver: str = "CLARABEL"
    lp_method: str = "highs"
    max_iterations: Optional[int] = 10000
    time_limit: Optional[float] = None
    feasibility_tol: float = 1e-6

    def __post_init__(self):
        if self.max_iterations is not None and self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        if self.time_limit is not None and self.time_limit <= 0:
            raise ValueError("time_limit must be positive")
        if self.feasibility_tol <= 0:
            raise ValueError("feasibility_tol must be positive")

    def cvxpy_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``cvxpy.Problem.solve``."""
        solver = self.qp_solver.upper()
        options: Dict[str, Any] = {'solver': solver}
        if self.max_iterations is not None and solver in _ITERATION_KEYWORDS:
            options[_ITERATION_KEYWORDS[solver]] = int(self.max_iterations)
        if self.time_limit is not None and solver in _TIME_KEYWORDS:
            options[_TIME_KEYWORDS[solver]] = float(self.time_limit)
        return options

    def linprog_options(self) -> Dict[str, Any]:
        """``options`` mapping for ``scipy.optimize.linprog``."""
        options: Dict[str, Any] = {}
        if self.max_iterations is not None:
            options['maxiter'] = int(self.max_iterations)
        if self.time_limit is not None:
            options['time_limit'] = float(self.time_limit)
        return options


@dataclass
class BackendSolution:
    """Raw output of one backend solve."""

    weights: np.ndarray
    objective_value: float
    status: str = "optimal"
    iterations: int = 0
    candidates: Optional[np.ndarray] = None

    def __post_init__(self):
        self.weights = np.asarray(self.weights, dtype=float)
        if self.weights.ndim != 1 or self.weights.size == 0:
            raise ValueError("Backend weights must be a non-empty vector")


@dataclass
class OptimizationResult:
    """Result of one scalarized portfolio optimization run."""

    weights: pd.Series
    objective_value: float
    metrics: Dict[str, float]
    method: OptimizeMethod
    backend: str
    spec: PortfolioSpec
    optimization_time: float = 0.0
    iterations: int = 0
    message: str = ""
    trace: Optional[OptimizationTrace] = None
    returns: Optional[pd.DataFrame] = field(default=None, repr=False)
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate optimization result."""
        if not isinstance(self.weights, pd.Series):
            raise ValueError("Weights must be a pandas Series")
        if len(self.weights) == 0:
            raise ValueError("Weights cannot be empty")
        if not self.backend:
            raise ValueError("Backend cannot be empty")

    @property
    def expected_return(self) -> float:
        return float(self.metrics.get(MEAN, np.nan))

    @property
    def total_weight(self) -> float:
        """Get total portfolio weight."""
        return float(self.weights.sum())

    @property
    def active_positions(self) -> pd.Series:
        """Get assets with non-zero weights."""
        return self.weights[self.weights.abs() > 1e-6]

    def get_top_holdings(self, n: int = 10) -> pd.Series:
        """Get top N holdings by absolute weight."""
        return self.weights.abs().nlargest(n)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            'weights': self.weights.to_dict(),
            'objective_value': self.objective_value,
            'metrics': dict(self.metrics),
            'method': self.method.value,
            'backend': self.backend,
            'optimization_time': self.optimization_time,
            'iterations': self.iterations,
            'message': self.message,
            'total_weight': self.total_weight,
            'trace_size': len(self.trace) if self.trace is not None else 0,
            'timestamp': self.timestamp.isoformat(),
            'metadata': self.metadata
        }
