"""
Quadratic-programming backend for mean-variance problems.

Minimizes portfolio variance (or a risk-aversion weighted variance/standard
deviation minus expected return) under the canonical constraints, optionally
pinning the expected return to a target. Solved with CVXPY.
"""

from typing import List, Optional
import logging

import cvxpy as cp
import numpy as np

from ...domain.exceptions import PointInfeasible, SolverError, ValidationError
from ...domain.interfaces import IOptimizationBackend
from ...domain.value_objects import RiskMeasure
from .constraints import CanonicalConstraints
from .objectives import MarketMoments, ScalarObjective
from .optimization_result import BackendSolution, SolverSettings

logger = logging.getLogger(__name__)


def _risk_factor(sigma: np.ndarray) -> np.ndarray:
    """F with F @ F.T == sigma, tolerant of a singular covariance."""
    eigenvals, eigenvecs = np.linalg.eigh((sigma + sigma.T) / 2)
    return eigenvecs * np.sqrt(np.maximum(eigenvals, 0.0))


def cvxpy_constraints(w: cp.Variable, canonical: CanonicalConstraints) -> List[cp.Constraint]:
    """Canonical rows and finite bounds as CVXPY constraints."""
    constraints = []
    if canonical.A_eq.size:
        constraints.append(canonical.A_eq @ w == canonical.b_eq)
    if canonical.A_ineq.size:
        constraints.append(canonical.A_ineq @ w <= canonical.b_ineq)

    identity = np.eye(canonical.n_assets)
    finite_lower = np.flatnonzero(np.isfinite(canonical.lower))
    if finite_lower.size:
        constraints.append(identity[finite_lower] @ w >= canonical.lower[finite_lower])
    finite_upper = np.flatnonzero(np.isfinite(canonical.upper))
    if finite_upper.size:
        constraints.append(identity[finite_upper] @ w <= canonical.upper[finite_upper])
    return constraints


class QuadraticBackend(IOptimizationBackend):
    """Mean-variance optimization via convex quadratic programming."""

    name = "quadratic"
    supported_measures = (RiskMeasure.VARIANCE, RiskMeasure.STD_DEV)

    def __init__(self, settings: Optional[SolverSettings] = None):
        self.settings = settings or SolverSettings()

    def minimize(
        self,
        moments: MarketMoments,
        canonical: CanonicalConstraints,
        objective: ScalarObjective,
        target_return: Optional[float] = None
    ) -> BackendSolution:
        """
        Solve one quadratic program.

        Args:
            moments: Sample moments of the returns data
            canonical: Canonical constraints
            objective: Scalarized objective (variance or StdDev risk term)
            target_return: Optional equality target for the expected return

        Returns:
            BackendSolution with the optimal weights

        Raises:
            PointInfeasible: if the constraints (with target) admit no solution
            SolverError: on solver failure, iteration cap or time budget
        """
        if objective.risk is not None and objective.risk not in self.supported_measures:
            raise ValidationError(
                f"Quadratic backend cannot minimize {objective.risk.value}",
                error_code="UNSUPPORTED_MEASURE"
            )

        n_assets = canonical.n_assets
        w = cp.Variable(n_assets)

        expression = 0
        if objective.risk is RiskMeasure.STD_DEV and objective.include_return:
            expression = objective.risk_aversion * cp.norm(_risk_factor(moments.sigma).T @ w, 2)
        elif objective.risk is not None:
            # Minimizing variance and standard deviation share the same argmin
            sigma = cp.psd_wrap((moments.sigma + moments.sigma.T) / 2)
            expression = objective.risk_aversion * cp.quad_form(w, sigma)
        if objective.include_return:
            expression = expression - moments.mu @ w

        constraints = cvxpy_constraints(w, canonical)
        if target_return is not None:
            constraints.append(moments.mu @ w == float(target_return))

        problem = cp.Problem(cp.Minimize(expression), constraints)
        try:
            problem.solve(**self.settings.cvxpy_options())
        except cp.error.SolverError as e:
            raise SolverError(
                f"Quadratic solver failed: {e}",
                error_code="QP_SOLVER_FAILED",
                context={'target_return': target_return}
            ) from e

        status = problem.status
        if status in (cp.INFEASIBLE, cp.INFEASIBLE_INACCURATE):
            raise PointInfeasible(
                "Quadratic program is infeasible",
                error_code="QP_INFEASIBLE",
                context={'target_return': target_return, 'status': status}
            )
        if status not in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE) or w.value is None:
            raise SolverError(
                f"Quadratic program failed with status: {status}",
                error_code="QP_NOT_SOLVED",
                context={'target_return': target_return, 'status': status}
            )

        weights = np.asarray(w.value, dtype=float).ravel()
        if not canonical.is_satisfied(weights, self.settings.feasibility_tol):
            raise SolverError(
                "Quadratic solution violates the constraints beyond tolerance",
                error_code="QP_INACCURATE",
                context={'target_return': target_return, 'status': status}
            )
        if target_return is not None and abs(weights @ moments.mu - target_return) > self.settings.feasibility_tol:
            raise SolverError(
                "Quadratic solution misses the target return",
                error_code="QP_INACCURATE",
                context={'target_return': target_return, 'achieved': float(weights @ moments.mu)}
            )

        stats = getattr(problem, 'solver_stats', None)
        iterations = getattr(stats, 'num_iters', None) or 0
        return BackendSolution(
            weights=weights,
            objective_value=objective.value(weights, moments),
            status=status,
            iterations=int(iterations),
            candidates=weights[None, :],
        )
