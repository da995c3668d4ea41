"""
Linear-programming backend for mean-ES problems.

Expected Shortfall is minimized through the Rockafellar-Uryasev reformulation:
with a Value-at-Risk threshold ``v`` and one non-negative shortfall variable
``z_i`` per historical observation,

    minimize    v + sum(z) / ((1 - p) * T)
    subject to  z_i >= -R_i @ w - v,  z_i >= 0,  canonical constraints

The same module solves the maximum-return portfolio that bounds every frontier.
"""

from typing import Optional
import logging

import numpy as np
from scipy import sparse
from scipy.optimize import linprog

from ...domain.exceptions import (
    ConstraintInfeasible, PointInfeasible, SolverError, UnboundedProblem, ValidationError
)
from ...domain.interfaces import IOptimizationBackend
from ...domain.value_objects import RiskMeasure
from .constraints import CanonicalConstraints
from .objectives import MarketMoments, ScalarObjective
from .optimization_result import BackendSolution, SolverSettings

logger = logging.getLogger(__name__)

# scipy.optimize.linprog status codes
LP_OPTIMAL = 0
LP_ITERATION_LIMIT = 1
LP_INFEASIBLE = 2
LP_UNBOUNDED = 3


def _stack(blocks) -> Optional[sparse.csr_matrix]:
    """Stack the non-empty row blocks, None when there are no rows at all."""
    blocks = [b for b in blocks if b.shape[0] > 0]
    if not blocks:
        return None
    return sparse.vstack(blocks, format='csr')


def _pad(rows: np.ndarray, n_extra: int) -> sparse.csr_matrix:
    """Append ``n_extra`` zero columns for the auxiliary LP variables."""
    if rows.shape[0] == 0:
        return sparse.csr_matrix((0, rows.shape[1] + n_extra))
    return sparse.hstack([
        sparse.csr_matrix(rows),
        sparse.csr_matrix((rows.shape[0], n_extra)),
    ], format='csr')


def _run_linprog(c, A_ub, b_ub, A_eq, b_eq, bounds, settings: SolverSettings):
    return linprog(
        c,
        A_ub=A_ub,
        b_ub=b_ub if A_ub is not None else None,
        A_eq=A_eq,
        b_eq=b_eq if A_eq is not None else None,
        bounds=bounds,
        method=settings.lp_method,
        options=settings.linprog_options(),
    )


def max_return_portfolio(
    moments: MarketMoments,
    canonical: CanonicalConstraints,
    settings: Optional[SolverSettings] = None,
    target_return: Optional[float] = None
) -> BackendSolution:
    """
    Maximize expected return subject to the constraints alone.

    Raises:
        ConstraintInfeasible: if the constraint set admits no portfolio
        UnboundedProblem: if the expected return is unbounded above
        SolverError: on any other solver failure
    """
    settings = settings or SolverSettings()
    n_assets = canonical.n_assets

    A_eq_rows = [sparse.csr_matrix(canonical.A_eq.reshape(-1, n_assets))]
    b_eq = list(canonical.b_eq)
    if target_return is not None:
        A_eq_rows.append(sparse.csr_matrix(moments.mu.reshape(1, -1)))
        b_eq.append(float(target_return))
    A_eq = _stack(A_eq_rows)
    A_ub = _stack([sparse.csr_matrix(canonical.A_ineq.reshape(-1, n_assets))])

    result = _run_linprog(
        -moments.mu, A_ub, canonical.b_ineq, A_eq, np.array(b_eq),
        canonical.bounds_list(), settings
    )

    if result.status == LP_INFEASIBLE:
        error = PointInfeasible if target_return is not None else ConstraintInfeasible
        raise error(
            "No portfolio satisfies the constraints",
            error_code="LP_INFEASIBLE",
            context={'message': result.message, 'target_return': target_return}
        )
    if result.status == LP_UNBOUNDED:
        raise UnboundedProblem(
            "Expected return is unbounded under the constraints; add box or long-only bounds",
            error_code="UNBOUNDED_RETURN",
            context={'message': result.message}
        )
    if result.status != LP_OPTIMAL or result.x is None:
        raise SolverError(
            f"Maximum-return LP failed: {result.message}",
            error_code="LP_NOT_SOLVED",
            context={'status': int(result.status)}
        )

    weights = np.asarray(result.x[:n_assets], dtype=float)
    return BackendSolution(
        weights=weights,
        objective_value=-float(weights @ moments.mu),
        status="optimal",
        iterations=int(getattr(result, 'nit', 0) or 0),
        candidates=weights[None, :],
    )


class LinearBackend(IOptimizationBackend):
    """Mean-ES optimization via linear programming."""

    name = "linear"

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
        Solve one mean-ES linear program.

        Raises:
            PointInfeasible: if the constraints (with target) admit no solution
            UnboundedProblem: if the objective is unbounded below
            SolverError: on solver failure, iteration cap or time budget
        """
        if objective.risk is None:
            return max_return_portfolio(moments, canonical, self.settings, target_return)
        if objective.risk is not RiskMeasure.EXPECTED_SHORTFALL:
            raise ValidationError(
                f"Linear backend cannot minimize {objective.risk.value}",
                error_code="UNSUPPORTED_MEASURE"
            )

        n_assets = canonical.n_assets
        n_obs = moments.n_obs
        aversion = objective.risk_aversion
        tail_weight = aversion / ((1.0 - objective.p) * n_obs)

        # Variables: [w (n_assets), v (1), z (n_obs)]
        c = np.concatenate([
            -moments.mu if objective.include_return else np.zeros(n_assets),
            [aversion],
            np.full(n_obs, tail_weight),
        ])

        shortfall_rows = sparse.hstack([
            sparse.csr_matrix(-moments.returns),
            sparse.csr_matrix(-np.ones((n_obs, 1))),
            -sparse.identity(n_obs, format='csr'),
        ])
        A_ub = _stack([shortfall_rows, _pad(canonical.A_ineq.reshape(-1, n_assets), 1 + n_obs)])
        b_ub = np.concatenate([np.zeros(n_obs), canonical.b_ineq])

        eq_rows = [canonical.A_eq.reshape(-1, n_assets)]
        b_eq = list(canonical.b_eq)
        if target_return is not None:
            eq_rows.append(moments.mu.reshape(1, -1))
            b_eq.append(float(target_return))
        A_eq = _stack([_pad(np.vstack(eq_rows), 1 + n_obs)])

        bounds = canonical.bounds_list() + [(None, None)] + [(0.0, None)] * n_obs

        result = _run_linprog(c, A_ub, b_ub, A_eq, np.array(b_eq), bounds, self.settings)

        if result.status == LP_INFEASIBLE:
            raise PointInfeasible(
                "Mean-ES linear program is infeasible",
                error_code="LP_INFEASIBLE",
                context={'target_return': target_return, 'message': result.message}
            )
        if result.status == LP_UNBOUNDED:
            raise UnboundedProblem(
                "Mean-ES linear program is unbounded",
                error_code="LP_UNBOUNDED",
                context={'target_return': target_return}
            )
        if result.status != LP_OPTIMAL or result.x is None:
            raise SolverError(
                f"Mean-ES linear program failed: {result.message}",
                error_code="LP_NOT_SOLVED",
                context={'target_return': target_return, 'status': int(result.status)}
            )

        weights = np.asarray(result.x[:n_assets], dtype=float)
        if not canonical.is_satisfied(weights, self.settings.feasibility_tol):
            raise SolverError(
                "Mean-ES solution violates the constraints beyond tolerance",
                error_code="LP_INACCURATE",
                context={'target_return': target_return}
            )

        return BackendSolution(
            weights=weights,
            objective_value=objective.value(weights, moments),
            status="optimal",
            iterations=int(getattr(result, 'nit', 0) or 0),
            candidates=weights[None, :],
        )
