"""
Constraint evaluation for portfolio optimization.

This module translates the heterogeneous constraint variants of a portfolio
specification into one canonical linear form (equality rows, inequality rows and
per-asset bounds) shared by every optimization backend, and checks weight
vectors against it.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ...domain.exceptions import ConstraintInfeasible, ValidationError
from ...domain.value_objects import (
    AssetRef, Box, FullInvestment, Group, LongOnly, WeightSum
)

logger = logging.getLogger(__name__)

# Bound ranges narrower than this are treated as a single point, not as empty
BOUND_EPS = 1e-12


@dataclass
class ConstraintViolation:
    """Information about a constraint violation."""
    constraint_name: str
    violation_type: str
    current_value: float
    limit_value: float
    violation_amount: float
    message: str


@dataclass(frozen=True, eq=False)
class CanonicalConstraints:
    """
    Canonical linear constraint form.

    ``A_eq @ w == b_eq``, ``A_ineq @ w <= b_ineq`` and ``lower <= w <= upper``.
    Infinite bounds mean the side is unconstrained. ``min_sum``/``max_sum`` give
    the admissible range of the total weight implied by the sum rows.
    """

    assets: Tuple[str, ...]
    A_eq: np.ndarray
    b_eq: np.ndarray
    A_ineq: np.ndarray
    b_ineq: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    min_sum: float = -np.inf
    max_sum: float = np.inf
    eq_labels: Tuple[str, ...] = ()
    ineq_labels: Tuple[str, ...] = ()

    @property
    def n_assets(self) -> int:
        return len(self.assets)

    @property
    def has_finite_bounds(self) -> bool:
        return bool(np.all(np.isfinite(self.lower)) and np.all(np.isfinite(self.upper)))

    @property
    def fixed_sum(self) -> Optional[float]:
        """Total weight when the sum rows pin it to one value."""
        if np.isfinite(self.min_sum) and abs(self.max_sum - self.min_sum) <= BOUND_EPS:
            return float(self.min_sum)
        return None

    def bounds_list(self) -> List[Tuple[Optional[float], Optional[float]]]:
        """Bounds in the (low, high) form used by scipy, None for infinite sides."""
        return [
            (float(lo) if np.isfinite(lo) else None, float(hi) if np.isfinite(hi) else None)
            for lo, hi in zip(self.lower, self.upper)
        ]

    def is_satisfied(self, weights: np.ndarray, tol: float = 1e-6) -> bool:
        """Check a weight vector against every canonical row and bound."""
        w = np.asarray(weights, dtype=float)
        if w.shape != (self.n_assets,) or not np.all(np.isfinite(w)):
            return False
        if np.any(w < self.lower - tol) or np.any(w > self.upper + tol):
            return False
        if self.A_eq.size and np.any(np.abs(self.A_eq @ w - self.b_eq) > tol):
            return False
        if self.A_ineq.size and np.any(self.A_ineq @ w - self.b_ineq > tol):
            return False
        return True

    def satisfied_mask(self, weights: np.ndarray, tol: float = 1e-6) -> np.ndarray:
        """Vectorised ``is_satisfied`` over the rows of an (N, K) weight matrix."""
        W = np.atleast_2d(np.asarray(weights, dtype=float))
        mask = np.all(np.isfinite(W), axis=1)
        mask &= np.all(W >= self.lower - tol, axis=1)
        mask &= np.all(W <= self.upper + tol, axis=1)
        if self.A_eq.size:
            mask &= np.all(np.abs(W @ self.A_eq.T - self.b_eq) <= tol, axis=1)
        if self.A_ineq.size:
            mask &= np.all(W @ self.A_ineq.T - self.b_ineq <= tol, axis=1)
        return mask


class _CanonicalBuilder:
    """Mutable accumulator used while translating constraint variants."""

    def __init__(self, assets: Tuple[str, ...]):
        self.assets = assets
        n = len(assets)
        self.eq_rows: List[np.ndarray] = []
        self.eq_rhs: List[float] = []
        self.eq_labels: List[str] = []
        self.ineq_rows: List[np.ndarray] = []
        self.ineq_rhs: List[float] = []
        self.ineq_labels: List[str] = []
        self.lower = np.full(n, -np.inf)
        self.upper = np.full(n, np.inf)
        self.min_sum = -np.inf
        self.max_sum = np.inf
        self.group_ranges: List[Tuple[str, np.ndarray, float, float]] = []

    def resolve(self, ref: AssetRef) -> int:
        if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
            if not 0 <= int(ref) < len(self.assets):
                raise ValidationError(
                    f"Asset position {ref} out of range",
                    context={'n_assets': len(self.assets)}
                )
            return int(ref)
        try:
            return self.assets.index(str(ref))
        except ValueError:
            raise ValidationError(f"Unknown asset in constraint: {ref}")

    def per_asset(self, bound, name: str) -> np.ndarray:
        if isinstance(bound, tuple):
            if len(bound) != len(self.assets):
                raise ValidationError(
                    f"Box {name} must be a scalar or have one value per asset",
                    context={name: bound, 'n_assets': len(self.assets)}
                )
            return np.array(bound, dtype=float)
        return np.full(len(self.assets), float(bound))

    def add_sum_range(self, min_sum: float, max_sum: float, label: str) -> None:
        ones = np.ones(len(self.assets))
        if abs(max_sum - min_sum) <= BOUND_EPS:
            self.eq_rows.append(ones)
            self.eq_rhs.append(float(min_sum))
            self.eq_labels.append(label)
        else:
            if np.isfinite(max_sum):
                self.ineq_rows.append(ones)
                self.ineq_rhs.append(float(max_sum))
                self.ineq_labels.append(f"{label}_max")
            if np.isfinite(min_sum):
                self.ineq_rows.append(-ones)
                self.ineq_rhs.append(-float(min_sum))
                self.ineq_labels.append(f"{label}_min")
        self.min_sum = max(self.min_sum, min_sum)
        self.max_sum = min(self.max_sum, max_sum)


def _translate_full_investment(builder: _CanonicalBuilder, constraint: FullInvestment) -> None:
    if 'full_investment' in builder.eq_labels:
        return
    builder.add_sum_range(1.0, 1.0, 'full_investment')


def _translate_weight_sum(builder: _CanonicalBuilder, constraint: WeightSum) -> None:
    if constraint.min_sum > constraint.max_sum + BOUND_EPS:
        raise ConstraintInfeasible(
            "Weight sum range is empty",
            error_code="EMPTY_SUM_RANGE",
            context={'min_sum': constraint.min_sum, 'max_sum': constraint.max_sum}
        )
    builder.add_sum_range(constraint.min_sum, constraint.max_sum, 'weight_sum')


def _translate_box(builder: _CanonicalBuilder, constraint: Box) -> None:
    builder.lower = np.maximum(builder.lower, builder.per_asset(constraint.min, 'min'))
    builder.upper = np.minimum(builder.upper, builder.per_asset(constraint.max, 'max'))


def _translate_long_only(builder: _CanonicalBuilder, constraint: LongOnly) -> None:
    builder.lower = np.maximum(builder.lower, 0.0)


def _translate_group(builder: _CanonicalBuilder, constraint: Group) -> None:
    for label, members, (group_min, group_max) in zip(
        constraint.labels, constraint.groups, constraint.bounds()
    ):
        if group_min > group_max + BOUND_EPS:
            raise ConstraintInfeasible(
                f"Group {label} has an empty weight range",
                error_code="EMPTY_GROUP_RANGE",
                context={'group': label, 'group_min': group_min, 'group_max': group_max}
            )
        row = np.zeros(len(builder.assets))
        for member in members:
            row[builder.resolve(member)] = 1.0
        if np.isfinite(group_max):
            builder.ineq_rows.append(row)
            builder.ineq_rhs.append(float(group_max))
            builder.ineq_labels.append(f"{label}_max")
        if np.isfinite(group_min):
            builder.ineq_rows.append(-row)
            builder.ineq_rhs.append(-float(group_min))
            builder.ineq_labels.append(f"{label}_min")
        builder.group_ranges.append((label, row, group_min, group_max))


_TRANSLATORS: Dict[type, Callable[[_CanonicalBuilder, object], None]] = {
    FullInvestment: _translate_full_investment,
    WeightSum: _translate_weight_sum,
    Box: _translate_box,
    LongOnly: _translate_long_only,
    Group: _translate_group,
}


def _check_reachable(builder: _CanonicalBuilder) -> None:
    """Reject bound sets that no weight vector can satisfy."""
    empty = builder.lower > builder.upper + BOUND_EPS
    if np.any(empty):
        i = int(np.argmax(empty))
        raise ConstraintInfeasible(
            f"Bounds on asset {builder.assets[i]} are empty after merging",
            error_code="EMPTY_BOUNDS",
            context={'asset': builder.assets[i], 'lower': float(builder.lower[i]),
                     'upper': float(builder.upper[i])}
        )

    if builder.min_sum > builder.max_sum + BOUND_EPS:
        raise ConstraintInfeasible(
            "Weight sum constraints conflict",
            error_code="EMPTY_SUM_RANGE",
            context={'min_sum': builder.min_sum, 'max_sum': builder.max_sum}
        )

    low_total = float(np.sum(builder.lower))
    high_total = float(np.sum(builder.upper))
    if low_total > builder.max_sum + BOUND_EPS or high_total < builder.min_sum - BOUND_EPS:
        raise ConstraintInfeasible(
            "Asset bounds cannot reach the required total weight",
            error_code="UNREACHABLE_SUM",
            context={'sum_of_lower': low_total, 'sum_of_upper': high_total,
                     'min_sum': builder.min_sum, 'max_sum': builder.max_sum}
        )

    for label, row, group_min, group_max in builder.group_ranges:
        members = row > 0
        low = float(np.sum(builder.lower[members]))
        high = float(np.sum(builder.upper[members]))
        if low > group_max + BOUND_EPS or high < group_min - BOUND_EPS:
            raise ConstraintInfeasible(
                f"Asset bounds cannot reach the range of group {label}",
                error_code="UNREACHABLE_GROUP",
                context={'group': label, 'sum_of_lower': low, 'sum_of_upper': high,
                         'group_min': group_min, 'group_max': group_max}
            )


def canonicalize(constraints: Sequence[object], assets: Sequence[str]) -> CanonicalConstraints:
    """
    Translate a list of constraint variants into canonical linear form.

    Args:
        constraints: Constraint variants, applied in order
        assets: Asset identifiers defining the weight vector order

    Returns:
        CanonicalConstraints for the combined constraint set

    Raises:
        ConstraintInfeasible: if the merged constraints admit no weight vector
        ValidationError: on malformed constraints
    """
    assets = tuple(str(a) for a in assets)
    builder = _CanonicalBuilder(assets)

    for constraint in constraints:
        translator = _TRANSLATORS.get(type(constraint))
        if translator is None:
            raise ValidationError(
                f"Unsupported constraint type: {type(constraint).__name__}",
                error_code="UNSUPPORTED_CONSTRAINT"
            )
        translator(builder, constraint)

    _check_reachable(builder)

    n = len(assets)
    canonical = CanonicalConstraints(
        assets=assets,
        A_eq=np.array(builder.eq_rows, dtype=float).reshape(-1, n),
        b_eq=np.array(builder.eq_rhs, dtype=float),
        A_ineq=np.array(builder.ineq_rows, dtype=float).reshape(-1, n),
        b_ineq=np.array(builder.ineq_rhs, dtype=float),
        lower=builder.lower,
        upper=builder.upper,
        min_sum=builder.min_sum,
        max_sum=builder.max_sum,
        eq_labels=tuple(builder.eq_labels),
        ineq_labels=tuple(builder.ineq_labels),
    )
    logger.debug(
        f"Canonicalized {len(constraints)} constraints into "
        f"{len(canonical.b_eq)} equality and {len(canonical.b_ineq)} inequality rows"
    )
    return canonical


def feasible(
    weights: np.ndarray,
    constraints: Sequence[object],
    assets: Sequence[str],
    tol: float = 1e-6
) -> bool:
    """True if the weights satisfy every constraint within ``tol``."""
    try:
        canonical = canonicalize(constraints, assets)
    except ConstraintInfeasible:
        return False
    return canonical.is_satisfied(weights, tol)


def violations(
    weights: np.ndarray,
    canonical: CanonicalConstraints,
    tol: float = 1e-6
) -> List[ConstraintViolation]:
    """Detailed list of the canonical rows and bounds a weight vector breaks."""
    w = np.asarray(weights, dtype=float)
    found: List[ConstraintViolation] = []

    for i, asset in enumerate(canonical.assets):
        if w[i] < canonical.lower[i] - tol:
            found.append(ConstraintViolation(
                constraint_name=asset,
                violation_type="lower_bound",
                current_value=float(w[i]),
                limit_value=float(canonical.lower[i]),
                violation_amount=float(canonical.lower[i] - w[i]),
                message=f"Weight of {asset} below its lower bound"
            ))
        if w[i] > canonical.upper[i] + tol:
            found.append(ConstraintViolation(
                constraint_name=asset,
                violation_type="upper_bound",
                current_value=float(w[i]),
                limit_value=float(canonical.upper[i]),
                violation_amount=float(w[i] - canonical.upper[i]),
                message=f"Weight of {asset} above its upper bound"
            ))

    for row, rhs, label in zip(canonical.A_eq, canonical.b_eq, canonical.eq_labels):
        value = float(row @ w)
        if abs(value - rhs) > tol:
            found.append(ConstraintViolation(
                constraint_name=label,
                violation_type="equality",
                current_value=value,
                limit_value=float(rhs),
                violation_amount=abs(value - float(rhs)),
                message=f"Equality {label} not met"
            ))

    for row, rhs, label in zip(canonical.A_ineq, canonical.b_ineq, canonical.ineq_labels):
        value = float(row @ w)
        if value - rhs > tol:
            found.append(ConstraintViolation(
                constraint_name=label,
                violation_type="inequality",
                current_value=value,
                limit_value=float(rhs),
                violation_amount=value - float(rhs),
                message=f"Inequality {label} exceeded"
            ))

    return found
