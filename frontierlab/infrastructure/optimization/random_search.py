"""
Random portfolio search.

Candidates are drawn directly inside the per-asset bounds: the total weight is
fixed (or drawn from the admissible sum range), the mass above the lower bounds
is split by a flat Dirichlet draw, and candidates that break an upper bound or
a group row are rejected. All randomness comes from a caller-supplied
``numpy.random.Generator`` or seed.
"""

from typing import Optional, Union
import logging

import numpy as np

from ...domain.exceptions import PointInfeasible, SolverError, UnboundedProblem
from ...domain.interfaces import IOptimizationBackend
from .constraints import CanonicalConstraints
from .objectives import MarketMoments, ScalarObjective, batch_mean
from .optimization_result import BackendSolution, SolverSettings

logger = logging.getLogger(__name__)

RandomState = Union[None, int, np.random.SeedSequence, np.random.Generator]


def as_generator(random_state: RandomState = None) -> np.random.Generator:
    """Turn a seed, seed sequence or generator into a ``numpy.random.Generator``."""
    if isinstance(random_state, np.random.Generator):
        return random_state
    if isinstance(random_state, (bool, float)):
        raise TypeError(f"Unsupported random_state: {random_state!r}")
    return np.random.default_rng(random_state)


def pareto_filter(risk: np.ndarray, ret: np.ndarray) -> np.ndarray:
    """
    Indices of the strictly Pareto-efficient candidates, ascending in risk.

    A candidate survives when no other candidate has risk at most as high and
    return at least as high. Exact duplicates keep a single representative.
    """
    risk = np.asarray(risk, dtype=float)
    ret = np.asarray(ret, dtype=float)
    if risk.size == 0:
        return np.array([], dtype=int)

    # primary key risk ascending, ties broken by return descending
    order = np.lexsort((-ret, risk))
    sorted_ret = ret[order]
    best_before = np.concatenate([[-np.inf], np.maximum.accumulate(sorted_ret)[:-1]])
    return order[sorted_ret > best_before]


class RandomPortfolioSampler:
    """Draws feasible weight vectors for one canonical constraint set."""

    def __init__(self, canonical: CanonicalConstraints, tol: float = 1e-6, max_batches: int = 200):
        if not np.all(np.isfinite(canonical.lower)):
            raise UnboundedProblem(
                "Random search needs a finite lower bound on every asset; add box or long-only bounds",
                error_code="UNBOUNDED_SAMPLING",
                context={'assets': [a for a, lo in zip(canonical.assets, canonical.lower)
                                    if not np.isfinite(lo)]}
            )
        self.canonical = canonical
        self.tol = tol
        self.max_batches = max_batches

        lower_total = float(canonical.lower.sum())
        fixed = canonical.fixed_sum
        if fixed is not None:
            self.sum_range = (fixed, fixed)
        else:
            low = max(canonical.min_sum, lower_total)
            high = min(canonical.max_sum, float(canonical.upper.sum()))
            if not np.isfinite(high):
                raise UnboundedProblem(
                    "Random search needs a bounded total weight",
                    error_code="UNBOUNDED_SAMPLING",
                    context={'min_sum': canonical.min_sum, 'max_sum': canonical.max_sum}
                )
            self.sum_range = (low, high)

    def _equal_weight(self) -> np.ndarray:
        low, high = self.sum_range
        total = float(np.clip(1.0, low, high))
        return np.full(self.canonical.n_assets, total / self.canonical.n_assets)

    def _draw(self, size: int, rng: np.random.Generator) -> np.ndarray:
        lower = self.canonical.lower
        low, high = self.sum_range
        totals = rng.uniform(low, high, size) if high > low else np.full(size, low)
        slack = np.maximum(totals - lower.sum(), 0.0)
        shares = rng.dirichlet(np.ones(self.canonical.n_assets), size)
        return lower + slack[:, None] * shares

    def sample(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """
        Draw up to ``n`` feasible candidates as an (N, K) matrix.

        Raises:
            SolverError: if no feasible candidate is found within ``max_batches``
        """
        if n < 1:
            raise ValueError("Sample size must be at least 1")

        accepted = []
        count = 0
        seed = self._equal_weight()
        if self.canonical.is_satisfied(seed, self.tol):
            accepted.append(seed[None, :])
            count = 1

        batch_size = max(n, 64)
        batches = 0
        while count < n and batches < self.max_batches:
            draws = self._draw(batch_size, rng)
            keep = draws[self.canonical.satisfied_mask(draws, self.tol)]
            if keep.shape[0]:
                keep = keep[:n - count]
                accepted.append(keep)
                count += keep.shape[0]
            batches += 1

        if count == 0:
            raise SolverError(
                "Random search found no portfolio satisfying the constraints",
                error_code="SAMPLING_EXHAUSTED",
                context={'batches': batches, 'batch_size': batch_size}
            )
        if count < n:
            logger.warning(f"Random search accepted only {count} of {n} requested candidates")
        return np.vstack(accepted)


class RandomSearchBackend(IOptimizationBackend):
    """Scalarized optimization by sampling random feasible portfolios."""

    name = "random"

    def __init__(
        self,
        search_size: int = 2000,
        random_state: RandomState = None,
        max_batches: int = 200,
        settings: Optional[SolverSettings] = None
    ):
        if search_size < 1:
            raise ValueError("search_size must be at least 1")
        self.search_size = search_size
        self.rng = as_generator(random_state)
        self.max_batches = max_batches
        self.settings = settings or SolverSettings()

    def sample(
        self,
        moments: MarketMoments,
        canonical: CanonicalConstraints,
        n: Optional[int] = None
    ) -> np.ndarray:
        sampler = RandomPortfolioSampler(canonical, self.settings.feasibility_tol, self.max_batches)
        candidates = sampler.sample(n or self.search_size, self.rng)
        logger.debug(f"Sampled {candidates.shape[0]} random portfolios over {moments.n_assets} assets")
        return candidates

    def minimize(
        self,
        moments: MarketMoments,
        canonical: CanonicalConstraints,
        objective: ScalarObjective,
        target_return: Optional[float] = None
    ) -> BackendSolution:
        """
        Best sampled candidate for the scalarized objective.

        Raises:
            PointInfeasible: if no candidate reaches the target return
        """
        candidates = self.sample(moments, canonical)
        values = objective.batch_values(candidates, moments)

        if target_return is not None:
            reaches = batch_mean(candidates, moments) >= target_return - self.settings.feasibility_tol
            if not reaches.any():
                raise PointInfeasible(
                    "No sampled portfolio reaches the target return",
                    error_code="TARGET_NOT_SAMPLED",
                    context={'target_return': target_return}
                )
            values = np.where(reaches, values, np.inf)

        best = int(np.argmin(values))
        return BackendSolution(
            weights=candidates[best],
            objective_value=float(values[best]),
            status="optimal",
            iterations=candidates.shape[0],
            candidates=candidates,
        )
