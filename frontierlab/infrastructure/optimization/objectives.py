"""
Risk and return objective functions.

Sample moments are computed once per returns dataset and shared read-only by
every solve. Risk measures dispatch through fixed tables of pure functions, one
table for single weight vectors and one for (N, K) batches of candidates.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from ...domain.entities import METRIC_COLUMNS, PortfolioSpec
from ...domain.exceptions import ValidationError
from ...domain.value_objects import MEAN, RiskMeasure


@dataclass(frozen=True, eq=False)
class MarketMoments:
    """Sample mean, sample covariance and raw return matrix of one dataset."""

    assets: Tuple[str, ...]
    returns: np.ndarray
    mu: np.ndarray
    sigma: np.ndarray

    @classmethod
    def from_returns(cls, returns: pd.DataFrame) -> 'MarketMoments':
        values = returns.to_numpy(dtype=float)
        return cls(
            assets=tuple(str(c) for c in returns.columns),
            returns=values,
            mu=values.mean(axis=0),
            sigma=np.atleast_2d(np.cov(values, rowvar=False, ddof=1)),
        )

    @property
    def n_obs(self) -> int:
        return self.returns.shape[0]

    @property
    def n_assets(self) -> int:
        return self.returns.shape[1]


def _tail_losses(losses: np.ndarray, p: float) -> np.ndarray:
    """
    Average of the worst (1 - p) fraction of each loss column.

    The tail mass m = (1 - p) * T is generally fractional; the observation on the
    tail boundary enters with weight m - floor(m). This is the minimum of the
    Rockafellar-Uryasev linear program, so historical ES and the LP agree.
    """
    if not 0.0 < p < 1.0:
        raise ValidationError("Expected Shortfall confidence must lie in (0, 1)", context={'p': p})
    n_obs = losses.shape[0]
    mass = (1.0 - p) * n_obs
    whole = int(np.floor(mass + 1e-9))
    frac = mass - whole
    if frac < 1e-9:
        frac = 0.0
    ordered = -np.sort(-losses, axis=0)
    total = ordered[:whole].sum(axis=0)
    if frac > 0.0 and whole < n_obs:
        total = total + frac * ordered[whole]
    return total / mass


def mean_return(weights: np.ndarray, moments: MarketMoments, p: float = 0.95) -> float:
    return float(np.asarray(weights, dtype=float) @ moments.mu)


def variance(weights: np.ndarray, moments: MarketMoments, p: float = 0.95) -> float:
    w = np.asarray(weights, dtype=float)
    return float(max(w @ moments.sigma @ w, 0.0))


def std_dev(weights: np.ndarray, moments: MarketMoments, p: float = 0.95) -> float:
    return float(np.sqrt(variance(weights, moments)))


def expected_shortfall(weights: np.ndarray, moments: MarketMoments, p: float = 0.95) -> float:
    """Historical (non-parametric) Expected Shortfall of the weighted return series."""
    portfolio_returns = moments.returns @ np.asarray(weights, dtype=float)
    return float(_tail_losses(-portfolio_returns[:, None], p)[0])


def batch_mean(W: np.ndarray, moments: MarketMoments, p: float = 0.95) -> np.ndarray:
    return np.atleast_2d(W) @ moments.mu


def batch_variance(W: np.ndarray, moments: MarketMoments, p: float = 0.95) -> np.ndarray:
    W = np.atleast_2d(W)
    return np.maximum(np.einsum('ij,jk,ik->i', W, moments.sigma, W), 0.0)


def batch_std_dev(W: np.ndarray, moments: MarketMoments, p: float = 0.95) -> np.ndarray:
    return np.sqrt(batch_variance(W, moments))


def batch_expected_shortfall(W: np.ndarray, moments: MarketMoments, p: float = 0.95) -> np.ndarray:
    portfolio_returns = moments.returns @ np.atleast_2d(W).T
    return _tail_losses(-portfolio_returns, p)


RISK_FUNCTIONS: Dict[RiskMeasure, Callable[..., float]] = {
    RiskMeasure.VARIANCE: variance,
    RiskMeasure.STD_DEV: std_dev,
    RiskMeasure.EXPECTED_SHORTFALL: expected_shortfall,
}

BATCH_RISK_FUNCTIONS: Dict[RiskMeasure, Callable[..., np.ndarray]] = {
    RiskMeasure.VARIANCE: batch_variance,
    RiskMeasure.STD_DEV: batch_std_dev,
    RiskMeasure.EXPECTED_SHORTFALL: batch_expected_shortfall,
}


@dataclass(frozen=True)
class ScalarObjective:
    """
    Scalarized risk/return objective to minimize.

    With both terms: ``risk_aversion * risk(w) - mean(w)``; risk only: ``risk(w)``;
    return only: ``-mean(w)``.
    """

    risk: Optional[RiskMeasure] = None
    include_return: bool = False
    risk_aversion: float = 1.0
    p: float = 0.95

    def __post_init__(self):
        if self.risk is None and not self.include_return:
            raise ValidationError("An objective needs a risk term, a return term, or both")

    @classmethod
    def from_spec(cls, spec: PortfolioSpec, default_p: float = 0.95) -> 'ScalarObjective':
        risk = spec.risk_objective
        ret = spec.return_objective
        if risk is None and ret is None:
            raise ValidationError(
                "Portfolio specification has no objectives",
                error_code="NO_OBJECTIVES"
            )
        if risk is None:
            return cls(risk=None, include_return=True, p=default_p)
        aversion = 1.0 if risk.risk_aversion is None else float(risk.risk_aversion)
        p = risk.p if risk.measure is RiskMeasure.EXPECTED_SHORTFALL else default_p
        return cls(risk=risk.measure, include_return=ret is not None, risk_aversion=aversion, p=p)

    @classmethod
    def risk_only(cls, measure: RiskMeasure, p: float = 0.95) -> 'ScalarObjective':
        return cls(risk=measure, include_return=False, p=p)

    @classmethod
    def return_only(cls) -> 'ScalarObjective':
        return cls(risk=None, include_return=True)

    def value(self, weights: np.ndarray, moments: MarketMoments) -> float:
        total = 0.0
        if self.risk is not None:
            total += self.risk_aversion * RISK_FUNCTIONS[self.risk](weights, moments, self.p)
        if self.include_return:
            total -= mean_return(weights, moments)
        return float(total)

    def batch_values(self, W: np.ndarray, moments: MarketMoments) -> np.ndarray:
        W = np.atleast_2d(W)
        total = np.zeros(W.shape[0])
        if self.risk is not None:
            total += self.risk_aversion * BATCH_RISK_FUNCTIONS[self.risk](W, moments, self.p)
        if self.include_return:
            total -= batch_mean(W, moments)
        return total


def portfolio_metrics(weights: np.ndarray, moments: MarketMoments, p: float = 0.95) -> Dict[str, float]:
    """Every metric a frontier can report or be matched on."""
    metrics = {MEAN: mean_return(weights, moments)}
    for measure, func in RISK_FUNCTIONS.items():
        metrics[measure.value] = func(weights, moments, p)
    return metrics


def batch_metrics(W: np.ndarray, moments: MarketMoments, p: float = 0.95) -> pd.DataFrame:
    """``portfolio_metrics`` for each row of an (N, K) weight matrix."""
    W = np.atleast_2d(W)
    columns = {MEAN: batch_mean(W, moments)}
    for measure, func in BATCH_RISK_FUNCTIONS.items():
        columns[measure.value] = func(W, moments, p)
    return pd.DataFrame(columns, columns=list(METRIC_COLUMNS))
