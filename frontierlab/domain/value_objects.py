"""
Domain value objects for the efficient-frontier engine.

Value objects are immutable objects that represent descriptive aspects of the domain
with no conceptual identity. They are defined by their attributes rather than identity.

Constraints and objectives are plain tagged variants: each is a frozen dataclass
with no shared base class, translated by dispatch tables keyed on the variant type.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .exceptions import ValidationError


MEAN = "mean"

AssetRef = Union[int, str]
Bound = Union[float, Tuple[float, ...]]


class RiskMeasure(Enum):
    """Risk measures a frontier can be built and matched on."""
    VARIANCE = "var"
    STD_DEV = "StdDev"
    EXPECTED_SHORTFALL = "ES"

    @classmethod
    def parse(cls, value: Union[str, 'RiskMeasure']) -> 'RiskMeasure':
        """Resolve a measure from its name or one of the common aliases."""
        if isinstance(value, cls):
            return value
        aliases = {
            'var': cls.VARIANCE,
            'variance': cls.VARIANCE,
            'stddev': cls.STD_DEV,
            'sd': cls.STD_DEV,
            'std': cls.STD_DEV,
            'es': cls.EXPECTED_SHORTFALL,
            'etl': cls.EXPECTED_SHORTFALL,
            'cvar': cls.EXPECTED_SHORTFALL,
            'expected_shortfall': cls.EXPECTED_SHORTFALL,
        }
        try:
            return aliases[str(value).strip().lower()]
        except KeyError:
            raise ValidationError(
                f"Unknown risk measure: {value}",
                error_code="UNKNOWN_RISK_MEASURE",
                context={'value': value, 'allowed': [m.value for m in cls]}
            )


class ReturnMeasure(Enum):
    """Return measures."""
    MEAN = MEAN


class FrontierMethod(Enum):
    """Frontier construction methods."""
    MEAN_VARIANCE = "mean-var"
    MEAN_ES = "mean-ES"
    RANDOM = "random"

    @classmethod
    def parse(cls, value: Union[str, 'FrontierMethod']) -> 'FrontierMethod':
        if isinstance(value, cls):
            return value
        aliases = {
            'mean-var': cls.MEAN_VARIANCE,
            'mean-variance': cls.MEAN_VARIANCE,
            'mean_variance': cls.MEAN_VARIANCE,
            'mean-stddev': cls.MEAN_VARIANCE,
            'mean-es': cls.MEAN_ES,
            'mean_es': cls.MEAN_ES,
            'mean-etl': cls.MEAN_ES,
            'mean-cvar': cls.MEAN_ES,
            'random': cls.RANDOM,
        }
        try:
            return aliases[str(value).strip().lower()]
        except KeyError:
            raise ValidationError(
                f"Unknown frontier method: {value}",
                error_code="UNKNOWN_METHOD",
                context={'value': value, 'allowed': [m.value for m in cls]}
            )

    @property
    def is_exact(self) -> bool:
        return self is not FrontierMethod.RANDOM


class OptimizeMethod(Enum):
    """Single-run optimization strategies."""
    EXACT = "exact"
    RANDOM = "random"

    @classmethod
    def parse(cls, value: Union[str, 'OptimizeMethod']) -> 'OptimizeMethod':
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        if name in ('exact', 'roi'):
            return cls.EXACT
        if name == 'random':
            return cls.RANDOM
        raise ValidationError(
            f"Unknown optimization method: {value}",
            error_code="UNKNOWN_METHOD"
        )


def _as_bound(value: Union[float, Sequence[float]]) -> Bound:
    if np.isscalar(value):
        return float(value)
    return tuple(float(v) for v in value)


# --- Constraint variants -----------------------------------------------------

@dataclass(frozen=True)
class FullInvestment:
    """Weights sum to exactly one."""


@dataclass(frozen=True)
class WeightSum:
    """Weights sum within [min_sum, max_sum]."""
    min_sum: float = 1.0
    max_sum: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, 'min_sum', float(self.min_sum))
        object.__setattr__(self, 'max_sum', float(self.max_sum))


@dataclass(frozen=True)
class Box:
    """Per-asset weight bounds, either one scalar pair or one value per asset."""
    min: Bound = 0.0
    max: Bound = 1.0

    def __post_init__(self):
        object.__setattr__(self, 'min', _as_bound(self.min))
        object.__setattr__(self, 'max', _as_bound(self.max))


@dataclass(frozen=True)
class LongOnly:
    """No short positions."""


@dataclass(frozen=True)
class Group:
    """
    Bounds on the summed weight of groups of assets.

    ``groups`` is a sequence of member lists (positions or identifiers) or a
    mapping of label to members, in which case the keys become the labels.
    ``group_min``/``group_max`` are a scalar applied to every group or one value
    per group.
    """
    groups: Any
    group_min: Bound = 0.0
    group_max: Bound = 1.0
    labels: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        groups = self.groups
        labels = self.labels
        if isinstance(groups, Mapping):
            labels = tuple(str(k) for k in groups.keys())
            groups = list(groups.values())
        members = tuple(tuple(g) for g in groups)
        if not members or any(len(g) == 0 for g in members):
            raise ValidationError("Group constraint needs at least one non-empty group")
        if labels is None:
            labels = tuple(f"group{i + 1}" for i in range(len(members)))
        labels = tuple(labels)
        if len(labels) != len(members):
            raise ValidationError("Group labels must match the number of groups")

        group_min = _as_bound(self.group_min)
        group_max = _as_bound(self.group_max)
        for name, bound in (('group_min', group_min), ('group_max', group_max)):
            if isinstance(bound, tuple) and len(bound) != len(members):
                raise ValidationError(
                    f"{name} must be a scalar or have one value per group",
                    context={name: bound, 'n_groups': len(members)}
                )

        object.__setattr__(self, 'groups', members)
        object.__setattr__(self, 'labels', labels)
        object.__setattr__(self, 'group_min', group_min)
        object.__setattr__(self, 'group_max', group_max)

    def bounds(self) -> Tuple[Tuple[float, float], ...]:
        """(min, max) pair for every group."""
        n = len(self.groups)
        lo = self.group_min if isinstance(self.group_min, tuple) else (self.group_min,) * n
        hi = self.group_max if isinstance(self.group_max, tuple) else (self.group_max,) * n
        return tuple(zip(lo, hi))


Constraint = Union[FullInvestment, WeightSum, Box, LongOnly, Group]


# --- Objective variants ------------------------------------------------------

@dataclass(frozen=True)
class RiskObjective:
    """Minimize a risk measure, optionally scaled by a risk aversion."""
    measure: RiskMeasure = RiskMeasure.VARIANCE
    risk_aversion: Optional[float] = None
    p: float = 0.95

    def __post_init__(self):
        object.__setattr__(self, 'measure', RiskMeasure.parse(self.measure))
        if not 0.0 < self.p < 1.0:
            raise ValidationError(
                "Expected Shortfall confidence must lie in (0, 1)",
                context={'p': self.p}
            )
        if self.risk_aversion is not None and self.risk_aversion < 0:
            raise ValidationError(
                "Risk aversion cannot be negative",
                context={'risk_aversion': self.risk_aversion}
            )


@dataclass(frozen=True)
class ReturnObjective:
    """Maximize expected return."""
    measure: ReturnMeasure = ReturnMeasure.MEAN


Objective = Union[RiskObjective, ReturnObjective]


# --- Frontier points ---------------------------------------------------------

@dataclass(frozen=True, eq=False)
class FrontierPoint:
    """One portfolio on a frontier: weights plus its risk and return."""

    weights: pd.Series
    risk: float
    expected_return: float
    metrics: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.weights, pd.Series):
            raise ValidationError("Weights must be a pandas Series")
        if len(self.weights) == 0:
            raise ValidationError("Weights cannot be empty")

    @property
    def total_weight(self) -> float:
        return float(self.weights.sum())

    def weight_vector(self) -> np.ndarray:
        return self.weights.to_numpy(dtype=float)

    def __str__(self) -> str:
        return f"FrontierPoint(return={self.expected_return:.6f}, risk={self.risk:.6f})"
