"""
Domain entities for the efficient-frontier engine.

The portfolio specification describes what may be held and what is optimized;
frontiers and traces are the immutable outputs built from it.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import AssetMismatch, ValidationError
from .value_objects import (
    MEAN, AssetRef, Constraint, FrontierMethod, FrontierPoint, Group, Objective,
    ReturnObjective, RiskMeasure, RiskObjective
)


RETURN_COLUMN = "return"
RISK_COLUMN = "risk"
METRIC_COLUMNS = (MEAN, RiskMeasure.STD_DEV.value, RiskMeasure.VARIANCE.value,
                  RiskMeasure.EXPECTED_SHORTFALL.value)


@dataclass(frozen=True)
class PortfolioSpec:
    """
    Immutable portfolio specification: assets, constraints and objectives.

    "Adding" a constraint or objective returns a new specification, so one base
    specification can be branched into several differently constrained ones.
    """

    assets: Tuple[str, ...]
    constraints: Tuple[Constraint, ...] = ()
    objectives: Tuple[Objective, ...] = ()

    def __post_init__(self):
        """Validate specification after initialization."""
        assets = tuple(str(a) for a in self.assets)
        if not assets:
            raise ValidationError("Portfolio specification needs at least one asset")
        if len(set(assets)) != len(assets):
            raise ValidationError(
                "Asset identifiers must be unique",
                context={'assets': assets}
            )
        object.__setattr__(self, 'assets', assets)
        object.__setattr__(self, 'constraints', tuple(self.constraints))
        object.__setattr__(self, 'objectives', tuple(self.objectives))

    @property
    def n_assets(self) -> int:
        return len(self.assets)

    @property
    def risk_objective(self) -> Optional[RiskObjective]:
        """First risk objective, if any."""
        for objective in self.objectives:
            if isinstance(objective, RiskObjective):
                return objective
        return None

    @property
    def return_objective(self) -> Optional[ReturnObjective]:
        for objective in self.objectives:
            if isinstance(objective, ReturnObjective):
                return objective
        return None

    def add_constraint(self, constraint: Constraint) -> 'PortfolioSpec':
        return replace(self, constraints=self.constraints + (constraint,))

    def add_objective(self, objective: Objective) -> 'PortfolioSpec':
        return replace(self, objectives=self.objectives + (objective,))

    def replace_objective(self, index: int, objective: Objective) -> 'PortfolioSpec':
        objectives = list(self.objectives)
        objectives[index] = objective
        return replace(self, objectives=tuple(objectives))

    def with_risk_aversion(self, risk_aversion: float) -> 'PortfolioSpec':
        """Copy of the specification with a new risk aversion on its risk objective."""
        for i, objective in enumerate(self.objectives):
            if isinstance(objective, RiskObjective):
                return self.replace_objective(i, replace(objective, risk_aversion=risk_aversion))
        raise ValidationError("Specification has no risk objective to update")

    def es_confidence(self, default: float = 0.95) -> float:
        """Expected Shortfall confidence taken from the ES objective, if present."""
        risk = self.risk_objective
        if risk is not None and risk.measure is RiskMeasure.EXPECTED_SHORTFALL:
            return risk.p
        return default

    def asset_index(self, ref: AssetRef) -> int:
        """Resolve an asset reference (position or identifier) to its position."""
        if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
            if not 0 <= int(ref) < self.n_assets:
                raise ValidationError(
                    f"Asset position {ref} out of range",
                    context={'n_assets': self.n_assets}
                )
            return int(ref)
        try:
            return self.assets.index(str(ref))
        except ValueError:
            raise ValidationError(f"Unknown asset: {ref}", context={'assets': self.assets})

    def groups(self) -> Dict[str, List[str]]:
        """Group label -> member identifiers, collected from the Group constraints."""
        result: Dict[str, List[str]] = {}
        for constraint in self.constraints:
            if not isinstance(constraint, Group):
                continue
            for label, members in zip(constraint.labels, constraint.groups):
                key = label
                suffix = 2
                while key in result:
                    key = f"{label}.{suffix}"
                    suffix += 1
                result[key] = [self.assets[self.asset_index(m)] for m in members]
        return result

    def align_returns(self, returns: pd.DataFrame) -> pd.DataFrame:
        """
        Check the returns data against the asset universe and reorder its columns.

        Raises:
            AssetMismatch: if column identifiers and assets differ
            ValidationError: if the data is unusable
        """
        if not isinstance(returns, pd.DataFrame):
            raise ValidationError("Returns must be a pandas DataFrame")

        columns = [str(c) for c in returns.columns]
        if len(set(columns)) != len(columns):
            raise AssetMismatch("Returns data has duplicate asset columns")
        missing = [a for a in self.assets if a not in columns]
        extra = [c for c in columns if c not in self.assets]
        if missing or extra:
            raise AssetMismatch(
                "Returns columns do not match the portfolio assets",
                error_code="ASSET_MISMATCH",
                context={'missing': missing, 'unexpected': extra}
            )

        aligned = returns.copy()
        aligned.columns = columns
        aligned = aligned[list(self.assets)].astype(float)
        if len(aligned) < 2:
            raise ValidationError("At least two return observations are required")
        if aligned.isna().to_numpy().any():
            raise ValidationError(
                "Returns data contains missing values",
                context={'columns': aligned.columns[aligned.isna().any()].tolist()}
            )
        return aligned


@dataclass(frozen=True, eq=False)
class EfficientFrontier:
    """Ordered, immutable sequence of frontier points."""

    points: Tuple[FrontierPoint, ...]
    method: FrontierMethod
    match_column: str
    source: str = "solved"
    skipped: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        points = tuple(self.points)
        if not points:
            raise ValidationError("A frontier needs at least one point")
        if self.source not in ("solved", "extracted"):
            raise ValidationError(f"Unknown frontier source: {self.source}")
        risks = np.array([p.risk for p in points])
        if np.any(np.diff(risks) < -1e-12):
            raise ValidationError("Frontier points must be sorted by the match column")
        object.__setattr__(self, 'points', points)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[FrontierPoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> FrontierPoint:
        return self.points[index]

    @property
    def assets(self) -> Tuple[str, ...]:
        return tuple(str(a) for a in self.points[0].weights.index)

    @property
    def info(self) -> Dict[str, Any]:
        """Frontier metadata including method, match column and source."""
        return {
            **self.metadata,
            'method': self.method.value,
            'match_column': self.match_column,
            'source': self.source,
            'skipped': self.skipped,
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per point: return, risk, then one weight column per asset."""
        rows = []
        for point in self.points:
            row = {RETURN_COLUMN: point.expected_return, RISK_COLUMN: point.risk}
            row.update(point.weights.to_dict())
            rows.append(row)
        frame = pd.DataFrame(rows, columns=[RETURN_COLUMN, RISK_COLUMN, *self.assets])
        frame.index.name = 'point'
        return frame

    def weights_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame([p.weights for p in self.points]).reset_index(drop=True)
        frame.index.name = 'point'
        return frame

    def metrics_frame(self) -> pd.DataFrame:
        """All risk/return metrics recorded for each point."""
        frame = pd.DataFrame(
            [{c: p.metrics.get(c, np.nan) for c in METRIC_COLUMNS} for p in self.points],
            columns=list(METRIC_COLUMNS)
        )
        frame.index.name = 'point'
        return frame

    def min_risk_point(self) -> FrontierPoint:
        return self.points[0]

    def max_return_point(self) -> FrontierPoint:
        return max(self.points, key=lambda p: p.expected_return)

    def tangency(self, risk_free: float = 0.0) -> Tuple[int, FrontierPoint]:
        """Point with the highest excess return per unit of risk."""
        best_index, best_ratio = None, -np.inf
        for i, point in enumerate(self.points):
            if point.risk <= 0:
                continue
            ratio = (point.expected_return - risk_free) / point.risk
            if ratio > best_ratio:
                best_index, best_ratio = i, ratio
        if best_index is None:
            raise ValidationError("No frontier point has positive risk")
        return best_index, self.points[best_index]

    def summary(self, digits: Optional[int] = None) -> Dict[str, pd.DataFrame]:
        """Weights and risk/return tables, optionally rounded."""
        risk_return = self.to_frame()[[RETURN_COLUMN, RISK_COLUMN]].copy()
        risk = risk_return[RISK_COLUMN].replace(0.0, np.nan)
        risk_return['return_to_risk'] = risk_return[RETURN_COLUMN] / risk
        tables = {'weights': self.weights_frame(), 'risk_return': risk_return}
        if digits is not None:
            tables = {name: table.round(digits) for name, table in tables.items()}
        return tables

    def __str__(self) -> str:
        return (f"EfficientFrontier(method={self.method.value}, match_column={self.match_column}, "
                f"source={self.source}, points={len(self.points)}, skipped={self.skipped})")


@dataclass(frozen=True, eq=False)
class OptimizationTrace:
    """Every weight vector evaluated during one optimization run and its metrics."""

    assets: Tuple[str, ...]
    weights: np.ndarray
    metrics: pd.DataFrame
    method: FrontierMethod
    es_confidence: float = 0.95

    def __post_init__(self):
        weights = np.atleast_2d(np.asarray(self.weights, dtype=float))
        if weights.shape[1] != len(self.assets):
            raise ValidationError(
                "Trace weights must have one column per asset",
                context={'shape': weights.shape, 'n_assets': len(self.assets)}
            )
        if len(self.metrics) != weights.shape[0]:
            raise ValidationError("Trace metrics must have one row per weight vector")
        missing = [c for c in METRIC_COLUMNS if c not in self.metrics.columns]
        if missing:
            raise ValidationError(f"Trace metrics missing columns: {missing}")
        object.__setattr__(self, 'assets', tuple(self.assets))
        object.__setattr__(self, 'weights', weights)
        object.__setattr__(self, 'metrics', self.metrics.reset_index(drop=True))

    def __len__(self) -> int:
        return self.weights.shape[0]

    def weight_series(self, index: int) -> pd.Series:
        return pd.Series(self.weights[index], index=list(self.assets))

    def to_frame(self) -> pd.DataFrame:
        weights = pd.DataFrame(self.weights, columns=list(self.assets))
        return pd.concat([self.metrics, weights], axis=1)
