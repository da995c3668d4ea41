"""
Domain layer - Core entities, value objects, and interfaces.

This package contains the portfolio specification model, the frontier and trace
entities produced from it, and the exception taxonomy shared by every layer.
"""

# Re-export key domain components for easier imports
from .entities import PortfolioSpec, EfficientFrontier, OptimizationTrace
from .value_objects import (
    FullInvestment, WeightSum, Box, LongOnly, Group,
    RiskObjective, ReturnObjective, RiskMeasure, ReturnMeasure,
    FrontierMethod, OptimizeMethod, FrontierPoint
)
from .exceptions import (
    FrontierError, ValidationError, AssetMismatch, OptimizationError,
    ConstraintInfeasible, PointInfeasible, SolverError, EmptyFrontier,
    UnboundedProblem, ConfigurationError
)
from .interfaces import IOptimizationBackend, ILogger, IConfigManager
