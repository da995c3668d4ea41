"""
Constrained Portfolio Efficient Frontiers

Computes efficient frontiers for portfolios under linear constraints (full
investment, weight-sum ranges, box, long-only and group limits) with
mean-variance, mean-ES or random-search methods, extracts frontiers from prior
optimization runs, and compares frontiers across differently constrained
portfolios.
"""

__version__ = "1.0.0"

# Convenience imports for common components
from .domain.entities import PortfolioSpec, EfficientFrontier, OptimizationTrace
from .domain.value_objects import (
    FullInvestment, WeightSum, Box, LongOnly, Group, RiskObjective, ReturnObjective
)
from .domain.exceptions import FrontierError
from .infrastructure.optimization import (
    FrontierSolver, PortfolioOptimizer, solve_frontier, extract_frontier, frontier_from_result,
    assemble_weights, aggregate_frontiers, overlay_frame, spec_from_dict
)
