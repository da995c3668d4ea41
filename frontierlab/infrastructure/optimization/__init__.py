"""
Portfolio optimization infrastructure module.

This module provides the constraint evaluator, objective functions, the
quadratic, linear and random-search backends, and the frontier solver,
extractor, weight assembler and multi-portfolio aggregator built on them.
"""

from .constraints import (
    CanonicalConstraints, ConstraintViolation, canonicalize, feasible, violations
)
from .objectives import (
    MarketMoments, ScalarObjective, RISK_FUNCTIONS, BATCH_RISK_FUNCTIONS,
    mean_return, variance, std_dev, expected_shortfall,
    portfolio_metrics, batch_metrics
)
from .optimization_result import BackendSolution, OptimizationResult, SolverSettings
from .quadratic import QuadraticBackend
from .linear import LinearBackend, max_return_portfolio
from .random_search import RandomPortfolioSampler, RandomSearchBackend, as_generator, pareto_filter
from .portfolio_optimizer import PortfolioOptimizer, exact_backend
from .frontier import FrontierSolver, solve_frontier, resolve_match_column, DEFAULT_N_POINTS
from .extraction import extract_frontier, frontier_from_result
from .weights import assemble_weights
from .aggregator import aggregate_frontiers, overlay_frame
from .legacy import spec_from_dict, spec_from_v1_constraint

__all__ = [
    'CanonicalConstraints', 'ConstraintViolation', 'canonicalize', 'feasible', 'violations',
    'MarketMoments', 'ScalarObjective', 'RISK_FUNCTIONS', 'BATCH_RISK_FUNCTIONS',
    'mean_return', 'variance', 'std_dev', 'expected_shortfall',
    'portfolio_metrics', 'batch_metrics',
    'BackendSolution', 'OptimizationResult', 'SolverSettings',
    'QuadraticBackend',
    'LinearBackend', 'max_return_portfolio',
    'RandomPortfolioSampler', 'RandomSearchBackend', 'as_generator', 'pareto_filter',
    'PortfolioOptimizer', 'exact_backend',
    'FrontierSolver', 'solve_frontier', 'resolve_match_column', 'DEFAULT_N_POINTS',
    'extract_frontier', 'frontier_from_result',
    'assemble_weights',
    'aggregate_frontiers', 'overlay_frame',
    'spec_from_dict', 'spec_from_v1_constraint'
]
