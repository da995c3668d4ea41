"""
Frontier service for the application layer.
Wires configuration, logging and the optimization components together and
provides file loading for returns data and portfolio specifications.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd
import yaml

from ...domain.entities import EfficientFrontier, PortfolioSpec
from ...domain.exceptions import ValidationError, wrap_exception
from ...domain.value_objects import FrontierMethod, OptimizeMethod
from ...infrastructure.config.config_manager import ApplicationConfig, ConfigManager, get_config_manager
from ...infrastructure.logging.logger import get_logger, log_performance
from ...infrastructure.optimization.aggregator import Specs, aggregate_frontiers, overlay_frame
from ...infrastructure.optimization.extraction import SELECT_MAX_RETURN, frontier_from_result
from ...infrastructure.optimization.frontier import FrontierSolver
from ...infrastructure.optimization.legacy import spec_from_dict
from ...infrastructure.optimization.optimization_result import OptimizationResult, SolverSettings
from ...infrastructure.optimization.portfolio_optimizer import PortfolioOptimizer
from ...infrastructure.optimization.weights import assemble_weights
from ...infrastructure.performance.parallel_processor import ParallelProcessor, ProcessingConfig

logger = get_logger(__name__)


def solver_settings(config: ApplicationConfig) -> SolverSettings:
    """SolverSettings from the solver configuration section."""
    solver = config.solver
    return SolverSettings(
        qp_solver=solver.qp_solver,
        lp_method=solver.lp_method,
        max_iterations=solver.max_iterations,
        time_limit=solver.time_limit,
        feasibility_tol=solver.feasibility_tol,
    )


def parallel_processor(config: ApplicationConfig) -> ParallelProcessor:
    """ParallelProcessor from the parallel configuration section."""
    parallel = config.parallel
    return ParallelProcessor(ProcessingConfig(
        max_workers=parallel.max_workers,
        use_processes=parallel.use_processes,
        memory_limit_gb=parallel.memory_limit_gb,
        timeout_seconds=parallel.timeout_seconds,
    ))


class FrontierService:
    """Service for frontier construction, extraction and comparison."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self.config_manager = config_manager or get_config_manager()
        self.config = self.config_manager.get_app_config()

        settings = solver_settings(self.config)
        self.processor = parallel_processor(self.config)
        self.solver = FrontierSolver(
            settings=settings,
            n_points=self.config.frontier.n_points,
            search_size=self.config.random_search.search_size,
            es_confidence=self.config.frontier.es_confidence,
            processor=self.processor,
            max_batches=self.config.random_search.max_batches,
        )
        self.optimizer = PortfolioOptimizer(
            settings=settings,
            search_size=self.config.random_search.search_size,
            es_confidence=self.config.frontier.es_confidence,
            max_batches=self.config.random_search.max_batches,
        )

    def _seed(self, random_state):
        return self.config.random_search.seed if random_state is None else random_state

    # --- Inputs -------------------------------------------------------------

    def load_returns(self, path: Union[str, Path]) -> pd.DataFrame:
        """Read a returns CSV: first column is the observation index, one column per asset."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Returns file not found: {path}")
        returns = pd.read_csv(path, index_col=0)
        if returns.empty:
            raise ValidationError("Returns file contains no observations", context={'path': str(path)})
        logger.debug("Loaded returns", path=str(path), rows=len(returns), assets=len(returns.columns))
        return returns

    def load_spec(self, path: Union[str, Path]) -> PortfolioSpec:
        """Read a portfolio specification from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Specification file not found: {path}")
        try:
            with open(path, 'r') as f:
                mapping = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise wrap_exception(e, ValidationError, f"Invalid YAML in {path.name}", "INVALID_SPEC",
                                 path=str(path)) from e
        return spec_from_dict(mapping)

    # --- Frontiers ----------------------------------------------------------

    @log_performance()
    def compute_frontier(
        self,
        spec: PortfolioSpec,
        returns: pd.DataFrame,
        method: Optional[Union[str, FrontierMethod]] = None,
        match_column: Optional[str] = None,
        n_points: Optional[int] = None,
        random_state=None
    ) -> EfficientFrontier:
        """Solve the efficient frontier of one specification."""
        method = method or self.config.frontier.default_method
        return self.solver.solve(
            spec, returns, method=method, match_column=match_column,
            n_points=n_points, random_state=self._seed(random_state)
        )

    @log_performance()
    def optimize(
        self,
        spec: PortfolioSpec,
        returns: pd.DataFrame,
        optimize_method: Union[str, OptimizeMethod] = OptimizeMethod.EXACT,
        trace: bool = False,
        search_size: Optional[int] = None,
        random_state=None
    ) -> OptimizationResult:
        """Run one scalarized optimization, optionally keeping its trace."""
        return self.optimizer.optimize(
            spec, returns, optimize_method=optimize_method, trace=trace,
            search_size=search_size, random_state=self._seed(random_state)
        )

    def frontier_from_result(
        self,
        result: OptimizationResult,
        match_column: Optional[str] = None,
        n_points: Optional[int] = None,
        select: str = SELECT_MAX_RETURN
    ) -> EfficientFrontier:
        """Frontier of a prior run: re-solved for exact results, extracted from the trace for random ones."""
        return frontier_from_result(
            result,
            match_column=match_column,
            n_points=n_points or self.config.frontier.n_points,
            select=select,
            solver=self.solver,
        )

    def frontier_weights(self, frontier: EfficientFrontier, groups: Optional[Any] = None) -> pd.DataFrame:
        """Asset (and group) weights along a frontier."""
        return assemble_weights(frontier, groups)

    @log_performance()
    def compare(
        self,
        specs: Specs,
        returns: pd.DataFrame,
        method: Optional[Union[str, FrontierMethod]] = None,
        match_column: Optional[str] = None,
        n_points: Optional[int] = None,
        random_state=None
    ) -> Dict[str, EfficientFrontier]:
        """One frontier per specification, over a shared asset universe."""
        return aggregate_frontiers(
            specs, returns,
            method=method or self.config.frontier.default_method,
            match_column=match_column,
            n_points=n_points,
            solver=self.solver,
            processor=self.processor,
            random_state=self._seed(random_state),
        )

    def overlay(self, frontiers: Dict[str, EfficientFrontier]) -> pd.DataFrame:
        return overlay_frame(frontiers)
