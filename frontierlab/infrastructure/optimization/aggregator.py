"""
Multi-portfolio frontier comparison.

Computes one frontier per differently constrained specification over the same
asset universe, and stacks them into one table for overlay rendering.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union
import logging

import pandas as pd

from ...domain.entities import EfficientFrontier, PortfolioSpec
from ...domain.exceptions import AssetMismatch, ValidationError
from ...domain.value_objects import FrontierMethod
from ..performance.parallel_processor import ParallelProcessor, ProcessingConfig
from .frontier import FrontierSolver
from .random_search import RandomState, as_generator

logger = logging.getLogger(__name__)

PORTFOLIO_COLUMN = "portfolio"

Specs = Union[Mapping[str, PortfolioSpec], Sequence[PortfolioSpec]]


def label_specs(specs: Specs) -> Dict[str, PortfolioSpec]:
    """Mapping label -> spec; unnamed sequences are labelled portfolio.1, portfolio.2, ..."""
    if isinstance(specs, Mapping):
        labelled = {str(label): spec for label, spec in specs.items()}
    else:
        labelled = {f"portfolio.{i + 1}": spec for i, spec in enumerate(specs)}
    if not labelled:
        raise ValidationError("At least one portfolio specification is required")
    for label, spec in labelled.items():
        if not isinstance(spec, PortfolioSpec):
            raise ValidationError(
                f"Entry {label} is not a PortfolioSpec",
                context={'type': type(spec).__name__}
            )
    return labelled


def check_shared_universe(specs: Mapping[str, PortfolioSpec]) -> None:
    """Every spec must hold the same asset identifiers, in any order."""
    labels = list(specs)
    reference = set(specs[labels[0]].assets)
    for label in labels[1:]:
        assets = set(specs[label].assets)
        if assets != reference:
            raise AssetMismatch(
                f"Portfolio {label} does not share the asset universe of {labels[0]}",
                error_code="UNIVERSE_MISMATCH",
                context={
                    'portfolio': label,
                    'missing': sorted(reference - assets),
                    'unexpected': sorted(assets - reference),
                }
            )


@dataclass
class _PortfolioTask:
    """Frontier of one labelled portfolio; picklable for process pools."""

    solver: FrontierSolver
    returns: pd.DataFrame
    method: FrontierMethod
    match_column: Optional[str]
    n_points: Optional[int]

    def __call__(self, item: Tuple[PortfolioSpec, int]) -> EfficientFrontier:
        spec, seed = item
        return self.solver.solve(
            spec, self.returns, method=self.method, match_column=self.match_column,
            n_points=self.n_points, random_state=seed
        )


def aggregate_frontiers(
    specs: Specs,
    returns: pd.DataFrame,
    method: Union[str, FrontierMethod] = FrontierMethod.MEAN_VARIANCE,
    match_column: Optional[str] = None,
    n_points: Optional[int] = None,
    solver: Optional[FrontierSolver] = None,
    processor: Optional[ParallelProcessor] = None,
    random_state: RandomState = None
) -> Dict[str, EfficientFrontier]:
    """
    Compute one frontier per specification.

    Args:
        specs: Mapping label -> spec, or a sequence of specs
        returns: Historical returns shared by every spec
        method: Frontier method applied to every spec
        match_column: Risk axis shared by every frontier
        n_points: Points per frontier
        solver: FrontierSolver to use (default settings otherwise)
        processor: Dispatcher for the per-spec solves
        random_state: Seed or generator; each spec gets its own child seed

    Returns:
        Dict label -> EfficientFrontier, in the caller's label order

    Raises:
        AssetMismatch: if the specs do not share one asset universe
    """
    labelled = label_specs(specs)
    check_shared_universe(labelled)
    method = FrontierMethod.parse(method)
    solver = solver or FrontierSolver()
    processor = processor or ParallelProcessor(ProcessingConfig(use_processes=False))

    rng = as_generator(random_state)
    seeds = {label: int(seed) for label, seed in zip(labelled, rng.integers(0, 2**32, size=len(labelled)))}

    if processor.config.use_processes:
        # pool workers are daemonic and cannot start a nested pool
        solver = solver.with_processor(ParallelProcessor(ProcessingConfig(max_workers=1, memory_limit_gb=0.0)))

    task = _PortfolioTask(solver, returns, method, match_column, n_points)
    frontiers = processor.map_labelled(task, {label: (spec, seeds[label]) for label, spec in labelled.items()})
    logger.info(f"Aggregated {len(frontiers)} {method.value} frontiers")
    return frontiers


def overlay_frame(frontiers: Mapping[str, EfficientFrontier]) -> pd.DataFrame:
    """Long table of every frontier's points with a leading ``portfolio`` column."""
    frames = []
    for label, frontier in frontiers.items():
        frame = frontier.to_frame().reset_index()
        frame.insert(0, PORTFOLIO_COLUMN, label)
        frames.append(frame)
    if not frames:
        return pd.DataFrame(columns=[PORTFOLIO_COLUMN])
    return pd.concat(frames, ignore_index=True)
