"""
Weight paths along a frontier, per asset and per group.
"""

from typing import Any, Dict, List, Mapping, Optional
import logging

import numpy as np
import pandas as pd

from ...domain.entities import EfficientFrontier, PortfolioSpec
from ...domain.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _resolve_members(members, assets: List[str]) -> List[str]:
    resolved = []
    for ref in members:
        if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
            if not 0 <= ref < len(assets):
                raise ValidationError(f"Asset position {ref} out of range", context={'n_assets': len(assets)})
            resolved.append(assets[int(ref)])
        elif str(ref) in assets:
            resolved.append(str(ref))
        else:
            raise ValidationError(f"Unknown asset in group: {ref}", context={'assets': assets})
    return resolved


def _normalize_groups(groups: Any, assets: List[str]) -> Dict[str, List[str]]:
    """Group label -> member identifiers from a mapping, a sequence or a spec."""
    if isinstance(groups, PortfolioSpec):
        mapping = groups.groups()
    elif isinstance(groups, Mapping):
        mapping = {str(k): list(v) for k, v in groups.items()}
    else:
        mapping = {f"group{i + 1}": list(members) for i, members in enumerate(groups)}

    resolved = {}
    for label, members in mapping.items():
        if label in assets:
            raise ValidationError(
                f"Group label {label} collides with an asset identifier",
                error_code="GROUP_LABEL_COLLISION"
            )
        resolved[label] = _resolve_members(members, assets)
    return resolved


def assemble_weights(frontier: EfficientFrontier, groups: Optional[Any] = None) -> pd.DataFrame:
    """
    Weight of every asset (and optionally every group) at each frontier point.

    Args:
        frontier: Solved or extracted frontier
        groups: Mapping label -> members, sequence of member lists, or a
            PortfolioSpec whose Group constraints define the groups

    Returns:
        DataFrame indexed by ``point`` with one column per asset, then one per group
    """
    weights = frontier.weights_frame()
    if groups is None:
        return weights

    assets = list(frontier.assets)
    resolved = _normalize_groups(groups, assets)
    if not resolved:
        logger.debug("No groups found; returning asset weights only")
        return weights

    group_weights = pd.DataFrame(
        {label: weights[members].sum(axis=1) for label, members in resolved.items()},
        index=weights.index,
    )
    return pd.concat([weights, group_weights], axis=1)
