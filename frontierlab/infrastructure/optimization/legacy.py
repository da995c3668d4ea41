"""
Portfolio specifications from plain mappings.

``spec_from_dict`` reads the structured format used by YAML spec files;
``spec_from_v1_constraint`` reads the older flat constraint format with
per-asset ``min``/``max``, a weight-sum range and contiguous asset groups.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ...domain.entities import PortfolioSpec
from ...domain.exceptions import ValidationError
from ...domain.value_objects import (
    Box, FullInvestment, Group, LongOnly, ReturnObjective, RiskMeasure, RiskObjective, WeightSum
)


def _full_investment(entry: Mapping[str, Any]) -> FullInvestment:
    return FullInvestment()


def _weight_sum(entry: Mapping[str, Any]) -> WeightSum:
    return WeightSum(min_sum=entry.get('min_sum', 1.0), max_sum=entry.get('max_sum', 1.0))


def _box(entry: Mapping[str, Any]) -> Box:
    return Box(min=entry.get('min', 0.0), max=entry.get('max', 1.0))


def _long_only(entry: Mapping[str, Any]) -> LongOnly:
    return LongOnly()


def _group(entry: Mapping[str, Any]) -> Group:
    if 'groups' not in entry:
        raise ValidationError("Group constraint needs 'groups'", error_code="INVALID_SPEC")
    labels = entry.get('labels')
    return Group(
        groups=entry['groups'],
        group_min=entry.get('group_min', 0.0),
        group_max=entry.get('group_max', 1.0),
        labels=tuple(labels) if labels is not None else None,
    )


_CONSTRAINT_READERS: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
    'full_investment': _full_investment,
    'weight_sum': _weight_sum,
    'leverage': _weight_sum,
    'box': _box,
    'long_only': _long_only,
    'group': _group,
}


def _read_objective(entry: Mapping[str, Any]):
    kind = str(entry.get('type', '')).lower()
    name = entry.get('name', entry.get('measure'))
    if kind == 'risk':
        arguments = entry.get('arguments') or {}
        return RiskObjective(
            measure=RiskMeasure.parse(name or 'var'),
            risk_aversion=entry.get('risk_aversion'),
            p=float(entry.get('p', arguments.get('p', 0.95))),
        )
    if kind == 'return':
        if name not in (None, 'mean'):
            raise ValidationError(f"Unsupported return measure: {name}", error_code="INVALID_SPEC")
        return ReturnObjective()
    raise ValidationError(
        f"Unknown objective type: {entry.get('type')}",
        error_code="INVALID_SPEC",
        context={'allowed': ['risk', 'return']}
    )


def spec_from_dict(mapping: Mapping[str, Any]) -> PortfolioSpec:
    """
    Build a PortfolioSpec from the structured mapping format.

    Example (YAML)::

        assets: [CA, CTAG, DS, EM, EQM]
        constraints:
          - type: full_investment
          - type: box
            min: 0.15
            max: 0.45
          - type: group
            groups: [[0, 2], [1, 3, 4]]
            group_min: 0.05
            group_max: 0.7
        objectives:
          - type: risk
            name: var
          - type: return
            name: mean
    """
    if not isinstance(mapping, Mapping) or 'assets' not in mapping:
        raise ValidationError("Spec mapping needs an 'assets' list", error_code="INVALID_SPEC")

    constraints = []
    for entry in mapping.get('constraints') or []:
        kind = str(entry.get('type', '')).lower()
        reader = _CONSTRAINT_READERS.get(kind)
        if reader is None:
            raise ValidationError(
                f"Unknown constraint type: {entry.get('type')}",
                error_code="INVALID_SPEC",
                context={'allowed': sorted(_CONSTRAINT_READERS)}
            )
        if entry.get('enabled', True):
            constraints.append(reader(entry))

    objectives = [_read_objective(entry) for entry in mapping.get('objectives') or []]
    return PortfolioSpec(
        assets=tuple(mapping['assets']),
        constraints=tuple(constraints),
        objectives=tuple(objectives),
    )


def _contiguous_groups(counts: Sequence[int]) -> List[List[int]]:
    groups, start = [], 0
    for count in counts:
        groups.append(list(range(start, start + int(count))))
        start += int(count)
    return groups


def spec_from_v1_constraint(
    mapping: Mapping[str, Any],
    objectives: Optional[Sequence[Mapping[str, Any]]] = None
) -> PortfolioSpec:
    """
    Build a PortfolioSpec from the flat v1 constraint format.

    Keys: ``assets`` (identifiers), ``min``/``max`` (scalar or per asset),
    ``min_sum``/``max_sum``, ``groups`` (group sizes over consecutive assets,
    or explicit member lists) with ``cLO``/``cUP`` group bounds, and optional
    ``objectives`` in the structured format.
    """
    if 'assets' not in mapping:
        raise ValidationError("v1 constraint needs 'assets'", error_code="INVALID_SPEC")
    assets = tuple(mapping['assets'])

    min_sum = float(mapping.get('min_sum', 1.0))
    max_sum = float(mapping.get('max_sum', 1.0))
    constraints: List[Any] = [
        FullInvestment() if min_sum == max_sum == 1.0 else WeightSum(min_sum=min_sum, max_sum=max_sum),
        Box(min=mapping.get('min', 0.0), max=mapping.get('max', 1.0)),
    ]

    groups = mapping.get('groups')
    if groups:
        if all(isinstance(g, int) for g in groups):
            if sum(groups) > len(assets):
                raise ValidationError("v1 group sizes exceed the number of assets", error_code="INVALID_SPEC")
            groups = _contiguous_groups(groups)
        if 'cLO' not in mapping or 'cUP' not in mapping:
            raise ValidationError("v1 groups need 'cLO' and 'cUP' bounds", error_code="INVALID_SPEC")
        constraints.append(Group(groups=groups, group_min=mapping['cLO'], group_max=mapping['cUP']))

    entries = objectives if objectives is not None else mapping.get('objectives') or []
    return PortfolioSpec(
        assets=assets,
        constraints=tuple(constraints),
        objectives=tuple(_read_objective(entry) for entry in entries),
    )
