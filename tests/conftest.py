"""
Shared fixtures: a seeded five-asset return history and the specifications
used throughout the frontier tests.
"""

import pytest
import numpy as np
import pandas as pd

from frontierlab.domain.entities import PortfolioSpec
from frontierlab.domain.value_objects import (
    Box, FullInvestment, Group, LongOnly, ReturnObjective, RiskMeasure, RiskObjective
)

ASSETS = ('CA', 'CTAG', 'DS', 'EM', 'EQM')


@pytest.fixture
def assets():
    return ASSETS


@pytest.fixture
def returns():
    """150 daily observations with distinct means and volatilities."""
    np.random.seed(42)
    means = np.array([0.004, 0.006, 0.005, 0.009, 0.007])
    vols = np.array([0.015, 0.025, 0.020, 0.050, 0.040])
    correlation = np.full((5, 5), 0.3)
    np.fill_diagonal(correlation, 1.0)
    covariance = np.outer(vols, vols) * correlation
    data = np.random.multivariate_normal(means, covariance, size=150)
    index = pd.date_range('2010-01-01', periods=150, freq='D')
    return pd.DataFrame(data, index=index, columns=list(ASSETS))


@pytest.fixture
def base_spec():
    """Full investment with box and group limits, no objectives."""
    return PortfolioSpec(
        assets=ASSETS,
        constraints=(
            FullInvestment(),
            Box(min=0.15, max=0.45),
            Group(groups=[(0, 2), (1, 3, 4)], group_min=0.05, group_max=0.70),
        ),
    )


@pytest.fixture
def meanvar_spec(base_spec):
    return base_spec.add_objective(RiskObjective(RiskMeasure.VARIANCE)).add_objective(ReturnObjective())


@pytest.fixture
def meanes_spec(base_spec):
    return base_spec.add_objective(RiskObjective(RiskMeasure.EXPECTED_SHORTFALL, p=0.95)).add_objective(ReturnObjective())


@pytest.fixture
def long_only_spec():
    return PortfolioSpec(
        assets=ASSETS,
        constraints=(FullInvestment(), LongOnly()),
        objectives=(RiskObjective(RiskMeasure.VARIANCE), ReturnObjective()),
    )
