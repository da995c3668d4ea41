"""
Tests for risk and return objective functions.
"""

import pytest
import numpy as np

from frontierlab.infrastructure.optimization import (
    MarketMoments, ScalarObjective, batch_metrics, expected_shortfall, mean_return,
    portfolio_metrics, std_dev, variance
)
from frontierlab.infrastructure.optimization.objectives import batch_expected_shortfall
from frontierlab.domain.entities import PortfolioSpec
from frontierlab.domain.value_objects import ReturnObjective, RiskMeasure, RiskObjective
from frontierlab.domain.exceptions import ValidationError


class TestMarketMoments:
    """Test sample moments."""

    def test_moments_match_pandas(self, returns):
        moments = MarketMoments.from_returns(returns)

        np.testing.assert_allclose(moments.mu, returns.mean().to_numpy())
        np.testing.assert_allclose(moments.sigma, returns.cov().to_numpy())
        assert moments.n_obs == 150
        assert moments.n_assets == 5


class TestRiskMeasures:
    """Test the risk and return measures."""

    @pytest.fixture
    def moments(self, returns):
        return MarketMoments.from_returns(returns)

    def test_mean_and_variance(self, moments, returns):
        w = np.array([0.1, 0.2, 0.3, 0.2, 0.2])
        portfolio = returns.to_numpy() @ w

        assert mean_return(w, moments) == pytest.approx(portfolio.mean())
        assert variance(w, moments) == pytest.approx(portfolio.var(ddof=1))
        assert std_dev(w, moments) == pytest.approx(portfolio.std(ddof=1))

    def test_expected_shortfall_fractional_tail(self, moments, returns):
        w = np.full(5, 0.2)
        losses = np.sort(-(returns.to_numpy() @ w))[::-1]

        # (1 - 0.95) * 150 = 7.5 observations in the tail
        expected = (losses[:7].sum() + 0.5 * losses[7]) / 7.5
        assert expected_shortfall(w, moments, p=0.95) == pytest.approx(expected)

    def test_expected_shortfall_whole_tail(self, moments, returns):
        w = np.full(5, 0.2)
        losses = np.sort(-(returns.to_numpy() @ w))[::-1]

        # (1 - 0.9) * 150 = 15 observations
        assert expected_shortfall(w, moments, p=0.9) == pytest.approx(losses[:15].mean())

    def test_expected_shortfall_exceeds_mean_loss(self, moments):
        w = np.full(5, 0.2)
        assert expected_shortfall(w, moments) > -mean_return(w, moments)

    def test_invalid_confidence(self, moments):
        with pytest.raises(ValidationError):
            expected_shortfall(np.full(5, 0.2), moments, p=1.0)

    def test_batch_matches_single(self, moments):
        np.random.seed(7)
        W = np.random.dirichlet(np.ones(5), size=20)
        frame = batch_metrics(W, moments, p=0.95)

        assert list(frame.columns) == ['mean', 'StdDev', 'var', 'ES']
        for i in (0, 5, 19):
            single = portfolio_metrics(W[i], moments, p=0.95)
            for column, value in single.items():
                assert frame.loc[i, column] == pytest.approx(value)
        np.testing.assert_allclose(
            batch_expected_shortfall(W, moments, 0.95),
            [expected_shortfall(w, moments, 0.95) for w in W]
        )


class TestScalarObjective:
    """Test scalarization of risk/return objectives."""

    @pytest.fixture
    def moments(self, returns):
        return MarketMoments.from_returns(returns)

    def test_risk_and_return(self, moments):
        objective = ScalarObjective(risk=RiskMeasure.VARIANCE, include_return=True, risk_aversion=2.0)
        w = np.full(5, 0.2)
        assert objective.value(w, moments) == pytest.approx(2.0 * variance(w, moments) - mean_return(w, moments))

    def test_risk_only_and_return_only(self, moments):
        w = np.full(5, 0.2)
        assert ScalarObjective.risk_only(RiskMeasure.STD_DEV).value(w, moments) == pytest.approx(std_dev(w, moments))
        assert ScalarObjective.return_only().value(w, moments) == pytest.approx(-mean_return(w, moments))

    def test_from_spec_defaults(self, assets):
        spec = PortfolioSpec(assets=assets, objectives=(RiskObjective('ES', p=0.9), ReturnObjective()))
        objective = ScalarObjective.from_spec(spec)

        assert objective.risk is RiskMeasure.EXPECTED_SHORTFALL
        assert objective.include_return
        assert objective.risk_aversion == 1.0
        assert objective.p == 0.9

    def test_from_spec_return_only(self, assets):
        objective = ScalarObjective.from_spec(PortfolioSpec(assets=assets, objectives=(ReturnObjective(),)))
        assert objective.risk is None
        assert objective.include_return

    def test_from_spec_without_objectives(self, assets):
        with pytest.raises(ValidationError):
            ScalarObjective.from_spec(PortfolioSpec(assets=assets))

    def test_batch_values(self, moments):
        np.random.seed(3)
        W = np.random.dirichlet(np.ones(5), size=10)
        objective = ScalarObjective(risk=RiskMeasure.EXPECTED_SHORTFALL, include_return=True, risk_aversion=0.5)
        np.testing.assert_allclose(objective.batch_values(W, moments), [objective.value(w, moments) for w in W])
