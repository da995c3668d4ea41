"""
Efficient Frontier Demo

This demo walks through the frontier methods of frontierlab: the exact
mean-variance and mean-ES frontiers, the random-search frontier, extraction of
a frontier from an optimization trace, group weight paths and the comparison
of differently constrained portfolios.
"""

import numpy as np
import pandas as pd

from frontierlab.domain.entities import PortfolioSpec
from frontierlab.domain.value_objects import (
    Box, FullInvestment, Group, LongOnly, ReturnObjective, RiskObjective
)
from frontierlab.infrastructure.optimization import (
    FrontierSolver, PortfolioOptimizer, aggregate_frontiers, assemble_weights,
    extract_frontier, overlay_frame
)


def create_sample_data():
    """Create sample monthly returns for five asset classes."""
    np.random.seed(42)

    assets = ['CA', 'CTAG', 'DS', 'EM', 'EQM']
    means = np.array([0.004, 0.006, 0.005, 0.009, 0.007])
    volatilities = np.array([0.015, 0.025, 0.020, 0.050, 0.040])

    # Bonds (CA, DS) correlate with each other, equities (CTAG, EM, EQM) with each other
    correlation = np.full((5, 5), 0.15)
    for block in ([0, 2], [1, 3, 4]):
        for i in block:
            for j in block:
                correlation[i, j] = 0.6
    np.fill_diagonal(correlation, 1.0)

    covariance = np.outer(volatilities, volatilities) * correlation
    data = np.random.multivariate_normal(means, covariance, size=240)
    index = pd.period_range('2000-01', periods=240, freq='M').to_timestamp()
    return pd.DataFrame(data, index=index, columns=assets)


def create_spec(assets):
    """Full investment, 15%-45% per asset, and bond/equity group limits."""
    return PortfolioSpec(
        assets=tuple(assets),
        constraints=(
            FullInvestment(),
            Box(min=0.15, max=0.45),
            Group(groups={'bonds': ['CA', 'DS'], 'equity': ['CTAG', 'EM', 'EQM']},
                  group_min=0.05, group_max=0.70),
        ),
    )


def print_frontier(frontier, rows=5):
    table = frontier.to_frame()
    step = max(1, len(table) // rows)
    print(table.iloc[::step].round(4).to_string())
    print(f"({len(frontier)} points, {frontier.info['skipped']} skipped, "
          f"{frontier.info['dominated']} dominated)")


def demo_mean_variance_frontier():
    """Demonstrate the exact mean-variance frontier."""
    print("=" * 60)
    print("MEAN-VARIANCE FRONTIER DEMO")
    print("=" * 60)

    returns = create_sample_data()
    spec = create_spec(returns.columns)
    spec = spec.add_objective(RiskObjective('var')).add_objective(ReturnObjective())

    frontier = FrontierSolver().solve(spec, returns, method='mean-var', n_points=25)
    print_frontier(frontier)

    index, tangency = frontier.tangency()
    print(f"\nHighest return per unit of StdDev at point {index}: {tangency}")
    return spec, returns, frontier


def demo_mean_es_frontier():
    """Demonstrate the exact mean-ES frontier."""
    print("\n" + "=" * 60)
    print("MEAN-ES FRONTIER DEMO")
    print("=" * 60)

    returns = create_sample_data()
    spec = create_spec(returns.columns)
    spec = spec.add_objective(RiskObjective('ES', p=0.95)).add_objective(ReturnObjective())

    frontier = FrontierSolver().solve(spec, returns, method='mean-ES', n_points=15)
    print_frontier(frontier)
    return frontier


def demo_random_frontier_and_extraction():
    """Demonstrate the random frontier and extraction from a trace."""
    print("\n" + "=" * 60)
    print("RANDOM SEARCH FRONTIER DEMO")
    print("=" * 60)

    returns = create_sample_data()
    spec = create_spec(returns.columns)
    spec = spec.add_objective(RiskObjective('ES', p=0.95)).add_objective(ReturnObjective())

    frontier = FrontierSolver(search_size=2000).solve(spec, returns, method='random', random_state=7)
    print(f"Efficient candidates: {frontier.info['n_efficient']} of {frontier.info['n_samples']}")
    print_frontier(frontier)

    print("\n" + "-" * 40)
    print("EXTRACTED FROM AN OPTIMIZATION TRACE")
    print("-" * 40)
    result = PortfolioOptimizer().optimize(spec, returns, optimize_method='random', trace=True,
                                           search_size=2000, random_state=7)
    extracted = extract_frontier(result.trace, match_column='ES', n_points=15)
    print(f"Best sampled objective value: {result.objective_value:.6f}")
    print_frontier(extracted)


def demo_group_weights(spec, returns):
    """Demonstrate asset and group weight paths."""
    print("\n" + "=" * 60)
    print("GROUP WEIGHT PATH DEMO")
    print("=" * 60)

    frontier = FrontierSolver().solve(spec, returns, n_points=10)
    weights = assemble_weights(frontier, spec)
    print(weights.round(3).to_string())


def demo_portfolio_comparison(returns):
    """Demonstrate frontiers of differently constrained portfolios."""
    print("\n" + "=" * 60)
    print("PORTFOLIO COMPARISON DEMO")
    print("=" * 60)

    base = PortfolioSpec(
        assets=tuple(returns.columns),
        constraints=(FullInvestment(),),
        objectives=(RiskObjective('var'), ReturnObjective()),
    )
    specs = {
        'long_only': base.add_constraint(LongOnly()),
        'boxed': base.add_constraint(Box(min=0.05, max=0.65)),
    }
    frontiers = aggregate_frontiers(specs, returns, n_points=10)
    overlay = overlay_frame(frontiers)

    summary = overlay.groupby('portfolio', sort=False)[['return', 'risk']].agg(['min', 'max'])
    print(summary.round(4).to_string())


def main():
    """Run all frontier demos."""
    print("EFFICIENT FRONTIER DEMONSTRATION")
    print("=" * 80)

    try:
        spec, returns, _ = demo_mean_variance_frontier()
        demo_mean_es_frontier()
        demo_random_frontier_and_extraction()
        demo_group_weights(spec, returns)
        demo_portfolio_comparison(returns)

        print("\n" + "=" * 80)
        print("ALL FRONTIER DEMOS COMPLETED SUCCESSFULLY!")
        print("=" * 80)

    except Exception as e:
        print(f"\nError during demonstration: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    main()
