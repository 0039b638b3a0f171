"""
Cycle-Aware Projection Engine
=============================

Monte Carlo projection of positions and portfolios, blending a short-horizon
return estimate with long-run asset class statistics adjusted for five
overlapping economic cycles.

Features:
- Annual-period log-normal simulation (5,000 trials by default)
- Fractional horizons scaled by trading days
- Portfolio aggregation with one shared shock per period
- Cycle adjustment over business, long-term debt, technology, country and
  market cycles

Usage:
    from simulation import PortfolioAggregator, Position, AssetClass

    aggregator = PortfolioAggregator()
    result = aggregator.simulate_portfolio(
        [Position('VTI', 0.6, AssetClass.STOCKS, 0.07),
         Position('BND', 0.4, AssetClass.BONDS, 0.04)],
        horizon_years=5,
    )

The orchestrator (batches, scenarios, caching) lives in
simulation.run_simulation and is imported from there.

Author: Trading Bot Arsenal
Created: January 2026
"""

from simulation.errors import (
    ProjectionError,
    InputError,
    DataUnavailable,
    InvariantViolation,
    CacheWriteFailure,
)

from simulation.models import (
    AssetClass,
    CycleDimension,
    Position,
    CyclePhaseState,
    SimulationResult,
)

from simulation.cycle_adjustment import (
    CycleAdjustment,
    CycleAdjustmentCalculator,
    summarize_adjustment,
)

from simulation.monte_carlo_engine import (
    MonteCarloEngine,
    PositionSimulator,
    annualize_return,
    blended_return,
    percentile,
    print_projection_report,
    save_result_to_json,
)

from simulation.portfolio_aggregator import PortfolioAggregator, normalize_weights

__all__ = [
    # Errors
    'ProjectionError',
    'InputError',
    'DataUnavailable',
    'InvariantViolation',
    'CacheWriteFailure',

    # Models
    'AssetClass',
    'CycleDimension',
    'Position',
    'CyclePhaseState',
    'SimulationResult',

    # Cycles
    'CycleAdjustment',
    'CycleAdjustmentCalculator',
    'summarize_adjustment',

    # Monte Carlo
    'MonteCarloEngine',
    'PositionSimulator',
    'annualize_return',
    'blended_return',
    'percentile',
    'print_projection_report',
    'save_result_to_json',

    # Portfolio
    'PortfolioAggregator',
    'normalize_weights',
]

__version__ = '1.0.0'
