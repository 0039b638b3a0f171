"""
PORTFOLIO AGGREGATOR
====================

Portfolio-level projection. Positions are collapsed into three weighted
numbers (year-1 return, long-run return, volatility) and the portfolio is
simulated as a single instrument.

Simplification: every position shares one shock per period, so the portfolio
behaves as if all holdings were perfectly correlated within a year. Using the
weighted average of asset class volatilities (instead of a covariance matrix)
keeps the portfolio volatility between the lowest and highest component
volatility, which is the diversification effect the projection reports.

Author: Trading Bot Arsenal
Created: January 2026
"""

import math
import logging
from dataclasses import replace
from typing import List, Optional

import numpy as np

from config.projection_config import ProjectionConfig
from simulation.errors import DataUnavailable, InputError
from simulation.models import AssetClass, Position, SimulationResult
from simulation.cycle_adjustment import CycleAdjustment
from simulation.monte_carlo_engine import MonteCarloEngine
from simulation import return_model

logger = logging.getLogger('PortfolioAggregator')


def validate_positions(positions: List[Position]):
    """Reject empty portfolios, negative or non-finite weights, and unknown asset classes."""
    if not positions:
        raise InputError("Portfolio has no positions")
    for position in positions:
        AssetClass.parse(position.asset_class)
        if position.weight is None or not math.isfinite(position.weight):
            raise InputError(f"{position.ticker}: weight must be a finite number, got {position.weight}")
        if position.weight < 0:
            raise InputError(f"{position.ticker}: weight cannot be negative ({position.weight})")
        # A missing estimate is a data gap, handled per ticker by the data policy
        if position.year1_return is not None and not math.isfinite(position.year1_return):
            raise InputError(f"{position.ticker}: year-1 return must be finite, got {position.year1_return}")


def normalize_weights(positions: List[Position], tolerance: float = 0.01) -> List[Position]:
    """
    Scale weights to sum to 1.0.

    Sums within ``tolerance`` of 1.0 are still rescaled exactly, but only a
    larger gap is logged. Normalizing an already normalized list is a no-op.
    """
    validate_positions(positions)
    total = sum(p.weight for p in positions)
    if total <= 0:
        raise InputError(f"Portfolio weights must sum to a positive value, got {total}")

    if abs(total - 1.0) > tolerance:
        logger.warning(f"Portfolio weights sum to {total:.4f}, normalizing to 1.0")

    if total == 1.0:
        return list(positions)
    return [replace(p, weight=p.weight / total) for p in positions]


class PortfolioAggregator:
    """Weighted blended drift/volatility with one shared shock per period"""

    def __init__(self, config: Optional[ProjectionConfig] = None):
        self.config = config or ProjectionConfig()
        self.engine = MonteCarloEngine(self.config)

    def blend(self, positions: List[Position], cycle_adjustment: Optional[CycleAdjustment] = None) -> dict:
        """
        Weighted portfolio statistics.

        Returns:
            Dict with year1_return, long_run_return, volatility and
            long_run_volatility (volatility after the cycle multiplier)
        """
        positions = normalize_weights(positions, self.config.portfolio.weight_tolerance)
        basis = self.config.simulation.return_basis

        year1_return = 0.0
        long_run_return = 0.0
        volatility = 0.0
        for position in positions:
            asset_class = AssetClass.parse(position.asset_class)
            if position.year1_return is None:
                raise DataUnavailable(position.ticker, "missing year-1 return estimate")
            year1_return += position.weight * position.year1_return
            volatility += position.weight * return_model.baseline_volatility(asset_class)
            if cycle_adjustment is None:
                long_run_return += position.weight * return_model.baseline_return(asset_class, basis)
            else:
                long_run_return += position.weight * cycle_adjustment.adjusted_return(asset_class)

        multiplier = cycle_adjustment.volatility_multiplier if cycle_adjustment is not None else 1.0
        return {
            'positions': positions,
            'year1_return': year1_return,
            'long_run_return': long_run_return,
            'volatility': volatility,
            'long_run_volatility': volatility * multiplier,
        }

    def simulate_portfolio(
        self,
        positions: List[Position],
        horizon_years: float,
        cycle_adjustment: Optional[CycleAdjustment] = None,
        rng: Optional[np.random.Generator] = None,
        label: Optional[str] = None,
    ) -> SimulationResult:
        """
        Project a whole portfolio.

        Raises:
            InputError: empty portfolio, negative weights, zero total weight,
                unknown asset class, bad horizon
            InvariantViolation: inverted distribution
        """
        stats = self.blend(positions, cycle_adjustment)

        logger.info(
            f"Running portfolio Monte Carlo: {len(stats['positions'])} positions, "
            f"y1 {stats['year1_return']:+.1%}, long-run {stats['long_run_return']:+.1%}, "
            f"vol {stats['volatility']:.1%}, {horizon_years}y"
        )

        result = self.engine.run(
            year1_return=stats['year1_return'],
            year1_volatility=stats['volatility'],
            long_run_return=stats['long_run_return'],
            long_run_volatility=stats['long_run_volatility'],
            horizon_years=horizon_years,
            rng=rng,
            label=label,
            reported_volatility=stats['volatility'],
        )
        weights = {}
        for p in stats['positions']:
            weights[p.ticker] = weights.get(p.ticker, 0.0) + p.weight

        result.metadata.update({
            'year1_return': stats['year1_return'],
            'long_run_return': stats['long_run_return'],
            'long_run_volatility': stats['long_run_volatility'],
            'weights': weights,
        })
        return result
