"""
PROJECTION SIMULATION ENGINE - Monte Carlo Core
===============================================

Annual-period log-normal simulation used for both single positions and whole
portfolios:

- Year 1 uses a short-horizon return estimate and its own volatility
- Years 2+ use long-run (optionally cycle-adjusted) asset class statistics
- One standard normal shock per period: factor = exp((mu - 0.5*sigma^2) * L + sigma * sqrt(L) * Z)
- A fractional final year is scaled to its trading days (L < 1) and its
  return is re-annualized before it joins the percentile pool
- Upside/downside are the 95th/5th percentiles of every simulated annual return
- Median is the median of the terminal annualized returns

Author: Trading Bot Arsenal
Created: January 2026
"""

import math
import json
import logging
from datetime import datetime
from typing import List, Optional, Tuple, Sequence

import numpy as np

from config.projection_config import ProjectionConfig, SimulationConfig
from simulation.errors import InputError, InvariantViolation, DataUnavailable
from simulation.models import AssetClass, SimulationResult
from simulation.cycle_adjustment import CycleAdjustment
from simulation import return_model

logger = logging.getLogger('MonteCarloEngine')

UPSIDE_PERCENTILE = 95
DOWNSIDE_PERCENTILE = 5


# =============================================================================
# HELPERS
# =============================================================================

def percentile(values: Sequence[float], pct: float) -> float:
    """Percentile of a sample (linear interpolation, numpy default)."""
    if len(values) == 0:
        raise InputError("Cannot take a percentile of an empty sample")
    return float(np.percentile(values, pct))


def annualize_return(total_return: float, years: float, floor: float = -0.99) -> float:
    """
    Convert a cumulative return into an annual rate.

    Horizons of one year or less are returned unchanged. A growth factor at
    or below zero cannot be annualized and maps to ``floor``.
    """
    if years <= 1:
        return total_return
    growth = 1.0 + total_return
    if growth <= 0:
        return floor
    return growth ** (1.0 / years) - 1.0


def annualize_returns(total_returns: np.ndarray, years: float, floor: float = -0.99) -> np.ndarray:
    """Vectorized annualize_return."""
    total_returns = np.asarray(total_returns, dtype=float)
    if years <= 1:
        return total_returns.copy()
    growth = 1.0 + total_returns
    out = np.full_like(total_returns, floor)
    positive = growth > 0
    out[positive] = growth[positive] ** (1.0 / years) - 1.0
    return out


def blended_return(year1_return: float, long_run_return: float, horizon_years: float) -> float:
    """Annualized return of one year at year1_return followed by long-run growth."""
    if horizon_years <= 0:
        raise InputError(f"Horizon must be positive, got {horizon_years}")
    if horizon_years <= 1:
        return year1_return
    total = (1.0 + year1_return) * (1.0 + long_run_return) ** (horizon_years - 1.0) - 1.0
    return annualize_return(total, horizon_years)


def build_schedule(horizon_years: float, trading_days_per_year: int = 252) -> List[float]:
    """
    Period lengths (in years) covering a horizon.

    Whole years get length 1.0. A fractional remainder becomes a final period
    of round(fraction * trading_days) / trading_days years, and is dropped if
    that rounds to zero trading days.
    """
    if horizon_years is None or not math.isfinite(horizon_years) or horizon_years <= 0:
        raise InputError(f"Horizon must be a positive number of years, got {horizon_years}")

    whole_years = int(math.floor(horizon_years))
    fraction = horizon_years - whole_years
    schedule = [1.0] * whole_years

    days = int(round(fraction * trading_days_per_year))
    if days > 0:
        schedule.append(days / trading_days_per_year)

    if not schedule:
        raise InputError(f"Horizon {horizon_years} is shorter than one trading day")
    return schedule


def check_distribution(result: SimulationResult, config: SimulationConfig) -> SimulationResult:
    """Fail on an inverted distribution, warn on an implausible one."""
    label = result.ticker or 'portfolio'
    if result.upside < result.downside:
        logger.error(f"{label}: upside {result.upside:.4f} below downside {result.downside:.4f}")
        raise InvariantViolation(
            f"{label}: upside ({result.upside:.4f}) < downside ({result.downside:.4f})",
            upside=result.upside, downside=result.downside,
        )
    if abs(result.upside) > config.extreme_upside or abs(result.downside) > config.extreme_downside:
        logger.warning(
            f"{label}: results look extreme "
            f"(upside {result.upside:+.1%}, median {result.median:+.1%}, downside {result.downside:+.1%})"
        )
    return result


# =============================================================================
# MONTE CARLO ENGINE
# =============================================================================

class MonteCarloEngine:
    """
    Core annual-period simulation.

    The engine is stateless apart from its config. Randomness comes from the
    numpy Generator passed to ``run`` (or one seeded from the config), so
    independent simulations never share a stream.
    """

    def __init__(self, config: Optional[ProjectionConfig] = None):
        self.config = config or ProjectionConfig()
        self.sim_config = self.config.simulation

    def make_rng(self, seed: Optional[int] = None) -> np.random.Generator:
        return np.random.default_rng(self.sim_config.random_seed if seed is None else seed)

    def run(
        self,
        year1_return: float,
        year1_volatility: float,
        long_run_return: float,
        long_run_volatility: float,
        horizon_years: float,
        rng: Optional[np.random.Generator] = None,
        label: Optional[str] = None,
        reported_volatility: Optional[float] = None,
    ) -> SimulationResult:
        """
        Simulate num_trials paths over the horizon.

        Args:
            year1_return: Expected return for the first year
            year1_volatility: Volatility for the first year
            long_run_return: Expected annual return for years 2+
            long_run_volatility: Annual volatility for years 2+
            horizon_years: Horizon in years (fractional allowed)
            rng: numpy Generator; defaults to one seeded from the config
            label: Ticker or portfolio label for logging
            reported_volatility: Volatility to report (defaults to year 1's)

        Returns:
            SimulationResult with median, upside, downside
        """
        trials = self.sim_config.num_trials
        if trials < 1:
            raise InputError(f"num_trials must be at least 1, got {trials}")
        for name, vol in (('year1_volatility', year1_volatility), ('long_run_volatility', long_run_volatility)):
            if vol is None or not math.isfinite(vol) or vol < 0:
                raise InputError(f"{name} must be a non-negative number, got {vol}")

        schedule = build_schedule(horizon_years, self.sim_config.trading_days_per_year)
        rng = rng if rng is not None else self.make_rng()

        lengths = np.array(schedule)
        mus = np.full(len(schedule), long_run_return, dtype=float)
        sigmas = np.full(len(schedule), long_run_volatility, dtype=float)
        mus[0] = year1_return
        sigmas[0] = year1_volatility

        logger.debug(
            f"{label or 'portfolio'}: {trials} trials over {len(schedule)} periods "
            f"(y1 {year1_return:+.2%}/{year1_volatility:.2%}, lr {long_run_return:+.2%}/{long_run_volatility:.2%})"
        )

        shocks = rng.standard_normal((trials, len(schedule)))
        drifts = (mus - 0.5 * sigmas ** 2) * lengths
        log_factors = drifts + sigmas * np.sqrt(lengths) * shocks
        factors = np.exp(log_factors)

        # Partial periods are re-annualized so every entry is an annual rate
        annual_returns = factors ** (1.0 / lengths) - 1.0

        effective_years = float(lengths.sum())
        terminal = np.prod(factors, axis=1) - 1.0
        annualized = annualize_returns(terminal, effective_years, self.sim_config.annualize_floor)

        result = SimulationResult(
            median=float(np.median(annualized)),
            upside=percentile(annual_returns.ravel(), UPSIDE_PERCENTILE),
            downside=percentile(annual_returns.ravel(), DOWNSIDE_PERCENTILE),
            volatility=float(year1_volatility if reported_volatility is None else reported_volatility),
            simulation_count=trials,
            ticker=label,
            horizon_years=horizon_years,
        )
        return check_distribution(result, self.sim_config)


# =============================================================================
# POSITION SIMULATOR
# =============================================================================

class PositionSimulator:
    """
    Single-instrument projection.

    Year 1 uses the caller's year-1 return estimate and the instrument's own
    historical volatility. Years 2+ use the asset class's long-run statistics,
    cycle-adjusted when an adjustment is supplied.
    """

    def __init__(self, config: Optional[ProjectionConfig] = None, volatility_source=None):
        """
        Args:
            config: Projection configuration
            volatility_source: Object with ``get_volatility(ticker) -> float``
                (e.g. data_sources.price_history.VolatilityEstimator)
        """
        self.config = config or ProjectionConfig()
        self.engine = MonteCarloEngine(self.config)
        self.volatility_source = volatility_source

    def historical_volatility(self, ticker: str) -> float:
        if self.volatility_source is None:
            raise DataUnavailable(ticker, "no historical volatility supplied and no price source configured")
        return self.volatility_source.get_volatility(ticker)

    def long_run_statistics(self, asset_class: AssetClass,
                            cycle_adjustment: Optional[CycleAdjustment] = None) -> Tuple[float, float]:
        """(return, volatility) for years 2+."""
        asset_class = AssetClass.parse(asset_class)
        volatility = return_model.baseline_volatility(asset_class)
        if cycle_adjustment is None:
            return return_model.baseline_return(asset_class, self.config.simulation.return_basis), volatility
        return (cycle_adjustment.adjusted_return(asset_class),
                volatility * cycle_adjustment.volatility_multiplier)

    def simulate(
        self,
        ticker: str,
        current_price: Optional[float],
        year1_return: Optional[float],
        horizon_years: float,
        asset_class: AssetClass = AssetClass.STOCKS,
        cycle_adjustment: Optional[CycleAdjustment] = None,
        historical_volatility: Optional[float] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> SimulationResult:
        """
        Project one instrument over the horizon.

        Raises:
            InputError: bad price, horizon or return
            DataUnavailable: missing year-1 estimate, or not enough price history
                to estimate volatility
            InvariantViolation: inverted distribution
        """
        if not ticker:
            raise InputError("Ticker is required")
        if current_price is not None and not current_price > 0:
            raise InputError(f"{ticker}: current price must be positive, got {current_price}")
        if year1_return is None:
            raise DataUnavailable(ticker, "missing year-1 return estimate")
        if not math.isfinite(year1_return) or year1_return <= -1:
            raise InputError(f"{ticker}: year-1 return must be a finite number above -100%, got {year1_return}")

        if historical_volatility is None:
            historical_volatility = self.historical_volatility(ticker)

        long_run_return, long_run_volatility = self.long_run_statistics(asset_class, cycle_adjustment)

        result = self.engine.run(
            year1_return=year1_return,
            year1_volatility=historical_volatility,
            long_run_return=long_run_return,
            long_run_volatility=long_run_volatility,
            horizon_years=horizon_years,
            rng=rng,
            label=ticker,
        )
        result.metadata.update({
            'current_price': current_price,
            'asset_class': AssetClass.parse(asset_class).value,
            'year1_return': year1_return,
            'long_run_return': long_run_return,
            'long_run_volatility': long_run_volatility,
        })

        logger.info(
            f"{ticker}: median {result.median:+.1%}, upside {result.upside:+.1%}, "
            f"downside {result.downside:+.1%} ({result.simulation_count:,} trials, {horizon_years}y)"
        )
        return result


# =============================================================================
# REPORTING
# =============================================================================

def print_projection_report(result: SimulationResult):
    """Pretty print a projection result"""
    print("\n" + "=" * 60)
    print(f"PROJECTION: {result.ticker or 'PORTFOLIO'}")
    print("=" * 60)
    print(f"   Horizon: {result.horizon_years} years")
    print(f"   Trials: {result.simulation_count:,}")
    print(f"   Volatility: {result.volatility:.1%}")
    print(f"\n   Upside (95th):   {result.upside:+.1%}")
    print(f"   Median:          {result.median:+.1%}")
    print(f"   Downside (5th):  {result.downside:+.1%}")
    print("\n" + "=" * 60)


def save_result_to_json(result: SimulationResult, filepath: str):
    """Save a projection result to a JSON file"""
    data = {
        'timestamp': datetime.now().isoformat(),
        'result': result.to_dict(),
    }

    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2, default=str)

    logger.info(f"Result saved to {filepath}")


# =============================================================================
# EXAMPLE USAGE
# =============================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    config = ProjectionConfig()
    config.simulation.random_seed = 42

    simulator = PositionSimulator(config)
    result = simulator.simulate(
        ticker='SPY',
        current_price=500.0,
        year1_return=0.08,
        horizon_years=5,
        asset_class=AssetClass.STOCKS,
        historical_volatility=0.18,
    )
    print_projection_report(result)
