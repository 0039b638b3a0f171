"""
PRICE HISTORY & VOLATILITY ESTIMATION
=====================================

Narrow contract for the external price collaborator:

    fetch(ticker, lookback) -> pd.Series of closing prices (oldest first)

plus the historical volatility estimate derived from it:

- Daily simple returns from consecutive closes
- Moves of 50% or more in a day are treated as data errors (splits, bad
  ticks) and dropped
- Population standard deviation scaled by sqrt(252)
- Fewer than ``min_price_samples`` closes raises DataUnavailable

Author: Trading Bot Arsenal
Created: January 2026
"""

import math
import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from config.projection_config import ProjectionConfig
from simulation.errors import DataUnavailable
from utils.api_retry import retry_api_call

logger = logging.getLogger('PriceHistory')


# =============================================================================
# PRICE SOURCES
# =============================================================================

class PriceHistorySource:
    """Interface for anything that can supply closing prices."""

    def fetch(self, ticker: str, lookback: str) -> pd.Series:
        raise NotImplementedError


def _closes_from_frame(data: pd.DataFrame) -> pd.Series:
    """Pull a single close series out of a yfinance download frame."""
    if data is None or data.empty:
        return pd.Series(dtype=float)

    column = 'Close' if 'Close' in data.columns.get_level_values(0) else 'Adj Close'
    closes = data[column]
    # Recent yfinance versions return a (field, ticker) column MultiIndex
    if isinstance(closes, pd.DataFrame):
        closes = closes.iloc[:, 0]
    return closes.dropna().astype(float)


class YFinancePriceSource(PriceHistorySource):
    """Closing prices from Yahoo Finance via yfinance."""

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0):
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    def _download(self, ticker: str, **kwargs) -> pd.DataFrame:
        import yfinance as yf

        @retry_api_call(max_attempts=self.max_attempts, base_delay=self.base_delay, retry_on_empty=True)
        def download():
            return yf.download(ticker, progress=False, auto_adjust=True, **kwargs)

        return download()

    def fetch(self, ticker: str, lookback: str = '2y') -> pd.Series:
        try:
            data = self._download(ticker, period=lookback)
        except Exception as e:
            logger.error(f"Failed to download {ticker} ({lookback}): {e}")
            raise DataUnavailable(ticker, f"price download failed: {e}") from e
        return _closes_from_frame(data)

    def fetch_between(self, ticker: str, start: str, end: str) -> pd.Series:
        """Closes between two YYYY-MM-DD dates (used for analog benchmarks)."""
        try:
            data = self._download(ticker, start=start, end=end)
        except Exception as e:
            logger.error(f"Failed to download {ticker} ({start} to {end}): {e}")
            raise DataUnavailable(ticker, f"price download failed: {e}") from e
        return _closes_from_frame(data)


# =============================================================================
# STATISTICS
# =============================================================================

def daily_returns(prices: pd.Series, max_daily_move: float = 0.5) -> pd.Series:
    """Simple daily returns with implausible moves removed."""
    prices = pd.Series(prices, dtype=float).dropna()
    returns = prices.pct_change().dropna()
    returns = returns[np.isfinite(returns)]
    outliers = returns.abs() >= max_daily_move
    if outliers.any():
        logger.warning(f"Dropping {int(outliers.sum())} daily moves of {max_daily_move:.0%} or more")
    return returns[~outliers]


def annualized_volatility(prices: pd.Series, trading_days: int = 252, max_daily_move: float = 0.5) -> float:
    """Population std of daily returns scaled to a year."""
    returns = daily_returns(prices, max_daily_move)
    if len(returns) < 2:
        return 0.0
    return float(returns.std(ddof=0) * math.sqrt(trading_days))


def period_metrics(prices: pd.Series) -> Tuple[float, float]:
    """
    Return and maximum drawdown over a price series.

    Returns:
        (period_return, max_drawdown) with drawdown as a positive fraction
    """
    prices = pd.Series(prices, dtype=float).dropna()
    if len(prices) < 2:
        raise ValueError(f"Need at least 2 prices, got {len(prices)}")
    period_return = prices.iloc[-1] / prices.iloc[0] - 1.0
    running_peak = prices.cummax()
    drawdowns = 1.0 - prices / running_peak
    return float(period_return), float(drawdowns.max())


# =============================================================================
# VOLATILITY ESTIMATOR
# =============================================================================

class VolatilityEstimator:
    """
    Historical volatility per ticker, backed by a day-TTL cache.

    Satisfies the ``get_volatility(ticker)`` contract PositionSimulator uses.
    """

    def __init__(self, source: PriceHistorySource, config: Optional[ProjectionConfig] = None, cache=None):
        """
        Args:
            source: Price history collaborator
            config: Projection configuration
            cache: Optional cache.volatility_cache.VolatilityCache
        """
        self.source = source
        self.config = config or ProjectionConfig()
        self.cache = cache

    def estimate(self, ticker: str, prices: pd.Series) -> float:
        data = self.config.data
        prices = pd.Series(prices, dtype=float).dropna()
        if len(prices) < data.min_price_samples:
            raise DataUnavailable(
                ticker, f"insufficient price history ({len(prices)} closes, need {data.min_price_samples})"
            )
        volatility = annualized_volatility(
            prices, self.config.simulation.trading_days_per_year, data.max_daily_move
        )
        logger.info(f"{ticker}: annualized volatility {volatility:.1%} from {len(prices)} closes")
        return volatility

    def get_volatility(self, ticker: str) -> float:
        if self.cache is not None:
            cached = self.cache.get(ticker)
            if cached is not None:
                return cached

        prices = self.source.fetch(ticker, self.config.data.volatility_lookback)
        volatility = self.estimate(ticker, prices)

        if self.cache is not None:
            self.cache.set(ticker, volatility)
        return volatility
