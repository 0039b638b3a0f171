"""
Market Data Sources

Price history collaborators and the volatility estimate derived from them.
"""

from .price_history import (
    PriceHistorySource,
    YFinancePriceSource,
    VolatilityEstimator,
    daily_returns,
    annualized_volatility,
    period_metrics,
)

__all__ = [
    'PriceHistorySource',
    'YFinancePriceSource',
    'VolatilityEstimator',
    'daily_returns',
    'annualized_volatility',
    'period_metrics',
]
