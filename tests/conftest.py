"""
Test Configuration and Fixtures
===============================
Central pytest configuration for the projection engine test suite.
"""

import os
import sys
import zlib
import pytest
import numpy as np
import pandas as pd

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.projection_config import ProjectionConfig
from data_sources.price_history import PriceHistorySource
from simulation.models import AssetClass, Position

# Test configuration
TEST_SEED = 42
TEST_TRIALS = 5000


class FakePriceSource(PriceHistorySource):
    """Deterministic geometric random walk closes, keyed by ticker"""

    def __init__(self, daily_vol: float = 0.01, samples: int = 504, overrides: dict = None):
        self.daily_vol = daily_vol
        self.samples = samples
        self.overrides = overrides or {}
        self.calls = []

    def fetch(self, ticker: str, lookback: str = '2y') -> pd.Series:
        self.calls.append((ticker, lookback))
        if ticker in self.overrides:
            return self.overrides[ticker]

        rng = np.random.default_rng(zlib.crc32(ticker.encode()))
        returns = rng.normal(0.0003, self.daily_vol, self.samples - 1)
        prices = 100.0 * np.cumprod(np.concatenate([[1.0], 1.0 + returns]))
        dates = pd.date_range(start="2023-01-02", periods=self.samples, freq="B")
        return pd.Series(prices, index=dates)

    def fetch_between(self, ticker: str, start: str, end: str) -> pd.Series:
        return self.fetch(ticker)


@pytest.fixture
def config():
    """Seeded projection config"""
    cfg = ProjectionConfig()
    cfg.simulation.num_trials = TEST_TRIALS
    cfg.simulation.random_seed = TEST_SEED
    return cfg


@pytest.fixture
def db_path(tmp_path):
    """Temporary SQLite file"""
    return str(tmp_path / "projection_cache.db")


@pytest.fixture
def price_source():
    return FakePriceSource()


@pytest.fixture
def sixty_forty():
    """Stocks/bonds portfolio"""
    return [
        Position('VTI', 0.6, AssetClass.STOCKS, year1_return=0.07, historical_volatility=0.17),
        Position('BND', 0.4, AssetClass.BONDS, year1_return=0.04, historical_volatility=0.06),
    ]


@pytest.fixture
def rng():
    return np.random.default_rng(TEST_SEED)


@pytest.fixture
def fake_source_cls():
    """FakePriceSource class, for tests that need custom series"""
    return FakePriceSource
