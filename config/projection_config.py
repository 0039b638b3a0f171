"""
Projection Engine Configuration

Centralized configuration for the simulation, data, cycle, cache and batch
layers. Every component receives its settings through a config object passed
to its constructor; nothing reads module-level state.

Author: Trading Bot Arsenal
Created: January 2026
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from enum import Enum

from dotenv import load_dotenv


# =============================================================================
# ENUMS
# =============================================================================

class ReturnBasis(Enum):
    """Whether long-run statistics are quoted after or before inflation"""
    REAL = 'real'
    NOMINAL = 'nominal'


class DataPolicy(Enum):
    """What to do with a position whose price history is insufficient"""
    BEST_EFFORT = 'best_effort'          # Drop the position, renormalize the rest
    ALL_OR_NOTHING = 'all_or_nothing'    # Fail the whole portfolio


# =============================================================================
# SIMULATION CONFIGURATION
# =============================================================================

@dataclass
class SimulationConfig:
    """Monte Carlo trial settings"""
    num_trials: int = 5000
    random_seed: Optional[int] = None
    trading_days_per_year: int = 252
    return_basis: ReturnBasis = ReturnBasis.REAL

    # Annualized return floor when the growth factor goes to zero or below
    annualize_floor: float = -0.99

    # Results beyond these bounds are logged as suspicious (not fatal)
    extreme_upside: float = 5.0
    extreme_downside: float = 1.0


# =============================================================================
# DATA CONFIGURATION
# =============================================================================

@dataclass
class DataConfig:
    """Price history and volatility estimation settings"""
    volatility_lookback: str = '2y'
    min_price_samples: int = 50
    max_daily_move: float = 0.5          # |return| >= this is treated as a data error
    volatility_ttl_seconds: int = 24 * 60 * 60
    insufficient_data_policy: DataPolicy = DataPolicy.BEST_EFFORT


# =============================================================================
# PORTFOLIO CONFIGURATION
# =============================================================================

@dataclass
class PortfolioConfig:
    """Portfolio aggregation settings"""
    weight_tolerance: float = 0.01       # Weight sums within this of 1.0 are accepted as-is


# =============================================================================
# CYCLE CONFIGURATION
# =============================================================================

@dataclass
class CycleConfig:
    """Relative influence of each cycle dimension (must sum to 1.0)"""
    weights: Dict[str, float] = field(default_factory=lambda: {
        'business': 0.30,
        'economic': 0.20,
        'technology': 0.20,
        'country': 0.15,
        'market': 0.15,
    })

    def __post_init__(self):
        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Cycle weights must sum to 1.0, got {total:.4f}")


# =============================================================================
# CACHE CONFIGURATION
# =============================================================================

@dataclass
class CacheConfig:
    """Result cache settings"""
    db_path: str = os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'data', 'projection_cache.db'
    )
    model_version: int = 1
    busy_timeout_ms: int = 5000


# =============================================================================
# BATCH CONFIGURATION
# =============================================================================

@dataclass
class BatchConfig:
    """Bounded-concurrency batch settings"""
    max_concurrency: int = 5
    unit_timeout_seconds: float = 60.0


@dataclass
class ProjectionConfig:
    """Master configuration combining all settings"""
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    data: DataConfig = field(default_factory=DataConfig)
    portfolio: PortfolioConfig = field(default_factory=PortfolioConfig)
    cycle: CycleConfig = field(default_factory=CycleConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)


# =============================================================================
# LOAD CONFIGURATION
# =============================================================================

def load_config(env_file: Optional[str] = None) -> ProjectionConfig:
    """
    Load configuration with environment variable overrides.

    Reads a .env file first (if present) so PROJECTION_* values can live
    alongside the project.

    Returns:
        ProjectionConfig with all settings
    """
    load_dotenv(env_file)
    config = ProjectionConfig()

    if os.getenv('PROJECTION_NUM_TRIALS'):
        config.simulation.num_trials = int(os.getenv('PROJECTION_NUM_TRIALS'))

    if os.getenv('PROJECTION_RANDOM_SEED'):
        config.simulation.random_seed = int(os.getenv('PROJECTION_RANDOM_SEED'))

    if os.getenv('PROJECTION_RETURN_BASIS'):
        config.simulation.return_basis = ReturnBasis(os.getenv('PROJECTION_RETURN_BASIS').lower())

    if os.getenv('PROJECTION_DATA_POLICY'):
        config.data.insufficient_data_policy = DataPolicy(os.getenv('PROJECTION_DATA_POLICY').lower())

    if os.getenv('PROJECTION_MIN_PRICE_SAMPLES'):
        config.data.min_price_samples = int(os.getenv('PROJECTION_MIN_PRICE_SAMPLES'))

    if os.getenv('PROJECTION_CACHE_DB'):
        config.cache.db_path = os.getenv('PROJECTION_CACHE_DB')

    if os.getenv('PROJECTION_MODEL_VERSION'):
        config.cache.model_version = int(os.getenv('PROJECTION_MODEL_VERSION'))

    if os.getenv('PROJECTION_MAX_CONCURRENCY'):
        config.batch.max_concurrency = int(os.getenv('PROJECTION_MAX_CONCURRENCY'))

    return config


# =============================================================================
# MAIN / DISPLAY CONFIG
# =============================================================================

if __name__ == "__main__":
    print("=" * 60)
    print("PROJECTION ENGINE CONFIGURATION")
    print("=" * 60)

    config = load_config()

    print(f"\nSimulation:")
    print(f"   Trials: {config.simulation.num_trials:,}")
    print(f"   Seed: {config.simulation.random_seed}")
    print(f"   Return basis: {config.simulation.return_basis.value}")

    print(f"\nData:")
    print(f"   Lookback: {config.data.volatility_lookback}")
    print(f"   Min samples: {config.data.min_price_samples}")
    print(f"   Policy: {config.data.insufficient_data_policy.value}")

    print(f"\nCycle weights:")
    for dimension, weight in config.cycle.weights.items():
        print(f"   {dimension}: {weight:.0%}")

    print(f"\nCache:")
    print(f"   DB: {config.cache.db_path}")
    print(f"   Model version: {config.cache.model_version}")

    print(f"\nBatch:")
    print(f"   Max concurrency: {config.batch.max_concurrency}")

    print("\n" + "=" * 60)
