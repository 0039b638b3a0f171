"""
Projection Engine Configuration

Dataclass configuration tree with environment overrides.
"""

from .projection_config import (
    ProjectionConfig,
    SimulationConfig,
    DataConfig,
    PortfolioConfig,
    CycleConfig,
    CacheConfig,
    BatchConfig,
    ReturnBasis,
    DataPolicy,
    load_config,
)

__all__ = [
    'ProjectionConfig',
    'SimulationConfig',
    'DataConfig',
    'PortfolioConfig',
    'CycleConfig',
    'CacheConfig',
    'BatchConfig',
    'ReturnBasis',
    'DataPolicy',
    'load_config',
]
