"""
Core data structures shared by the simulation, scenario and cache layers.

Author: Trading Bot Arsenal
Created: January 2026
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Optional, Any

from simulation.errors import InputError


# =============================================================================
# ENUMS
# =============================================================================

class AssetClass(Enum):
    """Broad asset classes with long-run return/volatility statistics"""
    STOCKS = 'stocks'
    BONDS = 'bonds'
    REAL_ESTATE = 'realEstate'
    COMMODITIES = 'commodities'
    CASH = 'cash'
    ALTERNATIVES = 'alternatives'

    @classmethod
    def parse(cls, value) -> 'AssetClass':
        """Accept an AssetClass, its value, or its name (any case)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            for member in cls:
                if text == member.value or text.upper() == member.name:
                    return member
            compact = text.lower().replace('_', '').replace(' ', '').replace('-', '')
            for member in cls:
                if compact == member.value.lower():
                    return member
        raise InputError(f"Unknown asset class: {value!r}")


class CycleDimension(Enum):
    """The five overlapping cycles that shape the macro outlook"""
    BUSINESS = 'business'
    ECONOMIC = 'economic'        # Long-term debt cycle
    TECHNOLOGY = 'technology'
    COUNTRY = 'country'
    MARKET = 'market'


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class Position:
    """A single holding in a portfolio"""
    ticker: str
    weight: float
    asset_class: AssetClass
    year1_return: Optional[float]
    historical_volatility: Optional[float] = None
    current_price: Optional[float] = None

    def __post_init__(self):
        self.asset_class = AssetClass.parse(self.asset_class)


@dataclass
class CyclePhaseState:
    """
    Active phase label for each cycle dimension.

    None means the dimension has no opinion. Labels that do not match any known
    phase are treated the same way (zero deviation, multiplier 1.0).
    """
    business: Optional[str] = None
    economic: Optional[str] = None
    technology: Optional[str] = None
    country: Optional[str] = None
    market: Optional[str] = None

    def phase_for(self, dimension: CycleDimension) -> Optional[str]:
        return getattr(self, dimension.value)

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {d.value: self.phase_for(d) for d in CycleDimension}

    @property
    def is_empty(self) -> bool:
        return all(not self.phase_for(d) for d in CycleDimension)


@dataclass
class SimulationResult:
    """Distribution summary for one instrument or one portfolio"""
    median: float        # Median annualized return across trials
    upside: float        # 95th percentile of simulated annual returns
    downside: float      # 5th percentile of simulated annual returns
    volatility: float    # Volatility used for the simulation
    simulation_count: int
    ticker: Optional[str] = None
    horizon_years: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationResult':
        return cls(
            median=float(data['median']),
            upside=float(data['upside']),
            downside=float(data['downside']),
            volatility=float(data['volatility']),
            simulation_count=int(data['simulation_count']),
            ticker=data.get('ticker'),
            horizon_years=data.get('horizon_years'),
            metadata=dict(data.get('metadata') or {}),
        )
