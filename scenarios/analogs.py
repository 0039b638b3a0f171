"""
Historical Analogs for Scenario Scoring

Each named scenario (a market question such as "what if tech sells off?") is
mapped to a historical analog period:
- COVID Crash (Feb-Mar 2020): S&P 500 -33.9%
- Dot-Com Bust (2000-2002): S&P 500 -50%
- Rate Shock (2022): S&P 500 -18%, long treasuries -24%
- Stagflation (1973-1974): S&P 500 -37%, gold +65%

Period returns per analog asset class are reference values for the full
analog window (not annualized).

Author: Trading Bot Arsenal
Created: January 2026
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from simulation.errors import InputError
from simulation.models import AssetClass

logger = logging.getLogger('Analogs')


class AnalogType(Enum):
    """Historical analog periods"""
    COVID_CRASH = "COVID_CRASH"
    DOT_COM_BUST = "DOT_COM_BUST"
    RATE_SHOCK = "RATE_SHOCK"
    STAGFLATION = "STAGFLATION"


# Fine-grained classes analog returns are quoted for
ANALOG_ASSET_CLASSES = [
    'us-large-cap', 'us-growth', 'us-value', 'us-small-cap',
    'international', 'emerging-markets',
    'tech-sector', 'healthcare', 'financials', 'energy',
    'long-treasuries', 'intermediate-treasuries', 'short-treasuries', 'tips',
    'aggregate-bonds', 'corporate-ig', 'high-yield',
    'gold', 'commodities', 'cash',
]

DEFAULT_ANALOG_CLASS = 'us-large-cap'


def _returns(*values: float) -> Dict[str, float]:
    return dict(zip(ANALOG_ASSET_CLASSES, values))


@dataclass
class HistoricalAnalog:
    """Definition of a historical analog period"""
    analog_type: AnalogType
    name: str
    start_date: str
    end_date: str
    description: str
    benchmark_return: float      # S&P 500 period return
    benchmark_drawdown: float    # S&P 500 max drawdown (positive fraction)
    asset_returns: Dict[str, float] = field(default_factory=dict)

    @property
    def analog_id(self) -> str:
        return self.analog_type.value

    def asset_return(self, analog_class: str) -> float:
        """Period return for an analog class, falling back to US large cap."""
        if analog_class in self.asset_returns:
            return self.asset_returns[analog_class]
        logger.warning(f"No {self.name} return for {analog_class}, using {DEFAULT_ANALOG_CLASS}")
        return self.asset_returns.get(DEFAULT_ANALOG_CLASS, 0.0)


@dataclass
class ScenarioDefinition:
    """A scenario users ask about, and the analog it is tested against"""
    scenario_id: str
    name: str
    primary_risk: str
    analog_type: AnalogType
    keywords: List[str] = field(default_factory=list)


# =============================================================================
# ANALOG TABLE
# =============================================================================

HISTORICAL_ANALOGS: Dict[str, HistoricalAnalog] = {
    'COVID_CRASH': HistoricalAnalog(
        analog_type=AnalogType.COVID_CRASH,
        name="COVID Crash",
        start_date="2020-02-01",
        end_date="2020-03-31",
        description="Feb-Mar 2020: COVID-19 pandemic market crash",
        benchmark_return=-0.339,
        benchmark_drawdown=0.339,
        asset_returns=_returns(
            -0.339, -0.38, -0.30, -0.34, -0.36, -0.32, -0.28, -0.24, -0.42, -0.48,
            0.109, 0.087, 0.045, 0.08, 0.085, 0.05, -0.28, 0.03, -0.24, 0.02,
        ),
    ),
    'DOT_COM_BUST': HistoricalAnalog(
        analog_type=AnalogType.DOT_COM_BUST,
        name="Dot-Com Bust",
        start_date="2000-03-01",
        end_date="2002-10-01",
        description="2000-2002: Technology bubble burst",
        benchmark_return=-0.50,
        benchmark_drawdown=0.50,
        asset_returns=_returns(
            -0.50, -0.65, -0.28, -0.20, -0.35, -0.40, -0.75, -0.15, -0.25, -0.15,
            0.12, 0.10, 0.05, 0.08, 0.10, 0.05, -0.10, 0.15, -0.15, 0.08,
        ),
    ),
    'RATE_SHOCK': HistoricalAnalog(
        analog_type=AnalogType.RATE_SHOCK,
        name="Rate Shock",
        start_date="2022-01-01",
        end_date="2022-12-31",
        description="2022: Rapid interest rate hikes",
        benchmark_return=-0.18,
        benchmark_drawdown=0.20,
        asset_returns=_returns(
            -0.18, -0.30, -0.08, -0.20, -0.20, -0.18, -0.35, -0.12, -0.06, 0.55,
            -0.24, -0.12, -0.02, -0.08, -0.14, -0.14, -0.18, -0.02, 0.28, 0.15,
        ),
    ),
    'STAGFLATION': HistoricalAnalog(
        analog_type=AnalogType.STAGFLATION,
        name="Stagflation",
        start_date="1973-01-01",
        end_date="1974-12-31",
        description="1973-1974: Oil crisis and stagflation",
        benchmark_return=-0.37,
        benchmark_drawdown=0.48,
        asset_returns=_returns(
            -0.37, -0.42, -0.30, -0.35, -0.32, -0.38, -0.45, -0.28, -0.40, 0.45,
            -0.10, -0.05, 0.08, 0.15, -0.08, -0.12, -0.18, 0.65, 0.55, 0.10,
        ),
    ),
}

DEFAULT_ANALOG = 'COVID_CRASH'


# =============================================================================
# SCENARIOS
# =============================================================================

SCENARIOS: Dict[str, ScenarioDefinition] = {
    'market-volatility': ScenarioDefinition(
        scenario_id='market-volatility',
        name="Market Volatility",
        primary_risk='Equity Drawdown',
        analog_type=AnalogType.COVID_CRASH,
        keywords=['volatility', 'crash', 'correction', 'market drop', 'downturn', 'panic', 'sell-off'],
    ),
    'ai-supercycle': ScenarioDefinition(
        scenario_id='ai-supercycle',
        name="AI Supercycle",
        primary_risk='Sector Concentration',
        analog_type=AnalogType.DOT_COM_BUST,
        keywords=['AI', 'artificial intelligence', 'bubble', 'supercycle', 'tech boom', 'innovation'],
    ),
    'cash-vs-bonds': ScenarioDefinition(
        scenario_id='cash-vs-bonds',
        name="Cash vs Bonds",
        primary_risk='Interest Rate',
        analog_type=AnalogType.RATE_SHOCK,
        keywords=['cash', 'duration', 'bonds', 'treasuries', 'yield', 'fixed income', 'rates'],
    ),
    'tech-concentration': ScenarioDefinition(
        scenario_id='tech-concentration',
        name="Tech Concentration",
        primary_risk='Momentum Reversal',
        analog_type=AnalogType.DOT_COM_BUST,
        keywords=['concentrated', 'tech heavy', 'Mag 7', 'big tech', 'FAANG', 'tech exposure'],
    ),
    'inflation-hedge': ScenarioDefinition(
        scenario_id='inflation-hedge',
        name="Inflation Hedge",
        primary_risk='Purchasing Power',
        analog_type=AnalogType.STAGFLATION,
        keywords=['inflation', 'purchasing power', 'deflation', 'price increases', 'CPI'],
    ),
    'recession-risk': ScenarioDefinition(
        scenario_id='recession-risk',
        name="Recession Risk",
        primary_risk='Economic Contraction',
        analog_type=AnalogType.STAGFLATION,
        keywords=['recession', 'stagflation', 'economic downturn', 'slowdown', 'contraction'],
    ),
}

DEFAULT_SCENARIO = 'market-volatility'


# =============================================================================
# ASSET CLASS MAPPING
# =============================================================================

# Static ETF mappings; unknown tickers fall back to US large cap
TICKER_TO_ANALOG_CLASS: Dict[str, str] = {
    'SPY': 'us-large-cap', 'VOO': 'us-large-cap', 'IVV': 'us-large-cap', 'VTI': 'us-large-cap',
    'VUG': 'us-growth', 'IWF': 'us-growth',
    'VTV': 'us-value', 'IWD': 'us-value',
    'VB': 'us-small-cap', 'IWM': 'us-small-cap', 'IJR': 'us-small-cap',
    'VXUS': 'international', 'VEA': 'international', 'IEFA': 'international',
    'VWO': 'emerging-markets', 'EEM': 'emerging-markets',
    'XLK': 'tech-sector', 'VGT': 'tech-sector',
    'XLV': 'healthcare',
    'XLF': 'financials',
    'XLE': 'energy',
    'TLT': 'long-treasuries',
    'IEF': 'intermediate-treasuries',
    'SHY': 'short-treasuries',
    'TIP': 'tips',
    'AGG': 'aggregate-bonds', 'BND': 'aggregate-bonds',
    'LQD': 'corporate-ig',
    'HYG': 'high-yield',
    'GLD': 'gold', 'IAU': 'gold',
    'DBC': 'commodities',
    'SHV': 'cash', 'CASH': 'cash',
    'VNQ': 'us-large-cap',
}

# Representative analog class for each broad asset class
BROAD_TO_ANALOG_CLASS: Dict[AssetClass, str] = {
    AssetClass.STOCKS: 'us-large-cap',
    AssetClass.BONDS: 'aggregate-bonds',
    AssetClass.REAL_ESTATE: 'us-large-cap',
    AssetClass.COMMODITIES: 'commodities',
    AssetClass.CASH: 'cash',
    AssetClass.ALTERNATIVES: 'gold',
}


def map_ticker(ticker: str) -> str:
    """Analog class for a ticker (static mapping, US large cap by default)."""
    return TICKER_TO_ANALOG_CLASS.get((ticker or '').strip().upper(), DEFAULT_ANALOG_CLASS)


def analog_class_for(ticker: Optional[str] = None, asset_class: Optional[AssetClass] = None) -> str:
    """
    Pick the analog class for a holding.

    A known ticker wins; otherwise the broad asset class decides; otherwise
    US large cap.
    """
    if ticker and ticker.strip().upper() in TICKER_TO_ANALOG_CLASS:
        return map_ticker(ticker)
    if asset_class is not None:
        return BROAD_TO_ANALOG_CLASS[AssetClass.parse(asset_class)]
    return DEFAULT_ANALOG_CLASS


def get_analog(analog_id: str) -> HistoricalAnalog:
    analog = HISTORICAL_ANALOGS.get(analog_id)
    if analog is None:
        raise InputError(f"Unknown historical analog: {analog_id!r}")
    return analog


def get_scenario(scenario_id: str) -> ScenarioDefinition:
    scenario = SCENARIOS.get(scenario_id)
    if scenario is None:
        raise InputError(f"Unknown scenario: {scenario_id!r}")
    return scenario


def validate_asset_returns(returns: Dict[str, float]) -> List[str]:
    """Warnings for implausible period returns (below -95% or above +300%)."""
    warnings = []
    for analog_class, value in returns.items():
        if value < -0.95 or value > 3.0:
            warnings.append(f"{analog_class}: suspicious period return {value:+.1%}")
    for warning in warnings:
        logger.warning(warning)
    return warnings
