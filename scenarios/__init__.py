"""
Scenario Scoring

Historical analog definitions and the comparative scenario scorer.
"""

from .analogs import (
    AnalogType,
    HistoricalAnalog,
    ScenarioDefinition,
    HISTORICAL_ANALOGS,
    SCENARIOS,
    get_analog,
    get_scenario,
    map_ticker,
    analog_class_for,
)
from .scorer import (
    Holding,
    ScenarioScore,
    ScenarioScorer,
    calculate_score,
    estimate_drawdown,
    score_label,
)

__all__ = [
    'AnalogType',
    'HistoricalAnalog',
    'ScenarioDefinition',
    'HISTORICAL_ANALOGS',
    'SCENARIOS',
    'get_analog',
    'get_scenario',
    'map_ticker',
    'analog_class_for',
    'Holding',
    'ScenarioScore',
    'ScenarioScorer',
    'calculate_score',
    'estimate_drawdown',
    'score_label',
]
