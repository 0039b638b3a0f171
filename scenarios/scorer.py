"""
SCENARIO SCORER
===============

Scores how a portfolio would have held up in the historical analog behind a
scenario, relative to a reference (the S&P 500 by default):

    return_score   = clamp(50 + 200 * (portfolio_return - reference_return), 0, 100)
    drawdown_score = clamp(50 + 200 * (reference_drawdown - portfolio_drawdown), 0, 100)
    score          = round(0.5 * return_score + 0.5 * drawdown_score)

Labels: Excellent (90+), Strong (75-89), Moderate (60-74), Weak (0-59).

Scoring is deterministic, and better portfolio returns never lower the score.

Author: Trading Bot Arsenal
Created: January 2026
"""

import re
import math
import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple, Union

from config.projection_config import ProjectionConfig
from data_sources.price_history import period_metrics
from simulation.errors import InputError, DataUnavailable
from simulation.models import AssetClass, Position
from scenarios.analogs import (
    HistoricalAnalog,
    ScenarioDefinition,
    SCENARIOS,
    analog_class_for,
    get_analog,
    get_scenario,
    validate_asset_returns,
)

logger = logging.getLogger('ScenarioScorer')

# Drawdown assumed for portfolios that did not lose money, and the minimum
# drawdown for any portfolio
MIN_DRAWDOWN = 0.05
DRAWDOWN_LOSS_RATIO = 0.8

SCORE_LABELS = [
    # (label, color, min_score)
    ('Excellent', '#10b981', 90),
    ('Strong', '#2dd4bf', 75),
    ('Moderate', '#f59e0b', 60),
    ('Weak', '#f87171', 0),
]

BENCHMARK_TICKERS = ['^SP500TR', 'SPY']


@dataclass
class Holding:
    """A weighted holding as seen by the scorer (no return estimate needed)"""
    ticker: str
    weight: float
    asset_class: Optional[AssetClass] = None

    def __post_init__(self):
        if self.asset_class is not None:
            self.asset_class = AssetClass.parse(self.asset_class)


@dataclass
class ScenarioScore:
    score: int
    label: str
    color: str
    return_score: int
    drawdown_score: int
    scenario_id: str
    scenario_name: str
    primary_risk: str
    analog_id: str
    analog_name: str
    analog_period: str
    portfolio_return: float
    portfolio_drawdown: float
    reference_return: float
    reference_drawdown: float
    outperformance: float
    breakdown: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return asdict(self)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def estimate_drawdown(period_return: float) -> float:
    """
    Max drawdown estimate from a period return.

    Losses draw down 80% of their size, never less than 5%; gains assume the
    5% floor. The estimate never rises as the return improves.
    """
    loss = max(-period_return, 0.0)
    return max(DRAWDOWN_LOSS_RATIO * loss, MIN_DRAWDOWN)


def calculate_score(portfolio_return: float, portfolio_drawdown: float,
                    reference_return: float, reference_drawdown: float) -> Dict[str, int]:
    """Combine return and drawdown comparisons into a 0-100 score."""
    return_score = _clamp(50 + (portfolio_return - reference_return) * 100 * 2.0)
    drawdown_score = _clamp(50 + (reference_drawdown - portfolio_drawdown) * 100 * 2.0)
    score = _round_half_up(return_score * 0.5 + drawdown_score * 0.5)
    return {
        'score': score,
        'return_score': _round_half_up(return_score),
        'drawdown_score': _round_half_up(drawdown_score),
    }


def score_label(score: float) -> Tuple[str, str]:
    """(label, color) for a score."""
    for label, color, min_score in SCORE_LABELS:
        if score >= min_score:
            return label, color
    return SCORE_LABELS[-1][0], SCORE_LABELS[-1][1]


def _to_holdings(holdings: List[Union[Holding, Position, dict]]) -> List[Holding]:
    converted = []
    for h in holdings:
        if isinstance(h, Holding):
            converted.append(h)
        elif isinstance(h, Position):
            converted.append(Holding(ticker=h.ticker, weight=h.weight, asset_class=h.asset_class))
        elif isinstance(h, dict):
            converted.append(Holding(ticker=h.get('ticker', ''), weight=h.get('weight'),
                                     asset_class=h.get('asset_class')))
        else:
            raise InputError(f"Unsupported holding type: {type(h).__name__}")
    return converted


class ScenarioScorer:
    """Scenario id (or question) -> analog -> comparative score"""

    def __init__(self, config: Optional[ProjectionConfig] = None, price_source=None):
        """
        Args:
            config: Projection configuration
            price_source: Optional source with ``fetch_between(ticker, start, end)``
                used by refresh_benchmark; without it the reference table is used
        """
        self.config = config or ProjectionConfig()
        self.price_source = price_source
        self._benchmarks: Dict[str, Tuple[float, float]] = {}

    # -------------------------------------------------------------------------
    # Scenario resolution
    # -------------------------------------------------------------------------

    def resolve_scenario(self, scenario_id: str) -> Tuple[ScenarioDefinition, HistoricalAnalog]:
        scenario = get_scenario(scenario_id)
        return scenario, get_analog(scenario.analog_type.value)

    def classify_question(self, question: str, default: Optional[str] = None) -> str:
        """
        Scenario id for a free-text question, by keyword.

        Raises:
            InputError: nothing matched and no default was given
        """
        text = (question or '').lower()
        for scenario_id, scenario in SCENARIOS.items():
            for keyword in scenario.keywords:
                if re.search(r'\b' + re.escape(keyword.lower()) + r'\b', text):
                    logger.info(f"Question matched scenario {scenario_id} (keyword '{keyword}')")
                    return scenario_id

        if default is None:
            raise InputError(f"Could not map question to a scenario: {question!r}")
        get_scenario(default)
        logger.info(f"No keyword match, using default scenario {default}")
        return default

    # -------------------------------------------------------------------------
    # Portfolio statistics
    # -------------------------------------------------------------------------

    def calculate_portfolio_return(self, holdings: List[Union[Holding, Position, dict]],
                                   analog: HistoricalAnalog) -> Tuple[float, Dict[str, Dict[str, float]]]:
        """
        Weighted analog-period return.

        Returns:
            (portfolio_return, breakdown by analog class)
        """
        holdings = _to_holdings(holdings)
        if not holdings:
            raise InputError("Portfolio has no holdings")
        for h in holdings:
            if h.weight is None or not math.isfinite(h.weight) or h.weight < 0:
                raise InputError(f"{h.ticker}: weight must be a non-negative number, got {h.weight}")

        total = sum(h.weight for h in holdings)
        if total <= 0:
            raise InputError(f"Portfolio weights must sum to a positive value, got {total}")
        if abs(total - 1.0) > self.config.portfolio.weight_tolerance:
            logger.warning(f"Portfolio weights sum to {total:.3f}, normalizing...")

        portfolio_return = 0.0
        breakdown: Dict[str, Dict[str, float]] = {}
        for h in holdings:
            weight = h.weight / total
            analog_class = analog_class_for(h.ticker, h.asset_class)
            asset_return = analog.asset_return(analog_class)
            contribution = weight * asset_return
            portfolio_return += contribution

            row = breakdown.setdefault(analog_class, {'weight': 0.0, 'return': asset_return, 'contribution': 0.0})
            row['weight'] += weight
            row['contribution'] += contribution

        return portfolio_return, breakdown

    # -------------------------------------------------------------------------
    # Benchmark
    # -------------------------------------------------------------------------

    def benchmark(self, analog: HistoricalAnalog) -> Tuple[float, float]:
        """(return, drawdown) of the S&P 500 over the analog period."""
        return self._benchmarks.get(analog.analog_id, (analog.benchmark_return, analog.benchmark_drawdown))

    def refresh_benchmark(self, analog_id: str) -> Tuple[float, float]:
        """
        Recompute the S&P 500 benchmark from live prices.

        Falls back to the reference table when no source is configured or
        every benchmark ticker fails.
        """
        analog = get_analog(analog_id)
        if self.price_source is not None:
            for ticker in BENCHMARK_TICKERS:
                try:
                    prices = self.price_source.fetch_between(ticker, analog.start_date, analog.end_date)
                    metrics = period_metrics(prices)
                except (DataUnavailable, ValueError) as e:
                    logger.warning(f"Benchmark {ticker} unavailable for {analog.name}: {e}")
                    continue
                self._benchmarks[analog_id] = metrics
                logger.info(
                    f"{analog.name} benchmark from {ticker}: return {metrics[0]:+.1%}, drawdown {metrics[1]:.1%}"
                )
                return metrics

        logger.warning(f"Using reference S&P 500 benchmark for {analog.name}")
        return analog.benchmark_return, analog.benchmark_drawdown

    # -------------------------------------------------------------------------
    # Scoring pipeline
    # -------------------------------------------------------------------------

    def score(self, scenario_id: str, holdings: List[Union[Holding, Position, dict]],
              reference_holdings: Optional[List[Union[Holding, Position, dict]]] = None) -> ScenarioScore:
        """
        Score a portfolio against a scenario.

        Raises:
            InputError: unknown scenario id or malformed holdings
        """
        scenario, analog = self.resolve_scenario(scenario_id)
        validate_asset_returns(analog.asset_returns)

        portfolio_return, breakdown = self.calculate_portfolio_return(holdings, analog)
        portfolio_drawdown = estimate_drawdown(portfolio_return)

        if reference_holdings is None:
            reference_return, reference_drawdown = self.benchmark(analog)
        else:
            reference_return, _ = self.calculate_portfolio_return(reference_holdings, analog)
            reference_drawdown = estimate_drawdown(reference_return)

        components = calculate_score(portfolio_return, portfolio_drawdown, reference_return, reference_drawdown)
        label, color = score_label(components['score'])

        logger.info(
            f"{scenario_id} / {analog.name}: score {components['score']} ({label}), "
            f"portfolio {portfolio_return:+.2%} vs reference {reference_return:+.2%}"
        )

        return ScenarioScore(
            score=components['score'],
            label=label,
            color=color,
            return_score=components['return_score'],
            drawdown_score=components['drawdown_score'],
            scenario_id=scenario.scenario_id,
            scenario_name=scenario.name,
            primary_risk=scenario.primary_risk,
            analog_id=analog.analog_id,
            analog_name=analog.name,
            analog_period=f"{analog.start_date} to {analog.end_date}",
            portfolio_return=portfolio_return,
            portfolio_drawdown=portfolio_drawdown,
            reference_return=reference_return,
            reference_drawdown=reference_drawdown,
            outperformance=portfolio_return - reference_return,
            breakdown=breakdown,
        )

    def score_question(self, question: str, holdings: List[Union[Holding, Position, dict]],
                       default_scenario: Optional[str] = None,
                       reference_holdings: Optional[List[Union[Holding, Position, dict]]] = None) -> ScenarioScore:
        scenario_id = self.classify_question(question, default=default_scenario)
        return self.score(scenario_id, holdings, reference_holdings)
