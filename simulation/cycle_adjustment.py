"""
CYCLE ADJUSTMENT CALCULATOR
===========================

Turns the active phase of five overlapping cycles into an adjusted long-run
return vector and a single volatility multiplier:

    Adjusted[asset] = Baseline[asset] + SUM(weight[d] * deviation[d][phase][asset])

The volatility multiplier is the weight-normalized average of the multipliers
of every dimension whose phase was recognized. With no recognized phase the
result is exactly the baseline with multiplier 1.0.

Author: Trading Bot Arsenal
Created: January 2026
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from config.projection_config import ProjectionConfig, ReturnBasis
from simulation.errors import InputError
from simulation.models import AssetClass, CycleDimension, CyclePhaseState
from simulation import return_model

logger = logging.getLogger('CycleAdjustment')

# Stocks delta beyond which a summary calls the outlook bullish/bearish
DIRECTION_THRESHOLD = 0.005
STRONG_THRESHOLD = 0.02
MODERATE_THRESHOLD = 0.01


@dataclass
class CycleAdjustment:
    """Adjusted long-run statistics for one cycle phase state"""
    returns: Dict[AssetClass, float]
    volatility_multiplier: float = 1.0
    contributions: Dict[str, Dict[AssetClass, float]] = field(default_factory=dict)
    phases: Dict[str, Optional[str]] = field(default_factory=dict)
    basis: ReturnBasis = ReturnBasis.REAL

    def adjusted_return(self, asset_class) -> float:
        return self.returns[AssetClass.parse(asset_class)]

    @property
    def is_neutral(self) -> bool:
        return not any(self.contributions.values()) and self.volatility_multiplier == 1.0

    def to_dict(self) -> Dict:
        return {
            'returns': {a.value: r for a, r in self.returns.items()},
            'volatility_multiplier': self.volatility_multiplier,
            'contributions': {
                d: {a.value: v for a, v in c.items()} for d, c in self.contributions.items()
            },
            'phases': dict(self.phases),
            'basis': self.basis.value,
        }


@dataclass
class AdjustmentSummary:
    direction: str   # 'bullish' | 'bearish' | 'neutral'
    magnitude: str   # 'strong' | 'moderate' | 'mild'
    stocks_delta: float
    summary: str


class CycleAdjustmentCalculator:
    """Pure function of (phase state, weights, basis) wrapped with its config"""

    def __init__(self, config: Optional[ProjectionConfig] = None):
        self.config = config or ProjectionConfig()
        self.weights = dict(self.config.cycle.weights)
        self.basis = self.config.simulation.return_basis

    def neutral(self) -> CycleAdjustment:
        """Baseline returns, multiplier 1.0."""
        return CycleAdjustment(returns=return_model.baseline_returns(self.basis), basis=self.basis)

    def calculate(self, state: Optional[CyclePhaseState]) -> CycleAdjustment:
        adjusted = return_model.baseline_returns(self.basis)
        contributions: Dict[str, Dict[AssetClass, float]] = {d.value: {} for d in CycleDimension}
        phases: Dict[str, Optional[str]] = {}

        weighted_multiplier = 0.0
        weight_used = 0.0

        if state is None:
            state = CyclePhaseState()

        for dimension in CycleDimension:
            phase = state.phase_for(dimension)
            if not phase:
                continue

            weight = self.weights.get(dimension.value, 0.0)
            matched, deviation = return_model.phase_deviation(dimension, phase)
            phases[dimension.value] = matched or phase
            if matched is None:
                continue

            for asset in AssetClass:
                delta = deviation.get(asset, 0.0) * weight
                adjusted[asset] += delta
                contributions[dimension.value][asset] = delta

            weighted_multiplier += return_model.volatility_multiplier(phase) * weight
            weight_used += weight
            logger.debug(f"{dimension.value}: '{phase}' -> '{matched}' (weight {weight:.2f})")

        multiplier = weighted_multiplier / weight_used if weight_used > 0 else 1.0

        return CycleAdjustment(
            returns=adjusted,
            volatility_multiplier=multiplier,
            contributions=contributions,
            phases=phases,
            basis=self.basis,
        )

    def portfolio_expected_return(self, allocation: Dict[Union[AssetClass, str], float],
                                  adjustment: Optional[CycleAdjustment] = None) -> float:
        """
        Allocation-weighted expected return from (adjusted) asset class returns.

        The allocation may be expressed in fractions or percentages; it is
        normalized by its total.
        """
        adjustment = adjustment or self.neutral()
        total = sum(allocation.values())
        if total <= 0:
            raise InputError("Allocation must have a positive total")
        if any(v < 0 for v in allocation.values()):
            raise InputError("Allocation weights cannot be negative")

        expected = 0.0
        for asset, amount in allocation.items():
            expected += adjustment.adjusted_return(asset) * (amount / total)
        return expected

    def summarize(self, adjustment: CycleAdjustment) -> AdjustmentSummary:
        return summarize_adjustment(adjustment)


def summarize_adjustment(adjustment: CycleAdjustment) -> AdjustmentSummary:
    """Direction and magnitude of an adjustment, judged by its stocks delta."""
    baseline = return_model.baseline_return(AssetClass.STOCKS, adjustment.basis)
    delta = adjustment.returns[AssetClass.STOCKS] - baseline

    if delta > DIRECTION_THRESHOLD:
        direction = 'bullish'
    elif delta < -DIRECTION_THRESHOLD:
        direction = 'bearish'
    else:
        direction = 'neutral'

    if abs(delta) > STRONG_THRESHOLD:
        magnitude = 'strong'
    elif abs(delta) > MODERATE_THRESHOLD:
        magnitude = 'moderate'
    else:
        magnitude = 'mild'

    active = ', '.join(f"{d}: {p}" for d, p in adjustment.phases.items() if p)
    if direction == 'neutral':
        text = f"Cycles suggest baseline returns. Active phases: {active}"
    else:
        text = (f"{magnitude.capitalize()} {direction} signal "
                f"(stocks {delta * 100:+.1f}% from baseline). Active phases: {active}")

    return AdjustmentSummary(direction=direction, magnitude=magnitude, stocks_delta=delta, summary=text)
