"""
RETURN & VOLATILITY MODEL - Static Lookup Tables
=================================================

Long-run statistics per asset class plus the cycle deviation tables used by
the cycle adjustment layer.

- Baseline returns are available on a real (after inflation) or nominal basis
- Each cycle dimension maps phase labels to a partial deviation vector
  (missing asset classes deviate by zero)
- One flat table maps phase labels to a volatility multiplier (default 1.0)

Phase labels are matched loosely: exact (case-insensitive), then substring,
then shared words longer than three characters.

Author: Trading Bot Arsenal
Created: January 2026
"""

import re
import logging
from typing import Dict, Optional, Tuple, List

from config.projection_config import ReturnBasis
from simulation.models import AssetClass, CycleDimension

logger = logging.getLogger('ReturnModel')

_A = AssetClass


# =============================================================================
# LONG-RUN ASSET CLASS STATISTICS
# =============================================================================

REAL_BASELINE_RETURNS: Dict[AssetClass, float] = {
    _A.STOCKS: 0.07,
    _A.BONDS: 0.02,
    _A.REAL_ESTATE: 0.05,
    _A.COMMODITIES: 0.01,
    _A.CASH: 0.00,
    _A.ALTERNATIVES: 0.05,
}

NOMINAL_BASELINE_RETURNS: Dict[AssetClass, float] = {
    _A.STOCKS: 0.10,
    _A.BONDS: 0.05,
    _A.REAL_ESTATE: 0.08,
    _A.COMMODITIES: 0.04,
    _A.CASH: 0.03,
    _A.ALTERNATIVES: 0.08,
}

BASELINE_VOLATILITIES: Dict[AssetClass, float] = {
    _A.STOCKS: 0.17,
    _A.BONDS: 0.06,
    _A.REAL_ESTATE: 0.15,
    _A.COMMODITIES: 0.20,
    _A.CASH: 0.01,
    _A.ALTERNATIVES: 0.12,
}


def _row(stocks=0.0, bonds=0.0, real_estate=0.0, commodities=0.0, cash=0.0, alternatives=0.0) -> Dict[AssetClass, float]:
    """Build a partial deviation vector, leaving zero entries out."""
    values = {
        _A.STOCKS: stocks,
        _A.BONDS: bonds,
        _A.REAL_ESTATE: real_estate,
        _A.COMMODITIES: commodities,
        _A.CASH: cash,
        _A.ALTERNATIVES: alternatives,
    }
    return {asset: value for asset, value in values.items() if value != 0.0}


# =============================================================================
# CYCLE DEVIATION TABLES
# =============================================================================

BUSINESS_CYCLE_DEVIATIONS = {
    'Expansion': _row(0.03, -0.01, 0.02, 0.02, 0.00, 0.02),
    'Peak': _row(0.01, -0.01, 0.01, 0.03, 0.01, 0.01),
    'Slowdown': _row(-0.02, 0.01, -0.01, -0.01, 0.00, -0.01),
    'Contraction': _row(-0.03, 0.02, -0.02, -0.02, 0.01, -0.02),
    'Recession': _row(-0.05, 0.03, -0.04, -0.03, 0.01, -0.03),
    'Recovery': _row(0.05, 0.00, 0.02, 0.02, 0.00, 0.03),
    'Trough': _row(0.04, 0.01, 0.01, 0.01, 0.00, 0.02),
}

# Long-term debt cycle
ECONOMIC_CYCLE_DEVIATIONS = {
    'Early Cycle': _row(0.04, 0.01, 0.03, 0.01, 0.00, 0.03),
    'Early': _row(0.04, 0.01, 0.03, 0.01, 0.00, 0.03),
    'Mid Cycle': _row(0.02, 0.00, 0.02, 0.01, 0.00, 0.02),
    'Mid': _row(0.02, 0.00, 0.02, 0.01, 0.00, 0.02),
    'Late Cycle': _row(-0.01, -0.01, -0.01, 0.02, 0.00, 0.00),
    'Late': _row(-0.01, -0.01, -0.01, 0.02, 0.00, 0.00),
    'Crisis': _row(-0.05, 0.02, -0.04, -0.02, 0.02, -0.03),
    'Deleveraging': _row(-0.04, 0.01, -0.03, -0.01, 0.01, -0.02),
}

TECHNOLOGY_CYCLE_DEVIATIONS = {
    'Installation': _row(0.02, 0.00, 0.01, 0.01, 0.00, 0.02),
    'Frenzy': _row(0.06, -0.02, 0.03, 0.02, -0.01, 0.04),
    'Turning Point': _row(-0.04, 0.02, -0.02, -0.01, 0.01, -0.02),
    'Crash': _row(-0.06, 0.03, -0.03, -0.02, 0.02, -0.04),
    'Synergy': _row(0.03, 0.00, 0.02, 0.00, 0.00, 0.02),
    'Deployment': _row(0.03, 0.00, 0.02, 0.00, 0.00, 0.02),
    'Maturity': _row(-0.01, 0.01, 0.00, 0.00, 0.00, 0.00),
}

COUNTRY_CYCLE_DEVIATIONS = {
    'Rise': _row(0.04, 0.02, 0.03, 0.01, 0.00, 0.03),
    'Expansion': _row(0.03, 0.01, 0.02, 0.01, 0.00, 0.02),
    'Conquest': _row(0.03, 0.01, 0.02, 0.01, 0.00, 0.02),
    'Affluence': _row(0.02, 0.00, 0.01, 0.00, 0.00, 0.01),
    'Commerce': _row(0.02, 0.00, 0.01, 0.00, 0.00, 0.01),
    'Bureaucracy': _row(-0.01, 0.00, -0.01, 0.00, 0.00, 0.00),
    'Intellect': _row(),
    'Decadence': _row(-0.02, -0.01, -0.02, 0.01, 0.00, -0.01),
    'Decline': _row(-0.04, -0.02, -0.03, 0.03, 0.01, -0.02),
    'Crisis': _row(-0.03, 0.00, -0.02, 0.02, 0.01, -0.01),
    'High': _row(0.03, 0.01, 0.02, 0.00, 0.00, 0.02),
    'Awakening': _row(0.01, 0.00, 0.01, 0.00, 0.00, 0.01),
    'Unraveling': _row(0.00, 0.00, 0.00, 0.01, 0.00, 0.00),
}

# S&P 500 market cycle
MARKET_CYCLE_DEVIATIONS = {
    'Bull Market': _row(0.04, -0.01, 0.02, 0.01, 0.00, 0.02),
    'Bear Market': _row(-0.05, 0.02, -0.02, -0.01, 0.01, -0.02),
    'Correction': _row(-0.02, 0.01, -0.01, 0.00, 0.00, -0.01),
    'Recovery': _row(0.05, 0.00, 0.02, 0.01, 0.00, 0.03),
    'Consolidation': _row(),
    'Secular Bull': _row(0.03, 0.00, 0.02, 0.01, 0.00, 0.02),
    'Secular Bear': _row(-0.03, 0.01, -0.01, 0.01, 0.00, -0.01),
}

CYCLE_DEVIATIONS: Dict[CycleDimension, Dict[str, Dict[AssetClass, float]]] = {
    CycleDimension.BUSINESS: BUSINESS_CYCLE_DEVIATIONS,
    CycleDimension.ECONOMIC: ECONOMIC_CYCLE_DEVIATIONS,
    CycleDimension.TECHNOLOGY: TECHNOLOGY_CYCLE_DEVIATIONS,
    CycleDimension.COUNTRY: COUNTRY_CYCLE_DEVIATIONS,
    CycleDimension.MARKET: MARKET_CYCLE_DEVIATIONS,
}


# =============================================================================
# VOLATILITY MULTIPLIERS
# =============================================================================

DEFAULT_VOLATILITY_MULTIPLIER = 1.0

VOLATILITY_MULTIPLIERS: Dict[str, float] = {
    # Business cycle
    'Expansion': 0.95,
    'Peak': 1.10,
    'Slowdown': 1.15,
    'Contraction': 1.20,
    'Recession': 1.35,
    'Recovery': 1.10,
    'Trough': 1.05,

    # Technology cycle
    'Installation': 1.00,
    'Frenzy': 1.40,
    'Turning Point': 1.50,
    'Crash': 1.60,
    'Synergy': 0.90,
    'Deployment': 0.90,
    'Maturity': 0.95,

    # Long-term debt cycle
    'Early Cycle': 0.95,
    'Early': 0.95,
    'Mid Cycle': 0.90,
    'Mid': 0.90,
    'Late Cycle': 1.15,
    'Late': 1.15,
    'Crisis': 1.50,
    'Deleveraging': 1.30,
}


# =============================================================================
# LOOKUPS
# =============================================================================

def baseline_returns(basis: ReturnBasis = ReturnBasis.REAL) -> Dict[AssetClass, float]:
    """Copy of the long-run return vector for the requested basis."""
    table = NOMINAL_BASELINE_RETURNS if basis == ReturnBasis.NOMINAL else REAL_BASELINE_RETURNS
    return dict(table)


def baseline_return(asset_class: AssetClass, basis: ReturnBasis = ReturnBasis.REAL) -> float:
    return baseline_returns(basis)[AssetClass.parse(asset_class)]


def baseline_volatility(asset_class: AssetClass) -> float:
    return BASELINE_VOLATILITIES[AssetClass.parse(asset_class)]


def canonical_phases(dimension: CycleDimension) -> List[str]:
    """Known phase labels for a dimension, in table order."""
    return list(CYCLE_DEVIATIONS[CycleDimension(dimension)].keys())


_WORD_SPLIT = re.compile(r'[\s\-_]+')


def match_phase(phase: Optional[str], table: Dict[str, object]) -> Optional[str]:
    """
    Find the table key that best matches a free-form phase label.

    Returns:
        The matching key, or None when nothing matches
    """
    if not phase or not phase.strip():
        return None

    normalized = phase.lower().strip()

    for key in table:
        if normalized == key.lower():
            return key

    for key in table:
        lowered = key.lower()
        if lowered in normalized or normalized in lowered:
            return key

    phase_words = _WORD_SPLIT.split(normalized)
    for key in table:
        key_words = _WORD_SPLIT.split(key.lower())
        for word in phase_words:
            if len(word) > 3 and any(kw and (word in kw or kw in word) for kw in key_words):
                return key

    return None


def phase_deviation(dimension: CycleDimension, phase: Optional[str]) -> Tuple[Optional[str], Dict[AssetClass, float]]:
    """
    Look up the deviation vector for a phase of one cycle dimension.

    Returns:
        (matched_key, deviation) - matched_key is None and deviation is empty
        when the label is not recognized
    """
    table = CYCLE_DEVIATIONS[CycleDimension(dimension)]
    key = match_phase(phase, table)
    if key is None:
        if phase:
            logger.warning(f"No {CycleDimension(dimension).value} phase match for '{phase}', treating as neutral")
        return None, {}
    return key, dict(table[key])


def volatility_multiplier(phase: Optional[str]) -> float:
    """Dispersion multiplier for a phase label (exact, then substring, then 1.0)."""
    if not phase or not phase.strip():
        return DEFAULT_VOLATILITY_MULTIPLIER

    normalized = phase.lower().strip()
    for key, value in VOLATILITY_MULTIPLIERS.items():
        if normalized == key.lower():
            return value
    for key, value in VOLATILITY_MULTIPLIERS.items():
        if key.lower() in normalized:
            return value
    return DEFAULT_VOLATILITY_MULTIPLIER
