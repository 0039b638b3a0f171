"""
Unit tests for the cycle adjustment calculator.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from config.projection_config import ProjectionConfig, ReturnBasis, CycleConfig
from simulation.cycle_adjustment import CycleAdjustmentCalculator, summarize_adjustment
from simulation.errors import InputError
from simulation.models import AssetClass, CyclePhaseState
from simulation import return_model


@pytest.fixture
def calculator():
    return CycleAdjustmentCalculator(ProjectionConfig())


class TestNeutralState:

    def test_empty_state_is_baseline(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState())
        for asset in AssetClass:
            assert adjustment.returns[asset] == pytest.approx(return_model.baseline_return(asset))
        assert adjustment.volatility_multiplier == 1.0
        assert adjustment.is_neutral

    def test_none_state_is_baseline(self, calculator):
        adjustment = calculator.calculate(None)
        assert adjustment.returns == calculator.neutral().returns
        assert adjustment.volatility_multiplier == 1.0

    def test_unrecognized_labels_are_neutral(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState(business='Zzzz', market='Qqqq'))
        assert adjustment.returns == return_model.baseline_returns()
        assert adjustment.volatility_multiplier == 1.0

    def test_nominal_basis(self):
        config = ProjectionConfig()
        config.simulation.return_basis = ReturnBasis.NOMINAL
        adjustment = CycleAdjustmentCalculator(config).calculate(CyclePhaseState())
        assert adjustment.adjusted_return(AssetClass.STOCKS) == pytest.approx(0.10)
        assert adjustment.basis == ReturnBasis.NOMINAL


class TestAdjustedReturns:

    def test_recession_shifts_stocks_and_bonds(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState(business='Recession'))
        assert adjustment.adjusted_return(AssetClass.STOCKS) == pytest.approx(0.07 - 0.30 * 0.05)
        assert adjustment.adjusted_return(AssetClass.BONDS) == pytest.approx(0.02 + 0.30 * 0.03)
        assert adjustment.contributions['business'][AssetClass.STOCKS] == pytest.approx(-0.015)

    def test_dimensions_add_up(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState(business='Recession', technology='Frenzy'))
        expected = 0.07 + 0.30 * -0.05 + 0.20 * 0.06
        assert adjustment.adjusted_return('stocks') == pytest.approx(expected)

    def test_fuzzy_labels_match(self, calculator):
        fuzzy = calculator.calculate(CyclePhaseState(market='bear'))
        exact = calculator.calculate(CyclePhaseState(market='Bear Market'))
        assert fuzzy.returns == exact.returns
        assert fuzzy.phases['market'] == 'Bear Market'

    def test_all_dimensions(self, calculator):
        state = CyclePhaseState(
            business='Expansion', economic='Late Cycle', technology='Deployment',
            country='Decline', market='Bull Market',
        )
        adjustment = calculator.calculate(state)
        expected = (0.07 + 0.30 * 0.03 + 0.20 * -0.01 + 0.20 * 0.03
                    + 0.15 * -0.04 + 0.15 * 0.04)
        assert adjustment.adjusted_return(AssetClass.STOCKS) == pytest.approx(expected)
        assert len(adjustment.phases) == 5

    def test_custom_weights(self):
        config = ProjectionConfig()
        config.cycle = CycleConfig(weights={
            'business': 1.0, 'economic': 0.0, 'technology': 0.0, 'country': 0.0, 'market': 0.0,
        })
        adjustment = CycleAdjustmentCalculator(config).calculate(CyclePhaseState(business='Recession'))
        assert adjustment.adjusted_return(AssetClass.STOCKS) == pytest.approx(0.02)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            CycleConfig(weights={'business': 0.5, 'market': 0.2})


class TestVolatilityMultiplier:

    def test_single_dimension(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState(business='Recession'))
        assert adjustment.volatility_multiplier == pytest.approx(1.35)

    def test_weighted_average_of_matched_dimensions(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState(business='Recession', technology='Synergy'))
        assert adjustment.volatility_multiplier == pytest.approx((1.35 * 0.3 + 0.90 * 0.2) / 0.5)

    def test_phase_without_multiplier_counts_as_one(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState(business='Recession', market='Bull Market'))
        assert adjustment.volatility_multiplier == pytest.approx((1.35 * 0.3 + 1.0 * 0.15) / 0.45)

    def test_crisis_raises_dispersion(self, calculator):
        crisis = calculator.calculate(CyclePhaseState(economic='Crisis', technology='Crash'))
        assert crisis.volatility_multiplier > 1.0


class TestPortfolioExpectedReturn:

    def test_percent_allocation(self, calculator):
        expected = calculator.portfolio_expected_return({AssetClass.STOCKS: 60, AssetClass.BONDS: 40})
        assert expected == pytest.approx(0.6 * 0.07 + 0.4 * 0.02)

    def test_uses_adjustment(self, calculator):
        adjustment = calculator.calculate(CyclePhaseState(business='Recession'))
        expected = calculator.portfolio_expected_return({'stocks': 1.0}, adjustment)
        assert expected == pytest.approx(0.055)

    def test_rejects_bad_allocation(self, calculator):
        with pytest.raises(InputError):
            calculator.portfolio_expected_return({'stocks': 0.0})
        with pytest.raises(InputError):
            calculator.portfolio_expected_return({'stocks': 1.5, 'bonds': -0.5})
        with pytest.raises(InputError):
            calculator.portfolio_expected_return({'crypto': 1.0})


class TestSummary:

    def test_bearish_summary(self, calculator):
        summary = summarize_adjustment(calculator.calculate(CyclePhaseState(business='Recession')))
        assert summary.direction == 'bearish'
        assert summary.magnitude == 'moderate'
        assert summary.stocks_delta == pytest.approx(-0.015)
        assert 'business: Recession' in summary.summary

    def test_neutral_summary(self, calculator):
        summary = calculator.summarize(calculator.neutral())
        assert summary.direction == 'neutral'
        assert summary.magnitude == 'mild'
        assert summary.summary.startswith('Cycles suggest baseline returns')

    def test_strong_bullish_summary(self, calculator):
        state = CyclePhaseState(business='Recovery', technology='Frenzy', market='Recovery')
        summary = summarize_adjustment(calculator.calculate(state))
        assert summary.direction == 'bullish'
        assert summary.magnitude == 'strong'

    def test_to_dict_uses_values(self, calculator):
        data = calculator.calculate(CyclePhaseState(business='Peak')).to_dict()
        assert 'realEstate' in data['returns']
        assert data['basis'] == 'real'
        assert data['phases'] == {'business': 'Peak'}
