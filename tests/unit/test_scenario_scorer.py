"""
Tests for historical analog scoring.

60/40 (VTI/BND) in the COVID analog:
    portfolio return = 0.6 * -0.339 + 0.4 * 0.085 = -0.1694
    drawdown estimate = 0.8 * 0.1694 = 0.13552
    return score = 50 + 200 * 0.1696 = 83.92
    drawdown score = 50 + 200 * (0.339 - 0.13552) = 90.696
    score = round(87.308) = 87 -> Strong
"""

import os
import sys
import pandas as pd
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from scenarios.analogs import (
    HISTORICAL_ANALOGS,
    SCENARIOS,
    ANALOG_ASSET_CLASSES,
    analog_class_for,
    get_analog,
    map_ticker,
    validate_asset_returns,
)
from scenarios.scorer import (
    Holding,
    ScenarioScorer,
    calculate_score,
    estimate_drawdown,
    score_label,
    _round_half_up,
)
from simulation.errors import InputError, DataUnavailable
from simulation.models import AssetClass, Position


SIXTY_FORTY = [Holding('VTI', 0.6), Holding('BND', 0.4)]


@pytest.fixture
def scorer(config):
    return ScenarioScorer(config)


class TestAnalogTables:

    def test_every_analog_covers_every_class(self):
        for analog in HISTORICAL_ANALOGS.values():
            assert set(analog.asset_returns) == set(ANALOG_ASSET_CLASSES)
            assert validate_asset_returns(analog.asset_returns) == []

    def test_every_scenario_has_an_analog(self):
        for scenario in SCENARIOS.values():
            assert get_analog(scenario.analog_type.value).analog_type == scenario.analog_type

    def test_benchmark_values(self):
        assert get_analog('COVID_CRASH').benchmark_return == pytest.approx(-0.339)
        assert get_analog('RATE_SHOCK').benchmark_drawdown == pytest.approx(0.20)
        assert get_analog('STAGFLATION').benchmark_drawdown == pytest.approx(0.48)

    def test_ticker_mapping(self):
        assert map_ticker('tlt') == 'long-treasuries'
        assert map_ticker('UNKNOWN') == 'us-large-cap'
        assert analog_class_for('UNKNOWN', AssetClass.BONDS) == 'aggregate-bonds'
        assert analog_class_for('GLD', AssetClass.STOCKS) == 'gold'
        assert analog_class_for(None, None) == 'us-large-cap'

    def test_suspicious_returns_flagged(self):
        warnings = validate_asset_returns({'gold': 4.0, 'cash': -0.99, 'tips': 0.1})
        assert len(warnings) == 2


class TestScoringFormula:

    def test_equal_to_reference_scores_fifty(self):
        assert calculate_score(-0.2, 0.16, -0.2, 0.16)['score'] == 50

    def test_clamped_to_range(self):
        best = calculate_score(1.0, 0.05, -0.5, 0.5)
        worst = calculate_score(-0.9, 0.72, 0.2, 0.05)
        assert best == {'score': 100, 'return_score': 100, 'drawdown_score': 100}
        assert worst == {'score': 0, 'return_score': 0, 'drawdown_score': 0}

    def test_round_half_up(self):
        assert _round_half_up(50.5) == 51
        assert _round_half_up(2.5) == 3
        assert _round_half_up(87.308) == 87

    def test_drawdown_estimate(self):
        assert estimate_drawdown(-0.30) == pytest.approx(0.24)
        assert estimate_drawdown(-0.02) == 0.05
        assert estimate_drawdown(0.15) == 0.05

    def test_score_never_falls_as_return_improves(self):
        previous = -1
        for step in range(-100, 101):
            portfolio_return = step / 200.0
            score = calculate_score(portfolio_return, estimate_drawdown(portfolio_return), -0.339, 0.339)['score']
            assert score >= previous
            previous = score

    @pytest.mark.parametrize("score,label,color", [
        (100, 'Excellent', '#10b981'),
        (90, 'Excellent', '#10b981'),
        (89, 'Strong', '#2dd4bf'),
        (75, 'Strong', '#2dd4bf'),
        (74, 'Moderate', '#f59e0b'),
        (60, 'Moderate', '#f59e0b'),
        (59, 'Weak', '#f87171'),
        (0, 'Weak', '#f87171'),
    ])
    def test_labels(self, score, label, color):
        assert score_label(score) == (label, color)


class TestScenarioScorer:

    def test_sixty_forty_covid(self, scorer):
        result = scorer.score('market-volatility', SIXTY_FORTY)
        assert result.analog_id == 'COVID_CRASH'
        assert result.portfolio_return == pytest.approx(-0.1694)
        assert result.portfolio_drawdown == pytest.approx(0.13552)
        assert result.return_score == 84
        assert result.drawdown_score == 91
        assert result.score == 87
        assert (result.label, result.color) == ('Strong', '#2dd4bf')
        assert result.outperformance == pytest.approx(0.1696)
        assert result.analog_period == '2020-02-01 to 2020-03-31'

    def test_breakdown(self, scorer):
        result = scorer.score('market-volatility', SIXTY_FORTY)
        assert set(result.breakdown) == {'us-large-cap', 'aggregate-bonds'}
        assert result.breakdown['aggregate-bonds']['contribution'] == pytest.approx(0.034)

    def test_deterministic(self, scorer):
        first = scorer.score('cash-vs-bonds', SIXTY_FORTY).to_dict()
        second = scorer.score('cash-vs-bonds', SIXTY_FORTY).to_dict()
        assert first == second

    def test_unknown_scenario(self, scorer):
        with pytest.raises(InputError):
            scorer.score('alien-invasion', SIXTY_FORTY)

    def test_reference_holdings(self, scorer):
        result = scorer.score('market-volatility', [Holding('SPY', 1.0)], reference_holdings=[Holding('VOO', 1.0)])
        assert result.score == 50
        assert result.label == 'Weak'

    def test_accepts_positions_and_dicts(self, scorer):
        positions = [
            Position('VTI', 0.6, AssetClass.STOCKS, 0.07),
            Position('BND', 0.4, AssetClass.BONDS, 0.04),
        ]
        dicts = [{'ticker': 'VTI', 'weight': 60}, {'ticker': 'BND', 'weight': 40}]
        expected = scorer.score('market-volatility', SIXTY_FORTY).score
        assert scorer.score('market-volatility', positions).score == expected
        assert scorer.score('market-volatility', dicts).score == expected

    def test_unknown_ticker_uses_asset_class(self, scorer):
        result = scorer.score('cash-vs-bonds', [Holding('MYBOND', 1.0, AssetClass.BONDS)])
        assert result.portfolio_return == pytest.approx(-0.14)

    def test_bad_holdings(self, scorer):
        with pytest.raises(InputError):
            scorer.score('market-volatility', [])
        with pytest.raises(InputError):
            scorer.score('market-volatility', [Holding('VTI', -1.0)])
        with pytest.raises(InputError):
            scorer.score('market-volatility', [Holding('VTI', 0.0)])

    def test_defensive_portfolio_beats_equities_in_rate_shock(self, scorer):
        defensive = scorer.score('cash-vs-bonds', [Holding('SHV', 0.5), Holding('DBC', 0.5)])
        equities = scorer.score('cash-vs-bonds', [Holding('XLK', 1.0)])
        assert defensive.score > equities.score


class TestQuestionClassification:

    @pytest.mark.parametrize("question,scenario_id", [
        ("What if there is a market crash next month?", 'market-volatility'),
        ("Is the AI bubble about to pop?", 'ai-supercycle'),
        ("Should I move from cash into bonds?", 'cash-vs-bonds'),
        ("Am I too exposed to big tech?", 'tech-concentration'),
        ("How do I protect against inflation?", 'inflation-hedge'),
        ("Will a recession hurt my portfolio?", 'recession-risk'),
    ])
    def test_keywords(self, scorer, question, scenario_id):
        assert scorer.classify_question(question) == scenario_id

    def test_keyword_needs_word_boundary(self, scorer):
        # 'AI' must not match inside 'retail'
        with pytest.raises(InputError):
            scorer.classify_question("How do retail stocks look?")

    def test_default_scenario(self, scorer):
        assert scorer.classify_question("Tell me something", default='recession-risk') == 'recession-risk'

    def test_unknown_default_rejected(self, scorer):
        with pytest.raises(InputError):
            scorer.classify_question("Tell me something", default='nope')

    def test_score_question(self, scorer):
        result = scorer.score_question("What if there is a crash?", SIXTY_FORTY)
        assert result.scenario_id == 'market-volatility'
        assert result.score == 87


class TestBenchmarkRefresh:

    def test_refresh_from_prices(self, config, fake_source_cls):
        prices = pd.Series([100.0, 80.0, 90.0])
        scorer = ScenarioScorer(config, price_source=fake_source_cls(overrides={'^SP500TR': prices}))
        assert scorer.refresh_benchmark('COVID_CRASH') == pytest.approx((-0.10, 0.20))
        assert scorer.benchmark(get_analog('COVID_CRASH')) == pytest.approx((-0.10, 0.20))

    def test_falls_back_to_table(self, config):
        class FailingSource:
            def fetch_between(self, ticker, start, end):
                raise DataUnavailable(ticker, "offline")

        scorer = ScenarioScorer(config, price_source=FailingSource())
        assert scorer.refresh_benchmark('DOT_COM_BUST') == (-0.50, 0.50)
        assert scorer.benchmark(get_analog('DOT_COM_BUST')) == (-0.50, 0.50)

    def test_no_source(self, scorer):
        assert scorer.refresh_benchmark('RATE_SHOCK') == (-0.18, 0.20)
