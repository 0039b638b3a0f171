"""
End-to-end tests for the projection runner: positions, portfolio, scenario
scoring, data policies and the cache refresh jobs.
"""

import os
import sys
import time
import pytest
from dataclasses import replace

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from cache.result_cache import ResultCache
from cache.volatility_cache import VolatilityCache
from config.projection_config import DataPolicy
from simulation.errors import DataUnavailable, InputError
from simulation.models import AssetClass, CyclePhaseState, Position
from simulation.run_simulation import ProjectionRunner, sample_portfolio


@pytest.fixture
def runner(config):
    return ProjectionRunner(config)


@pytest.fixture
def cached_runner(config, db_path):
    return ProjectionRunner(config, cache=ResultCache(config, db_path=db_path))


def _with_unpriced(positions):
    """Add a position with no volatility (and no source to estimate it)"""
    return positions + [Position('NEWCO', 0.2, AssetClass.STOCKS, year1_return=0.15)]


class TestProjectPortfolio:

    def test_sixty_forty(self, runner, sixty_forty):
        projection = runner.project_portfolio(sixty_forty, 5)
        assert set(projection.positions) == {'VTI', 'BND'}
        assert projection.portfolio.volatility == pytest.approx(0.126)
        assert projection.scenario is None
        assert projection.dropped == {}
        for result in list(projection.positions.values()) + [projection.portfolio]:
            assert result.downside <= result.median <= result.upside

    def test_positions_use_their_own_volatility(self, runner, sixty_forty):
        projection = runner.project_portfolio(sixty_forty, 1)
        assert projection.positions['VTI'].volatility == 0.17
        assert projection.positions['BND'].volatility == 0.06

    def test_reproducible(self, config, sixty_forty):
        first = ProjectionRunner(config).project_portfolio(sixty_forty, 5).to_dict()
        second = ProjectionRunner(config).project_portfolio(sixty_forty, 5).to_dict()
        assert first == second

    def test_concurrency_does_not_change_results(self, config):
        positions = sample_portfolio()
        config.batch.max_concurrency = 1
        serial = ProjectionRunner(config).project_portfolio(positions, 3).to_dict()
        config.batch.max_concurrency = 4
        parallel = ProjectionRunner(config).project_portfolio(positions, 3).to_dict()
        assert serial == parallel

    def test_positions_get_independent_streams(self, runner):
        positions = [
            Position('AAA', 0.5, AssetClass.STOCKS, 0.07, historical_volatility=0.2),
            Position('BBB', 0.5, AssetClass.STOCKS, 0.07, historical_volatility=0.2),
        ]
        projection = runner.project_portfolio(positions, 5)
        assert projection.positions['AAA'].median != projection.positions['BBB'].median

    def test_with_cycle_state_and_scenario(self, runner, sixty_forty):
        state = CyclePhaseState(business='Recession', market='Bear Market')
        projection = runner.project_portfolio(sixty_forty, 5, state, scenario_id='market-volatility')
        assert projection.cycle_adjustment.volatility_multiplier > 1.0
        assert projection.scenario.score == 87
        assert projection.scenario.label == 'Strong'
        assert projection.to_dict()['scenario']['analog_id'] == 'COVID_CRASH'

    def test_unknown_scenario_fails_before_simulating(self, config, price_source):
        runner = ProjectionRunner(config, price_source=price_source)
        positions = [Position('VTI', 1.0, AssetClass.STOCKS, 0.07)]
        with pytest.raises(InputError):
            runner.project_portfolio(positions, 5, scenario_id='alien-invasion')
        assert price_source.calls == []

    def test_bad_weights(self, runner):
        with pytest.raises(InputError):
            runner.project_portfolio([Position('VTI', -1.0, AssetClass.STOCKS, 0.07)], 5)

    def test_volatility_from_price_source(self, config, price_source):
        runner = ProjectionRunner(config, price_source=price_source)
        projection = runner.project_portfolio([Position('QQQ', 1.0, AssetClass.STOCKS, 0.09)], 2)
        assert projection.positions['QQQ'].volatility > 0
        assert ('QQQ', '2y') in price_source.calls


class TestDataPolicy:

    def test_best_effort_drops_and_renormalizes(self, runner, sixty_forty):
        projection = runner.project_portfolio(_with_unpriced(sixty_forty), 3)
        assert 'NEWCO' in projection.dropped
        assert 'NEWCO' not in projection.positions
        assert projection.portfolio.metadata['weights'] == pytest.approx({'VTI': 0.6, 'BND': 0.4})

    def test_all_or_nothing_fails(self, runner, sixty_forty):
        with pytest.raises(DataUnavailable) as exc_info:
            runner.project_portfolio(_with_unpriced(sixty_forty), 3, policy=DataPolicy.ALL_OR_NOTHING)
        assert exc_info.value.ticker == 'NEWCO'

    def test_configured_policy(self, config, sixty_forty):
        config.data.insufficient_data_policy = DataPolicy.ALL_OR_NOTHING
        with pytest.raises(DataUnavailable):
            ProjectionRunner(config).project_portfolio(_with_unpriced(sixty_forty), 3)

    def test_missing_estimate_dropped(self, runner):
        positions = [
            Position('VTI', 0.6, AssetClass.STOCKS, 0.07, historical_volatility=0.17),
            Position('NEW', 0.4, AssetClass.STOCKS, None, historical_volatility=0.2),
        ]
        projection = runner.project_portfolio(positions, 1)
        assert projection.dropped == {'NEW': 'missing year-1 return estimate'}
        assert projection.portfolio.metadata['weights'] == pytest.approx({'VTI': 1.0})

        with pytest.raises(DataUnavailable) as exc_info:
            runner.project_portfolio(positions, 1, policy=DataPolicy.ALL_OR_NOTHING)
        assert exc_info.value.ticker == 'NEW'

    def test_nothing_left(self, runner):
        with pytest.raises(DataUnavailable):
            runner.project_portfolio([Position('NEWCO', 1.0, AssetClass.STOCKS, 0.15)], 3)

    def test_short_history_dropped(self, config, fake_source_cls):
        source = fake_source_cls(samples=30)
        runner = ProjectionRunner(config, price_source=source)
        positions = [
            Position('THIN', 0.5, AssetClass.STOCKS, 0.10),
            Position('BND', 0.5, AssetClass.BONDS, 0.04, historical_volatility=0.06),
        ]
        projection = runner.project_portfolio(positions, 2)
        assert 'insufficient price history' in projection.dropped['THIN']


class TestRunBatch:

    def test_failures_do_not_stop_others(self, runner):
        def boom():
            raise ValueError("bad unit")

        batch = runner.run_batch({'a': lambda: 1, 'b': boom, 'c': lambda: 3})
        assert batch.results == {'a': 1, 'c': 3}
        assert batch.error_messages() == {'b': 'bad unit'}

    def test_results_keep_submission_order(self, runner):
        def slow():
            time.sleep(0.05)
            return 'slow'

        batch = runner.run_batch({'first': slow, 'second': lambda: 'fast'})
        assert list(batch.results) == ['first', 'second']

    def test_timeout_recorded(self, config):
        config.batch.unit_timeout_seconds = 0.1
        runner = ProjectionRunner(config)
        units = {f'quick-{i}': (lambda i=i: i) for i in range(9)}
        units['slow'] = lambda: time.sleep(0.5) or 'late'

        batch = runner.run_batch(units)
        assert 'slow' not in batch.results
        assert isinstance(batch.errors['slow'], TimeoutError)
        assert batch.results == {f'quick-{i}': i for i in range(9)}

    def test_timeout_counts_from_unit_start(self, config):
        config.batch.unit_timeout_seconds = 0.5
        config.batch.max_concurrency = 1
        runner = ProjectionRunner(config)

        def unit():
            time.sleep(0.3)
            return 'done'

        batch = runner.run_batch({'a': unit, 'b': unit, 'c': unit})
        assert batch.errors == {}
        assert batch.results == {'a': 'done', 'b': 'done', 'c': 'done'}

    def test_empty_batch(self, runner):
        batch = runner.run_batch({})
        assert batch.succeeded == 0 and batch.failed == 0


class TestCachedProjection:

    def test_second_call_hits_cache(self, cached_runner, sixty_forty):
        first = cached_runner.get_projection('acct-1', sixty_forty, 5)
        second = cached_runner.get_projection('acct-1', sixty_forty, 5)
        assert first['computed'] is True
        assert second['computed'] is False
        assert first['payload'] == second['payload']

    def test_scenarios_cached_separately(self, cached_runner, sixty_forty):
        cached_runner.get_projection('acct-1', sixty_forty, 5)
        scored = cached_runner.get_projection('acct-1', sixty_forty, 5, scenario_id='cash-vs-bonds')
        assert scored['computed'] is True
        assert scored['payload']['scenario']['scenario_id'] == 'cash-vs-bonds'
        assert cached_runner.cache.stats()['total_entries'] == 2

    def test_horizons_cached_separately(self, cached_runner, sixty_forty):
        short = cached_runner.get_projection('acct-1', sixty_forty, 1)
        long = cached_runner.get_projection('acct-1', sixty_forty, 10)
        assert long['computed'] is True
        assert short['payload']['portfolio']['horizon_years'] == 1
        assert long['payload']['portfolio']['horizon_years'] == 10
        assert cached_runner.cache.stats()['total_entries'] == 2

    def test_inputs_change_the_key(self, cached_runner, sixty_forty):
        cached_runner.get_projection('acct-1', sixty_forty, 5)
        recession = CyclePhaseState(business='Recession')
        assert cached_runner.get_projection('acct-1', sixty_forty, 5, recession)['computed'] is True

        reweighted = [replace(sixty_forty[0], weight=0.8), replace(sixty_forty[1], weight=0.2)]
        payload = cached_runner.get_projection('acct-1', reweighted, 5)
        assert payload['computed'] is True
        assert payload['payload']['portfolio']['metadata']['weights'] == pytest.approx({'VTI': 0.8, 'BND': 0.2})

    def test_refresh_job_does_not_shadow_projection(self, cached_runner, sixty_forty):
        cached_runner.refresh_scenario_cache({'acct-1': sixty_forty}, ['cash-vs-bonds'])
        result = cached_runner.get_projection('acct-1', sixty_forty, 5, scenario_id='cash-vs-bonds')
        assert result['computed'] is True
        assert 'portfolio' in result['payload']
        assert result['payload']['scenario']['scenario_id'] == 'cash-vs-bonds'
        assert cached_runner.cached_scores('cash-vs-bonds')[0].payload['score'] == result['payload']['scenario']['score']

    def test_requires_cache(self, runner, sixty_forty):
        with pytest.raises(InputError):
            runner.get_projection('acct-1', sixty_forty, 5)


class TestRefreshJobs:

    def test_refresh_scenario_cache(self, cached_runner, sixty_forty):
        portfolios = {'balanced': sixty_forty, 'equity': [Position('SPY', 1.0, AssetClass.STOCKS, 0.07)]}
        summary = cached_runner.refresh_scenario_cache(portfolios, ['market-volatility', 'cash-vs-bonds'])

        assert summary.computed == 4
        assert summary.compute_errors == {}
        assert summary.upsert.succeeded == 4
        assert summary.upsert.ok

        rows = cached_runner.cached_scores('market-volatility')
        assert [r.key.subject_id for r in rows] == ['balanced', 'equity']
        balanced = rows[0]
        assert balanced.payload['score'] == 87
        assert balanced.payload['estimated_downside'] <= balanced.payload['estimated_upside']
        assert balanced.metadata['weights'] == pytest.approx({'VTI': 0.6, 'BND': 0.4})

    def test_refresh_is_idempotent(self, cached_runner, sixty_forty):
        cached_runner.refresh_scenario_cache({'balanced': sixty_forty}, ['market-volatility'])
        cached_runner.refresh_scenario_cache({'balanced': sixty_forty}, ['market-volatility'])
        assert cached_runner.cache.stats()['total_entries'] == 1

    def test_refresh_collects_errors(self, cached_runner, sixty_forty):
        summary = cached_runner.refresh_scenario_cache({'balanced': sixty_forty}, ['market-volatility', 'nope'])
        assert summary.computed == 1
        assert 'balanced/nope' in summary.compute_errors
        assert summary.upsert.succeeded == 1

    def test_refresh_volatility_cache(self, config, db_path, fake_source_cls):
        source = fake_source_cls(overrides={'THIN': fake_source_cls(samples=10).fetch('THIN')})
        vol_cache = VolatilityCache(config, db_path=db_path)
        runner = ProjectionRunner(config, price_source=source, volatility_cache=vol_cache)

        batch = runner.refresh_volatility_cache(['SPY', 'TLT', 'THIN'])
        assert set(batch.results) == {'SPY', 'TLT'}
        assert isinstance(batch.errors['THIN'], DataUnavailable)
        assert vol_cache.get('SPY') == pytest.approx(batch.results['SPY'])
        assert vol_cache.get('THIN') is None

    def test_refresh_volatility_requires_cache(self, runner):
        with pytest.raises(InputError):
            runner.refresh_volatility_cache(['SPY'])
