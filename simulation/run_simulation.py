"""
PROJECTION RUNNER - Main Orchestrator
=====================================

Ties the projection pipeline together:
1. Cycle adjustment from the current phase state
2. Per-position simulation (bounded concurrency, partial results)
3. Portfolio aggregation
4. Scenario scoring against a reference
5. Versioned result caching and cache refresh jobs

Usage:
    python -m simulation.run_simulation --horizon 5 --scenario market-volatility --seed 42

Author: Trading Bot Arsenal
Created: January 2026
"""

import os
import sys
import json
import time
import hashlib
import argparse
import logging
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.projection_config import ProjectionConfig, DataPolicy, load_config
from simulation.errors import DataUnavailable, InputError
from simulation.models import AssetClass, CyclePhaseState, Position, SimulationResult
from simulation.cycle_adjustment import CycleAdjustment, CycleAdjustmentCalculator, summarize_adjustment
from simulation.monte_carlo_engine import PositionSimulator, print_projection_report
from simulation.portfolio_aggregator import PortfolioAggregator, normalize_weights
from scenarios.scorer import ScenarioScore, ScenarioScorer
from data_sources.price_history import PriceHistorySource, VolatilityEstimator
from cache.result_cache import CacheEntry, ResultCache, UpsertSummary
from cache.volatility_cache import VolatilityCache

logger = logging.getLogger('ProjectionRunner')

CURRENT_CONDITIONS = 'current'

# Projections and scenario scores share one table but never one key
PROJECTION_NAMESPACE = 'projection'
SCORE_NAMESPACE = 'score'


def projection_cache_id(
    scenario_id: Optional[str],
    positions: Sequence[Position],
    horizon_years: float,
    cycle_state: Optional[CyclePhaseState] = None,
    reference_holdings: Optional[list] = None,
) -> str:
    """Scenario component of a projection key, e.g. 'projection:current:<digest>'."""
    inputs = {
        'horizon_years': float(horizon_years),
        'phases': cycle_state.as_dict() if cycle_state else {},
        'positions': [
            [p.ticker, p.weight, p.asset_class.value, p.year1_return, p.historical_volatility]
            for p in positions
        ],
        'reference': reference_holdings,
    }
    digest = hashlib.md5(json.dumps(inputs, sort_keys=True, default=str).encode()).hexdigest()[:16]
    return f"{PROJECTION_NAMESPACE}:{scenario_id or CURRENT_CONDITIONS}:{digest}"


def score_cache_id(scenario_id: str) -> str:
    return f"{SCORE_NAMESPACE}:{scenario_id}"


# =============================================================================
# RESULT STRUCTURES
# =============================================================================

@dataclass
class BatchResult:
    """Per-unit results and errors, both indexed by unit key"""
    results: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def error_messages(self) -> Dict[str, str]:
        return {key: str(err) for key, err in self.errors.items()}


@dataclass
class PortfolioProjection:
    portfolio: SimulationResult
    positions: Dict[str, SimulationResult]
    cycle_adjustment: CycleAdjustment
    scenario: Optional[ScenarioScore] = None
    dropped: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'portfolio': self.portfolio.to_dict(),
            'positions': {t: r.to_dict() for t, r in self.positions.items()},
            'cycle_adjustment': self.cycle_adjustment.to_dict(),
            'scenario': self.scenario.to_dict() if self.scenario else None,
            'dropped': dict(self.dropped),
        }


@dataclass
class RefreshSummary:
    computed: int = 0
    compute_errors: Dict[str, str] = field(default_factory=dict)
    upsert: UpsertSummary = field(default_factory=UpsertSummary)


# =============================================================================
# RUNNER
# =============================================================================

class ProjectionRunner:
    """
    Main orchestrator for portfolio projections.
    """

    def __init__(
        self,
        config: Optional[ProjectionConfig] = None,
        price_source: Optional[PriceHistorySource] = None,
        cache: Optional[ResultCache] = None,
        volatility_cache: Optional[VolatilityCache] = None,
    ):
        self.config = config or ProjectionConfig()
        self.price_source = price_source
        self.cache = cache
        self.volatility_cache = volatility_cache

        self.volatility_estimator = (
            VolatilityEstimator(price_source, self.config, volatility_cache) if price_source is not None else None
        )
        self.calculator = CycleAdjustmentCalculator(self.config)
        self.position_simulator = PositionSimulator(self.config, self.volatility_estimator)
        self.aggregator = PortfolioAggregator(self.config)
        self.scorer = ScenarioScorer(self.config, price_source)

    # -------------------------------------------------------------------------
    # Randomness
    # -------------------------------------------------------------------------

    def _rngs(self, count: int, stream: int = 0) -> List[np.random.Generator]:
        """
        One independent generator per unit, derived from the configured seed.

        Units get their generator by submission index, so results do not
        depend on completion order. Different streams never overlap.
        """
        root = np.random.SeedSequence(self.config.simulation.random_seed, spawn_key=(stream,))
        return [np.random.default_rng(child) for child in root.spawn(count)]

    # -------------------------------------------------------------------------
    # Bounded-concurrency batches
    # -------------------------------------------------------------------------

    def run_batch(self, units: Dict[str, Callable[[], Any]]) -> BatchResult:
        """
        Run independent units with at most ``max_concurrency`` in flight.

        A failing or timed-out unit is recorded in ``errors``; the others
        still complete. Each unit gets ``unit_timeout_seconds`` from the moment
        it starts running. A unit that overruns is a ``TimeoutError`` even if
        it finishes later. A unit still queued once the whole batch budget
        (``unit_timeout_seconds`` per unit) is spent is a ``TimeoutError`` too.
        """
        batch = BatchResult()
        if not units:
            return batch

        max_workers = max(1, min(self.config.batch.max_concurrency, len(units)))
        limit = self.config.batch.unit_timeout_seconds
        started: Dict[str, float] = {}
        finished: Dict[str, float] = {}

        def timed(key, fn):
            started[key] = time.monotonic()
            try:
                return fn()
            finally:
                finished[key] = time.monotonic()

        def timed_out(key, reason):
            batch.errors[key] = TimeoutError(f"{key} {reason}")
            logger.warning(f"{key}: timed out")

        executor = ThreadPoolExecutor(max_workers=max_workers)
        try:
            submitted_at = time.monotonic()
            queue_deadline = submitted_at + limit * len(units)
            futures = {executor.submit(timed, key, fn): key for key, fn in units.items()}
            pending = set(futures)

            while pending:
                timeout = self._next_wait(pending, futures, started, limit, queue_deadline)
                done, _ = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
                for future in done:
                    pending.discard(future)
                    key = futures[future]
                    if finished.get(key, 0.0) - started.get(key, 0.0) > limit:
                        timed_out(key, f"ran past its {limit:g}s limit")
                        continue
                    try:
                        batch.results[key] = future.result()
                    except Exception as e:
                        batch.errors[key] = e
                        logger.warning(f"{key}: {type(e).__name__}: {e}")

                now = time.monotonic()
                for future in list(pending):
                    if future.done():
                        continue
                    key = futures[future]
                    if key in started and now - started[key] > limit:
                        pending.discard(future)
                        timed_out(key, f"did not finish within {limit:g}s")
                    elif key not in started and now > queue_deadline:
                        future.cancel()
                        pending.discard(future)
                        timed_out(key, "never started before the batch budget ran out")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        # Index by key in submission order
        batch.results = {k: batch.results[k] for k in units if k in batch.results}
        batch.errors = {k: batch.errors[k] for k in units if k in batch.errors}
        return batch

    @staticmethod
    def _next_wait(pending, futures, started, limit, queue_deadline) -> float:
        """Seconds until the earliest running unit (or the queue) hits its deadline."""
        deadlines = [queue_deadline, time.monotonic() + limit]
        for future in pending:
            key = futures[future]
            if key in started:
                deadlines.append(started[key] + limit)
        return max(0.001, min(deadlines) - time.monotonic())

    def simulate_positions(
        self,
        positions: Sequence[Position],
        horizon_years: float,
        cycle_adjustment: Optional[CycleAdjustment] = None,
    ) -> BatchResult:
        """Simulate every position independently; results keyed by ticker."""
        rngs = self._rngs(len(positions))
        units = {}
        for position, rng in zip(positions, rngs):
            def unit(p=position, r=rng):
                return self.position_simulator.simulate(
                    ticker=p.ticker,
                    current_price=p.current_price,
                    year1_return=p.year1_return,
                    horizon_years=horizon_years,
                    asset_class=p.asset_class,
                    cycle_adjustment=cycle_adjustment,
                    historical_volatility=p.historical_volatility,
                    rng=r,
                )
            units[position.ticker] = unit

        logger.info(f"Simulating {len(units)} positions (max {self.config.batch.max_concurrency} concurrent)")
        batch = self.run_batch(units)
        logger.info(f"Position batch complete: {batch.succeeded} succeeded, {batch.failed} failed")
        return batch

    # -------------------------------------------------------------------------
    # Portfolio pipeline
    # -------------------------------------------------------------------------

    def project_portfolio(
        self,
        positions: List[Position],
        horizon_years: float,
        cycle_state: Optional[CyclePhaseState] = None,
        scenario_id: Optional[str] = None,
        reference_holdings: Optional[list] = None,
        policy: Optional[DataPolicy] = None,
    ) -> PortfolioProjection:
        """
        Full projection: cycle adjustment, positions, portfolio, scenario score.

        Raises:
            InputError: malformed portfolio, bad horizon or unknown scenario
            DataUnavailable: a position lacks data under ALL_OR_NOTHING
            InvariantViolation: inverted distribution
        """
        policy = policy or self.config.data.insufficient_data_policy
        positions = normalize_weights(positions, self.config.portfolio.weight_tolerance)
        if scenario_id is not None:
            self.scorer.resolve_scenario(scenario_id)

        adjustment = self.calculator.calculate(cycle_state)
        if cycle_state is not None and not cycle_state.is_empty:
            logger.info(summarize_adjustment(adjustment).summary)

        batch = self.simulate_positions(positions, horizon_years, adjustment)

        dropped: Dict[str, str] = {}
        for ticker, error in batch.errors.items():
            if not isinstance(error, DataUnavailable):
                raise error
            if policy == DataPolicy.ALL_OR_NOTHING:
                raise error
            dropped[ticker] = error.reason

        kept = [p for p in positions if p.ticker not in dropped]
        if dropped:
            logger.warning(f"Dropping {len(dropped)} positions without data: {', '.join(dropped)}")
            if not kept:
                raise DataUnavailable(','.join(dropped), "no position has enough data")
            kept = normalize_weights(kept, tolerance=float('inf'))

        portfolio = self.aggregator.simulate_portfolio(
            kept, horizon_years, adjustment, rng=self._rngs(1, stream=1)[0], label="portfolio"
        )

        scenario = None
        if scenario_id is not None:
            scenario = self.scorer.score(scenario_id, kept, reference_holdings)

        return PortfolioProjection(
            portfolio=portfolio,
            positions=batch.results,
            cycle_adjustment=adjustment,
            scenario=scenario,
            dropped=dropped,
        )

    def get_projection(
        self,
        subject_id: str,
        positions: List[Position],
        horizon_years: float,
        cycle_state: Optional[CyclePhaseState] = None,
        scenario_id: Optional[str] = None,
        reference_holdings: Optional[list] = None,
    ) -> Dict[str, Any]:
        """
        Cached projection for a subject. At most one computation per key runs
        at a time; later callers read the stored payload.

        The key carries a digest of the horizon, the cycle phases and the
        positions, so a different request never reads another one's result.

        Returns:
            Dict with 'payload', 'computed' and 'computed_at'
        """
        if self.cache is None:
            raise InputError("No result cache configured")

        key = self.cache.key(
            subject_id,
            projection_cache_id(scenario_id, positions, horizon_years, cycle_state, reference_holdings),
        )
        metadata = {
            'scenario_id': scenario_id or CURRENT_CONDITIONS,
            'horizon_years': horizon_years,
            'weights': {p.ticker: p.weight for p in positions},
            'phases': cycle_state.as_dict() if cycle_state else {},
        }

        entry, computed = self.cache.get_or_compute(
            key,
            lambda: self.project_portfolio(
                positions, horizon_years, cycle_state, scenario_id, reference_holdings
            ).to_dict(),
            metadata=metadata,
        )
        logger.info(f"Projection {key}: {'computed' if computed else 'cache hit'}")
        return {'payload': entry.payload, 'computed': computed, 'computed_at': entry.computed_at}

    # -------------------------------------------------------------------------
    # Refresh jobs
    # -------------------------------------------------------------------------

    def refresh_scenario_cache(
        self,
        portfolios: Dict[str, List[Position]],
        scenario_ids: Optional[List[str]] = None,
        horizon_years: float = 1.0,
    ) -> RefreshSummary:
        """
        Score every portfolio against every scenario and bulk-upsert the results.

        Each row carries the score, the Monte Carlo upside/downside for the
        portfolio, and a weights snapshot. Failures are collected per key.
        """
        if self.cache is None:
            raise InputError("No result cache configured")

        from scenarios.analogs import SCENARIOS
        scenario_ids = list(scenario_ids or SCENARIOS.keys())

        units = {}
        for subject_id, positions in portfolios.items():
            for scenario_id in scenario_ids:
                def unit(s=subject_id, p=positions, sc=scenario_id):
                    return self._scenario_entry(s, p, sc, horizon_years)
                units[f"{subject_id}/{scenario_id}"] = unit

        started = datetime.now(timezone.utc)
        logger.info(f"Refreshing {len(units)} scenario cache entries")
        batch = self.run_batch(units)

        summary = RefreshSummary(computed=batch.succeeded, compute_errors=batch.error_messages())
        summary.upsert = self.cache.upsert_batch(batch.results.values())

        elapsed = (datetime.now(timezone.utc) - started).total_seconds()
        logger.info(
            f"Scenario refresh done in {elapsed:.1f}s: {summary.computed} computed, "
            f"{len(summary.compute_errors)} errors, {summary.upsert.succeeded} stored, {summary.upsert.failed} failed"
        )
        return summary

    def _scenario_entry(self, subject_id: str, positions: List[Position], scenario_id: str,
                        horizon_years: float) -> CacheEntry:
        score = self.scorer.score(scenario_id, positions)
        projection = self.aggregator.simulate_portfolio(positions, horizon_years, rng=self._rngs(1, stream=2)[0])

        payload = score.to_dict()
        payload['estimated_upside'] = projection.upside
        payload['estimated_downside'] = projection.downside
        payload['estimated_median'] = projection.median

        return CacheEntry(
            key=self.cache.key(subject_id, score_cache_id(scenario_id)),
            payload=payload,
            metadata={
                'weights': projection.metadata.get('weights', {}),
                'horizon_years': horizon_years,
            },
        )

    def cached_scores(self, scenario_id: str) -> List[CacheEntry]:
        """Stored scenario scores for every subject, as written by the refresh job."""
        if self.cache is None:
            raise InputError("No result cache configured")
        return self.cache.get_scenario(score_cache_id(scenario_id))

    def refresh_volatility_cache(self, tickers: List[str]) -> BatchResult:
        """Re-estimate volatility for each ticker and store the results in one write."""
        if self.volatility_estimator is None or self.volatility_cache is None:
            raise InputError("Volatility refresh needs a price source and a volatility cache")

        lookback = self.config.data.volatility_lookback
        units = {
            ticker: (lambda t=ticker: self.volatility_estimator.estimate(t, self.price_source.fetch(t, lookback)))
            for ticker in tickers
        }
        batch = self.run_batch(units)
        if batch.results:
            self.volatility_cache.set_many(batch.results)
        logger.info(f"Volatility refresh: {batch.succeeded} updated, {batch.failed} failed")
        return batch


# =============================================================================
# MAIN
# =============================================================================

def sample_portfolio() -> List[Position]:
    """60/40-style demo portfolio with fixed volatilities (no network needed)."""
    return [
        Position('VTI', 0.45, AssetClass.STOCKS, year1_return=0.07, historical_volatility=0.17, current_price=280.0),
        Position('VXUS', 0.15, AssetClass.STOCKS, year1_return=0.06, historical_volatility=0.16, current_price=62.0),
        Position('BND', 0.30, AssetClass.BONDS, year1_return=0.04, historical_volatility=0.06, current_price=72.0),
        Position('GLD', 0.10, AssetClass.ALTERNATIVES, year1_return=0.03, historical_volatility=0.14, current_price=240.0),
    ]


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Run a cycle-aware portfolio projection')

    parser.add_argument('--horizon', type=float, default=5.0, help='Horizon in years')
    parser.add_argument('--trials', type=int, default=None, help='Monte Carlo trials')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--scenario', type=str, default=None, help='Scenario id to score against')
    parser.add_argument('--business', type=str, default=None, help='Business cycle phase')
    parser.add_argument('--economic', type=str, default=None, help='Long-term debt cycle phase')
    parser.add_argument('--technology', type=str, default=None, help='Technology cycle phase')
    parser.add_argument('--country', type=str, default=None, help='Country cycle phase')
    parser.add_argument('--market', type=str, default=None, help='Market cycle phase')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = load_config()
    if args.trials:
        config.simulation.num_trials = args.trials
    if args.seed is not None:
        config.simulation.random_seed = args.seed

    state = CyclePhaseState(
        business=args.business, economic=args.economic, technology=args.technology,
        country=args.country, market=args.market,
    )

    runner = ProjectionRunner(config)
    projection = runner.project_portfolio(sample_portfolio(), args.horizon, state, args.scenario)

    for result in projection.positions.values():
        print_projection_report(result)
    print_projection_report(projection.portfolio)

    if projection.scenario:
        s = projection.scenario
        print(f"\nScenario {s.scenario_name} ({s.analog_name}, {s.analog_period})")
        print(f"   Score: {s.score}/100 ({s.label})")
        print(f"   Portfolio: {s.portfolio_return:+.1%} vs S&P 500 {s.reference_return:+.1%}")


if __name__ == "__main__":
    main()
