"""Offline simulation: seeded random-walk market and scripted analyzers.

Everything runs on a ManualClock, so a run with the same seed and config
always produces the same decisions, outcomes and final weights.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Union

import numpy as np

from fusion_oracle.app import FusionOracle
from fusion_oracle.core.clock import ManualClock
from fusion_oracle.core.config import Config
from fusion_oracle.core.errors import PriceUnavailable
from fusion_oracle.core.log import OutcomeLogger, get_logger
from fusion_oracle.core.types import (
    Action,
    CalibrationBucket,
    Opinion,
    PriceQuote,
    RegimeSnapshot,
    RiskLevel,
)

logger = get_logger(__name__)

ScriptItem = Union[Opinion, Exception, None]


class RandomWalkPriceFeed:
    """Geometric random walk with optional simulated outages."""

    def __init__(
        self,
        clock: ManualClock,
        start_price: float = 22000.0,
        volatility_pct: float = 0.15,
        seed: int = 0,
        failure_rate: float = 0.0,
        reference_volume: float = 50_000_000,
    ):
        self.clock = clock
        self.price = start_price
        self.volatility_pct = volatility_pct
        self.failure_rate = failure_rate
        self.reference_volume = reference_volume
        self.rng = np.random.default_rng(seed)
        self.history: list[float] = [start_price]
        self.volume = reference_volume

    def step(self) -> float:
        """Advance the walk by one tick and return the new price."""
        change = self.rng.normal(0.0, self.volatility_pct / 100)
        self.price = float(self.price * (1 + change))
        self.volume = float(self.reference_volume * self.rng.uniform(0.3, 1.6))
        self.history.append(self.price)
        return self.price

    async def get_current_price(self) -> PriceQuote:
        if self.failure_rate and self.rng.random() < self.failure_rate:
            raise PriceUnavailable("simulated outage")
        return PriceQuote(price=self.price, timestamp=self.clock.now())

    def momentum(self, lookback: int = 3) -> float:
        """% change over the last ``lookback`` ticks."""
        if len(self.history) <= lookback:
            return 0.0
        past = self.history[-lookback - 1]
        return (self.price - past) / past * 100

    def intraday_range_pct(self, lookback: int = 26) -> float:
        window = self.history[-lookback:]
        return (max(window) - min(window)) / self.price * 100

    async def get_regime_snapshot(self) -> RegimeSnapshot:
        return RegimeSnapshot(
            intraday_volatility_pct=self.intraday_range_pct(),
            volume_ratio=self.volume / self.reference_volume,
            hour_of_day=self.clock.now().hour,
            momentum=self.momentum(),
        )


class ScriptedAnalyzer:
    """Analyzer that replays a script or calls a factory.

    Script items may be Opinions, exceptions (raised) or None (a result of
    the wrong type). An exhausted script raises RuntimeError.
    """

    def __init__(
        self,
        name: str,
        script: Union[Iterable[ScriptItem], Callable[[], ScriptItem]],
        delay: float = 0.0,
    ):
        self.name = name
        self.delay = delay
        self.calls = 0
        if callable(script):
            self._factory: Optional[Callable[[], ScriptItem]] = script
            self._script: Optional[Iterator[ScriptItem]] = None
        else:
            self._factory = None
            self._script = iter(script)

    async def get_opinion(self) -> Opinion:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._factory is not None:
            item = self._factory()
        else:
            try:
                item = next(self._script)
            except StopIteration:
                raise RuntimeError(f"script for {self.name} exhausted") from None
        if isinstance(item, Exception):
            raise item
        return item


def _opinion(source: str, action: Action, confidence: float, now: datetime, **extra) -> Opinion:
    return Opinion(
        source=source,
        action=action,
        confidence=int(np.clip(confidence, 0, 100)),
        timestamp=now,
        **extra,
    )


def simulated_analyzers(feed: RandomWalkPriceFeed, seed: int = 0) -> list[ScriptedAnalyzer]:
    """Technical follows momentum, sentiment is noisy, research leans on the longer trend."""
    rng = np.random.default_rng(seed + 1)

    def technical() -> Opinion:
        m = feed.momentum()
        if m > 0.05:
            action = Action.BUY
        elif m < -0.05:
            action = Action.SELL
        else:
            action = Action.HOLD
        return _opinion("technical", action, 55 + abs(m) * 100 + rng.normal(0, 5), feed.clock.now())

    def sentiment() -> Opinion:
        action = (Action.BUY, Action.SELL, Action.HOLD)[int(rng.integers(0, 3))]
        return _opinion("sentiment", action, rng.uniform(40, 80), feed.clock.now())

    def research() -> Opinion:
        trend = feed.momentum(lookback=12)
        action = Action.BUY if trend > 0 else Action.SELL
        return _opinion("research", action, rng.uniform(50, 75), feed.clock.now())

    def risk() -> Opinion:
        score = min(1.0, feed.intraday_range_pct() / 3 + rng.uniform(0, 0.3))
        return _opinion(
            "risk",
            Action.HOLD,
            100 - score * 100,
            feed.clock.now(),
            risk_level=RiskLevel.from_score(score),
        )

    return [
        ScriptedAnalyzer("technical", technical),
        ScriptedAnalyzer("sentiment", sentiment),
        ScriptedAnalyzer("research", research),
        ScriptedAnalyzer("risk", risk),
    ]


@dataclass
class SimulationReport:
    cycles: int
    skipped: int = 0
    decisions: Counter = field(default_factory=Counter)
    weights: dict[str, float] = field(default_factory=dict)
    calibration: list[CalibrationBucket] = field(default_factory=list)
    performance: dict[str, Any] = field(default_factory=dict)


async def run_simulation(
    config: Config,
    cycles: int = 200,
    seed: int = 7,
    step_minutes: float = 5.0,
    failure_rate: float = 0.0,
    outcomes_path: Optional[Path] = None,
) -> SimulationReport:
    """Run ``cycles`` fusion cycles on a virtual clock and drain validation."""
    clock = ManualClock()
    feed = RandomWalkPriceFeed(clock, seed=seed, failure_rate=failure_rate)
    oracle = FusionOracle(config, feed, clock=clock)
    analyzers = simulated_analyzers(feed, seed=seed)

    outcome_logger = OutcomeLogger(outcomes_path) if outcomes_path else None
    if outcome_logger is not None:
        oracle.add_outcome_listener(outcome_logger)

    report = SimulationReport(cycles=cycles)
    try:
        for _ in range(cycles):
            feed.step()
            decision = await oracle.run_cycle(analyzers, feed)
            if decision is None:
                report.skipped += 1
            else:
                report.decisions[decision.action.value] += 1
            clock.advance(minutes=step_minutes)
            await oracle.scheduler.process_due()

        clock.advance(seconds=oracle.scheduler.horizon.total_seconds())
        await oracle.scheduler.process_due()
    finally:
        if outcome_logger is not None:
            outcome_logger.close()

    report.weights = oracle.source_weights()
    report.calibration = oracle.calibration()
    report.performance = oracle.performance_stats()
    logger.info("Simulation finished", cycles=cycles, seed=seed, decisions=dict(report.decisions))
    return report
