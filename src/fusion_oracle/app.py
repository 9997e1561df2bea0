"""Application object wiring fusion, validation and adaptation together."""

import math
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from fusion_oracle.adaptation import CalibrationTable, EngineState, PerformanceTracker, WeightAdapter
from fusion_oracle.core.clock import SystemClock
from fusion_oracle.core.config import Config, PatternConfig
from fusion_oracle.core.errors import PriceUnavailable
from fusion_oracle.core.log import OutcomeLogger, get_logger
from fusion_oracle.core.types import (
    Action,
    Analyzer,
    CalibrationBucket,
    Decision,
    Opinion,
    PatternFeatures,
    PriceFeed,
    RegimeProvider,
    RegimeSnapshot,
    ValidatedOutcome,
)
from fusion_oracle.ensemble import OpinionGatherer
from fusion_oracle.fusion import FusionEngine
from fusion_oracle.fusion.projection import project_price, recommendations
from fusion_oracle.patterns import HistoricalPatternMatcher
from fusion_oracle.patterns.history import generate_synthetic_history, load_samples
from fusion_oracle.validation import ValidationScheduler
from fusion_oracle.validation.scheduler import OutcomeListener

logger = get_logger(__name__)


def build_matcher(config: PatternConfig) -> HistoricalPatternMatcher:
    """Pattern matcher seeded from a samples file, synthetic history, or nothing."""
    if config.samples_path:
        samples = load_samples(Path(config.samples_path))
        logger.info("Pattern samples loaded", path=config.samples_path, count=len(samples))
    elif config.synthetic_history:
        samples = generate_synthetic_history(days=config.synthetic_days, seed=config.synthetic_seed)
        logger.info("Synthetic pattern history generated", count=len(samples))
    else:
        samples = []
    return HistoricalPatternMatcher(config, samples)


class FusionOracle:
    """Runs fusion cycles and learns from their validated outcomes."""

    def __init__(
        self,
        config: Config,
        price_feed: PriceFeed,
        clock: Optional[Any] = None,
        matcher: Optional[HistoricalPatternMatcher] = None,
    ):
        """
        Args:
            config: full configuration
            price_feed: spot price source for reference and validation prices
            clock: object with ``now()``; wall clock by default
            matcher: pattern matcher; built from ``config.patterns`` when omitted
        """
        self.config = config
        self.price_feed = price_feed
        self.clock = clock or SystemClock()

        self.engine = FusionEngine(config.fusion, config.regime)
        self.matcher = matcher if matcher is not None else build_matcher(config.patterns)
        self.gatherer = OpinionGatherer(config.gathering)

        self.state = EngineState(
            config.sources.default_weights,
            CalibrationTable(config.adaptation.calibration_buckets),
            dedupe_memory=config.adaptation.dedupe_memory,
        )
        self.adapter = WeightAdapter(config.adaptation, self.state)
        self.performance = PerformanceTracker(
            capacity=config.validation.capacity,
            recent_window=config.adaptation.recent_window,
        )
        self.scheduler = ValidationScheduler(
            config.validation,
            price_feed,
            clock=self.clock,
            on_outcome=self._on_outcome,
        )

        self._outcome_logger: Optional[OutcomeLogger] = None
        if config.logging.outcomes_file:
            self._outcome_logger = OutcomeLogger(Path(config.logging.outcomes_file))
            self.scheduler.add_listener(self._outcome_logger)

    def _on_outcome(self, outcome: ValidatedOutcome) -> None:
        self.adapter.on_outcome(outcome)
        self.performance.record(outcome)
        if self.config.patterns.learn_from_outcomes:
            self.matcher.add_outcome(outcome)

    def add_outcome_listener(self, callback: OutcomeListener) -> None:
        self.scheduler.add_listener(callback)

    def remove_outcome_listener(self, callback: OutcomeListener) -> None:
        self.scheduler.remove_listener(callback)

    def _fallback_decision(self, reason: str) -> Decision:
        return Decision(
            action=Action.HOLD,
            confidence=self.config.fusion.degraded_confidence,
            contribution_breakdown={},
            risk_derate=self.config.fusion.missing_risk_derate,
            degraded=True,
            reasoning=reason,
            created_at=self.clock.now(),
        )

    async def run_fusion_cycle(
        self,
        opinions: Sequence[Opinion],
        regime: RegimeSnapshot,
        features: Optional[PatternFeatures] = None,
        expected_sources: Optional[Iterable[str]] = None,
    ) -> Optional[Decision]:
        """
        Fuse one cycle of opinions and schedule the decision for validation.

        Args:
            opinions: opinions gathered this cycle
            regime: current regime snapshot
            features: pattern lookup features; derived from ``regime`` if omitted
            expected_sources: analyzers that were asked this cycle

        Returns:
            Decision, or None when no reference price was available
        """
        try:
            quote = await self.price_feed.get_current_price()
        except PriceUnavailable as exc:
            logger.warning("Cycle skipped: price unavailable", error=str(exc))
            return None
        except Exception as exc:
            logger.warning(
                "Cycle skipped: price feed failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None
        if not math.isfinite(quote.price) or quote.price <= 0:
            logger.warning("Cycle skipped: invalid price", price=quote.price)
            return None

        features = features or PatternFeatures.from_regime(regime)
        weights = self.state.snapshot_weights()

        try:
            pattern = self.matcher.match(features)
            decision = self.engine.fuse(
                opinions,
                regime,
                weights,
                pattern=pattern,
                expected_sources=expected_sources,
                now=self.clock.now(),
            )
            risk = next((op for op in opinions if op.source == self.config.fusion.risk_source), None)
            decision = replace(
                decision,
                projection=project_price(quote.price, opinions),
                recommendations=tuple(recommendations(decision, risk)),
            )
        except Exception:
            logger.exception("Fusion failed, falling back to HOLD")
            decision = self._fallback_decision("Degraded: fusion error")

        logger.info(
            "Decision",
            symbol=self.config.symbol,
            action=decision.action.value,
            confidence=decision.confidence,
            degraded=decision.degraded,
            price=quote.price,
        )

        track = decision.action is not Action.HOLD or (
            self.config.validation.track_hold and not decision.degraded
        )
        if track:
            self.scheduler.schedule(decision, quote.price, features.to_dict(), weights)
        return decision

    async def run_cycle(
        self,
        analyzers: Sequence[Analyzer],
        regime_provider: Optional[RegimeProvider] = None,
    ) -> Optional[Decision]:
        """Gather opinions and the regime, then run one fusion cycle."""
        gathered = await self.gatherer.gather(analyzers)

        regime: Optional[RegimeSnapshot] = None
        if regime_provider is not None:
            try:
                regime = await regime_provider.get_regime_snapshot()
            except Exception as exc:
                logger.warning("Regime unavailable, using neutral regime", error=str(exc))
        if regime is None:
            regime = RegimeSnapshot.neutral(self.clock.now().hour)

        return await self.run_fusion_cycle(
            gathered.opinions,
            regime,
            expected_sources=[analyzer.name for analyzer in analyzers],
        )

    def source_weights(self) -> dict[str, float]:
        return self.state.snapshot_weights()

    def calibration(self) -> list[CalibrationBucket]:
        return self.state.calibration_snapshot()

    def performance_stats(self) -> dict[str, Any]:
        stats = self.performance.stats()
        stats["indeterminate"] = self.scheduler.indeterminate_count
        stats["evicted"] = self.scheduler.evicted_count
        stats["pending"] = len(self.scheduler.pending)
        stats["pattern_accuracy"] = self.matcher.accuracy_stats()
        return stats

    def export_performance_data(self) -> dict[str, Any]:
        data = self.performance.export()
        data["stats"] = self.performance_stats()
        data["weights"] = self.source_weights()
        data["calibration"] = self.state.calibration_summary()
        return data

    def start(self) -> None:
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        if self._outcome_logger is not None:
            self._outcome_logger.close()

    async def __aenter__(self) -> "FusionOracle":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
