"""Weighted fusion of analyzer opinions into one decision."""

from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence, Union

from fusion_oracle.core.config import FusionConfig, RegimeConfig
from fusion_oracle.core.log import get_logger
from fusion_oracle.core.types import (
    Action,
    Decision,
    Opinion,
    PatternMatch,
    RegimeSnapshot,
    SourceContribution,
    SourceWeight,
    utc_now,
)
from fusion_oracle.core.utils import clamp, normalize, round_half_up
from fusion_oracle.fusion.regime import RegimeAdjuster
from fusion_oracle.fusion.risk import risk_derate, risk_note
from fusion_oracle.patterns.matcher import pattern_opinion

logger = get_logger(__name__)

# Scores within this distance of the threshold count as ties and resolve to HOLD.
_TIE_EPS = 1e-9

WeightsLike = Union[Mapping[str, float], Sequence[SourceWeight]]


def as_weight_map(weights: WeightsLike) -> dict[str, float]:
    """Accept either a mapping or a list of SourceWeight."""
    if isinstance(weights, Mapping):
        return {str(k): float(v) for k, v in weights.items()}
    return {item.source: float(item.weight) for item in weights}


class FusionEngine:
    """Combines opinions using per-source weights and regime multipliers.

    The risk opinion is a modifier: it scales confidence and never votes on
    the action. The historical pattern match, when it has data, joins as one
    more voting opinion and also scales the final confidence.
    """

    def __init__(self, config: FusionConfig, regime_config: RegimeConfig):
        """
        Args:
            config: decision thresholds, clamp bounds and risk table
            regime_config: regime thresholds and multiplier tables
        """
        self.config = config
        self.regime_adjuster = RegimeAdjuster(regime_config)

    def fuse(
        self,
        opinions: Sequence[Opinion],
        regime: RegimeSnapshot,
        weights: WeightsLike,
        pattern: Optional[PatternMatch] = None,
        expected_sources: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> Decision:
        """
        Fuse opinions into a Decision.

        Args:
            opinions: opinions that arrived this cycle (missing ones simply absent)
            regime: current regime snapshot
            weights: per-source weights, normalized here across contributors only
            pattern: historical pattern match for the current features
            expected_sources: analyzers that were asked; used to report missing ones
            now: decision timestamp

        Returns:
            Decision with confidence clamped to the configured bounds
        """
        created_at = now or utc_now()
        weight_map = as_weight_map(weights)
        risk_source = self.config.risk_source
        pattern_source = self.config.pattern_source

        risk: Optional[Opinion] = None
        voters: list[Opinion] = []
        seen: set[str] = set()
        for opinion in opinions:
            if opinion.source == risk_source:
                risk = opinion
                continue
            if opinion.source in seen:
                logger.warning("Duplicate opinion ignored", source=opinion.source)
                continue
            seen.add(opinion.source)
            if opinion.source not in weight_map:
                logger.warning("Opinion from unweighted source ignored", source=opinion.source)
                continue
            voters.append(opinion)

        if expected_sources is None:
            expected = set(weight_map) - {pattern_source}
        else:
            expected = set(expected_sources) - {risk_source}
        missing = tuple(sorted(expected - seen))

        adjustment = self.regime_adjuster.adjust(regime)
        derate = risk_derate(risk, self.config)
        analyzer_count = sum(1 for op in voters if op.source != pattern_source)

        if analyzer_count < self.config.min_sources:
            logger.warning(
                "Degraded fusion",
                reporting=analyzer_count,
                required=self.config.min_sources,
                missing=list(missing),
            )
            return self._degraded(
                f"Degraded: only {analyzer_count} source(s) reported",
                derate, missing, adjustment.tags, pattern, created_at,
            )

        if (
            pattern is not None
            and pattern.has_data
            and pattern_source in weight_map
            and pattern_source not in seen
        ):
            voters.append(pattern_opinion(pattern, pattern_source, created_at))

        effective = {
            op.source: max(0.0, weight_map[op.source]) * adjustment.multiplier_for(op.source)
            for op in voters
        }
        normalized = normalize(effective)
        if not normalized:
            logger.warning("Degraded fusion: zero total weight", sources=list(effective))
            return self._degraded(
                "Degraded: contributing sources carry no weight",
                derate, missing, adjustment.tags, pattern, created_at,
            )

        breakdown: dict[str, SourceContribution] = {}
        weighted_score = 0.0
        raw_confidence = 0.0
        for op in voters:
            w = normalized[op.source]
            contribution = w * op.action.unit_score
            weighted_score += contribution
            raw_confidence += w * op.confidence
            breakdown[op.source] = SourceContribution(
                source=op.source,
                action=op.action,
                confidence=op.confidence,
                base_weight=weight_map[op.source],
                effective_weight=effective[op.source],
                normalized_weight=w,
                contribution=contribution,
            )

        action = self._decide_action(weighted_score)
        multiplier = pattern.confidence_multiplier if pattern is not None else 1.0
        adjusted = raw_confidence * derate * adjustment.confidence_scale * multiplier
        confidence = int(
            clamp(round_half_up(adjusted), self.config.confidence_min, self.config.confidence_max)
        )

        reasoning = self._reasoning(voters, risk, adjustment.tags)
        decision = Decision(
            action=action,
            confidence=confidence,
            contribution_breakdown=breakdown,
            risk_derate=derate,
            weighted_score=weighted_score,
            raw_confidence=raw_confidence,
            degraded=False,
            missing_sources=missing,
            regime_tags=adjustment.tags,
            pattern=pattern,
            reasoning=reasoning,
            created_at=created_at,
        )
        logger.debug(
            "Fused decision",
            action=action.value,
            confidence=confidence,
            score=round(weighted_score, 4),
            derate=derate,
            tags=list(adjustment.tags),
        )
        return decision

    def _decide_action(self, weighted_score: float) -> Action:
        threshold = self.config.action_threshold
        if weighted_score > threshold + _TIE_EPS:
            return Action.BUY
        if weighted_score < -threshold - _TIE_EPS:
            return Action.SELL
        return Action.HOLD

    def _degraded(
        self,
        reason: str,
        derate: float,
        missing: tuple[str, ...],
        tags: tuple[str, ...],
        pattern: Optional[PatternMatch],
        created_at: datetime,
    ) -> Decision:
        return Decision(
            action=Action.HOLD,
            confidence=self.config.degraded_confidence,
            contribution_breakdown={},
            risk_derate=derate,
            degraded=True,
            missing_sources=missing,
            regime_tags=tags,
            pattern=pattern,
            reasoning=reason,
            created_at=created_at,
        )

    def _reasoning(
        self,
        voters: Sequence[Opinion],
        risk: Optional[Opinion],
        tags: tuple[str, ...],
    ) -> str:
        parts = [f"{op.source}: {op.action.value} ({op.confidence}%)" for op in voters]
        parts.append(risk_note(risk))
        parts.append(f"Regime: {self.regime_adjuster.describe(tags)}")
        return "; ".join(parts)
