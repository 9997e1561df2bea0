"""Conditional accuracy lookup over historical (features -> outcome) samples."""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Iterable, Optional

import numpy as np

from fusion_oracle.core.config import PatternConfig
from fusion_oracle.core.log import get_logger
from fusion_oracle.core.types import (
    INSUFFICIENT_DATA,
    Action,
    Opinion,
    PatternFeatures,
    PatternMatch,
    ValidatedOutcome,
    utc_now,
)
from fusion_oracle.core.utils import round_half_up

logger = get_logger(__name__)

_ACTION_CODES = {Action.BUY: 0, Action.SELL: 1, Action.HOLD: 2}
_CODE_ACTIONS = {code: action for action, code in _ACTION_CODES.items()}


@dataclass(frozen=True)
class PatternSample:
    """One historical observation: conditions, the call made, and the realized move (%)."""
    volatility: float
    momentum: float
    volume_ratio: float
    hour_of_day: int
    action: Action
    outcome: float
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "volatility": self.volatility,
            "momentum": self.momentum,
            "volume_ratio": self.volume_ratio,
            "hour_of_day": self.hour_of_day,
            "action": self.action.value,
            "outcome": self.outcome,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


def neutral_match() -> PatternMatch:
    """Defaults when no historical sample resembles the current conditions."""
    return PatternMatch(
        similar_count=0,
        accuracy=50,
        dominant_pattern=INSUFFICIENT_DATA,
        confidence_multiplier=1.0,
        avg_outcome=0.0,
        confidence_label="MEDIUM",
        risk_adjustment=1.0,
    )


def pattern_opinion(match: PatternMatch, source: str, timestamp: Optional[datetime] = None) -> Opinion:
    """Wrap a pattern match as an opinion: dominant pattern votes, accuracy is confidence."""
    if not match.has_data:
        raise ValueError("pattern match without data cannot vote")
    return Opinion(
        source=source,
        action=Action(match.dominant_pattern),
        confidence=int(match.accuracy),
        timestamp=timestamp or utc_now(),
    )


class HistoricalPatternMatcher:
    """Finds past samples within fixed per-feature tolerances.

    Samples are kept in insertion order in a bounded deque; the oldest sample
    is dropped first once ``max_samples`` is reached. Numpy columns are rebuilt
    lazily after the table changes.
    """

    def __init__(self, config: PatternConfig, samples: Optional[Iterable[PatternSample]] = None):
        self.config = config
        self._samples: Deque[PatternSample] = deque(maxlen=config.max_samples)
        self._columns: Optional[dict[str, np.ndarray]] = None
        if samples is not None:
            self.extend(samples)

    def __len__(self) -> int:
        return len(self._samples)

    def extend(self, samples: Iterable[PatternSample]) -> None:
        for sample in samples:
            self._samples.append(sample)
        self._columns = None

    def add_sample(
        self,
        features: PatternFeatures,
        action: Action,
        outcome: float,
        timestamp: Optional[datetime] = None,
    ) -> None:
        self._samples.append(
            PatternSample(
                volatility=features.volatility,
                momentum=features.momentum,
                volume_ratio=features.volume_ratio,
                hour_of_day=int(features.hour_of_day),
                action=action,
                outcome=outcome,
                timestamp=timestamp,
            )
        )
        self._columns = None

    def add_outcome(self, outcome: ValidatedOutcome) -> bool:
        """Learn from a validated outcome. Returns False when it lacks features."""
        snap = outcome.feature_snapshot
        try:
            features = PatternFeatures(
                volatility=float(snap["volatility"]),
                momentum=float(snap["momentum"]),
                volume_ratio=float(snap["volume_ratio"]),
                hour_of_day=int(snap["hour_of_day"]),
            )
        except (KeyError, TypeError, ValueError):
            logger.debug("Outcome without feature snapshot", prediction_id=outcome.prediction_id)
            return False
        self.add_sample(features, outcome.action, outcome.actual_move, outcome.resolved_at)
        return True

    def samples(self) -> list[PatternSample]:
        return list(self._samples)

    def _build_columns(self) -> dict[str, np.ndarray]:
        if self._columns is None:
            samples = self._samples
            self._columns = {
                "volatility": np.fromiter((s.volatility for s in samples), dtype=float, count=len(samples)),
                "momentum": np.fromiter((s.momentum for s in samples), dtype=float, count=len(samples)),
                "volume_ratio": np.fromiter((s.volume_ratio for s in samples), dtype=float, count=len(samples)),
                "hour": np.fromiter((s.hour_of_day for s in samples), dtype=float, count=len(samples)),
                "action": np.fromiter((_ACTION_CODES[s.action] for s in samples), dtype=np.int8, count=len(samples)),
                "outcome": np.fromiter((s.outcome for s in samples), dtype=float, count=len(samples)),
            }
        return self._columns

    def _correct_mask(self, actions: np.ndarray, outcomes: np.ndarray) -> np.ndarray:
        return (
            ((actions == _ACTION_CODES[Action.BUY]) & (outcomes > 0))
            | ((actions == _ACTION_CODES[Action.SELL]) & (outcomes < 0))
            | ((actions == _ACTION_CODES[Action.HOLD]) & (np.abs(outcomes) < self.config.hold_move_threshold))
        )

    def match(self, features: PatternFeatures) -> PatternMatch:
        """Look up samples similar to ``features``."""
        if not self._samples:
            return neutral_match()

        cols = self._build_columns()
        cfg = self.config
        mask = (
            (np.abs(cols["volatility"] - features.volatility) < cfg.volatility_tolerance)
            & (np.abs(cols["momentum"] - features.momentum) < cfg.momentum_tolerance)
            & (np.abs(cols["volume_ratio"] - features.volume_ratio) < cfg.volume_ratio_tolerance)
            & (np.abs(cols["hour"] - features.hour_of_day) <= cfg.hour_tolerance)
        )
        idx = np.flatnonzero(mask)
        if idx.size == 0:
            return neutral_match()

        actions = cols["action"][idx]
        outcomes = cols["outcome"][idx]
        accuracy = round_half_up(float(self._correct_mask(actions, outcomes).mean()) * 100)

        return PatternMatch(
            similar_count=int(idx.size),
            accuracy=accuracy,
            dominant_pattern=self._dominant(actions).value,
            confidence_multiplier=self.multiplier_for(accuracy),
            avg_outcome=float(outcomes.mean()),
            confidence_label=self.confidence_label(accuracy),
            risk_adjustment=self._risk_adjustment(outcomes),
        )

    @staticmethod
    def _dominant(actions: np.ndarray) -> Action:
        """Majority action; on a tie the action seen first wins."""
        counts = np.bincount(actions, minlength=len(_ACTION_CODES))
        tied = np.flatnonzero(counts == counts.max())
        if tied.size == 1:
            return _CODE_ACTIONS[int(tied[0])]
        first_seen = {int(code): int(np.argmax(actions == code)) for code in tied}
        return _CODE_ACTIONS[min(first_seen, key=first_seen.get)]

    def multiplier_for(self, accuracy: float) -> float:
        for floor, multiplier in self.config.multiplier_tiers:
            if accuracy >= floor:
                return multiplier
        return self.config.multiplier_floor

    @staticmethod
    def confidence_label(accuracy: float) -> str:
        if accuracy >= 80:
            return "HIGH"
        if accuracy >= 60:
            return "MEDIUM"
        return "LOW"

    @staticmethod
    def _risk_adjustment(outcomes: np.ndarray) -> float:
        avg_abs = float(np.abs(outcomes).mean())
        if avg_abs > 0.5:
            return 1.3
        if avg_abs > 0.3:
            return 1.1
        return 1.0

    def accuracy_stats(self, recent: int = 100) -> dict[str, object]:
        """Overall vs recent hit rate of the stored samples."""
        if not self._samples:
            return {"overall": 50, "recent": 50, "trend": "STABLE", "samples": 0}

        cols = self._build_columns()
        correct = self._correct_mask(cols["action"], cols["outcome"])
        overall = round_half_up(float(correct.mean()) * 100)
        recent_acc = round_half_up(float(correct[-recent:].mean()) * 100)

        trend = "STABLE"
        if recent_acc > overall + 5:
            trend = "IMPROVING"
        elif recent_acc < overall - 5:
            trend = "DECLINING"
        return {"overall": overall, "recent": recent_acc, "trend": trend, "samples": len(self._samples)}
