"""Core data types for the fusion engine."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Optional, Protocol, Union, runtime_checkable

from fusion_oracle.core.errors import InvalidTransition


class Action(str, Enum):
    """Trading action voted by an analyzer or decided by the engine."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

    @property
    def unit_score(self) -> int:
        """Signed vote: BUY=+1, SELL=-1, HOLD=0."""
        if self is Action.BUY:
            return 1
        if self is Action.SELL:
            return -1
        return 0


class RiskLevel(str, Enum):
    """Risk level reported by the risk analyzer."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """Map an overall risk score in [0, 1] onto a level."""
        if score < 0.3:
            return cls.LOW
        if score < 0.6:
            return cls.MEDIUM
        return cls.HIGH


class PredictionState(str, Enum):
    """Lifecycle of a pending prediction."""
    CREATED = "CREATED"
    RESOLVING = "RESOLVING"
    VALIDATED = "VALIDATED"
    INDETERMINATE = "INDETERMINATE"
    EVICTED = "EVICTED"


_ALLOWED_TRANSITIONS: dict[PredictionState, frozenset[PredictionState]] = {
    PredictionState.CREATED: frozenset({PredictionState.RESOLVING, PredictionState.EVICTED}),
    PredictionState.RESOLVING: frozenset(
        {PredictionState.VALIDATED, PredictionState.INDETERMINATE, PredictionState.EVICTED}
    ),
    PredictionState.VALIDATED: frozenset(),
    PredictionState.INDETERMINATE: frozenset(),
    PredictionState.EVICTED: frozenset(),
}


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Opinion:
    """Normalized output of one analyzer for one cycle."""
    source: str
    action: Action
    confidence: int
    timestamp: datetime = field(default_factory=utc_now)
    risk_level: Optional[RiskLevel] = None  # only read for the risk source

    def __post_init__(self) -> None:
        if not isinstance(self.action, Action):
            object.__setattr__(self, "action", Action(self.action))
        if self.risk_level is not None and not isinstance(self.risk_level, RiskLevel):
            object.__setattr__(self, "risk_level", RiskLevel(self.risk_level))
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Opinion confidence out of range: {self.confidence}")


@dataclass(frozen=True)
class RegimeSnapshot:
    """Current market conditions used to bias fusion weights."""
    intraday_volatility_pct: float
    volume_ratio: float
    hour_of_day: int
    momentum: float = 0.0

    @classmethod
    def neutral(cls, hour_of_day: int) -> "RegimeSnapshot":
        """Regime with no volatility or volume adjustments."""
        return cls(intraday_volatility_pct=0.0, volume_ratio=1.0, hour_of_day=hour_of_day)


@dataclass(frozen=True)
class PriceQuote:
    """Spot price observation."""
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class SourceWeight:
    """Configured or adapted weight of one opinion source."""
    source: str
    weight: float


@dataclass(frozen=True)
class SourceContribution:
    """How one source contributed to a decision."""
    source: str
    action: Action
    confidence: int
    base_weight: float
    effective_weight: float
    normalized_weight: float
    contribution: float  # normalized_weight * unit score


@dataclass(frozen=True)
class PatternFeatures:
    """Feature vector used for historical pattern lookup."""
    volatility: float
    momentum: float
    volume_ratio: float
    hour_of_day: int

    @classmethod
    def from_regime(cls, regime: RegimeSnapshot) -> "PatternFeatures":
        return cls(
            volatility=regime.intraday_volatility_pct,
            momentum=regime.momentum,
            volume_ratio=regime.volume_ratio,
            hour_of_day=regime.hour_of_day,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "volatility": self.volatility,
            "momentum": self.momentum,
            "volume_ratio": self.volume_ratio,
            "hour_of_day": self.hour_of_day,
        }


INSUFFICIENT_DATA = "insufficient-data"


@dataclass(frozen=True)
class PatternMatch:
    """Result of a historical pattern lookup."""
    similar_count: int
    accuracy: int
    dominant_pattern: str  # BUY / SELL / HOLD or "insufficient-data"
    confidence_multiplier: float
    avg_outcome: float = 0.0
    confidence_label: str = "MEDIUM"
    risk_adjustment: float = 1.0

    @property
    def has_data(self) -> bool:
        return self.similar_count > 0 and self.dominant_pattern != INSUFFICIENT_DATA


@dataclass(frozen=True)
class PriceProjection:
    """Expected price range over the validation horizon."""
    current_price: float
    target_price: float
    expected_move: float
    support_level: float
    resistance_level: float
    confidence: int


@dataclass(frozen=True)
class Decision:
    """Fused output of one cycle."""
    action: Action
    confidence: int
    contribution_breakdown: dict[str, SourceContribution]
    risk_derate: float
    weighted_score: float = 0.0
    raw_confidence: float = 0.0
    degraded: bool = False
    missing_sources: tuple[str, ...] = ()
    regime_tags: tuple[str, ...] = ()
    pattern: Optional[PatternMatch] = None
    reasoning: str = ""
    created_at: datetime = field(default_factory=utc_now)
    projection: Optional[PriceProjection] = None
    recommendations: tuple[str, ...] = ()

    def contributions(self) -> dict[str, float]:
        """Signed contribution per source."""
        return {name: item.contribution for name, item in self.contribution_breakdown.items()}

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for logging and reporting."""
        return {
            "action": self.action.value,
            "confidence": self.confidence,
            "risk_derate": self.risk_derate,
            "weighted_score": round(self.weighted_score, 6),
            "raw_confidence": round(self.raw_confidence, 4),
            "degraded": self.degraded,
            "missing_sources": list(self.missing_sources),
            "regime_tags": list(self.regime_tags),
            "contributions": {k: round(v, 6) for k, v in self.contributions().items()},
            "pattern": self.pattern.dominant_pattern if self.pattern else None,
            "reasoning": self.reasoning,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PendingPrediction:
    """Non-HOLD decision waiting for its horizon to elapse."""
    id: str
    action: Action
    confidence: int
    reference_price: float
    created_at: datetime
    horizon: timedelta
    feature_snapshot: dict[str, float]
    source_weights_at_creation: dict[str, float]
    contributions: dict[str, float]
    state: PredictionState = PredictionState.CREATED

    @property
    def due_at(self) -> datetime:
        return self.created_at + self.horizon

    def transition(self, new_state: PredictionState) -> None:
        """Move to ``new_state`` or raise InvalidTransition."""
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.id}: {self.state.value} -> {new_state.value}")
        self.state = new_state


@dataclass(frozen=True)
class ValidatedOutcome:
    """Scored result of a pending prediction."""
    prediction_id: str
    action: Action
    confidence: int
    reference_price: float
    actual_price: float
    actual_move: float
    accuracy_score: int
    resolved_at: datetime
    created_at: datetime
    accuracy_raw: float = 0.0
    feature_snapshot: dict[str, float] = field(default_factory=dict)
    source_weights_at_creation: dict[str, float] = field(default_factory=dict)
    contributions: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "prediction_id": self.prediction_id,
            "action": self.action.value,
            "confidence": self.confidence,
            "reference_price": self.reference_price,
            "actual_price": self.actual_price,
            "actual_move": round(self.actual_move, 6),
            "accuracy_score": self.accuracy_score,
            "accuracy_raw": round(self.accuracy_raw, 4),
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat(),
            "features": self.feature_snapshot,
            "weights": self.source_weights_at_creation,
            "contributions": self.contributions,
        }


@dataclass
class CalibrationBucket:
    """Running agreement between stated confidence and realized accuracy."""
    low: int
    high: int
    observed_accuracy_avg: float = 0.0
    observed_confidence_avg: float = 0.0
    sample_count: int = 0

    def contains(self, confidence: float) -> bool:
        return self.low <= confidence <= self.high

    @property
    def label(self) -> str:
        return f"{self.low}-{self.high}"

    @property
    def calibration_gap(self) -> float:
        """|avg confidence - avg accuracy|, 0 when empty."""
        if self.sample_count == 0:
            return 0.0
        return abs(self.observed_confidence_avg - self.observed_accuracy_avg)


@runtime_checkable
class Analyzer(Protocol):
    """External analyzer producing one opinion per cycle."""
    name: str

    def get_opinion(self) -> Union[Opinion, Awaitable[Opinion]]:
        ...


@runtime_checkable
class PriceFeed(Protocol):
    """Spot price source; raises PriceUnavailable on failure."""

    async def get_current_price(self) -> PriceQuote:
        ...


@runtime_checkable
class RegimeProvider(Protocol):
    """Source of the current regime snapshot."""

    async def get_regime_snapshot(self) -> RegimeSnapshot:
        ...
