"""Regime-aware weight adjustments."""

from dataclasses import dataclass, field

from fusion_oracle.core.config import RegimeConfig
from fusion_oracle.core.types import RegimeSnapshot

HIGH_VOLATILITY = "high_volatility"
SESSION_EDGE = "session_edge"
LOW_VOLUME = "low_volume"


@dataclass(frozen=True)
class RegimeAdjustment:
    """Multipliers resolved for one regime snapshot."""
    tags: tuple[str, ...] = ()
    multipliers: dict[str, float] = field(default_factory=dict)
    confidence_scale: float = 1.0

    def multiplier_for(self, source: str) -> float:
        return self.multipliers.get(source, 1.0)


class RegimeAdjuster:
    """Resolves table-driven regime multipliers.

    Conditions:
        - high_volatility: intraday range above ``high_volatility_pct`` of price,
          favours slower structural sources.
        - session_edge: opening or closing hour, favours sentiment and
          microstructure sources.
        - low_volume: volume ratio below ``low_volume_ratio``; scales the final
          confidence instead of the weights.

    Several conditions may hold at once; their multipliers compound.
    """

    def __init__(self, config: RegimeConfig):
        self.config = config

    def detect(self, regime: RegimeSnapshot) -> tuple[str, ...]:
        """Active regime conditions, in a fixed order."""
        tags = []
        if regime.intraday_volatility_pct > self.config.high_volatility_pct:
            tags.append(HIGH_VOLATILITY)
        hour = regime.hour_of_day
        if hour in self.config.opening_hours or hour in self.config.closing_hours:
            tags.append(SESSION_EDGE)
        if regime.volume_ratio < self.config.low_volume_ratio:
            tags.append(LOW_VOLUME)
        return tuple(tags)

    def adjust(self, regime: RegimeSnapshot) -> RegimeAdjustment:
        tags = self.detect(regime)
        multipliers: dict[str, float] = {}
        for tag in tags:
            for source, factor in self.config.multipliers.get(tag, {}).items():
                multipliers[source] = multipliers.get(source, 1.0) * factor

        scale = self.config.low_volume_confidence_scale if LOW_VOLUME in tags else 1.0
        return RegimeAdjustment(tags=tags, multipliers=multipliers, confidence_scale=scale)

    @staticmethod
    def describe(tags: tuple[str, ...]) -> str:
        descriptions = {
            HIGH_VOLATILITY: "High volatility - structural sources favoured",
            SESSION_EDGE: "Session open/close - sentiment and microstructure favoured",
            LOW_VOLUME: "Thin volume - confidence reduced",
        }
        if not tags:
            return "Normal regime"
        return "; ".join(descriptions.get(tag, tag) for tag in tags)
