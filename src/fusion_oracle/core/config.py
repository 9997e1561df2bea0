"""Configuration loading and validation.

Every heuristic constant used by the engine lives here with its default
value. The defaults are policy, not fitted parameters.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from fusion_oracle.core.errors import ConfigError


class FusionConfig(BaseModel):
    """Aggregation and decision rules."""
    action_threshold: float = 0.25
    confidence_min: int = 20
    confidence_max: int = 95
    min_sources: int = 2
    degraded_confidence: int = 20
    risk_source: str = "risk"
    pattern_source: str = "historical"
    risk_derates: dict[str, float] = Field(
        default={"LOW": 1.0, "MEDIUM": 0.7, "HIGH": 0.3}
    )
    missing_risk_derate: float = 0.7

    @field_validator("risk_derates")
    @classmethod
    def _derates_in_range(cls, value: dict[str, float]) -> dict[str, float]:
        for level, derate in value.items():
            if not 0.0 <= derate <= 1.0:
                raise ValueError(f"risk derate for {level} must be within [0, 1]")
        return value


class RegimeConfig(BaseModel):
    """Regime detection thresholds and weight multiplier tables."""
    high_volatility_pct: float = 2.0
    low_volume_ratio: float = 0.5
    low_volume_confidence_scale: float = 0.8
    opening_hours: list[int] = Field(default=[9])
    closing_hours: list[int] = Field(default=[15])
    multipliers: dict[str, dict[str, float]] = Field(
        default={
            "high_volatility": {
                "research": 1.2,
                "historical": 1.3,
                "sentiment": 0.9,
                "microstructure": 0.9,
            },
            "session_edge": {
                "sentiment": 1.2,
                "microstructure": 1.4,
            },
        }
    )


class SourcesConfig(BaseModel):
    """Default weight per opinion source."""
    default_weights: dict[str, float] = Field(
        default={
            "technical": 0.35,
            "sentiment": 0.25,
            "research": 0.25,
            "historical": 0.20,
        }
    )

    @field_validator("default_weights")
    @classmethod
    def _non_negative(cls, value: dict[str, float]) -> dict[str, float]:
        for source, weight in value.items():
            if weight < 0:
                raise ValueError(f"weight for {source} must be non-negative")
        return value


class PatternConfig(BaseModel):
    """Historical pattern matching."""
    volatility_tolerance: float = 0.5
    momentum_tolerance: float = 0.3
    volume_ratio_tolerance: float = 0.3
    hour_tolerance: int = 1
    hold_move_threshold: float = 0.1
    # accuracy floor -> confidence multiplier, checked top-down
    multiplier_tiers: list[tuple[int, float]] = Field(
        default=[(80, 1.2), (60, 1.0), (40, 0.8)]
    )
    multiplier_floor: float = 0.6
    max_samples: int = 1000
    learn_from_outcomes: bool = True
    synthetic_history: bool = True
    synthetic_days: int = 30
    synthetic_seed: int = 1337
    samples_path: Optional[str] = None


class ValidationConfig(BaseModel):
    """Delayed validation of decisions."""
    timeframe: str = "15m"
    horizon_seconds: Optional[float] = None
    capacity: int = 500
    retry_backoff_seconds: float = 2.0
    track_hold: bool = False

    @field_validator("capacity")
    @classmethod
    def _positive_capacity(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("capacity must be positive")
        return value


class AdaptationConfig(BaseModel):
    """Online weight adaptation and calibration."""
    excellent_threshold: float = 80.0
    poor_threshold: float = 45.0
    step: float = 0.02
    min_weight: float = 0.2
    max_weight: float = 0.8
    calibration_buckets: list[tuple[int, int]] = Field(
        default=[(80, 100), (60, 79), (40, 59), (20, 39)]
    )
    recent_window: int = 20
    dedupe_memory: int = 5000


class GatheringConfig(BaseModel):
    """Concurrent opinion collection."""
    timeout_seconds: float = 10.0


class LoggingConfig(BaseModel):
    """Logging output."""
    level: str = "INFO"
    structured: bool = True
    log_file: Optional[str] = None
    outcomes_file: Optional[str] = None


_SECTIONS: dict[str, type[BaseModel]] = {
    "fusion": FusionConfig,
    "regime": RegimeConfig,
    "sources": SourcesConfig,
    "patterns": PatternConfig,
    "validation": ValidationConfig,
    "adaptation": AdaptationConfig,
    "gathering": GatheringConfig,
    "logging": LoggingConfig,
}


@dataclass
class Config:
    """Top-level configuration."""
    symbol: str = "NIFTY50"

    fusion: FusionConfig = field(default_factory=FusionConfig)
    regime: RegimeConfig = field(default_factory=RegimeConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    adaptation: AdaptationConfig = field(default_factory=AdaptationConfig)
    gathering: GatheringConfig = field(default_factory=GatheringConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Config":
        data = data or {}
        config = cls(symbol=data.get("symbol", "NIFTY50"))
        try:
            for name, model in _SECTIONS.items():
                if name in data and data[name] is not None:
                    setattr(config, name, model(**data[name]))
        except (ValidationError, TypeError) as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot read config {path}: {exc}") from exc
        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "Config":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"symbol": self.symbol}
        for name in _SECTIONS:
            result[name] = getattr(self, name).model_dump(mode="json")
        return result


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from a file, or defaults when it does not exist."""
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if config_path.exists():
        return Config.from_yaml(config_path)
    return Config.default()
