"""Adaptive multi-signal fusion engine."""

from fusion_oracle.app import FusionOracle
from fusion_oracle.core.config import Config, load_config
from fusion_oracle.core.types import Action, Decision, Opinion, RegimeSnapshot, RiskLevel, ValidatedOutcome

__version__ = "0.1.0"

__all__ = [
    "Action",
    "Config",
    "Decision",
    "FusionOracle",
    "Opinion",
    "RegimeSnapshot",
    "RiskLevel",
    "ValidatedOutcome",
    "load_config",
]
