"""Risk opinion handling: risk scales confidence, it never votes."""

from typing import Optional

from fusion_oracle.core.config import FusionConfig
from fusion_oracle.core.log import get_logger
from fusion_oracle.core.types import Opinion, RiskLevel
from fusion_oracle.core.utils import clamp

logger = get_logger(__name__)

_RISK_NOTES = {
    RiskLevel.LOW: "Risk: LOW - Trade approved",
    RiskLevel.MEDIUM: "Risk: MODERATE - Trade with caution",
    RiskLevel.HIGH: "Risk: HIGH RISK - Trade discouraged",
}


def risk_derate(risk: Optional[Opinion], config: FusionConfig) -> float:
    """Confidence multiplier in [0.3, 1.0] for the current risk opinion."""
    if risk is None:
        return config.missing_risk_derate
    if risk.risk_level is None:
        logger.warning("Risk opinion without risk level", source=risk.source)
        return config.missing_risk_derate
    derate = config.risk_derates.get(risk.risk_level.value, config.missing_risk_derate)
    return clamp(derate, 0.0, 1.0)


def risk_note(risk: Optional[Opinion]) -> str:
    if risk is None or risk.risk_level is None:
        return "Risk: UNKNOWN - default caution applied"
    return _RISK_NOTES[risk.risk_level]
