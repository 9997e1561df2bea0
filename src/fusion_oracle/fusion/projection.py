"""Price projection and advisory notes for a decision."""

from typing import Mapping, Optional, Sequence

from fusion_oracle.core.types import Action, Decision, Opinion, PriceProjection, RiskLevel
from fusion_oracle.core.utils import round_half_up

# Expected % move over the horizon when a source votes BUY/SELL.
DEFAULT_EXPECTED_MOVES: dict[str, float] = {
    "technical": 0.8,
    "sentiment": 0.5,
    "research": 0.6,
}
DEFAULT_BAND_PCT = 0.5


def project_price(
    current_price: float,
    opinions: Sequence[Opinion],
    expected_moves: Optional[Mapping[str, float]] = None,
    band_pct: float = DEFAULT_BAND_PCT,
) -> PriceProjection:
    """Project a target price and support/resistance band.

    Only sources listed in ``expected_moves`` take part. The summed move is
    scaled by their average confidence.
    """
    moves = DEFAULT_EXPECTED_MOVES if expected_moves is None else expected_moves
    movement = 0.0
    confidences = []
    for opinion in opinions:
        if opinion.source not in moves:
            continue
        movement += moves[opinion.source] * opinion.action.unit_score
        confidences.append(opinion.confidence)

    avg_confidence = sum(confidences) / len(confidences) if confidences else 50.0
    adjusted_move = movement * avg_confidence / 100
    target = current_price * (1 + adjusted_move / 100)
    return PriceProjection(
        current_price=round(current_price, 2),
        target_price=round(target, 2),
        expected_move=round(adjusted_move, 2),
        support_level=round(target * (1 - band_pct / 100), 2),
        resistance_level=round(target * (1 + band_pct / 100), 2),
        confidence=round_half_up(avg_confidence),
    )


_RISK_ADVICE = {
    RiskLevel.LOW: "Low risk environment suitable for trading",
    RiskLevel.MEDIUM: "Moderate risk - reduce position size and use tighter stop-losses",
    RiskLevel.HIGH: "High risk environment - focus on capital preservation",
}


def recommendations(decision: Decision, risk: Optional[Opinion] = None) -> list[str]:
    notes = []
    if decision.degraded:
        notes.append("Too few analyzers reported - avoid acting on this cycle")
    elif decision.action is Action.BUY:
        notes.append("Consider long position with proper risk management")
        notes.append(f"Target confidence: {decision.confidence}%")
    elif decision.action is Action.SELL:
        notes.append("Consider short position or exit long positions")
        notes.append(f"Target confidence: {decision.confidence}%")
    else:
        notes.append("Hold current positions or wait for clearer signals")

    if risk is not None and risk.risk_level is not None:
        notes.append(_RISK_ADVICE[risk.risk_level])

    if decision.confidence > 70:
        notes.append("High confidence - standard position size appropriate")
    elif decision.confidence > 50:
        notes.append("Moderate confidence - consider reduced position size")
    else:
        notes.append("Low confidence - minimal position size or avoid trade")
    return notes
