"""Scoring of a decision against the realized price move."""

import math

from fusion_oracle.core.types import Action
from fusion_oracle.core.utils import clamp, round_half_up


def price_move_pct(reference_price: float, current_price: float) -> float:
    """Relative move in percent."""
    if not math.isfinite(reference_price) or reference_price <= 0:
        raise ValueError("reference price must be finite and positive")
    if not math.isfinite(current_price):
        raise ValueError("current price must be finite")
    return (current_price - reference_price) / reference_price * 100


def direction_matches(action: Action, move: float) -> bool:
    if action is Action.BUY:
        return move > 0
    if action is Action.SELL:
        return move < 0
    return False


def accuracy_score(action: Action, move: float) -> float:
    """
    Score in [0, 100].

    HOLD decays with any movement. A directional call that was right earns at
    least 70 and more for bigger moves; a wrong one earns at most 30 and less
    for bigger moves. A flat market (move == 0) counts as wrong for BUY/SELL.
    """
    if not math.isfinite(move):
        raise ValueError(f"move must be finite, got {move}")
    magnitude = abs(move)
    if action is Action.HOLD:
        score = 100 - magnitude * 10
    elif direction_matches(action, move):
        score = 70 + magnitude * 10
    else:
        score = 30 - magnitude * 5
    return clamp(score, 0.0, 100.0)


def accuracy_score_int(action: Action, move: float) -> int:
    return round_half_up(accuracy_score(action, move))
