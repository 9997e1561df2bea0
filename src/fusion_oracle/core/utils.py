import math
from typing import Mapping


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def safe_div(num: float, denom: float, default: float = 0.0) -> float:
    if denom == 0:
        return default
    return num / denom


def round_half_up(value: float) -> int:
    """Round halves upward (20.5 -> 21), unlike the builtin banker's rounding."""
    return int(math.floor(value + 0.5))


def normalize(weights: Mapping[str, float]) -> dict[str, float]:
    """Scale non-negative weights to sum to 1. Empty dict when the total is 0."""
    total = sum(max(0.0, w) for w in weights.values())
    if total <= 0:
        return {}
    return {name: max(0.0, w) / total for name, w in weights.items()}
