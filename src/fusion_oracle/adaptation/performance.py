"""Performance reporting over validated outcomes."""

from collections import deque
from typing import Any, Deque, Optional

from fusion_oracle.core.types import Action, ValidatedOutcome, utc_now

# Accuracy reported for an action with no validated outcomes yet.
_NEUTRAL_ACCURACY = 50.0


class PerformanceTracker:
    """Rolling accuracy statistics.

    Tracks:
        - Mean accuracy over all retained outcomes
        - Mean accuracy per decided action
        - Recent-window accuracy and its trend
    """

    def __init__(self, capacity: int = 500, recent_window: int = 20):
        """
        Args:
            capacity: outcomes retained, oldest dropped first
            recent_window: outcomes used for the recent accuracy and trend
        """
        self._outcomes: Deque[ValidatedOutcome] = deque(maxlen=capacity)
        self._recent_window = recent_window
        self.total_validated = 0

    def record(self, outcome: ValidatedOutcome) -> None:
        self._outcomes.append(outcome)
        self.total_validated += 1

    def __len__(self) -> int:
        return len(self._outcomes)

    @staticmethod
    def _mean_accuracy(outcomes: list[ValidatedOutcome]) -> Optional[float]:
        if not outcomes:
            return None
        return sum(o.accuracy_score for o in outcomes) / len(outcomes)

    def overall_accuracy(self) -> float:
        value = self._mean_accuracy(list(self._outcomes))
        return _NEUTRAL_ACCURACY if value is None else value

    def accuracy_by_action(self) -> dict[str, float]:
        result = {}
        for action in Action:
            value = self._mean_accuracy([o for o in self._outcomes if o.action is action])
            result[action.value] = _NEUTRAL_ACCURACY if value is None else value
        return result

    def recent(self) -> dict[str, Any]:
        """Recent accuracy, with a trend comparing the older and newer halves."""
        window = list(self._outcomes)[-self._recent_window:]
        if not window:
            return {"accuracy": _NEUTRAL_ACCURACY, "count": 0, "trend": "INSUFFICIENT_DATA"}

        half = len(window) // 2
        first, second = window[:half], window[half:]
        trend = "STABLE"
        if first and second:
            first_acc = self._mean_accuracy(first)
            second_acc = self._mean_accuracy(second)
            if second_acc > first_acc + 5:
                trend = "IMPROVING"
            elif second_acc < first_acc - 5:
                trend = "DECLINING"
        return {"accuracy": self._mean_accuracy(window), "count": len(window), "trend": trend}

    def stats(self) -> dict[str, Any]:
        recent = self.recent()
        return {
            "total_predictions": self.total_validated,
            "overall_accuracy": round(self.overall_accuracy(), 2),
            "by_action": {k: round(v, 2) for k, v in self.accuracy_by_action().items()},
            "recent_accuracy": round(recent["accuracy"], 2),
            "recent_trend": recent["trend"],
        }

    def export(self) -> dict[str, Any]:
        return {
            "predictions": [o.to_dict() for o in self._outcomes],
            "stats": self.stats(),
            "timestamp": utc_now().isoformat(),
        }
