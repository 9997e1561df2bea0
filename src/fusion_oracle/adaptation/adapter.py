"""Outcome-driven weight nudging."""

from enum import Enum
from typing import Iterable, Mapping, Optional

from fusion_oracle.adaptation.state import EngineState
from fusion_oracle.core.config import AdaptationConfig
from fusion_oracle.core.log import get_logger
from fusion_oracle.core.types import Action, ValidatedOutcome

logger = get_logger(__name__)

# Contributions closer than this are treated as equal when picking the dominant source.
_CONTRIBUTION_EPS = 1e-12


class OutcomeGrade(str, Enum):
    EXCELLENT = "EXCELLENT"
    MIDDLING = "MIDDLING"
    POOR = "POOR"


def step_up(weight: float, step: float, cap: float) -> float:
    """Raise toward ``cap``. A weight already above the cap is left alone."""
    if weight >= cap:
        return weight
    return min(cap, weight + step)


def step_down(weight: float, step: float, floor: float) -> float:
    """Lower toward ``floor``. A weight already below the floor is left alone."""
    if weight <= floor:
        return weight
    return max(floor, weight - step)


def dominant_sources(contributions: Mapping[str, float], action: Action) -> set[str]:
    """Sources whose vote agreed with ``action`` and whose |contribution| is largest."""
    sign = action.unit_score
    if sign == 0:
        return set()
    agreeing = {
        source: abs(value)
        for source, value in contributions.items()
        if value * sign > 0
    }
    if not agreeing:
        return set()
    top = max(agreeing.values())
    return {source for source, value in agreeing.items() if top - value <= _CONTRIBUTION_EPS}


class WeightAdapter:
    """Applies bounded step updates to source weights after each outcome.

    Excellent outcomes reward the dominant agreeing source(s) and penalize the
    rest of the contributors; poor outcomes do the reverse. Weights are not
    renormalized here, fusion normalizes them per cycle.
    """

    def __init__(self, config: AdaptationConfig, state: EngineState):
        self.config = config
        self.state = state
        self.applied = 0
        self.duplicates = 0

    def grade(self, accuracy: float) -> OutcomeGrade:
        if accuracy >= self.config.excellent_threshold:
            return OutcomeGrade.EXCELLENT
        if accuracy < self.config.poor_threshold:
            return OutcomeGrade.POOR
        return OutcomeGrade.MIDDLING

    def __call__(self, outcome: ValidatedOutcome) -> bool:
        return self.on_outcome(outcome)

    def on_outcome(
        self,
        outcome: ValidatedOutcome,
        snapshot_weights: Optional[Mapping[str, float]] = None,
        contributing_sources: Optional[Iterable[str]] = None,
    ) -> bool:
        """
        Update weights and calibration from one outcome.

        Args:
            outcome: validated outcome
            snapshot_weights: weights at decision time; only sources listed here
                can be nudged (defaults to the outcome's own snapshot)
            contributing_sources: sources that voted (defaults to the keys of
                the outcome's contributions)

        Returns:
            True if any weight changed
        """
        if not self.state.mark_seen(outcome.prediction_id):
            self.duplicates += 1
            logger.debug("Duplicate outcome ignored", prediction_id=outcome.prediction_id)
            return False

        weights_then = dict(
            snapshot_weights if snapshot_weights is not None else outcome.source_weights_at_creation
        )
        contributors = (
            set(contributing_sources) if contributing_sources is not None else set(outcome.contributions)
        )
        contributions = {
            source: value
            for source, value in outcome.contributions.items()
            if source in contributors
        }
        grade = self.grade(outcome.accuracy_score)
        dominant = dominant_sources(contributions, outcome.action) & set(weights_then)
        competing = (contributors & set(weights_then)) - dominant

        changed: dict[str, tuple[float, float]] = {}
        cfg = self.config
        with self.state.edit() as view:
            view.calibration.record(outcome.confidence, outcome.accuracy_score)

            if grade is OutcomeGrade.MIDDLING or not dominant:
                return False

            if grade is OutcomeGrade.EXCELLENT:
                up, down = dominant, competing
            else:
                up, down = competing, dominant

            for source in sorted(up):
                old = view.weights.get(source, weights_then[source])
                new = step_up(old, cfg.step, cfg.max_weight)
                if new != old:
                    view.weights[source] = new
                    changed[source] = (old, new)
            for source in sorted(down):
                old = view.weights.get(source, weights_then[source])
                new = step_down(old, cfg.step, cfg.min_weight)
                if new != old:
                    view.weights[source] = new
                    changed[source] = (old, new)

        if changed:
            self.applied += 1
            logger.info(
                "Weights adapted",
                prediction_id=outcome.prediction_id,
                grade=grade.value,
                changes={k: [round(a, 4), round(b, 4)] for k, (a, b) in changed.items()},
            )
        return bool(changed)
