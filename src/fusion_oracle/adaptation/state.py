"""Shared engine state: source weights and calibration."""

import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Deque, Iterator, Mapping

from fusion_oracle.adaptation.calibration import CalibrationTable
from fusion_oracle.core.types import CalibrationBucket


@dataclass
class StateView:
    """Mutable view handed out inside ``EngineState.edit``."""
    weights: dict[str, float]
    calibration: CalibrationTable


class EngineState:
    """Single owner of weights and calibration.

    Every read and write takes the same re-entrant lock. Readers get
    copies; writers go through ``edit()``.
    """

    def __init__(
        self,
        weights: Mapping[str, float],
        calibration: CalibrationTable,
        dedupe_memory: int = 5000,
    ):
        self._lock = threading.RLock()
        self._weights = {str(k): float(v) for k, v in weights.items()}
        self._calibration = calibration
        self._seen_order: Deque[str] = deque()
        self._seen: set[str] = set()
        self._dedupe_memory = dedupe_memory

    def snapshot_weights(self) -> dict[str, float]:
        with self._lock:
            return dict(self._weights)

    def weight(self, source: str) -> float:
        with self._lock:
            return self._weights.get(source, 0.0)

    def calibration_snapshot(self) -> list[CalibrationBucket]:
        with self._lock:
            return self._calibration.buckets()

    def calibration_summary(self) -> list[dict[str, object]]:
        with self._lock:
            return self._calibration.summary()

    @contextmanager
    def edit(self) -> Iterator[StateView]:
        """Hold the lock and expose the live weights and calibration."""
        with self._lock:
            yield StateView(weights=self._weights, calibration=self._calibration)

    def mark_seen(self, prediction_id: str) -> bool:
        """Remember ``prediction_id``. Returns False if it was already seen."""
        with self._lock:
            if prediction_id in self._seen:
                return False
            self._seen.add(prediction_id)
            self._seen_order.append(prediction_id)
            while len(self._seen_order) > self._dedupe_memory:
                self._seen.discard(self._seen_order.popleft())
            return True
