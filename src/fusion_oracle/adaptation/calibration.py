"""Confidence calibration buckets."""

from dataclasses import replace
from typing import Iterable, Optional

from fusion_oracle.core.types import CalibrationBucket
from fusion_oracle.core.utils import safe_div


class CalibrationTable:
    """Running averages of stated confidence vs realized accuracy per bucket.

    Buckets are inclusive on both ends and checked in order; a confidence
    outside every bucket is not recorded.
    """

    def __init__(self, edges: Iterable[tuple[int, int]]):
        self._buckets = [CalibrationBucket(low=int(low), high=int(high)) for low, high in edges]
        if not self._buckets:
            raise ValueError("calibration needs at least one bucket")

    def bucket_for(self, confidence: float) -> Optional[CalibrationBucket]:
        for bucket in self._buckets:
            if bucket.contains(confidence):
                return bucket
        return None

    def record(self, confidence: float, accuracy: float) -> Optional[CalibrationBucket]:
        """Fold one outcome into its bucket. Returns a copy of the updated bucket."""
        bucket = self.bucket_for(confidence)
        if bucket is None:
            return None
        bucket.sample_count += 1
        n = bucket.sample_count
        bucket.observed_accuracy_avg += (accuracy - bucket.observed_accuracy_avg) / n
        bucket.observed_confidence_avg += (confidence - bucket.observed_confidence_avg) / n
        return replace(bucket)

    def buckets(self) -> list[CalibrationBucket]:
        return [replace(bucket) for bucket in self._buckets]

    @property
    def total_samples(self) -> int:
        return sum(bucket.sample_count for bucket in self._buckets)

    def expected_calibration_error(self) -> float:
        """Sample-weighted mean of the per-bucket gaps."""
        weighted = sum(b.calibration_gap * b.sample_count for b in self._buckets)
        return safe_div(weighted, self.total_samples)

    def summary(self) -> list[dict[str, object]]:
        return [
            {
                "range": bucket.label,
                "count": bucket.sample_count,
                "avg_confidence": round(bucket.observed_confidence_avg, 2),
                "avg_accuracy": round(bucket.observed_accuracy_avg, 2),
                "calibration": round(bucket.calibration_gap, 2),
            }
            for bucket in self._buckets
        ]
