"""Delayed validation of decisions."""

from fusion_oracle.validation.buffer import RollingBuffer
from fusion_oracle.validation.scheduler import ValidationScheduler
from fusion_oracle.validation.scoring import accuracy_score, price_move_pct

__all__ = ["RollingBuffer", "ValidationScheduler", "accuracy_score", "price_move_pct"]
