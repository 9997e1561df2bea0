"""Opinion fusion: regime multipliers, risk derate, decision."""

from fusion_oracle.fusion.engine import FusionEngine
from fusion_oracle.fusion.regime import RegimeAdjuster, RegimeAdjustment

__all__ = ["FusionEngine", "RegimeAdjuster", "RegimeAdjustment"]
