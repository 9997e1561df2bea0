"""Online weight adaptation, calibration and performance tracking."""

from fusion_oracle.adaptation.adapter import OutcomeGrade, WeightAdapter
from fusion_oracle.adaptation.calibration import CalibrationTable
from fusion_oracle.adaptation.performance import PerformanceTracker
from fusion_oracle.adaptation.state import EngineState

__all__ = ["CalibrationTable", "EngineState", "OutcomeGrade", "PerformanceTracker", "WeightAdapter"]
