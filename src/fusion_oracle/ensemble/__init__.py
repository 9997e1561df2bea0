"""Analyzer fan-out."""

from fusion_oracle.ensemble.gatherer import GatherResult, OpinionGatherer

__all__ = ["GatherResult", "OpinionGatherer"]
