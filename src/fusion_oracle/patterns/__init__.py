"""Historical pattern matching."""

from fusion_oracle.patterns.matcher import (
    HistoricalPatternMatcher,
    PatternSample,
    neutral_match,
    pattern_opinion,
)

__all__ = ["HistoricalPatternMatcher", "PatternSample", "neutral_match", "pattern_opinion"]
