"""Tests for historical pattern matching."""

from datetime import datetime, timezone

import pytest

from fusion_oracle.core.config import PatternConfig
from fusion_oracle.core.types import INSUFFICIENT_DATA, Action, PatternFeatures, ValidatedOutcome
from fusion_oracle.patterns import HistoricalPatternMatcher, PatternSample, pattern_opinion
from fusion_oracle.patterns.history import dump_samples, generate_synthetic_history, load_samples

FEATURES = PatternFeatures(volatility=1.0, momentum=0.0, volume_ratio=1.0, hour_of_day=11)


def _sample(action, outcome, volatility=1.0, momentum=0.0, volume_ratio=1.0, hour=11):
    return PatternSample(
        volatility=volatility,
        momentum=momentum,
        volume_ratio=volume_ratio,
        hour_of_day=hour,
        action=Action(action),
        outcome=outcome,
    )


def test_no_samples_gives_neutral_match():
    match = HistoricalPatternMatcher(PatternConfig()).match(FEATURES)

    assert match.similar_count == 0
    assert match.accuracy == 50
    assert match.dominant_pattern == INSUFFICIENT_DATA
    assert match.confidence_multiplier == 1.0
    assert not match.has_data


def test_accuracy_and_dominant_pattern():
    samples = [
        _sample("BUY", 0.3),
        _sample("BUY", 0.2),
        _sample("BUY", -0.1),
        _sample("SELL", -0.4),
        _sample("HOLD", 0.05),
    ]
    match = HistoricalPatternMatcher(PatternConfig(), samples).match(FEATURES)

    assert match.similar_count == 5
    assert match.accuracy == 80
    assert match.dominant_pattern == "BUY"
    assert match.confidence_multiplier == 1.2
    assert match.confidence_label == "HIGH"
    assert match.avg_outcome == pytest.approx(0.01)


def test_tolerances_are_strict_except_hour():
    samples = [
        _sample("BUY", 0.3, volatility=1.5),   # |dv| == 0.5, excluded
        _sample("BUY", 0.3, momentum=0.3),     # |dm| == 0.3, excluded
        _sample("BUY", 0.3, volume_ratio=1.3),  # |dr| == 0.3, excluded
        _sample("SELL", 0.3, hour=12),          # |dh| == 1, included
        _sample("SELL", 0.3, hour=13),          # excluded
    ]
    match = HistoricalPatternMatcher(PatternConfig(), samples).match(FEATURES)

    assert match.similar_count == 1
    assert match.dominant_pattern == "SELL"
    assert match.accuracy == 0
    assert match.confidence_multiplier == 0.6


def test_dominant_tie_goes_to_first_seen():
    samples = [_sample("SELL", -0.2), _sample("BUY", 0.2), _sample("BUY", 0.1), _sample("SELL", -0.1)]
    match = HistoricalPatternMatcher(PatternConfig(), samples).match(FEATURES)

    assert match.dominant_pattern == "SELL"


@pytest.mark.parametrize(
    "accuracy,multiplier",
    [(100, 1.2), (80, 1.2), (79, 1.0), (60, 1.0), (59, 0.8), (40, 0.8), (39, 0.6), (0, 0.6)],
)
def test_multiplier_tiers(accuracy, multiplier):
    assert HistoricalPatternMatcher(PatternConfig()).multiplier_for(accuracy) == multiplier


def test_risk_adjustment_from_outcome_size():
    big = [_sample("BUY", 0.8), _sample("BUY", -0.6)]
    match = HistoricalPatternMatcher(PatternConfig(), big).match(FEATURES)

    assert match.risk_adjustment == 1.3


def test_sample_table_is_bounded():
    matcher = HistoricalPatternMatcher(PatternConfig(max_samples=3))
    matcher.extend(_sample("BUY", 0.1 * i) for i in range(5))

    assert len(matcher) == 3
    assert [s.outcome for s in matcher.samples()] == pytest.approx([0.2, 0.3, 0.4])


def test_learns_from_validated_outcome():
    matcher = HistoricalPatternMatcher(PatternConfig())
    now = datetime(2024, 1, 2, 11, 0, tzinfo=timezone.utc)
    outcome = ValidatedOutcome(
        prediction_id="pred_000001",
        action=Action.BUY,
        confidence=70,
        reference_price=100.0,
        actual_price=101.0,
        actual_move=1.0,
        accuracy_score=80,
        resolved_at=now,
        created_at=now,
        feature_snapshot=FEATURES.to_dict(),
    )

    assert matcher.add_outcome(outcome)
    match = matcher.match(FEATURES)
    assert match.similar_count == 1
    assert match.dominant_pattern == "BUY"
    assert match.accuracy == 100


def test_outcome_without_features_is_skipped():
    matcher = HistoricalPatternMatcher(PatternConfig())
    now = datetime(2024, 1, 2, 11, 0, tzinfo=timezone.utc)
    outcome = ValidatedOutcome(
        prediction_id="pred_000002",
        action=Action.SELL,
        confidence=60,
        reference_price=100.0,
        actual_price=99.0,
        actual_move=-1.0,
        accuracy_score=80,
        resolved_at=now,
        created_at=now,
    )

    assert not matcher.add_outcome(outcome)
    assert len(matcher) == 0


def test_pattern_opinion_requires_data():
    samples = [_sample("SELL", -0.2), _sample("SELL", -0.3)]
    match = HistoricalPatternMatcher(PatternConfig(), samples).match(FEATURES)
    opinion = pattern_opinion(match, "historical")

    assert opinion.action == Action.SELL
    assert opinion.confidence == 100

    with pytest.raises(ValueError):
        pattern_opinion(HistoricalPatternMatcher(PatternConfig()).match(FEATURES), "historical")


def test_synthetic_history_is_deterministic():
    first = generate_synthetic_history(days=7, seed=5)
    second = generate_synthetic_history(days=7, seed=5)

    assert first == second
    assert all(9 <= s.hour_of_day <= 15 for s in first)
    assert all(s.timestamp.weekday() < 5 for s in first)
    assert all(0.5 <= s.volatility <= 2.5 for s in first)


def test_samples_file_roundtrip_skips_bad_lines(tmp_path):
    path = tmp_path / "samples.jsonl"
    samples = generate_synthetic_history(days=3, seed=1)
    assert dump_samples(path, samples) == len(samples)

    with open(path, "a", encoding="utf-8") as f:
        f.write("{not json}\n")
        f.write('{"volatility": 1.0}\n')
        f.write("[1, 2]\n")
        f.write("42\n")
    with open(path, "ab") as f:
        f.write(b'{"action": "\xff\xfe"}\n')

    loaded = load_samples(path)
    assert loaded == samples


def test_non_object_line_does_not_hide_later_samples(tmp_path):
    path = tmp_path / "samples.jsonl"
    sample = generate_synthetic_history(days=1, seed=2)[0]
    dump_samples(path, [sample])
    content = path.read_bytes()
    path.write_bytes(b"[1, 2]\n\xc3\x28 broken\n" + content)

    assert load_samples(path) == [sample]


def test_accuracy_stats_trend():
    matcher = HistoricalPatternMatcher(PatternConfig())
    matcher.extend(_sample("BUY", -0.2) for _ in range(100))
    matcher.extend(_sample("BUY", 0.2) for _ in range(100))

    stats = matcher.accuracy_stats(recent=100)
    assert stats["overall"] == 50
    assert stats["recent"] == 100
    assert stats["trend"] == "IMPROVING"
