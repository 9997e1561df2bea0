"""Tests for FusionEngine."""

import numpy as np
import pytest

from conftest import make_opinion
from fusion_oracle.core.config import FusionConfig, RegimeConfig
from fusion_oracle.core.types import Action, PatternMatch, RegimeSnapshot, SourceWeight
from fusion_oracle.fusion import FusionEngine
from fusion_oracle.fusion.regime import HIGH_VOLATILITY, LOW_VOLUME, SESSION_EDGE
from fusion_oracle.patterns import neutral_match

EQUAL = {"technical": 0.33, "sentiment": 0.33, "research": 0.33}


@pytest.fixture
def engine():
    return FusionEngine(FusionConfig(), RegimeConfig())


def _three_buys(risk_level="LOW"):
    opinions = [
        make_opinion("technical", "BUY", 80),
        make_opinion("sentiment", "BUY", 70),
        make_opinion("research", "BUY", 60),
    ]
    if risk_level:
        opinions.append(make_opinion("risk", "HOLD", 90, risk_level=risk_level))
    return opinions


def test_unanimous_buy_low_risk(engine, calm_regime):
    decision = engine.fuse(_three_buys("LOW"), calm_regime, EQUAL)

    assert decision.action == Action.BUY
    assert decision.confidence == 70
    assert decision.risk_derate == 1.0
    assert not decision.degraded
    assert set(decision.contribution_breakdown) == {"technical", "sentiment", "research"}
    assert decision.weighted_score == pytest.approx(1.0)


def test_high_risk_derates_confidence(engine, calm_regime):
    decision = engine.fuse(_three_buys("HIGH"), calm_regime, EQUAL)

    assert decision.action == Action.BUY
    assert decision.confidence == 21


def test_missing_risk_uses_default_derate(engine, calm_regime):
    decision = engine.fuse(_three_buys(None), calm_regime, EQUAL)

    assert decision.risk_derate == pytest.approx(0.7)
    assert decision.confidence == 49


def test_risk_without_level_uses_default_derate(engine, calm_regime):
    opinions = _three_buys(None) + [make_opinion("risk", "HOLD", 50)]
    decision = engine.fuse(opinions, calm_regime, EQUAL)

    assert decision.risk_derate == pytest.approx(0.7)


def test_risk_never_votes(engine, calm_regime):
    opinions = [
        make_opinion("technical", "BUY", 80),
        make_opinion("sentiment", "BUY", 70),
        make_opinion("risk", "SELL", 95, risk_level="LOW"),
    ]
    decision = engine.fuse(opinions, calm_regime, EQUAL)

    assert decision.action == Action.BUY
    assert "risk" not in decision.contribution_breakdown


def test_threshold_tie_resolves_to_hold(engine, calm_regime):
    weights = {"technical": 0.25, "sentiment": 0.75}
    opinions = [
        make_opinion("technical", "BUY", 80),
        make_opinion("sentiment", "HOLD", 60),
    ]
    decision = engine.fuse(opinions, calm_regime, weights)

    assert decision.weighted_score == pytest.approx(0.25)
    assert decision.action == Action.HOLD


def test_missing_source_is_not_a_hold_vote(engine, calm_regime):
    weights = {"technical": 0.35, "sentiment": 0.25, "research": 0.25}
    opinions = [
        make_opinion("technical", "BUY", 80),
        make_opinion("sentiment", "BUY", 60),
    ]
    decision = engine.fuse(opinions, calm_regime, weights)

    assert decision.action == Action.BUY
    assert decision.weighted_score == pytest.approx(1.0)
    assert decision.missing_sources == ("research",)
    total = sum(c.normalized_weight for c in decision.contribution_breakdown.values())
    assert total == pytest.approx(1.0)


def test_single_source_degrades_to_hold(engine, calm_regime):
    opinions = [make_opinion("technical", "BUY", 90), make_opinion("risk", "HOLD", 90, risk_level="LOW")]
    decision = engine.fuse(opinions, calm_regime, EQUAL)

    assert decision.action == Action.HOLD
    assert decision.confidence == 20
    assert decision.degraded
    assert decision.missing_sources == ("research", "sentiment")
    assert decision.contribution_breakdown == {}


def test_zero_total_weight_degrades(engine, calm_regime):
    weights = {"technical": 0.0, "sentiment": 0.0}
    opinions = [make_opinion("technical", "BUY", 90), make_opinion("sentiment", "BUY", 90)]
    decision = engine.fuse(opinions, calm_regime, weights)

    assert decision.degraded
    assert decision.action == Action.HOLD


def test_unweighted_source_ignored(engine, calm_regime):
    opinions = _three_buys("LOW") + [make_opinion("astrology", "SELL", 95)]
    decision = engine.fuse(opinions, calm_regime, EQUAL)

    assert "astrology" not in decision.contribution_breakdown
    assert decision.action == Action.BUY


def test_duplicate_source_first_wins(engine, calm_regime):
    opinions = _three_buys("LOW") + [make_opinion("technical", "SELL", 95)]
    decision = engine.fuse(opinions, calm_regime, EQUAL)

    assert decision.contribution_breakdown["technical"].action == Action.BUY


def test_accepts_source_weight_list(engine, calm_regime):
    weights = [SourceWeight(name, w) for name, w in EQUAL.items()]
    decision = engine.fuse(_three_buys("LOW"), calm_regime, weights)

    assert decision.confidence == 70


def test_high_volatility_multipliers(engine):
    regime = RegimeSnapshot(intraday_volatility_pct=3.0, volume_ratio=1.0, hour_of_day=12)
    opinions = [
        make_opinion("research", "BUY", 70),
        make_opinion("sentiment", "SELL", 70),
        make_opinion("risk", "HOLD", 90, risk_level="LOW"),
    ]
    decision = engine.fuse(opinions, regime, EQUAL)

    assert decision.regime_tags == (HIGH_VOLATILITY,)
    research = decision.contribution_breakdown["research"]
    sentiment = decision.contribution_breakdown["sentiment"]
    assert research.effective_weight == pytest.approx(0.33 * 1.2)
    assert sentiment.effective_weight == pytest.approx(0.33 * 0.9)
    assert decision.weighted_score == pytest.approx((1.2 - 0.9) / 2.1)
    assert decision.action == Action.HOLD


def test_session_edge_and_low_volume(engine):
    regime = RegimeSnapshot(intraday_volatility_pct=1.0, volume_ratio=0.4, hour_of_day=9)
    decision = engine.fuse(_three_buys("LOW"), regime, EQUAL)

    assert decision.regime_tags == (SESSION_EDGE, LOW_VOLUME)
    assert decision.contribution_breakdown["sentiment"].effective_weight == pytest.approx(0.33 * 1.2)
    # raw confidence shifts toward sentiment, then the thin-volume scale applies
    assert decision.confidence == round(decision.raw_confidence * 0.8)


def test_pattern_joins_as_opinion_and_scales_confidence(engine, calm_regime):
    weights = dict(EQUAL, historical=0.33)
    pattern = PatternMatch(similar_count=12, accuracy=70, dominant_pattern="BUY", confidence_multiplier=1.2)
    decision = engine.fuse(_three_buys("LOW"), calm_regime, weights, pattern=pattern)

    historical = decision.contribution_breakdown["historical"]
    assert historical.action == Action.BUY
    assert historical.confidence == 70
    assert decision.raw_confidence == pytest.approx(70.0)
    assert decision.confidence == 84


def test_empty_pattern_contributes_nothing(engine, calm_regime):
    weights = dict(EQUAL, historical=0.33)
    decision = engine.fuse(_three_buys("LOW"), calm_regime, weights, pattern=neutral_match())

    assert "historical" not in decision.contribution_breakdown
    assert decision.confidence == 70
    assert decision.missing_sources == ()


def test_pattern_does_not_count_toward_min_sources(engine, calm_regime):
    weights = dict(EQUAL, historical=0.33)
    pattern = PatternMatch(similar_count=12, accuracy=90, dominant_pattern="BUY", confidence_multiplier=1.2)
    decision = engine.fuse([make_opinion("technical", "BUY", 80)], calm_regime, weights, pattern=pattern)

    assert decision.degraded


def test_reasoning_mentions_sources_and_risk(engine, calm_regime):
    decision = engine.fuse(_three_buys("LOW"), calm_regime, EQUAL)

    assert "technical: BUY (80%)" in decision.reasoning
    assert "Risk: LOW - Trade approved" in decision.reasoning


def test_confidence_always_within_bounds(engine):
    rng = np.random.default_rng(42)
    actions = ["BUY", "SELL", "HOLD"]
    sources = ["technical", "sentiment", "research"]
    for _ in range(300):
        opinions = [
            make_opinion(name, actions[int(rng.integers(0, 3))], int(rng.integers(0, 101)))
            for name in sources
            if rng.random() > 0.2
        ]
        opinions.append(make_opinion("risk", "HOLD", 50, risk_level=["LOW", "MEDIUM", "HIGH"][int(rng.integers(0, 3))]))
        regime = RegimeSnapshot(
            intraday_volatility_pct=float(rng.uniform(0, 4)),
            volume_ratio=float(rng.uniform(0.2, 2)),
            hour_of_day=int(rng.integers(9, 16)),
        )
        weights = {name: float(rng.uniform(0, 1)) for name in sources}
        decision = engine.fuse(opinions, regime, weights)

        assert 20 <= decision.confidence <= 95
        assert decision.action in (Action.BUY, Action.SELL, Action.HOLD)
        if decision.contribution_breakdown:
            total = sum(c.normalized_weight for c in decision.contribution_breakdown.values())
            assert total == pytest.approx(1.0)
