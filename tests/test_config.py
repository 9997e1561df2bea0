"""Tests for configuration loading, clocks and logging helpers."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from fusion_oracle.core.clock import ManualClock, horizon_for, timeframe_to_minutes
from fusion_oracle.core.config import Config, load_config
from fusion_oracle.core.errors import ConfigError
from fusion_oracle.core.log import OutcomeLogger
from fusion_oracle.core.types import Action, Opinion, RiskLevel, ValidatedOutcome
from fusion_oracle.core.utils import round_half_up


def test_defaults():
    config = Config.default()

    assert config.fusion.action_threshold == 0.25
    assert config.fusion.risk_derates == {"LOW": 1.0, "MEDIUM": 0.7, "HIGH": 0.3}
    assert config.sources.default_weights["technical"] == 0.35
    assert config.validation.capacity == 500
    assert config.adaptation.step == 0.02
    assert config.regime.multipliers["high_volatility"]["historical"] == 1.3


def test_bundled_yaml_matches_defaults():
    assert load_config().to_dict() == Config.default().to_dict()


def test_missing_file_falls_back_to_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yaml")

    assert config.symbol == "NIFTY50"


def test_partial_yaml_overrides(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("symbol: BANKNIFTY\nfusion:\n  action_threshold: 0.3\nvalidation:\n  timeframe: 1h\n", encoding="utf-8")

    config = Config.from_yaml(path)

    assert config.symbol == "BANKNIFTY"
    assert config.fusion.action_threshold == 0.3
    assert config.fusion.confidence_max == 95
    assert config.validation.timeframe == "1h"


@pytest.mark.parametrize(
    "text",
    [
        "validation:\n  capacity: 0\n",
        "fusion:\n  risk_derates:\n    HIGH: 1.5\n",
        "sources:\n  default_weights:\n    technical: -0.1\n",
        "- just\n- a list\n",
        "fusion: [unclosed\n",
    ],
)
def test_invalid_yaml_raises_config_error(tmp_path, text):
    path = tmp_path / "bad.yaml"
    path.write_text(text, encoding="utf-8")

    with pytest.raises(ConfigError):
        Config.from_yaml(path)


@pytest.mark.parametrize("timeframe,minutes", [("15m", 15), ("5min", 5), ("1h", 60), ("1d", 1440), ("30", 30)])
def test_timeframe_to_minutes(timeframe, minutes):
    assert timeframe_to_minutes(timeframe) == minutes


def test_horizon_override_and_bad_timeframe():
    assert horizon_for("15m") == timedelta(minutes=15)
    assert horizon_for("15m", override_seconds=5) == timedelta(seconds=5)
    with pytest.raises(ValueError):
        timeframe_to_minutes("fortnight")


def test_manual_clock():
    start = datetime(2024, 1, 1, 9, 15, tzinfo=timezone.utc)
    clock = ManualClock(start)
    clock.advance(minutes=15)

    assert clock.now() == start + timedelta(minutes=15)


def test_round_half_up():
    assert round_half_up(20.5) == 21
    assert round_half_up(20.49) == 20
    assert round_half_up(0.5) == 1


def test_opinion_validation():
    with pytest.raises(ValueError):
        Opinion(source="technical", action=Action.BUY, confidence=101)

    opinion = Opinion(source="risk", action="HOLD", confidence=50, risk_level="HIGH")
    assert opinion.action is Action.HOLD
    assert opinion.risk_level is RiskLevel.HIGH


@pytest.mark.parametrize("score,level", [(0.1, RiskLevel.LOW), (0.3, RiskLevel.MEDIUM), (0.59, RiskLevel.MEDIUM), (0.6, RiskLevel.HIGH)])
def test_risk_level_from_score(score, level):
    assert RiskLevel.from_score(score) is level


def test_outcome_logger_appends_jsonl(tmp_path):
    now = datetime(2024, 1, 2, 11, 15, tzinfo=timezone.utc)
    outcome = ValidatedOutcome(
        prediction_id="pred_000007",
        action=Action.SELL,
        confidence=66,
        reference_price=100.0,
        actual_price=99.0,
        actual_move=-1.0,
        accuracy_score=80,
        resolved_at=now,
        created_at=now,
    )
    logger = OutcomeLogger(tmp_path / "logs" / "outcomes.jsonl")
    logger(outcome)
    logger(outcome)
    logger.close()

    lines = (tmp_path / "logs" / "outcomes.jsonl").read_text(encoding="utf-8").splitlines()
    assert logger.written == 2
    assert json.loads(lines[0])["action"] == "SELL"
