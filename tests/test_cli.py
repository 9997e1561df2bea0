"""Smoke tests for the CLI."""

import yaml
from click.testing import CliRunner

from fusion_oracle.cli import cli


def test_show_config_prints_yaml():
    result = CliRunner().invoke(cli, ["show-config"])

    assert result.exit_code == 0
    data = yaml.safe_load(result.output)
    assert data["fusion"]["action_threshold"] == 0.25
    assert data["sources"]["default_weights"]["historical"] == 0.2


def test_show_config_rejects_invalid_file(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("validation:\n  capacity: -1\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["show-config", "--config", str(path)])

    assert result.exit_code != 0
    assert "Invalid configuration" in result.output


def test_simulate_prints_tables_and_writes_outcomes(tmp_path):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text("patterns:\n  synthetic_days: 5\n", encoding="utf-8")
    outcomes = tmp_path / "outcomes.jsonl"

    result = CliRunner().invoke(
        cli,
        ["simulate", "--cycles", "30", "--seed", "1", "--config", str(config_path), "--outcomes", str(outcomes)],
    )

    assert result.exit_code == 0, result.output
    assert "Source weights" in result.output
    assert "Confidence calibration" in result.output
    assert "Performance" in result.output
    assert "Outcomes written to" in result.output
