"""Command line interface for fusion_oracle."""

import asyncio
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fusion_oracle.core.config import Config, load_config
from fusion_oracle.core.errors import ConfigError
from fusion_oracle.core.log import setup_logging
from fusion_oracle.simulation import SimulationReport, run_simulation

console = Console()


def _load(config_path: Optional[str]) -> Config:
    try:
        return load_config(Path(config_path) if config_path else None)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _weights_table(weights: dict[str, float], defaults: dict[str, float]) -> Table:
    table = Table(title="Source weights")
    table.add_column("Source", style="cyan")
    table.add_column("Start", justify="right")
    table.add_column("Final", justify="right")
    table.add_column("Delta", justify="right")
    for source in sorted(weights):
        start = defaults.get(source, 0.0)
        final = weights[source]
        delta = final - start
        color = "green" if delta > 0 else "red" if delta < 0 else "white"
        table.add_row(source, f"{start:.3f}", f"{final:.3f}", f"[{color}]{delta:+.3f}[/{color}]")
    return table


def _calibration_table(report: SimulationReport) -> Table:
    table = Table(title="Confidence calibration")
    table.add_column("Range", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Avg confidence", justify="right")
    table.add_column("Avg accuracy", justify="right")
    table.add_column("Gap", justify="right")
    for bucket in report.calibration:
        table.add_row(
            bucket.label,
            str(bucket.sample_count),
            f"{bucket.observed_confidence_avg:.1f}",
            f"{bucket.observed_accuracy_avg:.1f}",
            f"{bucket.calibration_gap:.1f}",
        )
    return table


def _performance_table(report: SimulationReport) -> Table:
    perf = report.performance
    table = Table(title="Performance")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Decisions", ", ".join(f"{k}={v}" for k, v in sorted(report.decisions.items())) or "-")
    table.add_row("Skipped cycles", str(report.skipped))
    table.add_row("Validated", str(perf.get("total_predictions", 0)))
    table.add_row("Overall accuracy", f"{perf.get('overall_accuracy', 0):.1f}")
    for action, value in perf.get("by_action", {}).items():
        table.add_row(f"Accuracy {action}", f"{value:.1f}")
    table.add_row("Recent accuracy", f"{perf.get('recent_accuracy', 0):.1f}")
    table.add_row("Recent trend", str(perf.get("recent_trend", "-")))
    table.add_row("Indeterminate", str(perf.get("indeterminate", 0)))
    table.add_row("Evicted", str(perf.get("evicted", 0)))
    return table


@click.group()
def cli():
    """Adaptive multi-signal fusion engine"""
    pass


@cli.command()
@click.option("--cycles", default=200, show_default=True, type=click.IntRange(min=1), help="Fusion cycles to run")
@click.option("--seed", default=7, show_default=True, type=int, help="Random seed for the market and analyzers")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML config file")
@click.option("--outcomes", type=click.Path(dir_okay=False), help="Write validated outcomes as JSONL")
@click.option("--step-minutes", default=5.0, show_default=True, type=float, help="Virtual minutes between cycles")
def simulate(cycles: int, seed: int, config_path: Optional[str], outcomes: Optional[str], step_minutes: float):
    """Run an offline simulation on a virtual clock."""
    config = _load(config_path)
    setup_logging(level="WARNING", structured=config.logging.structured)

    console.print(Panel(f"Simulation: {config.symbol}, {cycles} cycles, seed {seed}", style="bold cyan"))
    report = asyncio.run(
        run_simulation(
            config,
            cycles=cycles,
            seed=seed,
            step_minutes=step_minutes,
            outcomes_path=Path(outcomes) if outcomes else None,
        )
    )

    console.print(_weights_table(report.weights, config.sources.default_weights))
    console.print(_calibration_table(report))
    console.print(_performance_table(report))
    if outcomes:
        console.print(f"[green]Outcomes written to {outcomes}[/green]")


@cli.command("show-config")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML config file")
def show_config(config_path: Optional[str]):
    """Print the resolved configuration as YAML."""
    config = _load(config_path)
    click.echo(yaml.safe_dump(config.to_dict(), sort_keys=False))


if __name__ == "__main__":
    cli()
