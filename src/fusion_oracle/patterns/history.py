"""Sources of historical pattern samples.

The matcher does not care where its samples come from. Two sources are
provided: a seeded synthetic market-hours table and JSONL files.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

import numpy as np

from fusion_oracle.core.log import get_logger
from fusion_oracle.core.types import Action
from fusion_oracle.patterns.matcher import PatternSample

logger = get_logger(__name__)

REFERENCE_VOLUME = 50_000_000


def _session_slots() -> list[tuple[int, int]]:
    """15-minute slots between 09:15 and 15:30 inclusive."""
    slots = []
    for hour in range(9, 16):
        for minute in range(0, 60, 15):
            if hour == 9 and minute < 15:
                continue
            if hour == 15 and minute > 30:
                continue
            slots.append((hour, minute))
    return slots


def generate_synthetic_history(
    days: int = 30,
    seed: int = 1337,
    end: Optional[datetime] = None,
) -> list[PatternSample]:
    """Generate market-hours samples for the last ``days`` calendar days.

    Weekends are skipped. Volatility is drawn from 0.5-2.5%, volume from
    30M-70M (stored as a ratio to 50M), momentum from -1..1 and the realized
    15-minute move from -0.5..0.5%. Samples are returned oldest first.
    """
    rng = np.random.default_rng(seed)
    end = end or datetime(2024, 1, 31, tzinfo=timezone.utc)
    slots = _session_slots()
    samples: list[PatternSample] = []

    for day in range(days - 1, -1, -1):
        date = end - timedelta(days=day)
        if date.weekday() >= 5:
            continue
        for hour, minute in slots:
            volatility, volume, momentum, outcome, r1, r2 = rng.random(6)
            if r1 > 0.5:
                action = Action.BUY
            elif r2 > 0.5:
                action = Action.SELL
            else:
                action = Action.HOLD
            samples.append(
                PatternSample(
                    volatility=0.5 + float(volatility) * 2,
                    momentum=(float(momentum) - 0.5) * 2,
                    volume_ratio=(30_000_000 + float(volume) * 40_000_000) / REFERENCE_VOLUME,
                    hour_of_day=hour,
                    action=action,
                    outcome=float(outcome) - 0.5,
                    timestamp=date.replace(hour=hour, minute=minute, second=0, microsecond=0),
                )
            )
    return samples


def load_samples(path: Path) -> list[PatternSample]:
    """Read samples from a JSONL file. Malformed lines are skipped."""
    samples: list[PatternSample] = []
    with open(path, "rb") as f:
        for lineno, data in enumerate(f, start=1):
            try:
                line = data.decode("utf-8").strip()
            except UnicodeDecodeError as exc:
                logger.warning("Skipping undecodable sample", path=str(path), line=lineno, error=str(exc))
                continue
            if not line:
                continue
            try:
                raw = json.loads(line)
                if not isinstance(raw, dict):
                    raise TypeError(f"expected an object, got {type(raw).__name__}")
                ts = raw.get("timestamp")
                samples.append(
                    PatternSample(
                        volatility=float(raw["volatility"]),
                        momentum=float(raw["momentum"]),
                        volume_ratio=float(raw["volume_ratio"]),
                        hour_of_day=int(raw["hour_of_day"]),
                        action=Action(raw["action"]),
                        outcome=float(raw["outcome"]),
                        timestamp=datetime.fromisoformat(ts) if ts else None,
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed sample", path=str(path), line=lineno, error=str(exc))
    return samples


def dump_samples(path: Path, samples: Iterable[PatternSample]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for sample in samples:
            f.write(json.dumps(sample.to_dict(), ensure_ascii=False) + "\n")
            count += 1
    return count
