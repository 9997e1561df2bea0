"""Shared fixtures."""

from datetime import datetime, timezone

import pytest

from fusion_oracle.core.clock import ManualClock
from fusion_oracle.core.config import Config
from fusion_oracle.core.errors import PriceUnavailable
from fusion_oracle.core.types import Action, Opinion, PriceQuote, RegimeSnapshot, RiskLevel

T0 = datetime(2024, 1, 2, 11, 0, tzinfo=timezone.utc)


def make_opinion(source, action, confidence, risk_level=None):
    return Opinion(
        source=source,
        action=Action(action),
        confidence=confidence,
        timestamp=T0,
        risk_level=RiskLevel(risk_level) if risk_level else None,
    )


class ScriptedPriceFeed:
    """Price feed returning a scripted sequence; the last value repeats."""

    def __init__(self, clock, prices):
        self.clock = clock
        self.prices = list(prices)
        self.calls = 0

    async def get_current_price(self):
        self.calls += 1
        item = self.prices[0] if len(self.prices) == 1 else self.prices.pop(0)
        if isinstance(item, Exception):
            raise item
        if item is None:
            raise PriceUnavailable("no price")
        return PriceQuote(price=item, timestamp=self.clock.now())


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def config():
    """Defaults without synthetic history and with instant retries."""
    cfg = Config.default()
    cfg.patterns.synthetic_history = False
    cfg.validation.retry_backoff_seconds = 0.0
    return cfg


@pytest.fixture
def calm_regime():
    """Mid-session, normal volatility and volume: no regime adjustments."""
    return RegimeSnapshot(intraday_volatility_pct=1.0, volume_ratio=1.0, hour_of_day=12)
