"""Delayed validation of decisions against a later price."""

import asyncio
import heapq
import inspect
import math
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from fusion_oracle.core.clock import SystemClock, horizon_for
from fusion_oracle.core.config import ValidationConfig
from fusion_oracle.core.errors import PriceUnavailable
from fusion_oracle.core.log import get_logger
from fusion_oracle.core.types import (
    Decision,
    PendingPrediction,
    PredictionState,
    PriceFeed,
    PriceQuote,
    ValidatedOutcome,
)
from fusion_oracle.core.utils import round_half_up
from fusion_oracle.validation.buffer import RollingBuffer
from fusion_oracle.validation.scoring import accuracy_score, price_move_pct

logger = get_logger(__name__)

OutcomeListener = Callable[[ValidatedOutcome], Union[None, Awaitable[None]]]

# Upper bound on one idle wait of the background loop.
_MAX_IDLE_SECONDS = 60.0


class ValidationScheduler:
    """Resolves pending predictions once their horizon has elapsed.

    Deadlines live in one heap of ``(deadline, seq, id)``. A single asyncio
    task sleeps until the earliest deadline or until ``schedule`` wakes it.
    ``process_due`` can also be driven directly with a virtual ``now``.

    After a successful resolution the outcome is stored, ``on_outcome`` runs
    exactly once, then every listener runs. Listener failures are logged and
    do not affect the others.
    """

    def __init__(
        self,
        config: ValidationConfig,
        price_feed: PriceFeed,
        clock: Optional[Any] = None,
        on_outcome: Optional[Callable[[ValidatedOutcome], Any]] = None,
    ):
        """
        Args:
            config: horizon, capacity and retry settings
            price_feed: source of the validation price
            clock: object with ``now()``; wall clock by default
            on_outcome: hook run once per outcome before the listeners
        """
        self.config = config
        self.price_feed = price_feed
        self.clock = clock or SystemClock()
        self.on_outcome = on_outcome
        self.horizon: timedelta = horizon_for(config.timeframe, config.horizon_seconds)

        self.pending: RollingBuffer[PendingPrediction] = RollingBuffer(config.capacity)
        self.results: RollingBuffer[ValidatedOutcome] = RollingBuffer(config.capacity)
        self._heap: list[tuple[datetime, int, str]] = []
        self._seq = 0
        self._listeners: list[OutcomeListener] = []

        self.indeterminate_count = 0
        self.evicted_count = 0
        self.validated_count = 0

        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def add_listener(self, callback: OutcomeListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: OutcomeListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _next_id(self) -> str:
        self._seq += 1
        return f"pred_{self._seq:06d}"

    def schedule(
        self,
        decision: Decision,
        reference_price: float,
        feature_snapshot: Optional[dict[str, float]] = None,
        source_weights: Optional[dict[str, float]] = None,
    ) -> PendingPrediction:
        """Register a decision for validation after the horizon."""
        if not math.isfinite(reference_price) or reference_price <= 0:
            raise ValueError("reference price must be finite and positive")

        prediction = PendingPrediction(
            id=self._next_id(),
            action=decision.action,
            confidence=decision.confidence,
            reference_price=reference_price,
            created_at=self.clock.now(),
            horizon=self.horizon,
            feature_snapshot=dict(feature_snapshot or {}),
            source_weights_at_creation=dict(source_weights or {}),
            contributions=decision.contributions(),
        )

        for evicted in self.pending.add(prediction.id, prediction):
            evicted.transition(PredictionState.EVICTED)
            self.evicted_count += 1
            logger.warning("Pending prediction evicted", prediction_id=evicted.id)

        heapq.heappush(self._heap, (prediction.due_at, self._seq, prediction.id))
        self._wakeup.set()

        logger.debug(
            "Prediction scheduled",
            prediction_id=prediction.id,
            action=prediction.action.value,
            due_at=prediction.due_at.isoformat(),
        )
        return prediction

    def next_deadline(self) -> Optional[datetime]:
        return self._heap[0][0] if self._heap else None

    async def process_due(self, now: Optional[datetime] = None) -> list[ValidatedOutcome]:
        """Resolve every prediction whose deadline is at or before ``now``."""
        now = now or self.clock.now()
        due: list[PendingPrediction] = []
        while self._heap and self._heap[0][0] <= now:
            _, _, prediction_id = heapq.heappop(self._heap)
            prediction = self.pending.get(prediction_id)
            if prediction is None or prediction.state is not PredictionState.CREATED:
                continue
            prediction.transition(PredictionState.RESOLVING)
            due.append(prediction)

        if not due:
            return []

        resolved = await asyncio.gather(*(self._resolve(p) for p in due))
        return [outcome for outcome in resolved if outcome is not None]

    async def _resolve(self, prediction: PendingPrediction) -> Optional[ValidatedOutcome]:
        quote = await self._fetch_price(prediction.id)

        if prediction.state is PredictionState.EVICTED:
            logger.debug("Evicted while resolving", prediction_id=prediction.id)
            return None

        if quote is None:
            prediction.transition(PredictionState.INDETERMINATE)
            self.pending.pop(prediction.id)
            self.indeterminate_count += 1
            logger.warning("Prediction indeterminate", prediction_id=prediction.id)
            return None

        move = price_move_pct(prediction.reference_price, quote.price)
        raw_score = accuracy_score(prediction.action, move)
        outcome = ValidatedOutcome(
            prediction_id=prediction.id,
            action=prediction.action,
            confidence=prediction.confidence,
            reference_price=prediction.reference_price,
            actual_price=quote.price,
            actual_move=move,
            accuracy_score=round_half_up(raw_score),
            accuracy_raw=raw_score,
            resolved_at=self.clock.now(),
            created_at=prediction.created_at,
            feature_snapshot=prediction.feature_snapshot,
            source_weights_at_creation=prediction.source_weights_at_creation,
            contributions=prediction.contributions,
        )
        prediction.transition(PredictionState.VALIDATED)
        self.pending.pop(prediction.id)
        self.results.add(outcome.prediction_id, outcome)
        self.validated_count += 1

        logger.info(
            "Prediction validated",
            prediction_id=outcome.prediction_id,
            action=outcome.action.value,
            move=round(move, 4),
            score=outcome.accuracy_score,
        )

        if self.on_outcome is not None:
            try:
                self.on_outcome(outcome)
            except Exception:
                logger.exception("Outcome hook failed", prediction_id=outcome.prediction_id)

        await self._notify(outcome)
        return outcome

    async def _fetch_price(self, prediction_id: str) -> Optional[PriceQuote]:
        """One attempt plus one retry after the configured backoff."""
        for attempt in range(2):
            try:
                quote = await self.price_feed.get_current_price()
                if math.isfinite(quote.price) and quote.price > 0:
                    return quote
                logger.warning(
                    "Invalid validation price",
                    prediction_id=prediction_id,
                    price=quote.price,
                )
            except PriceUnavailable as exc:
                logger.warning(
                    "Validation price unavailable",
                    prediction_id=prediction_id,
                    attempt=attempt + 1,
                    error=str(exc),
                )
            except Exception as exc:
                logger.warning(
                    "Validation price fetch failed",
                    prediction_id=prediction_id,
                    attempt=attempt + 1,
                    error=str(exc),
                )
            if attempt == 0:
                await asyncio.sleep(self.config.retry_backoff_seconds)
        return None

    async def _notify(self, outcome: ValidatedOutcome) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(outcome)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Outcome listener failed", prediction_id=outcome.prediction_id)

    def _seconds_until_next(self) -> Optional[float]:
        deadline = self.next_deadline()
        if deadline is None:
            return None
        remaining = (deadline - self.clock.now()).total_seconds()
        return min(max(0.0, remaining), _MAX_IDLE_SECONDS)

    async def run(self) -> None:
        """Background loop: resolve due predictions, then sleep until the next deadline."""
        logger.info("Validation loop started", horizon_seconds=self.horizon.total_seconds())
        while self._running:
            await self.process_due()
            self._wakeup.clear()
            if not self._running:
                break
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._seconds_until_next())
            except asyncio.TimeoutError:
                pass
        logger.info("Validation loop stopped")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._running = True
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        self._running = False
        self._wakeup.set()
        if self._task is not None:
            await self._task
            self._task = None

    def stats(self) -> dict[str, int]:
        return {
            "pending": len(self.pending),
            "validated": self.validated_count,
            "indeterminate": self.indeterminate_count,
            "evicted": self.evicted_count,
            "results": len(self.results),
        }
