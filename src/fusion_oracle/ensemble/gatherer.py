"""Concurrent collection of analyzer opinions."""

import asyncio
import inspect
from dataclasses import dataclass, field, replace
from typing import Sequence

from fusion_oracle.core.config import GatheringConfig
from fusion_oracle.core.errors import MissingOpinion
from fusion_oracle.core.log import get_logger
from fusion_oracle.core.types import Analyzer, Opinion

logger = get_logger(__name__)


@dataclass
class GatherResult:
    """Opinions that arrived and the reasons the others did not."""
    opinions: list[Opinion] = field(default_factory=list)
    missing: dict[str, MissingOpinion] = field(default_factory=dict)

    @property
    def sources(self) -> list[str]:
        return [op.source for op in self.opinions]


async def _call_analyzer(analyzer: Analyzer) -> Opinion:
    """Await async analyzers directly, run blocking ones in a worker thread."""
    if inspect.iscoroutinefunction(analyzer.get_opinion):
        result = await analyzer.get_opinion()
    else:
        result = await asyncio.to_thread(analyzer.get_opinion)
        if inspect.isawaitable(result):
            result = await result
    return result


class OpinionGatherer:
    """Fans out to every analyzer at once with a per-analyzer timeout.

    A timeout, an exception or a malformed result turns into a
    MissingOpinion for that source. There are no retries.
    """

    def __init__(self, config: GatheringConfig):
        self.config = config

    async def _gather_one(self, analyzer: Analyzer) -> Opinion:
        name = analyzer.name
        try:
            result = await asyncio.wait_for(_call_analyzer(analyzer), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise MissingOpinion(name, f"timed out after {self.config.timeout_seconds}s") from exc
        except Exception as exc:
            raise MissingOpinion(name, f"{type(exc).__name__}: {exc}") from exc

        if not isinstance(result, Opinion):
            raise MissingOpinion(name, f"unexpected result type {type(result).__name__}")
        if result.source != name:
            logger.warning("Opinion source renamed", analyzer=name, reported=result.source)
            result = replace(result, source=name)
        return result

    async def gather(self, analyzers: Sequence[Analyzer]) -> GatherResult:
        """Collect one opinion from each analyzer concurrently."""
        outcome = GatherResult()
        if not analyzers:
            return outcome

        results = await asyncio.gather(
            *(self._gather_one(analyzer) for analyzer in analyzers),
            return_exceptions=True,
        )
        for analyzer, result in zip(analyzers, results):
            if isinstance(result, MissingOpinion):
                outcome.missing[analyzer.name] = result
                logger.warning("Analyzer missing", source=analyzer.name, reason=result.reason)
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.opinions.append(result)

        logger.debug(
            "Opinions gathered",
            received=outcome.sources,
            missing=sorted(outcome.missing),
        )
        return outcome
