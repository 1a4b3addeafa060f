"""Pipeline orchestrator: extract, merge, enrich, fall back.

One run owns a single rendering session. Sources run in the configured
priority order (or concurrently), their records are merged by identity, and
records still missing contact data are enriched in small throttled batches
before the web-search fallback gets a go at whatever is left.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, List, Optional, Sequence, Type

from leadscout.core.browser import RenderingSessionFailure, open_session
from leadscout.core.config import Settings
from leadscout.core.contact_enricher import ContactEnricher
from leadscout.core.fallback import FallbackResolver
from leadscout.core.retry import Sleep
from leadscout.etl.merge import merge_records
from leadscout.etl.transform import derive_city
from leadscout.models import BusinessRecord
from leadscout.sources.base import SourceAdapter
from leadscout.sources.google_maps import GoogleMapsAdapter
from leadscout.sources.web_search import WebSearchAdapter
from leadscout.sources.yellow_pages import YellowPagesAdapter

logger = logging.getLogger(__name__)

ADAPTERS: Dict[str, Type[SourceAdapter]] = {
    "maps": GoogleMapsAdapter,
    "yellowpages": YellowPagesAdapter,
    "search": WebSearchAdapter,
}

SessionFactory = Callable[[Settings], AsyncContextManager[Any]]


class PipelineState(str, Enum):
    INIT = "init"
    EXTRACTING = "extracting"
    MERGING = "merging"
    ENRICHING = "enriching"
    FALLBACK_RESOLVING = "fallback_resolving"
    DONE = "done"
    FAILED = "failed"


class TotalExtractionFailure(RuntimeError):
    """Raised when every configured source raised instead of returning records."""


@dataclass
class PipelineResult:
    query: str
    city: str
    records: List[BusinessRecord] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    degraded: bool = False

    @property
    def count(self) -> int:
        return len(self.records)


def build_adapters(settings: Settings, *, sleep: Sleep = asyncio.sleep) -> List[SourceAdapter]:
    """Instantiate adapters in the configured priority order."""
    return [ADAPTERS[name](settings, sleep=sleep) for name in settings.sources if name in ADAPTERS]


class AggregationPipeline:
    def __init__(
        self,
        settings: Settings,
        *,
        adapters: Optional[Sequence[SourceAdapter]] = None,
        enricher: Optional[ContactEnricher] = None,
        resolver: Optional[FallbackResolver] = None,
        session_factory: SessionFactory = open_session,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.adapters = list(adapters) if adapters is not None else build_adapters(settings, sleep=sleep)
        self.enricher = enricher or ContactEnricher(settings, sleep=sleep)
        self.resolver = resolver or FallbackResolver(settings, self.enricher, sleep=sleep)
        self._session_factory = session_factory
        self._sleep = sleep
        self.state = PipelineState.INIT

    def _transition(self, state: PipelineState) -> None:
        logger.debug("Pipeline state %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(self, query: str, city: Optional[str] = None) -> PipelineResult:
        query = (query or "").strip()
        if not query:
            raise ValueError("query must not be empty")

        self.state = PipelineState.INIT
        result = PipelineResult(query=query, city=derive_city(query, city))
        logger.info("Starting run for query=%r city=%s sources=%s", query, result.city, [a.name for a in self.adapters])

        try:
            async with self._session_factory(self.settings) as session:
                self._transition(PipelineState.EXTRACTING)
                combined = await self._extract_all(session, result)

                self._transition(PipelineState.MERGING)
                result.records = merge_records(combined)

                self._transition(PipelineState.ENRICHING)
                await self._enrich(session, result.records)

                self._transition(PipelineState.FALLBACK_RESOLVING)
                await self._resolve_fallbacks(session, result.records)
        except (RenderingSessionFailure, TotalExtractionFailure):
            self._transition(PipelineState.FAILED)
            raise

        self._transition(PipelineState.DONE)
        logger.info("Completed run: %d unique businesses for query=%r", result.count, query)
        return result

    async def _extract_all(self, session: Any, result: PipelineResult) -> List[BusinessRecord]:
        max_results = self.settings.max_results

        async def _run(adapter: SourceAdapter) -> List[BusinessRecord]:
            return await adapter.extract(session, result.query, result.city, max_results)

        if self.settings.parallel_sources:
            outcomes = await asyncio.gather(*(_run(adapter) for adapter in self.adapters), return_exceptions=True)
        else:
            outcomes = []
            for adapter in self.adapters:
                try:
                    outcomes.append(await _run(adapter))
                except RenderingSessionFailure:
                    raise
                except Exception as exc:  # noqa: BLE001
                    outcomes.append(exc)

        combined: List[BusinessRecord] = []
        # Outcomes follow adapter order, so merge priority is the configured order.
        for adapter, outcome in zip(self.adapters, outcomes):
            if isinstance(outcome, RenderingSessionFailure):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error("Source %s failed: %s", adapter.name, outcome, exc_info=outcome)
                result.failed_sources.append(adapter.name)
                continue
            combined.extend(outcome)

        if self.adapters and len(result.failed_sources) == len(self.adapters):
            raise TotalExtractionFailure(f"all sources failed: {', '.join(result.failed_sources)}")
        if not combined:
            logger.warning("No source returned results for query=%r", result.query)
            result.degraded = True
        return combined

    async def _run_batches(
        self,
        records: List[BusinessRecord],
        worker: Callable[[BusinessRecord], Awaitable[None]],
    ) -> None:
        """Run ``worker`` over records ``k`` at a time, pausing between batches."""
        size = max(1, self.settings.enrich_concurrency)
        for start in range(0, len(records), size):
            if start:
                await self._sleep(self.settings.enrich_batch_delay)
            batch = records[start : start + size]
            outcomes = await asyncio.gather(*(worker(record) for record in batch), return_exceptions=True)
            for record, outcome in zip(batch, outcomes):
                if outcome is None:
                    continue
                if isinstance(outcome, RenderingSessionFailure) or not isinstance(outcome, Exception):
                    raise outcome
                # A single record's lookup never sinks the run; its fields stay absent.
                logger.warning("Lookup failed for %s: %s", record.title, outcome, exc_info=outcome)

    async def _enrich(self, session: Any, records: List[BusinessRecord]) -> None:
        pending = [record for record in records if not record.has_contact and record.url is not None]
        logger.info("Enriching %d of %d records", len(pending), len(records))

        async def _worker(record: BusinessRecord) -> None:
            await self.enricher.enrich(session, record)

        await self._run_batches(pending, _worker)

    async def _resolve_fallbacks(self, session: Any, records: List[BusinessRecord]) -> None:
        pending = [record for record in records if record.missing_fields()]
        limit = self.settings.fallback_limit
        if limit is not None and len(pending) > limit:
            logger.info("Fallback capped at %d of %d incomplete records", limit, len(pending))
            pending = pending[:limit]
        logger.info("Running fallback search for %d records", len(pending))

        async def _worker(record: BusinessRecord) -> None:
            found = await self.resolver.resolve(session, record.title, record.city)
            for name in ("url", "email", "phone"):
                value = getattr(found, name)
                if value is not None and getattr(record, name) is None:
                    setattr(record, name, value)

        await self._run_batches(pending, _worker)
