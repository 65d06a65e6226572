"""
Thing cache orchestration: classify -> refresh stale -> read filtered/sorted.

Availability wins over consistency: a failed or timed-out refresh still ends
in a read of whatever storage holds.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from meeple.config import settings
from meeple.db.things import Thing
from meeple.services.reader import FilteredReader, ThingFilters
from meeple.services.refresher import BatchRefresher, RefreshReport, ThingGateway
from meeple.services.staleness import Classification, StalenessClassifier
from meeple.services.store import RecordStore

log = logging.getLogger(__name__)


@dataclass
class CacheReadResult:
    things: List[Thing] = field(default_factory=list)
    classification: Optional[Classification] = None
    refresh: Optional[RefreshReport] = None
    timed_out: bool = False

    @property
    def maybe_stale(self) -> bool:
        """True when some requested details could not be refreshed."""
        if self.timed_out:
            return True
        return self.refresh is not None and not self.refresh.complete


class ThingCache:
    """Public entry point of the cache subsystem."""

    def __init__(
        self,
        gateway: ThingGateway,
        store: Optional[RecordStore] = None,
        classifier: Optional[StalenessClassifier] = None,
        refresher: Optional[BatchRefresher] = None,
        reader: Optional[FilteredReader] = None,
        timeout: Optional[float] = None,
    ):
        self.store = store or RecordStore()
        self.classifier = classifier or StalenessClassifier(self.store)
        self.refresher = refresher or BatchRefresher(gateway, self.store)
        self.reader = reader or FilteredReader(self.store)
        self.timeout = settings.REFRESH_TIMEOUT if timeout is None else timeout

    async def load(
        self,
        ids: Iterable[str],
        filters: Optional[Mapping[str, Any] | ThingFilters] = None,
        sort_field: Optional[str] = None,
        sort_direction: Optional[str] = "asc",
        timeout: Optional[float] = None,
    ) -> CacheReadResult:
        """
        Like refresh_and_read, with the refresh outcome attached.

        Raises:
            ClassificationError: storage unreadable before refreshing
            PersistenceError: storage unreadable for the final read
        """
        ids = list(dict.fromkeys(ids))
        result = CacheReadResult()
        timeout = self.timeout if timeout is None else timeout

        result.classification = self.classifier.classify(ids)
        stale = result.classification.stale

        if stale:
            report = RefreshReport()
            result.refresh = report
            try:
                if timeout:
                    await asyncio.wait_for(self.refresher.refresh(stale, report=report), timeout)
                else:
                    await self.refresher.refresh(stale, report=report)
            except asyncio.TimeoutError:
                # Les batches déjà persistés restent valides
                result.timed_out = True
                log.warning(
                    f"Refresh deadline of {timeout}s hit after {len(report.things)}/{len(stale)} things, "
                    "serving cached data"
                )
            if report.failed_batches:
                log.warning(
                    f"{len(report.failed_batches)} batches failed, "
                    f"{len(stale) - len(report.things)} things may be stale"
                )

        result.things = self.reader.read(ids, filters, sort_field, sort_direction)
        return result

    async def refresh_and_read(
        self,
        ids: Iterable[str],
        filters: Optional[Mapping[str, Any] | ThingFilters] = None,
        sort_field: Optional[str] = None,
        sort_direction: Optional[str] = "asc",
        timeout: Optional[float] = None,
    ) -> List[Thing]:
        result = await self.load(ids, filters, sort_field, sort_direction, timeout=timeout)
        return result.things
