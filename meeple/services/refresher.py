# meeple/services/refresher.py
# ============================================================================
# Batch Refresher : ids stale -> BGG par batches de 20 -> upsert
# Séquentiel exprès : la pause entre batches protège le quota BGG partagé.
# ============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from meeple.config import settings
from meeple.db.things import Thing
from meeple.models.parsed_thing import ParsedThing
from meeple.services.errors import PersistenceError, UpsertValidationError
from meeple.services.store import RecordStore, UpsertReport

log = logging.getLogger(__name__)


class ThingGateway(Protocol):
    """Upstream boundary: one call per batch, the whole batch succeeds or raises."""

    async def fetch_batch(self, ids: Sequence[str]) -> List[ParsedThing]:
        ...


@dataclass
class BatchFailure:
    index: int
    ids: List[str]
    reason: str


@dataclass
class RefreshReport:
    """What one refresh achieved; `things` may be smaller than the input."""
    requested: int = 0
    batches: int = 0
    things: List[Thing] = field(default_factory=list)
    failed_batches: List[BatchFailure] = field(default_factory=list)
    rejected: List[UpsertValidationError] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_batches and not self.rejected

    @property
    def refreshed_ids(self) -> List[str]:
        return [t.id for t in self.things]


def chunked(ids: Sequence[str], size: int) -> List[List[str]]:
    """Contiguous, non-overlapping slices in input order."""
    if size < 1:
        raise ValueError("batch size must be positive")
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


class BatchRefresher:
    """Refreshes stale things from the gateway, batch after batch."""

    def __init__(
        self,
        gateway: ThingGateway,
        store: RecordStore,
        batch_size: Optional[int] = None,
        delay: Optional[float] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.batch_size = batch_size or settings.REFRESH_BATCH_SIZE
        self.delay = settings.REFRESH_BATCH_DELAY if delay is None else delay

    async def refresh(self, ids: Sequence[str], report: Optional[RefreshReport] = None) -> RefreshReport:
        """
        Fetch and persist `ids`, skipping failed batches.

        `report` is filled in place so a caller that cancels us (deadline)
        still sees what was already persisted.
        """
        report = report if report is not None else RefreshReport()
        ids = list(ids)
        report.requested = len(ids)
        if not ids:
            return report

        batches = chunked(ids, self.batch_size)
        report.batches = len(batches)
        log.info(f"Updating {len(ids)} stale things from BGG API in {len(batches)} batches")

        for index, batch in enumerate(batches):
            if index > 0 and self.delay > 0:
                # Pause entre deux appels, jamais après le dernier
                await asyncio.sleep(self.delay)

            log.debug(f"Processing batch {index + 1}/{len(batches)} with {len(batch)} items")
            await self._refresh_batch(index, batch, report)

        log.info(
            f"Refresh done: {len(report.things)}/{len(ids)} things updated, "
            f"{len(report.failed_batches)} failed batches, {len(report.rejected)} rejected records"
        )
        return report

    async def _refresh_batch(self, index: int, batch: List[str], report: RefreshReport) -> None:
        try:
            parsed = await self.gateway.fetch_batch(batch)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(f"Failed to update batch {index + 1}: {e!r}")
            report.failed_batches.append(BatchFailure(index, batch, repr(e)))
            return

        wanted = set(batch)
        unexpected = [p.id for p in parsed if p.id not in wanted]
        if unexpected:
            log.warning(f"Batch {index + 1}: gateway returned unrequested ids {unexpected}")

        upserted = UpsertReport()
        try:
            self.store.upsert_many(parsed, report=upserted)
        except PersistenceError as e:
            # Les Things déjà écrits de ce batch restent en base
            log.error(f"Failed to persist batch {index + 1}: {e}")
            report.failed_batches.append(BatchFailure(index, batch, str(e)))
        finally:
            report.things.extend(upserted.things)
            report.rejected.extend(upserted.failures)
