"""Partition requested thing ids into fresh and stale."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from meeple.config import settings
from meeple.database import utcnow
from meeple.services.errors import ClassificationError, PersistenceError
from meeple.services.store import RecordStore

log = logging.getLogger(__name__)


@dataclass
class Classification:
    """De-duplicated partition of the requested ids, in first-seen order."""
    fresh: List[str] = field(default_factory=list)
    stale: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)  # sous-ensemble de stale


def is_fresh(
    last_cached: Optional[dt.datetime],
    schema_version: Optional[int],
    now: dt.datetime,
    ttl: dt.timedelta,
    min_schema_version: int,
) -> bool:
    """A record is fresh iff cached, cached within `ttl` of `now`, and not behind the schema watermark."""
    if last_cached is None:
        return False
    if schema_version is None or schema_version < min_schema_version:
        return False
    return last_cached >= now - ttl


class StalenessClassifier:
    """Decides which ids need a trip to BGG, by age and by schema version."""

    def __init__(
        self,
        store: RecordStore,
        ttl: Optional[dt.timedelta] = None,
        min_schema_version: Optional[int] = None,
    ):
        self.store = store
        self.ttl = ttl if ttl is not None else dt.timedelta(days=settings.CACHE_TTL_DAYS)
        self.min_schema_version = settings.CACHE_SCHEMA_VERSION if min_schema_version is None else min_schema_version

    def classify(self, ids: Iterable[str], now: Optional[dt.datetime] = None) -> Classification:
        """
        Classify `ids`; ids absent from storage are stale.

        Raises:
            ClassificationError: storage could not be read. Never degrades to
                "all fresh" or "all stale".
        """
        requested = list(dict.fromkeys(ids))
        result = Classification()
        if not requested:
            return result

        now = now or utcnow()
        try:
            rows = self.store.freshness_rows(requested)
        except PersistenceError as e:
            log.error(f"Failed to get stale thing ids: {e}")
            raise ClassificationError(f"could not classify {len(requested)} ids: {e}") from e

        stored = {thing_id: (last_cached, version) for thing_id, last_cached, version in rows}
        for thing_id in requested:
            if thing_id not in stored:
                result.stale.append(thing_id)
                result.missing.append(thing_id)
                continue
            last_cached, version = stored[thing_id]
            if is_fresh(last_cached, version, now, self.ttl, self.min_schema_version):
                result.fresh.append(thing_id)
            else:
                result.stale.append(thing_id)

        log.debug(
            f"Classified {len(requested)} ids: {len(result.fresh)} fresh, "
            f"{len(result.stale)} stale ({len(result.missing)} never cached)"
        )
        return result

    def stale_ids(self, ids: Iterable[str], now: Optional[dt.datetime] = None) -> List[str]:
        return self.classify(ids, now=now).stale
