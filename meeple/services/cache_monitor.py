"""Read-only statistics over the thing cache."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError

from meeple.config import settings
from meeple.database import SessionLocal, utcnow
from meeple.db.things import Thing
from meeple.services.errors import PersistenceError

log = logging.getLogger(__name__)


class CacheMonitor:
    """Aggregates freshness figures for /metrics and the logs."""

    def __init__(self, session_factory=SessionLocal, ttl: Optional[dt.timedelta] = None,
                 min_schema_version: Optional[int] = None):
        self._session_factory = session_factory
        self.ttl = ttl if ttl is not None else dt.timedelta(days=settings.CACHE_TTL_DAYS)
        self.min_schema_version = settings.CACHE_SCHEMA_VERSION if min_schema_version is None else min_schema_version

    def _count(self, db, *criteria) -> int:
        return db.execute(select(func.count()).select_from(Thing).where(*criteria)).scalar_one()

    def _fresh_criteria(self, now: dt.datetime):
        return and_(
            Thing.last_cached.is_not(None),
            Thing.last_cached >= now - self.ttl,
            Thing.schema_version >= self.min_schema_version,
        )

    def cache_stats(self, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        try:
            with self._session_factory() as db:
                total = self._count(db)
                fresh = self._count(db, self._fresh_criteria(now))
                cached_at = db.execute(
                    select(Thing.last_cached).where(Thing.last_cached.is_not(None))
                ).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to compute cache stats: {e}") from e

        # Moyenne calculée en Python : pas d'EXTRACT(EPOCH) portable
        ages = [(now - ts).total_seconds() for ts in cached_at]
        avg_age_days = (sum(ages) / len(ages)) / 86400 if ages else 0.0
        hit_rate = fresh / total * 100 if total else 0.0

        return {
            "total_cached_items": total,
            "fresh_items": fresh,
            "stale_items": total - fresh,
            "cache_hit_rate": round(hit_rate, 2),
            "average_cache_age_days": round(avg_age_days, 2),
        }

    def freshness_distribution(self, now: Optional[dt.datetime] = None) -> Dict[str, int]:
        """Counts per age band: < 1 day, 1-3, 3-7, > 7 days, never cached."""
        now = now or utcnow()
        one_day = now - dt.timedelta(days=1)
        three_days = now - dt.timedelta(days=3)
        seven_days = now - dt.timedelta(days=7)
        lc = Thing.last_cached
        try:
            with self._session_factory() as db:
                return {
                    "very_fresh": self._count(db, lc > one_day),
                    "fresh": self._count(db, lc > three_days, lc <= one_day),
                    "aging": self._count(db, lc > seven_days, lc <= three_days),
                    "stale": self._count(db, lc <= seven_days),
                    "never_cached": self._count(db, lc.is_(None)),
                }
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to compute freshness distribution: {e}") from e

    def oldest_cached(self, limit: int = 10) -> List[Thing]:
        """Oldest cached things, the next candidates for a refresh."""
        try:
            with self._session_factory() as db:
                return list(db.execute(
                    select(Thing)
                    .where(Thing.last_cached.is_not(None))
                    .order_by(Thing.last_cached.asc())
                    .limit(limit)
                ).scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to list oldest things: {e}") from e

    def log_cache_performance(self) -> Dict[str, Any]:
        stats = self.cache_stats()
        log.info(
            "BGG cache: %d items, %d fresh, %d stale, hit rate %.2f%%, avg age %.2f days",
            stats["total_cached_items"], stats["fresh_items"], stats["stale_items"],
            stats["cache_hit_rate"], stats["average_cache_age_days"],
        )
        return stats
