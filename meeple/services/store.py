# meeple/services/store.py
# ============================================================================
# Record Store : upsert idempotent des Things + réconciliation des mechanics
# Une transaction par Thing, jamais une transaction par batch.
# ============================================================================

from __future__ import annotations

import datetime as dt
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from meeple.config import settings
from meeple.database import SessionLocal, utcnow
from meeple.db.things import Mechanic, Thing, thing_mechanics
from meeple.models.parsed_thing import ParsedThing
from meeple.services.errors import PersistenceError, UpsertValidationError
from meeple.services.parsing import clean_str, parse_float, parse_int

log = logging.getLogger(__name__)

INT_FIELDS = (
    "yearpublished", "minplayers", "maxplayers", "playingtime", "minplaytime",
    "maxplaytime", "minage", "usersrated", "rank", "owned",
)
FLOAT_FIELDS = ("average", "bayesaverage", "averageweight")
STR_FIELDS = ("subtype", "thumbnail", "image", "primary_name", "description")


def clean_mechanic_names(names: Optional[Iterable[str]]) -> List[str]:
    """Trimmed, non-blank, de-duplicated names in first-seen order."""
    seen = []
    for name in names or []:
        if not isinstance(name, str):
            continue
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def mechanics_checksum(names: Sequence[str]) -> Optional[str]:
    """sha256 over the sorted name set; None for an empty set."""
    if not names:
        return None
    joined = "|".join(sorted(set(names)))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def _slug_for(name: str) -> str:
    slug = Mechanic.generate_slug(name)
    # Nom sans aucun caractère "sluggable" : on retombe sur un hash stable
    return slug or "mechanic-" + hashlib.sha1(name.encode("utf-8")).hexdigest()[:10]


@dataclass
class UpsertReport:
    """Outcome of upserting one batch of parsed things."""
    things: List[Thing] = field(default_factory=list)
    failures: List[UpsertValidationError] = field(default_factory=list)


class RecordStore:
    """Durable keyed storage for cached things and their mechanics."""

    def __init__(self, session_factory=SessionLocal, schema_version: Optional[int] = None):
        self._session_factory = session_factory
        self.schema_version = settings.CACHE_SCHEMA_VERSION if schema_version is None else schema_version

    # ------------------------------------------------------------------ reads
    def get_by_ids(self, ids: Iterable[str]) -> List[Thing]:
        """Point lookup; ids absent from storage are simply missing from the result."""
        return self.find(ids)

    def freshness_rows(self, ids: Iterable[str]) -> List[Tuple[str, Optional[dt.datetime], Optional[int]]]:
        """(id, last_cached, schema_version) for every stored id among `ids`."""
        ids = list(ids)
        if not ids:
            return []
        try:
            with self._session_factory() as db:
                rows = db.execute(
                    select(Thing.id, Thing.last_cached, Thing.schema_version)
                    .where(Thing.id.in_(ids))
                ).all()
        except SQLAlchemyError as e:
            log.error(f"Failed to read freshness of {len(ids)} things: {e}", exc_info=True)
            raise PersistenceError(f"failed to read freshness rows: {e}") from e
        return [tuple(row) for row in rows]

    def find(self, ids: Iterable[str], criteria: Sequence = ()) -> List[Thing]:
        """
        Things among `ids` matching every SQL criterion, mechanics attached.

        Rows come back in stored insertion/update order, which is what the
        reader's stable sort falls back on for ties.
        """
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []
        stmt = (
            select(Thing)
            .where(Thing.id.in_(ids), *criteria)
            .order_by(Thing.updated_at, Thing.created_at, Thing.id)
        )
        try:
            with self._session_factory() as db:
                return list(db.execute(stmt).scalars().unique().all())
        except SQLAlchemyError as e:
            log.error(f"Failed to read things: {e}", exc_info=True)
            raise PersistenceError(f"failed to read things: {e}") from e

    def resolve_mechanic_ids(self, values: Iterable[str]) -> List[Optional[str]]:
        """Map each mechanic id or slug to a stored mechanic id (None when unknown)."""
        values = list(values)
        if not values:
            return []
        try:
            with self._session_factory() as db:
                found = db.execute(
                    select(Mechanic.id, Mechanic.slug)
                    .where(or_(Mechanic.id.in_(values), Mechanic.slug.in_(values)))
                ).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to resolve mechanics: {e}") from e

        by_key = {}
        for mechanic_id, slug in found:
            by_key[mechanic_id] = mechanic_id
            by_key.setdefault(slug, mechanic_id)
        return [by_key.get(v) for v in values]

    def most_popular_mechanics(self, limit: int = 20) -> List[Tuple[Mechanic, int]]:
        """Mechanics ordered by how many cached things carry them."""
        usage = func.count(thing_mechanics.c.thing_id).label("usage")
        stmt = (
            select(Mechanic, usage)
            .join(thing_mechanics, thing_mechanics.c.mechanic_id == Mechanic.id)
            .group_by(Mechanic.id)
            .order_by(usage.desc(), Mechanic.name)
            .limit(limit)
        )
        try:
            with self._session_factory() as db:
                return [(m, count) for m, count in db.execute(stmt).all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to rank mechanics: {e}") from e

    # ----------------------------------------------------------------- writes
    def upsert(self, parsed: ParsedThing, now: Optional[dt.datetime] = None) -> Thing:
        """
        Insert or update one thing, then reconcile its mechanics.

        Raises:
            UpsertValidationError: the record is unusable (blank id or type)
            PersistenceError: storage failed; nothing of this record is committed
        """
        thing_id = clean_str(parsed.id)
        if thing_id is None:
            raise UpsertValidationError(parsed.id, "id", "can't be blank")
        thing_type = clean_str(parsed.type)
        if thing_type is None:
            raise UpsertValidationError(thing_id, "type", "can't be blank")

        names = clean_mechanic_names(parsed.mechanics)
        checksum = mechanics_checksum(names)
        now = now or utcnow()

        try:
            try:
                return self._write(thing_id, thing_type, parsed, names, checksum, now)
            except IntegrityError as e:
                # Un autre writer a inséré le même Thing / la même mechanic
                # entre notre lecture et notre commit : la ligne existe, on rejoue.
                log.info(f"Concurrent write on thing {thing_id}, retrying upsert: {e.orig}")
                return self._write(thing_id, thing_type, parsed, names, checksum, now)
        except SQLAlchemyError as e:
            log.error(f"Failed to upsert thing {thing_id}: {e}", exc_info=True)
            raise PersistenceError(f"failed to upsert thing {thing_id}: {e}") from e

    def upsert_many(
        self,
        records: Iterable[ParsedThing],
        now: Optional[dt.datetime] = None,
        report: Optional[UpsertReport] = None,
    ) -> UpsertReport:
        """
        Upsert each record in its own transaction.

        Validation failures are collected and the rest of the batch goes on;
        a PersistenceError propagates. Records written before it stay written
        and are already in `report` when the caller passed one.
        """
        report = report if report is not None else UpsertReport()
        for parsed in records:
            try:
                report.things.append(self.upsert(parsed, now=now))
            except UpsertValidationError as e:
                log.warning(f"Failed to upsert thing {e.thing_id}: {e.field} {e.message}")
                report.failures.append(e)
        return report

    def _write(self, thing_id, thing_type, parsed, names, checksum, now) -> Thing:
        with self._session_factory() as db:
            try:
                thing = db.get(Thing, thing_id)
                if thing is None:
                    # Collection vide explicite : chargée, donc lisible après fermeture de la session
                    thing = Thing(id=thing_id, mechanics=[])
                    db.add(thing)

                thing.type = thing_type
                self._apply_scalars(thing, parsed)
                thing.last_cached = now
                # schema_version ne régresse jamais
                thing.schema_version = max(thing.schema_version or 0, self.schema_version)

                current = list(thing.mechanics)
                if thing.mechanics_checksum != checksum:
                    wanted = self._ensure_mechanics(db, names)
                    self._replace_mechanics(thing, current, wanted)
                    thing.mechanics_checksum = checksum
                    log.debug(f"Thing {thing_id}: mechanics rebuilt ({len(wanted)} tags)")

                db.commit()
            except Exception:
                db.rollback()
                raise
            return thing

    @staticmethod
    def _apply_scalars(thing: Thing, parsed: ParsedThing) -> None:
        for name in STR_FIELDS:
            setattr(thing, name, clean_str(getattr(parsed, name, None)))
        for name in INT_FIELDS:
            setattr(thing, name, parse_int(getattr(parsed, name, None)))
        for name in FLOAT_FIELDS:
            setattr(thing, name, parse_float(getattr(parsed, name, None)))

    @staticmethod
    def _ensure_mechanics(db, names: List[str]) -> List[Mechanic]:
        """Look up or create a Mechanic per name; name or slug collisions reuse the existing row."""
        if not names:
            return []
        slugs = {name: _slug_for(name) for name in names}
        existing = db.execute(
            select(Mechanic).where(
                or_(Mechanic.name.in_(names), Mechanic.slug.in_(set(slugs.values())))
            )
        ).scalars().all()
        by_name = {m.name: m for m in existing}
        by_slug = {m.slug: m for m in existing}

        mechanics: List[Mechanic] = []
        for name in names:
            mechanic = by_name.get(name) or by_slug.get(slugs[name])
            if mechanic is None:
                mechanic = Mechanic(name=name, slug=slugs[name])
                db.add(mechanic)
                by_name[name] = mechanic
                by_slug[mechanic.slug] = mechanic
            if mechanic not in mechanics:
                mechanics.append(mechanic)
        return mechanics

    @staticmethod
    def _replace_mechanics(thing: Thing, current: List[Mechanic], wanted: List[Mechanic]) -> None:
        for mechanic in current:
            if mechanic not in wanted:
                thing.mechanics.remove(mechanic)
        for mechanic in wanted:
            if mechanic not in current:
                thing.mechanics.append(mechanic)
