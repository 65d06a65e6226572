# meeple/services/reader.py
# ============================================================================
# Filtered Reader : filtres ANDés côté SQL (texte en Python), tri stable côté Python
# ============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import func, select

from meeple.config import settings
from meeple.db.things import Thing, thing_mechanics
from meeple.services.parsing import clean_str, parse_float, parse_int
from meeple.services.store import RecordStore

log = logging.getLogger(__name__)

WEIGHT_SCALE_MIN = 0.0

# Alias acceptés en entrée -> clé canonique
FILTER_ALIASES = {
    "name": "primary_name",
    "selected_mechanics": "mechanics",
}


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


@dataclass
class ThingFilters:
    """Independent predicates, ANDed together. None means "not applied"."""
    primary_name: Optional[str] = None
    players: Optional[int] = None
    playingtime: Optional[int] = None
    rank: Optional[int] = None
    average: Optional[float] = None
    averageweight_min: Optional[float] = None
    averageweight_max: Optional[float] = None
    description: Optional[str] = None
    mechanics: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]], weight_scale_max: Optional[float] = None) -> "ThingFilters":
        """
        Build filters from loosely typed input (query string, form).

        Unknown keys and blank values are ignored. A value that does not parse
        as the type its filter needs is ignored too, with a debug log.
        """
        scale_max = settings.WEIGHT_SCALE_MAX if weight_scale_max is None else weight_scale_max
        values: Dict[str, Any] = {}
        for key, value in (raw or {}).items():
            key = FILTER_ALIASES.get(key, key)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            values[key] = value

        filters = cls(
            primary_name=clean_str(values.get("primary_name")),
            description=clean_str(values.get("description")),
            players=cls._number(values, "players", parse_int),
            playingtime=cls._number(values, "playingtime", parse_int),
            rank=cls._number(values, "rank", parse_int),
            average=cls._number(values, "average", parse_float),
            averageweight_min=cls._number(values, "averageweight_min", parse_float),
            averageweight_max=cls._number(values, "averageweight_max", parse_float),
            mechanics=_as_list(values.get("mechanics")),
        )

        # Poids : une seule borne => l'autre prend le bout de l'échelle
        if filters.averageweight_min is not None and filters.averageweight_max is None:
            filters.averageweight_max = scale_max
        elif filters.averageweight_max is not None and filters.averageweight_min is None:
            filters.averageweight_min = WEIGHT_SCALE_MIN
        return filters

    @staticmethod
    def _number(values: Dict[str, Any], key: str, parse: Callable[[Any], Any]):
        if key not in values:
            return None
        parsed = parse(values[key])
        if parsed is None:
            log.debug(f"Ignoring filter {key}={values[key]!r}: not a number")
        return parsed

    def is_empty(self) -> bool:
        return self == ThingFilters()


# --------------------------------------------------------------------------- tri
SORT_ALIASES = {
    "name": "primary_name",
    "minplayers": "players",
    "rating": "average",
    "weight": "averageweight",
}
DEFAULT_SORT = "primary_name"


def _name_key(thing: Thing) -> Optional[str]:
    name = clean_str(thing.primary_name)
    return name.casefold() if name else None


SORT_KEYS: Dict[str, Callable[[Thing], Any]] = {
    "primary_name": _name_key,
    "players": lambda t: parse_int(t.minplayers),
    "average": lambda t: parse_float(t.average),
    "averageweight": lambda t: parse_float(t.averageweight),
}


def normalize_sort(sort_field: Optional[str], sort_direction: Optional[str]) -> Tuple[str, str]:
    """Unknown field -> name ascending; unknown direction -> ascending."""
    field_name = SORT_ALIASES.get(sort_field or "", sort_field or "")
    if field_name not in SORT_KEYS:
        return DEFAULT_SORT, "asc"
    direction = "desc" if str(sort_direction or "").lower() == "desc" else "asc"
    return field_name, direction


def sort_things(things: Iterable[Thing], sort_field: Optional[str] = None, sort_direction: Optional[str] = "asc") -> List[Thing]:
    """
    Stable sort; records whose sort value is missing or garbage go last
    whatever the direction.
    """
    field_name, direction = normalize_sort(sort_field, sort_direction)
    key = SORT_KEYS[field_name]

    valued, missing = [], []
    for thing in things:
        value = key(thing)
        (missing if value is None else valued).append((value, thing))

    # sorted(reverse=True) garde l'ordre relatif des égalités
    valued.sort(key=lambda pair: pair[0], reverse=(direction == "desc"))
    return [t for _, t in valued] + [t for _, t in missing]


# ------------------------------------------------------------------------ reader
class FilteredReader:
    """Reads a requested id set back from storage, filtered and sorted."""

    def __init__(self, store: RecordStore, weight_scale_max: Optional[float] = None):
        self.store = store
        self.weight_scale_max = weight_scale_max

    def read(
        self,
        ids: Iterable[str],
        filters: Optional[Mapping[str, Any] | ThingFilters] = None,
        sort_field: Optional[str] = None,
        sort_direction: Optional[str] = "asc",
    ) -> List[Thing]:
        """
        Stored things among `ids` matching every filter, mechanics attached.

        Raises:
            PersistenceError: storage could not be read
        """
        if not isinstance(filters, ThingFilters):
            filters = ThingFilters.from_mapping(filters, weight_scale_max=self.weight_scale_max)

        criteria = self.criteria(filters)
        if criteria is None:
            return []
        things = [t for t in self.store.find(ids, criteria) if self.matches_text(t, filters)]
        return sort_things(things, sort_field, sort_direction)

    @staticmethod
    def matches_text(thing: Thing, filters: ThingFilters) -> bool:
        """Unicode-aware case-insensitive substring match on name and description."""
        for needle, haystack in (
            (filters.primary_name, thing.primary_name),
            (filters.description, thing.description),
        ):
            if needle is None:
                continue
            if haystack is None or needle.casefold() not in haystack.casefold():
                return False
        return True

    def criteria(self, filters: ThingFilters) -> Optional[list]:
        """SQL criteria for `filters`; None when nothing can match."""
        criteria = []

        # Nom et description : filtrés en Python (matches_text), lower() SQLite ignore les accents
        if filters.primary_name is not None:
            criteria.append(Thing.primary_name.is_not(None))
        if filters.description is not None:
            criteria.append(Thing.description.is_not(None))

        # Les NULL (valeurs BGG illisibles) ne passent jamais une comparaison
        if filters.players is not None:
            criteria.append(Thing.minplayers <= filters.players)
            criteria.append(Thing.maxplayers >= filters.players)
        if filters.playingtime is not None:
            criteria.append(Thing.minplaytime <= filters.playingtime)
            criteria.append(Thing.maxplaytime >= filters.playingtime)
        if filters.rank is not None:
            criteria.append(Thing.rank > 0)
            criteria.append(Thing.rank <= filters.rank)
        if filters.average is not None:
            criteria.append(Thing.average >= filters.average)
        if filters.averageweight_min is not None:
            criteria.append(Thing.averageweight >= filters.averageweight_min)
        if filters.averageweight_max is not None:
            criteria.append(Thing.averageweight <= filters.averageweight_max)

        if filters.mechanics:
            mechanic_ids = self.store.resolve_mechanic_ids(filters.mechanics)
            if any(m is None for m in mechanic_ids):
                log.debug(f"Unknown mechanics in filter {filters.mechanics}, nothing can match")
                return None
            wanted = sorted(set(mechanic_ids))
            tm = thing_mechanics.c
            having_all = (
                select(tm.thing_id)
                .where(tm.mechanic_id.in_(wanted))
                .group_by(tm.thing_id)
                .having(func.count(func.distinct(tm.mechanic_id)) == len(wanted))
            )
            criteria.append(Thing.id.in_(having_all))

        return criteria
