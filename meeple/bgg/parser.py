# bgg/parser.py – XML BGG -> ParsedThing / CollectionItem

from __future__ import annotations

import html
import logging
from typing import List, Optional
from xml.etree import ElementTree as ET

from meeple.models.parsed_thing import CollectionItem, ParsedThing

log = logging.getLogger(__name__)

MECHANIC_LINK = "boardgamemechanic"

# <tag value="..."/> directement sous <item>
_ITEM_VALUE_FIELDS = (
    "yearpublished", "minplayers", "maxplayers", "playingtime",
    "minplaytime", "maxplaytime", "minage",
)
# <tag value="..."/> sous <statistics><ratings>
_RATING_VALUE_FIELDS = (
    "usersrated", "average", "bayesaverage", "owned", "averageweight",
)


class BggParseError(Exception):
    """Raised when a BGG payload is not the XML we expect."""
    pass


class BggErrorResponse(Exception):
    """The payload is a BGG <errors>/<error> document."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _root(xml_text: str) -> ET.Element:
    try:
        root = ET.fromstring(xml_text.strip())
    except ET.ParseError as e:
        raise BggParseError(f"failed to parse XML: {e}") from e

    if root.tag in ("errors", "error"):
        message = root.findtext(".//message") or root.findtext("message") or "unknown error"
        raise BggErrorResponse(message.strip())
    return root


def _value(elem: Optional[ET.Element]) -> Optional[str]:
    if elem is None:
        return None
    return elem.get("value")


def _text(elem: Optional[ET.Element]) -> Optional[str]:
    if elem is None or elem.text is None:
        return None
    return elem.text.strip() or None


def _primary_name(item: ET.Element) -> Optional[str]:
    names = item.findall("name")
    for name in names:
        if name.get("type") == "primary":
            return name.get("value")
    return names[0].get("value") if names else None


def _board_game_rank(ratings: Optional[ET.Element]) -> Optional[str]:
    if ratings is None:
        return None
    ranks = ratings.findall("./ranks/rank")
    for rank in ranks:
        if rank.get("name") == "boardgame":
            return rank.get("value")
    return ranks[0].get("value") if ranks else None


def parse_things(xml_text: str) -> List[ParsedThing]:
    """Parse a /thing response into ParsedThing records (document order)."""
    root = _root(xml_text)
    if root.tag != "items":
        raise BggParseError(f"unexpected root element <{root.tag}>")

    things: List[ParsedThing] = []
    for item in root.findall("item"):
        thing_id = item.get("id")
        if not thing_id:
            log.warning("Skipping <item> without id in /thing response")
            continue

        description = _text(item.find("description"))
        thing = ParsedThing(
            id=thing_id,
            type=item.get("type") or "boardgame",
            thumbnail=_text(item.find("thumbnail")),
            image=_text(item.find("image")),
            primary_name=_primary_name(item),
            description=html.unescape(description) if description else None,
        )
        for field_name in _ITEM_VALUE_FIELDS:
            setattr(thing, field_name, _value(item.find(field_name)))

        ratings = item.find("./statistics/ratings")
        if ratings is not None:
            for field_name in _RATING_VALUE_FIELDS:
                setattr(thing, field_name, _value(ratings.find(field_name)))
        thing.rank = _board_game_rank(ratings)

        thing.mechanics = [
            link.get("value").strip()
            for link in item.findall("link")
            if link.get("type") == MECHANIC_LINK and (link.get("value") or "").strip()
        ]
        things.append(thing)

    return things


def parse_collection(xml_text: str) -> List[CollectionItem]:
    """Parse a /collection response into CollectionItem records."""
    root = _root(xml_text)
    if root.tag != "items":
        raise BggParseError(f"unexpected root element <{root.tag}>")

    items: List[CollectionItem] = []
    for item in root.findall("item"):
        object_id = item.get("objectid")
        if not object_id:
            raise BggParseError("collection <item> without objectid")
        items.append(CollectionItem(
            id=object_id,
            type=item.get("objecttype") or "thing",
            subtype=item.get("subtype"),
            primary_name=_text(item.find("name")),
            yearpublished=_text(item.find("yearpublished")),
        ))
    return items
