# meeple/models/parsed_thing.py
# ============================================================================
# Thing tel que renvoyé par la gateway BGG (aucune écriture en base)
# Les champs scalaires restent des str : BGG envoie tout en texte.
# ============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ParsedThing:
    """One <item> of a /thing response, loosely typed."""
    id: str
    type: str = "boardgame"
    subtype: Optional[str] = None
    thumbnail: Optional[str] = None
    image: Optional[str] = None
    primary_name: Optional[str] = None
    description: Optional[str] = None
    yearpublished: Optional[str] = None
    minplayers: Optional[str] = None
    maxplayers: Optional[str] = None
    playingtime: Optional[str] = None
    minplaytime: Optional[str] = None
    maxplaytime: Optional[str] = None
    minage: Optional[str] = None
    usersrated: Optional[str] = None
    average: Optional[str] = None
    bayesaverage: Optional[str] = None
    rank: Optional[str] = None
    owned: Optional[str] = None
    averageweight: Optional[str] = None
    mechanics: List[str] = field(default_factory=list)  # noms bruts des <link>


@dataclass
class CollectionItem:
    """One <item> of a /collection response."""
    id: str
    type: str = "thing"
    subtype: Optional[str] = None
    primary_name: Optional[str] = None
    yearpublished: Optional[str] = None
