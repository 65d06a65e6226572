# things.py – cache local des Things BGG (SQLAlchemy)

from __future__ import annotations

import re
import uuid
from typing import Any, Dict

from sqlalchemy import (
    Column, String, Integer, Float, Text, DateTime, ForeignKey, Table,
)
from sqlalchemy.orm import relationship

from meeple.database import Base, utcnow


# Table d'association Thing <-> Mechanic, une ligne par paire
thing_mechanics = Table(
    "thing_mechanics",
    Base.metadata,
    Column("thing_id", String, ForeignKey("things.id", ondelete="CASCADE"),
           primary_key=True, index=True),
    Column("mechanic_id", String, ForeignKey("mechanics.id", ondelete="CASCADE"),
           primary_key=True, index=True),
    Column("inserted_at", DateTime, nullable=False, default=utcnow),
)


class Thing(Base):
    """One cached BoardGameGeek thing (a game)."""
    __tablename__ = "things"

    id            = Column(String, primary_key=True)   # objectid BGG
    type          = Column(String, nullable=False, index=True)
    subtype       = Column(String)
    thumbnail     = Column(String)
    image         = Column(String)
    primary_name  = Column(String, index=True)
    description   = Column(Text)
    yearpublished = Column(Integer)
    minplayers    = Column(Integer)
    maxplayers    = Column(Integer)
    playingtime   = Column(Integer)
    minplaytime   = Column(Integer)
    maxplaytime   = Column(Integer)
    minage        = Column(Integer)
    usersrated    = Column(Integer)
    average       = Column(Float)
    bayesaverage  = Column(Float)
    rank          = Column(Integer)                    # NULL = "Not Ranked"
    owned         = Column(Integer)
    averageweight = Column(Float)

    mechanics_checksum = Column(String, index=True)
    schema_version     = Column(Integer, index=True)
    last_cached        = Column(DateTime, index=True)  # NULL = jamais caché

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)

    mechanics = relationship(
        "Mechanic",
        secondary=thing_mechanics,
        back_populates="things",
        lazy="selectin",
        order_by="Mechanic.name",
    )

    def __repr__(self):
        return f"<Thing(id={self.id}, name={self.primary_name!r}, v{self.schema_version})>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "subtype": self.subtype,
            "thumbnail": self.thumbnail,
            "image": self.image,
            "primary_name": self.primary_name,
            "description": self.description,
            "yearpublished": self.yearpublished,
            "minplayers": self.minplayers,
            "maxplayers": self.maxplayers,
            "playingtime": self.playingtime,
            "minplaytime": self.minplaytime,
            "maxplaytime": self.maxplaytime,
            "minage": self.minage,
            "usersrated": self.usersrated,
            "average": self.average,
            "bayesaverage": self.bayesaverage,
            "rank": self.rank,
            "owned": self.owned,
            "averageweight": self.averageweight,
            "schema_version": self.schema_version,
            "last_cached": self.last_cached.isoformat() if self.last_cached else None,
            "mechanics": [m.to_dict() for m in self.mechanics],
        }


class Mechanic(Base):
    """A BGG mechanic, shared by many things."""
    __tablename__ = "mechanics"

    id         = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name       = Column(String, nullable=False, unique=True)
    slug       = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, default=utcnow)

    things = relationship(
        "Thing",
        secondary=thing_mechanics,
        back_populates="mechanics",
        lazy="select",
    )

    def __repr__(self):
        return f"<Mechanic(name={self.name!r}, slug={self.slug!r})>"

    @staticmethod
    def generate_slug(name: str) -> str:
        """URL-friendly slug: "Hand Management" -> "hand-management"."""
        slug = name.lower()
        slug = re.sub(r"[^a-z0-9\s\-]", "", slug)
        slug = re.sub(r"[\s\-]+", "-", slug)
        return slug.strip("-")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "slug": self.slug}
