"""Shared fixtures: an in-memory database per test and sample things."""

import os

# Avant tout import de meeple : pas de fichier data/meeple.db pendant les tests
os.environ.setdefault("DB_URL", "sqlite:///:memory:")

import datetime as dt

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from meeple.database import Base, init_db, utcnow
from meeple.db.things import Thing
from meeple.models.parsed_thing import ParsedThing
from meeple.services.store import RecordStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def store(session_factory):
    return RecordStore(session_factory, schema_version=2)


@pytest.fixture
def now():
    return utcnow()


def make_parsed(thing_id, name=None, mechanics=None, **fields):
    """ParsedThing with string fields, the way the BGG gateway hands them over."""
    defaults = {
        "minplayers": "2",
        "maxplayers": "4",
        "minplaytime": "30",
        "maxplaytime": "60",
        "playingtime": "60",
        "average": "7.0",
        "averageweight": "2.5",
        "rank": "100",
    }
    defaults.update(fields)
    return ParsedThing(
        id=str(thing_id),
        primary_name=name or f"Game {thing_id}",
        mechanics=list(mechanics or []),
        **defaults,
    )


def insert_thing(session_factory, thing_id, last_cached=None, schema_version=2, **fields):
    """Raw insert bypassing the store, to stage cache states."""
    with session_factory() as db:
        thing = Thing(
            id=str(thing_id),
            type=fields.pop("type", "boardgame"),
            primary_name=fields.pop("primary_name", f"Game {thing_id}"),
            last_cached=last_cached,
            schema_version=schema_version,
            **fields,
        )
        db.add(thing)
        db.commit()
        return thing


def days_ago(now, days):
    return now - dt.timedelta(days=days)
