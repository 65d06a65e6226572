# database.py – SQLAlchemy setup (engine, sessions, Base)

import datetime as dt
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

from meeple.config import settings


# Si on utilise SQLite, créer le dossier parent du fichier .db
if settings.DB_URL.startswith("sqlite:///") and ":memory:" not in settings.DB_URL:
    db_file = settings.DB_URL.replace("sqlite:///", "")
    parent_dir = Path(db_file).parent
    parent_dir.mkdir(parents=True, exist_ok=True)

# Engine & session
engine = create_engine(settings.DB_URL, future=True)
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)

# Base pour les modèles
Base = declarative_base()


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def init_db(bind=None):
    """Créer les tables si elles n'existent pas encore."""
    # Import local pour éviter le cycle d'import
    from meeple.db import things  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)


def ping(session_factory=SessionLocal) -> bool:
    """Cheap connectivity check used by the readiness probe."""
    with session_factory() as db:
        db.execute(text("SELECT 1"))
    return True
