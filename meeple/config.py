# config.py – Chargement des paramètres via pydantic-settings

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # -- Database --
    DB_URL: str = "sqlite:///data/meeple.db"

    # -- BoardGameGeek XML API --
    BGG_BASE_URL: str = "https://boardgamegeek.com/xmlapi2"
    BGG_API_TOKEN: Optional[str] = None  # bearer token (BGG l'exige depuis 2025)
    BGG_HTTP_TIMEOUT: float = 30.0       # secondes
    BGG_MAX_RETRIES: int = 3
    BGG_QUOTA_MAX: int = 30              # requêtes max par fenêtre
    BGG_QUOTA_WINDOW: float = 60.0       # secondes

    # -- Cache des Things --
    CACHE_TTL_DAYS: int = 7
    CACHE_SCHEMA_VERSION: int = 2        # bump => tout le cache devient stale
    REFRESH_BATCH_SIZE: int = 20         # limite pratique de /thing
    REFRESH_BATCH_DELAY: float = 1.0     # pause entre deux batches
    REFRESH_TIMEOUT: Optional[float] = None

    # -- Filtres --
    WEIGHT_SCALE_MAX: float = 5.0

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()
