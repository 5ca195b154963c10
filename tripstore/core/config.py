from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., APP_NAME, DEBUG, DATA_DIR, DB_FILENAME, STRICT_BOUNDARY_CHECKS).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "Trip Data Store"
    debug: bool = False
    version: str = "0.1.0"

    # Data & persistence
    data_dir: Path = Path("data")
    db_filename: str = "trips.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided

    # New trip defaults
    default_currency: str = "EUR"

    # When true, bulk delta writes that leave dangling links are rejected
    # instead of only being logged.
    strict_boundary_checks: bool = False

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        currency = self.default_currency.strip().upper()
        if len(currency) != 3:
            raise ValueError(
                f"default_currency must be a 3-letter code, got '{self.default_currency}'"
            )
        self.default_currency = currency


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
