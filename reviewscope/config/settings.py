"""Application settings using Pydantic Settings."""

import logging
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REVIEWSCOPE_",
        extra="ignore",
    )

    # Paths
    project_root: Path = Path(__file__).parent.parent.parent
    data_dir: Path = project_root / "data"
    raw_data_dir: Path = data_dir / "raw"
    db_dir: Path = data_dir / "db"

    # Database (an empty database_url means SQLite at sqlite_db_path)
    sqlite_db_path: Path = db_dir / "reviews.db"
    database_url: str = ""

    # Topic taxonomy file
    taxonomy_config_path: Path = project_root / "config.yaml"

    # OpenAI
    openai_api_key: str = ""
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 100

    # Fetching
    fetch_base_url: str = "http://localhost:8080"
    request_delay: float = 2.0
    max_retries: int = 3
    retry_delay: float = 2.0
    request_timeout: int = 30
    incremental_window_size: int = 50

    # Classification
    classify_threshold: float = 0.3
    classify_max_topics: int = 3

    # Logging
    log_level: str = "INFO"

    @property
    def sqlalchemy_url(self) -> str:
        """SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.sqlite_db_path}"


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
