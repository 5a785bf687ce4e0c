import logging
import os
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource
from typing_extensions import Self

from searchsync.domain.index.handler.batch_index import FULLTEXT_QUEUE, VECTOR_QUEUE
from searchsync.domain.index.service.indexer import DEFAULT_PAGE_SIZE, MAX_PAGES
from searchsync.infrastructure.search.fulltext.config import MeilisearchConfig
from searchsync.infrastructure.search.vector.config import VectorConfig

DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "searchsync"


# =============================================================================
# Application Configuration
# =============================================================================


def data_dir() -> Path:
    """SEARCHSYNC_DATA_DIR, or ~/.local/share/searchsync."""
    return Path(os.environ.get("SEARCHSYNC_DATA_DIR", DEFAULT_DATA_DIR)).expanduser()


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Load settings from YAML file specified by SEARCHSYNC_CONFIG_FILE env var."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        yaml_data = self._load_yaml_config()
        return yaml_data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._load_yaml_config()

    def _load_yaml_config(self) -> dict[str, Any]:
        config_file = os.environ.get("SEARCHSYNC_CONFIG_FILE")
        if config_file:
            path = Path(config_file)
            if path.exists():
                return yaml.safe_load(path.read_text()) or {}
        return {}


class Server(BaseModel):
    """HTTP server configuration (nested in Config, uses env_nested_delimiter)."""

    name: str = "searchsync"
    version: str = "0.1.0"
    host: str = "127.0.0.1"
    port: int = 8080


class DatabaseConfig(BaseModel):
    """Database configuration.

    The url field uses empty string as sentinel to indicate "SQLite file in the
    data directory"; Config's model_validator fills it in.
    """

    url: str = ""
    echo: bool = False
    auto_migrate: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @property
    def file(self) -> str | None:
        """Get log file path from SEARCHSYNC_LOG_FILE env var."""
        return os.environ.get("SEARCHSYNC_LOG_FILE")


class IndexerConfig(BaseModel):
    """Sweep pagination settings."""

    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    max_pages: int = Field(default=MAX_PAGES, ge=1)
    partitions: int = Field(default=1, ge=1)  # Default partition count for CLI sweeps


class LockConfig(BaseModel):
    """Reindex lock settings.

    There is deliberately no default for the staleness threshold: how long a
    silent lock is honoured depends on how slow the deployment's backends are.
    """

    stale_after_seconds: float = Field(gt=0)


class QueueConfig(BaseModel):
    """Durable queue and worker settings."""

    fulltext_queue: str = FULLTEXT_QUEUE
    vector_queue: str = VECTOR_QUEUE
    poll_interval: float = 0.5  # Seconds between polls when a queue is empty
    max_retries: int | None = None  # None keeps each handler's own limit
    claim_timeout: float = 300.0  # Seconds before a claimed job counts as abandoned
    concurrency: int = Field(default=1, ge=1)  # Workers per queue
    stale_claim_interval: float = 60.0  # Seconds between stale-claim sweeps


class WorkerConfig(BaseModel):
    enabled: bool = False  # Run the worker pool inside the API server


class Config(BaseSettings):
    server: Server = Server()
    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    indexer: IndexerConfig = IndexerConfig()
    lock: LockConfig
    queue: QueueConfig = QueueConfig()
    worker: WorkerConfig = WorkerConfig()
    fulltext: MeilisearchConfig | None = None  # No full-text strategy when unset
    vector: VectorConfig | None = None  # No vector strategy when unset
    modules: list[str] = []  # "package.module:attribute" paths to SearchModuleConfig objects

    model_config = {
        "env_prefix": "SEARCHSYNC_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",  # Allows SEARCHSYNC_LOCK__STALE_AFTER_SECONDS
    }

    @model_validator(mode="after")
    def derive_database_url(self) -> Self:
        """Point an unset database URL at a SQLite file under SEARCHSYNC_DATA_DIR."""
        if not self.database.url:
            self.database = DatabaseConfig(
                url=f"sqlite+aiosqlite:///{data_dir() / 'searchsync.db'}",
                echo=self.database.echo,
                auto_migrate=self.database.auto_migrate,
            )
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML config.

        Priority (highest to lowest):
        1. init_settings - values passed to Config()
        2. env_settings - environment variables
        3. dotenv_settings - .env file
        4. yaml_settings - SEARCHSYNC_CONFIG_FILE yaml
        5. file_secret_settings - secrets from files
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def configure_logging(config: LoggingConfig) -> None:
    """Configure Python logging based on config.

    Call early in startup so every module logger picks up the handlers.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(config.level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(config.format, datefmt=config.date_format)

    if config.file:
        log_path = Path(config.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_path)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(config.level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)
    logging.getLogger("chromadb").setLevel(logging.INFO)
    logging.getLogger("sentence_transformers").setLevel(logging.INFO)

    logging.debug("Logging configured: level=%s, file=%s", config.level, config.file)
