"""Configuration settings for Files Manager using provider-agnostic patterns."""

import os
import re
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url

# -----------------------------------------------------------------------------
# Environment Variable Substitution
# -----------------------------------------------------------------------------

ENV_VAR_PATTERN = re.compile(r"\$\{env\.([A-Z_][A-Z0-9_]*)(?::=([^}]*))?\}")


def replace_env_vars(config: Any) -> Any:
    """Recursively replace ${env.VAR:=default} patterns in config."""
    if isinstance(config, dict):
        return {k: replace_env_vars(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [replace_env_vars(v) for v in config]
    elif isinstance(config, str):

        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            default = match.group(2)
            value = os.environ.get(var_name)
            if value is not None:
                return value
            if default is not None:
                return default
            raise ValueError(f"Environment variable {var_name} is required but not set")

        return ENV_VAR_PATTERN.sub(replacer, config)
    return config


# -----------------------------------------------------------------------------
# Metadata Storage Backend Configurations (Discriminated Union)
# -----------------------------------------------------------------------------


class SqliteStorageConfig(BaseModel):
    """SQLite storage backend configuration."""

    type: Literal["sqlite"] = "sqlite"
    db_path: str = Field(
        default="./files_manager.db",
        description="File path for the SQLite database",
    )

    @classmethod
    def sample_config(cls, db_name: str = "files_manager.db") -> dict[str, Any]:
        return {
            "type": "sqlite",
            "db_path": "${env.SQLITE_DB_PATH:=./" + db_name + "}",
        }


class PostgresStorageConfig(BaseModel):
    """PostgreSQL storage backend configuration."""

    type: Literal["postgres"] = "postgres"
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="files_manager", description="Database name")
    user: str = Field(default="files_manager", description="Database user")
    password: str | None = Field(default=None, description="Database password")
    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=20, description="Maximum overflow connections")

    @property
    def connection_url(self) -> str:
        """Generate SQLAlchemy connection URL."""
        return URL.create(
            "postgresql+asyncpg",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        ).render_as_string(hide_password=False)

    @classmethod
    def sample_config(cls) -> dict[str, Any]:
        return {
            "type": "postgres",
            "host": "${env.DB_HOST:=localhost}",
            "port": "${env.DB_PORT:=5432}",
            "database": "${env.DB_DATABASE:=files_manager}",
            "user": "${env.DB_USER:=files_manager}",
            "password": "${env.DB_PASSWORD}",
        }


StorageBackendConfig = Annotated[
    SqliteStorageConfig | PostgresStorageConfig,
    Field(discriminator="type"),
]


# -----------------------------------------------------------------------------
# Blob Storage Configuration
# -----------------------------------------------------------------------------


class LocalBlobStorageConfig(BaseModel):
    """Local filesystem storage for raw file content and derivatives."""

    type: Literal["local"] = "local"
    base_path: Path = Field(
        default=Path("/tmp/files_manager"),
        description="Root directory holding one file per blob key",
    )
    max_file_size_mb: int = Field(
        default=512,
        description="Maximum decoded payload size in MB",
    )

    @classmethod
    def sample_config(cls) -> dict[str, Any]:
        return {
            "type": "local",
            "base_path": "${env.FOLDER_PATH:=/tmp/files_manager}",
            "max_file_size_mb": 512,
        }


# -----------------------------------------------------------------------------
# Job Queue Configurations
# -----------------------------------------------------------------------------


class DatabaseQueueConfig(BaseModel):
    """Durable job queue stored in the metadata database."""

    type: Literal["database"] = "database"
    visibility_timeout: float = Field(
        default=300.0,
        description="Seconds before an unacknowledged claimed job is redelivered",
    )


class MemoryQueueConfig(BaseModel):
    """In-process job queue (not durable, development only)."""

    type: Literal["memory"] = "memory"


QueueBackendConfig = Annotated[
    DatabaseQueueConfig | MemoryQueueConfig,
    Field(discriminator="type"),
]


# -----------------------------------------------------------------------------
# Session Store Configurations
# -----------------------------------------------------------------------------


class RedisSessionConfig(BaseModel):
    """Redis-backed session lookup (token -> user id)."""

    type: Literal["redis"] = "redis"
    url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL, handed unchanged to redis.asyncio.from_url",
    )
    key_prefix: str = Field(default="auth_")

    @classmethod
    def sample_config(cls) -> dict[str, Any]:
        return {
            "type": "redis",
            "url": "${env.REDIS_URL:=redis://localhost:6379/0}",
        }


class MemorySessionConfig(BaseModel):
    """In-memory session lookup (tests and local development)."""

    type: Literal["memory"] = "memory"
    tokens: dict[str, str] = Field(default_factory=dict)


SessionBackendConfig = Annotated[
    RedisSessionConfig | MemorySessionConfig,
    Field(discriminator="type"),
]


# -----------------------------------------------------------------------------
# Worker / Logging / Server Configuration
# -----------------------------------------------------------------------------


class WorkerConfig(BaseModel):
    """Thumbnail worker pool configuration."""

    worker_count: int = Field(default=1, ge=1, description="Concurrent worker loops")
    max_attempts: int = Field(default=5, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    poll_interval: float = Field(default=1.0, gt=0.0)
    run_in_process: bool = Field(
        default=False,
        description="Start workers inside the API process",
    )
    metrics_port: int | None = Field(
        default=None,
        description="Port for the standalone worker process to serve Prometheus metrics on",
    )


class LoggingConfig(BaseModel):
    """Structured logging configuration."""

    level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    enable_metrics: bool = Field(default=True, description="Expose GET /metrics")


# -----------------------------------------------------------------------------
# Main Stack Configuration
# -----------------------------------------------------------------------------


class StackConfig(BaseModel):
    """Main configuration for the Files Manager stack."""

    version: int = Field(default=1, description="Config schema version")

    server: ServerConfig = Field(default_factory=ServerConfig)

    storage: StorageBackendConfig = Field(
        default_factory=SqliteStorageConfig,
        description="Metadata database backend",
    )

    blobs: LocalBlobStorageConfig = Field(default_factory=LocalBlobStorageConfig)

    queue: QueueBackendConfig = Field(
        default_factory=DatabaseQueueConfig,
        description="Thumbnail job queue backend",
    )

    sessions: SessionBackendConfig = Field(
        default_factory=RedisSessionConfig,
        description="Session store backend",
    )

    worker: WorkerConfig = Field(default_factory=WorkerConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StackConfig":
        """Create config from dict with environment variable substitution."""
        resolved = replace_env_vars(data)
        return cls.model_validate(resolved)

    @classmethod
    def sample_config(cls) -> dict[str, Any]:
        """Generate sample configuration for documentation."""
        return {
            "version": 1,
            "server": {
                "host": "0.0.0.0",
                "port": 5000,
            },
            "storage": PostgresStorageConfig.sample_config(),
            "blobs": LocalBlobStorageConfig.sample_config(),
            "queue": {"type": "database", "visibility_timeout": 300},
            "sessions": RedisSessionConfig.sample_config(),
            "worker": {"worker_count": 2, "max_attempts": 5},
        }


# -----------------------------------------------------------------------------
# Settings (for simple environment-based config)
# -----------------------------------------------------------------------------


class Settings(BaseSettings):
    """Simple settings for environment-based configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FILES_MANAGER_",
        env_file=".env",
        case_sensitive=False,
    )

    # Config file path (if using YAML config)
    config_file: Path | None = Field(
        default=None,
        description="Path to YAML configuration file",
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    # Quick-start settings (used to build default StackConfig)
    database_url: str = Field(default="sqlite+aiosqlite:///./files_manager.db")
    folder_path: Path = Field(default=Path("/tmp/files_manager"))
    redis_url: str | None = Field(default="redis://localhost:6379/0")
    worker_count: int = Field(default=1)
    run_workers_in_process: bool = Field(default=False)
    enable_metrics: bool = Field(default=True)
    worker_metrics_port: int | None = Field(default=None)

    def to_stack_config(self) -> StackConfig:
        """Convert simple settings to full StackConfig."""
        url = make_url(self.database_url)
        backend = url.get_backend_name()
        if backend == "sqlite":
            storage_backend: StorageBackendConfig = SqliteStorageConfig(
                db_path=url.database or "./files_manager.db"
            )
        elif backend == "postgresql":
            defaults = PostgresStorageConfig()
            storage_backend = PostgresStorageConfig(
                host=url.host or defaults.host,
                port=url.port or defaults.port,
                database=url.database or defaults.database,
                user=url.username or defaults.user,
                password=url.password,
            )
        else:
            raise ValueError(f"Unsupported database URL backend: {backend}")

        if self.redis_url:
            sessions: SessionBackendConfig = RedisSessionConfig(url=self.redis_url)
        else:
            sessions = MemorySessionConfig()

        return StackConfig(
            server=ServerConfig(
                host=self.host, port=self.port, enable_metrics=self.enable_metrics
            ),
            storage=storage_backend,
            blobs=LocalBlobStorageConfig(base_path=self.folder_path),
            sessions=sessions,
            worker=WorkerConfig(
                worker_count=self.worker_count,
                run_in_process=self.run_workers_in_process,
                metrics_port=self.worker_metrics_port,
            ),
            logging=LoggingConfig(level=self.log_level, json_logs=self.json_logs),
        )


# Global settings instance
settings = Settings()
