"""Configuration management for the library circulation server.

Settings are loaded from the environment (``LIBRARY_CIRCULATION_`` prefix) or a
``.env`` file and validated with pydantic-settings. Transaction budgets used by
the consistency coordinator live here so that operators can tune them without
touching code.
"""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Server configuration.

    Covers three concerns:
    - identity and transport of the tool server
    - where the transactional store lives
    - how long a single circulation transaction may wait and run
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_CIRCULATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-circulation",
        description="Server name announced to tool clients",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    transport: str = Field(
        default="stdio",
        description="Primary transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path, used when database_url is unset",
    )

    database_url: str | None = Field(
        default=None,
        description="Explicit SQLAlchemy URL (e.g. postgresql+psycopg://...)",
        repr=False,
    )

    # === Transaction Budgets ===

    transaction_max_wait_ms: int = Field(
        default=10_000,
        description="Time a transaction may spend acquiring the store before giving up",
        ge=1,
    )

    transaction_timeout_ms: int = Field(
        default=20_000,
        description="Time a single unit of work may run before it is rolled back",
        ge=1,
    )

    transaction_max_attempts: int = Field(
        default=3,
        description="Attempts allowed for lock or serialization failures",
        ge=1,
        le=10,
    )

    # === Circulation Defaults ===

    default_reservation_expiry_days: int = Field(
        default=7,
        description="Reservation expiry used when a library policy is misconfigured",
        gt=0,
    )

    default_page_size: int = Field(default=10, ge=1, le=100)

    max_page_size: int = Field(default=100, ge=1, le=500)

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        """Keep server names readable in client listings."""
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @model_validator(mode="after")
    def validate_budgets(self) -> "ServerConfig":
        """The execution budget cannot be shorter than the wait budget."""
        if self.transaction_timeout_ms < self.transaction_max_wait_ms:
            raise ValueError("transaction_timeout_ms must be >= transaction_max_wait_ms")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return self

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    @property
    def transaction_max_wait(self) -> float:
        """Wait budget in seconds."""
        return self.transaction_max_wait_ms / 1000

    @property
    def transaction_timeout(self) -> float:
        """Execution budget in seconds."""
        return self.transaction_timeout_ms / 1000

    def get_database_url(self) -> str:
        """Get the SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path.absolute()}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the process-wide configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
