"""
Configuration management for docrecords.

All configuration is done via environment variables. The library itself
only needs a StoreAdapter, so this module is used by the store factory and
the command line tool.

Invariants:
    - All settings have sensible defaults for local development
    - Credentials embedded in MONGO_URI are never logged

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and the dataclass defaults in sync
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported document store backends."""

    MONGO = "mongo"
    MEMORY = "memory"


@dataclass(frozen=True)
class MongoConfig:
    """MongoDB connection configuration.

    Attributes:
        uri: Connection string
        database: Database holding the record collections
        server_selection_timeout_ms: How long to wait for a usable server
        app_name: Application name reported to the server
    """

    uri: str = "mongodb://localhost:27017"
    database: str = "docrecords"
    server_selection_timeout_ms: int = 5000
    app_name: str = "docrecords"

    @classmethod
    def from_env(cls) -> MongoConfig:
        """Load configuration from environment variables."""
        return cls(
            uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
            database=os.getenv("MONGO_DATABASE", "docrecords"),
            server_selection_timeout_ms=int(
                os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")
            ),
            app_name=os.getenv("MONGO_APP_NAME", "docrecords"),
        )

    @property
    def redacted_uri(self) -> str:
        """Connection string with any password removed."""
        parts = urlsplit(self.uri)
        if parts.password is None:
            return self.uri
        netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
        return urlunsplit(parts._replace(netloc=netloc))


@dataclass(frozen=True)
class PagingConfig:
    """Range-based pagination defaults.

    Attributes:
        default_page_size: Page size when the caller does not give one
        max_page_size: Upper bound accepted from callers
    """

    default_page_size: int = 20
    max_page_size: int = 1000

    @classmethod
    def from_env(cls) -> PagingConfig:
        """Load configuration from environment variables."""
        return cls(
            default_page_size=int(os.getenv("PAGE_SIZE", "20")),
            max_page_size=int(os.getenv("MAX_PAGE_SIZE", "1000")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class RecordsConfig:
    """Complete docrecords configuration.

    Attributes:
        store_backend: Which document store backend to use
        mongo: MongoDB configuration (if store_backend is MONGO)
        paging: Pagination defaults
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.MONGO
    mongo: MongoConfig = field(default_factory=MongoConfig)
    paging: PagingConfig = field(default_factory=PagingConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> RecordsConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "mongo").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: mongo, memory")

        config = cls(
            store_backend=store_backend,
            mongo=MongoConfig.from_env(),
            paging=PagingConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store_backend == StoreBackend.MONGO:
            if not self.mongo.uri:
                raise ValueError("MONGO_URI is required when STORE_BACKEND=mongo")
            if not self.mongo.database:
                raise ValueError("MONGO_DATABASE is required when STORE_BACKEND=mongo")

        if self.paging.default_page_size < 1:
            raise ValueError("PAGE_SIZE must be at least 1")
        if self.paging.max_page_size < self.paging.default_page_size:
            raise ValueError("MAX_PAGE_SIZE must not be smaller than PAGE_SIZE")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "docrecords configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "mongo_uri": self.mongo.redacted_uri
                if self.store_backend == StoreBackend.MONGO
                else None,
                "mongo_database": self.mongo.database
                if self.store_backend == StoreBackend.MONGO
                else None,
                "page_size": self.paging.default_page_size,
                "log_level": self.observability.log_level,
            },
        )
