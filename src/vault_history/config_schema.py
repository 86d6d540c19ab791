"""Configuration schema for vault_history.

Pydantic models for the sections of the YAML config file.  ``load_config``
in ``config`` layers CLI arguments and environment variables on top.

Usage:
    from vault_history.config_schema import build_config

    unified = build_config(load_hierarchical_config())
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Local vault database."""

    url: str | None = Field(
        default=None,
        description="SQLite path / sqlite:/// URL, or an SQLAlchemy URL",
    )

    model_config = {"frozen": True}


class HistoryConfig(BaseModel):
    """Revision engine behaviour."""

    idempotent_resolve: bool = Field(
        default=True,
        description="Refuse to resolve an already resolved conflict",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Upload to a remote vault.

    Attributes:
        remote_url: Remote vault database URL.
        uploader_user_id: Identity uploads are recorded under.
        base_strategy: Which head an upload is based on.
    """

    remote_url: str | None = Field(default=None, description="Remote vault URL")
    uploader_user_id: int | None = Field(default=None, ge=0)
    base_strategy: Literal["remote-head", "local-head"] = "remote-head"

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """All config sections; ``UnifiedConfig()`` is a valid zero-config."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Validate the dict returned by ``load_hierarchical_config()``.

    Missing sections get their defaults.
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)

