"""Runtime configuration for the vault-history CLI.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    VAULT_DB_URL: Local vault database (path, sqlite:/// URL or SQLAlchemy URL)
    VAULT_REMOTE_URL: Remote vault database for uploads (optional)
    VAULT_UPLOADER_ID: User id uploads are recorded under (optional)
    VAULT_IDEMPOTENT_RESOLVE: Refuse double resolution (optional, default: true)
"""

import logging
import os
from dataclasses import dataclass

from .config_schema import UnifiedConfig
from .sync.orchestrator import BASE_STRATEGIES

logger = logging.getLogger(__name__)


@dataclass
class Config:
    db_url: str
    remote_url: str = ""
    uploader_user_id: int | None = None
    base_strategy: str = "remote-head"
    idempotent_resolve: bool = True
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = None


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If the database URL is empty, the uploader id is
            negative or the base strategy is unknown.
    """
    config.db_url = config.db_url.strip()
    config.remote_url = config.remote_url.strip()

    if not config.db_url:
        raise ValueError(
            "Vault database not configured. Set VAULT_DB_URL, pass --db, "
            "or add 'database.url' to config.yml."
        )

    if config.uploader_user_id is not None and config.uploader_user_id < 0:
        raise ValueError(
            f"Invalid uploader id {config.uploader_user_id}: must be >= 0"
        )

    if config.base_strategy not in BASE_STRATEGIES:
        raise ValueError(
            f"Invalid base strategy '{config.base_strategy}'. "
            f"Must be one of {list(BASE_STRATEGIES)}"
        )

    if config.remote_url and config.remote_url == config.db_url:
        logger.warning("Remote vault URL equals the local one: %s", config.db_url)


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str) -> int | None:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be an integer") from None


def load_config(
    db_url: str | None = None,
    remote_url: str | None = None,
    uploader_user_id: int | None = None,
    base_strategy: str | None = None,
    debug: bool = False,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` first so
    .env values are visible through ``os.getenv()``.

    Args:
        db_url: ``--db`` override.
        remote_url: ``--remote`` override.
        uploader_user_id: ``--uploader`` override.
        base_strategy: ``--base`` override.
        debug: ``--debug`` flag.
        unified: Parsed YAML config; defaults when omitted.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is missing or invalid after checking all
            sources.
    """
    fb = unified or UnifiedConfig()

    final_db = db_url or os.getenv("VAULT_DB_URL") or fb.database.url or ""
    final_remote = (
        remote_url or os.getenv("VAULT_REMOTE_URL") or fb.sync.remote_url or ""
    )

    if uploader_user_id is not None:
        final_uploader: int | None = uploader_user_id
    else:
        env_uploader = _get_int_env("VAULT_UPLOADER_ID")
        final_uploader = (
            env_uploader if env_uploader is not None else fb.sync.uploader_user_id
        )

    env_idempotent = _get_bool_env("VAULT_IDEMPOTENT_RESOLVE")
    final_idempotent = (
        env_idempotent
        if env_idempotent is not None
        else fb.history.idempotent_resolve
    )

    config = Config(
        db_url=final_db,
        remote_url=final_remote,
        uploader_user_id=final_uploader,
        base_strategy=base_strategy or fb.sync.base_strategy,
        idempotent_resolve=final_idempotent,
        debug=debug,
        log_level=fb.logging.level,
        log_file=fb.logging.file,
    )

    validate_config(config)

    return config
