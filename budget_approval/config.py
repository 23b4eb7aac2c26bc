"""Runtime configuration for the budget approval server.

Settings are read from environment variables once per process (a ``.env``
file is loaded by ``__main__`` via python-dotenv) and passed explicitly to
the components that need them. Nothing reads the environment after start-up.

Values that are only needed by one operation (the approval link base URL,
the downstream endpoint URL) are optional here; the operation that needs
them raises ConfigurationError when they are absent.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = Decimal("20")
DEFAULT_TOKEN_TTL_SECONDS = 6 * 60 * 60
DEFAULT_FORWARD_TIMEOUT_SECONDS = 30.0
DEFAULT_MODULE = "Not specified"


class Settings(BaseModel):
    """Immutable snapshot of the server configuration."""

    model_config = {"frozen": True}

    approval_base_url: str | None = Field(
        default=None,
        description="Public URL of the approval link handler (GET ?token=...)",
    )
    api_gateway_url: str | None = Field(
        default=None,
        description="Downstream endpoint receiving approved requests",
    )
    auto_approve_threshold: Decimal = Field(
        default=DEFAULT_THRESHOLD,
        ge=0,
        description="Budgets at or below this amount are approved automatically",
    )
    token_ttl_seconds: int = Field(
        default=DEFAULT_TOKEN_TTL_SECONDS,
        gt=0,
        description="Lifetime of approval and denial links",
    )
    forward_timeout_seconds: float = Field(
        default=DEFAULT_FORWARD_TIMEOUT_SECONDS,
        gt=0,
        description="Timeout for the downstream POST",
    )
    operator_email: str | None = Field(
        default=None,
        description="Recipient of critical failure reports",
    )
    gmail_sender: str | None = Field(
        default=None,
        description="Mailbox notifications are sent from",
    )
    gmail_credentials_file: Path | None = Field(
        default=None,
        description="Authorized-user or service-account JSON for the Gmail API",
    )
    token_store_dir: Path | None = Field(
        default=None,
        description="Directory of the file-backed token store (in-memory if unset)",
    )
    token_encryption_key: str | None = Field(
        default=None,
        description="64 hex characters; required with token_store_dir",
        repr=False,
    )
    default_module: str = Field(
        default=DEFAULT_MODULE,
        description="Placeholder used when a submission has no module",
    )
    audit_log_enabled: bool = Field(default=True)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s value %r, using default %d", name, raw, default)
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s value %r, using default %s", name, raw, default)
        return default


def _get_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        logger.warning("Invalid %s value %r, using default %s", name, raw, default)
        return default
    if not value.is_finite() or value < 0:
        logger.warning("Invalid %s value %r, using default %s", name, raw, default)
        return default
    return value


def _get_path(name: str) -> Path | None:
    raw = os.getenv(name)
    return Path(raw).expanduser() if raw else None


def load_settings() -> Settings:
    """Build Settings from the current environment.

    Returns:
        A frozen Settings instance.
    """
    settings = Settings(
        approval_base_url=os.getenv("APPROVAL_BASE_URL") or None,
        api_gateway_url=os.getenv("API_GATEWAY_URL") or None,
        auto_approve_threshold=_get_decimal("AUTO_APPROVE_THRESHOLD", DEFAULT_THRESHOLD),
        token_ttl_seconds=_get_int(
            "APPROVAL_TOKEN_TTL_SECONDS", DEFAULT_TOKEN_TTL_SECONDS
        ),
        forward_timeout_seconds=_get_float(
            "FORWARD_TIMEOUT_SECONDS", DEFAULT_FORWARD_TIMEOUT_SECONDS
        ),
        operator_email=os.getenv("OPERATOR_EMAIL") or None,
        gmail_sender=os.getenv("GMAIL_SENDER") or None,
        gmail_credentials_file=_get_path("GMAIL_CREDENTIALS_FILE"),
        token_store_dir=_get_path("TOKEN_STORE_DIR"),
        token_encryption_key=os.getenv("TOKEN_ENCRYPTION_KEY") or None,
        default_module=os.getenv("DEFAULT_MODULE") or DEFAULT_MODULE,
        audit_log_enabled=os.getenv("AUDIT_LOG_ENABLED", "true").lower()
        not in ("false", "0", "no"),
    )
    logger.debug(
        "Settings loaded: threshold=%s ttl=%ds store=%s",
        settings.auto_approve_threshold,
        settings.token_ttl_seconds,
        settings.token_store_dir or "memory",
    )
    return settings


__all__ = [
    "Settings",
    "load_settings",
    "DEFAULT_MODULE",
    "DEFAULT_THRESHOLD",
    "DEFAULT_TOKEN_TTL_SECONDS",
]
