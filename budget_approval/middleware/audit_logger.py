"""Audit trail of approval workflow events.

One JSON line per event on stderr (STDIO-safe), for example::

    {"audit": {"event": "token_resolved", "submitter": "alice@example.com",
               "details": {"intent": "approve"}, "result_status": "approved", ...}}

Events: ``submission``, ``token_issued``, ``token_resolved``, ``forward``
and ``tool_call``. Token values grant a decision to whoever holds them, so
they are masked wherever they appear, including inside approval URLs.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SECRET_KEYS = frozenset({"secret", "key", "password", "authorization", "api_key"})
TOKEN_VALUE_PATTERN = re.compile(r"\b(approve|deny)-[A-Za-z0-9_-]+")


class AuditEntry(BaseModel):
    """Model for an audit log entry."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
        description="ISO format timestamp",
    )
    event: str = Field(..., description="Workflow event name")
    submitter: str | None = Field(
        default=None,
        description="Submitter email of the request involved",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Event details, redacted",
    )
    result_status: str | None = Field(
        default=None,
        description="success, error, or a link resolution outcome",
    )
    error_message: str | None = Field(default=None)
    duration_ms: float | None = Field(default=None)


def redact(value: Any) -> Any:
    """Mask secrets and token values in an audit detail value.

    Dict values under secret-looking keys are replaced entirely; token
    values inside any string keep only their intent prefix
    (``approve-[REDACTED]``). Nested dicts and lists are walked.
    """
    if isinstance(value, dict):
        return {
            k: REDACTED if str(k).lower() in SECRET_KEYS else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, list | tuple):
        return [redact(item) for item in value]
    if isinstance(value, str):
        return TOKEN_VALUE_PATTERN.sub(rf"\1-{REDACTED}", value)
    return value


class AuditLogger:
    """Writes workflow events as JSON lines to stderr."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        logger.info("AuditLogger initialized (enabled=%s)", enabled)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def log(self, entry: AuditEntry) -> None:
        """Write one entry. Failures are logged, never raised."""
        if not self._enabled:
            return

        try:
            line = json.dumps({"audit": entry.model_dump()}, default=str)
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize audit entry %s: %s", entry.event, e)
            return
        print(line, file=sys.stderr, flush=True)

    def log_event(
        self,
        event: str,
        submitter: str | None = None,
        details: dict[str, Any] | None = None,
        result_status: str | None = None,
        error_message: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Record a workflow event.

        Args:
            event: Event name.
            submitter: Submitter email of the request involved.
            details: Event details; redacted before writing.
            result_status: "success", "error", or a resolution outcome.
            error_message: Error message if the step failed.
            duration_ms: Execution time in milliseconds.
        """
        self.log(
            AuditEntry(
                event=event,
                submitter=submitter,
                details=redact(details or {}),
                result_status=result_status,
                error_message=redact(error_message),
                duration_ms=duration_ms,
            )
        )
