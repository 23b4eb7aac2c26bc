"""Shared helpers for the budget approval MCP tools.

Every tool answers with the same envelope:

    {"status": "success", "data": ..., "message"?: ..., "count"?: ...}
    {"status": "error", "error": ..., "error_code": ...}

Workflow calls are blocking (token store, Gmail, downstream POST), so
tools run them through ``execute_tool`` which moves them to the thread
pool and writes a ``tool_call`` audit entry.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from starlette.concurrency import run_in_threadpool

from budget_approval.middleware.audit_logger import AuditLogger
from budget_approval.utils.errors import BudgetApprovalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

INTERNAL_ERROR = "INTERNAL_ERROR"


def build_success_response(
    data: Any,
    message: str | None = None,
    count: int | None = None,
) -> dict[str, Any]:
    """Wrap a tool payload in the success envelope."""
    response: dict[str, Any] = {"status": "success", "data": data}
    if message:
        response["message"] = message
    if count is not None:
        response["count"] = count
    return response


def build_error_response(
    error: str,
    error_code: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Wrap an error message in the error envelope.

    ``details`` are merged into the top level of the response.
    """
    response: dict[str, Any] = {"status": "error", "error": error}
    if error_code:
        response["error_code"] = error_code
    if details:
        response.update(details)
    return response


def error_response_for(error: Exception, action: str) -> dict[str, Any]:
    """Map an exception raised by a tool to its error envelope.

    Project errors keep their message and are coded by class name
    (``TokenError`` -> ``TOKENERROR``). Anything else is logged with its
    traceback and hidden behind a generic message.

    Args:
        error: The exception.
        action: What the tool was doing, for the generic message.
    """
    if isinstance(error, BudgetApprovalError):
        logger.error("Error while %s: %s", action, error)
        return build_error_response(
            error=str(error),
            error_code=type(error).__name__.upper(),
        )

    logger.error("Unexpected error while %s", action, exc_info=error)
    return build_error_response(
        error=f"An internal error occurred while {action}",
        error_code=INTERNAL_ERROR,
    )


async def execute_tool(
    tool_name: str,
    params: dict[str, Any],
    operation: Callable[[], T],
    audit_logger: AuditLogger,
) -> T:
    """Run a blocking tool operation in the thread pool and audit the call.

    Args:
        tool_name: Name recorded in the audit entry.
        params: Tool arguments for the audit entry (redacted there).
        operation: Zero-argument callable doing the work.
        audit_logger: Audit sink.

    Returns:
        Whatever ``operation`` returns. Its exceptions propagate after
        being audited.
    """
    started = time.perf_counter()
    outcome, failure = "success", None
    try:
        return await run_in_threadpool(operation)
    except Exception as e:
        outcome, failure = "error", str(e)
        raise
    finally:
        audit_logger.log_event(
            "tool_call",
            details={"tool": tool_name, "parameters": params},
            result_status=outcome,
            error_message=failure,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
