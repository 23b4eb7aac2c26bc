"""Budget approval MCP tools."""

from budget_approval.tools.base import (
    build_error_response,
    build_success_response,
    error_response_for,
    execute_tool,
)
from budget_approval.tools.cleanup import budget_cleanup_expired
from budget_approval.tools.submit import budget_submit_request

__all__ = [
    "budget_cleanup_expired",
    "budget_submit_request",
    "build_error_response",
    "build_success_response",
    "error_response_for",
    "execute_tool",
]
