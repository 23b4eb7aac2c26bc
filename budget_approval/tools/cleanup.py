"""Expired token cleanup tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from budget_approval.tools.base import (
    build_success_response,
    error_response_for,
    execute_tool,
)

if TYPE_CHECKING:
    from budget_approval.hitl.workflow import BudgetWorkflow


async def budget_cleanup_expired(workflow: BudgetWorkflow) -> dict[str, Any]:
    """Remove expired approval tokens from the store.

    Expired tokens are already unusable; this only reclaims storage.

    Returns:
        Success response with the number of removed entries, or an error
        response if the store failed.
    """
    try:
        removed = await execute_tool(
            tool_name="budget_cleanup_expired",
            params={},
            operation=workflow.cleanup_expired,
            audit_logger=workflow.audit_logger,
        )
    except Exception as e:
        return error_response_for(e, "cleaning up tokens")

    return build_success_response(
        data={"removed": removed},
        message=f"Removed {removed} expired token(s)",
        count=removed,
    )
