"""Budget submission tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from budget_approval.hitl.models import Decision, SubmissionResult
from budget_approval.schemas.submission import SubmissionParams
from budget_approval.tools.base import (
    build_error_response,
    build_success_response,
    error_response_for,
    execute_tool,
)

if TYPE_CHECKING:
    from budget_approval.hitl.workflow import BudgetWorkflow


async def budget_submit_request(
    workflow: BudgetWorkflow, params: SubmissionParams
) -> dict[str, Any]:
    """Submit a budget request for approval.

    Budgets at or below the threshold are forwarded immediately; larger
    budgets trigger an email with single-use approve/deny links to the
    manager. The links themselves are never returned to the caller.

    Args:
        workflow: The budget workflow.
        params: SubmissionParams with submitter, budget, module and manager.

    Returns:
        dict with either:
            - Success response: status, data with decision (and request_id,
              expires_at when manager approval is pending)
            - Error response: status, error, error_code
    """
    try:
        result: SubmissionResult = await execute_tool(
            tool_name="budget_submit_request",
            params=params.model_dump(),
            operation=lambda: workflow.submit(params),
            audit_logger=workflow.audit_logger,
        )
    except Exception as e:
        return error_response_for(e, "submitting the request")

    if not result.accepted:
        return build_error_response(
            error=result.error or "Submission rejected",
            error_code="SUBMISSION_REJECTED",
        )

    data: dict[str, Any] = {"decision": result.decision.value if result.decision else None}
    if result.decision is Decision.REQUIRES_APPROVAL and result.links is not None:
        data["request_id"] = result.links.request_id
        data["expires_at"] = result.links.expires_at.isoformat()
        return build_success_response(data, message="Approval request sent to the manager")

    return build_success_response(data, message="Request approved automatically")
