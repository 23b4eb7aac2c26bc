"""Threshold routing between auto-approval and manager approval."""

from __future__ import annotations

from decimal import Decimal

from budget_approval.hitl.models import ApprovalRequest, Decision


def route(request: ApprovalRequest, threshold: Decimal) -> Decision:
    """Decide whether a request can be approved without a manager.

    A budget equal to the threshold is auto-approved. Malformed budgets
    never reach this point; they are rejected when the submission is
    validated.

    Args:
        request: The validated request.
        threshold: Highest budget approved automatically.

    Returns:
        Decision.AUTO_APPROVE or Decision.REQUIRES_APPROVAL.
    """
    if request.budget <= threshold:
        return Decision.AUTO_APPROVE
    return Decision.REQUIRES_APPROVAL
