"""Human-in-the-loop (HITL) approval of budget requests.

Budgets within the auto-approval threshold are forwarded immediately;
larger budgets wait for a manager, who receives two single-use links
(approve and deny) backed by a token store.

Usage:
    from budget_approval.hitl.workflow import build_workflow

    workflow = build_workflow(load_settings())
    workflow.submit(SubmissionParams(...))  # form submission
    workflow.handle_link(token)             # manager clicks a link
"""

from budget_approval.hitl.file_store import FileTokenStore
from budget_approval.hitl.models import (
    ApprovalLinks,
    ApprovalRequest,
    ApprovalToken,
    Decision,
    ForwardResult,
    Outcome,
    Resolution,
    SubmissionResult,
    TokenIntent,
)
from budget_approval.hitl.router import route
from budget_approval.hitl.store import InMemoryTokenStore, TokenStore

__all__ = [
    "ApprovalLinks",
    "ApprovalRequest",
    "ApprovalToken",
    "Decision",
    "FileTokenStore",
    "ForwardResult",
    "InMemoryTokenStore",
    "Outcome",
    "Resolution",
    "SubmissionResult",
    "TokenIntent",
    "TokenStore",
    "route",
]
