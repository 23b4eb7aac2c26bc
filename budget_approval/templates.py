"""Email bodies and outcome pages.

All interpolated values are HTML-escaped. The outcome pages are fixed: a
visitor can tell approved, denied, unusable link and error apart, but
never whether an unusable link expired, was already used, or never existed.
"""

from __future__ import annotations

import json
from datetime import datetime
from html import escape

from budget_approval.hitl.models import ApprovalLinks, ApprovalRequest, Outcome

_PAGE = (
    "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>{title}</title></head>"
    "<body style=\"font-family: sans-serif; margin: 2em;\">"
    "<h1>{title}</h1><p>{message}</p></body></html>"
)

_PAGES: dict[Outcome, tuple[str, str]] = {
    Outcome.APPROVED: (
        "Request Approved",
        "The budget request has been approved and sent for processing. "
        "The requester has been notified. You can close this window.",
    ),
    Outcome.DENIED: (
        "Request Denied",
        "The budget request has been denied. The requester has been notified. "
        "You can close this window.",
    ),
    Outcome.EXPIRED: (
        "Invalid Link",
        "This link has expired or has already been used.",
    ),
    Outcome.ERROR: (
        "Something Went Wrong",
        "The request could not be completed. An administrator has been notified.",
    ),
}
_PAGES[Outcome.INVALID] = _PAGES[Outcome.EXPIRED]


def outcome_page(outcome: Outcome) -> str:
    """Return the fixed HTML page shown for an outcome."""
    title, message = _PAGES[outcome]
    return _PAGE.format(title=title, message=message)


def _summary_table(request: ApprovalRequest) -> str:
    return (
        "<table cellpadding=\"4\">"
        f"<tr><td><b>Requested by</b></td><td>{escape(request.submitter_email)}</td></tr>"
        f"<tr><td><b>Budget</b></td><td>{escape(request.display_budget())}</td></tr>"
        f"<tr><td><b>Module</b></td><td>{escape(request.module)}</td></tr>"
        "</table>"
    )


def manager_request_email(
    request: ApprovalRequest, links: ApprovalLinks
) -> tuple[str, str]:
    """Subject and body of the email asking a manager for a decision."""
    subject = f"Budget approval needed: {request.display_budget()} for {request.module}"
    body = (
        "<p>A budget request needs your decision.</p>"
        f"{_summary_table(request)}"
        "<p>"
        f"<a href=\"{escape(links.approve_url, quote=True)}\">Approve</a>"
        " &nbsp;|&nbsp; "
        f"<a href=\"{escape(links.deny_url, quote=True)}\">Deny</a>"
        "</p>"
        "<p>Each link works once. Both links stop working after the first "
        f"decision, or at {escape(_format_time(links.expires_at))}.</p>"
    )
    return subject, body


def auto_approved_email(request: ApprovalRequest) -> tuple[str, str]:
    """Subject and body sent to the submitter after auto-approval."""
    subject = f"Budget request approved: {request.display_budget()}"
    body = (
        "<p>Your budget request was within the automatic approval limit "
        "and has been approved.</p>"
        f"{_summary_table(request)}"
    )
    return subject, body


def approved_email(request: ApprovalRequest) -> tuple[str, str]:
    """Subject and body sent to the submitter after manager approval."""
    subject = f"Budget request approved: {request.display_budget()}"
    body = (
        "<p>Your budget request has been approved by your manager.</p>"
        f"{_summary_table(request)}"
    )
    return subject, body


def denied_email(request: ApprovalRequest) -> tuple[str, str]:
    """Subject and body sent to the submitter after manager denial."""
    subject = f"Budget request denied: {request.display_budget()}"
    body = (
        "<p>Your budget request has been denied by your manager.</p>"
        f"{_summary_table(request)}"
    )
    return subject, body


def operator_alert_email(summary: str, context: dict[str, object]) -> tuple[str, str]:
    """Subject and body of a critical failure report."""
    subject = f"[budget-approval] CRITICAL: {summary}"
    body = (
        f"<p><b>{escape(summary)}</b></p>"
        "<pre>"
        f"{escape(json.dumps(context, indent=2, sort_keys=True, default=str))}"
        "</pre>"
    )
    return subject, body


def _format_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")
