"""Tests for email bodies and outcome pages."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from budget_approval.hitl.models import ApprovalLinks, ApprovalRequest, Outcome
from budget_approval.templates import (
    approved_email,
    auto_approved_email,
    denied_email,
    manager_request_email,
    operator_alert_email,
    outcome_page,
)


def _request(module: str = "Onboarding") -> ApprovalRequest:
    return ApprovalRequest(
        submitter_email="alice@example.com", budget=Decimal("1250"), module=module
    )


class TestOutcomePages:
    """Tests for the fixed outcome pages."""

    def test_pages_are_distinct_per_outcome(self) -> None:
        """Test that approved, denied, invalid and error pages differ."""
        pages = {
            outcome_page(o)
            for o in (Outcome.APPROVED, Outcome.DENIED, Outcome.EXPIRED, Outcome.ERROR)
        }

        assert len(pages) == 4

    def test_invalid_and_expired_share_a_page(self) -> None:
        """Test that unusable links cannot be told apart."""
        assert outcome_page(Outcome.INVALID) == outcome_page(Outcome.EXPIRED)
        assert "expired or has already been used" in outcome_page(Outcome.EXPIRED)


class TestEmails:
    """Tests for the email builders."""

    def test_manager_email_contains_both_links(self) -> None:
        """Test that the manager receives approve and deny links."""
        links = ApprovalLinks(
            request_id="req1",
            approve_url="https://x.example.com/approval?token=approve-1&a=b",
            deny_url="https://x.example.com/approval?token=deny-1",
            expires_at=datetime(2026, 3, 2, 15, 0, tzinfo=UTC),
        )

        subject, body = manager_request_email(_request(), links)

        assert subject == "Budget approval needed: $1,250.00 for Onboarding"
        assert 'href="https://x.example.com/approval?token=approve-1&amp;a=b"' in body
        assert 'href="https://x.example.com/approval?token=deny-1"' in body
        assert "2026-03-02 15:00 UTC" in body

    def test_values_are_escaped(self) -> None:
        """Test that submitted text cannot inject markup."""
        _, body = denied_email(_request(module="<script>alert(1)</script>"))

        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_submitter_notices(self) -> None:
        """Test the subjects of the submitter notices."""
        assert auto_approved_email(_request())[0] == "Budget request approved: $1,250.00"
        assert approved_email(_request())[0] == "Budget request approved: $1,250.00"
        assert denied_email(_request())[0] == "Budget request denied: $1,250.00"

    def test_operator_alert(self) -> None:
        """Test that alert context is rendered as escaped JSON."""
        subject, body = operator_alert_email("Forward failed", {"module": "<b>"})

        assert subject == "[budget-approval] CRITICAL: Forward failed"
        assert "&lt;b&gt;" in body
