"""Tests for the MCP tool implementations and response builders."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from budget_approval.config import Settings
from budget_approval.hitl.store import InMemoryTokenStore
from budget_approval.hitl.workflow import BudgetWorkflow
from budget_approval.middleware.audit_logger import AuditLogger
from budget_approval.schemas.submission import SubmissionParams
from budget_approval.tools import (
    budget_cleanup_expired,
    budget_submit_request,
    build_error_response,
    build_success_response,
    error_response_for,
    execute_tool,
)
from budget_approval.utils.errors import TokenError


@pytest.fixture
def workflow(
    settings: Settings,
    store: InMemoryTokenStore,
    mailer: MagicMock,
    forwarder: MagicMock,
    operator: MagicMock,
    audit_logger: AuditLogger,
) -> BudgetWorkflow:
    """Fixture providing a workflow wired to mocks."""
    return BudgetWorkflow(
        settings=settings,
        store=store,
        mailer=mailer,
        forwarder=forwarder,
        operator=operator,
        audit_logger=audit_logger,
    )


def _params(budget: Any) -> SubmissionParams:
    return SubmissionParams(
        submitter_email="alice@example.com",
        budget=budget,
        module="Onboarding",
        manager_email="boss@example.com",
    )


class TestResponseBuilders:
    """Tests for the response builders."""

    def test_success_response(self) -> None:
        """Test the success shape with optional fields."""
        assert build_success_response({"a": 1}, message="done", count=1) == {
            "status": "success",
            "data": {"a": 1},
            "message": "done",
            "count": 1,
        }

    def test_error_response(self) -> None:
        """Test the error shape with code and details."""
        assert build_error_response("bad", error_code="X", details={"field": "f"}) == {
            "status": "error",
            "error": "bad",
            "error_code": "X",
            "field": "f",
        }

    def test_error_response_for_project_error(self) -> None:
        """Test that project errors keep their message and class-based code."""
        response = error_response_for(TokenError("store offline"), "cleaning up tokens")

        assert response == {
            "status": "error",
            "error": "store offline",
            "error_code": "TOKENERROR",
        }

    def test_error_response_for_unexpected_error(self) -> None:
        """Test that unexpected errors are hidden behind a generic message."""
        response = error_response_for(RuntimeError("secret path"), "submitting the request")

        assert response["error_code"] == "INTERNAL_ERROR"
        assert "secret path" not in response["error"]
        assert response["error"].endswith("while submitting the request")


class TestExecuteTool:
    """Tests for the execute_tool wrapper."""

    async def test_returns_result_and_audits(self) -> None:
        """Test that the operation result is returned and audited."""
        audit = MagicMock()

        result = await execute_tool("t", {"k": "v"}, lambda: 42, audit)

        assert result == 42
        audit.log_event.assert_called_once()
        assert audit.log_event.call_args.kwargs["result_status"] == "success"

    async def test_errors_propagate_and_are_audited(self) -> None:
        """Test that failures are audited and re-raised."""
        audit = MagicMock()

        def fail() -> None:
            raise TokenError("disk full")

        with pytest.raises(TokenError):
            await execute_tool("t", {}, fail, audit)

        assert audit.log_event.call_args.kwargs["result_status"] == "error"


class TestSubmitTool:
    """Tests for budget_submit_request."""

    async def test_auto_approved(self, workflow: BudgetWorkflow) -> None:
        """Test the response for an auto-approved request."""
        response = await budget_submit_request(workflow, _params("15"))

        assert response["status"] == "success"
        assert response["data"] == {"decision": "auto_approve"}

    async def test_pending_approval_hides_links(self, workflow: BudgetWorkflow) -> None:
        """Test that links are not returned to the submitter."""
        response = await budget_submit_request(workflow, _params("1250"))

        assert response["status"] == "success"
        assert response["data"]["decision"] == "requires_approval"
        assert "request_id" in response["data"]
        assert "token=" not in str(response)

    async def test_rejected(self, workflow: BudgetWorkflow) -> None:
        """Test the response for an invalid submission."""
        response = await budget_submit_request(workflow, _params("lots"))

        assert response["status"] == "error"
        assert response["error_code"] == "SUBMISSION_REJECTED"


class TestCleanupTool:
    """Tests for budget_cleanup_expired."""

    async def test_reports_removed_count(self, workflow: BudgetWorkflow) -> None:
        """Test the success response."""
        response = await budget_cleanup_expired(workflow)

        assert response["status"] == "success"
        assert response["count"] == 0

    async def test_store_error(self, workflow: BudgetWorkflow, store: InMemoryTokenStore) -> None:
        """Test that store failures become error responses."""
        store.cleanup_expired = MagicMock(side_effect=TokenError("unreadable"))  # type: ignore[method-assign]

        response = await budget_cleanup_expired(workflow)

        assert response["status"] == "error"
        assert response["error_code"] == "TOKENERROR"
