"""Tests for the downstream forwarder."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from budget_approval.forwarder import MAX_BODY_LENGTH, HttpForwarder
from budget_approval.hitl.models import ApprovalRequest
from budget_approval.utils.errors import ConfigurationError

ENDPOINT = "https://api.example.com/budget"


@pytest.fixture
def request_15() -> ApprovalRequest:
    """Fixture providing a small auto-approvable request."""
    return ApprovalRequest(
        submitter_email="alice@example.com", budget=Decimal("15.50"), module="Coffee"
    )


def _response(status_code: int, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


class TestHttpForwarder:
    """Tests for HttpForwarder.forward."""

    def test_posts_json_payload(self, request_15: ApprovalRequest) -> None:
        """Test the payload shape and timeout."""
        with patch("budget_approval.forwarder.requests.post") as mock_post:
            mock_post.return_value = _response(200, "ok")
            result = HttpForwarder(ENDPOINT, timeout=5).forward(request_15)

        mock_post.assert_called_once_with(
            ENDPOINT,
            json={"email": "alice@example.com", "budget": "15.5", "module": "Coffee"},
            timeout=5,
        )
        assert result.success
        assert result.status_code == 200
        assert result.body == "ok"

    @pytest.mark.parametrize("status_code", [201, 204, 400, 500])
    def test_only_200_is_success(self, request_15: ApprovalRequest, status_code: int) -> None:
        """Test that any status other than 200 is a failure."""
        with patch("budget_approval.forwarder.requests.post") as mock_post:
            mock_post.return_value = _response(status_code)
            result = HttpForwarder(ENDPOINT).forward(request_15)

        assert not result.success
        assert result.status_code == status_code

    def test_body_is_truncated(self, request_15: ApprovalRequest) -> None:
        """Test that long error bodies are cut for reports."""
        with patch("budget_approval.forwarder.requests.post") as mock_post:
            mock_post.return_value = _response(500, "x" * 10_000)
            result = HttpForwarder(ENDPOINT).forward(request_15)

        assert len(result.body) == MAX_BODY_LENGTH

    def test_timeout_is_a_failure(self, request_15: ApprovalRequest) -> None:
        """Test that transport errors return a result without status."""
        with patch("budget_approval.forwarder.requests.post") as mock_post:
            mock_post.side_effect = requests.Timeout("read timed out")
            result = HttpForwarder(ENDPOINT).forward(request_15)

        assert not result.success
        assert result.status_code is None
        assert "Timeout" in result.body

    @pytest.mark.parametrize("endpoint", [None, ""])
    def test_missing_endpoint(self, request_15: ApprovalRequest, endpoint: str | None) -> None:
        """Test that forwarding without an endpoint is a configuration error."""
        with patch("budget_approval.forwarder.requests.post") as mock_post:
            with pytest.raises(ConfigurationError):
                HttpForwarder(endpoint).forward(request_15)

        mock_post.assert_not_called()
