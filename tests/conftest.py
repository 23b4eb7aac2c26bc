"""Pytest configuration and fixtures for budget approval server tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from urllib.parse import parse_qs, urlsplit
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from budget_approval.config import Settings
from budget_approval.hitl.models import ApprovalRequest, ForwardResult
from budget_approval.hitl.store import InMemoryTokenStore
from budget_approval.middleware.audit_logger import AuditLogger

BASE_URL = "https://budget.example.com/approval"


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def _token_from(url: str) -> str:
    return parse_qs(urlsplit(url).query)["token"][0]


@pytest.fixture
def token_from() -> Callable[[str], str]:
    """Fixture providing a helper that extracts the token from a link."""
    return _token_from


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a controllable clock."""
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Fixture providing a complete configuration."""
    return Settings(
        approval_base_url=BASE_URL,
        api_gateway_url="https://api.example.com/budget",
        operator_email="ops@example.com",
        gmail_sender="budget@example.com",
        audit_log_enabled=False,
    )


@pytest.fixture
def store(clock: FakeClock) -> InMemoryTokenStore:
    """Fixture providing an in-memory token store on the fake clock."""
    return InMemoryTokenStore(clock=clock)


@pytest.fixture
def mailer(mocker: MockerFixture) -> MagicMock:
    """Fixture providing a mocked Mailer."""
    return mocker.MagicMock()


@pytest.fixture
def forwarder(mocker: MockerFixture) -> MagicMock:
    """Fixture providing a mocked forwarder that succeeds."""
    mock = mocker.MagicMock()
    mock.forward.return_value = ForwardResult(success=True, status_code=200, body="ok")
    return mock


@pytest.fixture
def operator(mocker: MockerFixture) -> MagicMock:
    """Fixture providing a mocked OperatorNotifier."""
    return mocker.MagicMock()


@pytest.fixture
def audit_logger() -> AuditLogger:
    """Fixture providing a disabled audit logger."""
    return AuditLogger(enabled=False)


@pytest.fixture
def sample_request() -> ApprovalRequest:
    """Fixture providing a request that needs manager approval."""
    return ApprovalRequest(
        submitter_email="alice@example.com",
        budget=Decimal("1250"),
        module="Onboarding",
    )
