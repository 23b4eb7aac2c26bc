"""Tests for Gmail sending: message building, send errors and credentials."""

from __future__ import annotations

import base64
import email
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from budget_approval.gmail.client import GmailClient
from budget_approval.gmail.mailer import GmailMailer
from budget_approval.gmail.messages import (
    build_raw_message,
    header_value,
    html_to_text,
    send_message,
)
from budget_approval.utils.errors import ConfigurationError, NotificationError


def _decode(raw: str) -> email.message.Message:
    return email.message_from_bytes(base64.urlsafe_b64decode(raw))


class TestBuildRawMessage:
    """Tests for build_raw_message."""

    def test_plain_message_headers(self) -> None:
        """Test recipient, subject and sender headers."""
        message = _decode(
            build_raw_message("bob@example.com", "Hello", "Body", sender="me@example.com")
        )

        assert message["to"] == "bob@example.com"
        assert message["subject"] == "Hello"
        assert message["from"] == "me@example.com"

    def test_html_message_is_multipart(self) -> None:
        """Test that HTML bodies are sent as text/html parts."""
        message = _decode(build_raw_message("bob@example.com", "Hi", "<p>x</p>", html=True))

        assert message.is_multipart()
        assert message.get_payload()[0].get_content_type() == "text/html"
        assert message.get_payload()[1].get_content_type() == "text/plain"

    def test_subject_with_line_breaks_stays_one_header(self) -> None:
        """Test that a multi-line subject cannot add or cut headers."""
        raw = build_raw_message(
            "bob@example.com", "Need\r\nBcc: attacker@evil.com", "<p>x</p>", html=True
        )
        message = _decode(raw)

        assert message["subject"] == "Need Bcc: attacker@evil.com"
        assert message["bcc"] is None

    def test_header_value_folds_lines(self) -> None:
        """Test that line breaks and their padding become one space."""
        assert header_value("Laptop \n  and\r\nmonitor\n") == "Laptop and monitor"

    def test_text_fallback_keeps_links(self) -> None:
        """Test that link targets survive in the plain-text part."""
        body = (
            "<p>Budget &amp; module</p>"
            '<a href="https://x.example.com/approval?token=approve-1" style="a">Approve</a>'
        )

        assert html_to_text(body) == (
            "Budget & module\nApprove: https://x.example.com/approval?token=approve-1"
        )


class TestSendMessage:
    """Tests for send_message."""

    @pytest.fixture
    def mock_service(self) -> MagicMock:
        """Create a mock Gmail API service."""
        service = MagicMock()
        service.users().messages().send.return_value.execute.return_value = {"id": "msg1"}
        return service

    def test_sends_raw_message(self, mock_service: MagicMock) -> None:
        """Test that the message is sent for the authenticated user."""
        result = send_message(mock_service, "bob@example.com", "Hi", "Body")

        assert result == {"id": "msg1"}
        call_kwargs = mock_service.users().messages().send.call_args.kwargs
        assert call_kwargs["userId"] == "me"
        assert _decode(call_kwargs["body"]["raw"])["to"] == "bob@example.com"

    def test_http_error_becomes_notification_error(self, mock_service: MagicMock) -> None:
        """Test that API errors carry the HTTP status."""
        resp = MagicMock(status=429, reason="Too Many Requests")
        mock_service.users().messages().send.return_value.execute.side_effect = HttpError(
            resp, b"rate limited"
        )

        with pytest.raises(NotificationError) as exc_info:
            send_message(mock_service, "bob@example.com", "Hi", "Body")

        assert exc_info.value.status_code == 429

    def test_transport_error_becomes_notification_error(self, mock_service: MagicMock) -> None:
        """Test that non-HTTP failures are wrapped as well."""
        mock_service.users().messages().send.return_value.execute.side_effect = OSError(
            "connection reset"
        )

        with pytest.raises(NotificationError) as exc_info:
            send_message(mock_service, "bob@example.com", "Hi", "Body")

        assert exc_info.value.status_code is None


class TestGmailClient:
    """Tests for GmailClient credential loading."""

    def test_missing_credentials_file_setting(self) -> None:
        """Test that an unconfigured client fails on first use."""
        with pytest.raises(ConfigurationError):
            GmailClient(None).get_service()

    def test_missing_credentials_file(self, tmp_path: Path) -> None:
        """Test that a missing file is a configuration error."""
        with pytest.raises(ConfigurationError):
            GmailClient(tmp_path / "missing.json").get_service()

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Test that an unreadable file is a configuration error."""
        path = tmp_path / "creds.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            GmailClient(path).get_service()

    def test_builds_service_from_authorized_user(self, tmp_path: Path) -> None:
        """Test that valid credentials produce a cached service."""
        path = tmp_path / "creds.json"
        path.write_text(
            json.dumps(
                {
                    "type": "authorized_user",
                    "client_id": "id",
                    "client_secret": "secret",
                    "refresh_token": "refresh",
                }
            )
        )
        client = GmailClient(path, sender="budget@example.com")

        with (
            patch("budget_approval.gmail.client.Credentials") as mock_creds_cls,
            patch("budget_approval.gmail.client.build") as mock_build,
        ):
            mock_creds_cls.from_authorized_user_info.return_value.valid = True
            service = client.get_service()
            again = client.get_service()

        assert service is again
        mock_build.assert_called_once()

    def test_refresh_failure_is_notification_error(self, tmp_path: Path) -> None:
        """Test that a failed token refresh is a send failure."""
        path = tmp_path / "creds.json"
        path.write_text(json.dumps({"type": "authorized_user"}))
        client = GmailClient(path)

        with patch("budget_approval.gmail.client.Credentials") as mock_creds_cls:
            creds = mock_creds_cls.from_authorized_user_info.return_value
            creds.valid = False
            creds.refresh.side_effect = RuntimeError("invalid_grant")

            with pytest.raises(NotificationError):
                client.get_service()


class TestGmailMailer:
    """Tests for GmailMailer."""

    def test_sends_html_through_client(self) -> None:
        """Test that the mailer sends HTML from the configured sender."""
        client = MagicMock()

        with patch("budget_approval.gmail.mailer.send_message") as mock_send:
            GmailMailer(client, sender="budget@example.com").send(
                "bob@example.com", "Subject", "<p>Body</p>"
            )

        mock_send.assert_called_once_with(
            service=client.get_service.return_value,
            to="bob@example.com",
            subject="Subject",
            body="<p>Body</p>",
            sender="budget@example.com",
            html=True,
        )
