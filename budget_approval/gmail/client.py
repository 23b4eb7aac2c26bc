"""Authenticated Gmail API client factory.

Notifications are sent from a single mailbox. Credentials come from a JSON
file that is either:

- an authorized-user file (``{"type": "authorized_user", "refresh_token": ...}``)
  produced by a one-off consent flow for the sending mailbox, or
- a service-account key with domain-wide delegation, impersonating the
  configured sender address.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build

from budget_approval.utils.errors import ConfigurationError, NotificationError

logger = logging.getLogger(__name__)

GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"


class GmailClient:
    """Lazily builds and caches the Gmail API service.

    Credentials are loaded on first use, so a server without mail
    configuration can still start; the first send raises
    ConfigurationError instead.
    """

    def __init__(self, credentials_file: Path | None, sender: str | None = None) -> None:
        self._credentials_file = credentials_file
        self._sender = sender
        self._service: Resource | None = None
        self._credentials: Any = None
        self._lock = threading.Lock()

    def get_service(self) -> Resource:
        """Get an authenticated Gmail API service.

        Returns:
            Gmail API Resource object.

        Raises:
            ConfigurationError: If no usable credentials file is configured.
            NotificationError: If refreshing the access token fails.
        """
        with self._lock:
            if self._service is not None and self._credentials.valid:
                return self._service

            creds = self._credentials or self._load_credentials()
            if not creds.valid:
                try:
                    creds.refresh(Request())
                except Exception as e:
                    logger.error("Gmail token refresh failed: %s", e)
                    self._invalidate_unlocked()
                    raise NotificationError(
                        f"Gmail token refresh failed: {e}",
                        details={"error_type": type(e).__name__},
                    ) from e

            self._service = build("gmail", "v1", credentials=creds, cache_discovery=False)
            self._credentials = creds
            logger.debug("Created Gmail service")
            return self._service

    def _load_credentials(self) -> Any:
        """Load credentials from the configured JSON file."""
        if self._credentials_file is None:
            raise ConfigurationError(
                "Gmail credentials not configured",
                details={"hint": "Set GMAIL_CREDENTIALS_FILE"},
            )

        try:
            info: dict[str, Any] = json.loads(self._credentials_file.read_text())
        except FileNotFoundError as e:
            raise ConfigurationError(
                "Gmail credentials file not found",
                details={"path": str(self._credentials_file)},
            ) from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                "Gmail credentials file is not valid JSON",
                details={"path": str(self._credentials_file), "error": str(e)},
            ) from e

        try:
            if info.get("type") == "service_account":
                creds = service_account.Credentials.from_service_account_info(
                    info, scopes=[GMAIL_SEND_SCOPE]
                )
                if self._sender:
                    creds = creds.with_subject(self._sender)
                return creds
            return Credentials.from_authorized_user_info(info, scopes=[GMAIL_SEND_SCOPE])
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid Gmail credentials: {e}",
                details={"path": str(self._credentials_file)},
            ) from e

    def _invalidate_unlocked(self) -> None:
        self._service = None
        self._credentials = None

    def invalidate(self) -> None:
        """Drop the cached service so the next send reloads credentials."""
        with self._lock:
            self._invalidate_unlocked()
