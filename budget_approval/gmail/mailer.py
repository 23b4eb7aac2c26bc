"""Mailer backed by the Gmail API."""

from __future__ import annotations

import logging
from typing import Protocol

from budget_approval.gmail.client import GmailClient
from budget_approval.gmail.messages import send_message

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """Sends one HTML email."""

    def send(self, to: str, subject: str, html_body: str) -> None:
        """Send ``html_body`` to ``to``.

        Raises:
            NotificationError: If the message could not be sent.
            ConfigurationError: If the mailer is not configured.
        """
        ...


class GmailMailer:
    """Mailer that sends through a GmailClient."""

    def __init__(self, client: GmailClient, sender: str | None = None) -> None:
        self._client = client
        self._sender = sender

    def send(self, to: str, subject: str, html_body: str) -> None:
        service = self._client.get_service()
        send_message(
            service=service,
            to=to,
            subject=subject,
            body=html_body,
            sender=self._sender,
            html=True,
        )
