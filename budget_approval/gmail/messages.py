"""Composing and sending messages through the Gmail API."""

from __future__ import annotations

import base64
import html as html_lib
import logging
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from budget_approval.utils.errors import NotificationError

logger = logging.getLogger(__name__)

_BLOCK_END = re.compile(r"</(p|div|h[1-6]|li|tr)>|<br\s*/?>", re.IGNORECASE)
_LINK = re.compile(r'<a\s[^>]*href="([^"]+)"[^>]*>(.*?)</a>', re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_HEADER_BREAK = re.compile(r"\s*[\r\n]+\s*")


def html_to_text(body: str) -> str:
    """Plain-text rendering of an HTML body, keeping link targets.

    Approve/deny buttons become ``label: url`` so the links still work in
    clients that show only the text part.
    """
    text = _LINK.sub(lambda m: f"{_TAG.sub('', m.group(2)).strip()}: {m.group(1)}", body)
    text = _TAG.sub("", _BLOCK_END.sub("\n", text))
    lines = (line.strip() for line in html_lib.unescape(text).splitlines())
    return "\n".join(line for line in lines if line)


def header_value(value: str) -> str:
    """Fold a value onto one line so it cannot end or inject a header."""
    return _HEADER_BREAK.sub(" ", value).strip()


def build_raw_message(
    to: str,
    subject: str,
    body: str,
    sender: str | None = None,
    html: bool = False,
) -> str:
    """Encode a message as the base64url ``raw`` field Gmail expects.

    HTML bodies are sent as multipart/alternative with the HTML part
    first, followed by a plain-text fallback.
    """
    message: MIMEText | MIMEMultipart
    if not html:
        message = MIMEText(body, "plain", "utf-8")
    else:
        message = MIMEMultipart("alternative")
        message.attach(MIMEText(body, "html", "utf-8"))
        message.attach(MIMEText(html_to_text(body), "plain", "utf-8"))

    message["To"] = header_value(to)
    message["Subject"] = header_value(subject)
    if sender:
        message["From"] = header_value(sender)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


def send_message(
    service: Resource,
    to: str,
    subject: str,
    body: str,
    sender: str | None = None,
    html: bool = False,
) -> dict[str, Any]:
    """Send one message as the authenticated user.

    Raises:
        NotificationError: On any API or transport failure.
    """
    raw = build_raw_message(to, subject, body, sender=sender, html=html)
    request = service.users().messages().send(userId="me", body={"raw": raw})
    try:
        sent: dict[str, Any] = request.execute()
    except HttpError as e:
        logger.error("Gmail rejected message to %s (HTTP %s)", to, e.resp.status)
        raise NotificationError(
            f"Gmail rejected the message: {e.reason}",
            status_code=e.resp.status,
            details={"to": to, "subject": subject},
        ) from e
    except Exception as e:
        logger.error("Could not reach Gmail for message to %s: %s", to, e)
        raise NotificationError(
            f"Could not send message: {e}",
            details={"to": to, "subject": subject, "error_type": type(e).__name__},
        ) from e

    logger.info("Sent message %s to %s", sent.get("id"), to)
    return sent
