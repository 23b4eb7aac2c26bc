"""Gmail API operations module."""

from budget_approval.gmail.client import GMAIL_SEND_SCOPE, GmailClient
from budget_approval.gmail.mailer import GmailMailer, Mailer
from budget_approval.gmail.messages import build_raw_message, html_to_text, send_message

__all__ = [
    "GMAIL_SEND_SCOPE",
    "GmailClient",
    "GmailMailer",
    "Mailer",
    "build_raw_message",
    "html_to_text",
    "send_message",
]
