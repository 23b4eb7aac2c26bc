"""Operator notification sink.

Every fatal or critical condition (missing configuration, invalid
submissions, downstream failures after a link was consumed, unexpected
exceptions) is reported through ``report_critical``. Reporting never
raises: the entry points call it while already handling a failure.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel, Field

from budget_approval.gmail.mailer import Mailer
from budget_approval.templates import operator_alert_email

logger = logging.getLogger(__name__)


class CriticalReport(BaseModel):
    """Diagnostic context for an operator."""

    summary: str = Field(..., description="One-line description of what failed")
    error_type: str | None = Field(default=None)
    error_message: str | None = Field(default=None)
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Request fields and failure details for manual remediation",
    )

    @classmethod
    def from_exception(
        cls, summary: str, error: BaseException, **context: Any
    ) -> CriticalReport:
        details = getattr(error, "details", None)
        if isinstance(details, dict) and details:
            context = {**context, "error_details": details}
        return cls(
            summary=summary,
            error_type=type(error).__name__,
            error_message=getattr(error, "message", None) or str(error),
            context=context,
        )


class OperatorNotifier(Protocol):
    """Receives critical failure reports."""

    def report_critical(self, report: CriticalReport) -> None:
        ...


class LoggingOperatorNotifier:
    """Reports critical failures to the log only."""

    def report_critical(self, report: CriticalReport) -> None:
        logger.critical(
            "%s (%s: %s) context=%s",
            report.summary,
            report.error_type,
            report.error_message,
            report.context,
        )


class EmailOperatorNotifier(LoggingOperatorNotifier):
    """Reports critical failures to the log and by email."""

    def __init__(self, mailer: Mailer, operator_email: str) -> None:
        self._mailer = mailer
        self._operator_email = operator_email

    def report_critical(self, report: CriticalReport) -> None:
        super().report_critical(report)
        subject, body = operator_alert_email(report.summary, report.model_dump())
        try:
            self._mailer.send(self._operator_email, subject, body)
        except Exception:
            logger.exception("Failed to email operator report: %s", report.summary)
