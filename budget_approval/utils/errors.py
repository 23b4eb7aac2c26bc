"""Exceptions raised by the budget approval server.

A link that has expired or was already used is not an error: it is one
of the normal outcomes of resolving a token and is returned, not raised.
"""

from __future__ import annotations


class BudgetApprovalError(Exception):
    """Root of the project's exceptions.

    ``message`` is safe to show to the caller; ``details`` carries context
    for logs and operator reports.
    """

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} | Details: {self.details}"


class ConfigurationError(BudgetApprovalError):
    """A setting needed by the current operation is missing or unusable.

    Never retried: the operation is aborted and the operator informed.
    """


class ValidationError(BudgetApprovalError):
    """A submitted or configured value was rejected.

    Attributes:
        field: Name of the offending field, when there is one.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field


class TokenError(BudgetApprovalError):
    """The token store could not write, read or open an entry."""


class _RemoteCallError(BudgetApprovalError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details)
        # None for timeouts and connection failures
        self.status_code = status_code


class ForwardingError(_RemoteCallError):
    """The downstream budget endpoint did not accept an approved request."""


class NotificationError(_RemoteCallError):
    """An email could not be sent through the Gmail API."""


__all__ = [
    "BudgetApprovalError",
    "ConfigurationError",
    "ForwardingError",
    "NotificationError",
    "TokenError",
    "ValidationError",
]
