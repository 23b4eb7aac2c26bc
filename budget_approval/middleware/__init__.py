"""Middleware module for the budget approval server."""

from budget_approval.middleware.audit_logger import AuditEntry, AuditLogger
from budget_approval.middleware.validator import (
    normalize_module,
    parse_budget,
    validate_email,
    validate_token,
)

__all__ = [
    "AuditLogger",
    "AuditEntry",
    "validate_email",
    "parse_budget",
    "normalize_module",
    "validate_token",
]
