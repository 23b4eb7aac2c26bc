"""Error types and entry sealing shared across the budget approval server."""

from budget_approval.utils.encryption import (
    generate_key,
    key_from_hex,
    open_json,
    seal_json,
)
from budget_approval.utils.errors import (
    BudgetApprovalError,
    ConfigurationError,
    ForwardingError,
    NotificationError,
    TokenError,
    ValidationError,
)

__all__ = [
    "BudgetApprovalError",
    "ConfigurationError",
    "ForwardingError",
    "NotificationError",
    "TokenError",
    "ValidationError",
    "generate_key",
    "key_from_hex",
    "open_json",
    "seal_json",
]
