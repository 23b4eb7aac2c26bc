"""Input validation utilities."""

from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from budget_approval.utils.errors import ValidationError

logger = logging.getLogger(__name__)

# Regex patterns
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
TOKEN_PATTERN = re.compile(r"(approve|deny)-[A-Za-z0-9_-]{16,120}")

MAX_MODULE_LENGTH = 500
MAX_BUDGET_TEXT_LENGTH = 32
MAX_BUDGET = Decimal("1000000000")
CENT = Decimal("0.01")
WHITESPACE_RUN = re.compile(r"\s+")


def validate_email(email: str | None, field: str = "email") -> str:
    """Validate email address format.

    Args:
        email: Email address to validate.
        field: Submission field name, used in the error.

    Returns:
        Validated email address (stripped).

    Raises:
        ValidationError: If the address is missing or malformed.
    """
    email = (email or "").strip()
    if not email:
        raise ValidationError(f"Missing {field}", field=field)

    if len(email) > 254:
        raise ValidationError(
            f"{field} too long (max 254 characters)",
            field=field,
        )

    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid {field} format: {email}", field=field)

    return email


def parse_budget(raw: object) -> Decimal:
    """Parse a submitted budget amount.

    Accepts numbers and numeric strings, optionally with a leading ``$``
    and thousands separators. Anything else is rejected: an amount that
    cannot be read must never be routed to auto-approval.

    Args:
        raw: Value from the submission.

    Returns:
        The amount as a Decimal rounded to whole cents.

    Raises:
        ValidationError: If the amount is missing, not a number, not
            finite, negative, or above MAX_BUDGET.
    """
    if raw is None or isinstance(raw, bool):
        raise ValidationError("Missing budget", field="budget")

    text = str(raw).strip().lstrip("$").replace(",", "").strip()
    if not text:
        raise ValidationError("Missing budget", field="budget")
    if len(text) > MAX_BUDGET_TEXT_LENGTH:
        raise ValidationError("Budget is too long to be an amount", field="budget")

    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise ValidationError(
            f"Budget is not a number: {str(raw)[:50]}",
            field="budget",
        ) from e

    if not amount.is_finite():
        raise ValidationError("Budget must be a finite number", field="budget")
    if amount < 0:
        raise ValidationError("Budget cannot be negative", field="budget")
    if amount > MAX_BUDGET:
        raise ValidationError(f"Budget cannot exceed {MAX_BUDGET:,}", field="budget")

    # Whole cents; "+ 0" turns -0.00 into 0.00
    return amount.quantize(CENT, rounding=ROUND_HALF_UP) + 0


def normalize_module(module: str | None, default: str) -> str:
    """Return the module description on one line, or ``default`` if blank.

    Runs of whitespace, line breaks included, collapse to a single space
    since the description ends up in email subjects.

    Raises:
        ValidationError: If the description is unreasonably long.
    """
    module = WHITESPACE_RUN.sub(" ", module or "").strip()
    if not module:
        return default
    if len(module) > MAX_MODULE_LENGTH:
        raise ValidationError(
            f"Module too long (max {MAX_MODULE_LENGTH} characters)",
            field="module",
        )
    return module


def validate_token(token: str) -> str:
    """Validate the shape of an approval token taken from a link.

    Args:
        token: Raw ``token`` query parameter.

    Returns:
        Validated token (stripped).

    Raises:
        ValidationError: If the token does not look like an issued token.
    """
    token = token.strip()
    if not token:
        raise ValidationError("Token cannot be empty", field="token")

    if not TOKEN_PATTERN.fullmatch(token):
        raise ValidationError("Malformed token", field="token")

    return token
