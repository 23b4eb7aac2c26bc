"""Pydantic models for the budget approval workflow.

This module defines the data carried between a budget submission and its
resolution: the immutable ApprovalRequest, the single-use ApprovalToken
issued for manager decisions, and the results returned by the router,
the controller and the downstream forwarder.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Decision(str, Enum):
    """Routing decision for a submitted request.

    Attributes:
        AUTO_APPROVE: Budget is within the threshold, no human involved.
        REQUIRES_APPROVAL: Budget exceeds the threshold, a manager decides.
    """

    AUTO_APPROVE = "auto_approve"
    REQUIRES_APPROVAL = "requires_approval"


class TokenIntent(str, Enum):
    """Direction a token resolves its request in.

    The intent is stored alongside the token; the ``approve-``/``deny-``
    prefix of the token value is informational only.
    """

    APPROVE = "approve"
    DENY = "deny"


class Outcome(str, Enum):
    """Terminal outcome of visiting an approval link.

    Attributes:
        APPROVED: Request approved and forwarded downstream.
        DENIED: Request denied, submitter notified.
        EXPIRED: Token unknown, already used, or past its TTL.
        INVALID: Token missing, malformed, or carrying no usable intent.
        ERROR: Resolution failed after the token was consumed.
    """

    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    INVALID = "invalid"
    ERROR = "error"


class ApprovalRequest(BaseModel):
    """A budget request awaiting resolution.

    Created once from a validated submission and never modified. The same
    instance (or an equal copy restored from the token store) is what gets
    forwarded downstream.

    Attributes:
        submitter_email: Address notified of the outcome.
        budget: Requested amount, non-negative.
        module: Free-text description of what the budget is for.

    Example:
        >>> request = ApprovalRequest(
        ...     submitter_email="alice@example.com",
        ...     budget=Decimal("50"),
        ...     module="Onboarding",
        ... )
        >>> request.display_budget()
        '$50.00'
    """

    model_config = ConfigDict(frozen=True)

    submitter_email: str = Field(
        ...,
        min_length=1,
        description="Email address of the person requesting the budget",
    )
    budget: Decimal = Field(
        ...,
        ge=0,
        allow_inf_nan=False,
        description="Requested amount",
    )
    module: str = Field(
        ...,
        description="What the budget is requested for",
    )

    def display_budget(self) -> str:
        """Format the budget for humans, e.g. ``$1,250.00``."""
        return f"${self.budget:,.2f}"

    def downstream_budget(self) -> str:
        """Format the budget for the downstream payload, e.g. ``15`` or ``15.5``."""
        return format(self.budget.normalize(), "f")

    def context(self) -> dict[str, Any]:
        """Return the fields an operator needs to remediate a failure."""
        return {
            "submitter": self.submitter_email,
            "budget": self.downstream_budget(),
            "module": self.module,
        }


class ApprovalToken(BaseModel):
    """A single-use token granting one decision on one request.

    Two tokens (one per intent) are issued for every request that needs a
    manager decision. They share ``request_id`` so that consuming either
    one invalidates both.
    """

    value: str = Field(..., description="Opaque token value used in links")
    intent: TokenIntent = Field(..., description="Decision this token applies")
    request_id: str = Field(..., description="Groups the sibling tokens")
    request: ApprovalRequest
    created_at: datetime
    expires_at: datetime

    def to_payload(self) -> dict[str, Any]:
        """Serialize everything except the token value for storage."""
        return self.model_dump(mode="json", exclude={"value"})

    @classmethod
    def from_payload(cls, value: str, payload: dict[str, Any]) -> ApprovalToken:
        """Rebuild a token from a stored payload.

        Raises:
            pydantic.ValidationError: If the payload is incomplete or carries
                an unknown intent.
        """
        return cls.model_validate({**payload, "value": value})


class ApprovalLinks(BaseModel):
    """Links emailed to the manager for one pending request."""

    request_id: str
    approve_url: str
    deny_url: str
    expires_at: datetime


class ForwardResult(BaseModel):
    """Result of posting an approved request to the downstream endpoint.

    ``status_code`` is None when the request never got a response
    (timeout, connection error).
    """

    success: bool
    status_code: int | None = None
    body: str = ""


class Resolution(BaseModel):
    """Result of resolving an approval link."""

    outcome: Outcome
    request: ApprovalRequest | None = None
    intent: TokenIntent | None = None
    forward_result: ForwardResult | None = None


class SubmissionResult(BaseModel):
    """Result of handling a budget submission.

    Attributes:
        accepted: False when the submission was aborted (validation or
            configuration failure) or its auto-approval was rejected
            downstream; the operator has been informed.
        decision: Routing decision, if the submission got that far.
        links: Issued approval links for manager-approved requests.
        forward_result: Downstream result for auto-approved requests.
        error: Short description of why the submission was aborted.
    """

    accepted: bool
    decision: Decision | None = None
    links: ApprovalLinks | None = None
    forward_result: ForwardResult | None = None
    error: str | None = None
