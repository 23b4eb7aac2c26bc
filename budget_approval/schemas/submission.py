"""Pydantic parameter models for budget submissions.

These models only capture the raw, form-shaped input. Field-level checks
(email shape, budget parsing) happen in the workflow so that every failure,
including a missing field, is reported to the operator the same way.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SubmissionParams(BaseModel):
    """Raw budget request as received from the form."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    submitter_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("submitter_email", "email"),
        description="Email address of the requester",
    )
    budget: str | int | float | None = Field(
        default=None,
        description="Requested amount (number or numeric string)",
    )
    module: str | None = Field(
        default=None,
        description="What the budget is for",
    )
    manager_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("manager_email", "manager"),
        description="Email address of the approving manager",
    )
