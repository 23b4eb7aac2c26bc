"""Pydantic input schemas for the budget approval server."""

from budget_approval.schemas.submission import SubmissionParams

__all__ = ["SubmissionParams"]
