"""Forwarding of approved requests to the downstream endpoint."""

from __future__ import annotations

import logging

import requests

from budget_approval.hitl.models import ApprovalRequest, ForwardResult
from budget_approval.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 2000


class HttpForwarder:
    """POSTs approved requests as JSON to the downstream endpoint.

    The endpoint receives ``{"email", "budget", "module"}`` with the budget
    as a string. Only HTTP 200 counts as success. Nothing is retried: a
    failed call is returned to the caller, which reports it.
    """

    def __init__(self, endpoint_url: str | None, timeout: float = 30.0) -> None:
        self._endpoint_url = endpoint_url
        self._timeout = timeout

    def forward(self, request: ApprovalRequest) -> ForwardResult:
        """Send an approved request downstream.

        Args:
            request: The approved request.

        Returns:
            ForwardResult with success, status code and (truncated) body.

        Raises:
            ConfigurationError: If no endpoint URL is configured.
        """
        if not self._endpoint_url:
            raise ConfigurationError(
                "Downstream endpoint URL not configured",
                details={"hint": "Set API_GATEWAY_URL"},
            )

        payload = {
            "email": request.submitter_email,
            "budget": request.downstream_budget(),
            "module": request.module,
        }

        try:
            response = requests.post(
                self._endpoint_url,
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("Network error forwarding request: %s", e)
            return ForwardResult(
                success=False,
                status_code=None,
                body=f"{type(e).__name__}: {e}"[:MAX_BODY_LENGTH],
            )

        result = ForwardResult(
            success=response.status_code == 200,
            status_code=response.status_code,
            body=response.text[:MAX_BODY_LENGTH],
        )
        if result.success:
            logger.info("Forwarded request for %s", request.submitter_email)
        else:
            logger.error(
                "Downstream endpoint returned %d for %s",
                response.status_code,
                request.submitter_email,
            )
        return result
