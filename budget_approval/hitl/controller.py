"""Approval flow controller: issues and resolves single-use approval links.

This module implements the manager-approval half of the workflow:

1. Initiate: store one approve token and one deny token for a request
   (same payload, same TTL, same group) and email the manager both links.
2. Resolve: atomically consume a token (invalidating its sibling), then
   forward the request downstream or notify the submitter of the denial.

Each request is therefore resolved at most once, whichever link is
clicked, however many times, and however concurrently.
"""

from __future__ import annotations

import logging
import secrets
import time
import uuid
from datetime import timedelta
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import ValidationError as PydanticValidationError

from budget_approval.config import Settings
from budget_approval.forwarder import HttpForwarder
from budget_approval.gmail.mailer import Mailer
from budget_approval.hitl.models import (
    ApprovalLinks,
    ApprovalRequest,
    ApprovalToken,
    Outcome,
    Resolution,
    TokenIntent,
)
from budget_approval.hitl.store import Clock, TokenStore, utc_now
from budget_approval.middleware.audit_logger import AuditLogger
from budget_approval.middleware.validator import validate_token
from budget_approval.notify import CriticalReport, OperatorNotifier
from budget_approval.templates import approved_email, denied_email, manager_request_email
from budget_approval.utils.errors import (
    ConfigurationError,
    ForwardingError,
    ValidationError,
)

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token_value(intent: TokenIntent) -> str:
    """Return a new unguessable token value prefixed with its intent."""
    return f"{intent.value}-{secrets.token_urlsafe(TOKEN_BYTES)}"


def build_link(base_url: str, token: str) -> str:
    """Append ``token=<value>`` to ``base_url``, keeping any existing query."""
    parts = urlsplit(base_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query = [(k, v) for k, v in query if k != "token"]
    query.append(("token", token))
    return urlunsplit(parts._replace(query=urlencode(query)))


class ApprovalFlowController:
    """Issues approval links and resolves them exactly once.

    Attributes:
        _store: Shared token store; its atomic get-and-invalidate is the
            only concurrency guarantee the flow relies on.

    Example:
        >>> controller = ApprovalFlowController(
        ...     settings, store, mailer, forwarder, operator, audit_logger
        ... )
        >>> links = controller.initiate(request, "manager@example.com")
        >>> controller.resolve(token_from(links.approve_url)).outcome
        <Outcome.APPROVED: 'approved'>
    """

    def __init__(
        self,
        settings: Settings,
        store: TokenStore,
        mailer: Mailer,
        forwarder: HttpForwarder,
        operator: OperatorNotifier,
        audit_logger: AuditLogger,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._mailer = mailer
        self._forwarder = forwarder
        self._operator = operator
        self._audit = audit_logger
        self._clock = clock or utc_now

    def initiate(self, request: ApprovalRequest, manager_email: str) -> ApprovalLinks:
        """Issue approve/deny tokens for ``request`` and email the manager.

        Args:
            request: Request whose budget exceeds the auto-approval threshold.
            manager_email: Validated address of the deciding manager.

        Returns:
            The two links and their common expiry.

        Raises:
            ConfigurationError: If no approval link base URL is configured.
                Nothing is stored in that case.
            TokenError: If the tokens cannot be stored.
            NotificationError: If the manager email fails. Both tokens are
                invalidated before the error propagates.
        """
        base_url = self._settings.approval_base_url
        if not base_url:
            raise ConfigurationError(
                "Approval link base URL not configured",
                details={"hint": "Set APPROVAL_BASE_URL"},
            )

        ttl = self._settings.token_ttl_seconds
        request_id = uuid.uuid4().hex
        created_at = self._clock()
        tokens = [
            ApprovalToken(
                value=generate_token_value(intent),
                intent=intent,
                request_id=request_id,
                request=request,
                created_at=created_at,
                expires_at=created_at + timedelta(seconds=ttl),
            )
            for intent in (TokenIntent.APPROVE, TokenIntent.DENY)
        ]
        approve, deny = tokens

        for token in tokens:
            self._store.put(token.value, token.to_payload(), ttl, group=request_id)

        links = ApprovalLinks(
            request_id=request_id,
            approve_url=build_link(base_url, approve.value),
            deny_url=build_link(base_url, deny.value),
            expires_at=approve.expires_at,
        )

        subject, body = manager_request_email(request, links)
        try:
            self._mailer.send(manager_email, subject, body)
        except Exception:
            # Links nobody received must not stay usable
            try:
                self._store.get_and_invalidate(approve.value)
            except Exception:
                logger.exception(
                    "Failed to invalidate undelivered links (request_id=%s)", request_id
                )
            raise

        logger.info(
            "Issued approval links for %s (request_id=%s, expires_at=%s)",
            request.submitter_email,
            request_id,
            links.expires_at.isoformat(),
        )
        self._audit.log_event(
            "token_issued",
            submitter=request.submitter_email,
            details={
                "request_id": request_id,
                "manager": manager_email,
                "approve_url": links.approve_url,
                "deny_url": links.deny_url,
                "expires_at": links.expires_at.isoformat(),
            },
            result_status="success",
        )
        return links

    def resolve(self, token: str | None) -> Resolution:
        """Resolve an approval link visit.

        Args:
            token: Raw ``token`` query parameter, possibly missing.

        Returns:
            Resolution whose outcome is APPROVED, DENIED, EXPIRED (unknown,
            used or expired token), INVALID (missing or malformed token,
            unusable entry) or ERROR (downstream failure after approval).

        Raises:
            TokenError: If the store itself fails.
        """
        if not token or not token.strip():
            logger.info("Approval link visited without a token")
            return self._finish(Resolution(outcome=Outcome.INVALID))

        try:
            token = validate_token(token)
        except ValidationError:
            logger.info("Approval link visited with a malformed token")
            return self._finish(Resolution(outcome=Outcome.INVALID))

        payload = self._store.get_and_invalidate(token)
        if payload is None:
            logger.info("Approval link expired or already used")
            return self._finish(Resolution(outcome=Outcome.EXPIRED))

        try:
            issued = ApprovalToken.from_payload(token, payload)
        except PydanticValidationError as e:
            logger.error("Stored token entry could not be decoded: %s", e)
            return self._finish(Resolution(outcome=Outcome.INVALID))

        if issued.intent is TokenIntent.APPROVE:
            return self._finish(self._approve(issued.request))
        return self._finish(self._deny(issued.request))

    def _approve(self, request: ApprovalRequest) -> Resolution:
        start_time = time.perf_counter()
        try:
            result = self._forwarder.forward(request)
        except Exception as e:
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Approved request could not be forwarded; manual retry required",
                    e,
                    **request.context(),
                )
            )
            return Resolution(
                outcome=Outcome.ERROR, request=request, intent=TokenIntent.APPROVE
            )

        self._audit.log_event(
            "forward",
            submitter=request.submitter_email,
            details={"status_code": result.status_code, "trigger": "manager_approval"},
            result_status="success" if result.success else "error",
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )

        if not result.success:
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Approved request was rejected downstream; manual retry required",
                    ForwardingError(
                        f"Downstream returned {result.status_code}",
                        status_code=result.status_code,
                        details={"response_body": result.body},
                    ),
                    **request.context(),
                    status_code=result.status_code,
                )
            )
            return Resolution(
                outcome=Outcome.ERROR,
                request=request,
                intent=TokenIntent.APPROVE,
                forward_result=result,
            )

        subject, body = approved_email(request)
        self._notify_submitter(request, subject, body)
        return Resolution(
            outcome=Outcome.APPROVED,
            request=request,
            intent=TokenIntent.APPROVE,
            forward_result=result,
        )

    def _deny(self, request: ApprovalRequest) -> Resolution:
        subject, body = denied_email(request)
        self._notify_submitter(request, subject, body)
        return Resolution(outcome=Outcome.DENIED, request=request, intent=TokenIntent.DENY)

    def _notify_submitter(self, request: ApprovalRequest, subject: str, body: str) -> None:
        # Token already consumed: the decision stands even if the notice fails
        try:
            self._mailer.send(request.submitter_email, subject, body)
        except Exception as e:
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Submitter could not be notified of the decision",
                    e,
                    **request.context(),
                )
            )

    def _finish(self, resolution: Resolution) -> Resolution:
        self._audit.log_event(
            "token_resolved",
            submitter=resolution.request.submitter_email if resolution.request else None,
            details={"intent": resolution.intent.value if resolution.intent else None},
            result_status=resolution.outcome.value,
        )
        return resolution
