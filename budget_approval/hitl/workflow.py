"""Entry points of the budget approval workflow.

BudgetWorkflow is the outermost boundary for both triggers:

- ``submit``: a budget request arrives from the form.
- ``handle_link``: a manager visits an approve or deny link.

Nothing raised below these two methods escapes them. Submitters and
managers only ever see a fixed result (a status dict or one of the outcome
pages); operators receive the diagnostics through the OperatorNotifier.
"""

from __future__ import annotations

import logging
import time

from pydantic import BaseModel

from budget_approval.config import Settings
from budget_approval.forwarder import HttpForwarder
from budget_approval.gmail.client import GmailClient
from budget_approval.gmail.mailer import GmailMailer, Mailer
from budget_approval.hitl.controller import ApprovalFlowController
from budget_approval.hitl.file_store import FileTokenStore
from budget_approval.hitl.models import (
    ApprovalRequest,
    Decision,
    Outcome,
    Resolution,
    SubmissionResult,
)
from budget_approval.hitl.router import route
from budget_approval.hitl.store import Clock, InMemoryTokenStore, TokenStore
from budget_approval.middleware.audit_logger import AuditLogger
from budget_approval.middleware.validator import (
    normalize_module,
    parse_budget,
    validate_email,
)
from budget_approval.notify import (
    CriticalReport,
    EmailOperatorNotifier,
    LoggingOperatorNotifier,
    OperatorNotifier,
)
from budget_approval.schemas.submission import SubmissionParams
from budget_approval.templates import auto_approved_email, outcome_page
from budget_approval.utils.encryption import key_from_hex
from budget_approval.utils.errors import (
    ConfigurationError,
    ForwardingError,
    ValidationError,
)

logger = logging.getLogger(__name__)

LINK_STATUS_CODES: dict[Outcome, int] = {
    Outcome.APPROVED: 200,
    Outcome.DENIED: 200,
    Outcome.EXPIRED: 410,
    Outcome.INVALID: 400,
    Outcome.ERROR: 500,
}


class LinkResult(BaseModel):
    """What the link handler renders."""

    outcome: Outcome
    status_code: int
    html: str


class BudgetWorkflow:
    """Submission and link-visit handlers around the approval controller."""

    def __init__(
        self,
        settings: Settings,
        store: TokenStore,
        mailer: Mailer,
        forwarder: HttpForwarder,
        operator: OperatorNotifier,
        audit_logger: AuditLogger | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._mailer = mailer
        self._forwarder = forwarder
        self._operator = operator
        self._audit = audit_logger or AuditLogger(enabled=settings.audit_log_enabled)
        self.controller = ApprovalFlowController(
            settings=settings,
            store=store,
            mailer=mailer,
            forwarder=forwarder,
            operator=operator,
            audit_logger=self._audit,
            clock=clock,
        )

    @property
    def store(self) -> TokenStore:
        return self._store

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    def submit(self, params: SubmissionParams) -> SubmissionResult:
        """Handle a budget submission.

        Validates the submission, routes it by budget, then either forwards
        it immediately or starts manager approval.

        Args:
            params: Raw submission fields.

        Returns:
            SubmissionResult. ``accepted`` is False when the submission was
            aborted or its auto-approval could not be forwarded.
        """
        start_time = time.perf_counter()
        try:
            request, manager_email = self._validate(params)
        except ValidationError as e:
            logger.warning("Rejected submission: %s", e.message)
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Budget submission rejected",
                    e,
                    submitter=params.submitter_email,
                    budget=params.budget,
                    module=params.module,
                    manager=params.manager_email,
                )
            )
            self._audit_submission(params.submitter_email, None, start_time, e.message)
            return SubmissionResult(accepted=False, error=e.message)

        decision: Decision | None = None
        try:
            decision = route(request, self._settings.auto_approve_threshold)
            logger.info(
                "Routed %s request from %s: %s",
                request.display_budget(),
                request.submitter_email,
                decision.value,
            )

            if decision is Decision.AUTO_APPROVE:
                result = self._auto_approve(request)
            else:
                links = self.controller.initiate(request, manager_email)
                result = SubmissionResult(accepted=True, decision=decision, links=links)

        except ConfigurationError as e:
            logger.error("Submission aborted, configuration missing: %s", e)
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Budget submission aborted: configuration missing",
                    e,
                    **request.context(),
                )
            )
            result = SubmissionResult(accepted=False, decision=decision, error=e.message)

        except Exception as e:
            logger.exception("Unexpected error handling submission")
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Unexpected error handling budget submission",
                    e,
                    **request.context(),
                )
            )
            result = SubmissionResult(
                accepted=False, decision=decision, error="Internal error"
            )

        self._audit_submission(request.submitter_email, result, start_time, result.error)
        return result

    def handle_link(self, token: str | None) -> LinkResult:
        """Resolve an approval link visit into a fixed outcome page.

        Args:
            token: Value of the ``token`` query parameter, or None.

        Returns:
            LinkResult with the outcome, HTTP status and page.
        """
        try:
            resolution = self.controller.resolve(token)
        except Exception as e:
            logger.exception("Unexpected error resolving approval link")
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Unexpected error resolving approval link", e
                )
            )
            resolution = Resolution(outcome=Outcome.ERROR)

        return LinkResult(
            outcome=resolution.outcome,
            status_code=LINK_STATUS_CODES[resolution.outcome],
            html=outcome_page(resolution.outcome),
        )

    def cleanup_expired(self) -> int:
        """Reclaim expired token entries."""
        return self._store.cleanup_expired()

    def _validate(self, params: SubmissionParams) -> tuple[ApprovalRequest, str]:
        submitter = validate_email(params.submitter_email, field="submitter_email")
        manager = validate_email(params.manager_email, field="manager_email")
        request = ApprovalRequest(
            submitter_email=submitter,
            budget=parse_budget(params.budget),
            module=normalize_module(params.module, self._settings.default_module),
        )
        return request, manager

    def _auto_approve(self, request: ApprovalRequest) -> SubmissionResult:
        forward_result = self._forwarder.forward(request)
        self._audit.log_event(
            "forward",
            submitter=request.submitter_email,
            details={
                "status_code": forward_result.status_code,
                "trigger": "auto_approval",
            },
            result_status="success" if forward_result.success else "error",
        )

        if not forward_result.success:
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Auto-approved request was rejected downstream",
                    ForwardingError(
                        f"Downstream returned {forward_result.status_code}",
                        status_code=forward_result.status_code,
                        details={"response_body": forward_result.body},
                    ),
                    **request.context(),
                    status_code=forward_result.status_code,
                )
            )
            return SubmissionResult(
                accepted=False,
                decision=Decision.AUTO_APPROVE,
                forward_result=forward_result,
                error="Downstream call failed",
            )

        subject, body = auto_approved_email(request)
        try:
            self._mailer.send(request.submitter_email, subject, body)
        except Exception as e:
            self._operator.report_critical(
                CriticalReport.from_exception(
                    "Submitter could not be notified of auto-approval",
                    e,
                    **request.context(),
                )
            )

        return SubmissionResult(
            accepted=True,
            decision=Decision.AUTO_APPROVE,
            forward_result=forward_result,
        )

    def _audit_submission(
        self,
        submitter: str | None,
        result: SubmissionResult | None,
        start_time: float,
        error: str | None,
    ) -> None:
        self._audit.log_event(
            "submission",
            submitter=submitter,
            details={"decision": result.decision.value if result and result.decision else None},
            result_status="success" if result and result.accepted else "error",
            error_message=error,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )


def build_workflow(settings: Settings, clock: Clock | None = None) -> BudgetWorkflow:
    """Wire the production collaborators from settings.

    Raises:
        ConfigurationError: If the file store is configured without a
            valid encryption key.
    """
    store: TokenStore
    if settings.token_store_dir is not None:
        if not settings.token_encryption_key:
            raise ConfigurationError(
                "TOKEN_ENCRYPTION_KEY is required with TOKEN_STORE_DIR",
                details={"hint": "Set TOKEN_ENCRYPTION_KEY to 64 hex characters"},
            )
        try:
            key = key_from_hex(settings.token_encryption_key)
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid TOKEN_ENCRYPTION_KEY", details={"error": e.message}
            ) from e
        store = FileTokenStore(settings.token_store_dir, key, clock=clock)
    else:
        store = InMemoryTokenStore(clock=clock)

    mailer = GmailMailer(
        GmailClient(settings.gmail_credentials_file, sender=settings.gmail_sender),
        sender=settings.gmail_sender,
    )

    operator: OperatorNotifier
    if settings.operator_email:
        operator = EmailOperatorNotifier(mailer, settings.operator_email)
    else:
        logger.warning("OPERATOR_EMAIL not set; critical reports go to the log only")
        operator = LoggingOperatorNotifier()

    return BudgetWorkflow(
        settings=settings,
        store=store,
        mailer=mailer,
        forwarder=HttpForwarder(
            settings.api_gateway_url, timeout=settings.forward_timeout_seconds
        ),
        operator=operator,
        clock=clock,
    )
