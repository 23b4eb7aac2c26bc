"""FastMCP server for the budget approval workflow.

The server exposes two HTTP routes next to the MCP transport endpoints:

- ``POST /submit``: the budget request form posts here (form-encoded or
  JSON body).
- ``GET /approval?token=...``: target of the approve/deny links emailed to
  managers. Always answers with one of the fixed outcome pages.

and two MCP tools:

- ``budget_submit_request``: submit a budget request programmatically
- ``budget_cleanup_expired``: reclaim expired approval tokens

The HTTP routes are served by the SSE and streamable-http transports.
The server uses a lifespan context manager to clean up expired tokens at
startup.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response

from budget_approval.config import load_settings
from budget_approval.hitl.workflow import BudgetWorkflow, build_workflow
from budget_approval.schemas.submission import SubmissionParams
from budget_approval.tools import budget_cleanup_expired, budget_submit_request
from budget_approval.tools.base import INTERNAL_ERROR

logger = logging.getLogger(__name__)

APPROVAL_PATH = "/approval"
SUBMIT_PATH = "/submit"


# =============================================================================
# Cleanup Resources Helper
# =============================================================================


async def cleanup_resources(workflow: BudgetWorkflow) -> None:
    """Reclaim expired approval tokens at startup.

    Runs from the server lifespan; a failing store only logs a warning so
    the server still comes up.
    """
    try:
        expired_count = await run_in_threadpool(workflow.cleanup_expired)
        if expired_count > 0:
            logger.info("Cleaned up %d expired approval tokens", expired_count)
    except Exception as e:
        logger.warning("Error cleaning up expired approval tokens: %s", e)


# =============================================================================
# HTTP Routes
# =============================================================================


def _register_routes(mcp: FastMCP, workflow: BudgetWorkflow) -> None:
    """Register the submission and approval link routes.

    Args:
        mcp: The FastMCP server instance.
        workflow: Workflow the routes delegate to.
    """

    @mcp.custom_route(APPROVAL_PATH, methods=["GET"])
    async def approval_link(request: Request) -> Response:
        """Resolve an approve or deny link and render the outcome page."""
        token = request.query_params.get("token")
        result = await run_in_threadpool(workflow.handle_link, token)
        return HTMLResponse(result.html, status_code=result.status_code)

    @mcp.custom_route(SUBMIT_PATH, methods=["POST"])
    async def submit_form(request: Request) -> Response:
        """Accept a budget request from the form."""
        content_type = request.headers.get("content-type", "")
        try:
            if content_type.startswith("application/json"):
                raw: Any = await request.json()
                if not isinstance(raw, dict):
                    raw = {}
            else:
                raw = dict(await request.form())
            params = SubmissionParams.model_validate(raw)
        except (ValueError, PydanticValidationError) as e:
            # Unparseable body: every field is then reported missing
            logger.warning("Unreadable submission body: %s", e)
            params = SubmissionParams()

        response = await budget_submit_request(workflow, params)
        status_code = 200 if response["status"] == "success" else 400
        if response.get("error_code") == INTERNAL_ERROR:
            status_code = 500
        return JSONResponse(response, status_code=status_code)


# =============================================================================
# Tool Wrappers
# =============================================================================


def _register_tools(mcp: FastMCP, workflow: BudgetWorkflow) -> None:
    """Register the MCP tools with the FastMCP server.

    Args:
        mcp: The FastMCP server instance.
        workflow: Workflow the tools delegate to.
    """

    @mcp.tool(
        name="budget_submit_request",
        annotations=ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
    )
    async def budget_submit_request_tool(
        submitter_email: str,
        budget: str,
        manager_email: str,
        module: str | None = None,
    ) -> dict[str, Any]:
        """Submit a budget request for approval.

        Budgets at or below the auto-approval threshold are forwarded
        immediately. Larger budgets email the manager single-use approve
        and deny links; the first link used decides the request.

        Args:
            submitter_email: Email address of the requester.
            budget: Requested amount, e.g. "1250" or "$1,250.00".
            manager_email: Email address of the approving manager.
            module: What the budget is for (optional).

        Returns:
            Success: {status, data: {decision, request_id?, expires_at?}, message}
            Error: {status, error, error_code}
        """
        params = SubmissionParams(
            submitter_email=submitter_email,
            budget=budget,
            manager_email=manager_email,
            module=module,
        )
        return await budget_submit_request(workflow, params)

    @mcp.tool(
        name="budget_cleanup_expired",
        annotations=ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
        ),
    )
    async def budget_cleanup_expired_tool() -> dict[str, Any]:
        """Remove expired approval tokens from the token store.

        Returns:
            Success response with the number of removed entries.
        """
        return await budget_cleanup_expired(workflow)


# =============================================================================
# Server Factory
# =============================================================================


def create_server(workflow: BudgetWorkflow | None = None) -> FastMCP:
    """Build a FastMCP server with the budget routes and tools.

    Args:
        workflow: Workflow to serve. Built from the environment if omitted.

    Returns:
        The FastMCP server, ready for any transport.
    """
    if workflow is None:
        workflow = build_workflow(load_settings())

    @asynccontextmanager
    async def server_lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
        logger.info("Budget approval server starting up...")
        await cleanup_resources(workflow)
        logger.info("Budget approval server ready")

        yield {}

        logger.info("Budget approval server shutting down...")

    server = FastMCP(
        name="budget-approval-server",
        lifespan=server_lifespan,
    )

    _register_routes(server, workflow)
    _register_tools(server, workflow)

    logger.info("Budget approval server created with 2 tools and 2 routes")
    return server


# =============================================================================
# Global Server Instance
# =============================================================================

mcp = create_server()
