"""Run the budget approval server: ``python -m budget_approval``."""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from budget_approval.utils.encryption import key_from_hex
from budget_approval.utils.errors import ValidationError

# Unset values that degrade the server without stopping it
RECOMMENDED_VARS = ("APPROVAL_BASE_URL", "API_GATEWAY_URL", "OPERATOR_EMAIL")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging() -> None:
    """Send logs to stderr at ``LOG_LEVEL`` (default INFO).

    stdout stays free for the STDIO transport's JSON-RPC stream.
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=logging.getLevelNamesMapping().get(level_name, logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    for noisy in ("googleapiclient", "google.auth", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def validate_environment() -> bool:
    """Check the settings without which no request can succeed.

    Missing link or downstream URLs only abort the requests that need
    them, so they are warned about here and reported per request later.
    """
    logger = logging.getLogger(__name__)

    if not os.getenv("GMAIL_CREDENTIALS_FILE"):
        logger.error("GMAIL_CREDENTIALS_FILE is required to send approval emails")
        return False

    for name in RECOMMENDED_VARS:
        if not os.getenv(name):
            logger.warning("%s is not set", name)

    if os.getenv("TOKEN_STORE_DIR"):
        try:
            key_from_hex(os.getenv("TOKEN_ENCRYPTION_KEY", ""))
        except ValidationError as e:
            logger.error("TOKEN_STORE_DIR is set but TOKEN_ENCRYPTION_KEY is unusable: %s", e)
            return False

    return True


def main() -> None:
    """Load ``.env``, validate, and serve on the transport named by ``TRANSPORT``.

    ``http``/``sse`` (default) serves the MCP endpoints together with the
    submission form and approval link routes. ``stdio`` exposes the tools
    only, since managers cannot follow links into a STDIO session.
    """
    load_dotenv()
    configure_logging()
    logger = logging.getLogger(__name__)

    if not validate_environment():
        logger.error("Environment validation failed. Exiting.")
        sys.exit(1)

    # Created from the environment on import
    from budget_approval.server import mcp

    transport = os.getenv("TRANSPORT", "http").lower()
    if transport in ("http", "sse"):
        import uvicorn

        host = os.getenv("HOST", "0.0.0.0")
        port = int(os.getenv("PORT", "3000"))
        logger.info("Serving budget approval on http://%s:%d", host, port)
        uvicorn.run(mcp.sse_app(), host=host, port=port, log_level="info")
    elif transport == "streamable-http":
        logger.info("Serving budget approval over streamable-http")
        mcp.run(transport="streamable-http")
    else:
        logger.info("Serving budget approval tools over STDIO (no approval links)")
        mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
