"""
FastAPI server for DynDNS Gateway.

This module provides the dyndns2 compatible update endpoint. Clients
authenticate with HTTP Basic auth and report their addresses with the
`hostname` and `myip` query parameters; responses are the short dyndns2
status words ("good", "nochg", "nohost", ...) as plain text.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette import status as st_status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from dyndns_gateway.config import Config, load_config
from dyndns_gateway.models import OutcomeKind, ReconciliationOutcome
from dyndns_gateway.reconciler import Reconciler
from dyndns_gateway.zones import open_zone

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from typing import Final


logger = logging.getLogger(__name__)

# Global config (set during startup)
_config: Config | None = None

# Paths served by the update endpoint ("/nic/update" is the dyndns2 default)
UPDATE_PATHS: Final[frozenset[str]] = frozenset({"/update", "/nic/update"})

# HTTP status code for each outcome
OUTCOME_STATUS: Final[dict[OutcomeKind, int]] = {
    OutcomeKind.HOST_UNKNOWN: st_status.HTTP_404_NOT_FOUND,
    OutcomeKind.NO_CHANGE: st_status.HTTP_200_OK,
    OutcomeKind.APPLIED: st_status.HTTP_200_OK,
    OutcomeKind.UPSTREAM_ERROR: st_status.HTTP_502_BAD_GATEWAY,
}


def get_config() -> Config:
    """Get the current configuration."""
    if _config is None:
        msg = "Configuration not loaded"
        raise RuntimeError(msg)
    return _config


def set_preloaded_config(config: Config) -> None:
    """
    Inject a pre-loaded configuration into the server module.

    This allows the CLI entry point to pass the parsed configuration to the
    server instance, avoiding the need to re-parse command-line arguments
    during application startup (e.g. in the lifespan handler).

    Parameters
    ----------
    config : Config
        The configuration object to set.
    """
    global _config  # noqa: PLW0603
    _config = config


def parse_basic_auth(header_value: str) -> tuple[str | None, str | None]:
    """
    Parse an HTTP Basic `Authorization` header.

    Parameters
    ----------
    header_value : str
        The header value in format `Basic <base64(username:password)>`.

    Returns
    -------
    tuple[str | None, str | None]
        A tuple of `(username, password)`. The password is everything after
        the first colon, so it may itself contain colons. If parsing fails,
        returns `(None, None)`.
    """
    if not header_value.lower().startswith("basic "):
        return (None, None)

    encoded = header_value[6:].strip()
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return (None, None)

    username, sep, password = decoded.partition(":")
    if not sep:
        return (None, None)
    return (username, password)


def credentials_match(config: Config, username: str, password: str) -> bool:
    """
    Compare credentials with the configured ones in constant time.

    Parameters
    ----------
    config : Config
        The application configuration.
    username : str
        The username sent by the client.
    password : str
        The password sent by the client.

    Returns
    -------
    bool
        Whether both username and password match.
    """
    username_ok = secrets.compare_digest(
        username.encode("utf-8"),
        config.auth.username.encode("utf-8"),
    )
    password_ok = secrets.compare_digest(
        password.encode("utf-8"),
        config.auth.password.encode("utf-8"),
    )
    return username_ok and password_ok


def dyndns2_response(status_code: int, body: str) -> Response:
    """Build a plain text dyndns2 response."""
    return PlainTextResponse(content=body, status_code=status_code)


def _badauth() -> Response:
    return PlainTextResponse(
        content="badauth",
        status_code=st_status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": 'Basic realm="dyndns"'},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware for authentication and method validation.

    Intercepts requests to the update paths before parameter handling:
    1. HTTP method enablement (GET/POST) -> 405 if disabled
    2. Basic authentication -> 401 "badauth" if missing or invalid
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process the request through auth/method validation."""
        if request.url.path not in UPDATE_PATHS:
            return await call_next(request)

        # Config may not be loaded during startup
        try:
            config = get_config()
        except RuntimeError:
            return await call_next(request)

        method = request.method

        if (method == "GET" and not config.methods.get_enabled) or (
            method == "POST" and not config.methods.post_enabled
        ):
            logger.warning("%s method is disabled", method)
            return dyndns2_response(st_status.HTTP_405_METHOD_NOT_ALLOWED, "badagent")

        if not config.auth.enabled:
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header:
            logger.error("Missing authentication header")
            return _badauth()

        username, password = parse_basic_auth(auth_header)
        if username is None or password is None:
            logger.error("Malformed authentication header")
            return _badauth()

        if not credentials_match(config, username, password):
            logger.error("Invalid credentials")
            return _badauth()

        return await call_next(request)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global _config  # noqa: PLW0603

    # If config was not set by CLI (e.g., running via uvicorn directly),
    # load it here
    if _config is None:
        _config = load_config()

    # Dynamically register "/health"  endpoint (GET method) if enabled
    if _config.health.enabled:
        _app.add_api_route("/health", health, methods=["GET"])

    methods = []
    if _config.methods.get_enabled:
        methods.append("GET")
    if _config.methods.post_enabled:
        methods.append("POST")
    method_label = "Method" if len(methods) == 1 else "Methods"

    logger.info(
        'DynDNS Gateway starting on "%s:%d" (zone: %s "%s", %s: "%s").',
        _config.server.host,
        _config.server.port,
        _config.zone.provider,
        _config.zone.name,
        method_label,
        ", ".join(methods),
    )

    yield

    logger.info("DynDNS Gateway shutting down.")


app = FastAPI(
    title="DynDNS Gateway",
    description="dyndns2 compatible update service for managed DNS zones",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(AuthMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(_request: Request, exc: HTTPException) -> Response:
    """
    Handle HTTP exceptions with dyndns2 plain text responses.

    Convert FastAPI's default {"detail": "..."} format to the bare
    status word dyndns2 clients expect.
    """
    return dyndns2_response(exc.status_code, str(exc.detail))


def build_response(outcome: ReconciliationOutcome) -> Response:
    """
    Build the dyndns2 response for a reconciliation outcome.

    Parameters
    ----------
    outcome : ReconciliationOutcome
        The outcome returned by the reconciler.

    Returns
    -------
    Response
        "good <ips>", "nochg", "nohost" or "dnserr" with its status code.
    """
    body = outcome.kind.value
    if outcome.kind == OutcomeKind.APPLIED:
        reported = [ip for ip in (outcome.new_ipv4, outcome.new_ipv6) if ip]
        body = f"{body} {', '.join(reported)}"
    return dyndns2_response(OUTCOME_STATUS[outcome.kind], body)


async def process_update(hostname: str, myip: str) -> Response:
    """
    Process a dyndns2 update request.

    Parameters
    ----------
    hostname : str
        The hostname to update, without trailing dot.
    myip : str
        Comma-separated reported addresses.

    Returns
    -------
    Response
        The response to send to the client.
    """
    start_time = time.monotonic()
    config = get_config()

    logger.info("[request] hostname=%s myip=%s", hostname, myip)

    reconciler = Reconciler(config.reconcile)
    async with open_zone(config.zone) as zone:
        outcome = await reconciler.reconcile(hostname, myip.split(","), zone)

    duration = time.monotonic() - start_time
    logger.info(
        "[response] outcome=%s changes=%d duration=%.2fs",
        outcome.kind,
        len(outcome.changes),
        duration,
    )
    return build_response(outcome)


@app.api_route("/update", methods=["GET", "POST"])
@app.api_route("/nic/update", methods=["GET", "POST"])
async def update(
    hostname: Annotated[str | None, Query()] = None,
    myip: Annotated[str | None, Query()] = None,
) -> Response:
    """
    Update the A / AAAA records of a hostname (dyndns2 protocol).

    Method enablement and auth are checked by AuthMiddleware.
    """
    if myip is None:
        logger.error("Wrong type of myip entry")
        raise HTTPException(status_code=st_status.HTTP_400_BAD_REQUEST, detail="badagent")
    if not hostname:
        logger.error("Missing hostname")
        raise HTTPException(status_code=st_status.HTTP_400_BAD_REQUEST, detail="notfqdn")

    return await process_update(hostname, myip)


# Note: Unlike the routes above, this endpoint is dynamically registered
# in lifespan() based on config.health.enabled.
async def health() -> Response:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"})
