"""Zenith ASGI entry point.

Serves the protocol-tracking MCP tools over streamable HTTP next to a few
plain routes: health, operator enrollment, key validation and data export.
The alarm monitor's scan job is scheduled for the lifetime of the app.
"""

import contextlib
import logging
import os

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, Mount

from .core.dates import DEFAULT_TIMEZONE, is_known_timezone
from .core.export import build_export, export_json
from .shell.auth import extract_bearer_key, hash_api_key
from .shell.mcp_server import (
    current_user_id,
    get_alarm_monitor,
    get_auth_client,
    get_firestore_client,
    mcp,
)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = ("/mcp", "/export")


# ==================== Route Handlers ====================


async def health_check(request: Request) -> JSONResponse:
    """Liveness probe."""
    return JSONResponse({"status": "healthy", "service": "zenith-mcp"})


def _mcp_add_command(api_key: str) -> str:
    base_url = os.environ.get("BASE_URL", "http://localhost:8080")
    return f'claude mcp add --transport http zenith {base_url}/mcp --header "Authorization: Bearer {api_key}"'


async def _json_body(request: Request) -> dict:
    """Request body as a dict; empty for missing or non-object JSON."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def register_user(request: Request) -> JSONResponse:
    """Enroll an operator and hand back their API key once."""
    body = await _json_body(request)
    email = str(body.get("email") or "").strip()
    if "@" not in email:
        return JSONResponse({"error": "A valid email is required"}, status_code=400)

    zone = str(body.get("timezone") or DEFAULT_TIMEZONE)
    if not is_known_timezone(zone):
        return JSONResponse({"error": f"Unknown timezone: {zone}"}, status_code=400)

    try:
        api_key, _ = get_auth_client().register_user(email, zone)
    except Exception as e:
        logger.error("Enrollment failed: %s", e)
        return JSONResponse({"error": "Enrollment failed."}, status_code=500)

    return JSONResponse({
        "api_key": api_key,
        "message": "Operator enrolled. Store this key now, it cannot be shown again.",
        "claude_command": _mcp_add_command(api_key),
    })


async def validate_key(request: Request) -> JSONResponse:
    """Report whether a key belongs to a registered operator."""
    api_key = (await _json_body(request)).get("api_key")
    if not api_key:
        return JSONResponse({"valid": False, "error": "api_key is required"})

    try:
        user_id = get_auth_client().validate_api_key(api_key)
    except Exception as e:
        logger.error("Key validation failed: %s", e)
        return JSONResponse({"valid": False, "error": "Validation failed"})
    return JSONResponse({"valid": user_id is not None})


async def export_data(request: Request) -> Response:
    """Download the user's profile, habits and logs as a JSON file."""
    user_id = current_user_id.get()
    if user_id is None:
        return JSONResponse({"error": "Valid API key required"}, status_code=401)

    user = get_auth_client().get_user(user_id)
    if user is None:
        return JSONResponse({"error": "User not found"}, status_code=404)

    db = get_firestore_client()
    bundle = build_export(user, db.list_habits(user_id), db.list_logs(user_id))
    filename = f"zenith-export-{bundle.exported_at.date().isoformat()}.json"

    return Response(
        export_json(bundle),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ==================== Auth Middleware ====================


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate MCP and export requests using API key in Authorization header."""

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        api_key = extract_bearer_key(request.headers.get("Authorization", ""))
        if api_key is not None:
            user_id = hash_api_key(api_key)
            if get_auth_client().user_exists(user_id):
                # Set user context for this request
                current_user_id.set(user_id)
                logger.debug("Authenticated user: %s", user_id[:8])

        return await call_next(request)


# ==================== Create ASGI App ====================


def create_app() -> Starlette:
    """Create the Starlette application with MCP at root.

    The MCP streamable_http_app() handles /mcp/ internally when mounted at root.
    Its lifespan is wrapped so the alarm monitor runs alongside it.
    """
    mcp_app = mcp.streamable_http_app()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with mcp_app.router.lifespan_context(app):
            monitor = get_alarm_monitor()
            if monitor.config.enabled:
                monitor.start()
            try:
                yield
            finally:
                monitor.stop()

    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/auth/register", register_user, methods=["POST"]),
        Route("/auth/validate", validate_key, methods=["POST"]),
        Route("/export", export_data, methods=["GET"]),
        # Mount MCP app at root - it handles /mcp/ path internally
        Mount("/", app=mcp_app),
    ]

    origins = os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")

    return Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=[o.strip() for o in origins if o.strip()],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
            ),
            Middleware(AuthMiddleware),
        ],
        lifespan=lifespan,
    )


app = create_app()


def main() -> None:
    """Serve the app with uvicorn."""
    port = int(os.environ.get("PORT", 8080))
    host = os.environ.get("HOST", "0.0.0.0")

    logger.info("Starting Zenith MCP server on %s:%d", host, port)

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
