import hmac
import logging
from typing import Dict, List, Optional, Sequence

from fastapi import Request, Response
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings
from .errors import RelayError

logger = logging.getLogger(__name__)

AUTH_HEADER = "x-app-auth"
DEBUG_HEADER = "x-debug"

BASE_ALLOWED_HEADERS = ("Content-Type", "X-App-Auth", "X-Debug")
RELAY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Health checks answer any origin
OPEN_CORS = {"Access-Control-Allow-Origin": "*"}
OPEN_CORS_PATHS = ("/api/hello", "/api/health")


def resolve_allowed_origin(allowed: List[str], request_origin: Optional[str]) -> str:
    if not allowed:
        return "*"
    if request_origin and request_origin in allowed:
        return request_origin
    return allowed[0]


def cors_headers(
    settings: Settings,
    request_origin: Optional[str],
    *,
    extra_allowed_headers: Sequence[str] = (),
) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": resolve_allowed_origin(settings.allowed_origins, request_origin),
        "Vary": "Origin",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": ", ".join(list(BASE_ALLOWED_HEADERS) + list(extra_allowed_headers)),
        "Access-Control-Max-Age": "86400",
    }


def verify_shared_secret(secret: Optional[str], provided: Optional[str]) -> bool:
    """Checks the shared-secret header in constant time.

    No configured secret means open mode: every request passes.
    """
    if not secret:
        return True
    if not provided:
        return False
    a = provided.encode("utf-8")
    b = secret.encode("utf-8")
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)


def is_debug(request: Request) -> bool:
    return request.headers.get(DEBUG_HEADER, "") == "1"


def guard_request(
    request: Request,
    settings: Settings,
    *,
    extra_allowed_headers: Sequence[str] = (),
) -> Optional[Response]:
    """Applies CORS, preflight, method and auth checks in that order.

    Returns the preflight response for OPTIONS, None when the request may
    proceed, and raises RelayError otherwise.
    """
    headers = cors_headers(settings, request.headers.get("origin"), extra_allowed_headers=extra_allowed_headers)
    request.state.cors_headers = headers

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)
    if request.method != "POST":
        raise RelayError(405, "Method Not Allowed")
    if not verify_shared_secret(settings.shared_secret, request.headers.get(AUTH_HEADER)):
        logger.info("Rejected %s %s: shared secret missing or mismatched", request.method, request.url.path)
        raise RelayError(401, "Unauthorized")
    return None


def require_api_key(settings: Settings) -> str:
    if not settings.coze_api_key:
        raise RelayError(500, "COZE_API_KEY is not configured")
    return settings.coze_api_key


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
    # Methods outside RELAY_METHODS are refused by routing before guard_request runs
    if exc.status_code != 405:
        return await http_exception_handler(request, exc)
    if request.url.path.rstrip("/") in OPEN_CORS_PATHS:
        headers = dict(OPEN_CORS)
    else:
        headers = cors_headers(request.app.state.settings, request.headers.get("origin"))
    return JSONResponse(status_code=405, content={"error": "Method Not Allowed"}, headers=headers)
