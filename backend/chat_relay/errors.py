import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

UPSTREAM_FAILED = "Coze API call failed"


class RelayError(Exception):
    """A terminal request failure carrying the HTTP status and JSON body to return."""

    def __init__(self, status_code: int, message: str, **extra: Any):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra

    def to_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.message}
        content.update(self.extra)
        return content


def upstream_failure(exc: BaseException, *, debug: bool = False, payload_type: Optional[str] = None) -> RelayError:
    logger.warning("Upstream call failed: %s", exc, exc_info=exc if debug else None)
    extra: Dict[str, Any] = {"detail": str(exc) or type(exc).__name__}
    if debug:
        extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if payload_type:
            extra["payload_type"] = payload_type
    return RelayError(502, UPSTREAM_FAILED, **extra)


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    # CORS headers were computed before any check could fail
    headers = getattr(request.state, "cors_headers", None) or {}
    return JSONResponse(status_code=exc.status_code, content=exc.to_content(), headers=headers)
