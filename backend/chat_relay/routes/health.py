from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from ..security import OPEN_CORS, RELAY_METHODS

router = APIRouter()


@router.api_route("/hello", methods=RELAY_METHODS)
@router.api_route("/health", methods=RELAY_METHODS)
async def hello(request: Request):
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=OPEN_CORS)
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return JSONResponse(content={"ok": True, "time": now}, headers=OPEN_CORS)
