from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from ..config import Settings
from ..deps import get_settings, read_json_body
from ..errors import RelayError, UPSTREAM_FAILED, upstream_failure
from ..security import RELAY_METHODS, guard_request, is_debug, require_api_key
from ..services.coze_fetch import filter_payload, post_chat, resolve_upstream_path
from ..utils import SSE_HEADERS

router = APIRouter()

PATH_HEADER = "x-coze-path"


@router.api_route("/coze-fetch", methods=RELAY_METHODS)
async def coze_fetch(request: Request, settings: Settings = Depends(get_settings)):
    preflight = guard_request(request, settings, extra_allowed_headers=("X-Coze-Path",))
    if preflight is not None:
        return preflight

    body = await read_json_body(request)
    payload = filter_payload(body, settings.forwarded_fields)
    path = resolve_upstream_path(settings, request.headers.get(PATH_HEADER))
    api_key = require_api_key(settings)
    debug = is_debug(request)
    cors = request.state.cors_headers

    try:
        result = await post_chat(settings=settings, api_key=api_key, path=path, payload=payload)
    except Exception as exc:
        raise upstream_failure(exc, debug=debug)

    upstream = result.response
    if upstream.is_success and result.is_event_stream:
        # Upstream already frames SSE; pass bytes through untouched
        return StreamingResponse(
            upstream.aiter_bytes(),
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type"),
            headers={**SSE_HEADERS, **cors},
            background=BackgroundTask(result.aclose),
        )

    try:
        content = await upstream.aread()
    except Exception as exc:
        raise upstream_failure(exc, debug=debug)
    finally:
        await result.aclose()

    if not upstream.is_success:
        text = content.decode("utf-8", errors="replace")
        raise RelayError(
            502,
            UPSTREAM_FAILED,
            detail=f"upstream responded {upstream.status_code}: {text}",
            upstream_status=upstream.status_code,
        )

    return Response(
        content=content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
        headers=cors,
    )
