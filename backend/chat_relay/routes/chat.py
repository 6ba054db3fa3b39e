from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from ..config import Settings
from ..deps import get_settings, read_json_body
from ..errors import RelayError, upstream_failure
from ..schemas import ChatRelayRequest, REQUIRED_FIELDS_MESSAGE
from ..security import RELAY_METHODS, guard_request, is_debug, require_api_key
from ..services.coze_chat import build_messages, open_chat_call
from ..streams import RelayMode, collect_chunks, relay_events
from ..utils import SSE_HEADERS, SSE_MEDIA_TYPE

router = APIRouter()


@router.api_route("/coze", methods=RELAY_METHODS)
async def coze_chat(request: Request, settings: Settings = Depends(get_settings)):
    preflight = guard_request(request, settings)
    if preflight is not None:
        return preflight

    body = await read_json_body(request)
    try:
        data = ChatRelayRequest.model_validate(body)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise RelayError(400, REQUIRED_FIELDS_MESSAGE, fields=fields)

    try:
        messages = build_messages(data.additional_messages)
    except ValueError:
        raise RelayError(400, REQUIRED_FIELDS_MESSAGE, fields=["additional_messages"])

    api_key = require_api_key(settings)
    debug = is_debug(request)
    cors = request.state.cors_headers
    mode = RelayMode.from_flag(data.stream)

    try:
        call = await open_chat_call(settings=settings, api_key=api_key, data=data, messages=messages)
    except Exception as exc:
        raise upstream_failure(exc, debug=debug)

    if mode is RelayMode.BUFFERED_COLLECT:
        # Buffered for debugging or clients without SSE; not a true non-streaming call
        try:
            chunks = await collect_chunks(call.stream)
        except Exception as exc:
            raise upstream_failure(exc, debug=debug, payload_type=call.stream.payload_type)
        finally:
            await call.aclose()
        return JSONResponse(content={"ok": True, "chunks": chunks}, headers=cors)

    return StreamingResponse(
        relay_events(call.stream, debug=debug),
        media_type=SSE_MEDIA_TYPE,
        headers={**SSE_HEADERS, **cors},
        background=BackgroundTask(call.aclose),
    )
