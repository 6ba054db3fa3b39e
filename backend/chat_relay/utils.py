import asyncio
import json
from typing import Any

from pydantic import BaseModel

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}
SSE_MEDIA_TYPE = "text/event-stream; charset=utf-8"

DONE_EVENT = b"data: [DONE]\n\n"


async def async_sleep_yield():
    # Help cooperative multitasking in streaming loops
    await asyncio.sleep(0)


def sse_event(payload: str) -> bytes:
    return f"data: {payload}\n\n".encode("utf-8")


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def to_jsonable(chunk: Any) -> Any:
    """Turns an upstream chunk into something json.dumps accepts."""
    if isinstance(chunk, BaseModel):
        return chunk.model_dump(mode="json")
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk).decode("utf-8", errors="replace")
    return chunk
