import json
from typing import Any, Dict

from fastapi import Request

from .config import Settings
from .errors import RelayError


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def read_json_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise RelayError(400, "Invalid JSON body")
    if not isinstance(body, dict):
        raise RelayError(400, "Invalid JSON body")
    return body
