import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx

from ..config import Settings
from ..errors import RelayError

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    client: httpx.AsyncClient
    response: httpx.Response

    @property
    def is_event_stream(self) -> bool:
        return self.response.headers.get("content-type", "").lower().startswith("text/event-stream")

    async def aclose(self) -> None:
        try:
            await self.response.aclose()
        finally:
            await self.client.aclose()


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=settings.coze_base_url, timeout=None)


def filter_payload(body: Dict[str, Any], allowed_fields: Iterable[str]) -> Dict[str, Any]:
    """Keeps only allow-listed fields; anything else never reaches the upstream."""
    allowed = set(allowed_fields)
    return {key: value for key, value in body.items() if key in allowed}


def resolve_upstream_path(settings: Settings, override: Optional[str]) -> str:
    if not override:
        return settings.fetch_default_path
    path = override.strip()
    if (
        not path.startswith("/")
        or path.startswith("//")
        or "://" in path
        or ".." in path
        or not any(path.startswith(prefix) for prefix in settings.fetch_allowed_prefixes)
    ):
        raise RelayError(400, "Upstream path not allowed")
    return path


async def post_chat(*, settings: Settings, api_key: str, path: str, payload: Dict[str, Any]) -> FetchResult:
    """POSTs ``payload`` upstream and returns the still-open streamed response.

    The caller owns the result and must ``aclose()`` it.
    """
    client = build_http_client(settings)
    request = client.build_request(
        "POST",
        path,
        json=payload,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream, application/json",
        },
    )
    try:
        response = await client.send(request, stream=True)
    except BaseException:
        await client.aclose()
        raise
    logger.debug("Upstream %s responded %s (%s)", path, response.status_code, response.headers.get("content-type"))
    return FetchResult(client=client, response=response)
