import inspect
import logging
from dataclasses import dataclass
from typing import Any, List

from cozepy import AsyncCoze, AsyncHTTPClient, AsyncTokenAuth, Message

from ..config import Settings
from ..schemas import ChatRelayRequest
from ..streams import UpstreamStream, classify_stream

logger = logging.getLogger(__name__)


@dataclass
class ChatCall:
    http_client: Any
    stream: UpstreamStream

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_messages(items: List[Any]) -> List[Message]:
    """Turns caller-supplied messages into SDK models.

    Bare strings become user text questions. Objects may leave out ``type``
    and ``content_type``; everything else must already match the Coze message
    shape. Raises ValueError for anything the SDK would not accept.
    """
    messages: List[Message] = []
    for item in items:
        if isinstance(item, Message):
            messages.append(item)
        elif isinstance(item, str):
            messages.append(Message.build_user_question_text(item))
        elif isinstance(item, dict):
            defaults = {
                "type": "question" if item.get("role", "user") == "user" else "answer",
                "content_type": "text",
            }
            messages.append(Message.model_validate({**defaults, **item}))
        else:
            raise ValueError(f"unsupported message of type {type(item).__name__}")
    return messages


async def open_chat_call(
    *,
    settings: Settings,
    api_key: str,
    data: ChatRelayRequest,
    messages: List[Message],
) -> ChatCall:
    """Starts a streaming chat upstream through the Coze SDK.

    Always streams, whatever the caller asked for; ``data.stream`` only decides
    how the result is shaped for the caller. The caller owns the returned call
    and must ``aclose()`` it.
    """
    http_client = AsyncHTTPClient(timeout=None)
    coze = AsyncCoze(auth=AsyncTokenAuth(api_key), base_url=settings.coze_base_url, http_client=http_client)
    try:
        result = coze.chat.stream(
            bot_id=data.bot_id,
            user_id=data.user_id,
            additional_messages=messages,
            conversation_id=data.conversation_id,
        )
        if inspect.isawaitable(result):
            result = await result
    except BaseException:
        await http_client.aclose()
        raise

    stream = classify_stream(result)
    logger.debug("Upstream chat for bot %s opened as %s", data.bot_id, stream.kind.value)
    return ChatCall(http_client=http_client, stream=stream)
