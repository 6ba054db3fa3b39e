"""Upstream stream shapes and the two ways of answering the caller with them.

The upstream client hands back one of:

* an async iterable of discrete chunk objects,
* a pull-based reader whose ``read()`` yields byte (or text) chunks until it
  returns an empty value,
* something else entirely.

``classify_stream`` decides which, once, where the upstream call returns.
``relay_events`` (live SSE) and ``collect_chunks`` (buffered JSON) both
dispatch on the resulting ``StreamKind``.
"""
import codecs
import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, List

from .errors import UPSTREAM_FAILED
from .utils import DONE_EVENT, async_sleep_yield, dump_json, sse_event, to_jsonable

logger = logging.getLogger(__name__)

UNKNOWN_NOTICE = {"notice": "unknown stream payload"}


class StreamKind(enum.Enum):
    ASYNC_SEQUENCE = "async_sequence"
    PULLABLE_BYTES = "pullable_bytes"
    UNRECOGNIZED = "unrecognized"


class RelayMode(enum.Enum):
    STREAM_RELAY = "stream_relay"
    BUFFERED_COLLECT = "buffered_collect"

    @classmethod
    def from_flag(cls, stream: bool) -> "RelayMode":
        return cls.STREAM_RELAY if stream else cls.BUFFERED_COLLECT


@dataclass(frozen=True)
class UpstreamStream:
    kind: StreamKind
    source: Any

    @property
    def payload_type(self) -> str:
        return type(self.source).__name__


def classify_stream(source: Any) -> UpstreamStream:
    if source is not None and hasattr(source, "__aiter__"):
        return UpstreamStream(StreamKind.ASYNC_SEQUENCE, source)
    if source is not None and callable(getattr(source, "read", None)):
        return UpstreamStream(StreamKind.PULLABLE_BYTES, source)
    return UpstreamStream(StreamKind.UNRECOGNIZED, source)


async def iter_decoded(reader: Any) -> AsyncIterator[str]:
    """Pulls chunks from ``reader`` until end-of-stream, yielding text.

    UTF-8 is decoded incrementally so characters split across reads survive.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        value = reader.read()
        if inspect.isawaitable(value):
            value = await value
        if value is None or len(value) == 0:
            break
        if isinstance(value, str):
            text = value
        else:
            text = decoder.decode(bytes(value))
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


async def relay_events(stream: UpstreamStream, *, debug: bool = False) -> AsyncGenerator[bytes, None]:
    try:
        if stream.kind is StreamKind.ASYNC_SEQUENCE:
            async for chunk in stream.source:
                if debug:
                    logger.info("[coze-chunk] %r", chunk)
                yield sse_event(dump_json(to_jsonable(chunk)))
                await async_sleep_yield()
        elif stream.kind is StreamKind.PULLABLE_BYTES:
            async for text in iter_decoded(stream.source):
                if debug:
                    logger.info("[coze-chunk-text] %s", text)
                yield sse_event(text)
                await async_sleep_yield()
        else:
            logger.warning("Unknown upstream stream payload of type %s", stream.payload_type)
            yield sse_event(dump_json(UNKNOWN_NOTICE))
    except Exception as exc:
        # Headers are already sent; the status code can no longer change.
        logger.error("Upstream stream failed mid-relay: %s", exc, exc_info=debug)
        yield sse_event(dump_json({"error": UPSTREAM_FAILED, "detail": str(exc)}))
        return
    yield DONE_EVENT


async def collect_chunks(stream: UpstreamStream) -> List[Any]:
    if stream.kind is StreamKind.ASYNC_SEQUENCE:
        return [to_jsonable(chunk) async for chunk in stream.source]
    if stream.kind is StreamKind.PULLABLE_BYTES:
        parts = [text async for text in iter_decoded(stream.source)]
        return [{"raw": "".join(parts)}]
    logger.warning("Unknown upstream stream payload of type %s", stream.payload_type)
    return []
