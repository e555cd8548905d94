"""Stream handlers for tool elements whose content is forwarded live."""
import asyncio
from typing import Any, AsyncIterator, Callable, List, Mapping, Optional

from toolstream.core.interfaces import StreamHandler


class FunctionStreamHandler(StreamHandler):
    """Adapts a plain `stream` callable (and optional `finalize`) to StreamHandler."""

    def __init__(
        self,
        stream: Callable[..., Any],
        finalize: Optional[Callable[[], Any]] = None,
    ):
        self._stream = stream
        self._finalize = finalize

    def stream(self, chunk: str, context: Optional[Any] = None) -> None:
        self._stream(chunk, context)

    def finalize(self) -> None:
        if self._finalize is not None:
            self._finalize()


def as_stream_handler(handler: Any) -> Any:
    """Accept a StreamHandler-like object or a {"stream": fn, "finalize": fn} mapping."""
    if isinstance(handler, Mapping):
        return FunctionStreamHandler(handler["stream"], handler.get("finalize"))
    if not callable(getattr(handler, "stream", None)):
        raise TypeError(f"Stream handler {handler!r} has no stream() method")
    return handler


class ThinkingHandler(StreamHandler):
    """Collects each thinking element as one entry of the thinking chain."""

    def __init__(self, chain: Optional[List[str]] = None):
        self.chain: List[str] = chain if chain is not None else []
        self._current: List[str] = []

    def stream(self, chunk: str, context: Optional[Any] = None) -> None:
        self._current.append(chunk)

    def finalize(self) -> None:
        if self._current:
            self.chain.append("".join(self._current))
        self._current = []


class AsyncOutputStream(StreamHandler):
    """
    Surfaces a live element (e.g. an in-progress final answer) to an async consumer.
    stream() enqueues chunks, finalize() ends iteration.
    """

    _END = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._chunks: List[str] = []
        self._ended = False

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def stream(self, chunk: str, context: Optional[Any] = None) -> None:
        if self._ended:
            return
        self._chunks.append(chunk)
        self._queue.put_nowait(chunk)

    def finalize(self) -> None:
        if not self._ended:
            self._ended = True
            self._queue.put_nowait(self._END)

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        item = await self._queue.get()
        if item is self._END:
            # keep the sentinel so later iterations also stop
            self._queue.put_nowait(self._END)
            raise StopAsyncIteration
        return item
