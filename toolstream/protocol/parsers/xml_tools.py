import string
from typing import Dict, Iterable, List, Optional, Tuple

from toolstream.core.errors import (
    MismatchedClosingTagError,
    ParserClosedError,
    StreamEndedInsideElementError,
    ToolParseError,
    UnexpectedOpeningTagError,
    UnexpectedTextOutsideElementError,
)
from toolstream.core.interfaces import StreamParser
from toolstream.core.logging import logger
from toolstream.core.types import Event, ParserPolicy, StreamEvent


_NAME_START = frozenset(string.ascii_letters + "_")
_NAME_CHARS = _NAME_START | frozenset(string.digits + "-.:")
_TAG_SPACE = frozenset(string.whitespace)

_COMPLETE = "complete"
_PARTIAL = "partial"
_NOT_A_TAG = "not_a_tag"


def scan_tag(buf: str, i: int) -> Tuple[str, bool, str, int]:
    """
    Classify the markup starting at buf[i] == '<'.
    Returns (status, is_closing, name, end) where end is the index just past '>'
    for a complete tag. A partial result means the buffer ended mid-tag.
    Whitespace is allowed between the name and '>', as in `<tool >`.
    """
    n = len(buf)
    j = i + 1
    closing = False
    if j < n and buf[j] == "/":
        closing = True
        j += 1
    if j >= n:
        return _PARTIAL, closing, "", n
    if buf[j] not in _NAME_START:
        return _NOT_A_TAG, closing, "", j
    k = j + 1
    while k < n and buf[k] in _NAME_CHARS:
        k += 1
    name_end = k
    while k < n and buf[k] in _TAG_SPACE:
        k += 1
    if k >= n:
        return _PARTIAL, closing, buf[j:name_end], n
    if buf[k] != ">":
        return _NOT_A_TAG, closing, "", k
    return _COMPLETE, closing, buf[j:name_end], k + 1


def _closing_prefix_len(text: str, closing: str) -> int:
    """Length of the longest suffix of text that is a proper prefix of closing."""
    for k in range(min(len(text), len(closing) - 1), 0, -1):
        if text.endswith(closing[:k]):
            return k
    return 0


class XmlToolParser(StreamParser):
    """
    Stateful streaming parser for pseudo-XML tool elements in model output.
    - Elements named in streaming_tags have their content emitted live as TOOL_STREAM
    - Any other element buffers <param>...</param> values and emits one TOOL_PARSED
    - Parameter values are literal: markup inside them is kept until </param>
    - Tags split across chunk boundaries are held in the pending buffer
    - A malformed stream yields a single trailing ERROR event and closes the parser
    """

    IDLE = "idle"
    STREAMING = "streaming"
    BUFFERED = "buffered"

    def __init__(self, streaming_tags: Iterable[str] = (), policy: Optional[ParserPolicy] = None):
        self.streaming_tags = frozenset(streaming_tags)
        self.policy = policy or ParserPolicy()
        self.mode = self.IDLE
        self.buf = ""  # pending, not yet classified
        self._offset = 0  # stream offset of buf[0]
        self.tool_name: Optional[str] = None
        self.params: Dict[str, str] = {}
        self.current_param: Optional[str] = None
        self._param_text = ""
        self._segment = ""  # text since the last tag inside a buffered element
        self._streamed = ""
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: str) -> List[Event]:
        self._ensure_open()
        events: List[Event] = []
        if not chunk:
            return events

        self.buf += chunk
        logger.debug(f"Parser feed: mode={self.mode}, buf_len={len(self.buf)}, chunk_len={len(chunk)}")

        try:
            pos = self._advance(events)
        except ToolParseError as e:
            self._fail(e, events)
            return events

        self.buf = self.buf[pos:]
        self._offset += pos
        return events

    def finalize(self) -> List[Event]:
        self._ensure_open()
        events: List[Event] = []
        try:
            if self.mode == self.IDLE:
                if self.buf.strip():
                    raise UnexpectedTextOutsideElementError(self.buf.strip(), offset=self._offset)
            elif self.mode == self.STREAMING:
                pending = self.buf
                # a dangling "</tool" is markup, anything else is still content
                if pending and not f"</{self.tool_name}>".startswith(pending.rstrip()):
                    self._text(pending, 0, events)
                self._offset += len(pending)
                self.buf = ""
                logger.info(f"Parser finalize: closing streaming element <{self.tool_name}> at end of stream")
                self._finish_streaming(events, forced=True)
            else:
                raise StreamEndedInsideElementError(
                    self.tool_name or "", self.current_param, offset=self._offset + len(self.buf)
                )
        except ToolParseError as e:
            self._fail(e, events)
            return events

        events.append({"type": StreamEvent.DONE, "data": {}})
        self._closed = True
        return events

    # --- state machine ---

    def _advance(self, events: List[Event]) -> int:
        buf = self.buf
        n = len(buf)
        pos = 0
        while pos < n:
            if self.mode == self.BUFFERED and self.current_param is not None:
                closing = f"</{self.current_param}>"
                idx = buf.find(closing, pos)
                if idx == -1:
                    held = _closing_prefix_len(buf[pos:], closing)
                    self._param_text += buf[pos : n - held]
                    pos = n - held
                    break
                self._param_text += buf[pos:idx]
                self.params[self.current_param] = self._param_text
                logger.debug(f"Parser: parameter <{self.current_param}> captured, length={len(self._param_text)}")
                self.current_param = None
                self._param_text = ""
                pos = idx + len(closing)
                continue

            lt = buf.find("<", pos)
            stop = n if lt == -1 else lt
            if stop > pos:
                self._text(buf[pos:stop], pos, events)
            if lt == -1:
                pos = n
                break

            status, closing_tag, name, end = scan_tag(buf, lt)
            if status == _PARTIAL:
                pos = lt
                break
            if status == _NOT_A_TAG:
                self._text("<", lt, events)
                pos = lt + 1
                continue

            if closing_tag:
                self._closing_tag(name, lt, events)
            else:
                self._opening_tag(name, lt, events)
            pos = end
        return pos

    def _text(self, text: str, at: int, events: List[Event]) -> None:
        if self.mode == self.STREAMING:
            self._streamed += text
            events.append({"type": StreamEvent.TOOL_STREAM, "data": {"tool_name": self.tool_name, "delta": text}})
            return

        stripped = text.lstrip()
        if self.mode == self.IDLE:
            if stripped:
                raise UnexpectedTextOutsideElementError(
                    stripped.rstrip(), offset=self._offset + at + len(text) - len(stripped)
                )
            return

        if self.policy.strict_content and stripped:
            raise UnexpectedTextOutsideElementError(
                stripped.rstrip(), tag=self.tool_name, offset=self._offset + at + len(text) - len(stripped)
            )
        self._segment += text

    def _opening_tag(self, name: str, at: int, events: List[Event]) -> None:
        if self.mode == self.IDLE:
            self.tool_name = name
            if name in self.streaming_tags:
                self.mode = self.STREAMING
                self._streamed = ""
            else:
                self.mode = self.BUFFERED
                self.params = {}
                self._segment = ""
            logger.debug(f"Parser: entering {self.mode} mode for <{name}>")
            events.append(
                {"type": StreamEvent.TOOL_STARTED, "data": {"tool_name": name, "streaming": self.mode == self.STREAMING}}
            )
        elif self.mode == self.STREAMING:
            raise UnexpectedOpeningTagError(name, expected=self.tool_name or "", offset=self._offset + at)
        else:
            self._flush_segment()
            self.current_param = name
            self._param_text = ""

    def _closing_tag(self, name: str, at: int, events: List[Event]) -> None:
        if self.mode == self.IDLE:
            raise MismatchedClosingTagError(name, offset=self._offset + at)
        if name != self.tool_name:
            raise MismatchedClosingTagError(name, expected=self.tool_name, offset=self._offset + at)

        if self.mode == self.STREAMING:
            self._finish_streaming(events, forced=False)
            return

        self._flush_segment()
        logger.info(f"Parser: tool element parsed: name={name}, params={list(self.params)}")
        events.append({"type": StreamEvent.TOOL_PARSED, "data": {"tool_name": name, "params": dict(self.params)}})
        self._reset_element()

    def _flush_segment(self) -> None:
        # whitespace-only runs between tags are layout, not content
        if self._segment.strip():
            self.params["content"] = self.params.get("content", "") + self._segment
        self._segment = ""

    def _finish_streaming(self, events: List[Event], forced: bool) -> None:
        name = self.tool_name
        events.append({"type": StreamEvent.TOOL_FINALIZED, "data": {"tool_name": name, "forced": forced}})
        if not forced or self.policy.emit_on_forced_close:
            params = {"content": self._streamed} if self._streamed else {}
            events.append({"type": StreamEvent.TOOL_PARSED, "data": {"tool_name": name, "params": params}})
        self._reset_element()

    def _reset_element(self) -> None:
        self.mode = self.IDLE
        self.tool_name = None
        self.params = {}
        self.current_param = None
        self._param_text = ""
        self._segment = ""
        self._streamed = ""

    def _fail(self, error: ToolParseError, events: List[Event]) -> None:
        logger.error(f"Parser: {error.kind.value}: {error}")
        events.append({"type": StreamEvent.ERROR, "data": {"error": error, **error.to_dict()}})
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise ParserClosedError("parser already finished or failed; use a new instance per stream")
