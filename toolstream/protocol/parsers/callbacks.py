from typing import Any, Callable, Dict, List, Mapping, Optional

from toolstream.core.types import Event, ParserPolicy, StreamEvent
from toolstream.protocol.orchestration.handlers import as_stream_handler
from toolstream.protocol.parsers.xml_tools import XmlToolParser

ToolParsedCallback = Callable[[str, Dict[str, str]], Any]


class XmlStreamParser:
    """
    Callback front-end for XmlToolParser.
    push()/end() feed the event parser and dispatch its events in order:
    TOOL_STREAM -> handler.stream, TOOL_FINALIZED -> handler.finalize,
    TOOL_PARSED -> on_tool_parsed, DONE -> on_complete, ERROR -> raise.
    """

    def __init__(
        self,
        stream_handlers: Optional[Mapping[str, Any]],
        on_tool_parsed: ToolParsedCallback,
        on_complete: Optional[Callable[[], Any]] = None,
        policy: Optional[ParserPolicy] = None,
        context: Optional[Any] = None,
    ):
        self.stream_handlers = {name: as_stream_handler(h) for name, h in (stream_handlers or {}).items()}
        self.on_tool_parsed = on_tool_parsed
        self.on_complete = on_complete
        self.context = context
        self._parser = XmlToolParser(self.stream_handlers.keys(), policy)

    @property
    def closed(self) -> bool:
        return self._parser.closed

    def push(self, chunk: str) -> None:
        self._dispatch(self._parser.feed(chunk))

    def end(self) -> None:
        self._dispatch(self._parser.finalize())

    def _dispatch(self, events: List[Event]) -> None:
        for evt in events:
            evt_type = evt.get("type")
            evt_data = evt.get("data", {})

            if evt_type == StreamEvent.TOOL_STREAM:
                self.stream_handlers[evt_data["tool_name"]].stream(evt_data["delta"], self.context)

            elif evt_type == StreamEvent.TOOL_FINALIZED:
                finalize = getattr(self.stream_handlers[evt_data["tool_name"]], "finalize", None)
                if finalize is not None:
                    finalize()

            elif evt_type == StreamEvent.TOOL_PARSED:
                self.on_tool_parsed(evt_data["tool_name"], evt_data["params"])

            elif evt_type == StreamEvent.DONE:
                if self.on_complete is not None:
                    self.on_complete()

            elif evt_type == StreamEvent.ERROR:
                raise evt_data["error"]
