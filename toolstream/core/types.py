from dataclasses import dataclass
from enum import StrEnum
from typing import TypedDict, Dict, Any


class StreamEvent(StrEnum):
    TOOL_STARTED = "tool_started"
    TOOL_STREAM = "tool_stream"
    TOOL_FINALIZED = "tool_finalized"
    TOOL_PARSED = "tool_parsed"
    ERROR = "error"
    DONE = "done"


class Event(TypedDict, total=False):
    type: str  # "tool_started" | "tool_stream" | "tool_finalized" | "tool_parsed" | "error" | "done"
    session_id: str
    data: Dict[str, Any]
    ts: str


@dataclass(frozen=True)
class ParserPolicy:
    """
    Switches between the two historical behaviours of the tool parser.
    - emit_on_forced_close: a streaming element closed by end() also yields TOOL_PARSED
    - strict_content: stray text inside a buffered element is an error instead of "content"
    """

    emit_on_forced_close: bool = False
    strict_content: bool = False

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "ParserPolicy":
        parser_cfg = settings.get("parser", {}) or {}
        return cls(
            emit_on_forced_close=bool(parser_cfg.get("emit_on_forced_close", False)),
            strict_content=bool(parser_cfg.get("strict_content", False)),
        )
