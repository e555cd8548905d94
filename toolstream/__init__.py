"""Tool-call extraction from streamed model output."""
from toolstream.core.errors import (
    MismatchedClosingTagError,
    ParseErrorKind,
    ParserClosedError,
    StreamEndedInsideElementError,
    ToolParseError,
    UnexpectedOpeningTagError,
    UnexpectedTextOutsideElementError,
)
from toolstream.core.types import ParserPolicy, StreamEvent
from toolstream.protocol.parsers.callbacks import XmlStreamParser
from toolstream.protocol.parsers.xml_tools import XmlToolParser

__version__ = "0.1.0"

__all__ = [
    "XmlStreamParser",
    "XmlToolParser",
    "ParserPolicy",
    "StreamEvent",
    "ParseErrorKind",
    "ToolParseError",
    "UnexpectedTextOutsideElementError",
    "UnexpectedOpeningTagError",
    "MismatchedClosingTagError",
    "StreamEndedInsideElementError",
    "ParserClosedError",
]
