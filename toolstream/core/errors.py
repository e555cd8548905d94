"""
Error taxonomy of the tool-call stream parser.

Every error is fatal to the parse that raised it. Callers catch
ToolParseError (or a specific subclass) and treat the model turn as failed.
"""
from enum import StrEnum
from typing import Any, Dict, Optional


class ParseErrorKind(StrEnum):
    UNEXPECTED_TEXT_OUTSIDE_ELEMENT = "unexpected_text_outside_element"
    UNEXPECTED_OPENING_TAG = "unexpected_opening_tag"
    MISMATCHED_CLOSING_TAG = "mismatched_closing_tag"
    STREAM_ENDED_INSIDE_ELEMENT = "stream_ended_inside_element"


class ToolParseError(Exception):
    """Base class for malformed tool markup in a model stream."""

    kind: ParseErrorKind

    def __init__(
        self,
        message: str,
        tag: Optional[str] = None,
        expected: Optional[str] = None,
        offset: Optional[int] = None,
    ):
        self.tag = tag
        self.expected = expected
        self.offset = offset
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": str(self),
            "tag": self.tag,
            "expected": self.expected,
            "offset": self.offset,
        }


class UnexpectedTextOutsideElementError(ToolParseError):
    """Non-whitespace text where only a tool element may start."""

    kind = ParseErrorKind.UNEXPECTED_TEXT_OUTSIDE_ELEMENT

    def __init__(self, text: str, tag: Optional[str] = None, offset: Optional[int] = None):
        self.text = text
        where = f"inside <{tag}> outside of any parameter" if tag else "outside of a tool element"
        super().__init__(f"Unexpected text {where} at offset {offset}: {text!r}", tag=tag, offset=offset)


class UnexpectedOpeningTagError(ToolParseError):
    """Opening tag inside a streaming element, where only its closing tag is valid."""

    kind = ParseErrorKind.UNEXPECTED_OPENING_TAG

    def __init__(self, tag: str, expected: str, offset: Optional[int] = None):
        super().__init__(
            f"Unexpected opening tag <{tag}> in streaming mode (expected </{expected}>) at offset {offset}",
            tag=tag,
            expected=expected,
            offset=offset,
        )


class MismatchedClosingTagError(ToolParseError):
    """Closing tag that does not match the open tool element (or no element is open)."""

    kind = ParseErrorKind.MISMATCHED_CLOSING_TAG

    def __init__(self, tag: str, expected: Optional[str] = None, offset: Optional[int] = None):
        if expected is None:
            message = f"Mismatched closing tag </{tag}> when not inside any element at offset {offset}"
        else:
            message = f"Mismatched closing tag </{tag}> (expected </{expected}>) at offset {offset}"
        super().__init__(message, tag=tag, expected=expected, offset=offset)


class StreamEndedInsideElementError(ToolParseError):
    """end() called while a buffered element, or a parameter in it, is still open."""

    kind = ParseErrorKind.STREAM_ENDED_INSIDE_ELEMENT

    def __init__(self, tag: str, param: Optional[str] = None, offset: Optional[int] = None):
        self.param = param
        inside = f"<{param}> of <{tag}>" if param else f"<{tag}>"
        super().__init__(
            f"Stream ended while still inside an element: {inside}",
            tag=tag,
            expected=param or tag,
            offset=offset,
        )


class ParserClosedError(RuntimeError):
    """A parser was used again after it failed or after end()."""


class SettingsError(ValueError):
    """Settings files or TOOLSTREAM__ environment overrides are invalid."""
