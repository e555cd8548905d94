import pytest
from unittest.mock import MagicMock, call

from toolstream.core.errors import (
    MismatchedClosingTagError,
    ParserClosedError,
    StreamEndedInsideElementError,
    ToolParseError,
    UnexpectedOpeningTagError,
)
from toolstream.core.types import ParserPolicy
from toolstream.protocol.parsers.callbacks import XmlStreamParser


def make_handler():
    handler = MagicMock()
    handler.stream = MagicMock()
    handler.finalize = MagicMock()
    return handler


def process_stream(chunks, stream_handlers=None, on_tool_parsed=None, on_complete=None):
    parser = XmlStreamParser(
        stream_handlers if stream_handlers is not None else {},
        on_tool_parsed if on_tool_parsed is not None else MagicMock(),
        on_complete=on_complete,
    )
    for chunk in chunks:
        parser.push(chunk)
    parser.end()
    return parser


class TestScenarios:
    def test_single_push(self):
        on_tool_parsed = MagicMock()
        on_complete = MagicMock()
        manager = MagicMock()
        manager.attach_mock(on_tool_parsed, "on_tool_parsed")
        manager.attach_mock(on_complete, "on_complete")

        process_stream(["<simple_tool><param1>value1</param1></simple_tool>"], {}, on_tool_parsed, on_complete)

        assert manager.mock_calls == [
            call.on_tool_parsed("simple_tool", {"param1": "value1"}),
            call.on_complete(),
        ]

    def test_split_tags(self):
        on_tool_parsed = MagicMock()
        process_stream(["<simple_tool><par", "am1>val", "ue1</param1></simple_", "tool>"], {}, on_tool_parsed)

        on_tool_parsed.assert_called_once_with("simple_tool", {"param1": "value1"})

    def test_streaming_handler_order(self):
        handler = make_handler()
        parser = XmlStreamParser({"liveTool": handler}, MagicMock())

        parser.push("<liveTool>")
        parser.push("Hello, ")
        handler.stream.assert_called_once_with("Hello, ", None)
        parser.push("world!")
        parser.push("</liveTool>")
        parser.end()

        assert handler.mock_calls == [
            call.stream("Hello, ", None),
            call.stream("world!", None),
            call.finalize(),
        ]

    def test_mismatched_closing_tag_does_not_finalize(self):
        handler = make_handler()
        parser = XmlStreamParser({"liveTool": handler}, MagicMock())
        parser.push("<liveTool>")
        parser.push("Hello")

        with pytest.raises(MismatchedClosingTagError, match="Mismatched closing tag"):
            parser.push("</notLiveTool>")
        handler.finalize.assert_not_called()

    def test_unclosed_parameter_at_end(self):
        parser = XmlStreamParser({}, MagicMock())
        parser.push("<otherTool><param1>Incomplete")

        with pytest.raises(StreamEndedInsideElementError, match="Stream ended while still inside an element"):
            parser.end()

    def test_markup_inside_parameter_preserved(self):
        on_tool_parsed = MagicMock()
        process_stream(
            [
                "<create_jira_ticket><summary>Bug fix</summary>"
                "<description>Fix <code>main.ts</code></description></create_jira_ticket>"
            ],
            {},
            on_tool_parsed,
        )

        on_tool_parsed.assert_called_once_with(
            "create_jira_ticket", {"summary": "Bug fix", "description": "Fix <code>main.ts</code>"}
        )


class TestStreamingTools:
    def test_unexpected_opening_tag(self):
        parser = XmlStreamParser({"liveTool": make_handler()}, MagicMock())
        parser.push("<liveTool>")
        parser.push("Hello")

        with pytest.raises(UnexpectedOpeningTagError, match="Unexpected opening tag"):
            parser.push("<unexpectedTag>")

    def test_thinking_blocks(self):
        thoughts = []
        current = []
        handler = {
            "stream": lambda data, ctx=None: current.append(data),
            "finalize": lambda: (thoughts.append("".join(current)), current.clear()),
        }

        process_stream(["<thinking>analyzing code</thinking>", "<thinking>planning next step</thinking>"], {"thinking": handler})

        assert thoughts == ["analyzing code", "planning next step"]

    def test_thinking_tag_split_in_name(self):
        handler = make_handler()
        process_stream(["<think", "ing>analyzing</thinking>"], {"thinking": handler})

        handler.stream.assert_called_once_with("analyzing", None)
        handler.finalize.assert_called_once()

    def test_streaming_tool_also_reported_as_parsed(self):
        on_tool_parsed = MagicMock()
        handler = make_handler()
        process_stream(["<streaming_tool>some content</streaming_tool>"], {"streaming_tool": handler}, on_tool_parsed)

        handler.stream.assert_called_once_with("some content", None)
        handler.finalize.assert_called_once()
        on_tool_parsed.assert_called_once_with("streaming_tool", {"content": "some content"})

    def test_finalize_before_parsed(self):
        manager = MagicMock()
        handler = make_handler()
        manager.attach_mock(handler.finalize, "finalize")
        on_tool_parsed = MagicMock()
        manager.attach_mock(on_tool_parsed, "on_tool_parsed")

        process_stream(["<live>x</live>"], {"live": handler}, on_tool_parsed)

        assert manager.mock_calls == [call.finalize(), call.on_tool_parsed("live", {"content": "x"})]

    def test_forced_close_finalizes_without_parsed(self):
        handler = make_handler()
        on_tool_parsed = MagicMock()
        on_complete = MagicMock()
        parser = XmlStreamParser({"liveTool": handler}, on_tool_parsed, on_complete=on_complete)

        parser.push("<liveTool>")
        parser.push("Stream without close tag")
        parser.end()

        handler.stream.assert_called_once_with("Stream without close tag", None)
        handler.finalize.assert_called_once()
        on_tool_parsed.assert_not_called()
        on_complete.assert_called_once()

    def test_forced_close_policy(self):
        on_tool_parsed = MagicMock()
        parser = XmlStreamParser(
            {"liveTool": make_handler()}, on_tool_parsed, policy=ParserPolicy(emit_on_forced_close=True)
        )
        parser.push("<liveTool>tail")
        parser.end()

        on_tool_parsed.assert_called_once_with("liveTool", {"content": "tail"})

    def test_context_passed_to_stream(self):
        handler = make_handler()
        context = object()
        parser = XmlStreamParser({"live": handler}, MagicMock(), context=context)
        parser.push("<live>hi</live>")

        handler.stream.assert_called_once_with("hi", context)

    def test_handler_without_finalize(self):
        chunks = []

        class StreamOnly:
            def stream(self, chunk, context=None):
                chunks.append(chunk)

        process_stream(["<live>a</live>"], {"live": StreamOnly()})
        assert chunks == ["a"]

    def test_invalid_handler_rejected(self):
        with pytest.raises(TypeError):
            XmlStreamParser({"live": object()}, MagicMock())


class TestMixedContent:
    def test_mixed_streaming_and_buffered_tools(self):
        streamed = []
        thoughts = []
        on_tool_parsed = MagicMock()
        streaming_tool = {"stream": lambda data, ctx=None: streamed.append(data), "finalize": MagicMock()}
        thinking = {"stream": lambda data, ctx=None: thoughts.append(data + ";"), "finalize": MagicMock()}

        process_stream(
            [
                "<thinking>first thought</thinking>",
                "<attempt_completion>stream this</attempt_completion>",
                "<thinking>second thought</thinking>",
            ],
            {"attempt_completion": streaming_tool, "thinking": thinking},
            on_tool_parsed,
        )

        assert "".join(streamed) == "stream this"
        assert "".join(thoughts) == "first thought;second thought;"
        assert thinking["finalize"].call_count == 2
        assert streaming_tool["finalize"].call_count == 1
        assert on_tool_parsed.call_count == 3

    def test_parsed_calls_in_order(self):
        on_tool_parsed = MagicMock()
        parser = XmlStreamParser({"streaming_tool": make_handler()}, on_tool_parsed)

        parser.push("<non_streaming_tool><param1>value1</param1></non_streaming_tool>")
        parser.push("<streaming_tool>stream content</streaming_tool>")
        parser.push("<non_streaming_tool><param2>value2</param2></non_streaming_tool>")

        assert on_tool_parsed.call_args_list == [
            call("non_streaming_tool", {"param1": "value1"}),
            call("streaming_tool", {"content": "stream content"}),
            call("non_streaming_tool", {"param2": "value2"}),
        ]

    def test_buffered_tools_without_handlers(self):
        on_tool_parsed = MagicMock()
        on_complete = MagicMock()
        parser = XmlStreamParser({}, on_tool_parsed, on_complete=on_complete)

        parser.push("<thinking>Let me calculate that for you</thinking>")
        parser.push("<math_add><")
        parser.push("a")
        parser.push(">5</")
        parser.push("a><b>3</b")
        parser.push("></math_add>")
        parser.push("<attempt_completion>The result is 8</attempt_completion>")
        on_complete.assert_not_called()
        parser.end()

        on_complete.assert_called_once()
        assert on_tool_parsed.call_args_list == [
            call("thinking", {"content": "Let me calculate that for you"}),
            call("math_add", {"a": "5", "b": "3"}),
            call("attempt_completion", {"content": "The result is 8"}),
        ]

    def test_malformed_tool_call_never_reported(self):
        on_tool_parsed = MagicMock()

        with pytest.raises(ToolParseError):
            process_stream(
                ["<create_jira_ticket>", "<summary>Bug fix", "<description>Missing closing tags", "</create_jira_ticket>"],
                {},
                on_tool_parsed,
            )
        on_tool_parsed.assert_not_called()


class TestLifecycle:
    def test_complete_without_input(self):
        on_complete = MagicMock()
        process_stream([], {}, MagicMock(), on_complete)
        on_complete.assert_called_once()

    def test_error_closes_parser(self):
        parser = XmlStreamParser({}, MagicMock())
        with pytest.raises(ToolParseError):
            parser.push("text")
        assert parser.closed
        with pytest.raises(ParserClosedError):
            parser.push("<t></t>")

    def test_events_before_error_are_dispatched(self):
        handler = make_handler()
        parser = XmlStreamParser({"liveTool": handler}, MagicMock())

        with pytest.raises(MismatchedClosingTagError):
            parser.push("<liveTool>Hello</notLiveTool>")
        handler.stream.assert_called_once_with("Hello", None)
        handler.finalize.assert_not_called()
