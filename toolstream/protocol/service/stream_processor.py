from typing import Any, AsyncIterable, Dict, List, Mapping, Optional, Union

from toolstream.core.errors import ToolParseError
from toolstream.core.factory import ParserFactory
from toolstream.core.logging import logger
from toolstream.core.types import ParserPolicy
from toolstream.protocol.orchestration.handlers import ThinkingHandler
from toolstream.protocol.parsers.callbacks import ToolParsedCallback, XmlStreamParser
from toolstream.protocol.service.schemas import StreamMetadata, ToolCall, Usage

ModelChunk = Union[str, Dict[str, Any]]


def _add_usage(usage: Usage, chunk: Dict[str, Any]) -> None:
    usage.tokens_in += chunk.get("input_tokens") or 0
    usage.tokens_out += chunk.get("output_tokens") or 0
    usage.cache_writes += chunk.get("cache_write_tokens") or 0
    usage.cache_reads += chunk.get("cache_read_tokens") or 0
    usage.cost += chunk.get("total_cost") or 0.0


async def process_model_stream(
    model_stream: AsyncIterable[ModelChunk],
    task_id: str,
    input_text: str = "",
    stream_handlers: Optional[Mapping[str, Any]] = None,
    thinking_chain: Optional[List[str]] = None,
    policy: Optional[ParserPolicy] = None,
    on_tool_parsed: Optional[ToolParsedCallback] = None,
) -> StreamMetadata:
    """
    Drive one model response through the tool parser:
    model stream -> XmlStreamParser -> tool call records + usage totals.
    Chunks are raw strings or {"type": "text" | "usage", ...} dicts.
    """
    handlers: Dict[str, Any] = dict(stream_handlers or {})
    if thinking_chain is not None and "thinking" not in handlers:
        handlers["thinking"] = ThinkingHandler(thinking_chain)

    tool_calls: List[ToolCall] = []
    usage = Usage()

    def record(tool_name: str, params: Dict[str, str]) -> None:
        logger.info(f"Tool call recorded: task_id={task_id}, tool_name={tool_name}")
        tool_calls.append(ToolCall(name=tool_name, params=params))
        if on_tool_parsed is not None:
            on_tool_parsed(tool_name, params)

    if policy is None:
        policy = ParserFactory().get_policy()
    parser = XmlStreamParser(handlers, record, policy=policy)

    logger.info(f"Stream processing started: task_id={task_id}, streaming_tags={sorted(handlers)}")
    try:
        async for chunk in model_stream:
            if isinstance(chunk, str):
                parser.push(chunk)
                continue
            chunk_type = chunk.get("type")
            if chunk_type == "text":
                parser.push(chunk.get("text", ""))
            elif chunk_type == "usage":
                _add_usage(usage, chunk)
            else:
                logger.debug(f"Ignoring model chunk of type {chunk_type!r}")
        parser.end()
    except ToolParseError as e:
        logger.exception(f"Error processing stream: task_id={task_id}, error={e}")
        raise

    logger.info(f"Stream processing complete: task_id={task_id}, tool_calls={len(tool_calls)}")
    return StreamMetadata(
        task_id=task_id,
        input=input_text,
        thinking=list(thinking_chain or []),
        tool_calls=tool_calls,
        usage=usage,
    )
