"""
Record models produced by the model stream processor.
"""
from typing import Dict, List

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    """One tool element extracted from a model response."""
    name: str
    params: Dict[str, str] = Field(default_factory=dict)


class Usage(BaseModel):
    """Token and cost totals summed over the usage chunks of one stream."""
    tokens_in: int = 0
    tokens_out: int = 0
    cache_writes: int = 0
    cache_reads: int = 0
    cost: float = 0.0


class StreamMetadata(BaseModel):
    """Result of processing one model response stream."""
    task_id: str
    input: str = ""
    thinking: List[str] = Field(default_factory=list)
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
