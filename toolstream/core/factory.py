from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from toolstream.core.config import load_settings, validate_settings
from toolstream.core.types import ParserPolicy


class ParserFactory:
    """Builds tool parsers configured from the `parser` settings section."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = validate_settings(config) if config is not None else load_settings()

    @property
    def parser_config(self) -> Dict[str, Any]:
        return self.config["parser"]

    def get_policy(self, **overrides: Any) -> ParserPolicy:
        policy = ParserPolicy.from_settings(self.config)
        # None means "not given" so CLI flags can fall through to settings
        values = {k: v for k, v in overrides.items() if v is not None}
        if not values:
            return policy
        return ParserPolicy(
            emit_on_forced_close=values.get("emit_on_forced_close", policy.emit_on_forced_close),
            strict_content=values.get("strict_content", policy.strict_content),
        )

    def get_streaming_tags(self) -> List[str]:
        return list(self.parser_config["streaming_tags"])

    def get_event_parser(self, streaming_tags: Optional[Iterable[str]] = None, policy: Optional[ParserPolicy] = None):
        from toolstream.protocol.parsers.xml_tools import XmlToolParser

        tags = self.get_streaming_tags() if streaming_tags is None else streaming_tags
        return XmlToolParser(tags, policy or self.get_policy())

    def get_stream_parser(
        self,
        stream_handlers: Mapping[str, Any],
        on_tool_parsed: Callable[[str, Dict[str, str]], Any],
        on_complete: Optional[Callable[[], Any]] = None,
        policy: Optional[ParserPolicy] = None,
    ):
        from toolstream.protocol.parsers.callbacks import XmlStreamParser

        return XmlStreamParser(
            stream_handlers,
            on_tool_parsed,
            on_complete=on_complete,
            policy=policy or self.get_policy(),
        )
