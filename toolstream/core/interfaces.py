from abc import ABC, abstractmethod
from typing import Any, List, Optional

from toolstream.core.types import Event


class StreamParser(ABC):
    @abstractmethod
    def feed(self, chunk: str) -> List[Event]:
        """Ingest a raw model chunk and return zero or more protocol events"""
        ...

    @abstractmethod
    def finalize(self) -> List[Event]:
        """Flush any residual state and return final protocol events"""
        ...


class StreamHandler(ABC):
    @abstractmethod
    def stream(self, chunk: str, context: Optional[Any] = None) -> None:
        """Receive the next slice of a streaming element's content"""
        ...

    def finalize(self) -> None:
        """Called once when the element closes."""
        return None
