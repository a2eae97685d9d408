"""
Protocol for the streaming language-model runtime.

The conversation agent consumes a stream of three event kinds: a text
chunk, a tool invocation request, and the end of the stream.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol, Union


@dataclass
class TextDelta:
    text: str


@dataclass
class ToolInvocation:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamEnd:
    pass


LLMEvent = Union[TextDelta, ToolInvocation, StreamEnd]


class LLMStreamProtocol(Protocol):
    def stream(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[LLMEvent]:
        ...
