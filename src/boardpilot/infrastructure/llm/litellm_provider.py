"""
LiteLLM streaming provider.

Adapts ``litellm.acompletion(stream=True)`` to the event stream consumed by
the conversation agent: text deltas are forwarded as they arrive, tool call
fragments are accumulated by index and emitted as complete invocations
once the model stream ends.
"""

import json
from typing import Any, AsyncIterator, Optional

import litellm
import structlog

from boardpilot.core.interfaces.llm import LLMEvent, StreamEnd, TextDelta, ToolInvocation

logger = structlog.get_logger()

DEFAULT_MODEL = "gpt-4.1"


class LiteLLMProvider:
    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        **completion_kwargs: Any,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.completion_kwargs = completion_kwargs
        self.logger = logger.bind(component="litellm_provider")

    async def stream(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[LLMEvent]:
        request: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "temperature": self.temperature,
            "stream": True,
            **self.completion_kwargs,
        }
        if self.max_tokens:
            request["max_tokens"] = self.max_tokens
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        self.logger.debug("llm.stream.started", model=self.model, message_count=len(messages))

        tool_calls: dict[int, dict[str, str]] = {}
        response = await litellm.acompletion(**request)

        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta

            content = getattr(delta, "content", None)
            if content:
                yield TextDelta(text=content)

            for tool_call in getattr(delta, "tool_calls", None) or []:
                index = tool_call.index or 0
                accumulated = tool_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
                if tool_call.id:
                    accumulated["id"] = tool_call.id
                function = tool_call.function
                if function is not None:
                    if function.name:
                        accumulated["name"] = function.name
                    if function.arguments:
                        accumulated["arguments"] += function.arguments

        for index in sorted(tool_calls):
            call = tool_calls[index]
            try:
                arguments = json.loads(call["arguments"]) if call["arguments"] else {}
            except json.JSONDecodeError:
                self.logger.warning(
                    "llm.tool_args_parse_failed", tool=call["name"], raw_args=call["arguments"]
                )
                arguments = {}
            yield ToolInvocation(id=call["id"], name=call["name"], input=arguments)

        self.logger.debug("llm.stream.completed", tool_calls=len(tool_calls))
        yield StreamEnd()
