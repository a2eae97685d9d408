"""
Conversation Agent

Streams a chat turn for a session: the user message is appended to the
transcript, the language model is prompted with the fixed system prompt
plus the session's work item context, and text and tool-call events are
relayed to the caller as StreamChunks. When a tool registry is attached,
requested tools are run and their results fed back to the model for a
bounded number of rounds. The accumulated assistant reply is appended to
the transcript when the turn ends.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Optional

import structlog
from pydantic import ValidationError

from boardpilot.application.tools import ToolRegistry
from boardpilot.core.domain.errors import BoardPilotError, SessionNotFoundError
from boardpilot.core.domain.models import Session
from boardpilot.core.interfaces.llm import LLMStreamProtocol, StreamEnd, TextDelta, ToolInvocation
from boardpilot.core.interfaces.sessions import SessionStoreProtocol
from boardpilot.core.prompts.system_prompt import SYSTEM_PROMPT, build_context_prompt

logger = structlog.get_logger()


@dataclass
class StreamChunk:
    """One event of a chat turn: text, tool_call, tool_result, done or error."""

    type: str
    content: Optional[str] = None
    tool_call: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class ConversationAgent:
    def __init__(
        self,
        sessions: SessionStoreProtocol,
        llm: LLMStreamProtocol,
        tools: Optional[ToolRegistry] = None,
        system_prompt: str = SYSTEM_PROMPT,
        max_tool_rounds: int = 5,
    ):
        self.sessions = sessions
        self.llm = llm
        self.tools = tools
        self.system_prompt = system_prompt
        self.max_tool_rounds = max_tool_rounds
        self.logger = logger.bind(component="conversation_agent")

    def build_system_prompt(self, session: Session) -> str:
        work_item = session.work_item
        if work_item is None:
            return self.system_prompt
        return f"{self.system_prompt}\n\n{build_context_prompt(work_item)}"

    async def chat(self, session_id: str, message: str) -> AsyncIterator[StreamChunk]:
        """
        Run one chat turn.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.sessions.append_message(session_id, "user", message)
        if session is None:
            raise SessionNotFoundError(session_id)

        self.logger.info("chat.started", session_id=session_id, transcript_length=len(session.transcript))

        system_prompt = self.build_system_prompt(session)
        messages: list[dict[str, Any]] = [
            {"role": entry.role, "content": entry.content} for entry in session.transcript
        ]
        tool_definitions = self.tools.get_tool_definitions() if self.tools else None

        reply = ""
        for round_number in range(self.max_tool_rounds + 1):
            round_text = ""
            invocations: list[ToolInvocation] = []

            try:
                async for event in self.llm.stream(messages, system_prompt, tool_definitions):
                    if isinstance(event, TextDelta):
                        round_text += event.text
                        yield StreamChunk(type="text", content=event.text)
                    elif isinstance(event, ToolInvocation):
                        invocations.append(event)
                        yield StreamChunk(
                            type="tool_call",
                            tool_call={"id": event.id, "name": event.name, "input": event.input},
                        )
                    elif isinstance(event, StreamEnd):
                        break
            except Exception as e:
                self.logger.error("chat.stream_failed", session_id=session_id, error=str(e))
                yield StreamChunk(type="error", error=str(e))
                return

            reply += round_text
            if not invocations or self.tools is None:
                break
            if round_number == self.max_tool_rounds:
                self.logger.warning("chat.max_tool_rounds", session_id=session_id)
                break

            messages.append(
                {
                    "role": "assistant",
                    "content": round_text or None,
                    "tool_calls": [
                        {
                            "id": invocation.id,
                            "type": "function",
                            "function": {
                                "name": invocation.name,
                                "arguments": json.dumps(invocation.input),
                            },
                        }
                        for invocation in invocations
                    ],
                }
            )
            for invocation in invocations:
                result = await self._run_tool(invocation)
                yield StreamChunk(
                    type="tool_result",
                    tool_call={"id": invocation.id, "name": invocation.name, "output": result},
                )
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": invocation.id,
                        "content": json.dumps(result, default=str),
                    }
                )

        await self.sessions.append_message(session_id, "assistant", reply)
        self.logger.info("chat.completed", session_id=session_id, reply_length=len(reply))
        yield StreamChunk(type="done")

    async def _run_tool(self, invocation: ToolInvocation) -> dict[str, Any]:
        try:
            return await self.tools.execute(invocation.name, invocation.input)
        except BoardPilotError as e:
            self.logger.warning("chat.tool_failed", tool=invocation.name, error=str(e))
            return e.to_dict()
        except ValidationError as e:
            self.logger.warning("chat.tool_invalid_input", tool=invocation.name, error=str(e))
            return {"error": "ValidationError", "message": str(e)}
