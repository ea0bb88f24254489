from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from toolrelay.errors import ConversationStateError

Role = Literal["system", "user", "assistant", "tool"]


class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: str  # raw JSON text as sent by the model


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None  # for role="tool" responses
    name: str | None = None  # tool name for role="tool"


class Tool(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema object


class Choice(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = 0
    message: Message
    finish_reason: str | None = None


class ChatResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    model: str = ""
    choices: list[Choice]
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def message(self) -> Message | None:
        """First choice's message, or None when the model returned no choices."""
        return self.choices[0].message if self.choices else None


class WeatherArguments(BaseModel):
    location: str


class ToolInvocation(BaseModel):
    call_id: str
    name: str
    arguments: dict[str, Any]  # validated against the tool's argument model


class ToolResult(BaseModel):
    call_id: str
    name: str
    content: str


class QueryState(str, Enum):
    IDLE = "idle"
    REQUEST_SENT = "request_sent"
    NO_TOOL_CALL = "no_tool_call"
    TOOL_CALL_DETECTED = "tool_call_detected"
    TOOLS_EXECUTED = "tools_executed"
    FOLLOWUP_SENT = "followup_sent"
    DONE = "done"
    FAILED = "failed"


class ConversationState:
    """Append-only message history for one query, plus the active tools."""

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self.tools: list[Tool] = list(tools or [])
        self._messages: list[Message] = []

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add_user(self, content: str) -> Message:
        return self._append(Message(role="user", content=content))

    def add_assistant(self, message: Message) -> Message:
        if message.role != "assistant":
            raise ConversationStateError(f"Expected an assistant message, got role '{message.role}'")
        return self._append(message)

    def add_tool_result(self, call_id: str, content: str, name: str | None = None) -> Message:
        """Answer a call from the most recent assistant message.

        Raises:
            ConversationStateError: If the id was not requested by that
                assistant message, or has already been answered.
        """
        assistant_idx = None
        for idx in range(len(self._messages) - 1, -1, -1):
            if self._messages[idx].role == "assistant":
                assistant_idx = idx
                break
        if assistant_idx is None:
            raise ConversationStateError("Tool result appended before any assistant message")

        pending = {tc.id for tc in self._messages[assistant_idx].tool_calls}
        if call_id not in pending:
            raise ConversationStateError(
                f"Tool call id '{call_id}' was not requested by the preceding assistant message"
            )
        answered = {m.tool_call_id for m in self._messages[assistant_idx + 1:] if m.role == "tool"}
        if call_id in answered:
            raise ConversationStateError(f"Tool call id '{call_id}' has already been answered")

        return self._append(Message(role="tool", content=content, tool_call_id=call_id, name=name))

    def _append(self, message: Message) -> Message:
        self._messages.append(message)
        return message


class QueryResult(BaseModel):
    answer: str
    state: QueryState
    tool_results: list[ToolResult] = Field(default_factory=list)
    requests_sent: int = 0
    messages: list[Message] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
