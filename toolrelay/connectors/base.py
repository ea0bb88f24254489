from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from toolrelay.config import Settings
from toolrelay.errors import ResponseDecodeError
from toolrelay.models import ChatResponse, ConversationState, Message, Tool


def tool_to_dict(tool: Tool) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
        },
    }


def encode_request(payload: dict[str, Any]) -> bytes:
    """Serialize a request payload; equal payloads give identical bytes."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class ChatConnector(ABC):
    """One chat-completions backend. Subclasses only differ in transport and auth."""

    name = ""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.model = settings.model

    @abstractmethod
    def send(self, state: ConversationState, timeout: float | None = None) -> ChatResponse:
        """Issue exactly one non-streaming request for the current history.

        Raises:
            TransportError: Connection failure or timeout.
            APIError: Non-2xx response.
            ResponseDecodeError: Body is not a chat-completion response.
        """
        ...

    def close(self) -> None:
        """Release any pooled connections."""

    def __enter__(self) -> ChatConnector:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def build_request(self, state: ConversationState) -> dict[str, Any]:
        """Pure transformation from history to request payload; no I/O."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._messages_to_dicts(state.messages),
        }
        if state.tools:
            payload["tools"] = [tool_to_dict(t) for t in state.tools]
        payload["stream"] = False
        return payload

    def _messages_to_dicts(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert Message objects to plain dicts for API calls."""
        result = []
        for msg in messages:
            if msg.role == "tool":
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content or "",
                })
            elif msg.tool_calls:
                result.append({
                    "role": msg.role,
                    "content": msg.content or "",
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": tc.arguments,
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                result.append({
                    "role": msg.role,
                    "content": msg.content or "",
                })
        return result


def decode_response(data: Any) -> ChatResponse:
    """Decode a chat-completion JSON body into a ChatResponse.

    Raises:
        ResponseDecodeError: If the body lacks choices or a choice is malformed.
    """
    if not isinstance(data, dict) or not isinstance(data.get("choices"), list):
        raise ResponseDecodeError(f"Unexpected response format: missing 'choices' list. Response: {data}")

    choices = []
    for raw_choice in data["choices"]:
        try:
            raw_msg = raw_choice["message"]
            tool_calls = [
                {
                    "id": tc["id"],
                    "name": tc["function"]["name"],
                    "arguments": _arguments_text(tc["function"].get("arguments")),
                }
                for tc in raw_msg.get("tool_calls") or []
            ]
            choices.append({
                "index": raw_choice.get("index", len(choices)),
                "finish_reason": raw_choice.get("finish_reason"),
                "message": {
                    "role": "assistant",
                    "content": raw_msg.get("content"),
                    "tool_calls": tool_calls,
                },
            })
        except (KeyError, TypeError, AttributeError) as e:
            raise ResponseDecodeError(f"Malformed choice in response: {e!r}. Choice: {raw_choice}") from e
        ids = [tc["id"] for tc in tool_calls]
        if len(ids) != len(set(ids)):
            raise ResponseDecodeError(f"Duplicate tool call ids in response: {ids}")

    try:
        return ChatResponse(
            id=data.get("id") or "",
            model=data.get("model") or "",
            choices=choices,
            raw=data,
        )
    except ValidationError as e:
        raise ResponseDecodeError(f"Response does not match chat-completion shape: {e}") from e


def _arguments_text(arguments: Any) -> str:
    # Some providers send arguments as an object rather than JSON text
    if arguments is None:
        return ""
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments, ensure_ascii=False)
