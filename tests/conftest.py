from __future__ import annotations

import json

import httpx
import pytest

import toolrelay.config as config_mod
from toolrelay.config import Settings


class FakeChatServer:
    """Queue of canned chat-completion replies served through httpx.MockTransport.

    Each queued item is a response dict, an httpx.Response, or an exception
    to raise. Every request is recorded with its decoded JSON body.
    """

    def __init__(self) -> None:
        self.replies: list = []
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError(f"Unexpected request to {request.url}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def reply(self, content: str | None = "Hello!") -> None:
        self.replies.append(completion(content=content))

    def reply_tool_calls(self, *calls: tuple[str, str, str], content: str | None = None) -> None:
        self.replies.append(completion(content=content, tool_calls=list(calls)))


def completion(
    content: str | None = "Hello!",
    tool_calls: list[tuple[str, str, str]] | None = None,
    model: str = "test-model",
) -> dict:
    """Build a realistic chat completion response dict.

    tool_calls are (id, name, arguments-json) triples.
    """
    message: dict = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = [
            {"id": cid, "type": "function", "function": {"name": name, "arguments": args}}
            for cid, name, args in tool_calls
        ]
    return {
        "id": "chatcmpl-test123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


@pytest.fixture
def chat_server():
    return FakeChatServer()


@pytest.fixture
def direct_settings():
    return Settings(
        mode="direct",
        base_url="http://provider.test/v1",
        api_key="test-key",
        model="test-model",
        timeout=5.0,
    )


@pytest.fixture
def gateway_settings():
    return Settings(
        mode="gateway",
        base_url="http://gateway.test",
        token="gw-token",
        model="test-model",
        timeout=5.0,
    )


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temp dir and clear credential env vars."""
    config_dir = tmp_path / ".toolrelay"
    monkeypatch.setattr(config_mod, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_mod, "CONFIG_FILE", config_dir / "config.toml")
    for var in (
        config_mod.ENV_TOKEN,
        config_mod.ENV_API_KEY,
        config_mod.ENV_AWS_ACCESS_KEY_ID,
        config_mod.ENV_AWS_SECRET_ACCESS_KEY,
        config_mod.ENV_AWS_SESSION_TOKEN,
    ):
        monkeypatch.delenv(var, raising=False)
    return config_dir
