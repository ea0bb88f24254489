from __future__ import annotations

import json
import logging
from typing import Callable
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field, ValidationError

from toolrelay.config import Settings
from toolrelay.errors import ArgumentDecodeError, ToolExecutionError
from toolrelay.models import ChatResponse, Tool, ToolCall, ToolInvocation, WeatherArguments

logger = logging.getLogger(__name__)

WEATHER_UNAVAILABLE = "Weather data unavailable."
MOCK_WEATHER = "The weather in {location} is 22°C with scattered clouds."
LOCATION_PLACEHOLDER = "{location}"

# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

GET_WEATHER = Tool(
    name="get_weather",
    description="Get weather at the given location",
    parameters={
        "type": "object",
        "properties": {
            "location": {"type": "string"},
        },
        "required": ["location"],
    },
)

TOOLS: list[Tool] = [GET_WEATHER]

ARGUMENT_MODELS: dict[str, type[BaseModel]] = {
    "get_weather": WeatherArguments,
}


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class SkippedCall(BaseModel):
    call_id: str
    name: str
    reason: str


class ExtractionResult(BaseModel):
    invocations: list[ToolInvocation] = Field(default_factory=list)
    skipped: list[SkippedCall] = Field(default_factory=list)

    @property
    def has_calls(self) -> bool:
        return bool(self.invocations or self.skipped)


def decode_arguments(call: ToolCall, model: type[BaseModel]) -> dict:
    """Decode a call's JSON argument text and validate it against the tool's model."""
    try:
        raw = json.loads(call.arguments) if call.arguments.strip() else {}
    except json.JSONDecodeError as e:
        raise ArgumentDecodeError(f"arguments are not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ArgumentDecodeError(f"arguments must be a JSON object, got {type(raw).__name__}")
    try:
        return model.model_validate(raw).model_dump()
    except ValidationError as e:
        raise ArgumentDecodeError(f"invalid arguments: {e.errors(include_url=False)}") from e


def extract_tool_calls(response: ChatResponse, tools: list[Tool] | None = None) -> ExtractionResult:
    """Decode the tool calls of the first choice, in the order the model sent them.

    Calls naming an unknown tool, or with undecodable arguments, are logged
    and reported as skipped rather than failing the whole turn.
    """
    known = {t.name for t in (tools if tools is not None else TOOLS)}
    message = response.message
    result = ExtractionResult()
    if message is None or not message.tool_calls:
        return result

    for call in message.tool_calls:
        if call.name not in known or call.name not in ARGUMENT_MODELS:
            logger.warning("Skipping call %s: unknown tool '%s'", call.id, call.name)
            result.skipped.append(SkippedCall(call_id=call.id, name=call.name, reason=f"unknown tool '{call.name}'"))
            continue
        try:
            arguments = decode_arguments(call, ARGUMENT_MODELS[call.name])
        except ArgumentDecodeError as e:
            logger.warning("Skipping call %s to %s: %s", call.id, call.name, e)
            result.skipped.append(SkippedCall(call_id=call.id, name=call.name, reason=str(e)))
            continue
        result.invocations.append(ToolInvocation(call_id=call.id, name=call.name, arguments=arguments))

    return result


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class ToolExecutor:
    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._client = http_client
        self._handlers: dict[str, Callable[..., str]] = {
            "get_weather": self._tool_get_weather,
        }

    def execute(self, invocation: ToolInvocation, timeout: float | None = None) -> str:
        """Run one tool call and return its textual result."""
        handler = self._handlers.get(invocation.name)
        if handler is None:
            return f"Error: unknown tool '{invocation.name}'"
        return handler(timeout=timeout, **invocation.arguments)

    def _tool_get_weather(self, location: str, timeout: float | None = None) -> str:
        if not self.settings.tool_url:
            logger.info("Using mock weather response.")
            return MOCK_WEATHER.format(location=location)

        logger.info("Fetching weather data for %s from tool service...", location)
        try:
            body = self._fetch(self._weather_url(location), timeout)
        except ToolExecutionError as e:
            logger.warning("Error fetching from tool URL: %s", e)
            return WEATHER_UNAVAILABLE
        logger.info("Received weather data: %s", body)
        return body

    def _weather_url(self, location: str) -> str:
        url = self.settings.tool_url
        if LOCATION_PLACEHOLDER in url:
            return url.replace(LOCATION_PLACEHOLDER, quote(location, safe=""))
        return url

    def _fetch(self, url: str, timeout: float | None = None) -> str:
        timeout = timeout if timeout is not None else self.settings.timeout
        if timeout <= 0:
            raise ToolExecutionError("deadline exhausted before tool call")
        try:
            if self._client is not None:
                response = self._client.get(url, timeout=timeout)
            else:
                response = httpx.get(url, timeout=timeout)
        except httpx.HTTPError as e:
            raise ToolExecutionError(str(e)) from e
        if not response.is_success:
            raise ToolExecutionError(f"HTTP {response.status_code} from {url}")
        return response.text
