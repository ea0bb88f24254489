"""Unit tests for tools.py — tool-call extraction and the weather executor."""
from __future__ import annotations

import httpx
import pytest

from toolrelay.config import Settings
from toolrelay.connectors.base import decode_response
from toolrelay.errors import ArgumentDecodeError
from toolrelay.models import ToolCall, ToolInvocation, WeatherArguments
from toolrelay.tools import (
    MOCK_WEATHER,
    WEATHER_UNAVAILABLE,
    ToolExecutor,
    decode_arguments,
    extract_tool_calls,
)

from conftest import completion


def _response(*calls, content=None):
    return decode_response(completion(content=content, tool_calls=list(calls) or None))


def _weather(location="New York City", call_id="call_1"):
    return ToolInvocation(call_id=call_id, name="get_weather", arguments={"location": location})


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def test_no_tool_calls():
    result = extract_tool_calls(_response(content="Just text"))
    assert result.invocations == []
    assert not result.has_calls


def test_valid_call_is_decoded():
    result = extract_tool_calls(_response(("call_1", "get_weather", '{"location": "New York City"}')))
    assert result.invocations == [_weather()]
    assert result.skipped == []


def test_malformed_json_is_skipped_not_fatal():
    result = extract_tool_calls(_response(
        ("bad", "get_weather", '{"location": '),
        ("good", "get_weather", '{"location": "Paris"}'),
    ))
    assert [i.call_id for i in result.invocations] == ["good"]
    assert [s.call_id for s in result.skipped] == ["bad"]
    assert "JSON" in result.skipped[0].reason


def test_missing_location_is_skipped():
    result = extract_tool_calls(_response(("c1", "get_weather", '{"city": "Paris"}')))
    assert result.invocations == []
    assert result.has_calls


def test_unknown_tool_is_skipped():
    result = extract_tool_calls(_response(("c1", "get_stock_price", '{"ticker": "X"}')))
    assert result.invocations == []
    assert "unknown tool" in result.skipped[0].reason


def test_order_matches_model_response():
    result = extract_tool_calls(_response(
        ("c3", "get_weather", '{"location": "C"}'),
        ("c1", "get_weather", '{"location": "A"}'),
        ("c2", "get_weather", '{"location": "B"}'),
    ))
    assert [i.call_id for i in result.invocations] == ["c3", "c1", "c2"]


def test_decode_arguments_rejects_non_object():
    with pytest.raises(ArgumentDecodeError):
        decode_arguments(ToolCall(id="c", name="get_weather", arguments='["Paris"]'), WeatherArguments)


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

def _executor(handler=None, tool_url="http://weather.test/now"):
    settings = Settings(tool_url=tool_url if handler else "", timeout=5.0)
    client = httpx.Client(transport=httpx.MockTransport(handler)) if handler else None
    return ToolExecutor(settings, http_client=client)


def test_mock_weather_without_tool_url():
    result = _executor().execute(_weather())
    assert result == "The weather in New York City is 22°C with scattered clouds."
    assert result == MOCK_WEATHER.format(location="New York City")


def test_service_body_is_returned_verbatim():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="Sunny, 25°C")

    assert _executor(handler).execute(_weather()) == "Sunny, 25°C"
    assert len(seen) == 1
    assert seen[0].method == "GET"
    assert str(seen[0].url) == "http://weather.test/now"  # bare GET, no query


def test_location_placeholder_is_substituted():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, text="Rainy")

    executor = _executor(handler, tool_url="http://weather.test/forecast?q={location}")
    assert executor.execute(_weather("New York City")) == "Rainy"
    assert seen == ["http://weather.test/forecast?q=New%20York%20City"]


def test_unreachable_service_returns_sentinel(caplog):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    executor = _executor(handler)
    assert executor.execute(_weather()) == WEATHER_UNAVAILABLE
    assert "Error fetching from tool URL" in caplog.text


def test_error_status_returns_sentinel():
    executor = _executor(lambda request: httpx.Response(503, text="down"))
    assert executor.execute(_weather()) == WEATHER_UNAVAILABLE


def test_exhausted_deadline_returns_sentinel_without_request():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="Sunny")

    assert _executor(handler).execute(_weather(), timeout=0) == WEATHER_UNAVAILABLE
    assert seen == []


def test_unknown_tool_returns_error_text():
    invocation = ToolInvocation(call_id="c", name="nope", arguments={})
    assert _executor().execute(invocation).startswith("Error: unknown tool")
