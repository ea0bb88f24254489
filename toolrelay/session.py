from __future__ import annotations

import logging
import time

from toolrelay.config import Settings
from toolrelay.connectors.base import ChatConnector
from toolrelay.errors import ChatClientError, ResponseDecodeError, TransportError
from toolrelay.models import (
    ChatResponse,
    ConversationState,
    Message,
    QueryResult,
    QueryState,
    Tool,
    ToolResult,
)
from toolrelay.tools import TOOLS, ToolExecutor, extract_tool_calls

logger = logging.getLogger(__name__)

PHASE_INITIAL = "initial"
PHASE_FOLLOWUP = "follow-up"


class ConversationSession:
    """Runs one question through a single tool-calling round trip.

    The flow is: initial request, tool execution for each call the model
    made, then one follow-up request whose answer is final. Tool calls in the
    follow-up response are not executed.
    """

    def __init__(
        self,
        settings: Settings,
        connector: ChatConnector,
        executor: ToolExecutor | None = None,
        tools: list[Tool] | None = None,
    ) -> None:
        self.settings = settings
        self.connector = connector
        self.executor = executor or ToolExecutor(settings)
        self.tools = tools or TOOLS
        self.state = QueryState.IDLE
        self.requests_sent = 0

    def ask(self, question: str, timeout: float | None = None) -> QueryResult:
        """Answer a question, calling tools if the model asks for them.

        Raises:
            TransportError, APIError, ResponseDecodeError: If either chat
                request fails; ``phase`` on the error names which one.
        """
        self.state = QueryState.IDLE
        self.requests_sent = 0
        deadline = time.monotonic() + (timeout if timeout is not None else self.settings.timeout)

        history = ConversationState(self.tools)
        history.add_user(question)

        self.state = QueryState.REQUEST_SENT
        response = self._send(history, PHASE_INITIAL, deadline)
        message = self._first_message(response, PHASE_INITIAL)

        extraction = extract_tool_calls(response, self.tools)
        if not extraction.invocations:
            if extraction.has_calls:
                logger.warning("No usable tool call in response; using the assistant message as the answer.")
            else:
                logger.info("No tool call detected.")
            self.state = QueryState.NO_TOOL_CALL
            history.add_assistant(message)
            return self._finish(history, message.content or "", [], response)

        self.state = QueryState.TOOL_CALL_DETECTED
        logger.info("Tool call detected. Fetching weather data...")
        history.add_assistant(message)

        invocations = {inv.call_id: inv for inv in extraction.invocations}
        skipped = {s.call_id: s for s in extraction.skipped}
        results: list[ToolResult] = []
        for call in message.tool_calls:
            if call.id in invocations:
                content = self.executor.execute(invocations[call.id], timeout=deadline - time.monotonic())
                results.append(ToolResult(call_id=call.id, name=call.name, content=content))
            else:
                content = f"Error: {skipped[call.id].reason}"
            history.add_tool_result(call.id, content, name=call.name)
        self.state = QueryState.TOOLS_EXECUTED

        self.state = QueryState.FOLLOWUP_SENT
        final = self._send(history, PHASE_FOLLOWUP, deadline)
        final_message = self._first_message(final, PHASE_FOLLOWUP)
        if final_message.tool_calls:
            logger.info("Ignoring %d tool call(s) in follow-up response.", len(final_message.tool_calls))
        history.add_assistant(final_message)
        return self._finish(history, final_message.content or "", results, final)

    def _send(self, history: ConversationState, phase: str, deadline: float) -> ChatResponse:
        remaining = deadline - time.monotonic()
        try:
            if remaining <= 0:
                raise TransportError("deadline exceeded before request was sent")
            self.requests_sent += 1
            return self.connector.send(history, timeout=remaining)
        except ChatClientError as e:
            e.phase = phase
            self.state = QueryState.FAILED
            logger.error("%s", e)
            raise

    def _first_message(self, response: ChatResponse, phase: str) -> Message:
        if response.message is None:
            self.state = QueryState.FAILED
            raise ResponseDecodeError("response contained no choices", phase=phase)
        return response.message

    def _finish(
        self,
        history: ConversationState,
        answer: str,
        results: list[ToolResult],
        response: ChatResponse,
    ) -> QueryResult:
        self.state = QueryState.DONE
        return QueryResult(
            answer=answer,
            state=self.state,
            tool_results=results,
            requests_sent=self.requests_sent,
            messages=history.messages,
            raw=response.raw,
        )
