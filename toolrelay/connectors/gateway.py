from __future__ import annotations

import logging

import httpx

from toolrelay.config import Settings
from toolrelay.connectors.base import ChatConnector, decode_response, encode_request
from toolrelay.errors import APIError, ConfigurationError, ResponseDecodeError, TransportError
from toolrelay.models import ChatResponse, ConversationState

logger = logging.getLogger(__name__)


class GatewayConnector(ChatConnector):
    """Chat completions routed through an AI gateway with bearer-token auth."""

    name = "gateway"

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        if not settings.token:
            raise ConfigurationError("TOKEN environment variable is required for AI Gateway.")
        if not settings.base_url:
            raise ConfigurationError("AI Gateway URL is required in gateway mode (--ai-gateway-url).")
        super().__init__(settings)
        self.url = f"{settings.base_url.rstrip('/')}/v1/chat/completions"
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=settings.timeout)
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {settings.token}",
        }

    def send(self, state: ConversationState, timeout: float | None = None) -> ChatResponse:
        body = encode_request(self.build_request(state))
        logger.debug("POST %s (%d message(s))", self.url, len(state))
        try:
            response = self._client.post(
                self.url,
                content=body,
                headers=self._headers,
                timeout=timeout if timeout is not None else self.settings.timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to AI Gateway timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Could not reach AI Gateway at {self.url}: {e}") from e

        if not response.is_success:
            raise APIError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ResponseDecodeError(f"AI Gateway returned invalid JSON: {e}") from e
        return decode_response(data)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
