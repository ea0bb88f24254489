from __future__ import annotations

import logging

import httpx
import openai

from toolrelay.config import Settings
from toolrelay.connectors.base import ChatConnector, decode_response
from toolrelay.errors import APIError, ConfigurationError, ResponseDecodeError, TransportError
from toolrelay.models import ChatResponse, ConversationState

logger = logging.getLogger(__name__)


class DirectConnector(ChatConnector):
    """Chat completions sent straight to the provider's OpenAI-compatible API."""

    name = "direct"

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        api_key = settings.direct_api_key
        if not api_key:
            raise ConfigurationError(
                "An API key is required in direct mode. "
                "Set TOOLRELAY_API_KEY or pass --aws-access-key-id."
            )
        super().__init__(settings)
        # No retries: every request is attempted exactly once
        self._client = openai.OpenAI(
            api_key=api_key,
            base_url=settings.base_url or None,
            timeout=settings.timeout,
            max_retries=0,
            http_client=http_client,
        )

    def send(self, state: ConversationState, timeout: float | None = None) -> ChatResponse:
        payload = self.build_request(state)
        logger.debug("chat.completions.create (%d message(s))", len(state))
        try:
            completion = self._client.chat.completions.create(
                **payload,
                timeout=timeout if timeout is not None else self.settings.timeout,
            )
        except openai.APITimeoutError as e:
            raise TransportError(f"Request to provider timed out: {e}") from e
        except openai.APIConnectionError as e:
            raise TransportError(f"Could not reach provider: {e}") from e
        except openai.APIStatusError as e:
            raise APIError(e.status_code, e.response.text) from e
        except (openai.APIResponseValidationError, ValueError) as e:
            raise ResponseDecodeError(f"Provider returned an undecodable response: {e}") from e

        # The SDK hands back the body text when the content-type is not JSON
        if isinstance(completion, str):
            raise ResponseDecodeError(f"Provider returned a non-JSON response: {completion[:200]}")
        return decode_response(completion.model_dump(mode="json", exclude_unset=True))

    def close(self) -> None:
        self._client.close()
