from __future__ import annotations

import importlib
import logging

import httpx

from toolrelay.config import Settings
from toolrelay.connectors.base import ChatConnector
from toolrelay.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONNECTOR_MAP: dict[str, str] = {
    "gateway": "toolrelay.connectors.gateway.GatewayConnector",
    "direct": "toolrelay.connectors.direct.DirectConnector",
}


def get_connector(settings: Settings, http_client: httpx.Client | None = None) -> ChatConnector:
    """Factory: resolve the backend mode to a connector and instantiate it.

    Credentials are checked here, before any request is made.
    """
    if settings.mode not in CONNECTOR_MAP:
        raise ConfigurationError(f"Unknown backend mode '{settings.mode}'. Available: {list(CONNECTOR_MAP)}")
    module_path, class_name = CONNECTOR_MAP[settings.mode].rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    if settings.mode == "gateway":
        logger.info("Using AI Gateway for requests.")
    else:
        logger.info("Using direct provider endpoint for requests.")
    return cls(settings, http_client=http_client)
