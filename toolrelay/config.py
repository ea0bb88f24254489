from __future__ import annotations

import copy
import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError

from toolrelay.errors import ConfigurationError

CONFIG_DIR = Path("~/.toolrelay").expanduser()
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_MODEL = "eu.anthropic.claude-3-5-sonnet-20240620-v1:0"
DEFAULT_QUESTION = "What is the weather in New York City?"

DEFAULTS: dict[str, Any] = {
    "backend": {
        "mode": "direct",
        "model": DEFAULT_MODEL,
        "timeout": 60.0,
    },
    "gateway": {
        "url": "",
    },
    "direct": {
        "base_url": "",
    },
    "tool": {
        "url": "",
    },
}

# Environment variables that feed credentials; never persisted to the TOML file.
ENV_TOKEN = "TOKEN"
ENV_API_KEY = "TOOLRELAY_API_KEY"
ENV_AWS_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
ENV_AWS_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"
ENV_AWS_SESSION_TOKEN = "AWS_SESSION_TOKEN"


class Settings(BaseModel):
    """Resolved, read-only configuration shared by every component."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["gateway", "direct"] = "direct"
    base_url: str = ""
    token: str = ""
    api_key: str = ""
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_session_token: str = ""
    model: str = DEFAULT_MODEL
    tool_url: str = ""
    timeout: float = 60.0

    @property
    def direct_api_key(self) -> str:
        """Key used against the provider; the access key id stands in when unset."""
        return self.api_key or self.aws_access_key_id


def load() -> dict[str, Any]:
    """Load config from ~/.toolrelay/config.toml, merging with defaults."""
    config = _deep_merge({}, DEFAULTS)
    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE, "rb") as f:
                on_disk = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid config file {CONFIG_FILE}: {e}") from e
        config = _deep_merge(config, on_disk)
    return config


def save(config: dict[str, Any]) -> None:
    """Save config dict to ~/.toolrelay/config.toml (manual TOML serialization)."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    lines = _dict_to_toml(config)
    CONFIG_FILE.write_text("\n".join(lines).lstrip("\n") + "\n")


def resolve(
    config: dict[str, Any],
    env: Mapping[str, str] | None = None,
    gateway_url: str | None = None,
    direct_base_url: str | None = None,
    **overrides: Any,
) -> Settings:
    """Build Settings from file config, environment and CLI overrides.

    Precedence, lowest first: defaults, config file, environment, overrides.
    Overrides whose value is None are ignored so click options that were not
    given fall through. ``base_url`` is taken from ``gateway_url`` or
    ``direct_base_url`` depending on the final mode.

    Raises:
        ConfigurationError: If the merged values do not validate.
    """
    env = os.environ if env is None else env
    config = _deep_merge(DEFAULTS, config)
    if gateway_url is not None:
        config["gateway"]["url"] = gateway_url
    if direct_base_url is not None:
        config["direct"]["base_url"] = direct_base_url

    values: dict[str, Any] = {
        "mode": config["backend"]["mode"],
        "model": config["backend"]["model"],
        "timeout": config["backend"]["timeout"],
        "tool_url": config["tool"]["url"],
        "token": env.get(ENV_TOKEN, ""),
        "api_key": env.get(ENV_API_KEY, ""),
        "aws_access_key_id": env.get(ENV_AWS_ACCESS_KEY_ID, ""),
        "aws_secret_access_key": env.get(ENV_AWS_SECRET_ACCESS_KEY, ""),
        "aws_session_token": env.get(ENV_AWS_SESSION_TOKEN, ""),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})

    if "base_url" not in values:
        section = "gateway" if values["mode"] == "gateway" else "direct"
        key = "url" if section == "gateway" else "base_url"
        values["base_url"] = config[section][key]

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def write_credentials(settings: Settings, path: Path | None = None) -> Path:
    """Write an AWS shared-credentials file for the default profile.

    Returns the path written. Defaults to <tmpdir>/aws-credential-file.
    """
    if not settings.aws_access_key_id or not settings.aws_secret_access_key:
        raise ConfigurationError("AWS access key id and secret key must not be empty")

    lines = [
        "[default]",
        f"aws_access_key_id = {settings.aws_access_key_id}",
        f"aws_secret_access_key = {settings.aws_secret_access_key}",
    ]
    if settings.aws_session_token:
        lines.append(f"aws_session_token = {settings.aws_session_token}")

    path = path or Path(tempfile.gettempdir()) / "aws-credential-file"
    path.write_text("\n".join(lines) + "\n")
    path.chmod(0o600)
    return path


def _deep_merge(base: dict, override: dict) -> dict:
    result = copy.deepcopy(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = copy.deepcopy(v)
    return result


def _dict_to_toml(d: dict[str, Any], prefix: str = "") -> list[str]:
    """Minimal TOML serializer for one level of tables with scalar values."""
    lines: list[str] = []
    sections: list[tuple[str, dict]] = []

    for k, v in d.items():
        if isinstance(v, dict):
            sections.append((k, v))
        else:
            lines.append(f'{k} = {_toml_value(v)}')

    for section_key, section_val in sections:
        header = f"[{section_key}]" if not prefix else f"[{prefix}.{section_key}]"
        lines.append("")
        lines.append(header)
        for sk, sv in section_val.items():
            lines.append(f'{sk} = {_toml_value(sv)}')

    return lines


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise ValueError(f"Unsupported TOML value type: {type(v)}")
