"""
Connector configuration.

The client treats configuration as an opaque settings object; where the
values come from (env, JSON file, a secret store) is the caller's business.
load_config() covers the common cases: a JSON file plus environment
variable overrides.
"""

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from turvo_connector.exceptions import TurvoConfigError


# Config field -> environment variable
ENV_MAPPINGS = {
    "base_url": "TURVO_BASE_URL",
    "api_prefix": "TURVO_API_PREFIX",
    "client_id": "TURVO_CLIENT_ID",
    "client_secret": "TURVO_CLIENT_SECRET",
    "api_key": "TURVO_API_KEY",
    "username": "TURVO_USERNAME",
    "password": "TURVO_PASSWORD",
    "scope": "TURVO_SCOPE",
    "user_type": "TURVO_USER_TYPE",
    "tenant": "TURVO_TENANT",
    "default_customer_id": "TURVO_DEFAULT_CUSTOMER_ID",
    "default_origin_location_id": "TURVO_DEFAULT_ORIGIN_LOCATION_ID",
    "default_destination_location_id": "TURVO_DEFAULT_DESTINATION_LOCATION_ID",
    "timeout": "TURVO_TIMEOUT",
    "log_level": "LOG_LEVEL",
}


class TurvoConfig(BaseModel):
    """Settings consumed by the Turvo client and mapper."""

    base_url: str = "https://app.turvo.com"
    api_prefix: str = "/v1"

    # OAuth client credentials (sent on the token endpoint query string)
    client_id: str = Field("", repr=False)
    client_secret: str = Field("", repr=False)
    api_key: str = Field("", repr=False)

    # Password grant
    username: str = ""
    password: str = Field("", repr=False)
    scope: str = "read+trust+write"
    user_type: str = "business"

    tenant: str = ""

    # Mapper defaults
    default_customer_id: int = 0
    default_origin_location_id: int = 0
    default_destination_location_id: int = 0

    timeout: float = 30.0
    log_level: str = "info"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got: {v!r}")
        return v

    @property
    def api_key_only(self) -> bool:
        """True when requests authenticate with the API key alone."""
        return not self.username and bool(self.api_key)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) or bool(self.api_key)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "TurvoConfig":
        """Build config from environment variables only."""
        return cls.model_validate(_env_values(environ))


def _env_values(environ: dict[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for config_key, env_var in ENV_MAPPINGS.items():
        env_value = env.get(env_var)
        if env_value is not None and env_value != "":
            values[config_key] = env_value
    return values


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".turvo-loads" / "config.json"


def load_config(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> TurvoConfig:
    """
    Load configuration from file, with environment variable overrides.

    Priority:
    1. Environment variables
    2. Config file values
    3. Defaults
    """
    data: dict[str, Any] = {}

    config_path = Path(path) if path else get_config_path()
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    data.update(_env_values(environ))

    try:
        return TurvoConfig.model_validate(data)
    except ValueError as e:
        raise TurvoConfigError(f"Invalid Turvo configuration: {e}") from e
