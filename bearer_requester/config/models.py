"""Configuration data model for the requester."""

import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from ..exceptions import ConfigurationError

ENV_PREFIX = "BEARER_REQUESTER_"


@dataclass
class RequesterConfig:
    """Deployment settings shared by every requester."""

    base_url: str
    token_endpoint: str
    timeout: int = 30
    max_connections: int = 100
    max_retries: int = 0
    max_refresh_attempts: int = 1

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.base_url:
            raise ConfigurationError("Base URL cannot be empty", field="base_url")

        if not self.base_url.endswith("/"):
            raise ConfigurationError(
                f"Base URL must end with '/': {self.base_url}", field="base_url"
            )

        if not self.token_endpoint:
            raise ConfigurationError(
                "Token endpoint cannot be empty", field="token_endpoint"
            )

        if self.token_endpoint.startswith("/"):
            raise ConfigurationError(
                f"Token endpoint must not start with '/': {self.token_endpoint}",
                field="token_endpoint",
            )

        if self.timeout <= 0:
            raise ConfigurationError("Timeout must be positive", field="timeout")

        if self.max_connections <= 0:
            raise ConfigurationError(
                "Max connections must be positive", field="max_connections"
            )

        if self.max_retries < 0:
            raise ConfigurationError(
                "Max retries cannot be negative", field="max_retries"
            )

        if self.max_refresh_attempts < 0:
            raise ConfigurationError(
                "Max refresh attempts cannot be negative",
                field="max_refresh_attempts",
            )

    @classmethod
    def from_dict(
        cls, config_dict: Mapping[str, Any], config_file: str = ""
    ) -> "RequesterConfig":
        """Create RequesterConfig from dictionary.

        Args:
          config_dict: Configuration dictionary
          config_file: Source file path for error reporting

        Returns:
          RequesterConfig instance

        Raises:
          ConfigurationError: If configuration is invalid
        """
        if not isinstance(config_dict, Mapping):
            raise ConfigurationError(
                "Configuration must be a dictionary", config_file=config_file or None
            )

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config_dict) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(unknown)}",
                config_file=config_file or None,
                field=unknown[0],
            )

        try:
            return cls(**dict(config_dict))
        except TypeError as e:
            raise ConfigurationError(
                f"Invalid requester configuration: {e}",
                config_file=config_file or None,
            )
        except ConfigurationError as e:
            e.config_file = config_file or None
            raise

    @classmethod
    def from_env(
        cls, prefix: str = ENV_PREFIX, environ: Optional[Mapping[str, str]] = None
    ) -> "RequesterConfig":
        """Build configuration from ``<prefix>BASE_URL`` style variables."""
        environ = os.environ if environ is None else environ
        config_dict: dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            if f.type in (int, "int"):
                try:
                    config_dict[f.name] = int(raw)
                except ValueError:
                    raise ConfigurationError(
                        f"Environment variable '{prefix + f.name.upper()}' must be an integer",
                        field=f.name,
                    )
            else:
                config_dict[f.name] = raw

        for required in ("base_url", "token_endpoint"):
            if required not in config_dict:
                raise ConfigurationError(
                    f"Environment variable '{prefix + required.upper()}' is not set",
                    field=required,
                )

        return cls.from_dict(config_dict)
