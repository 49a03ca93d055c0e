"""Configuration loader with YAML parsing and environment variable resolution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import ConfigurationError
from .models import RequesterConfig

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigLoader:
  """Loads requester configuration files from a directory.

  Files are YAML dictionaries whose keys match ``RequesterConfig`` fields.
  String values may reference environment variables as ``${VAR}``.
  """

  def __init__(self, config_dir: Path):
    """Initialize ConfigLoader with configuration directory.

    Args:
      config_dir: Path to directory containing requester configuration files
    """
    self.config_dir = Path(config_dir)

  def load_config(self, config_name: str = "requester") -> RequesterConfig:
    """Load configuration from specified file.

    Args:
      config_name: Name of configuration file without .yaml extension

    Returns:
      RequesterConfig instance with resolved environment variables

    Raises:
      ConfigurationError: If file not found, invalid YAML, or environment variables missing
    """
    config_file = self.config_dir / f"{config_name}.yaml"
    if not config_file.exists():
      alternative = self.config_dir / f"{config_name}.yml"
      if alternative.exists():
        config_file = alternative

    if not config_file.exists():
      raise ConfigurationError(
        f"Configuration file not found: {config_file}",
        config_file=str(config_file)
      )

    try:
      with open(config_file, 'r', encoding='utf-8') as f:
        config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
      raise ConfigurationError(
        f"Invalid YAML in configuration file: {e}",
        config_file=str(config_file)
      )
    except OSError as e:
      raise ConfigurationError(
        f"Error reading configuration file: {e}",
        config_file=str(config_file)
      )

    if config_dict is None:
      raise ConfigurationError(
        "Configuration file is empty",
        config_file=str(config_file)
      )

    if not isinstance(config_dict, dict):
      raise ConfigurationError(
        "Configuration file must contain a YAML dictionary",
        config_file=str(config_file)
      )

    try:
      resolved_config = self._resolve_environment_variables(config_dict)
    except ConfigurationError as e:
      e.config_file = str(config_file)
      raise e

    return RequesterConfig.from_dict(resolved_config, str(config_file))

  def list_available_configs(self) -> list[str]:
    """List configuration names (file stems) in the config directory.

    Raises:
      ConfigurationError: If config directory doesn't exist
    """
    if not self.config_dir.is_dir():
      raise ConfigurationError(
        f"Configuration directory not found: {self.config_dir}"
      )

    names = {
      file_path.stem
      for pattern in ("*.yaml", "*.yml")
      for file_path in self.config_dir.glob(pattern)
      if file_path.is_file()
    }
    return sorted(names)

  def _resolve_environment_variables(self, value: Any) -> Any:
    """Resolve ${VAR} patterns with environment variables.

    Args:
      value: Configuration value potentially containing ${VAR} patterns

    Returns:
      Value with environment variables resolved

    Raises:
      ConfigurationError: If required environment variable is missing
    """
    if isinstance(value, str):
      resolved_value = value
      for var_name in ENV_VAR_PATTERN.findall(value):
        env_value = os.getenv(var_name)
        if env_value is None:
          raise ConfigurationError(
            f"Environment variable '{var_name}' is not set"
          )
        resolved_value = resolved_value.replace(f"${{{var_name}}}", env_value)
      return resolved_value
    elif isinstance(value, dict):
      return {k: self._resolve_environment_variables(v) for k, v in value.items()}
    elif isinstance(value, list):
      return [self._resolve_environment_variables(item) for item in value]
    else:
      return value
