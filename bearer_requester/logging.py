"""Structured logging for the requester."""

import logging
import os
import sys
from typing import Any, Dict, Optional

import structlog


class SensitiveDataFilter:
  """Filter to prevent credentials from being logged."""

  SENSITIVE_KEYS = {
    "authorization", "bearer", "token", "password", "secret",
    "credential", "api_key", "cookie",
  }

  @classmethod
  def filter_sensitive_data(cls, data: Any) -> Any:
    """Recursively mask sensitive values in dictionaries and sequences.

    Args:
      data: Data structure to filter

    Returns:
      Filtered data structure with sensitive values replaced
    """
    if isinstance(data, dict):
      filtered = {}
      for key, value in data.items():
        if isinstance(key, str) and cls._is_sensitive_key(key):
          filtered[key] = cls._mask_sensitive_value(value)
        else:
          filtered[key] = cls.filter_sensitive_data(value)
      return filtered
    elif isinstance(data, list):
      return [cls.filter_sensitive_data(item) for item in data]
    elif isinstance(data, tuple):
      return tuple(cls.filter_sensitive_data(item) for item in data)
    else:
      return data

  @classmethod
  def _is_sensitive_key(cls, key: str) -> bool:
    key_lower = key.lower().replace("-", "_").replace(" ", "_")
    return any(sensitive in key_lower for sensitive in cls.SENSITIVE_KEYS)

  @classmethod
  def _mask_sensitive_value(cls, value: Any) -> str:
    if value is None:
      return "[NONE]"

    value_str = str(value)
    if len(value_str) <= 8:
      return "[REDACTED]"
    # First and last four characters only
    return f"{value_str[:4]}...{value_str[-4:]}"


def configure_logging(
  debug_mode: bool = False,
  log_level: Optional[str] = None,
  log_file: Optional[str] = None,
  structured: bool = True,
) -> None:
  """Configure structured logging for the requester.

  Args:
    debug_mode: Enable debug mode with detailed logging
    log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
    log_file: Optional file path for log output
    structured: Use structured JSON logging format
  """
  if log_level:
    level = getattr(logging, log_level.upper(), logging.INFO)
  elif debug_mode:
    level = logging.DEBUG
  else:
    level = logging.INFO

  processors = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    _add_process_context,
    _filter_sensitive_processor,
  ]

  if structured:
    processors.append(structlog.processors.JSONRenderer())
  else:
    processors.append(structlog.dev.ConsoleRenderer())

  structlog.configure(
    processors=processors,
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
  )

  handlers = []

  console_handler = logging.StreamHandler(sys.stdout)
  console_handler.setLevel(level)
  handlers.append(console_handler)

  if log_file:
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    handlers.append(file_handler)

  logging.basicConfig(
    level=level,
    handlers=handlers,
    format="%(message)s" if structured else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
  )

  logging.getLogger("aiohttp").setLevel(logging.WARNING)


def _add_process_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
  event_dict["process_id"] = os.getpid()
  return event_dict


def _filter_sensitive_processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
  return SensitiveDataFilter.filter_sensitive_data(event_dict)


class RequesterLogger:
  """Logger for outbound calls with bound context."""

  def __init__(self, name: str, **context: Any):
    """Initialize logger with optional bound context.

    Args:
      name: Logger name
      **context: Context key-value pairs attached to every event
    """
    self.name = name
    self.context = dict(context)
    self.logger = structlog.get_logger(name)
    if self.context:
      self.logger = self.logger.bind(**SensitiveDataFilter.filter_sensitive_data(self.context))

  def bind(self, **kwargs: Any) -> "RequesterLogger":
    """Return a new logger with additional bound context."""
    return RequesterLogger(self.name, **{**self.context, **kwargs})

  def debug(self, message: str, **kwargs: Any) -> None:
    self.logger.debug(message, **SensitiveDataFilter.filter_sensitive_data(kwargs))

  def info(self, message: str, **kwargs: Any) -> None:
    self.logger.info(message, **SensitiveDataFilter.filter_sensitive_data(kwargs))

  def warning(self, message: str, **kwargs: Any) -> None:
    self.logger.warning(message, **SensitiveDataFilter.filter_sensitive_data(kwargs))

  def error(self, message: str, **kwargs: Any) -> None:
    self.logger.error(message, **SensitiveDataFilter.filter_sensitive_data(kwargs))

  def log_request(
    self,
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Any = None,
    **kwargs: Any
  ) -> None:
    """Log an outbound request; headers and body only at debug level."""
    context = {
      "event_type": "http_request",
      "method": method,
      "url": url,
      **kwargs
    }

    if is_debug_enabled():
      if headers:
        context["headers"] = headers
      if body is not None:
        context["body"] = body

    self.debug("HTTP request dispatched", **context)

  def log_response(
    self,
    status_code: int,
    url: str,
    latency_ms: int,
    **kwargs: Any
  ) -> None:
    """Log a completed request at debug level.

    Error statuses are reported once, by whoever raises them.
    """
    context = {
      "event_type": "http_response",
      "status_code": status_code,
      "url": url,
      "latency_ms": latency_ms,
      **kwargs
    }

    self.debug("HTTP response received", **context)

  def log_failure(self, error: Exception, **kwargs: Any) -> None:
    """Log the error payload, or its message, of a failed call."""
    context = {
      "event_type": "request_failure",
      "error_type": type(error).__name__,
      **kwargs
    }

    status = getattr(error, "status", None)
    if status is not None:
      context["status_code"] = status

    body = getattr(error, "body", None)
    if body is not None:
      context["payload"] = body
    else:
      context["payload"] = str(error)

    self.error("Request failed", **context)

  def log_refresh(self, succeeded: bool, url: str, **kwargs: Any) -> None:
    context = {
      "event_type": "token_refresh",
      "url": url,
      "succeeded": succeeded,
      **kwargs
    }

    if succeeded:
      self.info("Access token refreshed", **context)
    else:
      self.error("Access token refresh failed", **context)

  def log_state(self, previous: str, current: str, **kwargs: Any) -> None:
    self.debug(
      "Request state changed",
      event_type="state_transition",
      previous=previous,
      current=current,
      **kwargs
    )


def get_requester_logger(name: str, **context: Any) -> RequesterLogger:
  """Get a requester logger instance with optional bound context.

  Args:
    name: Logger name
    **context: Context bound to every event

  Returns:
    RequesterLogger instance
  """
  return RequesterLogger(name, **context)


def is_debug_enabled() -> bool:
  """Check if debug logging is enabled."""
  return logging.getLogger().isEnabledFor(logging.DEBUG)
