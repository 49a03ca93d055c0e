"""Configuration management for the requester."""

from .loader import ConfigLoader
from .models import RequesterConfig

__all__ = ["ConfigLoader", "RequesterConfig"]
