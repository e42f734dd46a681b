"""Configuration management for scriptrelay.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides for the shared secret and the
listening port.
"""

from scriptrelay.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
