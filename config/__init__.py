"""
Configuration for the graph context chat service

This module provides a simple, config-file based settings system.
No external services required - just YAML configs and environment variables.
"""

from .settings import Settings, get_settings, reset_settings

__all__ = ["Settings", "get_settings", "reset_settings"]
