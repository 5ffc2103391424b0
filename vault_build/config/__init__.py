"""
Configuration System

Manages configuration for vault builds with a layered approach.

Configuration Priority (highest to lowest):
    1. Programmatic (passed to BuildConfig())
    2. Environment variables (VAULT_* prefix)
    3. Config file (BuildConfig.from_file, or --config on the CLI)
    4. Built-in defaults

Modules:
    settings: BuildConfig class
"""

from vault_build.config.settings import BuildConfig

__all__ = ["BuildConfig"]
