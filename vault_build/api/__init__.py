"""
Public API

Modules:
    convenience: build_vault / build_vault_sync
"""

from vault_build.api.convenience import build_vault, build_vault_sync

__all__ = ["build_vault", "build_vault_sync"]
