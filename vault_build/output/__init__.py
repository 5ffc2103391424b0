"""
Build Output

Staging, atomic publishing and the integrity manifest.
"""

from vault_build.output.manifest import build_manifest, load_manifest, verify_manifest
from vault_build.output.writer import OutputWriter

__all__ = ["OutputWriter", "build_manifest", "load_manifest", "verify_manifest"]
