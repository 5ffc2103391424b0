"""
Vault Ingest

Turns a vault directory into parsed, link-resolved documents plus a list of
media sources.

Modules:
    frontmatter: YAML frontmatter splitting and parsing
    markdown: Block/inline markdown parsing, rendering and reference scanning
    schema: Frontmatter type inference and conflict report
    slugs: Unique slug assignment
    vault: Two-pass walk, parse and resolve
"""

from vault_build.ingestion.schema import scan_frontmatter_schema
from vault_build.ingestion.slugs import SlugManager
from vault_build.ingestion.vault import VaultIngest

__all__ = ["SlugManager", "VaultIngest", "scan_frontmatter_schema"]
