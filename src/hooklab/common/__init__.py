"""
Hooklab Common Utilities

Shared helpers used by the HTTP layer and the CLI.
"""

from .utils import (
    safe_json_parse,
    strict_json_loads,
    canonical_header_key,
    collect_headers,
    key_from_path,
    WEBHOOK_PREFIX,
    RESPONSE_PREFIX
)

__all__ = [
    'safe_json_parse',
    'strict_json_loads',
    'canonical_header_key',
    'collect_headers',
    'key_from_path',
    'WEBHOOK_PREFIX',
    'RESPONSE_PREFIX'
]
