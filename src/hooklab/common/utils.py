"""
Hooklab Common Utilities

Helpers for webhook keys, header names and tolerant JSON parsing.
"""

import json
from typing import List, Dict, Any, Iterable, Tuple

WEBHOOK_PREFIX = "/webhook"
RESPONSE_PREFIX = "/api/response"


def _reject_constant(name: str):
    raise ValueError(f"Invalid JSON constant: {name}")


def strict_json_loads(json_string: str) -> Any:
    """
    Parse standard JSON only.

    NaN, Infinity and -Infinity are rejected: they cannot be serialized
    back into a JSON response.

    Raises:
        ValueError: If the text is not valid JSON
    """
    return json.loads(json_string, parse_constant=_reject_constant)


def safe_json_parse(json_string: str, default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails (including
        non-standard constants such as NaN)

    Example:
        payload = safe_json_parse(raw_body, default={})
    """
    if not json_string:
        return default

    try:
        return strict_json_loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def key_from_path(path: str, prefix: str) -> str:
    """
    Extract a webhook key from a URL path.

    Args:
        path: Request path (e.g. "/webhook/orders")
        prefix: Route prefix to strip (e.g. "/webhook")

    Returns:
        The remainder of the path, or "default" if nothing is left

    Example:
        key_from_path('/webhook/github/push', WEBHOOK_PREFIX)  # 'github/push'
        key_from_path('/webhook', WEBHOOK_PREFIX)              # 'default'
    """
    key = path[len(prefix):] if path.startswith(prefix) else path
    key = key[1:] if key.startswith('/') else key
    return key or "default"


def canonical_header_key(name: str) -> str:
    """
    Canonical MIME form of a header name.

    The first letter and any letter following a hyphen are upper-cased,
    the rest lower-cased: "content-type" -> "Content-Type".
    """
    return '-'.join(part[:1].upper() + part[1:].lower() for part in name.split('-'))


def collect_headers(raw_headers: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    """
    Group raw (name, value) header pairs into a multi-map.

    Repeated headers keep every value in arrival order; names are canonicalised.

    Args:
        raw_headers: Header pairs as received

    Returns:
        Ordered dict of canonical header name -> list of values
    """
    headers: Dict[str, List[str]] = {}
    for name, value in raw_headers:
        headers.setdefault(canonical_header_key(name), []).append(value)
    return headers
