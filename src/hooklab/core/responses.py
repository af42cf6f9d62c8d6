"""
Hooklab Response Configuration

Static per-key responses with a fallback chain:
key -> "default" -> built-in {"result": "ok"} / 200.
"""

import dataclasses
import threading
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Set

DEFAULT_KEY = "default"


def _fallback_response() -> Dict[str, Any]:
    return {'result': 'ok'}


@dataclass
class ResponseConfig:
    """Response returned for a webhook key."""

    response: Any = field(default_factory=_fallback_response)
    response_raw: str = ""
    status_code: int = 200

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'response': self.response,
            'statusCode': self.status_code
        }


class ResponseConfigStore:
    """
    Per-key response configuration.

    ``get`` never fails: unknown keys resolve to the "default" entry, and
    when that is missing too, to the built-in ``{"result": "ok"}`` / 200.
    ``set`` overwrites unconditionally; partial updates are the caller's job.
    """

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._lock = lock or threading.RLock()
        self._responses: Dict[str, ResponseConfig] = {}

    def get(self, key: str) -> ResponseConfig:
        """
        Resolve the response configuration for a key.

        Args:
            key: Webhook key

        Returns:
            A copy of the ResponseConfig for the key, the default key, or the
            built-in fallback
        """
        with self._lock:
            if key in self._responses:
                return dataclasses.replace(self._responses[key])
            if DEFAULT_KEY in self._responses:
                return dataclasses.replace(self._responses[DEFAULT_KEY])
        return ResponseConfig()

    def set(self, key: str, config: ResponseConfig):
        """
        Store the response configuration for a key.

        Args:
            key: Webhook key ("" is stored as "default")
            config: Configuration to store
        """
        with self._lock:
            self._responses[key or DEFAULT_KEY] = config

    def keys(self) -> Set[str]:
        """Keys with an explicit configuration."""
        with self._lock:
            return set(self._responses)
