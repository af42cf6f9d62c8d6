"""
Hooklab Server Configuration

Dataclass configuration for the webhook server, loadable from YAML.

Example YAML:
    host: 0.0.0.0
    port: 9000
    log_level: debug
    max_events: 100
    default_response:
      received: true
    default_status_code: 202
"""

import dataclasses
import json
from dataclasses import dataclass, field
from typing import Dict, Any

import yaml

from ..core.events import DEFAULT_MAX_EVENTS

MAX_BODY_SIZE = 1 << 20  # 1 MiB


def _default_response() -> Dict[str, Any]:
    return {'result': 'ok'}


@dataclass
class ServerConfig:
    """Configuration for webhook server behavior."""

    # Server options
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"
    access_log: bool = True
    shutdown_timeout: int = 10  # Seconds to wait for open connections on shutdown

    # Capture
    max_events: int = DEFAULT_MAX_EVENTS
    max_body_size: int = MAX_BODY_SIZE  # Larger bodies are truncated

    # Response served when nothing else is configured
    default_response: Any = field(default_factory=_default_response)
    default_status_code: int = 200

    # Event stream
    heartbeat_interval: float = 25.0
    disconnect_poll_interval: float = 1.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServerConfig':
        """
        Create config from dictionary.

        Raises:
            ValueError: If data contains unknown keys, or default_response is
                not valid JSON (e.g. NaN)
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        if 'default_response' in data:
            try:
                json.dumps(data['default_response'], allow_nan=False)
            except (TypeError, ValueError) as e:
                raise ValueError(f"default_response is not valid JSON: {e}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'ServerConfig':
        """Load config from YAML file."""
        with open(yaml_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {yaml_path}, got {type(data).__name__}")

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return dataclasses.asdict(self)
