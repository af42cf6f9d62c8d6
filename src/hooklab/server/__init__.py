"""
Hooklab Server Module

HTTP boundary for the webhook state and decision engine.

This module provides:
- FastAPI-based webhook capture server
- Server-Sent Events stream of captured events
- YAML-loadable server configuration
"""

from .config import ServerConfig, MAX_BODY_SIZE
from .app import HooklabServer, create_server, read_limited_body
from .stream import event_stream, format_sse_data, HEARTBEAT

__all__ = [
    # Server
    'HooklabServer',
    'create_server',
    'read_limited_body',

    # Config
    'ServerConfig',
    'MAX_BODY_SIZE',

    # Stream
    'event_stream',
    'format_sse_data',
    'HEARTBEAT',
]
