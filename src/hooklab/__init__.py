"""
Hooklab

Webhook capture and mock-response server with an in-memory event log,
per-key responses, conditional rules and a live event stream.
"""

__version__ = '1.0.0'
