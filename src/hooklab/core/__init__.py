"""
Hooklab Core

In-memory state and decision engine.

This module provides:
- Bounded event log
- Per-key response configuration with fallback
- Conditional rules and first-match-wins evaluation
- Non-blocking fan-out of events to live subscribers
"""

from .errors import HooklabError, ConditionError, SubscriberClosed
from .events import Event, EventLog, DEFAULT_MAX_EVENTS
from .responses import ResponseConfig, ResponseConfigStore, DEFAULT_KEY
from .rules import Rule, RuleStore
from .evaluator import (
    CompiledCondition,
    ExpressionEngine,
    RequestContext,
    RuleEvaluator,
    SimpleEvalEngine
)
from .hub import Subscriber, SubscriberHub
from .coordinator import RequestCoordinator, WebhookOutcome

__all__ = [
    # Errors
    'HooklabError',
    'ConditionError',
    'SubscriberClosed',

    # Events
    'Event',
    'EventLog',
    'DEFAULT_MAX_EVENTS',

    # Responses
    'ResponseConfig',
    'ResponseConfigStore',
    'DEFAULT_KEY',

    # Rules
    'Rule',
    'RuleStore',
    'CompiledCondition',
    'ExpressionEngine',
    'RequestContext',
    'RuleEvaluator',
    'SimpleEvalEngine',

    # Subscribers
    'Subscriber',
    'SubscriberHub',

    # Coordination
    'RequestCoordinator',
    'WebhookOutcome',
]
