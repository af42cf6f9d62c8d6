"""
Hooklab Request Coordinator

Owns the shared state (event log, response configs, rules, subscribers)
and runs the per-webhook flow:

    store event -> broadcast -> evaluate rules -> fall back to response config

All components share one re-entrant lock. Each operation is atomic on its
own; the webhook flow as a whole is not, so a concurrent rule or config
update may be observed half way through another request.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Dict, Optional

from .evaluator import ExpressionEngine, RequestContext, RuleEvaluator
from .events import DEFAULT_MAX_EVENTS, Event, EventLog
from .hub import SubscriberHub
from .responses import DEFAULT_KEY, ResponseConfig, ResponseConfigStore
from .rules import Rule, RuleStore

logger = logging.getLogger(__name__)


@dataclass
class WebhookOutcome:
    """Result of handling one webhook request."""

    config: ResponseConfig
    matched_rule: Optional[Rule] = None
    event: Optional[Event] = None


class RequestCoordinator:
    """
    Explicitly owned application state, created at startup and passed to
    the request handlers.

    Example:
        coordinator = RequestCoordinator()
        coordinator.responses.set('orders', ResponseConfig({'accepted': True}, status_code=202))
        outcome = coordinator.handle_webhook('POST', '/webhook/orders', 'orders', {}, '{}')
        outcome.config.status_code  # 202
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS, engine: Optional[ExpressionEngine] = None):
        """
        Initialize state.

        Args:
            max_events: Number of events kept in the event log
            engine: Expression engine for rule conditions (simpleeval if None)
        """
        self.lock = threading.RLock()
        self.events = EventLog(max_events=max_events, lock=self.lock)
        self.responses = ResponseConfigStore(lock=self.lock)
        self.rules = RuleStore(lock=self.lock)
        self.hub = SubscriberHub(lock=self.lock)
        self.evaluator = RuleEvaluator(engine)

    def record(
        self,
        method: str,
        path: str,
        key: str,
        headers: Optional[Dict[str, List[str]]],
        body: str
    ) -> Event:
        """Store a webhook request and push it to live subscribers."""
        event = self.events.store(method, path, key, headers, body)
        self.hub.broadcast(event)
        return event

    def decide(
        self,
        key: str,
        body: str,
        method: str,
        headers: Optional[Dict[str, List[str]]] = None
    ) -> WebhookOutcome:
        """
        Choose the response for a webhook request.

        The rule list is snapshotted under the lock; conditions run outside it.

        Returns:
            WebhookOutcome (event is filled in by handle_webhook)
        """
        context = RequestContext.from_raw(body, method, headers)
        rule = self.evaluator.find_match(self.rules.list(key), context)
        if rule is not None:
            config = ResponseConfig(response=rule.response, status_code=rule.status_code)
        else:
            config = self.responses.get(key)
        return WebhookOutcome(config=config, matched_rule=rule)

    def handle_webhook(
        self,
        method: str,
        path: str,
        key: str,
        headers: Optional[Dict[str, List[str]]],
        body: str
    ) -> WebhookOutcome:
        """
        Full webhook flow: record, then decide.

        Args:
            method: HTTP method
            path: Request path
            key: Webhook key
            headers: Request headers (name -> values)
            body: Raw request body

        Returns:
            WebhookOutcome with the stored event and the chosen response
        """
        event = self.record(method, path, key, headers, body)
        outcome = self.decide(key, body, method, headers)
        outcome.event = event

        if outcome.matched_rule:
            logger.debug(f"Event {event.id} [{key}] matched {outcome.matched_rule.id}")
        else:
            logger.debug(f"Event {event.id} [{key}] served configured response")
        return outcome

    def get_keys(self) -> List[str]:
        """
        All known webhook keys, sorted.

        Union of keys seen in events, response configs and rules; "default"
        is always included.
        """
        with self.lock:
            keys = self.events.keys() | self.responses.keys() | self.rules.all_keys()
        keys.add(DEFAULT_KEY)
        return sorted(keys)

    def shutdown(self):
        """Release every streaming connection."""
        self.hub.close_all()
