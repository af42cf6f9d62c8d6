"""
Hooklab Core Errors

Exceptions raised by the state and decision engine.
"""


class HooklabError(Exception):
    """Base class for all Hooklab errors."""


class ConditionError(HooklabError):
    """A rule condition failed to compile or to run."""

    def __init__(self, condition: str, message: str):
        self.condition = condition
        self.message = message
        super().__init__(message)


class SubscriberClosed(HooklabError):
    """Receive on a subscriber that is closed and has nothing left to deliver."""
