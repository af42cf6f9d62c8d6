"""
Hooklab Rule Evaluator

First-match-wins evaluation of conditional rules against a webhook request.

Condition evaluation is a pluggable capability (``ExpressionEngine``). The
default engine uses simpleeval for safe expression evaluation without
arbitrary code execution. Conditions see three names:

- body: parsed JSON body, the raw string when it is not JSON, None when empty
- method: HTTP method
- headers: header name -> list of values

Example conditions:
    body.amount > 100
    method == "POST" and body.type == "payment"
    "Authorization" in headers
    body.type == "refund" || body.amount >= 1000
"""

import ast
import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Dict, Any, Optional, Protocol

from simpleeval import (
    DISALLOW_METHODS,
    DISALLOW_PREFIXES,
    AttributeDoesNotExist,
    EvalWithCompoundTypes,
    FeatureNotAvailable,
)

from .errors import ConditionError
from .responses import ResponseConfig
from .rules import Rule

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Request data exposed to rule conditions."""

    body: Any = None
    method: str = ""
    headers: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, body: str, method: str, headers: Optional[Dict[str, List[str]]] = None) -> 'RequestContext':
        """
        Build context from a raw request body.

        Malformed JSON is not an error: the body is kept as its raw string.
        """
        parsed: Any = None
        if body:
            try:
                parsed = json.loads(body)
            except ValueError:
                parsed = body
        return cls(body=parsed, method=method, headers=dict(headers or {}))

    def names(self) -> Dict[str, Any]:
        """Names visible to a condition."""
        return {'body': self.body, 'method': self.method, 'headers': self.headers}


@dataclass(frozen=True)
class CompiledCondition:
    """A parsed condition, ready to run."""

    source: str
    tree: Any


class ExpressionEngine(Protocol):
    """Capability that turns condition text into a boolean decision."""

    def compile(self, text: str) -> CompiledCondition:
        """Parse condition text. Raises ConditionError on invalid syntax."""
        ...

    def run(self, compiled: CompiledCondition, context: RequestContext) -> bool:
        """Evaluate a compiled condition. Raises ConditionError on failure."""
        ...


# String literals are matched first so operators inside them are left alone
_OPERATOR_PATTERN = re.compile(r'''("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')|&&|\|\|''')


def _translate_operators(text: str) -> str:
    """Rewrite && and || as Python's and/or, outside string literals."""
    def replacer(match):
        if match.group(1) is not None:
            return match.group(1)
        return ' and ' if match.group(0) == '&&' else ' or '

    return _OPERATOR_PATTERN.sub(replacer, text)


@lru_cache(maxsize=512)
def _parse(text: str) -> tuple:
    """Top-level statements of a condition, after operator translation."""
    return tuple(ast.parse(_translate_operators(text).strip()).body)


class _ConditionEval(EvalWithCompoundTypes):
    """simpleeval evaluator where ``obj.field`` on a JSON object reads the key."""

    def _eval_attribute(self, node):
        value = self._eval(node.value)
        if isinstance(value, dict):
            if node.attr in value:
                return value[node.attr]
            raise AttributeDoesNotExist(node.attr, self.expr)

        for prefix in DISALLOW_PREFIXES:
            if node.attr.startswith(prefix):
                raise FeatureNotAvailable(f"Access to '{node.attr}' is not allowed")
        if node.attr in DISALLOW_METHODS:
            raise FeatureNotAvailable(f"Method '{node.attr}' is not allowed")

        try:
            return getattr(value, node.attr)
        except AttributeError:
            raise AttributeDoesNotExist(node.attr, self.expr)


class SimpleEvalEngine:
    """
    Expression engine backed by simpleeval.

    Supports comparisons, boolean logic (and/or/not, && and ||), membership
    tests, arithmetic, subscripts and a small whitelist of functions.
    """

    # Safe functions whitelist - only these functions are allowed in conditions
    SAFE_FUNCTIONS = {
        'len': len,
        'lower': lambda s: s.lower() if isinstance(s, str) else s,
        'upper': lambda s: s.upper() if isinstance(s, str) else s,
        'int': int,
        'float': float,
        'str': str,
        'contains': lambda haystack, needle: needle in haystack,
        'startswith': lambda s, prefix: isinstance(s, str) and s.startswith(prefix),
        'endswith': lambda s, suffix: isinstance(s, str) and s.endswith(suffix),
    }

    CONSTANTS = {
        'true': True,
        'false': False,
        'nil': None,
        'null': None,
    }

    def compile(self, text: str) -> CompiledCondition:
        """
        Parse a condition.

        Raises:
            ConditionError: If the condition is empty or not valid syntax
        """
        if not text or not text.strip():
            raise ConditionError(text, "Condition is empty")
        try:
            statements = _parse(text)
        except SyntaxError as e:
            raise ConditionError(text, f"Syntax error: {e.msg}") from e
        except Exception as e:
            raise ConditionError(text, str(e)) from e
        if len(statements) != 1 or not isinstance(statements[0], ast.Expr):
            raise ConditionError(text, "Condition must be a single expression")
        return CompiledCondition(source=text, tree=statements[0])

    def run(self, compiled: CompiledCondition, context: RequestContext) -> bool:
        """
        Evaluate a compiled condition.

        Returns:
            True only if the condition evaluates to boolean True

        Raises:
            ConditionError: If evaluation fails (missing field, type error, ...)
        """
        evaluator = _ConditionEval(
            names={**self.CONSTANTS, **context.names()},
            functions=self.SAFE_FUNCTIONS
        )
        try:
            result = evaluator.eval(compiled.source, previously_parsed=compiled.tree)
        except Exception as e:
            raise ConditionError(compiled.source, f"{type(e).__name__}: {e}") from e
        return result is True


class RuleEvaluator:
    """
    Finds the first enabled rule whose condition holds for a request.

    Rules are expected in evaluation order (ascending priority, as returned
    by RuleStore.list). Disabled rules are skipped without evaluating their
    condition. Conditions that fail to compile or raise while running are
    treated as non-matches; evaluation never raises to the caller.

    Example:
        evaluator = RuleEvaluator()
        context = RequestContext.from_raw('{"amount": 150}', 'POST')
        config = evaluator.evaluate(store.list('payments'), context)
        if config is None:
            config = responses.get('payments')
    """

    def __init__(self, engine: Optional[ExpressionEngine] = None):
        self.engine = engine or SimpleEvalEngine()

    def validate(self, condition: str):
        """
        Check condition syntax.

        Raises:
            ConditionError: If the condition does not compile
        """
        self.engine.compile(condition)

    def find_match(self, rules: List[Rule], context: RequestContext) -> Optional[Rule]:
        """
        Return the first matching rule, or None.

        Args:
            rules: Rules in evaluation order
            context: Request context

        Returns:
            The winning Rule, or None if no enabled rule matches
        """
        for rule in rules:
            if not rule.enabled:
                continue

            try:
                compiled = self.engine.compile(rule.condition)
                matched = self.engine.run(compiled, context)
            except ConditionError as e:
                logger.debug(f"Rule {rule.id} ({rule.name!r}) skipped: {e.message}")
                continue

            if matched:
                return rule

        return None

    def evaluate(self, rules: List[Rule], context: RequestContext) -> Optional[ResponseConfig]:
        """
        Response of the first matching rule.

        Returns:
            ResponseConfig of the winning rule, or None for "no match"
        """
        rule = self.find_match(rules, context)
        if rule is None:
            return None
        return ResponseConfig(response=rule.response, status_code=rule.status_code)
