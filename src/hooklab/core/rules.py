"""
Hooklab Rule Store

Per-key conditional response rules.

Rules for a key are kept in insertion order; the priority order is a view
computed at read time. Sorting is stable, so rules with equal priority keep
their insertion order (creation order, or list order after ``replace``).
"""

import threading
import dataclasses
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Set


@dataclass
class Rule:
    """A named, prioritized, enable-able condition/response pair."""

    id: str = ""
    name: str = ""
    condition: str = ""  # e.g. 'body.amount > 100'
    response: Any = None
    status_code: int = 0
    priority: int = 0  # Lower = evaluated first
    enabled: bool = False

    # JSON field name -> (attribute, accepted types)
    _FIELDS = {
        'id': ('id', (str,)),
        'name': ('name', (str,)),
        'condition': ('condition', (str,)),
        'statusCode': ('status_code', (int, float)),
        'priority': ('priority', (int, float)),
        'enabled': ('enabled', (bool,)),
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Rule':
        """
        Create Rule from its JSON representation.

        Omitted fields take zero values. ``response`` may be any JSON value.

        Raises:
            ValueError: If data is not an object or a field has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError(f"Rule must be a JSON object, got {type(data).__name__}")

        values: Dict[str, Any] = {'response': data.get('response')}
        for json_name, (attr, types) in cls._FIELDS.items():
            if json_name not in data or data[json_name] is None:
                continue
            value = data[json_name]
            # bool is an int subclass; only 'enabled' accepts it
            if not isinstance(value, types) or (isinstance(value, bool) and bool not in types):
                raise ValueError(f"Field '{json_name}' has invalid type {type(value).__name__}")
            if isinstance(value, float):
                if not value.is_integer():
                    raise ValueError(f"Field '{json_name}' must be an integer")
                value = int(value)
            values[attr] = value

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'id': self.id,
            'name': self.name,
            'condition': self.condition,
            'response': self.response,
            'statusCode': self.status_code,
            'priority': self.priority,
            'enabled': self.enabled
        }


class RuleStore:
    """
    Rule sets keyed by webhook key.

    IDs are ``rule_<n>`` from a process-wide counter; they are never reused,
    even after deletion, and survive updates.

    Example:
        store = RuleStore()
        rule = store.add('payments', Rule(name='Big', condition='body.amount > 100',
                                          response={'tier': 'big'}, status_code=200,
                                          enabled=True))
        store.update('payments', rule.id, Rule(name='Bigger', condition='body.amount > 500'))
        store.delete('payments', rule.id)
    """

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._lock = lock or threading.RLock()
        self._rules: Dict[str, List[Rule]] = {}
        self._last_id = 0

    def list(self, key: str) -> List[Rule]:
        """
        Rules for a key, sorted by ascending priority.

        Returns copies; an unknown key yields an empty list.
        """
        with self._lock:
            rules = [dataclasses.replace(rule) for rule in self._rules.get(key, [])]
        return sorted(rules, key=lambda rule: rule.priority)

    def replace(self, key: str, rules: List[Rule]):
        """Replace the whole rule set for a key (bulk import)."""
        with self._lock:
            self._rules[key] = [dataclasses.replace(rule) for rule in rules]

    def add(self, key: str, rule: Rule) -> Rule:
        """
        Append a rule to a key's set under a freshly assigned ID.

        Args:
            key: Webhook key
            rule: Rule to add (its id is ignored)

        Returns:
            The stored rule, with its ID populated
        """
        with self._lock:
            self._last_id += 1
            stored = dataclasses.replace(rule, id=f"rule_{self._last_id}")
            self._rules.setdefault(key, []).append(stored)
            return dataclasses.replace(stored)

    def update(self, key: str, rule_id: str, rule: Rule) -> bool:
        """
        Replace every field of a rule except its ID.

        Returns:
            True if the rule was found and updated, False otherwise
        """
        with self._lock:
            rules = self._rules.get(key, [])
            for index, existing in enumerate(rules):
                if existing.id == rule_id:
                    rules[index] = dataclasses.replace(rule, id=rule_id)
                    return True
        return False

    def delete(self, key: str, rule_id: str) -> bool:
        """
        Remove a rule by ID.

        Returns:
            True if the rule was found and removed, False otherwise
        """
        with self._lock:
            rules = self._rules.get(key, [])
            for index, existing in enumerate(rules):
                if existing.id == rule_id:
                    del rules[index]
                    return True
        return False

    def all_keys(self) -> Set[str]:
        """Keys that have (or had) a rule set."""
        with self._lock:
            return set(self._rules)
