"""
Tests for Hooklab Event Log

Tests the bounded in-memory event log including:
- Event storage and ID assignment
- Eviction of the oldest events
- Most-recent-first ordering and key filtering
- Snapshot semantics
"""

import pytest

from hooklab.core import Event, EventLog, DEFAULT_MAX_EVENTS


@pytest.fixture
def log():
    """Empty event log with the default capacity."""
    return EventLog()


class TestEventStorage:
    """Test storing events."""

    def test_store_returns_event(self, log):
        """Test that store returns the created event."""
        event = log.store('POST', '/webhook/orders', 'orders',
                          {'Content-Type': ['application/json']}, '{"id": 1}')

        assert isinstance(event, Event)
        assert event.id == 1
        assert event.method == 'POST'
        assert event.path == '/webhook/orders'
        assert event.key == 'orders'
        assert event.headers == {'Content-Type': ['application/json']}
        assert event.body == '{"id": 1}'
        assert event.timestamp.tzinfo is not None

    def test_ids_are_sequential(self, log):
        """Test that IDs increase with each stored event."""
        ids = [log.store('GET', '/webhook', 'default', {}, '').id for _ in range(3)]

        assert ids == [1, 2, 3]

    def test_headers_are_copied(self, log):
        """Test that later changes to the caller's headers do not leak into the event."""
        headers = {'X-Token': ['a']}
        event = log.store('POST', '/webhook', 'default', headers, '')

        headers['X-Token'].append('b')
        headers['X-Other'] = ['c']

        assert event.headers == {'X-Token': ['a']}

    def test_none_headers(self, log):
        """Test storing without headers."""
        event = log.store('GET', '/webhook', 'default', None, '')

        assert event.headers == {}

    def test_to_dict(self, log):
        """Test converting an event to its JSON form."""
        event = log.store('PUT', '/webhook/a', 'a', {'Accept': ['*/*']}, 'raw')

        data = event.to_dict()

        assert data['id'] == 1
        assert data['method'] == 'PUT'
        assert data['key'] == 'a'
        assert data['headers'] == {'Accept': ['*/*']}
        assert data['body'] == 'raw'
        assert isinstance(data['timestamp'], str)


class TestEventEviction:
    """Test the capacity limit."""

    def test_default_capacity(self, log):
        """Test the default maximum number of events."""
        assert log.max_events == DEFAULT_MAX_EVENTS == 50

    def test_keeps_most_recent_fifty(self, log):
        """Test that 60 stores keep the 50 most recent events."""
        for i in range(60):
            log.store('POST', '/webhook', 'default', {}, str(i))

        events = log.list()

        assert len(events) == 50
        assert len(log) == 50
        assert events[0].body == '59'
        assert events[-1].body == '10'
        assert [e.id for e in events] == list(range(60, 10, -1))

    def test_custom_capacity(self):
        """Test a log with a smaller capacity."""
        log = EventLog(max_events=2)

        for i in range(5):
            log.store('POST', '/webhook', 'default', {}, str(i))

        assert [e.body for e in log.list()] == ['4', '3']


class TestEventListing:
    """Test listing and filtering events."""

    def test_most_recent_first(self, log):
        """Test ordering of listed events."""
        log.store('POST', '/webhook/a', 'a', {}, 'first')
        log.store('POST', '/webhook/a', 'a', {}, 'second')

        assert [e.body for e in log.list()] == ['second', 'first']

    def test_filter_by_key(self, log):
        """Test filtering by webhook key."""
        log.store('POST', '/webhook/a', 'a', {}, '1')
        log.store('POST', '/webhook/b', 'b', {}, '2')
        log.store('POST', '/webhook/a', 'a', {}, '3')

        assert [e.body for e in log.list('a')] == ['3', '1']
        assert [e.body for e in log.list('b')] == ['2']
        assert log.list('missing') == []

    def test_empty_key_lists_all(self, log):
        """Test that an empty key means no filter."""
        log.store('POST', '/webhook/a', 'a', {}, '1')
        log.store('POST', '/webhook/b', 'b', {}, '2')

        assert len(log.list('')) == 2
        assert len(log.list(None)) == 2

    def test_list_is_snapshot(self, log):
        """Test that a listed snapshot does not change with later stores."""
        log.store('POST', '/webhook', 'default', {}, '1')
        snapshot = log.list()

        log.store('POST', '/webhook', 'default', {}, '2')

        assert len(snapshot) == 1

    def test_keys(self, log):
        """Test keys of held events."""
        log.store('POST', '/webhook/a', 'a', {}, '')
        log.store('POST', '/webhook/b', 'b', {}, '')

        assert log.keys() == {'a', 'b'}
