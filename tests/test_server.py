"""
Tests for Hooklab Server

Tests the FastAPI-based webhook server including:
- Webhook capture and response selection
- Response configuration API
- Rule CRUD API with condition validation
- Key listing, health and event stream endpoints
"""

import json
import threading
import time

import pytest
from fastapi.testclient import TestClient

from hooklab.server import HooklabServer, ServerConfig, create_server


@pytest.fixture
def server():
    """Server with fast stream timings."""
    config = ServerConfig(heartbeat_interval=0.05, disconnect_poll_interval=0.01)
    return HooklabServer(config=config)


@pytest.fixture
def client(server):
    """Test client for the server's app."""
    return TestClient(server.get_app())


@pytest.fixture
def big_payment_rule():
    """Rule JSON matching payments over 100."""
    return {
        'name': 'Big payment',
        'condition': 'body.amount > 100',
        'response': {'tier': 'big'},
        'statusCode': 201,
        'priority': 1,
        'enabled': True
    }


class TestServerSetup:
    """Test HooklabServer construction."""

    def test_default_response_seeded(self, server):
        """Test that the configured default response is installed."""
        config = server.coordinator.responses.get('default')

        assert config.response == {'result': 'ok'}
        assert config.status_code == 200
        assert json.loads(config.response_raw) == {'result': 'ok'}

    def test_custom_default_response(self):
        """Test a custom default response and status."""
        server = create_server(default_response={'received': True}, default_status_code=202)
        client = TestClient(server.get_app())

        response = client.post('/webhook/anything', json={})

        assert response.status_code == 202
        assert response.json() == {'received': True}

    def test_max_events_from_config(self):
        """Test that the event log capacity follows the config."""
        server = HooklabServer(config=ServerConfig(max_events=3))

        assert server.coordinator.events.max_events == 3


class TestWebhookEndpoint:
    """Test webhook capture."""

    def test_default_response(self, client):
        """Test the default response for an unconfigured key."""
        response = client.post('/webhook/orders', json={'id': 1})

        assert response.status_code == 200
        assert response.json() == {'result': 'ok'}
        assert response.headers['X-Hooklab-Event-Id'] == '1'
        assert 'X-Hooklab-Rule' not in response.headers

    @pytest.mark.parametrize('method', ['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
    def test_any_method(self, client, method):
        """Test that every common method is captured."""
        response = client.request(method, '/webhook/any')

        assert response.status_code == 200
        events = client.get('/api/events').json()['events']
        assert events[0]['method'] == method

    def test_key_from_path(self, client, server):
        """Test key extraction, including nested keys and the bare route."""
        client.post('/webhook/github/push', content='a')
        client.post('/webhook', content='b')

        [nested] = server.coordinator.events.list('github/push')
        [bare] = server.coordinator.events.list('default')
        assert nested.path == '/webhook/github/push'
        assert nested.body == 'a'
        assert bare.body == 'b'

    def test_headers_canonicalised(self, client, server):
        """Test that header names are stored in canonical form."""
        client.post('/webhook/h', content='', headers={'x-request-id': 'abc'})

        [event] = server.coordinator.events.list('h')
        assert event.headers['X-Request-Id'] == ['abc']

    def test_body_truncated(self):
        """Test that oversized bodies are cut at the limit."""
        server = HooklabServer(config=ServerConfig(max_body_size=10))
        client = TestClient(server.get_app())

        response = client.post('/webhook/big', content=b'x' * 100)

        assert response.status_code == 200
        [event] = server.coordinator.events.list('big')
        assert event.body == 'x' * 10

    def test_rule_match(self, client, big_payment_rule):
        """Test that a matching rule picks the response."""
        created = client.post('/api/rules?key=payments', json=big_payment_rule).json()

        big = client.post('/webhook/payments', json={'amount': 150})
        small = client.post('/webhook/payments', json={'amount': 50})

        assert big.status_code == 201
        assert big.json() == {'tier': 'big'}
        assert big.headers['X-Hooklab-Rule'] == created['id']
        assert small.status_code == 200
        assert small.json() == {'result': 'ok'}

    def test_rule_status_zero_served_as_200(self, client):
        """Test that a rule without a status code answers 200."""
        client.post('/api/rules?key=z', json={'condition': 'true', 'response': 'hi', 'enabled': True})

        response = client.post('/webhook/z')

        assert response.status_code == 200
        assert response.json() == 'hi'

    def test_header_rule(self, client):
        """Test a rule that checks for a header."""
        client.post('/api/rules?key=signed', json={
            'condition': '"X-Signature" in headers',
            'response': {'verified': True},
            'enabled': True
        })

        signed = client.post('/webhook/signed', headers={'x-signature': 'sha256=1'})
        unsigned = client.post('/webhook/signed')

        assert signed.json() == {'verified': True}
        assert unsigned.json() == {'result': 'ok'}


class TestEventsEndpoint:
    """Test listing captured events."""

    def test_list_events(self, client):
        """Test most-recent-first listing."""
        client.post('/webhook/a', content='1')
        client.post('/webhook/b', content='2')

        events = client.get('/api/events').json()['events']

        assert [e['body'] for e in events] == ['2', '1']

    def test_filter_by_key(self, client):
        """Test the key filter."""
        client.post('/webhook/a', content='1')
        client.post('/webhook/b', content='2')

        events = client.get('/api/events?key=a').json()['events']

        assert [e['key'] for e in events] == ['a']

    def test_empty(self, client):
        """Test listing before any webhook arrives."""
        assert client.get('/api/events').json() == {'events': []}


class TestResponseEndpoint:
    """Test response configuration API."""

    def test_get_default(self, client):
        """Test reading the default configuration."""
        data = client.get('/api/response').json()

        assert data == {'response': {'result': 'ok'}, 'statusCode': 200, 'key': 'default'}

    def test_set_and_serve(self, client):
        """Test configuring a key and serving it."""
        response = client.post('/api/response/orders',
                               json={'response': {'accepted': True}, 'statusCode': 202})

        assert response.json() == {'status': 'ok'}
        webhook = client.post('/webhook/orders', json={})
        assert webhook.status_code == 202
        assert webhook.json() == {'accepted': True}

        data = client.get('/api/response/orders').json()
        assert data == {'response': {'accepted': True}, 'statusCode': 202, 'key': 'orders'}

    def test_query_key_wins(self, client, server):
        """Test that the key query parameter overrides the path key."""
        client.post('/api/response/path?key=query', json={'response': 'q', 'statusCode': 200})

        assert server.coordinator.responses.keys() >= {'query'}
        assert 'path' not in server.coordinator.responses.keys()
        assert client.get('/api/response?key=query').json()['response'] == 'q'

    def test_missing_status_keeps_effective_status(self, client):
        """Test that omitting statusCode keeps the key's current status."""
        client.post('/api/response', json={'response': 'd', 'statusCode': 201})

        client.post('/api/response/x', json={'response': {'a': 1}})

        data = client.get('/api/response/x').json()
        assert data['statusCode'] == 201
        assert data['response'] == {'a': 1}

    def test_non_numeric_status_ignored(self, client):
        """Test that a non-numeric statusCode is treated as missing."""
        client.post('/api/response/y', json={'response': 1, 'statusCode': 'abc'})

        assert client.get('/api/response/y').json()['statusCode'] == 200

    def test_raw_body_kept(self, client, server):
        """Test that the raw request text is stored."""
        raw = '{"response": {"b": 2}, "statusCode": 200}'
        client.post('/api/response/raw', content=raw)

        assert server.coordinator.responses.get('raw').response_raw == raw

    @pytest.mark.parametrize('body', ['{not json', '[1, 2]', ''])
    def test_invalid_json(self, client, body):
        """Test that invalid payloads are rejected."""
        response = client.post('/api/response/bad', content=body)

        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid JSON'}

    @pytest.mark.parametrize('constant', ['NaN', 'Infinity', '-Infinity'])
    def test_non_finite_response_rejected(self, client, constant):
        """Test that a response which cannot be served as JSON is refused."""
        body = f'{{"response": {constant}, "statusCode": 200}}'

        response = client.post('/api/response/k', content=body)

        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid JSON'}
        webhook = client.post('/webhook/k')
        assert webhook.status_code == 200
        assert webhook.json() == {'result': 'ok'}

    def test_non_finite_default_rejected(self, client):
        """Test that unconfigured keys keep working after a bad default update."""
        client.post('/api/response', content='{"response": [1, NaN]}')

        assert client.post('/webhook/other').status_code == 200
        assert client.get('/api/response').json()['response'] == {'result': 'ok'}


class TestRulesEndpoint:
    """Test rule CRUD API."""

    def test_create(self, client, big_payment_rule):
        """Test creating a rule."""
        response = client.post('/api/rules?key=payments', json=big_payment_rule)

        assert response.status_code == 201
        data = response.json()
        assert data['id'] == 'rule_1'
        assert data['name'] == 'Big payment'
        assert data['statusCode'] == 201

    def test_list_sorted(self, client):
        """Test listing rules by priority."""
        client.post('/api/rules?key=k', json={'name': 'late', 'priority': 10})
        client.post('/api/rules?key=k', json={'name': 'early', 'priority': 1})

        data = client.get('/api/rules?key=k').json()

        assert data['key'] == 'k'
        assert [r['name'] for r in data['rules']] == ['early', 'late']

    def test_default_key(self, client):
        """Test that rules without a key go to default."""
        client.post('/api/rules', json={'name': 'x'})

        assert client.get('/api/rules').json()['key'] == 'default'
        assert len(client.get('/api/rules?key=default').json()['rules']) == 1

    def test_invalid_expression(self, client):
        """Test that a condition with bad syntax is rejected."""
        response = client.post('/api/rules?key=k', json={'condition': 'body.amount >'})

        assert response.status_code == 400
        assert response.json()['error'].startswith('Invalid expression: ')
        assert client.get('/api/rules?key=k').json()['rules'] == []

    def test_empty_condition_accepted(self, client):
        """Test that a rule without a condition can be stored."""
        response = client.post('/api/rules?key=k', json={'name': 'placeholder'})

        assert response.status_code == 201

    @pytest.mark.parametrize('body', ['{bad', '[1]', '{"priority": "high"}'])
    def test_invalid_json(self, client, body):
        """Test malformed rule payloads."""
        response = client.post('/api/rules?key=k', content=body)

        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid JSON'}

    @pytest.mark.parametrize('constant', ['NaN', 'Infinity', '-Infinity'])
    def test_non_finite_response_rejected(self, client, constant):
        """Test that a rule response which cannot be served as JSON is refused."""
        body = f'{{"condition": "true", "response": {constant}, "enabled": true}}'

        response = client.post('/api/rules?key=k', content=body)

        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid JSON'}
        assert client.get('/api/rules?key=k').json()['rules'] == []
        assert client.post('/webhook/k').status_code == 200

    def test_multiple_statements_rejected(self, client):
        """Test that trailing statements after a condition are refused."""
        response = client.post('/api/rules?key=k',
                               json={'condition': 'true; import os', 'enabled': True})

        assert response.status_code == 400
        assert response.json()['error'] == 'Invalid expression: Condition must be a single expression'

    def test_update(self, client, big_payment_rule):
        """Test updating a rule keeps its ID."""
        rule_id = client.post('/api/rules?key=p', json=big_payment_rule).json()['id']

        response = client.put(f'/api/rules?key=p&id={rule_id}',
                              json={**big_payment_rule, 'name': 'Renamed'})

        assert response.status_code == 200
        assert response.json() == {'status': 'ok'}
        [stored] = client.get('/api/rules?key=p').json()['rules']
        assert stored['id'] == rule_id
        assert stored['name'] == 'Renamed'

    def test_update_requires_id(self, client):
        """Test that update without an ID is a bad request."""
        response = client.put('/api/rules?key=p', json={})

        assert response.status_code == 400
        assert response.json() == {'error': 'Rule ID required'}

    def test_update_not_found(self, client):
        """Test updating an unknown rule."""
        response = client.put('/api/rules?key=p&id=rule_9', json={'name': 'x'})

        assert response.status_code == 404
        assert response.json() == {'error': 'Rule not found'}

    def test_update_invalid_expression(self, client, big_payment_rule):
        """Test that update validates the condition."""
        rule_id = client.post('/api/rules?key=p', json=big_payment_rule).json()['id']

        response = client.put(f'/api/rules?key=p&id={rule_id}', json={'condition': '(('})

        assert response.status_code == 400
        stored = client.get('/api/rules?key=p').json()['rules'][0]
        assert stored['condition'] == 'body.amount > 100'

    def test_delete(self, client, big_payment_rule):
        """Test deleting a rule."""
        rule_id = client.post('/api/rules?key=p', json=big_payment_rule).json()['id']

        response = client.delete(f'/api/rules?key=p&id={rule_id}')

        assert response.json() == {'status': 'ok'}
        assert client.get('/api/rules?key=p').json()['rules'] == []

    def test_delete_requires_id(self, client):
        """Test that delete without an ID is a bad request."""
        assert client.delete('/api/rules?key=p').status_code == 400

    def test_delete_not_found(self, client):
        """Test deleting an unknown rule."""
        assert client.delete('/api/rules?key=p&id=rule_1').status_code == 404


class TestKeysAndHealth:
    """Test key listing and health endpoints."""

    def test_fresh_keys(self, client):
        """Test keys on a fresh server."""
        assert client.get('/api/keys').json() == {'keys': ['default']}

    def test_keys_union(self, client):
        """Test keys from responses, events and rules."""
        client.post('/api/response/alpha', json={'response': 1})
        client.post('/webhook/beta')
        client.post('/api/rules?key=gamma', json={})

        assert client.get('/api/keys').json() == {'keys': ['alpha', 'beta', 'default', 'gamma']}

    def test_health(self, client):
        """Test the liveness check."""
        client.post('/webhook')

        data = client.get('/api/health').json()

        assert data == {'status': 'ok', 'events': 1, 'subscribers': 0}

    def test_method_not_allowed(self, client):
        """Test that API routes reject unsupported methods."""
        assert client.delete('/api/keys').status_code == 405


class TestStreamEndpoint:
    """Test the Server-Sent Events endpoint."""

    def test_stream_delivers_event(self, client, server):
        """Test that a webhook captured while streaming is sent as a data frame."""
        coordinator = server.coordinator

        def produce():
            deadline = time.monotonic() + 5
            while coordinator.hub.subscriber_count == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
            coordinator.handle_webhook('POST', '/webhook/live', 'live', {}, '{"n": 1}')
            coordinator.shutdown()

        producer = threading.Thread(target=produce)
        producer.start()
        response = client.get('/api/stream')
        producer.join(timeout=5)

        assert response.status_code == 200
        assert response.headers['content-type'].startswith('text/event-stream')
        assert response.headers['cache-control'] == 'no-cache'
        assert response.headers['x-accel-buffering'] == 'no'

        frames = [f for f in response.text.split('\n\n') if f.startswith('data: ')]
        assert len(frames) == 1
        data = json.loads(frames[0][len('data: '):])
        assert data['key'] == 'live'
        assert data['body'] == '{"n": 1}'
        assert coordinator.hub.subscriber_count == 0

    def test_lifespan_shutdown_closes_subscribers(self, server):
        """Test that app shutdown releases streaming subscribers."""
        with TestClient(server.get_app()):
            subscriber = server.coordinator.hub.subscribe()

        assert subscriber.closed is True
