"""Integration tests for the HTTP layer, driven through FastAPI's TestClient

Test coverage includes:

1. Creation
   - 201 with id and retrieval URL; 400 with a reason for malformed input.

2. API fetch (consumes a view)
   - remaining_views counts down; exhaustion, expiry and unknown ids all 404 alike.
   - expires_at rendered as an ISO 8601 UTC timestamp.

3. HTML view (does not consume a view)
   - Content is escaped; viewing never charges a view.

4. Test-mode clock override, storage failures and health check
"""

import inspect
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pastestore.clock import MAX_INSTANT_MS
from pastestore.config import Settings
from pastestore.database import InMemoryPasteStore, PasteStore
from pastestore.exceptions import StorageFailure
from pastestore.main import create_app
from pastestore.routes import health, pastes

NOT_FOUND = {'error': 'paste not found or unavailable'}


def _create(client, now=None, **body):
    headers = {'x-test-now-ms': str(now)} if now is not None else {}
    response = client.post('/api/pastes', json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()['id']


def _fetch(client, paste_id, now):
    return client.get(f'/api/pastes/{paste_id}', headers={'x-test-now-ms': str(now)})


# -------------------------------
# 1. Creation
# -------------------------------


def test_create_paste(client, store):
    """Ensure creation returns the id and a URL rooted at APP_DOMAIN."""
    response = client.post('/api/pastes', json={'content': 'hello', 'ttl_seconds': 60, 'max_views': 2})

    assert response.status_code == 201
    body = response.json()
    assert body['url'] == f"https://paste.test/p/{body['id']}"
    assert store.peek(body['id'], 0).content == 'hello'


def test_create_uses_override_for_expiry_and_wall_clock_for_created_at(client, store):
    """Ensure the test clock drives expiry while created_at records real time."""
    paste_id = _create(client, now=1000, content='hello', ttl_seconds=60)

    record = store._load(paste_id)
    assert record.expires_at == 61000
    assert record.created_at > 1_600_000_000_000


@pytest.mark.parametrize(
    'body, reason',
    [
        ({'content': ''}, 'content'),
        ({'content': '   '}, 'content'),
        ({}, 'content'),
        ({'content': 123}, 'content'),
        ({'content': 'x', 'ttl_seconds': 0}, 'ttl_seconds'),
        ({'content': 'x', 'ttl_seconds': 'soon'}, 'ttl_seconds'),
        ({'content': 'x', 'ttl_seconds': 1.5}, 'ttl_seconds'),
        ({'content': 'x', 'max_views': -1}, 'max_views'),
    ],
)
def test_create_rejects_invalid_input(client, store, body, reason):
    """Ensure malformed input is a 400 naming the field, with nothing stored."""
    response = client.post('/api/pastes', json=body)

    assert response.status_code == 400
    assert reason in response.json()['error']
    assert store._records == {}


def test_create_rejects_ttl_beyond_year_9999(client, store):
    """Ensure an unrenderable expiry is refused at creation instead of failing every fetch."""
    response = client.post(
        '/api/pastes',
        json={'content': 'x', 'ttl_seconds': 10**12, 'max_views': 2},
        headers={'x-test-now-ms': '0'},
    )

    assert response.status_code == 400
    assert 'ttl_seconds' in response.json()['error']
    assert store._records == {}


def test_fetch_latest_renderable_expiry(client):
    """Ensure the largest accepted TTL renders and charges exactly one view."""
    paste_id = _create(client, now=MAX_INSTANT_MS - 1000, content='x', ttl_seconds=1, max_views=2)

    response = _fetch(client, paste_id, 0)

    assert response.status_code == 200
    assert response.json() == {'content': 'x', 'remaining_views': 1, 'expires_at': '9999-12-31T23:59:59.999Z'}


def test_create_rejects_non_json_body(client):
    response = client.post('/api/pastes', content='not json', headers={'content-type': 'application/json'})

    assert response.status_code == 400
    assert 'error' in response.json()


# -------------------------------
# 2. API fetch
# -------------------------------


def test_fetch_worked_example(client):
    """Ensure a TTL plus view-limited paste counts down and then disappears."""
    paste_id = _create(client, now=1000, content='hello', ttl_seconds=60, max_views=2)

    first = _fetch(client, paste_id, 31000)
    second = _fetch(client, paste_id, 41000)
    third = _fetch(client, paste_id, 51000)

    assert first.status_code == 200
    assert first.json() == {'content': 'hello', 'remaining_views': 1, 'expires_at': '1970-01-01T00:01:01.000Z'}
    assert second.json() == {'content': 'hello', 'remaining_views': 0, 'expires_at': '1970-01-01T00:01:01.000Z'}
    assert third.status_code == 404
    assert third.json() == NOT_FOUND


def test_fetch_ttl_boundary(client):
    paste_id = _create(client, now=1000, content='hello', ttl_seconds=60)

    assert _fetch(client, paste_id, 60999).status_code == 200
    assert _fetch(client, paste_id, 61000).status_code == 404


def test_fetch_unlimited_paste(client):
    """Ensure unlimited pastes report null metadata and never run out."""
    paste_id = _create(client, content='forever')

    for _ in range(5):
        response = client.get(f'/api/pastes/{paste_id}')
        assert response.json() == {'content': 'forever', 'remaining_views': None, 'expires_at': None}


def test_unavailable_responses_are_identical(client):
    """Ensure unknown, expired and exhausted pastes are indistinguishable."""
    expired = _create(client, now=0, content='old', ttl_seconds=1)
    exhausted = _create(client, now=0, content='gone', max_views=1)
    _fetch(client, exhausted, 0)

    responses = [_fetch(client, paste_id, 5000) for paste_id in ('doesnotexist', expired, exhausted)]

    assert {r.status_code for r in responses} == {404}
    assert all(r.json() == NOT_FOUND for r in responses)


# -------------------------------
# 3. HTML view
# -------------------------------


def test_view_escapes_content(client):
    paste_id = _create(client, content='<script>alert("x")</script> & co')

    response = client.get(f'/p/{paste_id}')

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/html')
    assert '&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt; &amp; co' in response.text
    assert '<script>' not in response.text


def test_view_does_not_consume(client):
    """Ensure rendering the HTML page never charges a view."""
    paste_id = _create(client, now=0, content='hello', max_views=1)

    for _ in range(3):
        assert client.get(f'/p/{paste_id}', headers={'x-test-now-ms': '0'}).status_code == 200

    assert _fetch(client, paste_id, 0).json()['remaining_views'] == 0
    assert client.get(f'/p/{paste_id}', headers={'x-test-now-ms': '0'}).status_code == 404


def test_view_unknown_paste(client):
    response = client.get('/p/doesnotexist')

    assert response.status_code == 404
    assert '404' in response.text


# -------------------------------
# 4. Clock override, failures, health
# -------------------------------


def test_override_ignored_outside_test_mode(store):
    """Ensure x-test-now-ms cannot expire pastes in production."""
    client = TestClient(create_app(settings=Settings(TEST_MODE=False), store=store))
    paste_id = _create(client, content='hello', ttl_seconds=60)

    assert _fetch(client, paste_id, 10**15).status_code == 200


def test_malformed_override_uses_wall_clock(client):
    paste_id = _create(client, content='hello', ttl_seconds=60)

    assert _fetch(client, paste_id, 'garbage').status_code == 200


def test_storage_failure_is_server_error(settings):
    """Ensure a failing store yields a 500 rather than a fake success."""
    store = MagicMock(spec=PasteStore)
    store.create.side_effect = StorageFailure('Redis operation _insert failed')
    store.consume.side_effect = StorageFailure('Redis operation consume failed')
    client = TestClient(create_app(settings=settings, store=store))

    created = client.post('/api/pastes', json={'content': 'hello'})
    fetched = client.get('/api/pastes/abcDEF1234')

    assert created.status_code == 500
    assert created.json() == {'error': 'storage failure'}
    assert fetched.status_code == 500


def test_healthz(client):
    response = client.get('/api/healthz')

    assert response.status_code == 200
    assert response.json() == {'ok': True}


def test_healthz_unhealthy(settings):
    store = MagicMock(spec=PasteStore)
    store.is_healthy.return_value = False
    client = TestClient(create_app(settings=settings, store=store))

    assert client.get('/api/healthz').json() == {'ok': False}


def test_shutdown_closes_store(settings):
    store = MagicMock(spec=InMemoryPasteStore)
    store.using_fallback = False

    with TestClient(create_app(settings=settings, store=store)):
        pass

    store.close.assert_called_once_with()


@pytest.mark.parametrize(
    'handler',
    [pastes.create_paste, pastes.fetch_paste, pastes.view_paste, health.health_check],
)
def test_store_handlers_run_in_threadpool(handler):
    """Ensure handlers calling the blocking store are plain functions, off the event loop."""
    assert not inspect.iscoroutinefunction(handler)
