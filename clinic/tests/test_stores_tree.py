"""
Tree backend tests against an in-memory stand-in for the Firebase REST API.

``FakeFirebase`` keeps the database as nested dicts and answers the same
requests the real server does: GET/PUT/PATCH/DELETE on ``<path>.json``,
ETags when ``X-Firebase-ETag`` is asked for, and 412 when an
``if-match`` precondition fails.
"""
import hashlib
import io
import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from clinic.exceptions import MissingField, RecordNotFound, SequenceUnavailable, StoreError
from clinic.records import BEING_EXAMINED, DISPENSED, DONE, PENDING, QUEUE_COUNTER, WAITING
from clinic.services.registration import register_patient
from clinic.stores.firebase import FirebaseTree
from clinic.stores.tree import PUSH_CHARS, build_tree_stores, push_id

BASE_URL = 'https://clinic-test.firebaseio.com'

PATIENT = {
    'full_name': 'Alice Tan',
    'date_of_birth': '1990-04-12',
    'contact_number': '0812-1111-2222',
    'reason_for_visit': 'Fever for two days',
}


def _response(status, body, headers=None):
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode()
    resp.headers.update(headers or {})
    resp.encoding = 'utf-8'
    resp.url = BASE_URL
    resp.reason = 'fake'
    return resp


def _etag(value):
    return hashlib.md5(json.dumps(value, sort_keys=True).encode()).hexdigest()


class FakeFirebase:
    def __init__(self):
        self.data = {}
        self.lock = threading.Lock()
        self.fail_next = None

    def _split(self, url):
        assert url.startswith(BASE_URL) and url.endswith('.json')
        path = url[len(BASE_URL):-len('.json')].strip('/')
        return [p for p in path.split('/') if p]

    def _read(self, keys):
        node = self.data
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node

    def _write(self, keys, value):
        if not keys:
            self.data = value or {}
            return
        node = self.data
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        if value is None:
            node.pop(keys[-1], None)
        else:
            node[keys[-1]] = value

    def request(self, method, url, params=None, json=None, headers=None, timeout=None, **kwargs):
        headers = headers or {}
        if self.fail_next:
            exc, self.fail_next = self.fail_next, None
            raise exc
        keys = self._split(url)
        with self.lock:
            current = self._read(keys)
            if method == 'GET':
                extra = {'ETag': _etag(current)} if headers.get('X-Firebase-ETag') else {}
                return _response(200, current, extra)
            if method == 'PUT':
                if 'if-match' in headers and headers['if-match'] != _etag(current):
                    return _response(412, current, {'ETag': _etag(current)})
                self._write(keys, json)
                return _response(200, json, {'ETag': _etag(json)})
            if method == 'PATCH':
                merged = dict(current or {})
                merged.update(json)
                self._write(keys, merged)
                return _response(200, json)
            if method == 'DELETE':
                self._write(keys, None)
                return _response(200, None)
        raise AssertionError(method)


@pytest.fixture
def fake():
    return FakeFirebase()


@pytest.fixture
def stores(fake, settings):
    settings.FIREBASE_DATABASE_URL = BASE_URL
    settings.FIREBASE_AUTH = ''
    settings.CLINIC_SEQUENCE_MAX_RETRIES = 10
    return build_tree_stores(session=fake)


def test_push_ids_are_sortable_and_unique():
    ids = [push_id() for _ in range(500)]
    assert len(set(ids)) == 500
    assert ids == sorted(ids)
    assert all(len(i) == 20 and set(i) <= set(PUSH_CHARS) for i in ids)


def test_counter_increments_with_compare_and_set(stores, fake):
    assert [stores.issuer.issue_sequence_number(QUEUE_COUNTER) for _ in range(3)] == [1, 2, 3]
    assert fake.data['counters'][QUEUE_COUNTER] == 3


def test_concurrent_counter_calls_get_distinct_values(stores, fake):
    fake.data['counters'] = {QUEUE_COUNTER: 7}
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: stores.issuer.issue_sequence_number(QUEUE_COUNTER), range(8)))
    assert sorted(results) == list(range(8, 16))


def test_counter_gives_up_after_max_retries(stores, fake, monkeypatch):
    original = fake.request
    attempts = []

    def always_contended(method, url, params=None, json=None, headers=None, **kwargs):
        if method == 'PUT' and headers and 'if-match' in headers:
            attempts.append(json)
            return _response(412, 41, {'ETag': 'someone-else'})
        return original(method, url, params=params, json=json, headers=headers, **kwargs)
    monkeypatch.setattr(fake, 'request', always_contended)

    with pytest.raises(SequenceUnavailable):
        stores.issuer.issue_sequence_number(QUEUE_COUNTER)
    assert len(attempts) == 10
    # after the first rejection each attempt builds on the value the server reported
    assert attempts[1:] == [42] * 9


def test_counter_connection_failure(stores, fake):
    fake.fail_next = requests.ConnectionError('offline')
    with pytest.raises(SequenceUnavailable):
        stores.issuer.issue_sequence_number(QUEUE_COUNTER)


def test_http_error_becomes_store_error(fake):
    tree = FirebaseTree(BASE_URL, session=fake)
    fake.request = lambda *a, **k: _response(401, {'error': 'Permission denied'})
    with pytest.raises(StoreError) as exc:
        tree.get('patients')
    assert 'Permission denied' in str(exc.value)


def test_auth_is_sent_as_query_parameter(fake):
    seen = {}

    def capture(method, url, params=None, **kwargs):
        seen.update(params or {})
        return _response(200, None)
    fake.request = capture
    FirebaseTree(BASE_URL, auth='secret-token', session=fake).get('queue')
    assert seen == {'auth': 'secret-token'}


def test_patient_nodes(stores, fake):
    with pytest.raises(MissingField):
        stores.patients.create(**{**PATIENT, 'full_name': ''})
    assert 'patients' not in fake.data

    p = stores.patients.create(**PATIENT)
    assert fake.data['patients'][p.id]['full_name'] == 'Alice Tan'
    assert stores.patients.get(p.id).contact_number == '0812-1111-2222'
    assert stores.patients.get(p.id).created_at is not None
    assert [x.id for x in stores.patients.list()] == [p.id]
    with pytest.raises(RecordNotFound):
        stores.patients.get('missing')


def test_queue_entry_is_denormalized_and_filtered(stores, fake):
    p = stores.patients.create(**PATIENT)
    a = stores.queue.create(p.id, 1)
    b = stores.queue.create(p.id, 2)
    assert fake.data['queue'][a.id]['patient_name'] == 'Alice Tan'
    assert b.estimated_wait_time == 30

    stores.queue.set_status(a.id, BEING_EXAMINED)
    assert fake.data['queue'][a.id]['called_at']
    stores.queue.set_status(a.id, DONE)
    assert [e.id for e in stores.queue.list_active()] == [b.id]
    assert stores.queue.get(a.id).completed_at is not None


def test_queue_reorder_and_remove(stores, fake):
    p = stores.patients.create(**PATIENT)
    a = stores.queue.create(p.id, 1)
    b = stores.queue.create(p.id, 2)

    stores.queue.reorder([b.id, a.id])
    assert [e.id for e in stores.queue.list_active()] == [b.id, a.id]
    assert stores.queue.get(a.id).queue_number == 2

    stores.queue.remove(b.id)
    assert b.id not in fake.data['queue']
    with pytest.raises(RecordNotFound):
        stores.queue.reorder(['gone'])
    # reorder never creates a stray node for an unknown id
    assert 'gone' not in fake.data['queue']


def test_prescription_without_lines(stores, fake):
    p = stores.patients.create(**PATIENT)
    rx = stores.prescriptions.create(p.id, 'Common cold')
    # the server drops empty lists; reading back must still work
    fake.data['prescriptions'][rx.id].pop('medicines')
    assert stores.prescriptions.get(rx.id).medicines == []
    assert [r.id for r in stores.prescriptions.list_by_status(PENDING)] == [rx.id]

    stores.prescriptions.set_status(rx.id, DISPENSED)
    assert stores.prescriptions.list_by_status(PENDING) == []
    assert stores.prescriptions.get(rx.id).status == DISPENSED


def test_registration_end_to_end_on_tree(stores, fake):
    first = register_patient(stores, **PATIENT)
    second = register_patient(stores, **{**PATIENT, 'full_name': 'Budi Santoso'})
    assert second.entry.queue_number == first.entry.queue_number + 1
    assert second.entry.status == WAITING
    assert len(fake.data['patients']) == 2 and len(fake.data['queue']) == 2


def test_registration_failure_leaves_earlier_writes(stores, fake, monkeypatch):
    def broken_create(patient_id, queue_number):
        raise StoreError('PUT queue: HTTP 500')
    monkeypatch.setattr(stores.queue, 'create', broken_create)

    with pytest.raises(StoreError):
        register_patient(stores, **PATIENT)
    assert len(fake.data['patients']) == 1
    assert fake.data['counters'][QUEUE_COUNTER] == 1


def test_stream_parses_server_sent_events(fake):
    body = (
        'event: put\n'
        'data: {"path": "/", "data": {"queue": {}}}\n'
        '\n'
        'event: keep-alive\n'
        'data: null\n'
        '\n'
        'event: patch\n'
        'data: {"path": "/queue/abc", "data": {"status": "done"}}\n'
        '\n'
    )

    def streaming(method, url, params=None, headers=None, stream=False, **kwargs):
        assert stream and headers['Accept'] == 'text/event-stream'
        resp = requests.Response()
        resp.status_code = 200
        resp.raw = io.BytesIO(body.encode())
        resp.url = url
        return resp
    fake.request = streaming

    events = list(FirebaseTree(BASE_URL, session=fake).stream(''))
    assert [(e.event, e.path) for e in events] == [('put', '/'), ('patch', '/queue/abc')]
    assert events[1].data == {'status': 'done'}


def test_stream_cancel_raises(fake):
    def streaming(method, url, **kwargs):
        resp = requests.Response()
        resp.status_code = 200
        resp.raw = io.BytesIO(b'event: cancel\ndata: null\n\n')
        resp.url = url
        return resp
    fake.request = streaming

    with pytest.raises(StoreError):
        list(FirebaseTree(BASE_URL, session=fake).stream(''))
