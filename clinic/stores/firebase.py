"""
Minimal client for the Firebase Realtime Database REST API.

Every node is addressed as ``{base_url}/{path}.json``; the optional
``auth`` secret or ID token travels as a query parameter.  Conditional
writes use the ``X-Firebase-ETag`` / ``if-match`` pair and change
notifications come from the server-sent-events stream of a path.
All transport and HTTP failures surface as :class:`StoreError`.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import requests

from ..exceptions import StoreError

logger = logging.getLogger(__name__)


@dataclass
class TreeEvent:
    """One server-sent event from a streamed path."""
    event: str
    path: str
    data: Any


class FirebaseTree:
    def __init__(self, base_url: str, auth: str = '', timeout: float = 5,
                 session: Optional[requests.Session] = None):
        if not base_url:
            raise StoreError('Firebase database URL is not configured')
        self.base_url = base_url.rstrip('/')
        self.auth = auth
        self.timeout = timeout
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        path = path.strip('/')
        return f'{self.base_url}/{path}.json' if path else f'{self.base_url}/.json'

    def _params(self) -> dict:
        return {'auth': self.auth} if self.auth else {}

    def _request(self, method: str, path: str, *, accept_412: bool = False, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout)
        try:
            resp = self.session.request(method, self.url(path), params=self._params(), **kwargs)
        except requests.RequestException as exc:
            logger.warning('firebase %s %s failed: %s', method, path, exc)
            raise StoreError(f'{method} {path}: {exc}') from exc
        if accept_412 and resp.status_code == 412:
            return resp
        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            logger.warning('firebase %s %s returned %s', method, path, resp.status_code)
            raise StoreError(f'{method} {path}: HTTP {resp.status_code} {_error_text(resp)}') from exc
        return resp

    def get(self, path: str) -> Any:
        return self._request('GET', path).json()

    def get_with_etag(self, path: str) -> tuple[Any, str]:
        resp = self._request('GET', path, headers={'X-Firebase-ETag': 'true'})
        return resp.json(), resp.headers.get('ETag', '')

    def put(self, path: str, value: Any) -> Any:
        return self._request('PUT', path, json=value).json()

    def put_if_match(self, path: str, value: Any, etag: str) -> tuple[bool, str, Any]:
        """Write ``value`` only if the node still carries ``etag``.

        Returns ``(written, etag, value)``; after a mismatch the etag and
        value are the ones currently stored, ready for the next attempt.
        """
        resp = self._request(
            'PUT', path, json=value, accept_412=True,
            headers={'if-match': etag, 'X-Firebase-ETag': 'true'},
        )
        current = resp.json()
        return resp.status_code != 412, resp.headers.get('ETag', ''), current

    def patch(self, path: str, values: dict) -> Any:
        return self._request('PATCH', path, json=values).json()

    def delete(self, path: str) -> None:
        self._request('DELETE', path)

    def stream(self, path: str = '') -> Iterator[TreeEvent]:
        """Yield ``put``/``patch`` events for ``path`` until the server closes."""
        resp = self._request(
            'GET', path, stream=True, timeout=(self.timeout, None),
            headers={'Accept': 'text/event-stream'},
        )
        resp.encoding = resp.encoding or 'utf-8'
        event_name = None
        data_lines: list[str] = []
        try:
            for raw in resp.iter_lines(decode_unicode=True):
                line = raw or ''
                if line.startswith('event:'):
                    event_name = line[len('event:'):].strip()
                elif line.startswith('data:'):
                    data_lines.append(line[len('data:'):].strip())
                elif not line and event_name:
                    event = _parse_event(event_name, '\n'.join(data_lines))
                    event_name, data_lines = None, []
                    if event is not None:
                        yield event
        except requests.RequestException as exc:
            raise StoreError(f'stream {path}: {exc}') from exc
        finally:
            resp.close()


def _parse_event(name: str, payload: str) -> Optional[TreeEvent]:
    if name == 'keep-alive':
        return None
    if name in ('cancel', 'auth_revoked'):
        raise StoreError(f'stream closed by server: {name} {payload}')
    body = json.loads(payload) if payload and payload != 'null' else {}
    return TreeEvent(event=name, path=body.get('path', '/'), data=body.get('data'))


def _error_text(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and 'error' in body:
        return str(body['error'])
    return str(body)[:200]
