# -*- coding: utf-8 -*-
#
# Copyright (C) 2015-2026 Dubalu LLC. All rights reserved.
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.
#
"""Elasticsearch Python client library.

Provides the ``Elasticsearch`` async client class for the Elasticsearch
REST API, the deserializer turning documents into native Python values
according to the index mappings, and ``MappingsCache``, which keeps those
mappings in memory.

Configuration is read from environment variables (``ELASTICSEARCH_HOST``,
``ELASTICSEARCH_PORT``, ``ELASTICSEARCH_SCHEME``, ``ELASTICSEARCH_REFRESH``,
``ELASTICSEARCH_PREFIX``, ``ELASTICSEARCH_MAPPINGS_TTL``), with optional
overrides from Django settings. A module-level ``client`` singleton is
created at import time using these defaults.

Example:
    >>> from esearch import client, MappingsCache
    >>> async with MappingsCache(client) as mappings:
    ...     results = await client.search('books', body={'query': {'match_all': {}}})
    ...     results = await mappings.deserialize(results)
"""
from __future__ import annotations

import os
import json
import logging
from typing import Any, TypeAlias

try:
    from django.core.exceptions import ObjectDoesNotExist
except ImportError:
    ObjectDoesNotExist = Exception

try:
    import httpx
except ImportError:
    raise ImportError("esearch requires the installation of the httpx module.")

from .collections import DateRange, DictObject
from .deserializer import deserialize, deserialize_field, document_indices
from .mappings import MappingsCache
from .utils import camel_key, map_keys, ndjson_dumps, snake_key


__version__ = '1.0.0'
__all__ = [
    'Elasticsearch',
    'NotFoundError',
    'TransportError',
    'NA',
    'client',
    'IndexSpec',
    'MappingsCache',
    'DateRange',
    'DictObject',
    'deserialize',
    'deserialize_field',
    'document_indices',
    'map_keys',
    'camel_key',
    'snake_key',
    'ELASTICSEARCH_HOST',
    'ELASTICSEARCH_PORT',
    'ELASTICSEARCH_SCHEME',
    'ELASTICSEARCH_REFRESH',
    'ELASTICSEARCH_PREFIX',
    'ELASTICSEARCH_MAPPINGS_TTL',
]

logger = logging.getLogger('esearch')

CONTENT_TYPE_JSON = 'application/json'
CONTENT_TYPE_NDJSON = 'application/x-ndjson'

ELASTICSEARCH_HOST = os.environ.get('ELASTICSEARCH_HOST', '127.0.0.1')
ELASTICSEARCH_PORT = os.environ.get('ELASTICSEARCH_PORT', 9200)
ELASTICSEARCH_SCHEME = os.environ.get('ELASTICSEARCH_SCHEME', 'http')
ELASTICSEARCH_REFRESH = os.environ.get('ELASTICSEARCH_REFRESH', False)
ELASTICSEARCH_PREFIX = os.environ.get('ELASTICSEARCH_PREFIX', None)
ELASTICSEARCH_MAPPINGS_TTL = os.environ.get('ELASTICSEARCH_MAPPINGS_TTL', None)

try:
    from django.conf import settings
    ELASTICSEARCH_HOST = getattr(settings, 'ELASTICSEARCH_HOST', ELASTICSEARCH_HOST)
    ELASTICSEARCH_PORT = getattr(settings, 'ELASTICSEARCH_PORT', ELASTICSEARCH_PORT)
    ELASTICSEARCH_SCHEME = getattr(settings, 'ELASTICSEARCH_SCHEME', ELASTICSEARCH_SCHEME)
    ELASTICSEARCH_REFRESH = getattr(settings, 'ELASTICSEARCH_REFRESH', ELASTICSEARCH_REFRESH)
    ELASTICSEARCH_PREFIX = getattr(settings, 'ELASTICSEARCH_PREFIX', ELASTICSEARCH_PREFIX)
    ELASTICSEARCH_MAPPINGS_TTL = getattr(settings, 'ELASTICSEARCH_MAPPINGS_TTL', ELASTICSEARCH_MAPPINGS_TTL)
except Exception:
    settings = None

if ELASTICSEARCH_MAPPINGS_TTL is not None:
    ELASTICSEARCH_MAPPINGS_TTL = float(ELASTICSEARCH_MAPPINGS_TTL)


IndexSpec: TypeAlias = str | tuple[str, ...] | list[str] | set[str]


class NotFoundError(ObjectDoesNotExist):
    """Raised when a requested document is not found (HTTP 404).

    Inherits from Django's ``ObjectDoesNotExist`` when Django is available,
    otherwise falls back to the base ``Exception`` class.
    """


TransportError = httpx.HTTPStatusError


NA = object()


class Elasticsearch:
    """Async client for the Elasticsearch REST API.

    All API methods route through ``_send_request``, which builds URLs,
    encodes JSON or NDJSON bodies, and decodes responses into
    ``DictObject``.

    Attributes:
        host: Elasticsearch server hostname.
        port: Elasticsearch server port.
        scheme: URL scheme, ``'http'`` or ``'https'``.
        refresh: Default value of the ``refresh`` parameter for writes.
        prefix: Prefix prepended to every index name.
        default_accept: Default ``Accept`` header for requests.
        default_accept_encoding: Default ``Accept-Encoding`` header.
        NotFoundError: Reference to the ``NotFoundError`` exception class.
        NA: Sentinel object indicating no default value was provided.

    Example:
        >>> client = Elasticsearch(host='localhost', port=9200)
        >>> results = await client.search('books', body={'query': {'match_all': {}}})
        >>> doc = await client.get('books', id='1')
    """

    NotFoundError = NotFoundError
    NA = NA

    session = httpx.AsyncClient(
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=100),
        trust_env=False,
        follow_redirects=False,
    )
    _methods = dict(
        info=('GET', ''),
        search=('GET', '_search'),
        count=('GET', '_count'),
        msearch=('POST', '_msearch'),
        get=('GET', '_doc'),
        source=('GET', '_source'),
        exists=('HEAD', '_doc'),
        exists_source=('HEAD', '_source'),
        mget=('POST', '_mget'),
        index=('PUT', '_doc'),
        create=('PUT', '_create'),
        update=('POST', '_update'),
        delete=('DELETE', '_doc'),
        bulk=('POST', '_bulk'),
        mapping=('GET', '_mapping'),
        cat_indices=('GET', '_cat/indices'),
    )
    _not_found = ('get', 'source', 'exists', 'exists_source', 'update', 'delete')
    _ndjson = ('msearch', 'bulk')

    def __init__(self, host: str | None = None, port: str | int | None = None,
            scheme: str | None = None, refresh: bool | str | None = None,
            prefix: str | None = None,
            default_accept: str | None = None,
            default_accept_encoding: str | None = None,
            *args, **kwargs) -> None:
        """Initialize the Elasticsearch client.

        Args:
            host: Server hostname. If it contains a colon, the part after
                it is used as the port. Defaults to ``ELASTICSEARCH_HOST``.
            port: Server port. Defaults to ``ELASTICSEARCH_PORT``.
            scheme: URL scheme. Defaults to ``ELASTICSEARCH_SCHEME``.
            refresh: Default ``refresh`` parameter of write operations.
                Defaults to ``ELASTICSEARCH_REFRESH``.
            prefix: Prefix for index names, joined with ``-``. Defaults to
                ``None`` (no prefix).
            default_accept: Default ``Accept`` header. Defaults to
                ``'application/json'``.
            default_accept_encoding: Default ``Accept-Encoding`` header.
                Defaults to ``'gzip, deflate, identity'``.
        """
        if host is None:
            host = ELASTICSEARCH_HOST
        if port is None:
            port = ELASTICSEARCH_PORT
        if scheme is None:
            scheme = ELASTICSEARCH_SCHEME
        if refresh is None:
            refresh = ELASTICSEARCH_REFRESH
        if host and ':' in host:
            host, _, port = host.partition(':')
        self.host = host
        self.port = port
        self.scheme = scheme
        self.refresh = refresh
        self.prefix = f'{prefix}-' if prefix else ''
        if default_accept is None:
            default_accept = CONTENT_TYPE_JSON
        self.default_accept = default_accept
        if default_accept_encoding is None:
            default_accept_encoding = 'gzip, deflate, identity'
        self.default_accept_encoding = default_accept_encoding

        self.DoesNotExist = NotFoundError

    def _build_url(self, action_request: str, index: IndexSpec | None,
            host: str | None, port: str | int | None, id: str | None) -> str:
        """Build the full URL for an Elasticsearch API request.

        Constructs a URL following the scheme
        ``{scheme}://{host}:{port}/{index}/{endpoint}/{id}``. ``_cat``
        endpoints take the index after the endpoint instead.

        Args:
            action_request: Key of ``_methods`` naming the API action.
            index: Index name, comma-separated index names, or a list,
                tuple or set of index names. ``None`` targets the whole
                cluster.
            host: Server hostname override. Falls back to ``self.host``.
            port: Server port override. Falls back to ``self.port``.
            id: Optional document ID.

        Returns:
            str: The fully constructed URL.
        """
        if host and ':' in host:
            host, _, port = host.partition(':')
        if not host:
            host = self.host
        if not port:
            port = self.port
        host = f'{host}:{port}'

        if index is not None:
            if not isinstance(index, (tuple, list, set)):
                index = index.split(',')
            index = ','.join(dict.fromkeys(f'{self.prefix}{i.strip().strip("/")}' for i in index))

        _, endpoint = self._methods[action_request]
        if endpoint.startswith('_cat/'):
            parts = [endpoint, index]
        else:
            parts = [index, endpoint, id]
        path = '/'.join(p for p in parts if p)

        return f'{self.scheme}://{host}/{path}'

    async def _send_request(self, action_request: str, index: IndexSpec | None = None,
            host: str | None = None, port: str | int | None = None,
            id: str | None = None, body: dict | list | str | None = None,
            default: Any = NA, **kwargs) -> DictObject | list | bytes | bool | Any:
        """Send an HTTP request to the Elasticsearch server.

        Central method through which all API operations are routed. Handles
        URL construction, body encoding (JSON, or NDJSON for ``msearch`` and
        ``bulk``), request dispatch, error handling, and response decoding.

        Args:
            action_request: The API action to perform, a key of
                ``_methods``.
            index: Index name or names.
            host: Server hostname override.
            port: Server port override.
            id: Document ID for the request.
            body: Request body. Can be a dict, a list (one NDJSON line per
                item for ``msearch`` and ``bulk``), or a file path string.
            default: Value returned on 404 for document-level actions
                (``get``, ``source``, ``exists``, ``exists_source``,
                ``update``, ``delete``). If not provided (``NA``), a
                ``NotFoundError`` is raised instead.
            **kwargs: Additional keyword arguments passed to the underlying
                HTTP request (e.g., ``params``, ``headers``).

        Returns:
            The decoded JSON content as ``DictObject`` (or list), ``True``
            for successful ``HEAD`` requests, or the raw bytes for non-JSON
            responses.

        Raises:
            NotFoundError: If the response status is 404 and no ``default``
                was provided (only for document-level actions).
            httpx.HTTPStatusError: If the response status indicates any
                other error.
        """

        http_method, _ = self._methods[action_request]
        url = self._build_url(action_request, index, host, port, id)

        if action_request in ('search', 'count') and body is not None:
            http_method = 'POST'
        elif action_request == 'index' and id is None:
            http_method = 'POST'

        params = kwargs.pop('params', None)
        if params is not None:
            kwargs['params'] = {
                k: _param_value(v)
                for k, v in params.items()
                if v is not None and (k not in ('refresh', 'pretty') or v)
            }

        headers = kwargs.setdefault('headers', {})
        headers.setdefault('accept', self.default_accept)
        headers.setdefault('accept-encoding', self.default_accept_encoding)

        if body is not None:
            is_ndjson = action_request in self._ndjson
            headers.setdefault('content-type', CONTENT_TYPE_NDJSON if is_ndjson else CONTENT_TYPE_JSON)
            if logger.isEnabledFor(logging.DEBUG):
                try:
                    verb_body = json.dumps(body, ensure_ascii=True)
                except Exception:
                    verb_body = body
                logger.debug(f"@@@>> URL: {url}  ::  BODY: {verb_body}  ::  KWARGS: {kwargs}")
            if isinstance(body, (dict, list)):
                if is_ndjson:
                    body = ndjson_dumps(body)
                else:
                    body = json.dumps(body, ensure_ascii=True)
            elif os.path.isfile(body):
                with open(body, 'rb') as f:
                    body = f.read()
            res = await self.session.request(http_method, url, content=body, **kwargs)
        else:
            logger.debug(f"@@@>> URL: {url}  ::  KWARGS: {kwargs}")
            res = await self.session.request(http_method, url, **kwargs)

        if res.status_code == 404 and action_request in self._not_found:
            if default is NA:
                raise self.NotFoundError("Matching query does not exist.")
            return default
        else:
            try:
                res.raise_for_status()
            except Exception as exc:
                logger.debug(f"@@@RES>> {exc} :: {res.content}")
                raise

        if http_method == 'HEAD':
            return True

        content_type = res.headers.get('content-type', '')
        if CONTENT_TYPE_JSON in content_type and res.content:
            return json.loads(res.content, object_pairs_hook=DictObject)
        return res.content

    def _write_params(self, refresh: bool | str | None, pretty: bool) -> dict:
        return dict(
            refresh=self.refresh if refresh is None else refresh,
            pretty=pretty,
        )

    async def info(self, kwargs: dict | None = None) -> DictObject:
        """Retrieve the cluster name, version and build information."""
        kwargs = kwargs or {}
        return await self._send_request('info', **kwargs)

    async def search(self, index: IndexSpec | None = None, body: dict | None = None,
            q: str | None = None, from_: int | None = None, size: int | None = None,
            sort: str | list[str] | None = None, pretty: bool = False,
            kwargs: dict | None = None, **kw) -> DictObject:
        """Search one or more indices.

        Sent as ``GET`` without a body and as ``POST`` with one.

        Args:
            index: Index name(s) to search. ``None`` searches all indices.
            body: Search request body (``query``, ``aggs``...).
            q: Query in Lucene query string syntax.
            from_: Starting offset of the hits.
            size: Maximum number of hits to return.
            sort: ``field:direction`` pairs to sort by.
            pretty: If ``True``, request pretty-printed response.
            kwargs: Additional keyword arguments dict passed to
                ``_send_request``.
            **kw: Extra query parameters.

        Returns:
            DictObject: The search result, with documents under
                ``hits.hits``.
        """
        kwargs = kwargs or {}
        kwargs['params'] = dict(pretty=pretty, q=q, size=size, sort=sort, **kw)
        kwargs['params']['from'] = from_
        if body is not None:
            kwargs['body'] = body
        return await self._send_request('search', index, **kwargs)

    async def count(self, index: IndexSpec | None = None, body: dict | None = None,
            q: str | None = None, pretty: bool = False,
            kwargs: dict | None = None, **kw) -> DictObject:
        """Count the documents matching a query.

        Returns:
            DictObject: Response holding the ``count``.
        """
        kwargs = kwargs or {}
        kwargs['params'] = dict(pretty=pretty, q=q, **kw)
        if body is not None:
            kwargs['body'] = body
        return await self._send_request('count', index, **kwargs)

    async def msearch(self, searches: list, index: IndexSpec | None = None,
            pretty: bool = False, kwargs: dict | None = None) -> DictObject:
        """Run several searches in one request.

        Args:
            searches: Alternating header and body objects, sent as NDJSON.
            index: Default index for headers that do not name one.
            pretty: If ``True``, request pretty-printed response.
            kwargs: Additional keyword arguments dict passed to
                ``_send_request``.

        Returns:
            DictObject: Response holding one result per search under
                ``responses``.
        """
        kwargs = kwargs or {}
        kwargs['body'] = searches
        kwargs['params'] = dict(pretty=pretty)
        return await self._send_request('msearch', index, **kwargs)

    async def get(self, index: IndexSpec, id: str, default: Any = NA,
            pretty: bool = False, kwargs: dict | None = None, **kw) -> DictObject | Any:
        """Retrieve a document by ID.

        Args:
            index: Index name containing the document.
            id: Document ID to retrieve.
            default: Value to return if the document is not found. If not
                provided, a ``NotFoundError`` is raised on 404.
            pretty: If ``True``, request pretty-printed response.
            kwargs: Additional keyword arguments dict passed to
                ``_send_request``.
            **kw: Extra query parameters (``_source_includes``, ``routing``...).

        Returns:
            DictObject: The document with its ``_index``, ``_id`` and
                ``_source``, or ``default``.

        Raises:
            NotFoundError: If the document is not found and no ``default``
                was provided.
        """
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['params'] = dict(pretty=pretty, **kw)
        kwargs['default'] = default
        return await self._send_request('get', index, **kwargs)

    async def get_source(self, index: IndexSpec, id: str, default: Any = NA,
            pretty: bool = False, kwargs: dict | None = None, **kw) -> DictObject | Any:
        """Retrieve only the source of a document by ID.

        Raises:
            NotFoundError: If the document is not found and no ``default``
                was provided.
        """
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['params'] = dict(pretty=pretty, **kw)
        kwargs['default'] = default
        return await self._send_request('source', index, **kwargs)

    async def exists(self, index: IndexSpec, id: str, kwargs: dict | None = None) -> bool:
        """Check whether a document exists."""
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['default'] = False
        return await self._send_request('exists', index, **kwargs)

    async def exists_source(self, index: IndexSpec, id: str, kwargs: dict | None = None) -> bool:
        """Check whether a document exists and has a stored source."""
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['default'] = False
        return await self._send_request('exists_source', index, **kwargs)

    async def mget(self, body: dict, index: IndexSpec | None = None,
            pretty: bool = False, kwargs: dict | None = None, **kw) -> DictObject:
        """Retrieve several documents at once.

        Args:
            body: Either ``{'ids': [...]}`` (requires ``index``) or
                ``{'docs': [{'_index': ..., '_id': ...}, ...]}``.
            index: Default index of the requested documents.

        Returns:
            DictObject: Response holding the documents under ``docs``.
        """
        kwargs = kwargs or {}
        kwargs['body'] = body
        kwargs['params'] = dict(pretty=pretty, **kw)
        return await self._send_request('mget', index, **kwargs)

    async def index(self, index: IndexSpec, body: dict | str, id: str | None = None,
            refresh: bool | str | None = None, pretty: bool = False,
            kwargs: dict | None = None) -> DictObject:
        """Create or replace a document.

        Sent as ``PUT`` when ``id`` is given and as ``POST`` (server-assigned
        ID) otherwise.

        Args:
            index: Index name for the document.
            body: Document source as a dict or a file path.
            id: Document ID to assign.
            refresh: ``True``, ``False`` or ``'wait_for'``. Defaults to
                ``self.refresh``.
            pretty: If ``True``, request pretty-printed response.
            kwargs: Additional keyword arguments dict passed to
                ``_send_request``.

        Returns:
            DictObject: Server response with the document metadata.
        """
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['body'] = body
        kwargs['params'] = self._write_params(refresh, pretty)
        return await self._send_request('index', index, **kwargs)

    async def create(self, index: IndexSpec, body: dict | str, id: str,
            refresh: bool | str | None = None, pretty: bool = False,
            kwargs: dict | None = None) -> DictObject:
        """Create a document, failing with 409 if the ID already exists."""
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['body'] = body
        kwargs['params'] = self._write_params(refresh, pretty)
        return await self._send_request('create', index, **kwargs)

    async def update(self, index: IndexSpec, id: str, body: dict,
            refresh: bool | str | None = None, pretty: bool = False,
            kwargs: dict | None = None) -> DictObject:
        """Partially update a document.

        Args:
            index: Index name containing the document.
            id: Document ID to update.
            body: Update request body, e.g. ``{'doc': {...}}`` or
                ``{'script': {...}}``.
            refresh: Defaults to ``self.refresh``.

        Returns:
            DictObject: Server response with the document metadata.

        Raises:
            NotFoundError: If the document is not found.
        """
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['body'] = body
        kwargs['params'] = self._write_params(refresh, pretty)
        return await self._send_request('update', index, **kwargs)

    async def delete(self, index: IndexSpec, id: str, refresh: bool | str | None = None,
            pretty: bool = False, kwargs: dict | None = None) -> DictObject:
        """Delete a document by ID.

        Raises:
            NotFoundError: If the document is not found.
        """
        kwargs = kwargs or {}
        kwargs['id'] = id
        kwargs['params'] = self._write_params(refresh, pretty)
        return await self._send_request('delete', index, **kwargs)

    async def bulk(self, operations: list | str, index: IndexSpec | None = None,
            refresh: bool | str | None = None, pretty: bool = False,
            kwargs: dict | None = None) -> DictObject:
        """Perform several index, create, update or delete operations.

        Args:
            operations: Alternating action and source objects, sent as
                NDJSON, or the path of an NDJSON file.
            index: Default index for actions that do not name one.

        Returns:
            DictObject: Response with ``errors`` and one entry per action
                under ``items``.
        """
        kwargs = kwargs or {}
        kwargs['body'] = operations
        kwargs['params'] = self._write_params(refresh, pretty)
        return await self._send_request('bulk', index, **kwargs)

    async def get_mapping(self, index: IndexSpec | None = None, pretty: bool = False,
            kwargs: dict | None = None) -> DictObject:
        """Retrieve the mappings of some or all indices.

        Args:
            index: Index name(s). ``None`` retrieves the mappings of every
                index in the cluster.

        Returns:
            DictObject: ``{index_name: {'mappings': {...}}}``.
        """
        kwargs = kwargs or {}
        kwargs['params'] = dict(pretty=pretty)
        return await self._send_request('mapping', index, **kwargs)

    async def cat_indices(self, index: IndexSpec | None = None,
            kwargs: dict | None = None, **kw) -> list:
        """List indices with their health, document count and size."""
        kwargs = kwargs or {}
        kwargs['params'] = dict(format='json', **kw)
        return await self._send_request('cat_indices', index, **kwargs)


def _param_value(value: Any) -> Any:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, tuple, set)):
        return ','.join(str(v) for v in value)
    return value


client = Elasticsearch(
    host=ELASTICSEARCH_HOST,
    port=ELASTICSEARCH_PORT,
    scheme=ELASTICSEARCH_SCHEME,
    refresh=ELASTICSEARCH_REFRESH,
    prefix=ELASTICSEARCH_PREFIX,
)
