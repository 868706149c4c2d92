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
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
#
"""Helpers shared by the client and the deserializer.

Provides the recursive key mapper applied to decoded responses, parse
helpers that return ``None`` instead of raising when a value cannot be
converted, and the newline-delimited JSON encoder used by the multi-search
and bulk endpoints.
"""
from __future__ import annotations

import base64
import binascii
import json
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, TypeAlias

from pydantic.alias_generators import to_camel, to_snake

from .collections import DictObject


KeyFunction: TypeAlias = Callable[[str], Any]

DATE_RE = re.compile(r'[0-9]{4}-[0-9]{2}-[0-9]{2}')
DATETIME_RE = re.compile(
    r'[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]+)?(Z|[+-][0-9]{2}:[0-9]{2})'
)


def map_keys(value: Any, key_fn: KeyFunction | None = None) -> Any:
    """Apply ``key_fn`` to every textual key of a nested structure.

    Lists and tuples are traversed element by element and keep their
    type; dictionaries are rebuilt as ``DictObject`` with each string key
    replaced by ``key_fn(key)``. Non-string keys are kept as they are. Any other value,
    including dates, ranges and bytes, is returned untouched.

    Args:
        value: Decoded JSON value (mapping, sequence or scalar).
        key_fn: Function applied to each string key. ``None`` returns
            ``value`` itself without traversing it.

    Returns:
        The re-keyed structure.

    Example:
        >>> map_keys({'took': 3, 'hits': [{'_id': '1'}]}, str.upper)
        {'TOOK': 3, 'HITS': [{'_ID': '1'}]}
    """
    if key_fn is None:
        return value
    return _map_keys(value, key_fn)


def _map_keys(value: Any, key_fn: KeyFunction) -> Any:
    if isinstance(value, tuple):
        return tuple(_map_keys(v, key_fn) for v in value)
    if isinstance(value, list):
        return [_map_keys(v, key_fn) for v in value]
    if isinstance(value, dict):
        return DictObject(
            (key_fn(k) if isinstance(k, str) else k, _map_keys(v, key_fn))
            for k, v in value.items()
        )
    return value


def _split_underscores(key: str) -> tuple[str, str]:
    name = key.lstrip('_')
    return key[:len(key) - len(name)], name


def camel_key(key: str) -> str:
    """Key function turning ``snake_case`` keys into ``camelCase``.

    Leading underscores of metadata keys (``_index``, ``_source``...) are
    kept.

    Example:
        >>> map_keys({'created_at': 1, '_source': {}}, camel_key)
        {'createdAt': 1, '_source': {}}
    """
    prefix, name = _split_underscores(key)
    return prefix + to_camel(name) if name else key


def snake_key(key: str) -> str:
    """Key function turning ``camelCase`` keys into ``snake_case``."""
    prefix, name = _split_underscores(key)
    return prefix + to_snake(name) if name else key


def decode_base64(value: str) -> bytes | None:
    """Decode standard, padded base64 text.

    Returns:
        bytes | None: The decoded bytes, or ``None`` if ``value`` is not
            valid base64.
    """
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None


def parse_date(value: str) -> date | None:
    """Parse an ISO-8601 extended calendar date (``YYYY-MM-DD``).

    Basic (``YYYYMMDD``), week and ordinal dates are rejected.

    Returns:
        date | None: The parsed date, or ``None`` if ``value`` is not a date.
    """
    if not isinstance(value, str) or not DATE_RE.fullmatch(value):
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def parse_datetime(value: str) -> datetime | None:
    """Parse an ISO-8601 extended timestamp expressed in UTC.

    The timestamp must spell out ``YYYY-MM-DDTHH:MM:SS``, optionally with
    fractional seconds, followed by a zero offset (``Z`` or ``+00:00``).
    Naive timestamps, basic-format timestamps and any other offset are
    rejected.

    Returns:
        datetime | None: An aware ``datetime`` in ``timezone.utc``, or
            ``None`` if ``value`` is malformed or not in UTC.
    """
    if not isinstance(value, str) or not DATETIME_RE.fullmatch(value):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    offset = parsed.utcoffset()
    if offset is None or offset:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def ndjson_dumps(lines: Iterable[Any]) -> str:
    """Encode objects as newline-delimited JSON.

    Each object is serialized on its own line and the payload ends with a
    trailing newline, as required by ``_bulk`` and ``_msearch``. Strings
    are taken as already-encoded lines.
    """
    return ''.join(
        f'{line if isinstance(line, str) else json.dumps(line, ensure_ascii=True)}\n'
        for line in lines
    )
