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
"""Conversion of Elasticsearch documents into native Python values.

Walks document sources against the index mappings and converts field values
according to their declared ``type`` and ``format``:

- ``binary``: base64 text becomes ``bytes``.
- ``integer_range`` / ``long_range``: ``{gte, lte}`` becomes a ``range``
  including both bounds.
- ``date_range`` with ``strict_date``: ``{gte, lte}`` becomes a
  ``DateRange``.
- ``date`` with ``strict_date_time``: UTC timestamps become ``datetime``.
- ``date`` with ``strict_date``: dates become ``date``.

Values that cannot be parsed are returned unchanged. Search results, single
documents, lists and streams of them are all accepted by ``deserialize``.

Example:
    >>> mapping = {'properties': {'born': {'type': 'date', 'format': 'strict_date'}}}
    >>> deserialize({'_index': 'people', '_source': {'born': '1990-01-01'}}, mapping)
    {'_index': 'people', '_source': {'born': datetime.date(1990, 1, 1)}}
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Callable, TypeAlias

from .collections import DateRange, DictObject
from .utils import KeyFunction, decode_base64, map_keys, parse_date, parse_datetime


__all__ = [
    'deserialize',
    'deserialize_field',
    'document_indices',
    'LazyDeserializer',
]

logger = logging.getLogger('esearch')

INDEX_KEY = '_index'
SOURCE_KEY = '_source'
HITS_KEY = 'hits'

INTEGER_RANGE_TYPES = ('integer_range', 'long_range')

Mappings: TypeAlias = dict[str, Any]
Mapper: TypeAlias = Mappings | Callable[[str], Mappings]


def _identity(key: str) -> str:
    return key


def _is_range(value: Any) -> bool:
    return isinstance(value, Mapping) and 'gte' in value and 'lte' in value


def is_stream(value: Any) -> bool:
    return (
        isinstance(value, Iterable)
        and not isinstance(value, (Mapping, str, bytes, bytearray, list, tuple, DateRange, range))
    )


def _integer_range(value: Mapping, field_type: str) -> range:
    gte, lte = value['gte'], value['lte']
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (gte, lte)):
        raise ValueError(f"Invalid {field_type} bounds: gte={gte!r}, lte={lte!r} must be integers")
    if gte > lte:
        raise ValueError(f"Invalid {field_type} bounds: gte={gte!r} is greater than lte={lte!r}")
    return range(gte, lte + 1)


def _date_range(value: Mapping) -> DateRange | None:
    first = parse_date(value['gte'])
    last = parse_date(value['lte'])
    if first is None or last is None:
        return None
    return DateRange(first, last)


def deserialize_field(value: Any, mapping: Mapping, key_fn: KeyFunction | None = None) -> Any:
    """Deserialize a field value according to its mapping.

    Rules are tried in order and the first one that matches wins:

    1. Lists and tuples: each element is deserialized with the same mapping
       and the sequence type is kept.
    2. Mappings when ``mapping`` has ``properties``: every key must be
       declared in ``properties``; values are deserialized with their own
       sub-mapping and keys are passed through ``key_fn``.
    3. ``binary``: base64 text is decoded to ``bytes``.
    4. ``integer_range`` / ``long_range``: ``{gte, lte}`` becomes
       ``range(gte, lte + 1)``.
    5. ``date_range`` + ``strict_date``: ``{gte, lte}`` becomes a
       ``DateRange``.
    6. ``date`` + ``strict_date_time``: a UTC timestamp becomes ``datetime``.
    7. ``date`` + ``strict_date``: a date becomes ``date``.
    8. Anything else is returned unchanged.

    Parse failures in rules 3, 5, 6 and 7 return the original value.

    Args:
        value: The field value (mapping, sequence or scalar).
        mapping: The field mapping, usually holding ``type`` and an optional
            ``format``, or ``properties`` for object fields.
        key_fn: Function applied to the keys of deserialized objects.
            Defaults to the identity.

    Returns:
        The deserialized value.

    Raises:
        KeyError: If an object key has no entry in ``properties``.
        ValueError: If an integer range has non-integer bounds or ``gte``
            is greater than ``lte``.

    Example:
        >>> deserialize_field('SGVsbG8=', {'type': 'binary'})
        b'Hello'
        >>> deserialize_field({'gte': 1, 'lte': 3}, {'type': 'integer_range'})
        range(1, 4)
    """
    if key_fn is None:
        key_fn = _identity

    if isinstance(value, tuple):
        return tuple(deserialize_field(v, mapping, key_fn) for v in value)
    if isinstance(value, list):
        return [deserialize_field(v, mapping, key_fn) for v in value]

    if isinstance(value, Mapping) and 'properties' in mapping:
        properties = mapping['properties']
        result = DictObject()
        for key, val in value.items():
            try:
                field_mapping = properties[key]
            except KeyError:
                raise KeyError(f"Field {key!r} is not declared in the mapping properties") from None
            result[key_fn(key)] = deserialize_field(val, field_mapping, key_fn)
        return result

    field_type = mapping.get('type')
    field_format = mapping.get('format')

    if isinstance(value, str) and field_type == 'binary':
        decoded = decode_base64(value)
        if decoded is None:
            logger.debug(f"@@@>> INVALID BASE64 VALUE: {value!r}")
            return value
        return decoded

    if _is_range(value) and field_type in INTEGER_RANGE_TYPES:
        return _integer_range(value, field_type)

    if _is_range(value) and field_type == 'date_range' and field_format == 'strict_date':
        parsed = _date_range(value)
        if parsed is None:
            logger.debug(f"@@@>> INVALID DATE RANGE: {value!r}")
            return value
        return parsed

    if isinstance(value, str) and field_type == 'date':
        if field_format == 'strict_date_time':
            parsed = parse_datetime(value)
        elif field_format == 'strict_date':
            parsed = parse_date(value)
        else:
            return value
        if parsed is None:
            logger.debug(f"@@@>> INVALID {field_format.upper()} VALUE: {value!r}")
            return value
        return parsed

    return value


class LazyDeserializer:
    """Restartable lazy view deserializing each element of an iterable.

    Every iteration walks ``iterable`` again, so the view can be consumed
    as many times as the wrapped iterable can.
    """

    def __init__(self, iterable: Iterable, resolve: Callable[[str], Mappings] | None,
            key_fn: KeyFunction | None) -> None:
        self.iterable = iterable
        self.resolve = resolve
        self.key_fn = key_fn

    def __iter__(self) -> Iterator:
        for value in self.iterable:
            yield _deserialize(value, self.resolve, self.key_fn)


def _resolver(mapper: Mapper | None) -> Callable[[str], Mappings] | None:
    if mapper is None:
        return None
    if callable(mapper):
        return mapper
    if isinstance(mapper, Mapping) and 'properties' in mapper:
        return lambda index: mapper
    raise TypeError(
        "mapper argument must be a mapping with a 'properties' key "
        "or a callable taking an index name"
    )


def _deserialize(value: Any, resolve: Callable[[str], Mappings] | None,
        key_fn: KeyFunction | None) -> Any:
    if isinstance(value, Iterator):
        return (_deserialize(v, resolve, key_fn) for v in value)

    if isinstance(value, tuple):
        return tuple(_deserialize(v, resolve, key_fn) for v in value)
    if isinstance(value, list):
        return [_deserialize(v, resolve, key_fn) for v in value]

    if is_stream(value):
        return LazyDeserializer(value, resolve, key_fn)

    if not isinstance(value, Mapping):
        return value

    hits = value.get(HITS_KEY)
    if isinstance(hits, Mapping) and HITS_KEY in hits:
        envelope = map_keys(DictObject((k, v) for k, v in value.items() if k != HITS_KEY), key_fn)
        hits_envelope = map_keys(DictObject((k, v) for k, v in hits.items() if k != HITS_KEY), key_fn)
        hits_key = key_fn(HITS_KEY) if key_fn else HITS_KEY
        hits_envelope[hits_key] = _deserialize(hits[HITS_KEY], resolve, key_fn)
        envelope[hits_key] = hits_envelope
        return envelope

    if INDEX_KEY in value and SOURCE_KEY in value:
        index = value[INDEX_KEY]
        if resolve is None:
            raise TypeError(f"A mapping or mapper is required to deserialize documents of index {index!r}")
        source = deserialize_field(value[SOURCE_KEY], resolve(index), key_fn)
        document = map_keys(DictObject((k, v) for k, v in value.items() if k != SOURCE_KEY), key_fn)
        document[key_fn(SOURCE_KEY) if key_fn else SOURCE_KEY] = source
        return document

    return map_keys(value, key_fn)


def deserialize(value: Any, mapper: Mapper | None = None, key_fn: KeyFunction | None = None) -> Any:
    """Deserialize a response, a document, or a list or stream of them.

    - Iterators (generators, ``map`` objects...) are consumed lazily and a
      generator is returned.
    - Lists and tuples are deserialized eagerly into a list or tuple.
    - Other iterables are wrapped in a restartable ``LazyDeserializer``.
    - Search results (``hits.hits``) have each hit deserialized; the other
      members are only re-keyed.
    - Documents (``_index`` and ``_source``) have their source deserialized
      against the mapping of their index; the other members are only
      re-keyed.
    - Any other mapping is only re-keyed, scalars are returned unchanged.

    Args:
        value: The decoded response.
        mapper: Either index mappings holding a ``properties`` key, used for
            every document, or a callable receiving the index name and
            returning its mappings.
        key_fn: Function applied to every textual key of the result.
            ``None`` leaves keys untouched.

    Returns:
        The deserialized value.

    Raises:
        TypeError: If ``mapper`` is neither a mapping with ``properties``
            nor a callable, or if a document is found and no ``mapper``
            was given.
        KeyError: If a source field is missing from the mapping.

    Example:
        >>> mapping = {'properties': {'field': {'type': 'binary'}}}
        >>> deserialize({'_index': 'test', '_source': {'field': 'SGVsbG8='}}, mapping)
        {'_index': 'test', '_source': {'field': b'Hello'}}
    """
    return _deserialize(value, _resolver(mapper), key_fn)


def document_indices(value: Any) -> list[str]:
    """List the index names of all documents contained in ``value``.

    Walks lists, tuples, restartable iterables and search results in the
    same way ``deserialize`` does. Iterators are not consumed.

    Returns:
        list[str]: Unique index names in order of appearance.
    """
    indices: dict[str, None] = {}
    _collect_indices(value, indices)
    return list(indices)


def _collect_indices(value: Any, indices: dict[str, None]) -> None:
    if isinstance(value, Iterator):
        return
    if isinstance(value, (list, tuple)) or is_stream(value):
        for v in value:
            _collect_indices(v, indices)
    elif isinstance(value, Mapping):
        hits = value.get(HITS_KEY)
        if isinstance(hits, Mapping) and HITS_KEY in hits:
            _collect_indices(hits[HITS_KEY], indices)
        elif INDEX_KEY in value and SOURCE_KEY in value:
            indices[value[INDEX_KEY]] = None
