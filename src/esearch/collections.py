# Copyright (c) 2015-2026 Dubalu LLC
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
"""Container types produced when decoding Elasticsearch responses.

``DictObject`` is the mapping type used as ``object_pairs_hook`` for JSON
responses and for every mapping rebuilt by the deserializer, so keys can be
read as attributes. ``DateRange`` is the inclusive calendar-date interval
produced for ``date_range`` fields.

Example:
    >>> obj = DictObject(_index='books', found=True)
    >>> obj.found
    True
    >>> r = DateRange(date(2024, 2, 6), date(2024, 2, 8))
    >>> list(r)
    [datetime.date(2024, 2, 6), datetime.date(2024, 2, 7), datetime.date(2024, 2, 8)]
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Iterator


class DictObject(dict):
    """Dictionary with attribute-style access.

    A simple ``dict`` subclass that maps its internal ``__dict__`` to
    itself, allowing keys to be accessed as attributes.

    Example:
        >>> obj = DictObject(name='test', value=42)
        >>> obj.name
        'test'
        >>> obj['name']
        'test'
    """

    def __init__(self, *args, **kwargs):
        dict.__init__(self, *args, **kwargs)
        self.__dict__ = self


class DateRange:
    """Inclusive interval of calendar dates.

    Iterates day by day from ``first`` to ``last``, both included. When
    ``first`` is after ``last`` the range walks backwards.

    Attributes:
        first: First date of the range.
        last: Last date of the range.
        step: ``1`` for ascending ranges, ``-1`` for descending ones.
    """

    __slots__ = ('first', 'last', 'step')

    def __init__(self, first: date, last: date) -> None:
        self.first = first
        self.last = last
        self.step = 1 if first <= last else -1

    def __iter__(self) -> Iterator[date]:
        delta = timedelta(days=self.step)
        current = self.first
        for _ in range(len(self)):
            yield current
            current += delta

    def __len__(self) -> int:
        return abs((self.last - self.first).days) + 1

    def __contains__(self, item: Any) -> bool:
        # datetime is a date subclass but does not compare with plain dates
        if not isinstance(item, date) or isinstance(item, datetime):
            return False
        low, high = sorted((self.first, self.last))
        return low <= item <= high

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, DateRange):
            return NotImplemented
        return (self.first, self.last) == (other.first, other.last)

    def __hash__(self) -> int:
        return hash((DateRange, self.first, self.last))

    def __repr__(self) -> str:
        return f'DateRange({self.first.isoformat()}, {self.last.isoformat()})'
