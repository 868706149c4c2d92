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
"""Cache of index mappings with optional expiration.

``MappingsCache`` keeps the mappings of every index, fetched from the
server through the client's ``get_mapping``. Entries may expire after a
time-to-live; expired entries are refreshed in bulk by a timer armed on the
event loop for the soonest expiration. All reads and writes of the cache go
through a single ``asyncio.Lock``, the timer-driven sweep included.

Example:
    >>> async with MappingsCache(client, time_to_live=1800) as cache:
    ...     mappings = await cache.get('books')
    ...     result = await cache.deserialize(await client.search('books'))
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from datetime import timedelta
from typing import Any, Callable, TypeAlias

from .deserializer import Mappings, deserialize, document_indices, is_stream
from .utils import KeyFunction


__all__ = ['MappingsCache']

logger = logging.getLogger('esearch')

Entry: TypeAlias = tuple[float | None, Mappings]


class MappingsCache:
    """Serialized cache of index mappings.

    Attributes:
        client: Object providing ``async get_mapping(index=None)``, usually
            an ``Elasticsearch`` instance.
        time_to_live: Seconds before an entry expires, or ``None`` for
            entries that never expire.
        sweep_retries: Number of times a failed sweep is retried before its
            expired entries are evicted.
        retry_backoff: Base delay in seconds between sweep retries; the
            n-th retry waits ``retry_backoff * n``.
    """

    def __init__(self, client: Any, time_to_live: float | timedelta | None = None,
            clock: Callable[[], float] = time.monotonic,
            sweep_retries: int = 3, retry_backoff: float = 1.0) -> None:
        if isinstance(time_to_live, timedelta):
            time_to_live = time_to_live.total_seconds()
        self.client = client
        self.time_to_live = time_to_live
        self.sweep_retries = max(0, int(sweep_retries))
        self.retry_backoff = max(0.0, float(retry_backoff))
        self._clock = clock
        self._mappings: dict[str, Entry] = {}
        self._lock = asyncio.Lock()
        self._timer: asyncio.TimerHandle | None = None
        self._next_sweep_at: float | None = None
        self._sweep_task: asyncio.Task | None = None
        self._sweep_failures = 0
        self._retry_at: float | None = None

    async def __aenter__(self) -> MappingsCache:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start(self) -> None:
        """Load the mappings of all indices and arm the expiration timer.

        Raises:
            Exception: Whatever the client raises when the fetch fails.
        """
        async with self._lock:
            self._mappings = await self._fetch()
            self._schedule_sweep()
        logger.debug(f"@@@>> MAPPINGS LOADED: {len(self._mappings)} indices")

    async def close(self) -> None:
        """Disarm the timer and cancel a running sweep."""
        self._cancel_timer()
        task, self._sweep_task = self._sweep_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def get(self, index: str) -> Mappings:
        """Return the mappings of ``index``, fetching them on a miss.

        Entries that have expired are treated as missing.

        Raises:
            KeyError: If the server response does not include ``index``.
            Exception: Whatever the client raises when the fetch fails; the
                cache is left unchanged.
        """
        async with self._lock:
            entry = self._mappings.get(index)
            if entry is not None and not self._is_expired(entry[0], self._clock()):
                return entry[1]

            logger.debug(f"@@@>> MAPPINGS MISS: {index}")
            fetched = await self._fetch([index])
            self._mappings.update(fetched)
            self._schedule_sweep()

        try:
            return fetched[index][1]
        except KeyError:
            raise KeyError(f"No mappings returned for index {index!r}") from None

    async def delete(self, index: str) -> None:
        """Evict ``index`` from the cache. Does nothing if it is absent."""
        async with self._lock:
            self._mappings.pop(index, None)
            self._schedule_sweep()

    async def clear(self) -> None:
        """Drop every entry and reload the mappings of all indices."""
        async with self._lock:
            self._mappings = await self._fetch()
            self._reset_failures()
            self._schedule_sweep()

    async def sweep(self) -> None:
        """Refetch every expired entry in one request and rearm the timer.

        A failed fetch is logged and retried up to ``sweep_retries`` times
        with a linear backoff; the timer is not armed before the pending
        retry, whatever ``get`` or ``delete`` do meanwhile. Once retries are
        exhausted the expired entries are evicted, so the next ``get``
        fetches them again. Expired indices missing from a successful
        response are evicted as well.
        """
        async with self._lock:
            now = self._clock()
            expired = [
                index for index, (expiration, _) in self._mappings.items()
                if self._is_expired(expiration, now)
            ]
            if not expired:
                self._reset_failures()
                self._schedule_sweep()
                return

            try:
                renewed = await self._fetch(expired)
            except Exception:
                self._sweep_failures += 1
                if self._sweep_failures <= self.sweep_retries:
                    delay = self.retry_backoff * self._sweep_failures
                    logger.exception(
                        f"Refreshing expired mappings failed ({self._sweep_failures}/{self.sweep_retries}),"
                        f" retrying in {delay}s"
                    )
                    self._retry_at = now + delay
                    self._schedule_sweep()
                    return
                logger.error(f"Refreshing expired mappings failed, evicting {len(expired)} indices: {expired}")
                self._evict(expired)
                self._reset_failures()
                self._schedule_sweep()
                return

            self._reset_failures()
            self._mappings.update(renewed)
            missing = [index for index in expired if index not in renewed]
            if missing:
                logger.debug(f"@@@>> MAPPINGS GONE: {missing}")
                self._evict(missing)
            logger.debug(f"@@@>> MAPPINGS REFRESHED: {len(expired) - len(missing)} expired")
            self._schedule_sweep()

    async def deserialize(self, value: Any, key_fn: KeyFunction | None = None) -> Any:
        """Deserialize ``value`` using the cached mappings of its documents.

        The mappings of every index found in ``value`` are resolved through
        ``get`` before the conversion runs. Streams (iterators, async
        iterables and any iterable other than a list or tuple) are returned
        as single-pass async generators resolving mappings as each element
        is consumed.

        Args:
            value: The decoded response, list or stream of responses.
            key_fn: Function applied to every textual key of the result.

        Returns:
            The deserialized value, or an async generator for streams.
        """
        if isinstance(value, AsyncIterable) or is_stream(value):
            return self._deserialize_stream(value, key_fn)
        mappings = {index: await self.get(index) for index in document_indices(value)}
        return deserialize(value, mappings.__getitem__, key_fn)

    async def _deserialize_stream(self, stream: Iterable | AsyncIterable,
            key_fn: KeyFunction | None) -> AsyncIterator:
        if isinstance(stream, AsyncIterable):
            async for value in stream:
                yield await self.deserialize(value, key_fn)
        else:
            for value in stream:
                yield await self.deserialize(value, key_fn)

    def _is_expired(self, expiration: float | None, now: float) -> bool:
        return expiration is not None and expiration <= now

    async def _fetch(self, indices: list[str] | None = None) -> dict[str, Entry]:
        result = await self.client.get_mapping(indices)
        expiration = None if self.time_to_live is None else self._clock() + self.time_to_live
        return {
            index: (expiration, payload['mappings'])
            for index, payload in result.items()
        }

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._next_sweep_at = None

    def _evict(self, indices: list[str]) -> None:
        for index in indices:
            self._mappings.pop(index, None)

    def _reset_failures(self) -> None:
        self._sweep_failures = 0
        self._retry_at = None

    def _schedule_sweep(self) -> None:
        self._cancel_timer()
        expirations = [e for e, _ in self._mappings.values() if e is not None]
        if not expirations:
            return
        at = min(expirations)
        if self._retry_at is not None:
            at = max(at, self._retry_at)
        delay = max(0.0, at - self._clock())
        self._next_sweep_at = at
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._next_sweep_at = None
        self._sweep_task = asyncio.get_running_loop().create_task(self.sweep())
