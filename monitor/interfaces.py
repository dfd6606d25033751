"""
Stage contracts for monitor pipelines, and the scheduled-job capability.

A monitor pipeline is a chain of stages, each turning one async stream into
the next: a Fetcher pulls payloads from an external feed, a Parser turns
each payload into article records, optional transforms enrich or filter
them, and a Sink persists them. Stages report counters through ``stats()``;
the monitor run merges them into its result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List

from .models import ParsedItem, RawItem


class Transform(ABC):
    """One pipeline stage. Plugins subclass this (or one of the kinds below)."""

    name: str = ""

    @abstractmethod
    def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[Any]:
        ...

    def stats(self) -> Dict[str, Any]:
        return {}


class Fetcher(Transform):
    """Head of a chain. The incoming stream is only a start signal."""

    @abstractmethod
    def fetch(self) -> AsyncIterator[RawItem]:
        ...

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[RawItem]:
        async for _ in items:
            break
        async for raw in self.fetch():
            yield raw


class Parser(Transform):
    """RawItem in, zero or more ParsedItems out."""

    @abstractmethod
    async def parse(self, item: RawItem) -> List[ParsedItem]:
        ...

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[ParsedItem]:
        async for raw in items:
            for parsed in await self.parse(raw):
                yield parsed


class Sink(Transform):
    """Tail of a chain: sees every item, then ``flush()`` once at end of stream.

    Items are passed through so that the runner can count them.
    """

    @abstractmethod
    async def handle(self, item: Any) -> None:
        ...

    async def flush(self) -> None:
        pass

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[Any]:
        async for item in items:
            await self.handle(item)
            yield item
        await self.flush()


class JobAction(ABC):
    """Target of a scheduled job.

    ``run`` returns a JSON-serializable result summary or raises on failure.
    Actions that reach out over the network apply their own timeout.
    """

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @abstractmethod
    async def run(self) -> Dict[str, Any]:
        ...
