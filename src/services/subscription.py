"""Live snapshot subscriptions over a document collection."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from src.core import db_client


logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotHandler = Callable[[tuple[Any, ...]], Awaitable[None] | None]


class SnapshotSubscription(Generic[T]):
    """Keeps the latest parsed snapshot of a collection and forwards every new one.

    Each delivery is the complete current list (never a diff), parsed into immutable
    domain models; documents the parser rejects are left out. Call ``close()`` to
    stop receiving snapshots.
    """

    def __init__(
        self,
        *,
        collection: str,
        parse: Callable[[dict[str, Any]], T | None],
        on_change: SnapshotHandler | None = None,
        filter_query: str = "",
    ) -> None:
        self.collection = collection
        self.filter_query = filter_query
        self._parse = parse
        self._on_change = on_change
        self._snapshot: tuple[T, ...] = ()
        self._registration: db_client.ListenerRegistration | None = None

    @property
    def snapshot(self) -> tuple[T, ...]:
        """Most recently delivered snapshot."""
        return self._snapshot

    @property
    def active(self) -> bool:
        return self._registration is not None and self._registration.active

    def _materialize(self, records: list[dict[str, Any]]) -> tuple[T, ...]:
        items = (self._parse(record) for record in records)
        return tuple(item for item in items if item is not None)

    async def _deliver(self, records: list[dict[str, Any]]) -> None:
        self._snapshot = self._materialize(records)
        if self._on_change is None:
            return
        result = self._on_change(self._snapshot)
        if inspect.isawaitable(result):
            await result

    async def open(self) -> "SnapshotSubscription[T]":
        """Register the listener; the current snapshot is delivered before this returns."""
        self._registration = await db_client.add_listener(
            collection=self.collection,
            callback=self._deliver,
            filter_query=self.filter_query,
        )
        logger.debug("Opened subscription", extra={"collection": self.collection})
        return self

    def close(self) -> None:
        """Release the listener. Safe to call more than once."""
        if self._registration is not None:
            self._registration.remove()
            self._registration = None
