"""Boundary contracts towards the systems being synchronised.

``DataExchange`` is implemented once per side by the caller; it is the
only place where network or storage I/O happens.  Correlation of an
object with an existing record on the other side is also delegated to
the caller, as a plain callable (``Correlator``).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Protocol

from .models import ChangeReport, Identifier, ObjectChange, SyncOrder, SyncRequest

logger = logging.getLogger(__name__)


class DataExchange(Protocol):
    """Protocol that every side's exchange must satisfy."""

    def get_sync_report(self, request: SyncRequest) -> ChangeReport:
        """Return all requested objects changed since the request window.

        Values must already be normalized into the side's declared kinds.
        """
        ...  # pragma: no cover

    def execute_sync_order(self, order: SyncOrder) -> None:
        """Apply a create/update order.

        Must be safe to call again with the same order (idempotent upsert).
        """
        ...  # pragma: no cover


Correlator = Callable[[str, ObjectChange], Identifier | None]
"""``(destination_entity, source_change) -> destination identifier``."""


def no_correlation(entity: str, change: ObjectChange) -> Identifier | None:
    """Default correlator: nothing is known on the other side."""
    return None


class StaticCorrelator:
    """Correlate objects through a known-identifier table.

    The table is keyed by ``(source_entity, source_identifier,
    destination_entity)`` and is usually loaded by the caller from
    wherever it persists identifier pairs between runs.

    Args:
        table: Mapping of correlation keys to destination identifiers.
    """

    def __init__(
        self,
        table: Mapping[tuple[str, Identifier, str], Identifier] | None = None,
    ) -> None:
        self._table = dict(table or {})

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[str, Identifier, str, Identifier]],
    ) -> StaticCorrelator:
        """Build a two-way table from ``(entity_a, id_a, entity_b, id_b)`` rows."""
        table: dict[tuple[str, Identifier, str], Identifier] = {}
        for entity_a, id_a, entity_b, id_b in pairs:
            table[(entity_a, id_a, entity_b)] = id_b
            table[(entity_b, id_b, entity_a)] = id_a
        return cls(table)

    def __call__(
        self, entity: str, change: ObjectChange
    ) -> Identifier | None:
        if change.identifier is None:
            return None
        return self._table.get((change.entity, change.identifier, entity))

    def __len__(self) -> int:
        return len(self._table)
