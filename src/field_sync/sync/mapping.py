"""Field mapping manual for one integration.

A ``MappingManual`` is an ordered set of ``FieldMapping`` entries, each
pairing one internal ``(entity, field)`` with one integration
``(entity, field)``.  Lookups run in either direction:

- ``resolve(direction, entity, field)`` -- translate one field, or
  ``None`` when the field is not mapped (an expected condition, callers
  decide to skip or log).
- ``fields_for(direction, entity)`` -- source-side fields mapped for an
  entity, used to build the request sent to that side.

The correspondence is 1:1 per direction; a manual declaring the same
``(entity, field)`` twice on either side is rejected at construction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel

from .errors import DuplicateMappingError
from .values import FieldTypeTable

logger = logging.getLogger(__name__)


class Side(str, Enum):
    """One end of a synchronisation."""

    INTERNAL = "internal"
    INTEGRATION = "integration"

    @property
    def opposite(self) -> Side:
        if self is Side.INTERNAL:
            return Side.INTEGRATION
        return Side.INTERNAL


class Direction(str, Enum):
    """Translation direction through the manual."""

    TO_INTEGRATION = "to_integration"
    TO_INTERNAL = "to_internal"

    @property
    def source(self) -> Side:
        if self is Direction.TO_INTEGRATION:
            return Side.INTERNAL
        return Side.INTEGRATION

    @property
    def target(self) -> Side:
        return self.source.opposite

    @classmethod
    def from_source(cls, side: Side) -> Direction:
        """Return the direction that translates *side*'s fields."""
        if side is Side.INTERNAL:
            return cls.TO_INTEGRATION
        return cls.TO_INTERNAL


class FieldRef(NamedTuple):
    """An ``(entity, field)`` pair on one side."""

    entity: str
    field: str


class FieldMapping(BaseModel):
    """One declared internal/integration field correspondence."""

    internal_entity: str
    internal_field: str
    integration_entity: str
    integration_field: str

    model_config = {"frozen": True}

    def ref(self, side: Side) -> FieldRef:
        """Return this mapping's ``(entity, field)`` on *side*."""
        if side is Side.INTERNAL:
            return FieldRef(self.internal_entity, self.internal_field)
        return FieldRef(self.integration_entity, self.integration_field)


class MappingManual:
    """Immutable lookup table driving every translation of one integration.

    Args:
        integration: Name of the integration the manual belongs to.
        mappings: Field mappings in declaration order.
        internal_types: Field kinds declared by the internal side.
        integration_types: Field kinds declared by the integration side.

    Raises:
        DuplicateMappingError: If an ``(entity, field)`` appears twice on
            either side.
    """

    def __init__(
        self,
        integration: str,
        mappings: Iterable[FieldMapping],
        internal_types: FieldTypeTable | None = None,
        integration_types: FieldTypeTable | None = None,
    ) -> None:
        self.integration = integration
        self._mappings: tuple[FieldMapping, ...] = tuple(mappings)
        self._types = {
            Side.INTERNAL: internal_types or FieldTypeTable(),
            Side.INTEGRATION: integration_types or FieldTypeTable(),
        }
        self._index: dict[Side, dict[FieldRef, FieldMapping]] = {
            Side.INTERNAL: {},
            Side.INTEGRATION: {},
        }
        for mapping in self._mappings:
            for side in Side:
                ref = mapping.ref(side)
                if ref in self._index[side]:
                    raise DuplicateMappingError(ref, side)
                self._index[side][ref] = mapping

        logger.debug(
            "Mapping manual '%s' loaded with %d field mappings",
            integration,
            len(self._mappings),
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(
        self, direction: Direction, entity: str, field: str
    ) -> FieldRef | None:
        """Translate ``entity.field`` from the direction's source side.

        Returns:
            The target-side ``FieldRef``, or ``None`` if not mapped.
        """
        mapping = self._index[direction.source].get(FieldRef(entity, field))
        if mapping is None:
            return None
        return mapping.ref(direction.target)

    def fields_for(self, direction: Direction, entity: str) -> set[str]:
        """Return the source-side fields of *entity* that have a mapping."""
        return {
            ref.field
            for ref in self._index[direction.source]
            if ref.entity == entity
        }

    def target_entities(self, direction: Direction, entity: str) -> list[str]:
        """Return target-side entities that *entity*'s fields map into."""
        targets: list[str] = []
        for ref, mapping in self._index[direction.source].items():
            if ref.entity != entity:
                continue
            target = mapping.ref(direction.target).entity
            if target not in targets:
                targets.append(target)
        return targets

    def entities(self, side: Side) -> list[str]:
        """Return the mapped entities of *side* in declaration order."""
        seen: list[str] = []
        for mapping in self._mappings:
            entity = mapping.ref(side).entity
            if entity not in seen:
                seen.append(entity)
        return seen

    def field_types(self, side: Side) -> FieldTypeTable:
        """Return the field-kind table declared by *side*."""
        return self._types[side]

    @property
    def mappings(self) -> tuple[FieldMapping, ...]:
        return self._mappings

    def __iter__(self) -> Iterator[FieldMapping]:
        return iter(self._mappings)

    def __len__(self) -> int:
        return len(self._mappings)

    def __repr__(self) -> str:
        return (
            f"MappingManual(integration={self.integration!r}, "
            f"mappings={len(self._mappings)})"
        )
