"""Pydantic models for the field sync core.

Defines the data contracts exchanged between the sync modules and the
``DataExchange`` collaborators:

- ``FieldChange`` / ``ObjectChange``: one object's changed fields.
- ``ChangeReport``: everything one side reports for a query window.
- ``RequestObject`` / ``SyncRequest``: the query a side is asked to answer.
- ``SyncOrder``: judged create/update instructions for one side.
- ``Diagnostic``: a non-fatal finding recorded during a run.
- ``SyncOutcome``: the two orders plus diagnostics of one process run.
- ``RunResult``: outcome of a full service run including delivery.

All models are frozen (immutable); orders are assembled through
``SyncOrderBuilder``.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, field_validator, model_validator

from .mapping import Side
from .values import NormalizedValue

Identifier = str | int


def _assume_utc(value: datetime | None) -> datetime | None:
    # Naive timestamps are read as UTC so both sides stay comparable.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Reported changes
# ---------------------------------------------------------------------------


class FieldChange(BaseModel):
    """A changed field value.

    Attributes:
        name: Field name on the side the change belongs to.
        value: Normalized new value.
        change_timestamp: When this specific field changed, if the side
            knows it.
    """

    name: str
    value: NormalizedValue
    change_timestamp: datetime | None = None

    model_config = {"frozen": True}

    @field_validator("change_timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class ObjectChange(BaseModel):
    """Changed fields of one object.

    Attributes:
        entity: Object type on the side the change belongs to.
        identifier: Record id on that side; ``None`` for an order entry
            whose record is not known there yet (to be created).
        fields: Changed fields in report order.
        change_timestamp: Object-level change time, used when field-level
            timestamps are unavailable.
        source_entity: Entity the change was translated from (order entries).
        source_identifier: Record id on the source side (order entries).
    """

    entity: str
    identifier: Identifier | None = None
    fields: tuple[FieldChange, ...] = ()
    change_timestamp: datetime | None = None
    source_entity: str | None = None
    source_identifier: Identifier | None = None

    model_config = {"frozen": True}

    @field_validator("change_timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)

    @property
    def is_identified(self) -> bool:
        return self.identifier is not None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> FieldChange | None:
        """Return the change for field *name*, or ``None``."""
        for field_change in self.fields:
            if field_change.name == name:
                return field_change
        return None


class ChangeReport(BaseModel):
    """Objects one side reports as changed since ``from_timestamp``."""

    side: Side
    from_timestamp: datetime | None = None
    objects: dict[str, tuple[ObjectChange, ...]] = {}

    model_config = {"frozen": True}

    def iter_objects(self) -> Iterator[ObjectChange]:
        """Yield every reported object, entity by entity."""
        for changes in self.objects.values():
            yield from changes

    @property
    def object_count(self) -> int:
        return sum(len(changes) for changes in self.objects.values())


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class RequestObject(BaseModel):
    """One object type and the mapped fields requested for it."""

    entity: str
    fields: tuple[str, ...]

    model_config = {"frozen": True}


class SyncRequest(BaseModel):
    """Query for objects changed since ``from_timestamp``."""

    from_timestamp: datetime | None = None
    objects: tuple[RequestObject, ...] = ()

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class SyncOrder(BaseModel):
    """Judged changes to apply on one side.

    Attributes:
        side: The side this order is delivered to.
        unidentified_objects: Per entity, changes with no known record on
            ``side`` (create).
        identified_objects: Per entity, identifier -> change (update).
    """

    side: Side
    unidentified_objects: dict[str, tuple[ObjectChange, ...]] = {}
    identified_objects: dict[str, dict[Identifier, ObjectChange]] = {}

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_partitions_disjoint(self) -> SyncOrder:
        updated_sources: set[tuple[str, str | None, Identifier]] = set()
        for entity, changes in self.identified_objects.items():
            for identifier, change in changes.items():
                if change.identifier != identifier or change.entity != entity:
                    raise ValueError(
                        f"identified entry {entity}/{identifier} does not "
                        "match its object change"
                    )
                if change.source_identifier is not None:
                    updated_sources.add(
                        (entity, change.source_entity, change.source_identifier)
                    )
        for entity, changes in self.unidentified_objects.items():
            for change in changes:
                if change.identifier is not None or change.entity != entity:
                    raise ValueError(
                        f"unidentified entry for {entity} carries an identifier"
                    )
                if change.source_identifier is None:
                    continue
                source = (entity, change.source_entity, change.source_identifier)
                if source in updated_sources:
                    raise ValueError(
                        f"{change.source_entity}/{change.source_identifier} is "
                        f"both created and updated as {entity}"
                    )
        return self

    @property
    def object_count(self) -> int:
        created = sum(len(c) for c in self.unidentified_objects.values())
        updated = sum(len(c) for c in self.identified_objects.values())
        return created + updated

    @property
    def is_empty(self) -> bool:
        return self.object_count == 0


class SyncOrderBuilder:
    """Accumulate object changes and partition them into a ``SyncOrder``.

    Args:
        side: The side the order will be delivered to.
    """

    def __init__(self, side: Side) -> None:
        self.side = side
        self._unidentified: dict[str, list[ObjectChange]] = {}
        self._identified: dict[str, dict[Identifier, ObjectChange]] = {}

    def add(self, change: ObjectChange) -> bool:
        """Place *change* in the matching partition.

        Returns:
            ``False`` if an update for the same ``(entity, identifier)``
            is already present (the change is not added).
        """
        if change.identifier is None:
            self._unidentified.setdefault(change.entity, []).append(change)
            return True
        updates = self._identified.setdefault(change.entity, {})
        if change.identifier in updates:
            return False
        updates[change.identifier] = change
        return True

    def build(self) -> SyncOrder:
        return SyncOrder(
            side=self.side,
            unidentified_objects={
                entity: tuple(changes)
                for entity, changes in self._unidentified.items()
            },
            identified_objects={
                entity: dict(changes)
                for entity, changes in self._identified.items()
            },
        )


# ---------------------------------------------------------------------------
# Diagnostics and results
# ---------------------------------------------------------------------------


class DiagnosticKind(str, Enum):
    """What a diagnostic reports."""

    UNMAPPED_FIELD_SKIPPED = "unmapped_field_skipped"
    NORMALIZATION_ERROR = "normalization_error"
    UNSUPPORTED_TYPE = "unsupported_type"
    CONFLICT_UNRESOLVED = "conflict_unresolved"
    OBJECT_SUPERSEDED = "object_superseded"
    DUPLICATE_TARGET = "duplicate_target"
    CORRELATION_FAILED = "correlation_failed"
    FETCH_FAILED = "fetch_failed"
    DELIVERY_FAILED = "delivery_failed"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Diagnostic(BaseModel):
    """A finding recorded during a run.

    Attributes:
        kind: Category of the finding.
        severity: How serious it is.
        message: Human-readable description.
        side: Side the affected data came from, if any.
        entity: Entity of the affected object on that side.
        identifier: Identifier of the affected object on that side.
        field: Affected field on that side.
    """

    kind: DiagnosticKind
    severity: Severity = Severity.WARNING
    message: str
    side: Side | None = None
    entity: str | None = None
    identifier: Identifier | None = None
    field: str | None = None

    model_config = {"frozen": True}


class SyncOutcome(BaseModel):
    """Orders and diagnostics produced by one ``SyncProcess`` run.

    Attributes:
        internal_order: Changes to deliver to the internal side.
        integration_order: Changes to deliver to the integration side.
        diagnostics: Non-fatal findings in the order they were recorded.
        excluded: Number of objects dropped because of isolated errors.
    """

    internal_order: SyncOrder
    integration_order: SyncOrder
    diagnostics: list[Diagnostic] = []
    excluded: int = 0

    model_config = {"frozen": True}

    def order_for(self, side: Side) -> SyncOrder:
        """Return the order destined for *side*."""
        if side is Side.INTERNAL:
            return self.internal_order
        return self.integration_order


class RunResult(BaseModel):
    """Outcome of a full sync run, delivery included.

    Attributes:
        integration: Name of the integration that was synced.
        delivered: ``True`` when every non-empty order was applied.
        diagnostics: Findings from processing and delivery.
        error: Fatal error message when the run aborted.
        outcome: The judged orders (``None`` when the run aborted).
        delivered_sides: Sides whose order was applied successfully.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
    """

    integration: str
    delivered: bool = False
    diagnostics: list[Diagnostic] = []
    error: str | None = None
    outcome: SyncOutcome | None = None
    delivered_sides: list[Side] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def fatal(self) -> bool:
        return self.error is not None

    @property
    def conflicts(self) -> list[Diagnostic]:
        """Diagnostics reporting unresolved conflicts."""
        return [
            d
            for d in self.diagnostics
            if d.kind == DiagnosticKind.CONFLICT_UNRESOLVED
        ]

    @property
    def errors(self) -> list[Diagnostic]:
        """Diagnostics with error severity."""
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    def summary(self) -> str:
        """Format a short multi-line summary of the run."""
        if self.outcome is not None:
            to_internal = self.outcome.internal_order.object_count
            to_integration = self.outcome.integration_order.object_count
        else:
            to_internal = to_integration = 0
        status = "failed" if self.fatal else (
            "delivered" if self.delivered else "partially delivered"
        )
        lines = [
            f"Sync run for integration '{self.integration}': {status}",
            f"  To internal:    {to_internal}",
            f"  To integration: {to_integration}",
            f"  Conflicts:      {len(self.conflicts)}",
            f"  Errors:         {len(self.errors)}",
            f"  Diagnostics:    {len(self.diagnostics)}",
        ]
        if self.error:
            lines.append(f"  Fatal:          {self.error}")
        return "\n".join(lines)
