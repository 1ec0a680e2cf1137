"""Shared pytest fixtures for field-sync tests."""

from __future__ import annotations

from typing import Any

import pytest

from field_sync.sync.mapping import FieldMapping, MappingManual, Side
from field_sync.sync.models import (
    ChangeReport,
    FieldChange,
    ObjectChange,
    SyncOrder,
    SyncRequest,
)
from field_sync.sync.values import FieldTypeTable, ValueKind, ValueNormalizer


class InMemoryExchange:
    """A ``DataExchange`` over plain dict records.

    Records are native dicts keyed by entity; each carries an ``id`` and
    a ``last_modified`` timestamp.  A record may also carry
    ``_field_timestamps`` (field -> datetime) when the side knows exactly
    when each field changed.  Delivered orders are kept as
    create/update payloads for inspection.
    """

    def __init__(
        self,
        side: Side,
        records: dict[str, list[dict[str, Any]]] | None = None,
        types: dict[str, dict[str, ValueKind]] | None = None,
        fetch_error: Exception | None = None,
        delivery_error: Exception | None = None,
    ) -> None:
        self.side = side
        self.records = records or {}
        self.types = types or {}
        self.fetch_error = fetch_error
        self.delivery_error = delivery_error
        self.normalizer = ValueNormalizer()
        self.requests: list[SyncRequest] = []
        self.orders: list[SyncOrder] = []
        self.payload: dict[str, list[dict[str, Any]]] = {
            "create": [],
            "update": [],
        }

    def get_sync_report(self, request: SyncRequest) -> ChangeReport:
        self.requests.append(request)
        if self.fetch_error is not None:
            raise self.fetch_error

        objects: dict[str, tuple[ObjectChange, ...]] = {}
        for requested in request.objects:
            changes = []
            for record in self.records.get(requested.entity, []):
                modified = record.get("last_modified")
                if (
                    request.from_timestamp is not None
                    and modified is not None
                    and modified < request.from_timestamp
                ):
                    continue
                native = {
                    k: v for k, v in record.items() if k in requested.fields
                }
                values, errors = self.normalizer.normalize_record(
                    native, self.types.get(requested.entity, {})
                )
                assert not errors, errors
                field_timestamps = record.get("_field_timestamps", {})
                changes.append(
                    ObjectChange(
                        entity=requested.entity,
                        identifier=record["id"],
                        fields=tuple(
                            FieldChange(
                                name=name,
                                value=value,
                                change_timestamp=field_timestamps.get(name),
                            )
                            for name, value in values.items()
                        ),
                        change_timestamp=modified,
                    )
                )
            if changes:
                objects[requested.entity] = tuple(changes)

        return ChangeReport(
            side=self.side,
            from_timestamp=request.from_timestamp,
            objects=objects,
        )

    def execute_sync_order(self, order: SyncOrder) -> None:
        self.orders.append(order)
        if self.delivery_error is not None:
            raise self.delivery_error

        for entity, changes in order.unidentified_objects.items():
            for change in changes:
                person = {"object": entity}
                for f in change.fields:
                    person[f.name] = self.normalizer.to_native(
                        f.value.kind, f.value
                    )
                self.payload["create"].append(person)
        for entity, updates in order.identified_objects.items():
            for identifier, change in updates.items():
                person = {"id": identifier, "object": entity}
                for f in change.fields:
                    person[f.name] = self.normalizer.to_native(
                        f.value.kind, f.value
                    )
                self.payload["update"].append(person)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

INTERNAL_TYPES = {
    "lead": {
        "firstname": ValueKind.STRING,
        "lastname": ValueKind.STRING,
        "email": ValueKind.STRING,
        "points": ValueKind.INT,
    }
}

INTEGRATION_TYPES = {
    "Contact": {
        "first_name": ValueKind.STRING,
        "last_name": ValueKind.STRING,
        "email": ValueKind.STRING,
        "score": ValueKind.STRING,
    }
}


@pytest.fixture
def people_mappings() -> list[FieldMapping]:
    """Internal ``lead`` fields mapped onto an integration ``Contact``."""
    return [
        FieldMapping(
            internal_entity="lead",
            internal_field=internal,
            integration_entity="Contact",
            integration_field=integration,
        )
        for internal, integration in (
            ("firstname", "first_name"),
            ("lastname", "last_name"),
            ("email", "email"),
            ("points", "score"),
        )
    ]


@pytest.fixture
def people_manual(people_mappings) -> MappingManual:
    return MappingManual(
        "crm",
        people_mappings,
        internal_types=FieldTypeTable(entities=INTERNAL_TYPES),
        integration_types=FieldTypeTable(entities=INTEGRATION_TYPES),
    )


@pytest.fixture
def make_exchange():
    """Factory for ``InMemoryExchange`` instances with the people types."""

    def _make(side: Side, records=None, **kwargs) -> InMemoryExchange:
        types = INTERNAL_TYPES if side is Side.INTERNAL else INTEGRATION_TYPES
        return InMemoryExchange(side, records, types, **kwargs)

    return _make
