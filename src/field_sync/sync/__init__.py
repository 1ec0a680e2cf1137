"""Bidirectional field-level sync core.

Public API for reconciling records between the internal system of
record and an external integration, each with its own entities, field
names and value encodings.

Architecture
------------
Each sync run is a pure computation over two change reports.  Values
are compared in a side-agnostic normalized form; a judge decides per
field which side wins when both changed; the survivors are partitioned
into per-side create/update orders.  All I/O happens behind the
``DataExchange`` protocol implemented by the caller.

Modules:

- ``values``    -- ``ValueKind``, ``NormalizedValue``, ``FieldTypeTable``,
  ``ValueNormalizer``.
- ``mapping``   -- ``Side``, ``Direction``, ``FieldMapping``, ``MappingManual``.
- ``models``    -- reports, requests, orders, diagnostics, results.
- ``judge``     -- ``SyncJudge`` protocol and the built-in judges.
- ``exchange``  -- ``DataExchange`` protocol and correlators.
- ``process``   -- ``SyncProcess``: reports in, orders out.
- ``service``   -- ``SyncService``: run + delivery.
- ``reporter``  -- Human-readable and JSON formatting.
- ``errors``    -- Exception taxonomy.

Usage example
-------------
::

    from datetime import datetime, timezone
    from field_sync.sync import FieldMapping, MappingManual, SyncService, format_run_result

    manual = MappingManual(
        "crm",
        [FieldMapping(internal_entity="lead", internal_field="email",
                      integration_entity="Contact", integration_field="email")],
    )
    result = SyncService().sync(
        internal_exchange,           # DataExchange for the internal side
        crm_exchange,                # DataExchange for the integration
        manual,
        datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    print(format_run_result(result))
"""

from .errors import (
    DuplicateMappingError,
    FieldSyncError,
    FieldValueError,
    NormalizationError,
    SyncDeliveryError,
    SyncFetchError,
    UnsupportedTypeError,
)
from .values import FieldTypeTable, NormalizedValue, ValueKind, ValueNormalizer
from .mapping import Direction, FieldMapping, FieldRef, MappingManual, Side
from .models import (
    ChangeReport,
    Diagnostic,
    DiagnosticKind,
    FieldChange,
    ObjectChange,
    RequestObject,
    RunResult,
    Severity,
    SyncOrder,
    SyncOutcome,
    SyncRequest,
)
from .judge import (
    FieldClaim,
    IntegrationWinsJudge,
    InternalWinsJudge,
    LatestChangeJudge,
    SyncJudge,
    Verdict,
    Winner,
    create_judge,
)
from .exchange import Correlator, DataExchange, StaticCorrelator, no_correlation
from .process import SyncProcess, build_requests
from .service import SyncService
from .reporter import format_order, format_run_result, result_to_json

__all__ = [
    "ChangeReport",
    "Correlator",
    "DataExchange",
    "Diagnostic",
    "DiagnosticKind",
    "Direction",
    "DuplicateMappingError",
    "FieldChange",
    "FieldClaim",
    "FieldMapping",
    "FieldRef",
    "FieldSyncError",
    "FieldTypeTable",
    "FieldValueError",
    "IntegrationWinsJudge",
    "InternalWinsJudge",
    "LatestChangeJudge",
    "MappingManual",
    "NormalizationError",
    "NormalizedValue",
    "ObjectChange",
    "RequestObject",
    "RunResult",
    "Severity",
    "Side",
    "StaticCorrelator",
    "SyncDeliveryError",
    "SyncFetchError",
    "SyncJudge",
    "SyncOrder",
    "SyncOutcome",
    "SyncProcess",
    "SyncRequest",
    "SyncService",
    "UnsupportedTypeError",
    "ValueKind",
    "ValueNormalizer",
    "Verdict",
    "Winner",
    "build_requests",
    "create_judge",
    "format_order",
    "format_run_result",
    "no_correlation",
    "result_to_json",
]
