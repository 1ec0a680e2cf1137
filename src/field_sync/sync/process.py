"""Sync process: turn two change reports into two judged sync orders.

The ``SyncProcess`` ties together the mapping manual, the value
normalizer, the judge and the correlator.  One run:

1. Builds a ``SyncRequest`` per side from the manual's mapped fields.
2. Fetches a ``ChangeReport`` from each side (concurrently in
   ``run_async``).  Any fetch failure aborts the run with
   ``SyncFetchError``; no order is produced.
3. Translates every reported object into the other side's frame.
   Unmapped fields are dropped with a diagnostic; values are coerced to
   the declared kinds of both sides.  Field errors are collected per
   object and exclude the whole object.
4. Pairs objects that both sides reported for the same logical record
   and judges every field both of them changed.
5. Partitions the surviving changes into per-side ``SyncOrder``s
   (identified updates vs unidentified creates).

Object-level problems never abort the run; they end up in the outcome's
diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from field_sync.core.async_utils import gather_fail_fast, run_sync
from field_sync.sync.errors import (
    FieldValueError,
    SyncFetchError,
    UnsupportedTypeError,
)
from field_sync.sync.exchange import Correlator, DataExchange, no_correlation
from field_sync.sync.judge import (
    FieldClaim,
    LatestChangeJudge,
    SyncJudge,
    Winner,
)
from field_sync.sync.mapping import Direction, MappingManual, Side
from field_sync.sync.models import (
    ChangeReport,
    Diagnostic,
    DiagnosticKind,
    FieldChange,
    Identifier,
    ObjectChange,
    RequestObject,
    Severity,
    SyncOrder,
    SyncOrderBuilder,
    SyncOutcome,
    SyncRequest,
)
from field_sync.sync.values import NormalizedValue, ValueNormalizer

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass
class _MappedField:
    """One reported field, translated into the other side's frame."""

    change: FieldChange
    source_value: NormalizedValue
    target_name: str
    target_value: NormalizedValue


@dataclass
class _Candidate:
    """A reported object bound for one entity on the other side."""

    side: Side
    source: ObjectChange
    target_entity: str
    target_identifier: Identifier | None
    fields: list[_MappedField] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, Identifier | None, str]:
        return (self.source.entity, self.source.identifier, self.target_entity)


def build_requests(
    manual: MappingManual, from_timestamp: datetime | None
) -> dict[Side, SyncRequest]:
    """Build the ``SyncRequest`` for each side of *manual*.

    Entities and fields appear in the order the manual declares them.
    """
    requests: dict[Side, SyncRequest] = {}
    for side in Side:
        fields_by_entity: dict[str, list[str]] = {}
        for mapping in manual:
            ref = mapping.ref(side)
            fields_by_entity.setdefault(ref.entity, []).append(ref.field)
        requests[side] = SyncRequest(
            from_timestamp=from_timestamp,
            objects=tuple(
                RequestObject(entity=entity, fields=tuple(fields))
                for entity, fields in fields_by_entity.items()
            ),
        )
    return requests


class SyncProcess:
    """Run one reconciliation between the internal side and an integration.

    Args:
        manual: Field mapping manual of the integration.
        internal_exchange: Exchange of the internal side.
        integration_exchange: Exchange of the integration side.
        judge: Conflict resolution strategy (``LatestChangeJudge`` by default).
        correlator: Resolves destination identifiers (nothing is
            correlated by default, so every change is a create).
        normalizer: Coerces values between declared kinds.
    """

    def __init__(
        self,
        manual: MappingManual,
        internal_exchange: DataExchange,
        integration_exchange: DataExchange,
        judge: SyncJudge | None = None,
        correlator: Correlator | None = None,
        normalizer: ValueNormalizer | None = None,
    ) -> None:
        self.manual = manual
        self.exchanges: dict[Side, DataExchange] = {
            Side.INTERNAL: internal_exchange,
            Side.INTEGRATION: integration_exchange,
        }
        self.judge: SyncJudge = judge or LatestChangeJudge()
        self.correlator: Correlator = correlator or no_correlation
        self.normalizer = normalizer or ValueNormalizer()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, from_timestamp: datetime | None) -> SyncOutcome:
        """Fetch both reports one after the other and reconcile them.

        Raises:
            SyncFetchError: If either side's report cannot be fetched.
        """
        requests = self.build_requests(from_timestamp)
        reports = [self._fetch(side, requests[side]) for side in Side]
        return self.reconcile(*reports)

    async def run_async(self, from_timestamp: datetime | None) -> SyncOutcome:
        """Fetch both reports concurrently and reconcile them.

        The first failing fetch cancels the other one; cancelling the
        caller cancels both.  No outcome is produced in either case.

        Raises:
            SyncFetchError: If either side's report cannot be fetched.
        """
        requests = self.build_requests(from_timestamp)
        reports = await gather_fail_fast(
            [run_sync(self._fetch, side, requests[side]) for side in Side]
        )
        return self.reconcile(*reports)

    def build_requests(
        self, from_timestamp: datetime | None
    ) -> dict[Side, SyncRequest]:
        """Build the request for each side from the manual's mapped fields."""
        return build_requests(self.manual, from_timestamp)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(
        self,
        internal_report: ChangeReport,
        integration_report: ChangeReport,
    ) -> SyncOutcome:
        """Judge two change reports into two sync orders.

        Pure computation: no exchange is called.
        """
        diagnostics: list[Diagnostic] = []
        candidates: dict[Side, list[_Candidate]] = {}
        excluded = 0

        for report in (internal_report, integration_report):
            side_candidates: list[_Candidate] = []
            for change in report.iter_objects():
                translated = self._translate(report.side, change, diagnostics)
                if translated is None:
                    excluded += 1
                    continue
                side_candidates.extend(translated)
            candidates[report.side] = side_candidates

        self._judge_pairs(
            candidates[Side.INTERNAL],
            candidates[Side.INTEGRATION],
            diagnostics,
        )

        orders: dict[Side, SyncOrder] = {
            side.opposite: self._build_order(
                side.opposite, candidates[side], diagnostics
            )
            for side in Side
        }

        logger.info(
            "Reconciled '%s': %d to internal, %d to integration, "
            "%d diagnostics, %d excluded",
            self.manual.integration,
            orders[Side.INTERNAL].object_count,
            orders[Side.INTEGRATION].object_count,
            len(diagnostics),
            excluded,
        )
        return SyncOutcome(
            internal_order=orders[Side.INTERNAL],
            integration_order=orders[Side.INTEGRATION],
            diagnostics=diagnostics,
            excluded=excluded,
        )

    def _translate(
        self,
        side: Side,
        change: ObjectChange,
        diagnostics: list[Diagnostic],
    ) -> list[_Candidate] | None:
        """Map one object into the other side's frame.

        Returns one candidate per destination entity, an empty list when
        nothing is mapped, or ``None`` when a field error or a failing
        correlator excludes the object.
        """
        direction = Direction.from_source(side)
        source_types = self.manual.field_types(side)
        target_types = self.manual.field_types(side.opposite)

        grouped: dict[str, list[_MappedField]] = {}
        failures: list[tuple[str, FieldValueError]] = []

        for field_change in change.fields:
            target = self.manual.resolve(
                direction, change.entity, field_change.name
            )
            if target is None:
                self._record(
                    diagnostics,
                    DiagnosticKind.UNMAPPED_FIELD_SKIPPED,
                    Severity.WARNING,
                    f"No mapping for {side.value} field "
                    f"'{change.entity}.{field_change.name}'",
                    side,
                    change,
                    field_change.name,
                )
                continue

            try:
                source_value = field_change.value
                declared = source_types.kind_of(change.entity, field_change.name)
                if declared is not None:
                    source_value = self.normalizer.coerce(
                        source_value, declared, field_change.name
                    )
                target_value = source_value
                target_kind = target_types.kind_of(target.entity, target.field)
                if target_kind is not None:
                    target_value = self.normalizer.coerce(
                        source_value, target_kind, target.field
                    )
            except FieldValueError as exc:
                failures.append((field_change.name, exc))
                continue

            grouped.setdefault(target.entity, []).append(
                _MappedField(
                    change=field_change,
                    source_value=source_value,
                    target_name=target.field,
                    target_value=target_value,
                )
            )

        if failures:
            for field_name, exc in failures:
                kind = (
                    DiagnosticKind.UNSUPPORTED_TYPE
                    if isinstance(exc, UnsupportedTypeError)
                    else DiagnosticKind.NORMALIZATION_ERROR
                )
                self._record(
                    diagnostics,
                    kind,
                    Severity.ERROR,
                    f"{exc}; object excluded",
                    side,
                    change,
                    field_name,
                )
            return None

        if not grouped:
            self._record(
                diagnostics,
                DiagnosticKind.OBJECT_SUPERSEDED,
                Severity.INFO,
                f"{side.value} '{change.entity}/{change.identifier}' "
                "reported no mapped fields",
                side,
                change,
            )
            return []

        targets: dict[str, Identifier | None] = {}
        for entity in grouped:
            try:
                targets[entity] = self.correlator(entity, change)
            except Exception as exc:
                self._record(
                    diagnostics,
                    DiagnosticKind.CORRELATION_FAILED,
                    Severity.ERROR,
                    f"Cannot correlate {side.value} "
                    f"'{change.entity}/{change.identifier}' with '{entity}': "
                    f"{exc}; object excluded",
                    side,
                    change,
                )
                return None

        return [
            _Candidate(
                side=side,
                source=change,
                target_entity=entity,
                target_identifier=targets[entity],
                fields=fields,
            )
            for entity, fields in grouped.items()
        ]

    def _judge_pairs(
        self,
        internal: list[_Candidate],
        integration: list[_Candidate],
        diagnostics: list[Diagnostic],
    ) -> None:
        """Judge every field claimed by both sides for the same record.

        Two candidates describe the same record when either one's
        destination identifier points at the other's source object; the
        one without a destination identifier then takes the other's source
        identifier.  Losing fields are removed from the candidates in place.
        """
        by_key = {
            Side.INTERNAL: {c.key: c for c in internal if c.source.identifier is not None},
            Side.INTEGRATION: {c.key: c for c in integration if c.source.identifier is not None},
        }
        pairs: list[tuple[_Candidate, _Candidate]] = []
        seen: set[tuple[int, int]] = set()

        for candidate in internal + integration:
            if candidate.target_identifier is None:
                continue
            other = by_key[candidate.side.opposite].get(
                (
                    candidate.target_entity,
                    candidate.target_identifier,
                    candidate.source.entity,
                )
            )
            if other is None:
                continue
            pair = (
                (candidate, other)
                if candidate.side is Side.INTERNAL
                else (other, candidate)
            )
            marker = (id(pair[0]), id(pair[1]))
            if marker not in seen:
                seen.add(marker)
                pairs.append(pair)

        for internal_candidate, integration_candidate in pairs:
            # A pair found through one side's correlation identifies both.
            if internal_candidate.target_identifier is None:
                internal_candidate.target_identifier = (
                    integration_candidate.source.identifier
                )
            if integration_candidate.target_identifier is None:
                integration_candidate.target_identifier = (
                    internal_candidate.source.identifier
                )
            self._judge_pair(internal_candidate, integration_candidate, diagnostics)

    def _judge_pair(
        self,
        internal: _Candidate,
        integration: _Candidate,
        diagnostics: list[Diagnostic],
    ) -> None:
        # Claims are compared in the internal frame.
        integration_fields = {f.target_name: f for f in integration.fields}

        for internal_field in list(internal.fields):
            name = internal_field.change.name
            integration_field = integration_fields.get(name)
            if integration_field is None:
                continue

            verdict = self.judge.decide(
                FieldClaim(
                    change=FieldChange(
                        name=name,
                        value=internal_field.source_value,
                        change_timestamp=internal_field.change.change_timestamp,
                    ),
                    object_timestamp=internal.source.change_timestamp,
                ),
                FieldClaim(
                    change=FieldChange(
                        name=name,
                        value=integration_field.target_value,
                        change_timestamp=integration_field.change.change_timestamp,
                    ),
                    object_timestamp=integration.source.change_timestamp,
                ),
            )
            logger.debug(
                "%s.%s -> %s (%s)",
                internal.source.entity,
                name,
                verdict.winner.value,
                verdict.reason,
            )

            if verdict.winner is not Winner.INTEGRATION:
                integration.fields.remove(integration_field)
            if verdict.winner is not Winner.INTERNAL:
                internal.fields.remove(internal_field)

            if verdict.conflict:
                self._record(
                    diagnostics,
                    DiagnosticKind.CONFLICT_UNRESOLVED,
                    Severity.WARNING,
                    f"Both sides changed '{internal.source.entity}.{name}' "
                    f"({internal_field.source_value.raw!r} vs "
                    f"{integration_field.target_value.raw!r}): "
                    f"{verdict.reason}; neither side updated",
                    Side.INTERNAL,
                    internal.source,
                    name,
                )

    def _build_order(
        self,
        side: Side,
        candidates: list[_Candidate],
        diagnostics: list[Diagnostic],
    ) -> SyncOrder:
        """Partition the candidates bound for *side* into a ``SyncOrder``."""
        builder = SyncOrderBuilder(side)
        for candidate in candidates:
            if not candidate.fields:
                self._record(
                    diagnostics,
                    DiagnosticKind.OBJECT_SUPERSEDED,
                    Severity.INFO,
                    f"No changes left for {side.value} "
                    f"'{candidate.target_entity}' after judging",
                    candidate.side,
                    candidate.source,
                )
                continue

            change = ObjectChange(
                entity=candidate.target_entity,
                identifier=candidate.target_identifier,
                fields=tuple(
                    FieldChange(
                        name=f.target_name,
                        value=f.target_value,
                        change_timestamp=f.change.change_timestamp,
                    )
                    for f in candidate.fields
                ),
                change_timestamp=candidate.source.change_timestamp,
                source_entity=candidate.source.entity,
                source_identifier=candidate.source.identifier,
            )
            if not builder.add(change):
                self._record(
                    diagnostics,
                    DiagnosticKind.DUPLICATE_TARGET,
                    Severity.WARNING,
                    f"{side.value} record '{candidate.target_entity}/"
                    f"{candidate.target_identifier}' already has an update "
                    "in this order; change dropped",
                    candidate.side,
                    candidate.source,
                )
        return builder.build()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch(self, side: Side, request: SyncRequest) -> ChangeReport:
        """Fetch one side's report, wrapping any failure in ``SyncFetchError``."""
        logger.info(
            "Fetching %s report for '%s' (%d object types)",
            side.value,
            self.manual.integration,
            len(request.objects),
        )
        try:
            report = self.exchanges[side].get_sync_report(request)
        except Exception as exc:
            logger.error("Failed to fetch %s report: %s", side.value, exc)
            raise SyncFetchError(side, str(exc)) from exc

        if not isinstance(report, ChangeReport):
            raise SyncFetchError(
                side, f"expected ChangeReport, got {type(report).__name__}"
            )
        if report.side is not side:
            raise SyncFetchError(
                side, f"report was produced by the {report.side.value} side"
            )
        logger.debug("%s report: %d objects", side.value, report.object_count)
        return report

    @staticmethod
    def _record(
        diagnostics: list[Diagnostic],
        kind: DiagnosticKind,
        severity: Severity,
        message: str,
        side: Side | None = None,
        change: ObjectChange | None = None,
        field_name: str | None = None,
    ) -> None:
        diagnostic = Diagnostic(
            kind=kind,
            severity=severity,
            message=message,
            side=side,
            entity=change.entity if change is not None else None,
            identifier=change.identifier if change is not None else None,
            field=field_name,
        )
        logger.log(_LOG_LEVELS[severity], "[%s] %s", kind.value, message)
        diagnostics.append(diagnostic)
