"""Top-level sync entry point.

``SyncService`` wires a pair of exchanges and a mapping manual into one
``SyncProcess`` run, delivers the resulting orders and reports the
outcome as a ``RunResult``:

- a fetch failure yields a fatal result (nothing is delivered);
- each order goes to its own side; a delivery failure is reported for
  that side only and does not undo the other side's delivery.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from field_sync.core.async_utils import run_sync
from field_sync.sync.errors import SyncDeliveryError, SyncFetchError
from field_sync.sync.exchange import Correlator, DataExchange
from field_sync.sync.judge import SyncJudge, create_judge
from field_sync.sync.mapping import MappingManual, Side
from field_sync.sync.models import (
    Diagnostic,
    DiagnosticKind,
    RunResult,
    Severity,
    SyncOutcome,
)
from field_sync.sync.process import SyncProcess
from field_sync.sync.values import ValueNormalizer

if TYPE_CHECKING:
    from field_sync.config_schema import IntegrationProfileConfig

logger = logging.getLogger(__name__)


class SyncService:
    """Run and deliver syncs between the internal side and integrations.

    Args:
        judge: Conflict resolution strategy shared by every run.
        correlator: Identifier correlation strategy.
        normalizer: Value normalizer used for kind coercion.
        concurrent_fetch: Whether ``sync_async`` fetches both reports at
            the same time or one after the other.
    """

    def __init__(
        self,
        judge: SyncJudge | None = None,
        correlator: Correlator | None = None,
        normalizer: ValueNormalizer | None = None,
        concurrent_fetch: bool = True,
    ) -> None:
        self.judge = judge
        self.correlator = correlator
        self.normalizer = normalizer
        self.concurrent_fetch = concurrent_fetch

    @classmethod
    def from_config(
        cls,
        profile: IntegrationProfileConfig,
        correlator: Correlator | None = None,
    ) -> SyncService:
        """Build a service using the judge and fetch mode of *profile*."""
        return cls(
            judge=create_judge(profile.judge),
            correlator=correlator,
            concurrent_fetch=profile.concurrent_fetch,
        )

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def sync(
        self,
        internal_exchange: DataExchange,
        integration_exchange: DataExchange,
        manual: MappingManual,
        from_timestamp: datetime | None,
    ) -> RunResult:
        """Run one sync with sequential fetches and deliver the orders."""
        started_at = datetime.now(timezone.utc).isoformat()
        process = self._process(internal_exchange, integration_exchange, manual)
        try:
            outcome = process.run(from_timestamp)
        except SyncFetchError as exc:
            return self._fatal(manual, exc, started_at)
        return self._deliver(process, manual, outcome, started_at)

    async def sync_async(
        self,
        internal_exchange: DataExchange,
        integration_exchange: DataExchange,
        manual: MappingManual,
        from_timestamp: datetime | None,
    ) -> RunResult:
        """Like ``sync()`` but runs the fetches off the event loop.

        Both reports are fetched concurrently unless the service was
        built with ``concurrent_fetch=False``.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        process = self._process(internal_exchange, integration_exchange, manual)
        try:
            if self.concurrent_fetch:
                outcome = await process.run_async(from_timestamp)
            else:
                outcome = await run_sync(process.run, from_timestamp)
        except SyncFetchError as exc:
            return self._fatal(manual, exc, started_at)
        return self._deliver(process, manual, outcome, started_at)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _process(
        self,
        internal_exchange: DataExchange,
        integration_exchange: DataExchange,
        manual: MappingManual,
    ) -> SyncProcess:
        return SyncProcess(
            manual,
            internal_exchange,
            integration_exchange,
            judge=self.judge,
            correlator=self.correlator,
            normalizer=self.normalizer,
        )

    def _deliver(
        self,
        process: SyncProcess,
        manual: MappingManual,
        outcome: SyncOutcome,
        started_at: str,
    ) -> RunResult:
        """Hand each order to its side; failures are isolated per side."""
        diagnostics = list(outcome.diagnostics)
        delivered_sides: list[Side] = []
        delivered = True

        for side in Side:
            order = outcome.order_for(side)
            if order.is_empty:
                logger.debug("Nothing to deliver to %s side", side.value)
                continue
            try:
                process.exchanges[side].execute_sync_order(order)
            except Exception as exc:
                error = SyncDeliveryError(side, str(exc))
                logger.error("%s", error)
                diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.DELIVERY_FAILED,
                        severity=Severity.ERROR,
                        message=str(error),
                        side=side,
                    )
                )
                delivered = False
                continue
            logger.info(
                "Delivered %d object(s) to %s side",
                order.object_count,
                side.value,
            )
            delivered_sides.append(side)

        return RunResult(
            integration=manual.integration,
            delivered=delivered,
            diagnostics=diagnostics,
            outcome=outcome,
            delivered_sides=delivered_sides,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )

    @staticmethod
    def _fatal(
        manual: MappingManual, exc: SyncFetchError, started_at: str
    ) -> RunResult:
        logger.error("Sync run for '%s' aborted: %s", manual.integration, exc)
        return RunResult(
            integration=manual.integration,
            delivered=False,
            diagnostics=[
                Diagnostic(
                    kind=DiagnosticKind.FETCH_FAILED,
                    severity=Severity.ERROR,
                    message=str(exc),
                    side=exc.side,
                )
            ],
            error=str(exc),
            outcome=None,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
