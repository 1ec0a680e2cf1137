"""Conflict resolution ("judging") of field-level changes.

A judge looks at what each side claims for one logical field and decides
which value wins.  Judges work per field, so two fields of the same
object may be won by different sides in the same run.

- ``LatestChangeJudge`` (default): the more recent change wins; field
  timestamps first, object timestamps as fallback; a tie is a conflict
  and neither side is overwritten.
- ``InternalWinsJudge``: two-sided changes always go to the internal side.
- ``IntegrationWinsJudge``: two-sided changes always go to the integration.

All judges are pure: the verdict depends only on the claims passed in.
The ``create_judge()`` factory maps config strategy strings to judges.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Protocol

from pydantic import BaseModel

from .models import FieldChange
from .values import NormalizedValue

logger = logging.getLogger(__name__)


class Winner(str, Enum):
    INTERNAL = "internal"
    INTEGRATION = "integration"
    NO_CHANGE = "no_change"


class FieldClaim(BaseModel):
    """One side's change to a field, with its object-level timestamp.

    Both claims handed to a judge must be expressed in the same frame
    (same field, same value kind).
    """

    change: FieldChange
    object_timestamp: datetime | None = None

    model_config = {"frozen": True}

    @property
    def value(self) -> NormalizedValue:
        return self.change.value


class Verdict(BaseModel):
    """A judge's decision for one field.

    Attributes:
        winner: Side whose value must be applied to the other side.
        value: The winning value (``None`` for ``NO_CHANGE``).
        conflict: ``True`` when both sides changed the field and the
            judge could not pick one.
        reason: Short explanation for logs and diagnostics.
    """

    winner: Winner
    value: NormalizedValue | None = None
    conflict: bool = False
    reason: str = ""

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class SyncJudge(Protocol):
    """Protocol that all judges must satisfy."""

    def decide(
        self,
        internal: FieldClaim | None,
        integration: FieldClaim | None,
    ) -> Verdict:
        """Decide which side's change to a field wins.

        Args:
            internal: The internal side's claim, or ``None`` if it did
                not change the field.
            integration: The integration side's claim, or ``None``.

        Returns:
            The ``Verdict`` for the field.
        """
        ...  # pragma: no cover


def _one_sided(
    internal: FieldClaim | None, integration: FieldClaim | None
) -> Verdict | None:
    """Verdict for the cases every judge handles the same way."""
    if internal is None and integration is None:
        return Verdict(winner=Winner.NO_CHANGE, reason="no change reported")
    if integration is None:
        return Verdict(
            winner=Winner.INTERNAL,
            value=internal.value,
            reason="only internal changed",
        )
    if internal is None:
        return Verdict(
            winner=Winner.INTEGRATION,
            value=integration.value,
            reason="only integration changed",
        )
    if internal.value == integration.value:
        return Verdict(winner=Winner.NO_CHANGE, reason="values already equal")
    return None


# ---------------------------------------------------------------------------
# Judges
# ---------------------------------------------------------------------------


class LatestChangeJudge:
    """Pick the most recent change; refuse to guess on a tie.

    Order of evidence:

    1. Field-level timestamps, when both sides have one and they differ.
    2. Object-level timestamps, when both sides have one and they differ.
    3. Otherwise the field is a conflict: ``NO_CHANGE`` with
       ``conflict=True``.
    """

    def decide(
        self,
        internal: FieldClaim | None,
        integration: FieldClaim | None,
    ) -> Verdict:
        verdict = _one_sided(internal, integration)
        if verdict is not None:
            return verdict

        for label, left, right in (
            (
                "field",
                internal.change.change_timestamp,
                integration.change.change_timestamp,
            ),
            ("object", internal.object_timestamp, integration.object_timestamp),
        ):
            if left is None or right is None or left == right:
                continue
            if left > right:
                return Verdict(
                    winner=Winner.INTERNAL,
                    value=internal.value,
                    reason=f"internal {label} change is newer",
                )
            return Verdict(
                winner=Winner.INTEGRATION,
                value=integration.value,
                reason=f"integration {label} change is newer",
            )

        logger.debug(
            "Unresolved conflict on %s / %s",
            internal.change.name,
            integration.change.name,
        )
        return Verdict(
            winner=Winner.NO_CHANGE,
            conflict=True,
            reason="both sides changed with no newer timestamp",
        )


class InternalWinsJudge:
    """Two-sided changes always resolve to the internal value."""

    def decide(
        self,
        internal: FieldClaim | None,
        integration: FieldClaim | None,
    ) -> Verdict:
        verdict = _one_sided(internal, integration)
        if verdict is not None:
            return verdict
        return Verdict(
            winner=Winner.INTERNAL,
            value=internal.value,
            reason="internal wins by policy",
        )


class IntegrationWinsJudge:
    """Two-sided changes always resolve to the integration value."""

    def decide(
        self,
        internal: FieldClaim | None,
        integration: FieldClaim | None,
    ) -> Verdict:
        verdict = _one_sided(internal, integration)
        if verdict is not None:
            return verdict
        return Verdict(
            winner=Winner.INTEGRATION,
            value=integration.value,
            reason="integration wins by policy",
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "latest-wins": LatestChangeJudge,
    "internal-wins": InternalWinsJudge,
    "integration-wins": IntegrationWinsJudge,
}


def create_judge(strategy: str) -> SyncJudge:
    """Create a judge for the given strategy string.

    Args:
        strategy: One of ``"latest-wins"``, ``"internal-wins"``,
            ``"integration-wins"``.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown judge strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
