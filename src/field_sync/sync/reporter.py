"""Sync run formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_run_result`` -- full post-run summary.
- ``format_order`` -- one order's creates and updates.
- ``result_to_json`` -- structured dict for logs and callers.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from .models import DiagnosticKind, Severity

if TYPE_CHECKING:
    from .models import Diagnostic, RunResult, SyncOrder

_SECTION_TITLES: dict[DiagnosticKind, str] = {
    DiagnosticKind.FETCH_FAILED: "Fetch failures",
    DiagnosticKind.DELIVERY_FAILED: "Delivery failures",
    DiagnosticKind.CONFLICT_UNRESOLVED: "Unresolved conflicts",
    DiagnosticKind.NORMALIZATION_ERROR: "Normalization errors",
    DiagnosticKind.UNSUPPORTED_TYPE: "Unsupported types",
    DiagnosticKind.CORRELATION_FAILED: "Correlation failures",
    DiagnosticKind.DUPLICATE_TARGET: "Duplicate targets",
    DiagnosticKind.UNMAPPED_FIELD_SKIPPED: "Unmapped fields skipped",
}

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_order(order: SyncOrder) -> list[str]:
    """Format the creates and updates of one order, one line each."""
    lines: list[str] = []
    for entity, changes in order.unidentified_objects.items():
        for change in changes:
            lines.append(
                f"  create {entity} <- {change.source_entity}/"
                f"{change.source_identifier}: {', '.join(change.field_names)}"
            )
    for entity, updates in order.identified_objects.items():
        for identifier, change in updates.items():
            lines.append(
                f"  update {entity}/{identifier}: "
                f"{', '.join(change.field_names)}"
            )
    return lines


def format_run_result(result: RunResult) -> str:
    """Format a complete run result as human-readable text.

    Sections are only included when they contain at least one entry.
    Superseded objects are summarised by count only.

    Args:
        result: The completed run result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [f"Sync run for '{result.integration}'"]
    lines.append(f"Started: {result.started_at}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at}")
    lines.append("")

    if result.fatal:
        lines.append(f"FAILED: {result.error}")
        return "\n".join(lines).rstrip()

    outcome = result.outcome
    if outcome is not None:
        lines.append(
            f"{outcome.internal_order.object_count} to internal, "
            f"{outcome.integration_order.object_count} to integration, "
            f"{len(result.conflicts)} conflicts, "
            f"{len(result.errors)} errors"
        )
        lines.append("")
        for title, order in (
            ("To internal:", outcome.internal_order),
            ("To integration:", outcome.integration_order),
        ):
            order_lines = format_order(order)
            if order_lines:
                lines.append(title)
                lines.extend(order_lines)
                lines.append("")

    grouped: dict[DiagnosticKind, list[Diagnostic]] = defaultdict(list)
    for diagnostic in result.diagnostics:
        grouped[diagnostic.kind].append(diagnostic)

    for kind, title in _SECTION_TITLES.items():
        if grouped.get(kind):
            lines.append(f"{title}:")
            for diagnostic in grouped[kind]:
                lines.append(f"  {diagnostic.message}")
            lines.append("")

    superseded = len(grouped.get(DiagnosticKind.OBJECT_SUPERSEDED, []))
    if superseded:
        lines.append(f"Superseded: {superseded} objects")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON-friendly output
# ------------------------------------------------------------------


def result_to_json(result: RunResult) -> dict:
    """Convert a run result to a JSON-serialisable dict.

    Returns:
        Dict with ``integration``, ``delivered``, ``error``, ``summary``
        counts, ``orders`` and ``diagnostics``.
    """
    outcome = result.outcome
    orders = (
        {
            "internal": outcome.internal_order.model_dump(mode="json"),
            "integration": outcome.integration_order.model_dump(mode="json"),
        }
        if outcome is not None
        else None
    )
    return {
        "integration": result.integration,
        "delivered": result.delivered,
        "delivered_sides": [side.value for side in result.delivered_sides],
        "error": result.error,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "summary": {
            "to_internal": outcome.internal_order.object_count if outcome else 0,
            "to_integration": (
                outcome.integration_order.object_count if outcome else 0
            ),
            "conflicts": len(result.conflicts),
            "errors": len(result.errors),
            "warnings": sum(
                1 for d in result.diagnostics if d.severity == Severity.WARNING
            ),
            "excluded": outcome.excluded if outcome else 0,
        },
        "orders": orders,
        "diagnostics": [d.model_dump(mode="json") for d in result.diagnostics],
    }
