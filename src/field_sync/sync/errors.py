"""Exception taxonomy for the field sync core.

Configuration and run-level problems are raised; per-field problems are
raised by the value layer and caught by ``SyncProcess``, which turns them
into diagnostics so sibling fields and objects keep processing.

- ``DuplicateMappingError`` -- manual construction, fatal.
- ``UnsupportedTypeError`` / ``NormalizationError`` -- per field, isolated.
- ``SyncFetchError`` -- one side's report could not be fetched, fatal.
- ``SyncDeliveryError`` -- one side rejected its order, reported per side.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .mapping import FieldRef, Side


class FieldSyncError(Exception):
    """Base class for every error raised by the sync core."""


class DuplicateMappingError(FieldSyncError):
    """Two manual entries claim the same ``(entity, field)`` on one side."""

    def __init__(self, ref: FieldRef, side: Side) -> None:
        self.ref = ref
        self.side = side
        super().__init__(
            f"Duplicate mapping for {side.value} field "
            f"'{ref.entity}.{ref.field}'"
        )


class FieldValueError(FieldSyncError):
    """A single field value could not be handled."""

    def __init__(self, message: str, field: str | None, raw: Any) -> None:
        self.field = field
        self.raw = raw
        super().__init__(message)


class UnsupportedTypeError(FieldValueError):
    """The requested value kind is not known to the normalizer."""

    def __init__(
        self, kind: Any, field: str | None = None, raw: Any = None
    ) -> None:
        self.kind = kind
        super().__init__(
            f"Unsupported value kind '{kind}'"
            + (f" for field '{field}'" if field else ""),
            field,
            raw,
        )


class NormalizationError(FieldValueError):
    """A raw value could not be converted to or from its declared kind."""

    def __init__(
        self,
        field: str | None,
        raw: Any,
        kind: Any,
        reason: str = "",
    ) -> None:
        self.kind = kind
        label = f"field '{field}'" if field else "value"
        message = f"Cannot normalize {label} {raw!r} as {getattr(kind, 'value', kind)}"
        if reason:
            message += f": {reason}"
        super().__init__(message, field, raw)


class SyncFetchError(FieldSyncError):
    """Fetching a change report from one side failed; the run is aborted."""

    def __init__(self, side: Side, message: str) -> None:
        self.side = side
        super().__init__(f"Fetch from {side.value} side failed: {message}")


class SyncDeliveryError(FieldSyncError):
    """Applying a sync order on one side failed."""

    def __init__(self, side: Side, message: str) -> None:
        self.side = side
        super().__init__(
            f"Delivery to {side.value} side failed: {message}"
        )
