"""Side-agnostic typed field values.

Every value that crosses the sync core is wrapped in a ``NormalizedValue``
tagged with its ``ValueKind``.  Each side converts between its own native
representation and the normalized form through a ``ValueNormalizer``
(sides that format data in an unusual way subclass it and override the
per-kind converters).

Round trip ``to_native(k, to_normalized(k, v)) == v`` holds for every
representable value with two documented exceptions for ``datetime``:

* tz-naive input is assumed to be UTC and comes back tz-aware;
* native output is always an ISO 8601 string, so ``datetime`` objects
  and unix timestamps come back as strings (and ``Z`` as ``+00:00``).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

from .errors import FieldValueError, NormalizationError, UnsupportedTypeError

logger = logging.getLogger(__name__)


class ValueKind(str, Enum):
    """Declared type of a field."""

    INT = "int"
    STRING = "string"
    DATETIME = "datetime"
    BOOL = "bool"
    FLOAT = "float"


_RAW_TYPES: dict[ValueKind, type | tuple[type, ...]] = {
    ValueKind.INT: int,
    ValueKind.STRING: str,
    ValueKind.DATETIME: datetime,
    ValueKind.BOOL: bool,
    ValueKind.FLOAT: float,
}


class NormalizedValue(BaseModel):
    """A field value tagged with its kind.

    Attributes:
        kind: Declared kind of the value.
        raw: Python value of that kind, or ``None`` for a cleared field.
    """

    kind: ValueKind
    raw: Any = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_raw_matches_kind(self) -> NormalizedValue:
        if self.raw is None:
            return self
        expected = _RAW_TYPES[self.kind]
        is_bool = isinstance(self.raw, bool)
        if not isinstance(self.raw, expected) or (
            is_bool and self.kind is not ValueKind.BOOL
        ):
            raise ValueError(
                f"raw value {self.raw!r} is not a valid {self.kind.value}"
            )
        return self


class FieldTypeTable(BaseModel):
    """Per-side declaration of field kinds, ``entity -> field -> kind``.

    Loaded once from configuration and owned by a ``MappingManual``.
    Unknown kind names fail validation at construction.
    """

    entities: dict[str, dict[str, ValueKind]] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def kind_of(self, entity: str, field: str) -> ValueKind | None:
        """Return the declared kind of ``entity.field``, or ``None``."""
        return self.entities.get(entity, {}).get(field)


# ---------------------------------------------------------------------------
# Per-kind converters (native -> normalized raw)
# ---------------------------------------------------------------------------

_DATETIME_ADAPTER = TypeAdapter(datetime)

_TRUE_STRINGS = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "f", "no", "n", "off"})


def _to_int(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError("booleans are not integers")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if raw.is_integer():
            return int(raw)
        raise ValueError("float has a fractional part")
    if isinstance(raw, str):
        return int(raw.strip())
    raise TypeError(f"unexpected type {type(raw).__name__}")


def _to_float(raw: Any) -> float:
    if isinstance(raw, bool):
        raise ValueError("booleans are not floats")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        return float(raw.strip())
    raise TypeError(f"unexpected type {type(raw).__name__}")


def _to_string(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    raise TypeError(f"unexpected type {type(raw).__name__}")


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError("not a recognised boolean")


def _to_datetime(raw: Any) -> datetime:
    if isinstance(raw, bool):
        raise ValueError("booleans are not datetimes")
    try:
        parsed = _DATETIME_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise ValueError(exc.errors()[0]["msg"]) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class ValueNormalizer:
    """Convert between a side's native values and ``NormalizedValue``.

    Pure: no state is kept between calls, so one instance may serve any
    number of runs.
    """

    converters: dict[ValueKind, Callable[[Any], Any]] = {
        ValueKind.INT: _to_int,
        ValueKind.FLOAT: _to_float,
        ValueKind.STRING: _to_string,
        ValueKind.BOOL: _to_bool,
        ValueKind.DATETIME: _to_datetime,
    }

    def resolve_kind(
        self, kind: ValueKind | str, field: str | None = None
    ) -> ValueKind:
        """Return *kind* as a supported ``ValueKind``.

        Raises:
            UnsupportedTypeError: Unknown kind name, or a kind this
                normalizer has no converter for.
        """
        try:
            resolved = ValueKind(kind)
        except ValueError:
            raise UnsupportedTypeError(kind, field) from None
        if resolved not in self.converters:
            raise UnsupportedTypeError(resolved.value, field)
        return resolved

    def to_normalized(
        self,
        kind: ValueKind | str,
        native: Any,
        field: str | None = None,
    ) -> NormalizedValue:
        """Wrap a native value as a ``NormalizedValue`` of *kind*.

        Raises:
            UnsupportedTypeError: If *kind* is not supported.
            NormalizationError: If *native* cannot be read as *kind*.
        """
        resolved = self.resolve_kind(kind, field)
        if native is None:
            return NormalizedValue(kind=resolved, raw=None)
        try:
            raw = self.converters[resolved](native)
        except (TypeError, ValueError) as exc:
            raise NormalizationError(field, native, resolved, str(exc)) from exc
        return NormalizedValue(kind=resolved, raw=raw)

    def to_native(
        self,
        kind: ValueKind | str,
        value: NormalizedValue,
        field: str | None = None,
    ) -> Any:
        """Render *value* in this side's native form for *kind*.

        A value of another kind is coerced first.
        """
        resolved = self.resolve_kind(kind, field)
        value = self.coerce(value, resolved, field)
        return self._native(value)

    def coerce(
        self,
        value: NormalizedValue,
        kind: ValueKind | str,
        field: str | None = None,
    ) -> NormalizedValue:
        """Re-type *value* as *kind* (no-op when the kinds already match)."""
        resolved = self.resolve_kind(kind, field)
        if value.kind is resolved:
            return value
        if value.raw is None:
            return NormalizedValue(kind=resolved, raw=None)
        return self.to_normalized(resolved, self._native(value), field)

    def normalize_record(
        self,
        record: Mapping[str, Any],
        types: Mapping[str, ValueKind | str],
    ) -> tuple[dict[str, NormalizedValue], list[FieldValueError]]:
        """Normalize every typed field of a native record.

        Fields absent from *types* are ignored.  A failing field does not
        stop its siblings; all failures are returned alongside the values
        that did convert.
        """
        values: dict[str, NormalizedValue] = {}
        errors: list[FieldValueError] = []
        for name, native in record.items():
            kind = types.get(name)
            if kind is None:
                continue
            try:
                values[name] = self.to_normalized(kind, native, name)
            except FieldValueError as exc:
                logger.debug("Field %s rejected: %s", name, exc)
                errors.append(exc)
        return values, errors

    @staticmethod
    def _native(value: NormalizedValue) -> Any:
        if value.kind is ValueKind.DATETIME and value.raw is not None:
            return value.raw.isoformat()
        return value.raw
