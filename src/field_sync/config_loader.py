"""
Configuration file loading for field_sync.

Config files are found by convention and merged integration by
integration: a user-level file can hold shared integrations while a
project file adds its own or overrides one by name.  Large mapping tables
can live in separate files referenced with the ``!mappings`` tag::

    integrations:
      crm:
        judge: latest-wins
        mappings: !mappings crm_mappings.yml

A mapping table file is a YAML list.  Each entry is either the four-key
form used inline or the short form ``"lead.email <-> Contact.Email"``;
entries are validated when the file is loaded so errors name the file
and entry.  String values support ``${VAR}`` and ``${VAR:-default}``.

Usage:
    from field_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from field_sync.config_schema import FieldMappingConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FIELD_SYNC_CONFIG"

_PROJECT_FILES = (".field_sync/config.yml", ".field_sync/config.yaml")
_USER_FILE = ".config/field_sync/config.yml"

# Sections merged one level deep; other top-level keys are replaced.
_MERGED_SECTIONS = ("integrations", "logging")

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")
_SHORT_MAPPING = re.compile(
    r"^\s*(?P<internal_entity>[^.\s]+)\.(?P<internal_field>\S+)\s*<->\s*"
    r"(?P<integration_entity>[^.\s]+)\.(?P<integration_field>\S+)\s*$"
)


# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset ``${VAR}`` expands to the empty string; *default* applies
    when VAR is unset or empty.
    """
    return _ENV_VAR_PATTERN.sub(
        lambda m: os.environ.get(m.group(1)) or m.group(2) or "", value
    )


def _interpolate(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Mapping tables
# ---------------------------------------------------------------------------


def parse_mapping_entry(entry: Any) -> FieldMappingConfig:
    """Validate one mapping table entry.

    Raises:
        ValueError: If *entry* is neither a short-form string nor a
            mapping with the four field keys.
    """
    if isinstance(entry, str):
        match = _SHORT_MAPPING.match(entry)
        if match is None:
            raise ValueError(
                f"expected 'entity.field <-> Entity.Field', got {entry!r}"
            )
        return FieldMappingConfig(**match.groupdict())
    if isinstance(entry, dict):
        try:
            return FieldMappingConfig.model_validate(entry)
        except ValidationError as exc:
            bad = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise ValueError(f"missing or invalid {', '.join(bad)}") from exc
    raise ValueError(
        f"expected a string or a mapping, got {type(entry).__name__}"
    )


def load_mapping_table(path: Path) -> list[dict[str, str]]:
    """Load the mapping table file at *path* as four-key dicts.

    Raises:
        ValueError: If the file is not a list or an entry is malformed;
            the message names the file and the 1-based entry number.
    """
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        data = []
    if not isinstance(data, list):
        raise ValueError(
            f"Mapping table {path} must be a list, got {type(data).__name__}"
        )

    table = []
    for number, entry in enumerate(_interpolate(data), start=1):
        try:
            table.append(parse_mapping_entry(entry).model_dump())
        except ValueError as exc:
            raise ValueError(f"{path}, entry {number}: {exc}") from exc
    logger.debug("Loaded %d mapping(s) from %s", len(table), path)
    return table


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with the ``!mappings`` tag; ``yaml.SafeLoader`` is untouched."""


def _mappings_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> list[dict[str, str]]:
    path = Path(interpolate_env_vars(loader.construct_scalar(node))).expanduser()
    if not path.is_absolute():
        path = Path(loader.name).resolve().parent / path
    if not path.exists():
        raise FileNotFoundError(
            f"Mapping table not found: {path} (referenced from {loader.name})"
        )
    return load_mapping_table(path)


ConfigLoader.add_constructor("!mappings", _mappings_constructor)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load one config file; a root that is not a mapping is skipped."""
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.load(fh, Loader=ConfigLoader)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Config file %s has non-dict root (%s), skipping",
            path,
            type(data).__name__,
        )
        return {}
    return data


# ---------------------------------------------------------------------------
# Discovery and merge
# ---------------------------------------------------------------------------


def discover_config_files(explicit: Path | None = None) -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order: *explicit* (``--config``), ``$FIELD_SYNC_CONFIG``,
    ``./.field_sync/config.yml``, ``./.field_sync/config.yaml``, then
    ``~/.config/field_sync/config.yml``.
    """
    candidates: list[Path] = []
    if explicit is not None:
        candidates.append(explicit.expanduser().resolve())
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())
    candidates.extend(Path.cwd() / name for name in _PROJECT_FILES)
    candidates.append(Path.home() / _USER_FILE)
    return [p for p in candidates if p.exists()]


def merge_configs(layers: list[dict[str, Any]]) -> dict[str, Any]:
    """Merge config dicts given lowest precedence first.

    ``integrations`` merge by name: a later layer replaces a whole
    integration of the same name and keeps the others.  ``logging``
    merges key by key.  Other top-level keys are replaced.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            current = merged.get(key)
            if (
                key in _MERGED_SECTIONS
                and isinstance(current, dict)
                and isinstance(value, dict)
            ):
                if key == "integrations":
                    for name in sorted(current.keys() & value.keys()):
                        logger.debug("Integration '%s' overridden", name)
                merged[key] = {**current, **value}
            else:
                merged[key] = value
    return merged


def load_hierarchical_config(explicit: Path | None = None) -> dict[str, Any]:
    """Load, merge and interpolate every discovered config file.

    Returns an empty dict when no config file exists (zero-config).
    """
    paths = discover_config_files(explicit)
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    layers = []
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        layers.append(load_config_file(path))
    return _interpolate(merge_configs(layers))
