"""Unified configuration schema for field_sync.

Defines Pydantic models for the config structure with one section per
integration (its field mappings, per-side field types and judge
strategy) plus logging.  ``build_mapping_manual()`` turns an
integration section into the immutable ``MappingManual`` the sync core
runs on.

Usage:
    from field_sync.config_schema import build_config, build_mapping_manual

    raw = load_hierarchical_config()
    unified = build_config(raw)
    manual = build_mapping_manual("crm", unified.integrations["crm"])
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from field_sync.sync.mapping import FieldMapping, MappingManual
from field_sync.sync.values import FieldTypeTable, ValueKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class FieldMappingConfig(BaseModel):
    """One internal/integration field pair as written in config."""

    internal_entity: str = Field(description="Internal object type")
    internal_field: str = Field(description="Internal field name")
    integration_entity: str = Field(description="Integration object type")
    integration_field: str = Field(description="Integration field name")

    model_config = {"frozen": True}


class IntegrationProfileConfig(BaseModel):
    """Sync settings for one integration.

    Attributes:
        mappings: Field mappings in declaration order.
        internal_types: ``entity -> field -> kind`` declared by the
            internal side.
        integration_types: ``entity -> field -> kind`` declared by the
            integration.
        judge: Conflict resolution strategy.
        concurrent_fetch: Fetch both change reports concurrently.
    """

    mappings: list[FieldMappingConfig] = Field(default_factory=list)
    internal_types: dict[str, dict[str, ValueKind]] = Field(
        default_factory=dict
    )
    integration_types: dict[str, dict[str, ValueKind]] = Field(
        default_factory=dict
    )
    judge: Literal["latest-wins", "internal-wins", "integration-wins"] = (
        Field(default="latest-wins", description="Conflict resolution strategy")
    )
    concurrent_fetch: bool = Field(
        default=True,
        description="Fetch both change reports concurrently",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    integrations: dict[str, IntegrationProfileConfig] = Field(
        default_factory=dict
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Raises:
        pydantic.ValidationError: If a section is malformed (unknown
            value kind, unknown judge strategy, missing mapping keys).
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def build_mapping_manual(
    name: str, profile: IntegrationProfileConfig
) -> MappingManual:
    """Build the ``MappingManual`` for integration *name*.

    Raises:
        DuplicateMappingError: If the profile maps the same field twice
            on either side.
    """
    manual = MappingManual(
        name,
        [FieldMapping(**m.model_dump()) for m in profile.mappings],
        internal_types=FieldTypeTable(entities=profile.internal_types),
        integration_types=FieldTypeTable(entities=profile.integration_types),
    )
    if not len(manual):
        logger.warning("Integration '%s' declares no field mappings", name)
    return manual
