"""Bidirectional field-level synchronisation between an internal system
of record and external integrations."""

__version__ = "0.1.0"

from .sync import (
    MappingManual,
    SyncProcess,
    SyncService,
    ValueNormalizer,
    create_judge,
)

__all__ = [
    "MappingManual",
    "SyncProcess",
    "SyncService",
    "ValueNormalizer",
    "__version__",
    "create_judge",
]
