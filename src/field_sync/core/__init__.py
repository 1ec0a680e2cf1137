"""Shared runtime helpers for the sync core."""

from .async_utils import gather_fail_fast, run_sync

__all__ = ["gather_fail_fast", "run_sync"]
