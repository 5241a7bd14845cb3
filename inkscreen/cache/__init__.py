"""Caches: short-TTL external lookups and per-design device captures."""

from .capture_store import CaptureInfo, CaptureStore
from .lookup_cache import LookupCache

__all__ = ["CaptureInfo", "CaptureStore", "LookupCache"]
