# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""In-memory metadata cache."""

from .cleanup import CacheSweepWorker
from .ttl_cache import DEFAULT_TTL_SECONDS, CacheEntry, TTLCache

__all__ = ["TTLCache", "CacheEntry", "CacheSweepWorker", "DEFAULT_TTL_SECONDS"]
