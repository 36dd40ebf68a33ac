"""Read-through cache with tag invalidation on top of Django's cache.

Each tag owns a version counter stored in the cache itself.  Keys are
namespaced with the current version, so ``invalidate(tag)`` bumps the
counter and every key written under the old version becomes unreachable.
"""

from __future__ import annotations

from typing import Callable, TypeVar

import structlog
from django.core.cache import cache

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_MISS = object()
DEFAULT_TIMEOUT = 3600


def _version_key(tag: str) -> str:
    return f"shop:tag:{tag}"


def _tag_version(tag: str) -> int:
    version = cache.get(_version_key(tag))
    if version is None:
        version = 1
        cache.add(_version_key(tag), version, None)
    return int(version)


def make_key(tag: str, key: str) -> str:
    return f"shop:{tag}:v{_tag_version(tag)}:{key}"


def cached(
    tag: str, key: str, loader: Callable[[], T], timeout: int = DEFAULT_TIMEOUT
) -> T:
    """Return the cached value for (*tag*, *key*), loading it on a miss."""
    full_key = make_key(tag, key)
    value = cache.get(full_key, _MISS)
    if value is _MISS:
        value = loader()
        cache.set(full_key, value, timeout)
    return value


def invalidate(tag: str) -> None:
    """Drop every entry written under *tag*."""
    try:
        cache.incr(_version_key(tag))
    except ValueError:
        cache.set(_version_key(tag), 2, None)
    logger.debug("cache.invalidated", tag=tag)


def product_tag(product_id) -> str:
    return f"product:{product_id}"


SALES_TAG = "sales"
