"""
Invalidate-on-write cache for single-entity reads.

Services cache the serialized representation of an entity under its id and
call ``invalidate(entity_id)`` or ``invalidate_all()`` explicitly at the end of
every write. Entries are evicted immediately and once more when the enclosing
transaction commits, so a read that slips in before the commit cannot leave a
stale entry behind.

Bulk invalidation bumps a per-namespace generation number that is part of
every key; old entries simply stop being addressed and expire on their own.
"""

import logging
from typing import Any, Optional

from django.conf import settings
from django.core.cache import cache as default_cache
from django.db import transaction

logger = logging.getLogger(__name__)


class EntityCache:
    """Cache port keyed by entity id, scoped to one namespace (``orders``, ``products``)."""

    def __init__(self, namespace: str, timeout: Optional[int] = None, backend=None):
        self.namespace = namespace
        self._timeout = timeout
        self._backend = backend

    @property
    def backend(self):
        return self._backend or default_cache

    @property
    def timeout(self) -> int:
        if self._timeout is not None:
            return self._timeout
        return getattr(settings, 'ENTITY_CACHE_TIMEOUT', 600)

    @property
    def _generation_key(self) -> str:
        return f"entity-cache:{self.namespace}:generation"

    def _generation(self) -> int:
        return self.backend.get_or_set(self._generation_key, 1, timeout=None)

    def key(self, entity_id: Any) -> str:
        return f"entity-cache:{self.namespace}:{self._generation()}:{entity_id}"

    def get(self, entity_id: Any) -> Optional[Any]:
        return self.backend.get(self.key(entity_id))

    def set(self, entity_id: Any, value: Any) -> None:
        self.backend.set(self.key(entity_id), value, timeout=self.timeout)

    def invalidate(self, entity_id: Any) -> None:
        """Evict one entry now and again after the current transaction commits."""
        key = self.key(entity_id)
        self.backend.delete(key)
        transaction.on_commit(lambda: self.backend.delete(key))
        logger.debug(f"Evicted {self.namespace} cache entry {entity_id}")

    def invalidate_all(self) -> None:
        """Drop every entry of the namespace."""
        self._bump_generation()
        transaction.on_commit(self._bump_generation)
        logger.debug(f"Evicted all {self.namespace} cache entries")

    def _bump_generation(self) -> None:
        self.backend.add(self._generation_key, 1, timeout=None)
        try:
            self.backend.incr(self._generation_key)
        except ValueError:
            # Key evicted between add() and incr().
            self.backend.set(self._generation_key, 2, timeout=None)
