"""Tree-scoped, in-memory outcome cache with ancestor-path invalidation.

:class:`RiskResultCache` stores the :class:`~risk_register.outcome.Outcome`
of each node of one tree. :class:`TreeCacheManager` keeps one such cache per
tree id, so trees never see each other's entries.

A portfolio's outcome is derived from its descendants, so when a node's
parameters change every cached outcome on the path from the root down to
that node becomes stale, while siblings and their subtrees stay valid.
:meth:`TreeCacheManager.invalidate` removes exactly that path. When the
tree's structure changes the old index can no longer be trusted, and
:meth:`TreeCacheManager.on_tree_structure_changed` clears the tree's whole
cache instead.

The cache is a performance layer, not a system of record. Entries have no
expiry; they leave only through invalidation or clearing.

Example:
    >>> manager = TreeCacheManager()
    >>> manager.cache_for("tree-1").put("cyber", outcome)
    >>> manager.invalidate(tree, "cyber")
    ['root', 'ops', 'cyber']
"""

from dataclasses import dataclass
import logging
import threading
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from .outcome import Outcome

if TYPE_CHECKING:
    from .tree_index import RiskTree

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics about cache usage.

    Attributes:
        n_entries: Number of cache entries
        n_hits: Number of cache hits
        n_misses: Number of cache misses
        hit_rate: Cache hit rate (0-1)
    """

    n_entries: int = 0
    n_hits: int = 0
    n_misses: int = 0
    hit_rate: float = 0.0

    def update_hit_rate(self):
        """Update the cache hit rate."""
        total = self.n_hits + self.n_misses
        self.hit_rate = self.n_hits / total if total > 0 else 0.0


class RiskResultCache:
    """Node id to outcome storage for a single tree.

    Every operation holds an internal lock only for the duration of the
    dictionary access, never while simulating.
    """

    def __init__(self, tree_id: str = ""):
        self.tree_id = tree_id
        self._entries: Dict[str, Outcome] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def get(self, node_id: str) -> Optional[Outcome]:
        """Cached outcome for ``node_id``, or None."""
        with self._lock:
            outcome = self._entries.get(node_id)
            if outcome is None:
                self._stats.n_misses += 1
            else:
                self._stats.n_hits += 1
        return outcome

    def put(self, node_id: str, outcome: Outcome) -> None:
        """Store ``outcome`` for ``node_id``, replacing any previous entry."""
        with self._lock:
            self._entries[node_id] = outcome
        logger.debug("Cached outcome for %s/%s", self.tree_id, node_id)

    def remove(self, node_id: str) -> bool:
        """Drop the entry for ``node_id``; returns whether one existed."""
        with self._lock:
            removed = self._entries.pop(node_id, None) is not None
        if removed:
            logger.debug("Removed cached outcome for %s/%s", self.tree_id, node_id)
        return removed

    def remove_all(self, node_ids: Iterable[str]) -> int:
        """Drop the entries for ``node_ids``; returns how many existed."""
        ids = list(node_ids)
        with self._lock:
            removed = [node_id for node_id in ids if self._entries.pop(node_id, None) is not None]
        if removed:
            logger.debug(
                "Removed %d cached outcomes for %s: %s", len(removed), self.tree_id, removed
            )
        return len(removed)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def clear_and_get_size(self) -> int:
        """Drop every entry atomically and return how many there were."""
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
        return size

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def contains(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._entries

    def keys(self) -> List[str]:
        """Ids of the cached nodes, in insertion order."""
        with self._lock:
            return list(self._entries)

    def stats(self) -> CacheStats:
        """Snapshot of hit/miss statistics."""
        with self._lock:
            stats = CacheStats(
                n_entries=len(self._entries),
                n_hits=self._stats.n_hits,
                n_misses=self._stats.n_misses,
            )
        stats.update_hit_rate()
        return stats

    def __contains__(self, node_id: object) -> bool:
        return self.contains(node_id)  # type: ignore[arg-type]

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return f"RiskResultCache(tree_id={self.tree_id!r}, size={self.size()})"


class TreeCacheManager:
    """One :class:`RiskResultCache` per tree, created on first use."""

    def __init__(self):
        self._caches: Dict[str, RiskResultCache] = {}
        self._lock = threading.Lock()

    def cache_for(self, tree_id: str) -> RiskResultCache:
        """The cache for ``tree_id``, created atomically if missing."""
        with self._lock:
            cache = self._caches.get(tree_id)
            if cache is None:
                cache = RiskResultCache(tree_id)
                self._caches[tree_id] = cache
                logger.debug("Created cache for tree %s", tree_id)
        return cache

    def invalidate(self, tree: "RiskTree", node_id: str) -> List[str]:
        """Remove every cached outcome on the path from the root to ``node_id``.

        Args:
            tree: Tree whose index supplies the ancestor path.
            node_id: Node whose parameters changed.

        Returns:
            The ancestor path that was cleared, root first; empty when
            ``node_id`` is not in the tree.
        """
        path = tree.index.ancestor_path(node_id)
        if not path:
            logger.warning("Node %s not found in tree %s; nothing invalidated", node_id, tree.id)
            return []
        removed = self.cache_for(tree.id).remove_all(path)
        logger.info(
            "Invalidated %s in tree %s (%d cached entries removed)", path, tree.id, removed
        )
        return path

    def on_tree_structure_changed(self, tree_id: str) -> int:
        """Clear a tree's entire cache after nodes were added, removed or moved.

        Returns:
            Number of entries cleared.
        """
        with self._lock:
            cache = self._caches.get(tree_id)
        cleared = cache.clear_and_get_size() if cache is not None else 0
        logger.info("Tree %s structure changed; cleared %d cached entries", tree_id, cleared)
        return cleared

    def delete_tree(self, tree_id: str) -> int:
        """Forget a tree's cache entirely.

        Returns:
            Number of entries the cache held.
        """
        with self._lock:
            cache = self._caches.pop(tree_id, None)
        dropped = cache.clear_and_get_size() if cache is not None else 0
        logger.info("Deleted cache for tree %s (%d entries)", tree_id, dropped)
        return dropped

    def tree_count(self) -> int:
        with self._lock:
            return len(self._caches)

    def clear_all(self) -> Tuple[int, int]:
        """Drop every tree's cache.

        Returns:
            ``(trees, entries)`` that were dropped.
        """
        with self._lock:
            caches = list(self._caches.values())
            self._caches.clear()
        entries = sum(cache.clear_and_get_size() for cache in caches)
        logger.info("Cleared all caches: %d trees, %d entries", len(caches), entries)
        return len(caches), entries
