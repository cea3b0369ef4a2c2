"""Cache invalidation when a node's parameters change.

:class:`InvalidationHandler` looks up the current tree, clears the cached
outcomes on the path from the root to the changed node, and notifies
subscribers (for example a push channel to connected clients) with the ids
that were cleared.

Example:
    >>> handler = InvalidationHandler(cache_manager, trees.get)
    >>> handler.subscribe(lambda tree_id, ids: print(tree_id, ids))
    >>> handler.handle_node_change("tree-1", "cyber")
    tree-1 ['root', 'ops', 'cyber']
    InvalidationResult(invalidated_nodes=['root', 'ops', 'cyber'], subscribers_notified=1)
"""

from dataclasses import dataclass, field
import logging
import threading
from typing import Callable, List, Optional, Tuple

from .cache import TreeCacheManager
from .tree_index import RiskTree

logger = logging.getLogger(__name__)

InvalidationListener = Callable[[str, List[str]], None]
TreeLookup = Callable[[str], Optional[RiskTree]]


@dataclass
class InvalidationResult:
    """Outcome of one invalidation.

    Attributes:
        invalidated_nodes: Ids whose cache entries were cleared, root first.
        subscribers_notified: Listeners that received the event.
    """

    invalidated_nodes: List[str] = field(default_factory=list)
    subscribers_notified: int = 0


class InvalidationHandler:
    """Clears stale cache entries and notifies listeners.

    Args:
        cache_manager: Owner of the per-tree caches.
        tree_lookup: Returns the current tree for an id, or None.
    """

    def __init__(self, cache_manager: TreeCacheManager, tree_lookup: TreeLookup):
        self.cache_manager = cache_manager
        self.tree_lookup = tree_lookup
        self._listeners: List[Tuple[Optional[str], InvalidationListener]] = []
        self._lock = threading.Lock()

    def subscribe(
        self, callback: InvalidationListener, tree_id: Optional[str] = None
    ) -> Callable[[], None]:
        """Register ``callback(tree_id, node_ids)`` for invalidation events.

        Args:
            callback: Listener to call after each invalidation.
            tree_id: Only receive events for this tree (None for all trees).

        Returns:
            A function that removes the subscription.
        """
        entry = (tree_id, callback)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def handle_node_change(self, tree_id: str, node_id: str) -> InvalidationResult:
        """Invalidate ``node_id`` and its ancestors, then notify listeners.

        Returns:
            The cleared ids and the number of listeners notified; empty if the
            tree or the node does not exist.
        """
        tree = self.tree_lookup(tree_id)
        if tree is None:
            logger.warning("Tree %s not found; nothing invalidated", tree_id)
            return InvalidationResult()

        invalidated = self.cache_manager.invalidate(tree, node_id)
        if not invalidated:
            return InvalidationResult()
        logger.info(
            "Cache invalidated: tree_id=%s, node_id=%s, affected=%s",
            tree_id,
            node_id,
            ", ".join(invalidated),
        )
        notified = self._publish(tree_id, invalidated)
        logger.debug("Invalidation sent to %d subscribers for tree %s", notified, tree_id)
        return InvalidationResult(invalidated_nodes=invalidated, subscribers_notified=notified)

    def _publish(self, tree_id: str, node_ids: List[str]) -> int:
        with self._lock:
            listeners = [cb for scope, cb in self._listeners if scope in (None, tree_id)]
        notified = 0
        for callback in listeners:
            try:
                callback(tree_id, list(node_ids))
            except Exception:  # pylint: disable=broad-exception-caught
                logger.warning("Invalidation listener %r failed", callback, exc_info=True)
                continue
            notified += 1
        return notified
