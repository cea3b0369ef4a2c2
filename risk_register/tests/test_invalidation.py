"""Tests for change-driven invalidation and notification."""

import logging

import pytest

from risk_register.invalidation import InvalidationHandler, InvalidationResult
from risk_register.outcome import Outcome


@pytest.fixture
def handler(cache_manager, risk_tree):
    trees = {risk_tree.id: risk_tree}
    return InvalidationHandler(cache_manager, trees.get)


@pytest.fixture
def cache(cache_manager, risk_tree):
    cache = cache_manager.cache_for(risk_tree.id)
    for node_id in risk_tree.index:
        cache.put(node_id, Outcome(node_id, {0: 1}, n_trials=1))
    return cache


class TestInvalidationHandler:
    """Test InvalidationHandler."""

    def test_clears_path_and_notifies(self, handler, cache):
        events = []
        handler.subscribe(lambda tree_id, ids: events.append((tree_id, ids)))

        result = handler.handle_node_change("tree-1", "cyber")

        assert result == InvalidationResult(["root", "ops", "cyber"], 1)
        assert events == [("tree-1", ["root", "ops", "cyber"])]
        assert cache.keys() == ["hardware"]

    def test_scoped_subscription(self, handler, cache):
        scoped, other = [], []
        handler.subscribe(lambda t, ids: scoped.append(ids), tree_id="tree-1")
        handler.subscribe(lambda t, ids: other.append(ids), tree_id="tree-2")

        result = handler.handle_node_change("tree-1", "hardware")

        assert result.subscribers_notified == 1
        assert scoped == [["root", "ops", "hardware"]]
        assert other == []

    def test_unsubscribe(self, handler, cache):
        events = []
        unsubscribe = handler.subscribe(lambda t, ids: events.append(ids))
        unsubscribe()
        unsubscribe()
        assert handler.handle_node_change("tree-1", "cyber").subscribers_notified == 0
        assert events == []

    def test_failing_listener_is_skipped(self, handler, cache, caplog):
        events = []

        def broken(tree_id, ids):
            raise RuntimeError("socket closed")

        handler.subscribe(broken)
        handler.subscribe(lambda t, ids: events.append(ids))

        with caplog.at_level(logging.WARNING, logger="risk_register.invalidation"):
            result = handler.handle_node_change("tree-1", "ops")

        assert result.subscribers_notified == 1
        assert events == [["root", "ops"]]
        assert "failed" in caplog.text

    def test_listener_gets_a_copy(self, handler, cache):
        handler.subscribe(lambda t, ids: ids.clear())
        result = handler.handle_node_change("tree-1", "cyber")
        assert result.invalidated_nodes == ["root", "ops", "cyber"]

    def test_unknown_tree(self, handler, cache):
        events = []
        handler.subscribe(lambda t, ids: events.append(ids))
        assert handler.handle_node_change("tree-404", "cyber") == InvalidationResult()
        assert events == []
        assert len(cache) == 4

    def test_unknown_node(self, handler, cache):
        events = []
        handler.subscribe(lambda t, ids: events.append(ids))
        assert handler.handle_node_change("tree-1", "ghost") == InvalidationResult()
        assert events == []
