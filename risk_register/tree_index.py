"""Flattened, read-only view of a risk tree.

:class:`TreeIndex` maps node ids to nodes, children to parents and parents
to children, and answers the structural questions the cache needs, chiefly
:meth:`TreeIndex.ancestor_path`. An index is built once per tree structure
and never mutated; when nodes are added, removed or re-parented a new index
is built.

:class:`RiskTree` pairs a tree id and name with its nodes and builds the
index lazily.

Examples:
    Build a tree and query it::

        tree = RiskTree.from_dict({
            "id": "tree-1",
            "name": "Enterprise",
            "nodes": [
                {"id": "root", "name": "All", "child_ids": ["ops"]},
                {"id": "ops", "name": "Operations", "child_ids": ["cyber", "hardware"],
                 "parent_id": "root"},
                {"id": "cyber", "name": "Cyber", "distribution_type": "lognormal",
                 "probability": 0.2, "min_loss": 1000, "max_loss": 50000, "parent_id": "ops"},
                {"id": "hardware", "name": "Hardware", "distribution_type": "lognormal",
                 "probability": 0.1, "min_loss": 500, "max_loss": 20000, "parent_id": "ops"},
            ],
        })
        tree.index.ancestor_path("hardware")  # ['root', 'ops', 'hardware']
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from functools import cached_property
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .config.utils import read_yaml_mapping
from .exceptions import NodeNotFoundError, ValidationError, ValidationErrorCode, ValidationFailed
from .risk_node import NodeId, RiskLeaf, RiskNode, RiskPortfolio, node_from_dict

logger = logging.getLogger(__name__)


class TreeIndex:
    """Node lookup, parent pointers and ancestor paths for one tree.

    Use :meth:`from_nodes` to build a validated index.

    Attributes:
        nodes: Node id to node.
        parents: Child id to parent id (the root has no entry).
        children: Portfolio id to its ordered child ids.
    """

    def __init__(
        self,
        nodes: Mapping[NodeId, RiskNode],
        parents: Mapping[NodeId, NodeId],
        children: Mapping[NodeId, Tuple[NodeId, ...]],
        root_id: NodeId,
    ):
        self.nodes: Mapping[NodeId, RiskNode] = MappingProxyType(dict(nodes))
        self.parents: Mapping[NodeId, NodeId] = MappingProxyType(dict(parents))
        self.children: Mapping[NodeId, Tuple[NodeId, ...]] = MappingProxyType(dict(children))
        self._root_id = root_id
        self._path_cache: Dict[NodeId, Tuple[NodeId, ...]] = {}

    @classmethod
    def from_nodes(cls, nodes: Iterable[RiskNode]) -> "TreeIndex":
        """Build and validate an index from a flat collection of nodes.

        Portfolios' ``child_ids`` define the structure; any ``parent_id`` a
        node declares must agree with it.

        Raises:
            ValidationFailed: If ids repeat, a child id is unknown, a node has
                more than one parent, declared parents disagree with the
                child lists, there is not exactly one root, or some node is
                unreachable from the root (which includes cycles).
        """
        node_list = list(nodes)
        errors: List[ValidationError] = []

        if not node_list:
            raise ValidationFailed.single(
                "nodes",
                ValidationErrorCode.EMPTY_COLLECTION,
                "Tree must contain at least one node",
            )

        counts = Counter(node.id for node in node_list)
        for node_id, count in counts.items():
            if count > 1:
                errors.append(
                    ValidationError(
                        f"{node_id}.id",
                        ValidationErrorCode.DUPLICATE_VALUE,
                        f"Node id '{node_id}' appears {count} times",
                    )
                )
        by_id: Dict[NodeId, RiskNode] = {node.id: node for node in node_list}

        parents: Dict[NodeId, NodeId] = {}
        children: Dict[NodeId, Tuple[NodeId, ...]] = {}
        for node in node_list:
            if not isinstance(node, RiskPortfolio):
                continue
            children[node.id] = node.child_ids
            for child_id in node.child_ids:
                if child_id not in by_id:
                    errors.append(
                        ValidationError(
                            f"{node.id}.childIds",
                            ValidationErrorCode.CONSTRAINT_VIOLATION,
                            f"Child '{child_id}' of '{node.id}' is not in the tree",
                        )
                    )
                elif child_id in parents and parents[child_id] != node.id:
                    errors.append(
                        ValidationError(
                            f"{child_id}.parentId",
                            ValidationErrorCode.CONSTRAINT_VIOLATION,
                            f"Node '{child_id}' has more than one parent: "
                            f"'{parents[child_id]}' and '{node.id}'",
                        )
                    )
                else:
                    parents[child_id] = node.id

        for node in node_list:
            declared = node.parent_id
            actual = parents.get(node.id)
            if declared is not None and declared != actual:
                listed = f"is listed under '{actual}'" if actual else "is not listed by it"
                errors.append(
                    ValidationError(
                        f"{node.id}.parentId",
                        ValidationErrorCode.CONSTRAINT_VIOLATION,
                        f"Node '{node.id}' declares parent '{declared}' but {listed}",
                    )
                )

        roots = [node_id for node_id in by_id if node_id not in parents]
        if len(roots) != 1:
            errors.append(
                ValidationError(
                    "nodes",
                    ValidationErrorCode.CONSTRAINT_VIOLATION,
                    f"Tree must have exactly one root, found {len(roots)}: {sorted(roots)}",
                )
            )

        if errors:
            raise ValidationFailed(errors)

        root_id = roots[0]
        reached = set()
        stack = [root_id]
        while stack:
            current = stack.pop()
            if current in reached:
                continue
            reached.add(current)
            stack.extend(children.get(current, ()))
        unreachable = sorted(set(by_id) - reached)
        if unreachable:
            raise ValidationFailed.single(
                "nodes",
                ValidationErrorCode.CONSTRAINT_VIOLATION,
                f"Nodes unreachable from root '{root_id}' (cycle or detached): {unreachable}",
            )

        return cls(by_id, parents, children, root_id)

    @property
    def root_id(self) -> NodeId:
        """Id of the single root node."""
        return self._root_id

    def get(self, node_id: NodeId) -> Optional[RiskNode]:
        """Node with ``node_id``, or None."""
        return self.nodes.get(node_id)

    def node(self, node_id: NodeId) -> RiskNode:
        """Node with ``node_id``.

        Raises:
            NodeNotFoundError: If the id is not in the tree.
        """
        found = self.nodes.get(node_id)
        if found is None:
            raise NodeNotFoundError(node_id)
        return found

    def parent_of(self, node_id: NodeId) -> Optional[NodeId]:
        return self.parents.get(node_id)

    def children_of(self, node_id: NodeId) -> Tuple[NodeId, ...]:
        """Ordered child ids; empty for leaves and unknown ids."""
        return self.children.get(node_id, ())

    def ancestor_path(self, node_id: NodeId) -> List[NodeId]:
        """Ids from the root down to ``node_id`` inclusive.

        Returns:
            The path, root first; an empty list if ``node_id`` is unknown.
        """
        cached = self._path_cache.get(node_id)
        if cached is None:
            if node_id not in self.nodes:
                return []
            path = [node_id]
            while path[-1] in self.parents:
                path.append(self.parents[path[-1]])
            cached = tuple(reversed(path))
            self._path_cache[node_id] = cached
        return list(cached)

    def descendants(self, node_id: NodeId) -> List[NodeId]:
        """The node and everything beneath it, in pre-order; empty if unknown."""
        if node_id not in self.nodes:
            return []
        ordered: List[NodeId] = []
        stack = [node_id]
        while stack:
            current = stack.pop()
            ordered.append(current)
            stack.extend(reversed(self.children_of(current)))
        return ordered

    def is_ancestor(self, ancestor_id: NodeId, descendant_id: NodeId) -> bool:
        """Whether ``ancestor_id`` lies on the path from the root to ``descendant_id``.

        A node counts as its own ancestor.
        """
        return ancestor_id in self.ancestor_path(descendant_id)

    @property
    def leaf_ids(self) -> List[NodeId]:
        """Ids of all leaves, in pre-order from the root."""
        return [
            node_id
            for node_id in self.descendants(self._root_id)
            if isinstance(self.nodes[node_id], RiskLeaf)
        ]

    def depth(self, node_id: NodeId) -> int:
        """Edges between the root and ``node_id`` (the root has depth 0).

        Raises:
            NodeNotFoundError: If the id is not in the tree.
        """
        path = self.ancestor_path(node_id)
        if not path:
            raise NodeNotFoundError(node_id)
        return len(path) - 1

    def max_depth(self) -> int:
        """Depth of the deepest node."""
        return max(self.depth(node_id) for node_id in self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self.descendants(self._root_id))

    def __repr__(self) -> str:
        return f"TreeIndex(root={self._root_id!r}, nodes={len(self.nodes)})"


@dataclass(frozen=True)
class RiskTree:
    """A named tree of risk nodes.

    Attributes:
        id: Tree id; caches are scoped by it.
        name: Display name.
        nodes: Every node in the tree, in any order.
    """

    id: str
    name: str
    nodes: Tuple[RiskNode, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))

    @cached_property
    def index(self) -> TreeIndex:
        """Validated index, built on first access."""
        return TreeIndex.from_nodes(self.nodes)

    @property
    def root(self) -> RiskNode:
        return self.index.node(self.index.root_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskTree":
        """Build a tree from ``{"id", "name", "nodes": [...]}``.

        Node errors from every node are reported together.

        Raises:
            ValidationFailed: If any node is invalid.
        """
        nodes: List[RiskNode] = []
        errors: List[ValidationError] = []
        for raw in data.get("nodes", []):
            try:
                nodes.append(node_from_dict(raw))
            except ValidationFailed as exc:
                errors.extend(exc.errors)
        if data.get("id") is None:
            errors.append(
                ValidationError("id", ValidationErrorCode.REQUIRED_FIELD, "Tree id is required")
            )
        if errors:
            raise ValidationFailed(errors)
        tree_id = str(data["id"])
        return cls(id=tree_id, name=data.get("name") or tree_id, nodes=tuple(nodes))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RiskTree":
        """Load a tree from a YAML file shaped like :meth:`from_dict` input.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValidationFailed: If any node is invalid.
        """
        return cls.from_dict(read_yaml_mapping(path, what="Tree"))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "nodes": [node.to_dict() for node in self.nodes]}

    def with_node(self, node: RiskNode) -> "RiskTree":
        """Copy of this tree with ``node`` replacing the node of the same id, or added."""
        if any(n.id == node.id for n in self.nodes):
            nodes = tuple(node if n.id == node.id else n for n in self.nodes)
        else:
            nodes = self.nodes + (node,)
        return replace(self, nodes=nodes)

    def validate_depth(self, max_depth: int) -> None:
        """Reject trees deeper than ``max_depth``.

        Raises:
            ValidationFailed: If the deepest node exceeds ``max_depth``.
        """
        depth = self.index.max_depth()
        if depth > max_depth:
            raise ValidationFailed.single(
                "nodes",
                ValidationErrorCode.CONSTRAINT_VIOLATION,
                f"Tree depth {depth} exceeds maximum {max_depth}",
            )
