"""Risk tree nodes: leaves carrying a loss model and portfolios grouping them.

A tree is stored flat. Portfolios refer to their children by id and every
node may name its parent, so a tree can be sent, stored and rebuilt without
recursion. :class:`~risk_register.tree_index.TreeIndex` turns the flat list
into lookups.

All construction-time validation accumulates every problem it finds into a
single :class:`~risk_register.exceptions.ValidationFailed` so a caller can
report them together.

Examples:
    A lognormal leaf under a portfolio::

        leaf = RiskLeaf(
            id="cyber",
            name="Cyber attack",
            distribution_type="lognormal",
            probability=0.25,
            min_loss=1_000,
            max_loss=50_000,
            parent_id="ops",
        )
        ops = RiskPortfolio(id="ops", name="Operations", child_ids=("cyber",))
"""

from dataclasses import dataclass, field
import math
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import ValidationError, ValidationErrorCode, ValidationFailed

NODE_ID_MIN_LENGTH = 3
NODE_ID_MAX_LENGTH = 30
NAME_MAX_LENGTH = 50
DISTRIBUTION_TYPES = ("expert", "lognormal")

_NODE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

NodeId = str


def _node_id_errors(value: Any, field_name: str) -> List[ValidationError]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return [
            ValidationError(field_name, ValidationErrorCode.REQUIRED_FIELD, "Id is required")
        ]
    if not isinstance(value, str):
        return [
            ValidationError(
                field_name,
                ValidationErrorCode.INVALID_FORMAT,
                f"Id must be a string, got {type(value).__name__}",
            )
        ]
    errors = []
    if not NODE_ID_MIN_LENGTH <= len(value) <= NODE_ID_MAX_LENGTH:
        errors.append(
            ValidationError(
                field_name,
                ValidationErrorCode.INVALID_LENGTH,
                f"Id must be {NODE_ID_MIN_LENGTH}-{NODE_ID_MAX_LENGTH} characters, "
                f"got {len(value)}",
            )
        )
    if not _NODE_ID_PATTERN.match(value):
        errors.append(
            ValidationError(
                field_name,
                ValidationErrorCode.INVALID_PATTERN,
                "Id may contain only letters, digits, hyphens and underscores",
            )
        )
    return errors


def _name_errors(value: Any, field_name: str) -> List[ValidationError]:
    if not isinstance(value, str) or not value.strip():
        return [
            ValidationError(field_name, ValidationErrorCode.REQUIRED_FIELD, "Name is required")
        ]
    if len(value.strip()) > NAME_MAX_LENGTH:
        return [
            ValidationError(
                field_name,
                ValidationErrorCode.INVALID_LENGTH,
                f"Name must be at most {NAME_MAX_LENGTH} characters",
            )
        ]
    return []


def validate_node_id(value: Any, field_name: str = "id") -> NodeId:
    """Validate a node id and return it.

    Args:
        value: Candidate id.
        field_name: Field reported in the error.

    Returns:
        The id, unchanged.

    Raises:
        ValidationFailed: If the id is blank, has the wrong length or uses
            characters outside ``[A-Za-z0-9_-]``.
    """
    errors = _node_id_errors(value, field_name)
    if errors:
        raise ValidationFailed(errors)
    return value


def _field(node_id: Any, name: str) -> str:
    return f"{node_id}.{name}" if isinstance(node_id, str) and node_id else name


@dataclass(frozen=True)
class RiskLeaf:
    """A single risk: an annual occurrence probability and a loss model.

    Attributes:
        id: Unique node id within the tree.
        name: Display name.
        distribution_type: ``"expert"`` (percentile fit) or ``"lognormal"``.
        probability: Chance the risk occurs in one trial, in (0, 1).
        percentiles: Expert mode probabilities.
        quantiles: Expert mode loss at each percentile.
        min_loss: Lognormal mode lower bound of the confidence interval.
        max_loss: Lognormal mode upper bound of the confidence interval.
        parent_id: Owning portfolio, or None for a single-leaf tree.
    """

    id: NodeId
    name: str
    distribution_type: str
    probability: float
    percentiles: Tuple[float, ...] = ()
    quantiles: Tuple[float, ...] = ()
    min_loss: Optional[int] = None
    max_loss: Optional[int] = None
    parent_id: Optional[NodeId] = None

    def __post_init__(self):
        """Normalise sequences to tuples and validate every field."""
        object.__setattr__(self, "percentiles", tuple(self.percentiles or ()))
        object.__setattr__(self, "quantiles", tuple(self.quantiles or ()))

        errors = _node_id_errors(self.id, "id")
        errors += _name_errors(self.name, _field(self.id, "name"))
        if self.parent_id is not None:
            errors += _node_id_errors(self.parent_id, _field(self.id, "parentId"))

        if not (
            isinstance(self.probability, (int, float))
            and math.isfinite(self.probability)
            and 0.0 < self.probability < 1.0
        ):
            errors.append(
                ValidationError(
                    _field(self.id, "probability"),
                    ValidationErrorCode.INVALID_RANGE,
                    f"Probability must be in (0, 1), got {self.probability}",
                )
            )

        if self.distribution_type == "expert":
            errors += self._expert_errors()
        elif self.distribution_type == "lognormal":
            errors += self._lognormal_errors()
        else:
            errors.append(
                ValidationError(
                    _field(self.id, "distributionType"),
                    ValidationErrorCode.UNSUPPORTED_DISTRIBUTION_TYPE,
                    f"Distribution type must be one of {DISTRIBUTION_TYPES}, "
                    f"got {self.distribution_type!r}",
                )
            )

        if errors:
            raise ValidationFailed(errors)

    def _expert_errors(self) -> List[ValidationError]:
        code = ValidationErrorCode.INVALID_EXPERT_PARAMS
        field_name = _field(self.id, "percentiles")
        if not self.percentiles or not self.quantiles:
            return [
                ValidationError(
                    field_name, code, "Expert mode requires both percentiles and quantiles"
                )
            ]
        errors = []
        if len(self.percentiles) != len(self.quantiles):
            errors.append(
                ValidationError(
                    field_name,
                    code,
                    "Expert mode: percentiles and quantiles must have same length",
                )
            )
        if min(len(self.percentiles), len(self.quantiles)) < 2:
            errors.append(
                ValidationError(field_name, code, "Expert mode requires at least 2 points")
            )
        if any(not 0.0 < p < 1.0 for p in self.percentiles):
            errors.append(
                ValidationError(field_name, code, "All percentiles must be in (0.0, 1.0)")
            )
        return errors

    def _lognormal_errors(self) -> List[ValidationError]:
        code = ValidationErrorCode.INVALID_LOGNORMAL_PARAMS
        field_name = _field(self.id, "minLoss")
        if self.min_loss is None or self.max_loss is None:
            return [
                ValidationError(
                    field_name, code, "Lognormal mode requires both minLoss and maxLoss"
                )
            ]
        if self.min_loss < 0 or self.max_loss < 0:
            return [ValidationError(field_name, code, "minLoss and maxLoss must be non-negative")]
        if self.min_loss >= self.max_loss:
            return [
                ValidationError(
                    field_name,
                    code,
                    f"minLoss ({self.min_loss}) must be less than maxLoss ({self.max_loss})",
                )
            ]
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the plain-dict shape :func:`node_from_dict` reads."""
        data: Dict[str, Any] = {
            "type": "leaf",
            "id": self.id,
            "name": self.name,
            "distribution_type": self.distribution_type,
            "probability": self.probability,
        }
        if self.distribution_type == "expert":
            data["percentiles"] = list(self.percentiles)
            data["quantiles"] = list(self.quantiles)
        else:
            data["min_loss"] = self.min_loss
            data["max_loss"] = self.max_loss
        if self.parent_id is not None:
            data["parent_id"] = self.parent_id
        return data


@dataclass(frozen=True)
class RiskPortfolio:
    """A group of risks whose losses are summed trial by trial.

    Attributes:
        id: Unique node id within the tree.
        name: Display name.
        child_ids: Ordered ids of the direct children.
        parent_id: Owning portfolio, or None for the root.
    """

    id: NodeId
    name: str
    child_ids: Tuple[NodeId, ...] = field(default_factory=tuple)
    parent_id: Optional[NodeId] = None

    def __post_init__(self):
        """Normalise children to a tuple and validate every field."""
        object.__setattr__(self, "child_ids", tuple(self.child_ids or ()))

        errors = _node_id_errors(self.id, "id")
        errors += _name_errors(self.name, _field(self.id, "name"))
        if self.parent_id is not None:
            errors += _node_id_errors(self.parent_id, _field(self.id, "parentId"))

        children_field = _field(self.id, "childIds")
        if not self.child_ids:
            errors.append(
                ValidationError(
                    children_field,
                    ValidationErrorCode.EMPTY_COLLECTION,
                    "Portfolio must have at least one child",
                )
            )
        for child_id in self.child_ids:
            errors += _node_id_errors(child_id, children_field)
        if len(set(self.child_ids)) != len(self.child_ids):
            errors.append(
                ValidationError(
                    children_field,
                    ValidationErrorCode.DUPLICATE_VALUE,
                    "Portfolio lists the same child more than once",
                )
            )
        if self.id in self.child_ids:
            errors.append(
                ValidationError(
                    children_field,
                    ValidationErrorCode.CONSTRAINT_VIOLATION,
                    "Portfolio cannot be its own child",
                )
            )

        if errors:
            raise ValidationFailed(errors)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the plain-dict shape :func:`node_from_dict` reads."""
        data: Dict[str, Any] = {
            "type": "portfolio",
            "id": self.id,
            "name": self.name,
            "child_ids": list(self.child_ids),
        }
        if self.parent_id is not None:
            data["parent_id"] = self.parent_id
        return data


RiskNode = Union[RiskLeaf, RiskPortfolio]


def node_from_dict(data: Dict[str, Any]) -> RiskNode:
    """Build a node from a plain dictionary (YAML or JSON shaped).

    A dictionary with ``child_ids`` (or ``type: portfolio``) becomes a
    :class:`RiskPortfolio`; anything else is read as a :class:`RiskLeaf`.
    Both snake_case and camelCase keys are accepted.

    Raises:
        ValidationFailed: If the node is invalid.
    """

    def pick(*keys: str, default: Any = None) -> Any:
        for key in keys:
            if key in data:
                return data[key]
        return default

    node_type = pick("type", "kind")
    child_ids: Optional[Sequence[str]] = pick("child_ids", "childIds", "children")
    if node_type == "portfolio" or (node_type is None and child_ids is not None):
        return RiskPortfolio(
            id=pick("id"),
            name=pick("name"),
            child_ids=tuple(child_ids or ()),
            parent_id=pick("parent_id", "parentId"),
        )
    return RiskLeaf(
        id=pick("id"),
        name=pick("name"),
        distribution_type=pick("distribution_type", "distributionType"),
        probability=pick("probability"),
        percentiles=tuple(pick("percentiles", default=()) or ()),
        quantiles=tuple(pick("quantiles", default=()) or ()),
        min_loss=pick("min_loss", "minLoss"),
        max_loss=pick("max_loss", "maxLoss"),
        parent_id=pick("parent_id", "parentId"),
    )
