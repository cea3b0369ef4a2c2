"""Error taxonomy for risk simulation and caching.

Three families of failure are reported to callers, none of them retried
internally (the core performs no I/O, so there is no transient class):

1. *Validation errors* -- malformed node parameters, reported per field with
   a machine-readable :class:`ValidationErrorCode`.
2. *Structural errors* -- a node id missing from the tree index, a portfolio
   without children, an inconsistent mitigation transform.
3. *Distribution-fit failures* -- an ill-posed or non-monotone quantile fit.

Cancellation is signalled with :class:`SimulationCancelled`; the cache is
left valid when it is raised.

Examples:
    Inspecting accumulated validation errors::

        try:
            RiskLeaf(id="x", name="", distribution_type="expert", probability=1.5)
        except ValidationFailed as exc:
            for error in exc.errors:
                print(error.field, error.code.value, error.message)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ValidationErrorCode(Enum):
    """Machine-readable error codes for validation failures."""

    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_RANGE = "INVALID_RANGE"
    INVALID_LENGTH = "INVALID_LENGTH"
    INVALID_PATTERN = "INVALID_PATTERN"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    DUPLICATE_VALUE = "DUPLICATE_VALUE"
    INVALID_COMBINATION = "INVALID_COMBINATION"
    EMPTY_COLLECTION = "EMPTY_COLLECTION"
    DISTRIBUTION_FIT_FAILED = "DISTRIBUTION_FIT_FAILED"
    INVALID_EXPERT_PARAMS = "INVALID_EXPERT_PARAMS"
    INVALID_LOGNORMAL_PARAMS = "INVALID_LOGNORMAL_PARAMS"
    UNSUPPORTED_DISTRIBUTION_TYPE = "UNSUPPORTED_DISTRIBUTION_TYPE"


@dataclass(frozen=True)
class ValidationError:
    """A single field-level validation problem.

    Attributes:
        field: Dotted path of the offending field (e.g. ``"cyber.probability"``).
        code: Machine-readable category.
        message: Human-readable description.
    """

    field: str
    code: ValidationErrorCode
    message: str

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-friendly dictionary."""
        return {"field": self.field, "code": self.code.value, "message": self.message}


class RiskRegisterError(Exception):
    """Base class for all risk-register errors."""


class ValidationFailed(RiskRegisterError):
    """One or more validation or structural errors.

    Attributes:
        errors: Accumulated field-level errors, in the order they were found.
    """

    def __init__(self, errors: List[ValidationError]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(f"[{e.field}] {e.message}" for e in self.errors))

    @classmethod
    def single(cls, field: str, code: ValidationErrorCode, message: str) -> "ValidationFailed":
        """Build a failure holding exactly one error."""
        return cls([ValidationError(field=field, code=code, message=message)])

    @property
    def codes(self) -> List[ValidationErrorCode]:
        """Codes of all accumulated errors."""
        return [e.code for e in self.errors]


class NodeNotFoundError(ValidationFailed):
    """A node id is absent from the tree index.

    This is a client error: the id is surfaced so callers can report it.
    """

    def __init__(self, node_id: str, field: str = "nodeId") -> None:
        self.node_id = node_id
        super().__init__(
            [
                ValidationError(
                    field=field,
                    code=ValidationErrorCode.CONSTRAINT_VIOLATION,
                    message=f"Node not found in tree index: {node_id}",
                )
            ]
        )


class DistributionFitError(RiskRegisterError):
    """Fitting a loss distribution failed.

    Attributes:
        node_id: Node whose parameters could not be fitted, when known.
        reasons: Individual problems found while fitting.
    """

    def __init__(
        self, reasons: List[str], node_id: Optional[str] = None
    ) -> None:
        self.reasons = list(reasons)
        self.node_id = node_id
        prefix = f"Failed to fit distribution for '{node_id}': " if node_id else ""
        super().__init__(prefix + "; ".join(self.reasons))

    def for_node(self, node_id: str) -> "DistributionFitError":
        """Return a copy of this error attributed to ``node_id``."""
        return DistributionFitError(self.reasons, node_id=node_id)

    def to_validation_error(self) -> ValidationError:
        """Express the failure as a field-level validation error."""
        return ValidationError(
            field=f"{self.node_id}.distribution" if self.node_id else "distribution",
            code=ValidationErrorCode.DISTRIBUTION_FIT_FAILED,
            message=str(self),
        )


class SimulationCancelled(RiskRegisterError):
    """A simulation was abandoned before it finished.

    Entries already written for completed children remain valid; the node
    that was in progress is left uncached.
    """

    def __init__(self, node_id: Optional[str] = None) -> None:
        self.node_id = node_id
        super().__init__(
            f"Simulation cancelled while resolving '{node_id}'"
            if node_id
            else "Simulation cancelled"
        )
