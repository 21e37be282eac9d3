"""
Resolution Errors

Structured error reporting shared by the validator, the count and index
resolvers, and the graph builder.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List


class ErrorKind(Enum):
    """Category of a problem found while resolving a network spec."""

    VALIDATION = "ValidationError"
    TOPOLOGY = "TopologyError"
    INDEX_OUT_OF_RANGE = "IndexOutOfRange"


@dataclass(frozen=True)
class TopologyIssue:
    """A single problem, tied to the input field or resource it concerns."""

    kind: ErrorKind
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.field}: {self.message}"


class ResolutionError(ValueError):
    """Raised when a spec cannot be resolved; carries every issue found."""

    def __init__(self, issues: Iterable[TopologyIssue]):
        self.issues: List[TopologyIssue] = list(issues)
        summary = "; ".join(str(issue) for issue in self.issues)
        super().__init__(summary or "network spec could not be resolved")

    @property
    def kinds(self) -> List[ErrorKind]:
        return [issue.kind for issue in self.issues]


def validation_issue(field: str, message: str) -> TopologyIssue:
    return TopologyIssue(ErrorKind.VALIDATION, field, message)


def topology_issue(field: str, message: str) -> TopologyIssue:
    return TopologyIssue(ErrorKind.TOPOLOGY, field, message)


def index_issue(field: str, message: str) -> TopologyIssue:
    return TopologyIssue(ErrorKind.INDEX_OUT_OF_RANGE, field, message)
