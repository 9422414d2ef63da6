"""Finding data models."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class DeadRuleKind(str, Enum):
    UNREACHABLE = "unreachable"
    DUPLICATE = "duplicate"
    DANGLING_REFERENCE = "dangling_reference"


class Finding(BaseModel):
    model_config = ConfigDict(frozen=True)

    component: str
    issue: str
    severity: Severity
    description: str = ""
    recommendation: str = ""


class DeadRuleFinding(Finding):
    category: Literal["dead_rule"] = "dead_rule"
    rule_index: int
    interface: str = ""
    kind: DeadRuleKind
    reason: str
    related_rule_index: Optional[int] = None


class SecurityFinding(Finding):
    category: Literal["security"] = "security"


class PerformanceFinding(Finding):
    category: Literal["performance"] = "performance"


class ConsistencyFinding(Finding):
    category: Literal["consistency"] = "consistency"


class ComplianceFinding(Finding):
    category: Literal["compliance"] = "compliance"
    plugin: str = ""
    references: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()


class FindingSummary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0


F = TypeVar("F", bound=Finding)


def sort_findings(findings: Iterable[F]) -> list[F]:
    """Sort by severity (most severe first), then component, then issue."""
    return sorted(findings, key=lambda f: (-f.severity.rank, f.component, f.issue))


def summarize(findings: Iterable[Finding]) -> FindingSummary:
    summary = FindingSummary()
    for f in findings:
        setattr(summary, f.severity.value, getattr(summary, f.severity.value) + 1)
        summary.total += 1
    return summary
