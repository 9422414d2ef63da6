"""Compliance control data models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from .finding import Severity


class Control(BaseModel):
    """A single compliance control declared by a plugin."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    category: str = ""
    severity: Severity = Severity.MEDIUM
    rationale: str = ""
    remediation: str = ""
    tags: tuple[str, ...] = ()


class ControlStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class ControlResult(BaseModel):
    """Outcome of one control after all plugin findings are mapped to it."""

    plugin: str
    control_id: str
    title: str
    severity: Severity
    status: ControlStatus
    finding_count: int = 0


class ComplianceChecks(BaseModel):
    compliance_score: int = 100
    compliance_items: list[ControlResult] = []
    violations: list[ControlResult] = []
