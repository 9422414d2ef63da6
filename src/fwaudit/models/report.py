"""Audit report data models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from .compliance import ComplianceChecks
from .finding import (
    ComplianceFinding,
    ConsistencyFinding,
    DeadRuleFinding,
    FindingSummary,
    PerformanceFinding,
    SecurityFinding,
)
from .plugin import PluginIssue


class Analysis(BaseModel):
    dead_rules: list[DeadRuleFinding] = []
    security_issues: list[SecurityFinding] = []
    performance_issues: list[PerformanceFinding] = []
    consistency_issues: list[ConsistencyFinding] = []


class SecurityAssessment(BaseModel):
    overall_score: int = 100
    security_features: list[str] = []
    vulnerabilities: list[str] = []
    recommendations: list[str] = []


class AuditReport(BaseModel):
    version: str = "1.0.0"
    device_name: str = ""
    generated_at: datetime
    analysis: Analysis = Analysis()
    compliance_checks: ComplianceChecks = ComplianceChecks()
    security_assessment: SecurityAssessment = SecurityAssessment()
    compliance_findings: list[ComplianceFinding] = []
    plugins_run: list[str] = []
    plugin_issues: list[PluginIssue] = []
    summary: FindingSummary = FindingSummary()
