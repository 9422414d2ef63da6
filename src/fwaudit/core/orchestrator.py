"""Main audit orchestrator.

Runs the rule analyzer and heuristic checks synchronously, then the
compliance plugins concurrently, and assembles a single report.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.markup import escape

from .. import __version__
from ..compliance.loader import build_registry
from ..compliance.manager import DEFAULT_CANCEL_GRACE, DEFAULT_PLUGIN_TIMEOUT, PluginManager
from ..compliance.mapping import build_compliance_checks
from ..compliance.registry import PluginRegistry
from ..errors import InvalidDeviceError
from ..models.device import Device
from ..models.finding import summarize
from ..models.report import Analysis, AuditReport
from .config import DEFAULT_CONFIG
from .heuristics import run_heuristics
from .policy import analyze_rules
from .scoring import DEFAULT_SEVERITY_WEIGHTS, build_security_assessment

console = Console(stderr=True)


class AuditOptions(BaseModel):
    selected_plugins: list[str] = []
    parallelism: int = 0
    per_plugin_timeout: float = DEFAULT_PLUGIN_TIMEOUT
    cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE
    severity_weights: dict[str, int] = dict(DEFAULT_SEVERITY_WEIGHTS)
    thresholds: dict[str, int] = dict(DEFAULT_CONFIG["thresholds"])
    quiet: bool = False


def audit_options_from_config(config: dict, quiet: bool = False) -> AuditOptions:
    """Build run options from an effective config dict."""
    audit = config.get("audit") or {}
    return AuditOptions(
        selected_plugins=list(audit.get("plugins") or []),
        parallelism=int(audit.get("parallelism") or 0),
        per_plugin_timeout=float(audit.get("plugin_timeout_seconds", DEFAULT_PLUGIN_TIMEOUT)),
        cancel_grace_seconds=float(audit.get("cancel_grace_seconds", DEFAULT_CANCEL_GRACE)),
        severity_weights=dict((config.get("scoring") or {}).get("weights") or DEFAULT_SEVERITY_WEIGHTS),
        thresholds=dict(config.get("thresholds") or DEFAULT_CONFIG["thresholds"]),
        quiet=quiet,
    )


def _coerce_device(device: Any) -> Device:
    if device is None:
        raise InvalidDeviceError("no device model supplied")
    if isinstance(device, Device):
        return device
    if isinstance(device, dict):
        try:
            return Device.model_validate(device)
        except ValidationError as e:
            raise InvalidDeviceError(f"device model is invalid: {e.error_count()} validation error(s)") from e
    raise InvalidDeviceError(f"expected a Device, got {type(device).__name__}")


async def run_audit(
    device: Any,
    options: Optional[AuditOptions] = None,
    registry: Optional[PluginRegistry] = None,
    config: Optional[dict] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> AuditReport:
    """Audit one device snapshot. Raises InvalidDeviceError for unusable input."""
    device = _coerce_device(device)
    if options is None:
        options = audit_options_from_config(config) if config else AuditOptions()

    def say(message: str) -> None:
        if not options.quiet:
            console.print(message)

    if registry is None:
        registry, warnings = build_registry(config)
        for warning in warnings:
            say(f"  [yellow]WARN[/yellow] Plugin skipped: {escape(warning)}")

    say(f"  Auditing [bold]{escape(device.display_name)}[/bold] ({len(device.firewall_rules)} rules)")

    dead_rules = analyze_rules(device)
    security, performance, consistency = run_heuristics(device, {"thresholds": options.thresholds})

    manager = PluginManager(
        registry,
        parallelism=options.parallelism,
        timeout=options.per_plugin_timeout,
        cancel_grace=options.cancel_grace_seconds,
    )
    run = await manager.run(device, options.selected_plugins, cancel_event)

    for issue in run.issues:
        say(f"  [yellow]WARN[/yellow] Plugin {issue.plugin} {issue.kind.value}: {escape(issue.reason)}")
    for name in run.plugins_run:
        say(f"  [green]OK[/green] Plugin {name}")

    compliance_checks = build_compliance_checks(run.plugin_controls, run.findings)
    assessment = build_security_assessment(
        device,
        [*security, *run.findings],
        weights=options.severity_weights,
    )
    summary = summarize([*dead_rules, *security, *performance, *consistency, *run.findings])

    report = AuditReport(
        version=__version__,
        device_name=device.display_name,
        generated_at=datetime.now(timezone.utc),
        analysis=Analysis(
            dead_rules=dead_rules,
            security_issues=security,
            performance_issues=performance,
            consistency_issues=consistency,
        ),
        compliance_checks=compliance_checks,
        security_assessment=assessment,
        compliance_findings=run.findings,
        plugins_run=run.plugins_run,
        plugin_issues=run.issues,
        summary=summary,
    )

    say(
        f"  Security score {assessment.overall_score}, "
        f"compliance score {compliance_checks.compliance_score}, "
        f"{summary.total} finding(s)"
    )
    return report
