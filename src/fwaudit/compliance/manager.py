"""Concurrent compliance plugin execution.

Each selected plugin is one unit of work. Units run in their own daemon
thread, at most ``parallelism`` at a time, each under a per-plugin timeout.
A unit never raises: it returns a ``PluginOutcome`` that either carries the
plugin's findings or the error that stopped it. Outcomes are merged by a
single collector once every unit has finished, in plugin-name order, so the
result does not depend on completion order.
"""

from __future__ import annotations

import asyncio
import contextvars
import os
import threading
from dataclasses import dataclass, field
from typing import Optional

from ..errors import (
    PluginCancelledError,
    PluginError,
    PluginExecutionError,
    PluginTimeoutError,
    UnknownPluginError,
)
from ..models.compliance import Control
from ..models.device import Device
from ..models.finding import ComplianceFinding
from ..models.plugin import PluginInfo, PluginIssue, PluginIssueKind, PluginState
from ..plugins.base import stop_flag
from ..utils.sanitize import sanitize_error
from .registry import PluginRegistry

DEFAULT_PLUGIN_TIMEOUT = 30.0
DEFAULT_CANCEL_GRACE = 2.0


def default_parallelism() -> int:
    return max(1, os.cpu_count() or 1)


@dataclass
class PluginOutcome:
    name: str
    findings: list[ComplianceFinding] = field(default_factory=list)
    controls: list[Control] = field(default_factory=list)
    error: Optional[Exception] = None
    kind: Optional[PluginIssueKind] = None


@dataclass
class ComplianceRun:
    """Merged result of one plugin run."""

    findings: list[ComplianceFinding] = field(default_factory=list)
    plugin_controls: dict[str, list[Control]] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    issues: list[PluginIssue] = field(default_factory=list)

    @property
    def controls(self) -> list[Control]:
        return [c for name in sorted(self.plugin_controls) for c in self.plugin_controls[name]]

    @property
    def plugins_run(self) -> list[str]:
        return sorted(self.plugin_controls)


def _checked_findings(name: str, value: object) -> list[ComplianceFinding]:
    if not isinstance(value, (list, tuple)):
        raise PluginExecutionError(name, f"run_checks returned {type(value).__name__}, expected a list")
    findings: list[ComplianceFinding] = []
    for item in value:
        if not isinstance(item, ComplianceFinding):
            raise PluginExecutionError(name, f"run_checks returned a {type(item).__name__} item")
        findings.append(item if item.plugin == name else item.model_copy(update={"plugin": name}))
    return findings


def _checked_controls(name: str, value: object) -> list[Control]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(c, Control) for c in value):
        raise PluginExecutionError(name, "get_controls must return a list of Control")
    return list(value)


def _deliver(future: asyncio.Future, outcome: PluginOutcome) -> None:
    # A timed-out or cancelled unit's future is already done.
    if not future.done():
        future.set_result(outcome)


def _issue_kind(error: Exception) -> PluginIssueKind:
    if isinstance(error, PluginTimeoutError):
        return PluginIssueKind.TIMEOUT
    if isinstance(error, PluginCancelledError):
        return PluginIssueKind.CANCELLED
    if isinstance(error, UnknownPluginError):
        return PluginIssueKind.UNKNOWN
    return PluginIssueKind.FAILED


class PluginManager:
    """Runs validated plugins from a registry against a device."""

    def __init__(
        self,
        registry: PluginRegistry,
        parallelism: Optional[int] = None,
        timeout: float = DEFAULT_PLUGIN_TIMEOUT,
        cancel_grace: float = DEFAULT_CANCEL_GRACE,
    ):
        self.registry = registry
        self.parallelism = parallelism if parallelism and parallelism > 0 else default_parallelism()
        self.timeout = timeout
        self.cancel_grace = cancel_grace

    # -- registry passthroughs ------------------------------------------------

    def list_plugins(self) -> list[PluginInfo]:
        return self.registry.list_plugins()

    def get_control_info(self, plugin_name: str, control_id: str) -> Control:
        return self.registry.get_control(plugin_name, control_id)

    def validate_plugin(self, name: str) -> bool:
        return self.registry.validate(name)

    def statistics(self) -> dict:
        infos = self.list_plugins()
        return {
            "total_plugins": len(infos),
            "validated": sum(1 for i in infos if i.state == PluginState.VALIDATED),
            "invalid": sum(1 for i in infos if i.state == PluginState.INVALID),
            "pending": sum(1 for i in infos if i.state == PluginState.REGISTERED),
            "total_controls": sum(i.control_count for i in infos),
        }

    # -- execution ------------------------------------------------------------

    def _execute(self, name: str, device: Device) -> PluginOutcome:
        """Body of one unit of work. Runs in a worker thread."""
        if not self.registry.validate(name):
            return PluginOutcome(name=name, error=self.registry.error(name), kind=PluginIssueKind.INVALID)
        plugin = self.registry.get(name)
        try:
            findings = _checked_findings(name, plugin.run_checks(device))
            controls = _checked_controls(name, plugin.get_controls())
        except PluginError as e:
            return PluginOutcome(name=name, error=e, kind=_issue_kind(e))
        except Exception as e:
            error = PluginExecutionError(name, f"{type(e).__name__}: {e}")
            error.__cause__ = e
            return PluginOutcome(name=name, error=error, kind=PluginIssueKind.FAILED)
        return PluginOutcome(name=name, findings=findings, controls=controls)

    def _work(
        self,
        ctx: contextvars.Context,
        name: str,
        device: Device,
        loop: asyncio.AbstractEventLoop,
        future: asyncio.Future,
    ) -> None:
        """Thread target: run one unit and hand its outcome back to the loop.

        Workers are daemon threads, so a plugin that never returns cannot keep
        the process alive once the audit has abandoned it.
        """
        outcome = ctx.run(self._execute, name, device)
        try:
            loop.call_soon_threadsafe(_deliver, future, outcome)
        except RuntimeError:
            # Loop already closed: the unit was abandoned and nobody is waiting.
            pass

    async def _run_unit(
        self,
        name: str,
        device: Device,
        semaphore: asyncio.Semaphore,
        stop: threading.Event,
    ) -> PluginOutcome:
        async with semaphore:
            if stop.is_set():
                return PluginOutcome(name=name, error=PluginCancelledError(name), kind=PluginIssueKind.CANCELLED)
            ctx = contextvars.copy_context()
            ctx.run(stop_flag.set, stop)
            loop = asyncio.get_running_loop()
            future = loop.create_future()
            worker = threading.Thread(
                target=self._work,
                args=(ctx, name, device, loop, future),
                name=f"fwaudit-plugin-{name}",
                daemon=True,
            )
            worker.start()
            try:
                return await asyncio.wait_for(future, timeout=self.timeout)
            except asyncio.TimeoutError:
                return PluginOutcome(
                    name=name,
                    error=PluginTimeoutError(name, self.timeout),
                    kind=PluginIssueKind.TIMEOUT,
                )

    async def _await_units(
        self,
        units: dict[str, asyncio.Task],
        cancel_event: Optional[asyncio.Event],
        stop: threading.Event,
    ) -> dict[str, PluginOutcome]:
        everything = asyncio.gather(*units.values())
        if cancel_event is None:
            results = await everything
            return dict(zip(units, results))

        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({everything, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if everything.done():
            return dict(zip(units, everything.result()))

        # Cancelled: ask in-flight units to stop, give them the grace period,
        # then discard whatever they were doing.
        stop.set()
        in_flight = [name for name, task in units.items() if not task.done()]
        if in_flight:
            await asyncio.wait([units[n] for n in in_flight], timeout=self.cancel_grace)
        everything.cancel()

        outcomes: dict[str, PluginOutcome] = {}
        for name, task in units.items():
            if name in in_flight:
                outcomes[name] = PluginOutcome(
                    name=name, error=PluginCancelledError(name), kind=PluginIssueKind.CANCELLED
                )
            else:
                outcomes[name] = task.result()
        return outcomes

    def _select(self, selected: Optional[list[str]], result: ComplianceRun) -> list[str]:
        issues = result.issues
        if not selected:
            requested = self.registry.names()
        else:
            requested = sorted(set(selected))
            for name in requested:
                if name not in self.registry:
                    issues.append(PluginIssue(
                        plugin=name,
                        kind=PluginIssueKind.UNKNOWN,
                        reason=str(UnknownPluginError(name)),
                    ))
            requested = [n for n in requested if n in self.registry]

        runnable: list[str] = []
        for name in requested:
            if self.registry.state(name) == PluginState.INVALID:
                result.errors[name] = self.registry.error(name)
                issues.append(PluginIssue(
                    plugin=name,
                    kind=PluginIssueKind.INVALID,
                    reason=sanitize_error(str(self.registry.error(name))),
                ))
            else:
                runnable.append(name)
        return runnable

    async def run(
        self,
        device: Device,
        selected: Optional[list[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ComplianceRun:
        """Run the selected plugins (all registered plugins when empty)."""
        result = ComplianceRun()
        names = self._select(selected, result)
        if not names:
            return result

        stop = threading.Event()
        semaphore = asyncio.Semaphore(self.parallelism)
        units = {
            name: asyncio.ensure_future(self._run_unit(name, device, semaphore, stop))
            for name in names
        }
        try:
            outcomes = await self._await_units(units, cancel_event, stop)
        except asyncio.CancelledError:
            stop.set()
            for task in units.values():
                task.cancel()
            raise

        return self._collect(outcomes, result)

    def _collect(self, outcomes: dict[str, PluginOutcome], result: ComplianceRun) -> ComplianceRun:
        for name in sorted(outcomes):
            outcome = outcomes[name]
            if outcome.error is not None:
                result.errors[name] = outcome.error
                result.issues.append(PluginIssue(
                    plugin=name,
                    kind=outcome.kind or _issue_kind(outcome.error),
                    reason=sanitize_error(str(outcome.error)),
                ))
                continue
            result.findings.extend(outcome.findings)
            result.plugin_controls[name] = outcome.controls
        result.issues.sort(key=lambda i: (i.plugin, i.kind.value))
        return result
