"""Tests for compliance/manager.py."""

from __future__ import annotations

import asyncio
import random
import subprocess
import sys
import textwrap
import time

import pytest

from fwaudit.compliance.manager import PluginManager, default_parallelism
from fwaudit.errors import PluginExecutionError, PluginTimeoutError
from fwaudit.models.compliance import Control
from fwaudit.models.finding import ComplianceFinding, Severity
from fwaudit.models.plugin import PluginIssueKind, PluginState
from fwaudit.plugins.base import BasePlugin


class WrongReturnPlugin(BasePlugin):
    name = "sloppy"

    def __init__(self):
        super().__init__([Control(id="S-1", title="s")])

    def run_checks(self, device):
        return {"not": "a list"}


class MutatingPlugin(BasePlugin):
    name = "mutator"

    def __init__(self):
        super().__init__([Control(id="M-1", title="m")])

    def run_checks(self, device):
        device.system.hostname = "pwned"
        return []


class JitterPlugin(BasePlugin):
    """Finishes after a random delay so completion order varies."""

    def __init__(self, name: str):
        super().__init__([Control(id=f"{name}-{i}", title=f"{name} {i}") for i in range(3)])
        self.name = name

    def run_checks(self, device):
        time.sleep(random.uniform(0, 0.02))
        return [
            ComplianceFinding(
                component="x",
                issue=f"{self.name} issue {i}",
                severity=Severity.LOW,
                references=(f"{self.name}-{i}",),
            )
            for i in (2, 0)
        ]


class TestPluginManagerRun:
    @pytest.mark.asyncio
    async def test_zero_plugins(self, registry_factory, empty_device):
        result = await PluginManager(registry_factory()).run(empty_device)
        assert result.findings == []
        assert result.controls == []
        assert result.errors == {}
        assert result.issues == []

    @pytest.mark.asyncio
    async def test_runs_all_when_selection_empty(self, registry_factory, plugin_factory, empty_device):
        registry = registry_factory(
            plugin_factory("beta", failing=("CTRL-1",)),
            plugin_factory("alpha", control_ids=("A-1", "A-2"), failing=("A-2",)),
        )
        result = await PluginManager(registry).run(empty_device, [])
        assert result.plugins_run == ["alpha", "beta"]
        assert [f.plugin for f in result.findings] == ["alpha", "beta"]
        assert [c.id for c in result.controls] == ["A-1", "A-2", "CTRL-1"]

    @pytest.mark.asyncio
    async def test_selection_limits_plugins(self, registry_factory, plugin_factory, empty_device):
        alpha, beta = plugin_factory("alpha"), plugin_factory("beta")
        result = await PluginManager(registry_factory(alpha, beta)).run(empty_device, ["beta"])
        assert result.plugins_run == ["beta"]
        assert alpha.calls == 0

    @pytest.mark.asyncio
    async def test_unknown_name_is_a_warning(self, registry_factory, plugin_factory, empty_device):
        registry = registry_factory(plugin_factory("alpha"))
        result = await PluginManager(registry).run(empty_device, ["alpha", "ghost"])
        assert result.plugins_run == ["alpha"]
        assert [(i.plugin, i.kind) for i in result.issues] == [("ghost", PluginIssueKind.UNKNOWN)]

    @pytest.mark.asyncio
    async def test_invalid_plugin_never_runs(self, registry_factory, plugin_factory, spy_plugin, empty_device):
        registry = registry_factory(spy_plugin, plugin_factory("alpha"))
        manager = PluginManager(registry)

        first = await manager.run(empty_device)
        second = await manager.run(empty_device)

        assert spy_plugin.calls == 0
        assert spy_plugin.validations == 1
        assert registry.state("spy") == PluginState.INVALID
        for result in (first, second):
            assert result.plugins_run == ["alpha"]
            assert [(i.plugin, i.kind) for i in result.issues] == [("spy", PluginIssueKind.INVALID)]
        assert "spy" in first.errors
        assert "spy" in second.errors

    @pytest.mark.asyncio
    async def test_crash_is_isolated(self, registry_factory, plugin_factory, crashing_plugin, empty_device):
        registry = registry_factory(crashing_plugin, plugin_factory("alpha", failing=("CTRL-1",)))
        result = await PluginManager(registry).run(empty_device)
        assert result.plugins_run == ["alpha"]
        assert len(result.findings) == 1
        assert isinstance(result.errors["crashy"], PluginExecutionError)
        assert isinstance(result.errors["crashy"].__cause__, RuntimeError)
        assert result.issues[0].kind == PluginIssueKind.FAILED
        assert "boom" in result.issues[0].reason

    @pytest.mark.asyncio
    async def test_malformed_output_is_a_failure(self, registry_factory, empty_device):
        result = await PluginManager(registry_factory(WrongReturnPlugin())).run(empty_device)
        assert result.plugins_run == []
        assert isinstance(result.errors["sloppy"], PluginExecutionError)

    @pytest.mark.asyncio
    async def test_device_cannot_be_mutated(self, registry_factory, sample_device):
        result = await PluginManager(registry_factory(MutatingPlugin())).run(sample_device)
        assert "mutator" in result.errors
        assert sample_device.system.hostname == "fw01"

    @pytest.mark.asyncio
    async def test_timeout_is_isolated(self, registry_factory, plugin_factory, empty_device):
        registry = registry_factory(
            plugin_factory("slow", delay=1.0, failing=("CTRL-1",)),
            plugin_factory("fast", failing=("CTRL-1",)),
        )
        result = await PluginManager(registry, timeout=0.1).run(empty_device)
        assert result.plugins_run == ["fast"]
        assert [f.plugin for f in result.findings] == ["fast"]
        assert isinstance(result.errors["slow"], PluginTimeoutError)
        assert result.issues[0].kind == PluginIssueKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_parallelism_bounds_concurrency(self, registry_factory, plugin_factory, empty_device):
        plugins = [plugin_factory(f"p{i}", delay=0.05) for i in range(4)]
        registry = registry_factory(*plugins)
        start = time.monotonic()
        result = await PluginManager(registry, parallelism=1, timeout=5).run(empty_device)
        assert time.monotonic() - start >= 0.2
        assert result.plugins_run == ["p0", "p1", "p2", "p3"]

    @pytest.mark.asyncio
    async def test_output_independent_of_completion_order(self, registry_factory, empty_device):
        names = ["delta", "alpha", "charlie", "bravo"]
        runs = []
        for _ in range(5):
            registry = registry_factory(*(JitterPlugin(n) for n in names))
            result = await PluginManager(registry, parallelism=4).run(empty_device)
            runs.append([(f.plugin, f.issue) for f in result.findings])
        assert all(r == runs[0] for r in runs)
        assert runs[0][:3] == [("alpha", "alpha issue 2"), ("alpha", "alpha issue 0"), ("bravo", "bravo issue 2")]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cooperative_plugin_observes_stop(self, registry_factory, plugin_factory, cooperative_plugin, empty_device):
        alpha = plugin_factory("alpha", failing=("CTRL-1",))
        registry = registry_factory(cooperative_plugin, alpha)
        cancel = asyncio.Event()
        manager = PluginManager(registry, timeout=10, cancel_grace=1.0)

        task = asyncio.create_task(manager.run(empty_device, cancel_event=cancel))
        while not cooperative_plugin.started.is_set() or alpha.calls == 0:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.05)
        cancel.set()
        result = await task

        assert cooperative_plugin.observed_stop.is_set()
        assert result.plugins_run == ["alpha"]
        assert [f.plugin for f in result.findings] == ["alpha"]
        assert [(i.plugin, i.kind) for i in result.issues] == [("cooperative", PluginIssueKind.CANCELLED)]

    @pytest.mark.asyncio
    async def test_stuck_plugin_abandoned_after_grace(self, registry_factory, plugin_factory, empty_device):
        registry = registry_factory(plugin_factory("stuck", delay=1.0, failing=("CTRL-1",)))
        cancel = asyncio.Event()
        manager = PluginManager(registry, timeout=10, cancel_grace=0.05)

        task = asyncio.create_task(manager.run(empty_device, cancel_event=cancel))
        await asyncio.sleep(0.05)
        cancel.set()
        start = time.monotonic()
        result = await task

        assert time.monotonic() - start < 0.9
        assert result.findings == []
        assert result.issues[0].kind == PluginIssueKind.CANCELLED

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, registry_factory, plugin_factory, empty_device):
        registry = registry_factory(plugin_factory("stuck", delay=0.5))
        task = asyncio.create_task(PluginManager(registry, timeout=10).run(empty_device))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_unset_event_does_not_interfere(self, registry_factory, plugin_factory, empty_device):
        registry = registry_factory(plugin_factory("alpha", failing=("CTRL-1",)))
        result = await PluginManager(registry).run(empty_device, cancel_event=asyncio.Event())
        assert result.plugins_run == ["alpha"]
        assert result.issues == []


class TestPluginManagerInfo:
    def test_default_parallelism(self, registry_factory):
        assert PluginManager(registry_factory()).parallelism == default_parallelism() >= 1
        assert PluginManager(registry_factory(), parallelism=0).parallelism >= 1

    def test_statistics(self, registry_factory, plugin_factory, spy_plugin):
        manager = PluginManager(registry_factory(plugin_factory("alpha", control_ids=("A", "B")), spy_plugin))
        manager.validate_plugin("spy")
        stats = manager.statistics()
        assert stats == {"total_plugins": 2, "validated": 0, "invalid": 1, "pending": 1, "total_controls": 3}

    def test_get_control_info(self, registry_factory, plugin_factory):
        manager = PluginManager(registry_factory(plugin_factory("alpha", control_ids=("A",))))
        assert manager.get_control_info("alpha", "A").title == "Control A"


HUNG_PLUGIN_SCRIPT = textwrap.dedent("""
    import asyncio
    import time

    from fwaudit.compliance.manager import PluginManager
    from fwaudit.compliance.registry import PluginRegistry
    from fwaudit.models.compliance import Control
    from fwaudit.models.device import Device
    from fwaudit.plugins.base import BasePlugin


    class HungPlugin(BasePlugin):
        name = "hung"

        def __init__(self):
            super().__init__([Control(id="H-1", title="h")])

        def run_checks(self, device):
            time.sleep(60)
            return []


    manager = PluginManager(PluginRegistry([HungPlugin()]), timeout=0.1)
    result = asyncio.run(manager.run(Device()))
    print([i.kind.value for i in result.issues])
""")


class TestAbandonedWorkers:
    def test_hung_plugin_does_not_block_exit(self):
        start = time.monotonic()
        proc = subprocess.run(
            [sys.executable, "-c", HUNG_PLUGIN_SCRIPT],
            capture_output=True,
            text=True,
            timeout=30,
        )
        elapsed = time.monotonic() - start
        assert proc.returncode == 0, proc.stderr
        assert proc.stdout.strip() == "['timeout']"
        assert elapsed < 15
