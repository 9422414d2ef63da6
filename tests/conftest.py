"""Shared fixtures for fwaudit tests."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable

import pytest

from fwaudit.models.compliance import Control
from fwaudit.models.device import Device, FirewallRule, Interface, RuleEndpoint
from fwaudit.models.finding import ComplianceFinding, Severity
from fwaudit.plugins.base import BasePlugin


def rule(
    type: str = "pass",
    interfaces: tuple = ("lan",),
    src: str = "any",
    dst: str = "any",
    port: str = "",
    **kwargs,
) -> FirewallRule:
    """Build a firewall rule with sensible defaults."""
    return FirewallRule(
        type=type,
        interfaces=interfaces,
        source=kwargs.pop("source", RuleEndpoint(address=src)),
        destination=kwargs.pop("destination", RuleEndpoint(address=dst, port=port)),
        **kwargs,
    )


class StaticPlugin(BasePlugin):
    """Plugin that fails a fixed set of its controls."""

    def __init__(
        self,
        name: str,
        control_ids: tuple = ("CTRL-1",),
        failing: tuple = (),
        severity: Severity = Severity.MEDIUM,
        delay: float = 0.0,
    ):
        super().__init__([
            Control(id=cid, title=f"Control {cid}", severity=severity) for cid in control_ids
        ])
        self.name = name
        self.failing = failing
        self.delay = delay
        self.calls = 0

    def run_checks(self, device: Device) -> list[ComplianceFinding]:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return [self.finding(cid, f"{cid} failed") for cid in self.failing]


class SpyInvalidPlugin(StaticPlugin):
    """Plugin whose validation always fails; counts run_checks calls."""

    def __init__(self, name: str = "spy"):
        super().__init__(name)
        self.validations = 0

    def validate_configuration(self) -> None:
        self.validations += 1
        raise ValueError("missing signature database")


class CrashingPlugin(StaticPlugin):
    def run_checks(self, device: Device) -> list[ComplianceFinding]:
        self.calls += 1
        raise RuntimeError("boom")


class CooperativePlugin(StaticPlugin):
    """Blocks until cancellation is requested, then returns partial output."""

    def __init__(self, name: str = "cooperative"):
        super().__init__(name, failing=("CTRL-1",))
        self.started = threading.Event()
        self.observed_stop = threading.Event()

    def run_checks(self, device: Device) -> list[ComplianceFinding]:
        from fwaudit.plugins.base import cancellation_requested

        self.started.set()
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            if cancellation_requested():
                self.observed_stop.set()
                break
            time.sleep(0.01)
        return [self.finding("CTRL-1", "partial")]


@pytest.fixture
def make_rule() -> Callable[..., FirewallRule]:
    return rule


@pytest.fixture
def interfaces() -> tuple:
    return (
        Interface(
            name="wan", type="wan", ip_address="203.0.113.2", subnet="24",
            block_private=True, block_bogons=True,
        ),
        Interface(name="lan", ip_address="192.168.1.1", subnet="24"),
    )


@pytest.fixture
def empty_device() -> Device:
    return Device()


@pytest.fixture
def sample_device(interfaces: tuple) -> Device:
    """A small but realistic device with a few deliberate problems."""
    return Device.model_validate({
        "name": "fw01",
        "system": {
            "hostname": "fw01",
            "dns_servers": ["9.9.9.9"],
            "webgui": {"protocol": "https"},
            "ssh": {"enabled": True, "authentication_method": "key"},
        },
        "interfaces": [i.model_dump() for i in interfaces],
        "firewall_rules": [
            {
                "type": "block",
                "interfaces": ["wan"],
                "description": "Block everything inbound",
                "log": True,
            },
            {
                "type": "pass",
                "interfaces": ["wan"],
                "description": "SSH from anywhere",
                "protocol": "tcp",
                "destination": {"address": "203.0.113.2", "port": "22"},
            },
            {
                "type": "pass",
                "interfaces": ["lan"],
                "description": "LAN to any",
                "source": {"address": "192.168.1.0/24"},
            },
        ],
        "syslog": {"enabled": True, "system_logging": True, "auth_logging": True},
        "packages": [{"name": "os-acb"}],
    })


@pytest.fixture
def device_file(tmp_path: Path, sample_device: Device) -> Path:
    import yaml

    path = tmp_path / "fw01.yaml"
    path.write_text(yaml.safe_dump(sample_device.model_dump(mode="json")), encoding="utf-8")
    return path


def static_plugin(name: str, **kwargs) -> StaticPlugin:
    return StaticPlugin(name, **kwargs)


@pytest.fixture
def plugin_factory() -> Callable[..., StaticPlugin]:
    return static_plugin


@pytest.fixture
def registry_factory():
    from fwaudit.compliance.registry import PluginRegistry

    def build(*plugins: object) -> PluginRegistry:
        return PluginRegistry(list(plugins))

    return build


@pytest.fixture
def quiet_options():
    from fwaudit.core.orchestrator import AuditOptions

    def build(**kwargs) -> AuditOptions:
        kwargs.setdefault("quiet", True)
        return AuditOptions(**kwargs)

    return build


@pytest.fixture
def spy_plugin() -> SpyInvalidPlugin:
    return SpyInvalidPlugin()


@pytest.fixture
def crashing_plugin() -> CrashingPlugin:
    return CrashingPlugin("crashy")


@pytest.fixture
def cooperative_plugin() -> CooperativePlugin:
    return CooperativePlugin()
