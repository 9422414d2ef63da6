"""Compliance plugin contract and shared base class."""

from __future__ import annotations

import contextvars
import threading
from typing import Iterable, Optional, Protocol, runtime_checkable

from ..errors import ControlNotFoundError, NoControlsDefinedError, PluginValidationError
from ..models.compliance import Control
from ..models.device import Device
from ..models.finding import ComplianceFinding, Severity

stop_flag: contextvars.ContextVar[Optional[threading.Event]] = contextvars.ContextVar(
    "fwaudit_stop_flag", default=None
)


def cancellation_requested() -> bool:
    """True once the running audit has asked plugins to stop.

    Long-running checks should poll this between steps and return early.
    """
    flag = stop_flag.get()
    return flag is not None and flag.is_set()


@runtime_checkable
class CompliancePlugin(Protocol):
    """Protocol that all compliance plugins must implement."""

    name: str
    version: str
    description: str

    def run_checks(self, device: Device) -> list[ComplianceFinding]: ...

    def get_controls(self) -> list[Control]: ...

    def get_control_by_id(self, control_id: str) -> Optional[Control]: ...

    def validate_configuration(self) -> None: ...


class BasePlugin:
    """Base class with the control bookkeeping shared by built-in plugins."""

    name: str = "base"
    version: str = "1.0.0"
    description: str = ""

    def __init__(self, controls: Optional[Iterable[Control]] = None):
        self.controls: list[Control] = list(controls or [])

    def run_checks(self, device: Device) -> list[ComplianceFinding]:
        raise NotImplementedError

    def get_controls(self) -> list[Control]:
        return list(self.controls)

    def get_control_by_id(self, control_id: str) -> Optional[Control]:
        return next((c for c in self.controls if c.id == control_id), None)

    def validate_configuration(self) -> None:
        if not self.controls:
            raise NoControlsDefinedError(self.name)
        ids = [c.id for c in self.controls]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise PluginValidationError(self.name, f"duplicate control ids: {', '.join(duplicates)}")

    def finding(
        self,
        control_id: str,
        description: str,
        issue: str = "",
        component: str = "",
        severity: Optional[Severity] = None,
    ) -> ComplianceFinding:
        """Build a finding that violates ``control_id``."""
        control = self.get_control_by_id(control_id)
        if control is None:
            raise ControlNotFoundError(self.name, control_id)
        return ComplianceFinding(
            component=component or control.category,
            issue=issue or control.title,
            severity=severity or control.severity,
            description=description,
            recommendation=control.remediation,
            plugin=self.name,
            references=(control.id,),
            tags=control.tags,
        )
