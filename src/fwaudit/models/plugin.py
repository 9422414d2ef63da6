"""Plugin registry data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PluginState(str, Enum):
    REGISTERED = "registered"
    VALIDATED = "validated"
    INVALID = "invalid"


class PluginIssueKind(str, Enum):
    UNKNOWN = "unknown"
    INVALID = "invalid"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class PluginInfo(BaseModel):
    name: str
    version: str = ""
    description: str = ""
    state: PluginState = PluginState.REGISTERED
    control_count: int = 0
    validation_error: Optional[str] = None


class PluginIssue(BaseModel):
    """A plugin that was excluded from, or failed during, an audit run."""

    plugin: str
    kind: PluginIssueKind
    reason: str
