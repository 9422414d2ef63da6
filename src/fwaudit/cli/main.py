"""fwaudit - offline firewall configuration audit.

Loads a normalized device model (YAML or JSON), runs the audit engine and
writes the report as JSON or YAML.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from .. import __version__
from ..errors import AuditError, InvalidDeviceError

SEVERITY_CHOICES = ["critical", "high", "medium", "low"]
EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_INVALID_INPUT = 12


def load_device_file(path: Path) -> dict:
    """Read a device model file. JSON is used for .json files, YAML otherwise."""
    try:
        content = path.read_text(encoding="utf-8-sig")
        data = json.loads(content) if path.suffix.lower() == ".json" else yaml.safe_load(content)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise InvalidDeviceError(f"cannot read {path.name}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidDeviceError(f"{path.name}: expected a mapping at the top level")
    return data


def _split(value: Optional[str]) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


def _load_config(config_file: Optional[str], device_file: Optional[str], overrides: Optional[dict] = None) -> dict:
    from ..core.config import find_project_config, get_effective_config

    if config_file:
        config_path: Optional[Path] = Path(config_file)
    elif device_file:
        config_path = find_project_config(Path(device_file).resolve())
    else:
        config_path = find_project_config(Path.cwd())
    return get_effective_config(config_path, cli_overrides=overrides)


@click.group()
@click.version_option(__version__, prog_name="fwaudit")
def fwaudit_cli() -> None:
    """fwaudit - offline firewall configuration audit."""


@fwaudit_cli.command()
@click.argument("device_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--plugins", "-p", type=str, help="Comma-separated plugins to run (default: all)")
@click.option("--parallelism", type=int, help="Maximum plugins running at once")
@click.option("--timeout", type=float, help="Per-plugin timeout in seconds")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="Project config file")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "yaml"]))
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the report to a file")
@click.option("--fail-on", type=click.Choice(SEVERITY_CHOICES), help="Exit 1 on findings at or above this severity")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
def audit(
    device_file: str,
    plugins: Optional[str],
    parallelism: Optional[int],
    timeout: Optional[float],
    config_file: Optional[str],
    output_format: Optional[str],
    output: Optional[str],
    fail_on: Optional[str],
    quiet: bool,
) -> None:
    """Audit a normalized device configuration."""
    from ..core.config import ConfigError
    from ..core.orchestrator import audit_options_from_config, run_audit

    overrides: dict = {}
    if plugins:
        overrides.setdefault("audit", {})["plugins"] = _split(plugins)
    if parallelism is not None:
        overrides.setdefault("audit", {})["parallelism"] = parallelism
    if timeout is not None:
        overrides.setdefault("audit", {})["plugin_timeout_seconds"] = timeout
    if output_format:
        overrides["output"] = {"format": output_format}

    try:
        config = _load_config(config_file, device_file, overrides)
        device = load_device_file(Path(device_file))
        report = asyncio.run(run_audit(device, audit_options_from_config(config, quiet=quiet), config=config))
    except (InvalidDeviceError, ConfigError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INVALID_INPUT)

    data = report.model_dump(mode="json")
    if config["output"].get("format") == "yaml":
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(data, indent=2)

    if output:
        Path(output).write_text(text, encoding="utf-8")
        if not quiet:
            click.echo(f"Report written to {output}", err=True)
    else:
        click.echo(text)

    if fail_on:
        threshold = SEVERITY_CHOICES.index(fail_on)
        counts = report.summary.model_dump()
        if any(counts[sev] for sev in SEVERITY_CHOICES[: threshold + 1]):
            sys.exit(EXIT_FINDINGS)


@fwaudit_cli.command("plugins")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--validate", is_flag=True, help="Validate each plugin before listing")
def list_plugins(config_file: Optional[str], validate: bool) -> None:
    """List available compliance plugins and their controls."""
    from ..compliance.loader import build_registry

    registry, warnings = build_registry(_load_config(config_file, None))
    for warning in warnings:
        click.echo(f"WARN {warning}", err=True)

    if validate:
        for name in registry.names():
            registry.validate(name)

    for info in registry.list_plugins():
        click.echo(f"{info.name} {info.version} [{info.state.value}] - {info.description}")
        if info.validation_error:
            click.echo(f"  error: {info.validation_error}")
        for control in registry.get(info.name).get_controls():
            click.echo(f"  {control.id:<14} {control.severity.value:<8} {control.title}")


@fwaudit_cli.command()
@click.argument("plugin")
@click.argument("control_id")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False))
def control(plugin: str, control_id: str, config_file: Optional[str]) -> None:
    """Show one control.

    Example: fwaudit control stig V-206694
    """
    from ..compliance.loader import build_registry

    registry, _ = build_registry(_load_config(config_file, None))
    try:
        ctrl = registry.get_control(plugin, control_id)
    except AuditError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INVALID_INPUT)

    click.echo(f"{ctrl.id}: {ctrl.title}")
    click.echo(f"Severity: {ctrl.severity.value}")
    if ctrl.category:
        click.echo(f"Category: {ctrl.category}")
    click.echo(f"\n{ctrl.description}")
    if ctrl.rationale:
        click.echo(f"\nRationale: {ctrl.rationale}")
    if ctrl.remediation:
        click.echo(f"Remediation: {ctrl.remediation}")


def main() -> None:
    fwaudit_cli()


if __name__ == "__main__":
    main()
