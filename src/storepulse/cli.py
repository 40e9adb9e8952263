"""Command line interface for collection, health checks, export and alert rules."""

import csv
import io
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

import click

from storepulse.bootstrap import Monitor, build_monitor
from storepulse.config import MonitoringSettings
from storepulse.core.alerts import DEFAULT_RULES
from storepulse.core.errors import InvalidAlertRuleError
from storepulse.core.models import VALID_OPERATORS, Alert, AlertRule, Status
from storepulse.core.paths import iter_leaves

_EXIT_CODES = {Status.HEALTHY: 0, Status.WARNING: 1, Status.CRITICAL: 2}


def _monitor(ctx: click.Context) -> Monitor:
    if ctx.obj.get("monitor") is None:
        ctx.obj["monitor"] = build_monitor(ctx.obj["settings"])
    return ctx.obj["monitor"]


def _parse_threshold(raw: str | None) -> float | int | bool | str | None:
    if raw is None:
        return None
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def _to_csv(metrics: dict[str, Any]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["metric", "value"])
    for path, value in iter_leaves(metrics):
        if isinstance(value, (int, float, str, bool)) or value is None:
            writer.writerow([path, value])
    return buffer.getvalue()


@click.group()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Platform root directory (defaults to STOREPULSE_ROOT_PATH or '.').",
)
@click.option("-v", "--verbose", is_flag=True, help="Log at INFO level.")
@click.pass_context
def main(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """storepulse - storefront monitoring."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    settings = MonitoringSettings()
    if root is not None:
        settings = settings.model_copy(update={"root_path": root})
    ctx.ensure_object(dict)
    ctx.obj.setdefault("settings", settings)
    ctx.obj.setdefault("monitor", None)


@main.command()
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the snapshot to this file.",
)
@click.pass_context
def collect(ctx: click.Context, output: Path | None) -> None:
    """Run every collector and print the snapshot as JSON."""
    monitor = _monitor(ctx)
    started = time.perf_counter()
    metrics = monitor.manager.collect_metrics_sync()
    report = {
        "timestamp": time.time(),
        "collection_time_ms": round((time.perf_counter() - started) * 1000, 2),
        "metrics": metrics,
    }
    text = json.dumps(report, indent=2, default=str)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
    click.echo(text)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    """Run the health checks; exit 0 healthy, 1 warning, 2 critical."""
    status = _monitor(ctx).manager.check_health_sync()
    if as_json:
        click.echo(json.dumps(status.to_dict(), indent=2, default=str))
    else:
        click.echo(f"Overall: {status.overall.value}")
        for name, check in status.checks.items():
            click.echo(f"  {name:<12} {check.status.value:<8} {check.message}")
    ctx.exit(_EXIT_CODES[status.overall])


@main.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["prometheus", "json", "csv"]),
    default="prometheus",
    show_default=True,
)
@click.pass_context
def export(ctx: click.Context, fmt: str) -> None:
    """Collect metrics and print them in the chosen format."""
    manager = _monitor(ctx).manager
    metrics = manager.collect_metrics_sync()
    if fmt == "prometheus":
        click.echo(manager.export_prometheus_metrics(), nl=False)
    elif fmt == "json":
        click.echo(json.dumps(metrics, indent=2, default=str))
    else:
        click.echo(_to_csv(metrics), nl=False)


@main.command()
@click.pass_context
def clean(ctx: click.Context) -> None:
    """Remove expired entries from the durable cache."""
    removed = _monitor(ctx).durable_cache.purge_expired()
    click.echo(f"Removed {removed} expired cache entries")


@main.group()
def alerts() -> None:
    """Manage alert rules."""


@alerts.command("list")
@click.pass_context
def alerts_list(ctx: click.Context) -> None:
    """Print the configured rules as JSON."""
    rules = _monitor(ctx).manager.get_alert_rules()
    click.echo(json.dumps([rule.to_dict() for rule in rules], indent=2))


@alerts.command("add")
@click.option("--name", required=True)
@click.option("--pattern", "metric_pattern", default=None, help="Metric name glob.")
@click.option("--threshold", default=None)
@click.option("--operator", type=click.Choice(VALID_OPERATORS), default=">")
@click.option("--severity", default="warning", show_default=True)
@click.option("--channel", "channels", multiple=True, default=("log",), show_default=True)
@click.pass_context
def alerts_add(
    ctx: click.Context,
    name: str,
    metric_pattern: str | None,
    threshold: str | None,
    operator: str,
    severity: str,
    channels: tuple[str, ...],
) -> None:
    """Add a rule, replacing any rule with the same name."""
    manager = _monitor(ctx).manager
    try:
        rule = AlertRule(
            name=name,
            metric_pattern=metric_pattern,
            threshold=_parse_threshold(threshold),
            operator=operator,
            severity=severity,
            channels=tuple(channels),
        )
    except InvalidAlertRuleError as exc:
        raise click.BadParameter(str(exc)) from exc
    rules = [r for r in manager.get_alert_rules() if r.name != name]
    manager.setup_alerts([*rules, rule])
    click.echo(f"Added alert rule: {name}")


@alerts.command("remove")
@click.argument("name")
@click.pass_context
def alerts_remove(ctx: click.Context, name: str) -> None:
    """Remove the rule called NAME."""
    manager = _monitor(ctx).manager
    rules = manager.get_alert_rules()
    remaining = [rule for rule in rules if rule.name != name]
    if len(remaining) == len(rules):
        raise click.ClickException(f"No alert rule named {name!r}")
    manager.setup_alerts(remaining)
    click.echo(f"Removed alert rule: {name}")


@alerts.command("defaults")
@click.pass_context
def alerts_defaults(ctx: click.Context) -> None:
    """Install the default rule set, replacing the current rules."""
    _monitor(ctx).manager.setup_alerts(DEFAULT_RULES)
    click.echo(f"Installed {len(DEFAULT_RULES)} default alert rules")


@alerts.command("test")
@click.argument("name")
@click.pass_context
def alerts_test(ctx: click.Context, name: str) -> None:
    """Send a test alert through the channels of rule NAME."""
    manager = _monitor(ctx).manager
    rule = next((r for r in manager.get_alert_rules() if r.name == name), None)
    if rule is None:
        raise click.ClickException(f"No alert rule named {name!r}")
    alert = Alert(
        name=f"Test: {rule.name}",
        severity=rule.severity,
        message="This is a test alert",
        context={"rule": rule.to_dict(), "test": True},
    )
    delivered = manager.send_alert(alert, rule.channels)
    click.echo(f"Delivered via: {', '.join(delivered) or 'none'}")
    if len(delivered) < len(rule.channels):
        ctx.exit(1)
