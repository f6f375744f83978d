"""CLI entry point for Hands Protocol."""

import json
import logging
import sys

import click

from hands_protocol.config import get_config
from hands_protocol.core.service import PlanRejected, PlanService, build_worker
from hands_protocol.store.models import Plan


def _get_service() -> PlanService:
    return PlanService.from_config(get_config())


def _read_input(text, file):
    if file:
        return file.read()
    if text == "-" or text is None:
        return sys.stdin.read()
    return text


@click.group()
def main():
    """hp - Hands Protocol: directive to plan to queued execution"""
    pass


# ── Plan Commands ─────────────────────────────────────────────────────────────


RISK_ICONS = {"safe": "○", "caution": "●", "danger": "✗"}


def _echo_plan(plan):
    click.echo(f"Plan: {plan.plan_id}")
    click.echo(f"  Directive: {plan.original_command}")
    click.echo(f"  Format: {plan.detected_format}")
    click.echo(f"  Risk: {plan.overall_risk}")
    if plan.working_directory:
        click.echo(f"  Working directory: {plan.working_directory}")
    if plan.templates:
        click.echo(f"  Templates: {', '.join(plan.templates)}")
    if plan.steps:
        click.echo("  Steps:")
        for s in plan.steps:
            icon = RISK_ICONS.get(s.risk, "?")
            target = f" -> {s.path}" if s.path else ""
            tmpl = f" [{s.template}]" if s.template else ""
            click.echo(f"    {icon} {s.step}. ({s.type}) {s.action}{tmpl}{target}")
    else:
        click.echo("  No actionable steps found.")
    if plan.warnings:
        click.echo("  Warnings:")
        for w in plan.warnings:
            click.echo(f"    ! {w}")


@main.command("parse")
@click.argument("text", required=False)
@click.option("--file", "-f", type=click.File("r"), default=None, help="Read the directive from a file")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def parse_cmd(text, file, json_output):
    """Parse a directive into a plan without queueing it."""
    service = _get_service()
    plan = service.parse(_read_input(text, file))
    if json_output:
        click.echo(json.dumps(plan.to_dict(), indent=2))
        return
    _echo_plan(plan)


@main.command("submit")
@click.argument("text", required=False)
@click.option("--file", "-f", type=click.File("r"), default=None, help="Read the directive from a file")
@click.option("--plan-file", type=click.File("r"), default=None, help="Submit a plan saved with 'hp parse --json'")
def submit_cmd(text, file, plan_file):
    """Parse a directive, show the plan, and queue it after confirmation."""
    service = _get_service()
    if plan_file:
        try:
            plan = Plan.from_dict(json.load(plan_file))
        except ValueError as e:
            click.echo(f"Error: invalid plan file: {e}", err=True)
            sys.exit(1)
    else:
        plan = service.parse(_read_input(text, file))

    _echo_plan(plan)

    reasons = service.blocking_reasons(plan)
    if reasons:
        click.echo("Plan is blocked and cannot be queued:", err=True)
        for r in reasons:
            click.echo(f"  - {r}", err=True)
        sys.exit(1)

    if not click.confirm("Queue this plan for execution?", default=False):
        click.echo("Not queued.")
        return

    try:
        item = service.submit(plan)
    except PlanRejected as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Queued: {item.id} ({item.status})")


# ── Queue Commands ────────────────────────────────────────────────────────────


@main.group("queue")
def queue_group():
    """Inspect and manage the execution queue."""
    pass


@queue_group.command("list")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def queue_list(json_output):
    """List queued plans."""
    items = _get_service().list_pending()
    if json_output:
        click.echo(json.dumps([i.to_dict() for i in items], indent=2))
        return
    if not items:
        click.echo("Queue is empty.")
        return
    for item in items:
        click.echo(f"  [{item.status}] {item.id}: {item.plan.original_command} (queued {item.queued_at})")


@queue_group.command("remove")
@click.argument("plan_id")
def queue_remove(plan_id):
    """Remove a plan before the worker picks it up."""
    removed = _get_service().remove_pending(plan_id)
    if not removed:
        click.echo(f"Plan not found in queue: {plan_id}", err=True)
        sys.exit(1)
    click.echo(f"Removed: {plan_id}")


@queue_group.command("clear")
def queue_clear():
    """Remove every queued plan."""
    count = _get_service().clear_pending()
    click.echo(f"Cleared {count} queued plan(s).")


# ── History Commands ──────────────────────────────────────────────────────────


@main.group("history")
def history_group():
    """Inspect execution history."""
    pass


@history_group.command("list")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def history_list(json_output):
    """List finished plans, most recent first."""
    entries = _get_service().list_history()
    if json_output:
        click.echo(json.dumps([e.to_dict() for e in entries], indent=2))
        return
    if not entries:
        click.echo("No history.")
        return
    for e in entries:
        click.echo(f"  [{e.status.upper()}] {e.id}: {e.original_command} ({e.completed_at})")
        if e.error:
            click.echo(f"    Error: {e.error}")


@history_group.command("clear")
def history_clear():
    """Delete all history entries."""
    _get_service().clear_history()
    click.echo("History cleared.")


# ── Worker Command ────────────────────────────────────────────────────────────


@main.command("worker")
@click.option("--once", is_flag=True, help="Process at most one plan and exit")
def worker_cmd(once):
    """Run the execution worker that drains the queue."""
    config = get_config()
    worker = build_worker(config)
    if once:
        entry = worker.poll_once()
        if entry is None:
            click.echo("Queue is empty.")
            return
        click.echo(f"Plan {entry.id} {entry.status}")
        if entry.error:
            click.echo(f"  Error: {entry.error}")
        return

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    click.echo(f"Worker watching {config.queue_dir} (every {config.poll_interval}s)")
    try:
        worker.run_forever()
    except KeyboardInterrupt:
        worker.stop()


# ── Template Commands ─────────────────────────────────────────────────────────


@main.group("templates")
def templates_group():
    """Manage the template registry."""
    pass


@templates_group.command("list")
def templates_list():
    """List templates with their metadata."""
    templates = _get_service().list_templates()
    if not templates:
        click.echo("No templates found.")
        return
    for t in templates:
        flag = " [quarantined]" if t.quarantined else ""
        score = f" score={t.score:g}" if t.score is not None else ""
        comment = f" - {t.comment}" if t.comment else ""
        click.echo(f"  {t.name}{flag}{score}{comment}")


@templates_group.command("show")
@click.argument("name")
def templates_show(name):
    """Print a template's content."""
    try:
        content = _get_service().get_template(name)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if content is None:
        click.echo(f"Template not found: {name}", err=True)
        sys.exit(1)
    click.echo(content)


@templates_group.command("quarantine")
@click.argument("name")
@click.option("--release", is_flag=True, help="Lift the quarantine instead")
def templates_quarantine(name, release):
    """Exclude a template from matching without deleting it."""
    try:
        meta = _get_service().update_template_meta(name, quarantined=not release)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    state = "quarantined" if meta.quarantined else "released"
    click.echo(f"Template {meta.name} {state}")


@templates_group.command("meta")
@click.argument("name")
@click.option("--comment", default=None, help="Reviewer comment")
@click.option("--score", type=float, default=None, help="Quality score")
def templates_meta(name, comment, score):
    """Set a template's comment and score."""
    try:
        meta = _get_service().update_template_meta(name, comment=comment, score=score)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Updated {meta.name}: comment={meta.comment!r} score={meta.score}")


# ── Server Commands ───────────────────────────────────────────────────────────


@main.command("serve")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=5000, type=int, help="Port to listen on")
def serve_command(host, port):
    """Launch the HTTP plan submission API."""
    from hands_protocol.web.app import run_server

    click.echo(f"Starting API at http://{host}:{port}")
    run_server(host=host, port=port)


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from hands_protocol.mcp.server import mcp

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
