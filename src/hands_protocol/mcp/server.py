"""MCP server exposing the plan pipeline and queue as tools."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from hands_protocol.config import Config, get_config
from hands_protocol.core.service import PlanRejected, PlanService


@dataclass
class AppContext:
    service: PlanService
    config: Config


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Wire the plan service once per server session."""
    config = get_config()
    yield AppContext(service=PlanService.from_config(config), config=config)


mcp = FastMCP("hands-protocol", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


def _svc(ctx: Context) -> PlanService:
    return _ctx(ctx).service


# ── Plan Tools ────────────────────────────────────────────────────────────────


@mcp.tool()
def parse_directive(ctx: Context, text: str) -> dict:
    """Parse a directive (JSON, YAML, Markdown or plain language) into a plan.

    The plan is returned for review only; nothing is queued or executed.
    """
    return _svc(ctx).parse(text).to_dict()


@mcp.tool()
def submit_plan(ctx: Context, plan: dict) -> dict:
    """Queue a reviewed plan for execution. Blocked plans are rejected."""
    try:
        item = _svc(ctx).submit(plan)
    except PlanRejected as e:
        return {"error": str(e), "rejected": True}
    except ValueError as e:
        return {"error": str(e)}
    return {"status": "queued", "planId": item.id}


# ── Queue Tools ───────────────────────────────────────────────────────────────


@mcp.tool()
def list_pending(ctx: Context) -> list[dict]:
    """List plans waiting for the worker."""
    return [i.to_dict() for i in _svc(ctx).list_pending()]


@mcp.tool()
def remove_pending(ctx: Context, plan_id: str) -> dict:
    """Remove a plan from the queue before it runs."""
    removed = _svc(ctx).remove_pending(plan_id)
    if not removed:
        return {"error": f"Plan '{plan_id}' not found in queue"}
    return {"status": "removed", "planId": plan_id}


@mcp.tool()
def clear_pending(ctx: Context) -> dict:
    """Remove every queued plan."""
    return {"status": "cleared", "removed": _svc(ctx).clear_pending()}


@mcp.tool()
def list_history(ctx: Context, limit: int = 20) -> list[dict]:
    """List finished plans, most recent first."""
    return [e.to_dict() for e in _svc(ctx).list_history()[:limit]]


@mcp.tool()
def clear_history(ctx: Context) -> dict:
    """Delete all history entries."""
    _svc(ctx).clear_history()
    return {"status": "cleared"}


# ── Template Tools ────────────────────────────────────────────────────────────


@mcp.tool()
def list_templates(ctx: Context) -> list[dict]:
    """List registered templates with their review metadata."""
    return [t.to_dict() for t in _svc(ctx).list_templates()]


@mcp.tool()
def get_template(ctx: Context, name: str) -> dict:
    """Fetch a template's markdown content."""
    try:
        content = _svc(ctx).get_template(name)
    except ValueError as e:
        return {"error": str(e)}
    if content is None:
        return {"error": f"Template '{name}' not found"}
    return {"name": name, "content": content}


@mcp.tool()
def update_template_meta(
    ctx: Context,
    name: str,
    comment: str | None = None,
    score: float | None = None,
    quarantined: bool | None = None,
) -> dict:
    """Set a template's comment, score or quarantine flag.

    Quarantined templates are never matched into new plans.
    """
    try:
        meta = _svc(ctx).update_template_meta(
            name, comment=comment, score=score, quarantined=quarantined
        )
    except ValueError as e:
        return {"error": str(e)}
    return meta.to_dict()
