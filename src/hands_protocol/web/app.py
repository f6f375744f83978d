"""HTTP API for parsing directives and managing the execution queue."""

import json

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route

from hands_protocol.config import get_config
from hands_protocol.core.service import PlanRejected, PlanService


def _get_service() -> PlanService:
    return PlanService.from_config(get_config())


def _unauthorized(request: Request) -> JSONResponse | None:
    """Mutating routes require ``Authorization: Bearer <HP_API_TOKEN>`` when set."""
    token = get_config().api_token
    if token and request.headers.get("authorization") != f"Bearer {token}":
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    return None


async def _json_body(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


# ── Handlers ──────────────────────────────────────────────────────────────────


async def api_parse(request: Request):
    body = await _json_body(request)
    if not isinstance(body, dict) or not body.get("input"):
        return JSONResponse({"error": "Missing input"}, status_code=400)
    # the translator makes a blocking HTTP call
    plan = await run_in_threadpool(_get_service().parse, str(body["input"]))
    return JSONResponse(plan.to_dict())


async def api_submit(request: Request):
    if denied := _unauthorized(request):
        return denied
    body = await _json_body(request)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Expected a plan object"}, status_code=400)
    try:
        item = _get_service().submit(body)
    except PlanRejected as e:
        return JSONResponse({"error": str(e)}, status_code=403)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse({
        "status": "queued",
        "planId": item.id,
        "message": "Queued for execution.",
    })


async def api_list_queue(request: Request):
    return JSONResponse([i.to_dict() for i in _get_service().list_pending()])


async def api_clear_queue(request: Request):
    if denied := _unauthorized(request):
        return denied
    count = _get_service().clear_pending()
    return JSONResponse({"status": "cleared", "removed": count})


async def api_remove_from_queue(request: Request):
    if denied := _unauthorized(request):
        return denied
    plan_id = request.path_params["plan_id"]
    removed = _get_service().remove_pending(plan_id)
    if not removed:
        return JSONResponse({"error": "Plan not found"}, status_code=404)
    return JSONResponse({"status": "removed", "planId": plan_id})


async def api_history(request: Request):
    return JSONResponse([e.to_dict() for e in _get_service().list_history()])


async def api_clear_history(request: Request):
    if denied := _unauthorized(request):
        return denied
    _get_service().clear_history()
    return JSONResponse({"status": "cleared"})


async def api_list_templates(request: Request):
    return JSONResponse([t.to_dict() for t in _get_service().list_templates()])


async def api_get_template(request: Request):
    name = request.path_params["name"]
    try:
        content = _get_service().get_template(name)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    if content is None:
        return JSONResponse({"error": "Template not found"}, status_code=404)
    return PlainTextResponse(content)


async def api_update_template_meta(request: Request):
    if denied := _unauthorized(request):
        return denied
    body = await _json_body(request)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Expected a metadata object"}, status_code=400)
    fields = {k: body[k] for k in ("comment", "score", "quarantined") if k in body}
    try:
        meta = _get_service().update_template_meta(request.path_params["name"], **fields)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse(meta.to_dict())


# ── App ───────────────────────────────────────────────────────────────────────


def create_app() -> Starlette:
    routes = [
        Route("/api/parse", api_parse, methods=["POST"]),
        Route("/api/queue", api_list_queue, methods=["GET"]),
        Route("/api/queue", api_submit, methods=["POST"]),
        Route("/api/queue", api_clear_queue, methods=["DELETE"]),
        Route("/api/queue/{plan_id}", api_remove_from_queue, methods=["DELETE"]),
        Route("/api/history", api_history, methods=["GET"]),
        Route("/api/history", api_clear_history, methods=["DELETE"]),
        Route("/api/templates", api_list_templates, methods=["GET"]),
        Route("/api/templates/{name}", api_get_template, methods=["GET"]),
        Route("/api/templates/{name}/meta", api_update_template_meta, methods=["POST"]),
    ]
    return Starlette(routes=routes)


def run_server(host: str = "127.0.0.1", port: int = 5000):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
