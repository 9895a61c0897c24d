"""HTTP API: webhook receivers, management endpoints and the dashboard."""

import json
import logging

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from build_relay.config import Config, get_config
from build_relay.core.dispatch import DispatchError
from build_relay.core.services import Services, build_services
from build_relay.core.webhooks import is_expired
from build_relay.db.engine import StorageError
from build_relay.web.dashboard import get_dashboard_html

logger = logging.getLogger(__name__)

REPO_FIELDS = {"url": "url", "branches": "branches", "isPrivate": "is_private", "token": "token"}
WEBHOOK_FIELDS = {
    "name": "name",
    "displayName": "display_name",
    "projectId": "project_id",
    "repoId": "repo_id",
    "branches": "branches",
    "isActive": "is_active",
    "expiryDate": "expiry_date",
}


def _services(request: Request) -> Services:
    return request.app.state.services


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError("Request body must be JSON") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _pick(body: dict, fields: dict) -> dict:
    return {attr: body[key] for key, attr in fields.items() if key in body}


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# ── Webhook receivers ─────────────────────────────────────────────────────────


async def github_ping(request: Request):
    return JSONResponse({"message": "GitHub webhook endpoint active"})


async def github_webhook(request: Request):
    dispatcher = _services(request).dispatcher
    body = await request.body()
    try:
        outcome = await run_in_threadpool(
            dispatcher.dispatch_github,
            body,
            request.headers.get("x-hub-signature-256"),
            request.headers.get("x-github-event"),
        )
    except DispatchError as e:
        if e.status_code >= 500:
            logger.error("GitHub webhook rejected: %s", e)
            return _error("Failed to process webhook", e.status_code)
        return _error(str(e), e.status_code)
    except Exception:
        logger.exception("Webhook error")
        return _error("Failed to process webhook", 500)

    if outcome is None:
        return JSONResponse({"message": "Event ignored - not a push event"})

    return JSONResponse({
        "success": True,
        "repo": outcome.event.repo,
        "branch": outcome.event.branch,
        "commit": outcome.event.commit,
        "buildTriggered": outcome.result.success,
        "buildNumber": outcome.result.build_number,
    })


async def registered_webhook(request: Request):
    webhook_id = request.path_params["webhook_id"]
    dispatcher = _services(request).dispatcher
    body = await request.body()
    try:
        outcome, display_name = await run_in_threadpool(
            dispatcher.dispatch_registered, webhook_id, body
        )
    except DispatchError as e:
        if e.status_code >= 500:
            logger.error("Webhook %s rejected: %s", webhook_id, e)
            return _error("Failed to process webhook", e.status_code)
        return _error(str(e), e.status_code)
    except Exception:
        logger.exception("Error processing webhook %s", webhook_id)
        return _error("Failed to process webhook", 500)

    triggered = outcome.result.success
    return JSONResponse({
        "success": True,
        "webhook": display_name,
        "jenkinsTriggered": triggered,
        "jenkinsMessage": outcome.result.message,
        "message": (
            "Webhook processed and Jenkins job triggered"
            if triggered
            else "Webhook processed - Jenkins job trigger may have issues (check logs)"
        ),
    })


# ── Builds ────────────────────────────────────────────────────────────────────


async def api_list_builds(request: Request):
    params = request.query_params
    builds = _services(request).builds.filter_builds(
        repo=params.get("repo") or None,
        branch=params.get("branch") or None,
        project_id=params.get("project") or None,
    )
    return JSONResponse([b.to_dict() for b in builds])


async def api_build_stats(request: Request):
    return JSONResponse(_services(request).builds.aggregate_stats())


# ── Projects ──────────────────────────────────────────────────────────────────


async def api_list_projects(request: Request):
    projects = _services(request).projects.list_projects()
    return JSONResponse([p.to_dict() for p in projects])


async def api_create_project(request: Request):
    try:
        body = await _json_body(request)
        project = _services(request).projects.create_project(
            body.get("name", ""),
            body.get("type", "single"),
            body.get("repos") or [],
        )
    except ValueError as e:
        return _error(str(e), 400)
    return JSONResponse(project.to_dict(), status_code=201)


async def api_get_project(request: Request):
    project = _services(request).projects.get_project(request.path_params["project_id"])
    if not project:
        return _error("Project not found", 404)
    return JSONResponse(project.to_dict())


async def api_update_project(request: Request):
    try:
        body = await _json_body(request)
        project = _services(request).projects.update_project(
            request.path_params["project_id"],
            **_pick(body, {"name": "name", "type": "type", "repos": "repos"}),
        )
    except ValueError as e:
        return _error(str(e), 400)
    if not project:
        return _error("Project not found", 404)
    return JSONResponse(project.to_dict())


async def api_delete_project(request: Request):
    if not _services(request).projects.delete_project(request.path_params["project_id"]):
        return _error("Project not found", 404)
    return JSONResponse({"success": True})


async def api_add_repo(request: Request):
    try:
        body = await _json_body(request)
        project = _services(request).projects.add_repo(request.path_params["project_id"], body)
    except ValueError as e:
        return _error(str(e), 400)
    if not project:
        return _error("Project not found", 404)
    return JSONResponse(project.to_dict(), status_code=201)


async def api_update_repo(request: Request):
    try:
        body = await _json_body(request)
        project = _services(request).projects.update_repo(
            request.path_params["project_id"],
            request.path_params["repo_id"],
            **_pick(body, REPO_FIELDS),
        )
    except ValueError as e:
        return _error(str(e), 400)
    if not project:
        return _error("Project or repo not found", 404)
    return JSONResponse(project.to_dict())


async def api_remove_repo(request: Request):
    project = _services(request).projects.remove_repo(
        request.path_params["project_id"], request.path_params["repo_id"]
    )
    if not project:
        return _error("Project not found", 404)
    return JSONResponse(project.to_dict())


# ── Webhook registrations ─────────────────────────────────────────────────────


def _webhook_dict(webhook) -> dict:
    data = webhook.to_dict()
    data["isExpired"] = is_expired(webhook)
    return data


async def api_list_webhooks(request: Request):
    webhooks = _services(request).webhooks.list_webhooks()
    return JSONResponse([_webhook_dict(w) for w in webhooks])


async def api_create_webhook(request: Request):
    try:
        body = await _json_body(request)
        webhook = _services(request).webhooks.create_webhook(
            body.get("name", ""),
            project_id=body.get("projectId"),
            repo_id=body.get("repoId"),
            expiry_date=body.get("expiryDate"),
            branches=body.get("branches"),
        )
    except ValueError as e:
        return _error(str(e), 400)
    return JSONResponse(_webhook_dict(webhook), status_code=201)


async def api_get_webhook(request: Request):
    webhook = _services(request).webhooks.get_webhook(request.path_params["webhook_id"])
    if not webhook:
        return _error("Webhook not found", 404)
    return JSONResponse(_webhook_dict(webhook))


async def api_update_webhook(request: Request):
    try:
        body = await _json_body(request)
        webhook = _services(request).webhooks.update_webhook(
            request.path_params["webhook_id"], **_pick(body, WEBHOOK_FIELDS)
        )
    except ValueError as e:
        return _error(str(e), 400)
    if not webhook:
        return _error("Webhook not found", 404)
    return JSONResponse(_webhook_dict(webhook))


async def api_delete_webhook(request: Request):
    if not _services(request).webhooks.delete_webhook(request.path_params["webhook_id"]):
        return _error("Webhook not found", 404)
    return JSONResponse({"success": True})


# ── App ───────────────────────────────────────────────────────────────────────


async def index(request: Request):
    return HTMLResponse(get_dashboard_html())


async def storage_error(request: Request, exc: StorageError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return _error("Failed to persist changes", 500)


def create_app(config: Config | None = None, services: Services | None = None) -> Starlette:
    routes = [
        Route("/", index),
        Route("/webhooks/github", github_ping, methods=["GET"]),
        Route("/webhooks/github", github_webhook, methods=["POST"]),
        Route("/webhooks/{webhook_id}", registered_webhook, methods=["POST"]),
        Route("/api/builds", api_list_builds),
        Route("/api/builds/stats", api_build_stats),
        Route("/api/projects", api_list_projects, methods=["GET"]),
        Route("/api/projects", api_create_project, methods=["POST"]),
        Route("/api/projects/{project_id}", api_get_project, methods=["GET"]),
        Route("/api/projects/{project_id}", api_update_project, methods=["PATCH"]),
        Route("/api/projects/{project_id}", api_delete_project, methods=["DELETE"]),
        Route("/api/projects/{project_id}/repos", api_add_repo, methods=["POST"]),
        Route("/api/projects/{project_id}/repos/{repo_id}", api_update_repo, methods=["PATCH"]),
        Route("/api/projects/{project_id}/repos/{repo_id}", api_remove_repo, methods=["DELETE"]),
        Route("/api/webhooks", api_list_webhooks, methods=["GET"]),
        Route("/api/webhooks", api_create_webhook, methods=["POST"]),
        Route("/api/webhooks/{webhook_id}", api_get_webhook, methods=["GET"]),
        Route("/api/webhooks/{webhook_id}", api_update_webhook, methods=["PATCH"]),
        Route("/api/webhooks/{webhook_id}", api_delete_webhook, methods=["DELETE"]),
    ]
    app = Starlette(routes=routes, exception_handlers={StorageError: storage_error})
    app.state.services = services or build_services(config or get_config())
    return app


def run_server(host: str = "127.0.0.1", port: int = 8787, log_level: str = "info"):
    app = create_app()
    uvicorn.run(app, host=host, port=port, log_level=log_level)
