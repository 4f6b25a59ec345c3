"""Dashboard API — FastAPI endpoints behind the tenant web panel.

Every response is a structured outcome: ``{"success": true, ...}`` on
success, ``{"success": false, "message": ...}`` with a matching status
code when a bothost error surfaces.
"""

from __future__ import annotations

import logging
import time

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import HTTPException
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from bothost import __version__
from bothost.auth.sessions import SessionStore
from bothost.config import settings
from bothost.exceptions import (
    BothostError,
    ConflictError,
    NotFoundError,
    ProcessError,
    StorageError,
    ValidationError,
)
from bothost.logs.sink import LogPage
from bothost.service import HostingService
from bothost.types import Bot

_logger = logging.getLogger(__name__)

dashboard_app = FastAPI(title="bothost dashboard", version=__version__)

_service: HostingService | None = None
_sessions = SessionStore(settings.session_ttl_seconds)
_start_time = time.time()


def configure(service: HostingService, sessions: SessionStore | None = None) -> None:
    global _service, _sessions
    _service = service
    _sessions = sessions if sessions is not None else SessionStore(settings.session_ttl_seconds)


def _svc() -> HostingService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Service not configured")
    return _service


# ── Error mapping ────────────────────────────────────────────────

_STATUS_CODES = [
    (NotFoundError, 404),
    (ConflictError, 409),
    (ValidationError, 422),
    (ProcessError, 502),
    (StorageError, 500),
]


@dashboard_app.exception_handler(BothostError)
async def _bothost_error(request: Request, exc: BothostError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 400)
    return JSONResponse({"success": False, "message": str(exc)}, status_code=status)


@dashboard_app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"success": False, "message": exc.detail}, status_code=exc.status_code)


# ── Sessions ─────────────────────────────────────────────────────


def current_tenant(request: Request) -> str:
    tenant_id = _sessions.get(request.cookies.get(settings.session_cookie))
    if tenant_id is None:
        raise HTTPException(status_code=401, detail="Sign in first")
    return tenant_id


class LoginRequest(BaseModel):
    code: str = ""


class CreateBotRequest(BaseModel):
    name: str
    code: str
    runtime: str | None = None


class FileWriteRequest(BaseModel):
    path: str
    content: str


def _bot_json(bot: Bot) -> dict:
    data = bot.model_dump(mode="json")
    data["is_running"] = _svc().supervisor.is_running(bot.id)
    return data


def _page_json(page: LogPage) -> dict:
    return {
        "success": True,
        "logs": [e.model_dump(mode="json") for e in page.entries],
        "pagination": {
            "page": page.page,
            "per_page": page.per_page,
            "total": page.total,
            "pages": page.pages,
        },
    }


@dashboard_app.post("/api/login")
async def login(body: LoginRequest, response: Response) -> dict:
    tenant = await _svc().login(body.code)
    token = _sessions.create(tenant.id)
    response.set_cookie(
        settings.session_cookie,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
    )
    return {"success": True, "tenant": tenant.model_dump(mode="json")}


@dashboard_app.post("/api/logout")
async def logout(request: Request, response: Response) -> dict:
    _sessions.drop(request.cookies.get(settings.session_cookie))
    response.delete_cookie(settings.session_cookie)
    return {"success": True}


@dashboard_app.get("/api/me")
async def me(tenant_id: str = Depends(current_tenant)) -> dict:
    tenant = await _svc().get_tenant(tenant_id)
    return {"success": True, "tenant": tenant.model_dump(mode="json")}


@dashboard_app.get("/api/dashboard")
async def dashboard(tenant_id: str = Depends(current_tenant)) -> dict:
    svc = _svc()
    bots = await svc.list_bots(tenant_id)
    return {
        "success": True,
        "stats": await svc.dashboard(tenant_id),
        "bots": [_bot_json(b) for b in bots],
    }


# ── Bots ─────────────────────────────────────────────────────────


@dashboard_app.get("/api/bots")
async def list_bots(tenant_id: str = Depends(current_tenant)) -> dict:
    bots = await _svc().list_bots(tenant_id)
    return {"success": True, "bots": [_bot_json(b) for b in bots]}


@dashboard_app.post("/api/bots")
async def create_bot(body: CreateBotRequest, tenant_id: str = Depends(current_tenant)) -> dict:
    bot = await _svc().create_bot(tenant_id, body.name, code=body.code, runtime=body.runtime)
    return {"success": True, "message": "Bot created", "bot": _bot_json(bot)}


@dashboard_app.get("/api/bots/{bot_id}")
async def get_bot(bot_id: str, tenant_id: str = Depends(current_tenant)) -> dict:
    svc = _svc()
    bot = await svc.get_bot(tenant_id, bot_id)
    files = await svc.list_files(tenant_id, bot_id)
    return {
        "success": True,
        "bot": _bot_json(bot),
        "files": [f.model_dump(mode="json") for f in files],
    }


@dashboard_app.delete("/api/bots/{bot_id}")
async def delete_bot(bot_id: str, tenant_id: str = Depends(current_tenant)) -> dict:
    report = await _svc().delete_bot(tenant_id, bot_id)
    return {
        "success": report.record_removed,
        "message": "Bot deleted",
        "warnings": report.errors,
    }


@dashboard_app.post("/api/bots/{bot_id}/start")
async def start_bot(bot_id: str, tenant_id: str = Depends(current_tenant)) -> dict:
    bot = await _svc().start_bot(tenant_id, bot_id)
    return {"success": True, "status": bot.status.value}


@dashboard_app.post("/api/bots/{bot_id}/stop")
async def stop_bot(bot_id: str, tenant_id: str = Depends(current_tenant)) -> dict:
    bot = await _svc().stop_bot(tenant_id, bot_id)
    return {"success": True, "status": bot.status.value}


# ── Files ────────────────────────────────────────────────────────


@dashboard_app.get("/api/bots/{bot_id}/files")
async def list_files(bot_id: str, tenant_id: str = Depends(current_tenant)) -> dict:
    files = await _svc().list_files(tenant_id, bot_id)
    return {"success": True, "files": [f.model_dump(mode="json") for f in files]}


@dashboard_app.get("/api/bots/{bot_id}/file")
async def read_file(bot_id: str, path: str, tenant_id: str = Depends(current_tenant)) -> dict:
    content = await _svc().read_file(tenant_id, bot_id, path)
    return {"success": True, "content": content}


@dashboard_app.put("/api/bots/{bot_id}/file")
async def write_file(
    bot_id: str, body: FileWriteRequest, tenant_id: str = Depends(current_tenant)
) -> dict:
    await _svc().write_file(tenant_id, bot_id, body.path, body.content)
    return {"success": True, "message": "File saved"}


@dashboard_app.delete("/api/bots/{bot_id}/file")
async def delete_file(bot_id: str, path: str, tenant_id: str = Depends(current_tenant)) -> dict:
    await _svc().delete_file(tenant_id, bot_id, path)
    return {"success": True, "message": "File deleted"}


@dashboard_app.get("/api/bots/{bot_id}/download")
async def download_file(
    bot_id: str, path: str, tenant_id: str = Depends(current_tenant)
) -> FileResponse:
    target = await _svc().download_path(tenant_id, bot_id, path)
    return FileResponse(target, filename=target.name)


# ── Logs ─────────────────────────────────────────────────────────


@dashboard_app.get("/api/bots/{bot_id}/logs")
async def bot_logs(
    bot_id: str,
    page: int = 1,
    stream: str | None = None,
    search: str = "",
    tenant_id: str = Depends(current_tenant),
) -> dict:
    result = await _svc().bot_logs(tenant_id, bot_id, page=page, stream=stream, search=search)
    return _page_json(result)


@dashboard_app.get("/api/logs")
async def tenant_logs(
    page: int = 1,
    stream: str | None = None,
    search: str = "",
    tenant_id: str = Depends(current_tenant),
) -> dict:
    result = await _svc().tenant_logs(tenant_id, page=page, stream=stream, search=search)
    return _page_json(result)


# ── Health ───────────────────────────────────────────────────────


@dashboard_app.get("/health")
async def health() -> dict:
    svc = _svc()
    try:
        stats = await svc.platform_stats()
        database = "connected"
    except Exception as e:
        _logger.exception("Health check failed")
        stats = {}
        database = f"error: {e}"
    return {
        "status": "ok" if database == "connected" else "degraded",
        "version": __version__,
        "uptime_s": int(time.time() - _start_time),
        "database": database,
        "statistics": stats,
    }
