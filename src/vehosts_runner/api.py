# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

"""HTTP surface used by the dashboard.

``POST /run-python`` keeps the request and response shape the dashboard
already sends: ``{projectId, userId, projectSlug}`` in, and
``{success, output, error, exitCode}`` out.
"""

from typing import Any

from fastapi import Body, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from pydantic import ValidationError

from vehosts_runner.config import RunnerConfig
from vehosts_runner.exceptions import (
    EntryFileNotFoundError,
    PreviewEntryMissingError,
    PreviewNotRunningError,
    ProjectBusyError,
    ProjectNotFoundError,
    VeHostsError,
)
from vehosts_runner.models import RunRequest
from vehosts_runner.service import ProjectServiceAsync
from vehosts_runner.utils.logger import logger

_STATUS_CODES: dict[type[VeHostsError], int] = {
    ProjectNotFoundError: 404,
    EntryFileNotFoundError: 404,
    PreviewEntryMissingError: 404,
    PreviewNotRunningError: 409,
    ProjectBusyError: 409,
}

_MESSAGES: dict[type[VeHostsError], str] = {
    ProjectNotFoundError: "Project not found",
    EntryFileNotFoundError: "Main file not found",
    PreviewEntryMissingError: "Main file missing",
    PreviewNotRunningError: "Project offline",
    ProjectBusyError: "Project is already running",
}


def create_api(service: ProjectServiceAsync) -> FastAPI:
    app = FastAPI(title="vehosts-runner")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    @app.exception_handler(VeHostsError)
    async def handle_runner_error(request: Request, exc: VeHostsError) -> JSONResponse:
        status_code = _STATUS_CODES.get(type(exc), 500)
        message = _MESSAGES.get(type(exc), str(exc))
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(status_code=status_code, content={"error": message, "success": False})

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/run-python")
    async def run_python(payload: dict[str, Any] = Body(default_factory=dict)) -> JSONResponse:
        try:
            req = RunRequest.model_validate(payload)
        except ValidationError:
            return JSONResponse(status_code=400, content={"error": "Missing required parameters"})

        try:
            response = await service.run_project(req.project_id, req.owner_key, req.project_slug)
        except VeHostsError:
            raise
        except Exception as e:
            logger.exception(f"Error executing project {req.project_id}")
            return JSONResponse(status_code=500, content={"error": str(e) or "Unknown error", "success": False})

        return JSONResponse(status_code=200, content=response.model_dump(by_alias=True))

    @app.get("/projects/{project_id}/preview", response_class=HTMLResponse)
    async def preview(project_id: str, owner_key: str = Query(alias="ownerKey")) -> HTMLResponse:
        document = await service.preview_project(project_id, owner_key)
        return HTMLResponse(content=document.html)

    @app.post("/projects/{project_id}/start")
    async def start(project_id: str) -> dict[str, Any]:
        await service.start_project(project_id)
        return {"success": True, "status": "running"}

    @app.post("/projects/{project_id}/stop")
    async def stop(project_id: str) -> dict[str, Any]:
        await service.stop_project(project_id)
        return {"success": True, "status": "stopped"}

    @app.get("/projects/{project_id}/logs")
    async def list_logs(project_id: str, limit: int = 500) -> list[dict[str, str]]:
        records = await service.list_logs(project_id, limit)
        return [record.to_record() for record in records]

    @app.delete("/projects/{project_id}/logs")
    async def clear_logs(project_id: str) -> dict[str, bool]:
        await service.clear_logs(project_id)
        return {"success": True}

    @app.get("/projects/{project_id}/logs/export", response_class=PlainTextResponse)
    async def export_logs(project_id: str, limit: int = 500) -> PlainTextResponse:
        text = await service.export_logs(project_id, limit)
        return PlainTextResponse(
            content=text,
            headers={"Content-Disposition": f'attachment; filename="logs-{project_id}.txt"'},
        )

    return app


def create_app(config: RunnerConfig | None = None) -> FastAPI:
    return create_api(ProjectServiceAsync(config))


def main() -> None:
    import uvicorn

    config = RunnerConfig()
    uvicorn.run(create_app(config), host=config.host, port=config.port)
