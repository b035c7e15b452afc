# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

"""Project metadata backends.

Two implementations of the ProjectMetadataStore protocol: an in-process store
used for local runs and tests, and a REST store speaking the PostgREST dialect
of the hosted ``projects`` and ``console_logs`` tables.
"""

from typing import Any, Protocol, runtime_checkable

import httpx

from vehosts_runner.exceptions import MetadataStoreError, ProjectNotFoundError
from vehosts_runner.models import ExecutionLogRecord, Project, ProjectStatus
from vehosts_runner.utils.logger import logger


@runtime_checkable
class ProjectMetadataStore(Protocol):
    """Protocol for project records and console logs."""

    async def get_project(self, project_id: str) -> Project:
        """Raises ProjectNotFoundError if the project does not exist."""
        ...

    async def update_status(self, project_id: str, status: ProjectStatus) -> None: ...

    async def append_log(self, record: ExecutionLogRecord) -> None: ...

    async def list_logs(self, project_id: str, limit: int = 500) -> list[ExecutionLogRecord]:
        """Returns the newest ``limit`` records, newest first."""
        ...

    async def clear_logs(self, project_id: str) -> None: ...


class InMemoryMetadataStore:
    """Keeps projects and logs in process memory."""

    def __init__(self, projects: list[Project] | None = None):
        self.projects: dict[str, Project] = {p.id: p for p in projects or []}
        self.logs: dict[str, list[ExecutionLogRecord]] = {}

    def add_project(self, project: Project) -> None:
        self.projects[project.id] = project

    async def get_project(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def update_status(self, project_id: str, status: ProjectStatus) -> None:
        project = await self.get_project(project_id)
        self.projects[project_id] = project.model_copy(update={"status": status})

    async def append_log(self, record: ExecutionLogRecord) -> None:
        self.logs.setdefault(record.project_id, []).append(record)

    async def list_logs(self, project_id: str, limit: int = 500) -> list[ExecutionLogRecord]:
        records = sorted(
            self.logs.get(project_id, []),
            key=lambda r: (r.timestamp, r.sequence),
            reverse=True,
        )
        return records[:limit]

    async def clear_logs(self, project_id: str) -> None:
        self.logs.pop(project_id, None)


class RestMetadataStore:
    """PostgREST-backed metadata store."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        """Initializes the RestMetadataStore.

        Args:
            base_url: Root URL of the backend (``/rest/v1`` is appended).
            api_key: Service key, sent as ``apikey`` and bearer token.
            client: Optional httpx.AsyncClient for connection pooling.
            timeout: Request timeout in seconds for the internal client.
        """
        self.base_url = base_url.rstrip("/") + "/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            response = await self._client.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"{method} {table} failed with {e.response.status_code}: {e.response.text}")
            raise MetadataStoreError(f"{method} {table} failed: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {table} failed: {e}")
            raise MetadataStoreError(f"{method} {table} failed: {e}") from e
        return response

    async def get_project(self, project_id: str) -> Project:
        response = await self._request("GET", "projects", params={"id": f"eq.{project_id}", "select": "*"})
        rows = response.json()
        if not rows:
            raise ProjectNotFoundError(project_id)
        return Project.from_record(rows[0])

    async def update_status(self, project_id: str, status: ProjectStatus) -> None:
        await self._request(
            "PATCH",
            "projects",
            params={"id": f"eq.{project_id}"},
            json={"status": status.value},
            prefer="return=minimal",
        )

    async def append_log(self, record: ExecutionLogRecord) -> None:
        await self._request("POST", "console_logs", json=record.to_record(), prefer="return=minimal")

    async def list_logs(self, project_id: str, limit: int = 500) -> list[ExecutionLogRecord]:
        response = await self._request(
            "GET",
            "console_logs",
            params={
                "project_id": f"eq.{project_id}",
                "select": "*",
                "order": "timestamp.desc",
                "limit": str(limit),
            },
        )
        records = []
        for row in response.json():
            if row.get("timestamp") is None:
                logger.warning(f"Skipping console log {row.get('id')} of project {project_id} without a timestamp")
                continue
            records.append(ExecutionLogRecord.model_validate(row))
        return records

    async def clear_logs(self, project_id: str) -> None:
        await self._request("DELETE", "console_logs", params={"project_id": f"eq.{project_id}"})
