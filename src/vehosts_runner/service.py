# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

from typing import Any

import anyio
import httpx

from vehosts_runner.config import RunnerConfig
from vehosts_runner.exceptions import PreviewNotRunningError, ProjectNotFoundError
from vehosts_runner.execution_log import ExecutionLogger
from vehosts_runner.factory import RunnerFactory
from vehosts_runner.metadata import ProjectMetadataStore
from vehosts_runner.models import (
    ExecutionLogRecord,
    PreviewDocument,
    ProjectLanguage,
    ProjectStatus,
    RunResponse,
)
from vehosts_runner.preview import PreviewAssembler, render_console_placeholder
from vehosts_runner.run_guard import ProjectRunGuard
from vehosts_runner.storage import ArtifactStore
from vehosts_runner.utils.logger import logger


class ProjectServiceAsync:
    """Async-native project service (The Core).

    Wires the stores, execution logger, executor, preview assembler and run
    guard together and exposes the operations the dashboard triggers.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        store: ArtifactStore | None = None,
        metadata: ProjectMetadataStore | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initializes the ProjectServiceAsync.

        Args:
            config: Configuration for the runner.
            store: Artifact store. Built from config when omitted.
            metadata: Metadata store. Built from config when omitted.
            client: Optional httpx.AsyncClient for the REST metadata backend.
        """
        self.config = config or RunnerConfig()
        self.store = store or RunnerFactory.get_artifact_store(self.config)
        self.metadata = metadata or RunnerFactory.get_metadata_store(self.config, client)
        self.log = ExecutionLogger(self.metadata)
        self.executor = RunnerFactory.get_executor(self.config, self.store, self.log)
        self.assembler = PreviewAssembler(self.store)
        self.guard = ProjectRunGuard()

    async def __aenter__(self) -> "ProjectServiceAsync":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        aclose = getattr(self.metadata, "aclose", None)
        if aclose is not None:
            await aclose()

    async def run_project(self, project_id: str, owner_key: str, project_slug: str) -> RunResponse:
        """Runs a project's entry script.

        Args:
            project_id: The project to run.
            owner_key: The owner's storage key.
            project_slug: The project slug used to address its files.

        Returns:
            RunResponse: Exit status and captured output.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            EntryFileNotFoundError: If the entry file is missing.
            ProjectBusyError: If the project is already running a job.
        """
        try:
            project = await self.metadata.get_project(project_id)
        except ProjectNotFoundError:
            logger.warning(f"Run requested for unknown project {project_id}")
            raise

        if project.slug != project_slug:
            project = project.model_copy(update={"slug": project_slug})

        async with self.guard.acquire(project_id, owner_key):
            logger.info(f"Running project {project_id} for owner {owner_key}")
            result = await self.executor.run(project, owner_key)

        return RunResponse.from_result(result)

    async def preview_project(self, project_id: str, owner_key: str) -> PreviewDocument:
        """Builds the preview for a running project.

        Interpreted projects are run and answered with a console placeholder;
        every other project is assembled from its stored files.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            PreviewNotRunningError: If the project is not running.
            PreviewEntryMissingError: If the entry file of a static project is missing.
        """
        project = await self.metadata.get_project(project_id)
        if project.status != ProjectStatus.RUNNING:
            raise PreviewNotRunningError(project_id, project.status.value)

        if project.language == ProjectLanguage.PYTHON:
            if not self.guard.is_running(project_id):
                await self.run_project(project_id, owner_key, project.slug)
            return PreviewDocument(html=render_console_placeholder(project))

        return await self.assembler.assemble(project, owner_key)

    async def start_project(self, project_id: str) -> None:
        await self.metadata.update_status(project_id, ProjectStatus.RUNNING)
        logger.info(f"Project {project_id} started")

    async def stop_project(self, project_id: str) -> None:
        await self.metadata.update_status(project_id, ProjectStatus.STOPPED)
        logger.info(f"Project {project_id} stopped")

    async def list_logs(self, project_id: str, limit: int = 500) -> list[ExecutionLogRecord]:
        """Returns the newest console records, newest first."""
        return await self.metadata.list_logs(project_id, limit)

    async def clear_logs(self, project_id: str) -> None:
        await self.metadata.clear_logs(project_id)

    async def export_logs(self, project_id: str, limit: int = 500) -> str:
        """Renders console records as plain text, one ``[time] [type] message`` line each."""
        records = await self.metadata.list_logs(project_id, limit)
        return "\n".join(
            f"[{record.timestamp.isoformat()}] [{record.log_type.value}] {record.message}" for record in records
        )


class ProjectService:
    """Sync Facade for ProjectServiceAsync (The Facade).

    Wraps ProjectServiceAsync and executes methods via anyio.run. Every call
    runs on a fresh event loop, so a REST metadata store built from config is
    created and closed inside each call instead of sharing an httpx client
    across loops. Memory and caller-provided stores are reused as given.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        store: ArtifactStore | None = None,
        metadata: ProjectMetadataStore | None = None,
    ):
        self.config = config or RunnerConfig()
        self.store = store or RunnerFactory.get_artifact_store(self.config)
        self.guard = ProjectRunGuard()
        self._async: ProjectServiceAsync | None = None
        if metadata is not None or self.config.metadata_backend != "rest":
            self._async = ProjectServiceAsync(self.config, self.store, metadata)
            self._async.guard = self.guard

    async def _call(self, name: str, *args: Any) -> Any:
        if self._async is not None:
            return await getattr(self._async, name)(*args)
        async with ProjectServiceAsync(self.config, self.store) as service:
            service.guard = self.guard
            return await getattr(service, name)(*args)

    def __enter__(self) -> "ProjectService":
        if self._async is not None:
            anyio.run(self._async.__aenter__)
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self._async is not None:
            anyio.run(self._async.__aexit__, exc_type, exc_val, exc_tb)

    def run_project(self, project_id: str, owner_key: str, project_slug: str) -> RunResponse:
        return anyio.run(self._call, "run_project", project_id, owner_key, project_slug)

    def preview_project(self, project_id: str, owner_key: str) -> PreviewDocument:
        return anyio.run(self._call, "preview_project", project_id, owner_key)

    def start_project(self, project_id: str) -> None:
        anyio.run(self._call, "start_project", project_id)

    def stop_project(self, project_id: str) -> None:
        anyio.run(self._call, "stop_project", project_id)

    def list_logs(self, project_id: str, limit: int = 500) -> list[ExecutionLogRecord]:
        return anyio.run(self._call, "list_logs", project_id, limit)

    def clear_logs(self, project_id: str) -> None:
        anyio.run(self._call, "clear_logs", project_id)

    def export_logs(self, project_id: str, limit: int = 500) -> str:
        return anyio.run(self._call, "export_logs", project_id, limit)
