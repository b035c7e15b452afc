# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

import os
import tempfile
import time
from pathlib import Path

import anyio

from vehosts_runner.exceptions import ArtifactNotFoundError, EntryFileNotFoundError, InvalidArtifactPathError
from vehosts_runner.execution_log import ExecutionLogger
from vehosts_runner.installer import DependencyInstaller, site_packages_dir
from vehosts_runner.integrations.veritas import VeritasIntegrator
from vehosts_runner.models import ExecutionResult, Project, RunPhase
from vehosts_runner.storage import ArtifactStore, storage_key
from vehosts_runner.utils.logger import logger

TIMEOUT_EXIT_CODE = -9
LAUNCH_FAILURE_EXIT_CODE = 127


class SandboxedExecutor:
    """
    Runs a project's entry script in a scoped working directory.

    One call to ``run`` owns one temporary directory; it is removed on every
    exit path before the summary logs are written.
    """

    def __init__(
        self,
        store: ArtifactStore,
        log: ExecutionLogger,
        installer: DependencyInstaller,
        python_executable: str,
        timeout: float = 60.0,
        entry_filename: str = "main.py",
        requirements_filename: str = "requirements.txt",
        workdir_prefix: str = "vehosts-run-",
        workdir_root: str | None = None,
        veritas: VeritasIntegrator | None = None,
    ):
        self.store = store
        self.log = log
        self.installer = installer
        self.python_executable = python_executable
        self.timeout = timeout
        self.entry_filename = entry_filename
        self.requirements_filename = requirements_filename
        self.workdir_prefix = workdir_prefix
        self.workdir_root = workdir_root
        self.veritas = veritas or VeritasIntegrator(enabled=False)

    def _enter(self, project_id: str, phase: RunPhase) -> RunPhase:
        logger.debug(f"Project {project_id} -> {phase.value}")
        return phase

    async def _fetch_manifest(self, project: Project, owner_key: str) -> bytes | None:
        key = storage_key(owner_key, project.slug, self.requirements_filename)
        try:
            return await self.store.get(key)
        except ArtifactNotFoundError:
            return None
        except Exception as e:
            logger.error(f"Failed to fetch manifest {key}: {e}")
            await self.log.error(project.id, f"Could not read requirements.txt: {e}")
            return None

    def _build_env(self, work_dir: Path) -> dict[str, str]:
        env = dict(os.environ)
        env["PYTHONUNBUFFERED"] = "1"
        if self.installer.scope == "workdir":
            paths = [str(site_packages_dir(work_dir))]
            if env.get("PYTHONPATH"):
                paths.append(env["PYTHONPATH"])
            env["PYTHONPATH"] = os.pathsep.join(paths)
        return env

    async def _execute(self, work_dir: Path) -> ExecutionResult:
        """Runs the interpreter on the entry file and captures its output."""
        cmd = [self.python_executable, self.entry_filename]
        start_time = time.monotonic()
        try:
            with anyio.fail_after(self.timeout):
                process = await anyio.run_process(cmd, cwd=work_dir, env=self._build_env(work_dir), check=False)
        except TimeoutError:
            duration = time.monotonic() - start_time
            logger.warning(f"Execution timed out ({self.timeout}s). Process killed.")
            return ExecutionResult(
                success=False,
                stdout="",
                stderr=f"Execution exceeded {self.timeout} seconds limit.",
                exit_code=TIMEOUT_EXIT_CODE,
                execution_duration=duration,
                timed_out=True,
            )
        except OSError as e:
            logger.error(f"Failed to launch interpreter {self.python_executable}: {e}")
            return ExecutionResult(
                success=False,
                stdout="",
                stderr=f"Failed to launch interpreter: {e}",
                exit_code=LAUNCH_FAILURE_EXIT_CODE,
                execution_duration=time.monotonic() - start_time,
            )

        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        return ExecutionResult(
            success=process.returncode == 0,
            stdout=stdout,
            stderr=stderr,
            exit_code=process.returncode,
            execution_duration=time.monotonic() - start_time,
        )

    async def run(self, project: Project, owner_key: str) -> ExecutionResult:
        """Fetches, prepares and executes the project's entry file.

        Args:
            project: The project to run.
            owner_key: The owner's storage key.

        Returns:
            ExecutionResult: Exit status and captured output.

        Raises:
            EntryFileNotFoundError: If the entry file is missing or its path
                leaves the project. No working directory is created and no
                log record is written.
        """
        project_id = project.id

        self._enter(project_id, RunPhase.FETCHING_ENTRY)
        try:
            entry_key = storage_key(owner_key, project.slug, project.entry_path)
        except InvalidArtifactPathError as e:
            logger.warning(f"Rejected entry path for project {project_id}: {e.path}")
            raise EntryFileNotFoundError(project_id, project.entry_path) from e

        try:
            code = await self.store.get(entry_key)
        except ArtifactNotFoundError as e:
            logger.warning(f"Main file not found for project {project_id}: {entry_key}")
            raise EntryFileNotFoundError(project_id, entry_key) from e

        await self.log.info(project_id, f"Starting {project.language.value} project {project.name or project.slug}")
        await self.log.info(project_id, f"Loaded main file: {project.entry_path}")

        with tempfile.TemporaryDirectory(prefix=self.workdir_prefix, dir=self.workdir_root) as tmp_dir:
            work_dir = Path(tmp_dir)
            (work_dir / self.entry_filename).write_bytes(code)

            self._enter(project_id, RunPhase.INSTALLING_DEPS)
            requirements = await self._fetch_manifest(project, owner_key)
            await self.installer.install(project_id, work_dir, requirements)

            self._enter(project_id, RunPhase.EXECUTING)
            await self.log.info(project_id, "Executing program...")
            self.veritas.log_pre_execution(code, project_id, project.language.value)
            result = await self._execute(work_dir)

            self._enter(project_id, RunPhase.CLEANING_UP)

        if result.timed_out:
            await self.log.error(
                project_id,
                f"Execution timed out after {self.timeout} seconds (exit code {result.exit_code})",
            )
        elif result.success:
            await self.log.success(project_id, f"Execution succeeded (exit code {result.exit_code})")
        else:
            await self.log.error(project_id, f"Execution failed (exit code {result.exit_code})")

        if result.stdout:
            await self.log.output(project_id, result.stdout)
        if result.stderr:
            await self.log.error(project_id, result.stderr)

        await self.log.info(project_id, "Execution finished")
        self._enter(project_id, RunPhase.DONE)
        return result
