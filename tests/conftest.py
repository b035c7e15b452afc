import sys
from pathlib import Path
from typing import Any, Callable

import pytest

from vehosts_runner.execution_log import ExecutionLogger
from vehosts_runner.executor import SandboxedExecutor
from vehosts_runner.installer import DependencyInstaller
from vehosts_runner.metadata import InMemoryMetadataStore
from vehosts_runner.models import LogType, Project, ProjectLanguage, ProjectStatus
from vehosts_runner.storage import LocalArtifactStore

OWNER_KEY = "owner-1"
PROJECT_SLUG = "demo"


@pytest.fixture
def store(tmp_path: Path) -> LocalArtifactStore:
    return LocalArtifactStore(tmp_path / "storage")


@pytest.fixture
def metadata() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture
def exec_log(metadata: InMemoryMetadataStore) -> ExecutionLogger:
    return ExecutionLogger(metadata)


@pytest.fixture
def workdir_root(tmp_path: Path) -> Path:
    root = tmp_path / "runs"
    root.mkdir()
    return root


@pytest.fixture
def installer(exec_log: ExecutionLogger) -> DependencyInstaller:
    return DependencyInstaller(log=exec_log, python_executable=sys.executable, timeout=30.0)


@pytest.fixture
def executor(
    store: LocalArtifactStore,
    exec_log: ExecutionLogger,
    installer: DependencyInstaller,
    workdir_root: Path,
) -> SandboxedExecutor:
    return SandboxedExecutor(
        store=store,
        log=exec_log,
        installer=installer,
        python_executable=sys.executable,
        timeout=30.0,
        workdir_root=str(workdir_root),
    )


@pytest.fixture
def make_project() -> Callable[..., Project]:
    def _make(**overrides: Any) -> Project:
        data: dict[str, Any] = {
            "id": "project-1",
            "owner_key": OWNER_KEY,
            "slug": PROJECT_SLUG,
            "name": "Demo",
            "language": ProjectLanguage.PYTHON,
            "main_file_path": "main.py",
            "status": ProjectStatus.RUNNING,
        }
        data.update(overrides)
        return Project(**data)

    return _make


@pytest.fixture
def log_entries(metadata: InMemoryMetadataStore) -> Callable[[str], list[tuple[LogType, str]]]:
    """Records of a project in creation order."""

    def _entries(project_id: str) -> list[tuple[LogType, str]]:
        return [(r.log_type, r.message) for r in metadata.logs.get(project_id, [])]

    return _entries
