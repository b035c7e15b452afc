import signal
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from vehosts_runner.exceptions import EntryFileNotFoundError
from vehosts_runner.executor import LAUNCH_FAILURE_EXIT_CODE, TIMEOUT_EXIT_CODE, SandboxedExecutor
from vehosts_runner.models import LogType
from vehosts_runner.storage import storage_key


async def put(store: Any, project: Any, path: str, content: str) -> None:
    await store.put(storage_key(project.owner_key, project.slug, path), content.encode("utf-8"))


@pytest.mark.asyncio
async def test_hello_world_without_requirements(
    executor: SandboxedExecutor, store: Any, make_project: Any, log_entries: Any
) -> None:
    project = make_project()
    await put(store, project, "main.py", 'print("hello")\n')

    result = await executor.run(project, project.owner_key)

    assert result.success is True
    assert result.stdout == "hello\n"
    assert result.stderr == ""
    assert result.exit_code == 0
    assert result.timed_out is False

    entries = log_entries(project.id)
    messages = [m for _, m in entries]
    start = next(i for i, m in enumerate(messages) if m.startswith("Starting"))
    no_req = messages.index("no requirements.txt found")
    executing = messages.index("Executing program...")
    succeeded = entries.index((LogType.SUCCESS, "Execution succeeded (exit code 0)"))
    output = entries.index((LogType.OUTPUT, "hello\n"))
    finished = entries.index((LogType.INFO, "Execution finished"))

    assert start < no_req < executing < succeeded < output < finished
    assert finished == len(entries) - 1


@pytest.mark.asyncio
async def test_missing_entry_creates_no_workdir(
    executor: SandboxedExecutor, make_project: Any, workdir_root: Path, log_entries: Any
) -> None:
    project = make_project(main_file_path="/missing.py")
    executor.installer = MagicMock()

    with pytest.raises(EntryFileNotFoundError) as excinfo:
        await executor.run(project, project.owner_key)

    assert excinfo.value.key == "owner-1/demo/missing.py"
    assert list(workdir_root.iterdir()) == []
    executor.installer.install.assert_not_called()
    assert log_entries(project.id) == []


@pytest.mark.asyncio
async def test_entry_path_cannot_leave_the_project(
    executor: SandboxedExecutor, store: Any, make_project: Any, workdir_root: Path, log_entries: Any
) -> None:
    await store.put("victim/secret/main.py", b"print('victim code')\n")
    project = make_project(main_file_path="/../../victim/secret/main.py")
    executor.installer = MagicMock()

    with pytest.raises(EntryFileNotFoundError):
        await executor.run(project, project.owner_key)

    assert list(workdir_root.iterdir()) == []
    executor.installer.install.assert_not_called()
    assert log_entries(project.id) == []


@pytest.mark.asyncio
async def test_workdir_removed_after_success(
    executor: SandboxedExecutor, store: Any, make_project: Any, workdir_root: Path
) -> None:
    project = make_project()
    await put(store, project, "main.py", "import os\nprint(os.getcwd())\nprint(sorted(os.listdir('.')))\n")

    result = await executor.run(project, project.owner_key)

    cwd = Path(result.stdout.splitlines()[0])
    assert cwd.parent == workdir_root.resolve()
    assert cwd.name.startswith("vehosts-run-")
    assert "'main.py'" in result.stdout.splitlines()[1]
    assert not cwd.exists()
    assert list(workdir_root.iterdir()) == []


@pytest.mark.asyncio
async def test_nonzero_exit_reports_failure(
    executor: SandboxedExecutor, store: Any, make_project: Any, workdir_root: Path, log_entries: Any
) -> None:
    project = make_project()
    await put(store, project, "main.py", "import sys\nprint('partial')\nsys.stderr.write('boom\\n')\nsys.exit(3)\n")

    result = await executor.run(project, project.owner_key)

    assert result.success is False
    assert result.exit_code == 3
    assert result.stdout == "partial\n"
    assert result.stderr == "boom\n"
    assert list(workdir_root.iterdir()) == []

    entries = log_entries(project.id)
    assert (LogType.ERROR, "Execution failed (exit code 3)") in entries
    assert (LogType.OUTPUT, "partial\n") in entries
    assert (LogType.ERROR, "boom\n") in entries
    assert entries[-1] == (LogType.INFO, "Execution finished")


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
async def test_signal_terminated_script_reports_failure(
    executor: SandboxedExecutor, store: Any, make_project: Any, log_entries: Any
) -> None:
    project = make_project()
    await put(store, project, "main.py", "import os, signal\nos.kill(os.getpid(), signal.SIGTERM)\n")

    result = await executor.run(project, project.owner_key)

    assert result.success is False
    assert result.exit_code == -signal.SIGTERM
    assert (LogType.ERROR, f"Execution failed (exit code {-signal.SIGTERM})") in log_entries(project.id)


@pytest.mark.asyncio
async def test_uncaught_exception_in_script(executor: SandboxedExecutor, store: Any, make_project: Any) -> None:
    project = make_project()
    await put(store, project, "main.py", "raise ValueError('bad input')\n")

    result = await executor.run(project, project.owner_key)

    assert result.success is False
    assert result.exit_code == 1
    assert "ValueError: bad input" in result.stderr


@pytest.mark.asyncio
async def test_entry_path_with_leading_slash_and_subdirectory(
    executor: SandboxedExecutor, store: Any, make_project: Any
) -> None:
    project = make_project(main_file_path="/src/app.py")
    await put(store, project, "/src/app.py", "print('nested')\n")

    result = await executor.run(project, project.owner_key)

    assert result.stdout == "nested\n"


@pytest.mark.asyncio
async def test_install_failure_does_not_abort_run(
    executor: SandboxedExecutor, store: Any, make_project: Any, workdir_root: Path, log_entries: Any
) -> None:
    project = make_project()
    await put(store, project, "main.py", "print('still running')\n")
    await put(store, project, "requirements.txt", "nonexistent-package-xyz==9.9.9\n")

    fake_pip = [
        sys.executable,
        "-c",
        "import sys; sys.stderr.write('ERROR: No matching distribution found for nonexistent-package-xyz\\n'); sys.exit(1)",
    ]
    with patch.object(executor.installer, "build_command", return_value=fake_pip):
        result = await executor.run(project, project.owner_key)

    assert result.success is True
    assert result.stdout == "still running\n"
    assert list(workdir_root.iterdir()) == []

    entries = log_entries(project.id)
    install_error = next(
        i for i, (t, m) in enumerate(entries) if t == LogType.ERROR and "No matching distribution" in m
    )
    executing = entries.index((LogType.INFO, "Executing program..."))
    assert install_error < executing
    assert (LogType.SUCCESS, "Execution succeeded (exit code 0)") in entries


@pytest.mark.asyncio
async def test_installing_log_precedes_finished_log(
    executor: SandboxedExecutor, store: Any, make_project: Any, log_entries: Any
) -> None:
    project = make_project()
    await put(store, project, "main.py", "print('ok')\n")
    await put(store, project, "requirements.txt", "requests\n")

    fake_pip = [sys.executable, "-c", "import os; print(sorted(os.listdir('.')))"]
    with patch.object(executor.installer, "build_command", return_value=fake_pip):
        await executor.run(project, project.owner_key)

    messages = [m for _, m in log_entries(project.id)]
    installing = messages.index("requirements.txt found, installing dependencies...")
    finished = messages.index("Execution finished")
    assert installing < finished

    details = next(m for m in messages if m.startswith("Install details:"))
    assert "'requirements.txt'" in details
    assert "'main.py'" in details


@pytest.mark.asyncio
async def test_workdir_site_packages_on_pythonpath(
    executor: SandboxedExecutor, store: Any, make_project: Any
) -> None:
    project = make_project()
    await put(
        store,
        project,
        "main.py",
        "import os\nprint(os.environ['PYTHONPATH'].split(os.pathsep)[0])\n",
    )

    result = await executor.run(project, project.owner_key)

    assert result.stdout.strip().endswith(".site-packages")


@pytest.mark.asyncio
async def test_timeout_kills_process(
    executor: SandboxedExecutor, store: Any, make_project: Any, workdir_root: Path, log_entries: Any
) -> None:
    project = make_project()
    await put(store, project, "main.py", "import time\ntime.sleep(30)\n")
    executor.timeout = 0.5

    result = await executor.run(project, project.owner_key)

    assert result.timed_out is True
    assert result.success is False
    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert "exceeded 0.5 seconds" in result.stderr
    assert list(workdir_root.iterdir()) == []
    assert log_entries(project.id)[-1] == (LogType.INFO, "Execution finished")


@pytest.mark.asyncio
async def test_missing_interpreter(executor: SandboxedExecutor, store: Any, make_project: Any, workdir_root: Path) -> None:
    project = make_project()
    await put(store, project, "main.py", "print('x')\n")
    executor.python_executable = str(workdir_root / "no-such-python")

    result = await executor.run(project, project.owner_key)

    assert result.success is False
    assert result.exit_code == LAUNCH_FAILURE_EXIT_CODE
    assert "Failed to launch interpreter" in result.stderr


@pytest.mark.asyncio
async def test_audit_entry_recorded(executor: SandboxedExecutor, store: Any, make_project: Any) -> None:
    project = make_project()
    await put(store, project, "main.py", "print('audited')\n")
    executor.veritas = MagicMock()

    await executor.run(project, project.owner_key)

    executor.veritas.log_pre_execution.assert_called_once_with(b"print('audited')\n", project.id, "python")


@pytest.mark.asyncio
async def test_workdir_removed_when_installer_raises(
    executor: SandboxedExecutor, store: Any, make_project: Any, workdir_root: Path
) -> None:
    project = make_project()
    await put(store, project, "main.py", "print('x')\n")

    with patch.object(executor.installer, "install", side_effect=RuntimeError("installer crashed")):
        with pytest.raises(RuntimeError, match="installer crashed"):
            await executor.run(project, project.owner_key)

    assert list(workdir_root.iterdir()) == []
