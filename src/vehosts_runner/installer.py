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
from pathlib import Path
from typing import Literal

import anyio
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from vehosts_runner.execution_log import ExecutionLogger
from vehosts_runner.models import InstallResult
from vehosts_runner.utils.logger import logger

SITE_PACKAGES_DIRNAME = ".site-packages"


def site_packages_dir(work_dir: Path) -> Path:
    """Directory that receives packages for workdir-scoped installs."""
    return work_dir / SITE_PACKAGES_DIRNAME


def parse_manifest(text: str, allowed_packages: set[str] | None = None) -> tuple[list[str], list[str]]:
    """Parses a requirements manifest.

    Args:
        text: The manifest content.
        allowed_packages: Optional allowlist of distribution names.

    Returns:
        tuple: The canonical package names, and a list of problems found.
    """
    names: list[str] = []
    problems: list[str] = []
    allowed = {canonicalize_name(p) for p in allowed_packages} if allowed_packages is not None else None

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.split(" #", 1)[0].strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("-"):
            problems.append(f"line {lineno}: pip options are not allowed ({line})")
            continue
        try:
            req = Requirement(line)
        except InvalidRequirement as e:
            problems.append(f"line {lineno}: invalid requirement {line!r}: {e}")
            continue

        name = canonicalize_name(req.name)
        if allowed is not None and name not in allowed:
            problems.append(f"line {lineno}: package {req.name} is not in the allowed list")
            continue
        names.append(name)

    return names, problems


class DependencyInstaller:
    """Installs a project's requirements manifest before execution.

    Installation is best effort: every failure is reported through the
    execution log and the returned InstallResult, never raised.
    """

    def __init__(
        self,
        log: ExecutionLogger,
        python_executable: str,
        scope: Literal["workdir", "user"] = "workdir",
        timeout: float = 300.0,
        allowed_packages: set[str] | None = None,
        requirements_filename: str = "requirements.txt",
    ):
        self.log = log
        self.python_executable = python_executable
        self.scope = scope
        self.timeout = timeout
        self.allowed_packages = allowed_packages
        self.requirements_filename = requirements_filename

    def build_command(self, work_dir: Path) -> list[str]:
        cmd = [
            self.python_executable,
            "-m",
            "pip",
            "install",
            "-r",
            self.requirements_filename,
            "--quiet",
            "--disable-pip-version-check",
            "--no-input",
        ]
        if self.scope == "user":
            cmd.append("--user")
        else:
            cmd.extend(["--target", str(site_packages_dir(work_dir))])
        return cmd

    async def install(self, project_id: str, work_dir: Path, requirements: bytes | None) -> InstallResult:
        """Installs the manifest into the run's private location.

        Args:
            project_id: The project being run, for log records.
            work_dir: The run's scoped working directory.
            requirements: Manifest content, or None when the project has none.

        Returns:
            InstallResult: ``ok`` is False when the installer failed.
        """
        if requirements is None:
            await self.log.info(project_id, "no requirements.txt found")
            return InstallResult(ok=True, skipped=True)

        text = requirements.decode("utf-8", errors="replace")
        await self.log.info(project_id, "requirements.txt found, installing dependencies...")
        await self.log.info(project_id, f"Requested packages:\n{text}")

        names, problems = parse_manifest(text, self.allowed_packages)
        if problems:
            stderr = "\n".join(problems)
            await self.log.error(project_id, f"Dependency installation failed:\n{stderr}")
            return InstallResult(ok=False, stderr=stderr)

        if not names:
            await self.log.info(project_id, "requirements.txt lists no packages")
            return InstallResult(ok=True, skipped=True)

        manifest = work_dir / self.requirements_filename
        manifest.write_bytes(requirements)

        cmd = self.build_command(work_dir)
        logger.info(f"Installing {len(names)} package(s) for project {project_id}")

        env = dict(os.environ)
        env["PIP_DISABLE_PIP_VERSION_CHECK"] = "1"

        try:
            with anyio.fail_after(self.timeout):
                process = await anyio.run_process(cmd, cwd=work_dir, env=env, check=False)
        except TimeoutError:
            stderr = f"Dependency installation exceeded {self.timeout} seconds limit."
            logger.warning(f"pip timed out for project {project_id}")
            await self.log.error(project_id, f"Some dependencies failed to install:\n{stderr}")
            return InstallResult(ok=False, stderr=stderr)
        except OSError as e:
            stderr = f"Failed to launch installer: {e}"
            logger.error(stderr)
            await self.log.error(project_id, f"Some dependencies failed to install:\n{stderr}")
            return InstallResult(ok=False, stderr=stderr)

        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""

        if process.returncode == 0:
            await self.log.success(project_id, "All dependencies installed successfully")
            if stdout.strip():
                await self.log.info(project_id, f"Install details:\n{stdout}")
            return InstallResult(ok=True, stdout=stdout, stderr=stderr)

        logger.error(f"pip exited with {process.returncode} for project {project_id}")
        await self.log.error(project_id, f"Some dependencies failed to install:\n{stderr}")
        if stdout.strip():
            await self.log.info(project_id, stdout)
        return InstallResult(ok=False, stdout=stdout, stderr=stderr)
