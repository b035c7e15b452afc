# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

"""
vehosts-runner
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import RunnerConfig
from .execution_log import ExecutionLogger
from .executor import SandboxedExecutor
from .installer import DependencyInstaller
from .models import ExecutionLogRecord, ExecutionResult, LogType, PreviewDocument, Project, ProjectStatus
from .preview import PreviewAssembler
from .service import ProjectService, ProjectServiceAsync
from .storage import ArtifactStore, LocalArtifactStore, S3ArtifactStore

__all__ = [
    "ArtifactStore",
    "DependencyInstaller",
    "ExecutionLogRecord",
    "ExecutionLogger",
    "ExecutionResult",
    "LocalArtifactStore",
    "LogType",
    "PreviewAssembler",
    "PreviewDocument",
    "Project",
    "ProjectService",
    "ProjectServiceAsync",
    "ProjectStatus",
    "RunnerConfig",
    "S3ArtifactStore",
    "SandboxedExecutor",
]
