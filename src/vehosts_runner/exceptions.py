# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

"""Error types raised by the runner.

Each error also derives from the builtin that callers would otherwise catch
(``FileNotFoundError``, ``LookupError``, ``RuntimeError``).
"""


class VeHostsError(Exception):
    """Base class for all runner errors."""


class ArtifactNotFoundError(VeHostsError, FileNotFoundError):
    """The artifact store has no object at the requested key."""

    def __init__(self, key: str):
        super().__init__(f"Artifact not found: {key}")
        self.key = key


class EntryFileNotFoundError(VeHostsError, FileNotFoundError):
    """The project's main file is missing from the artifact store."""

    def __init__(self, project_id: str, key: str):
        super().__init__(f"Main file not found for project {project_id}: {key}")
        self.project_id = project_id
        self.key = key


class ProjectNotFoundError(VeHostsError, LookupError):
    """No project record exists for the given id."""

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class PreviewNotRunningError(VeHostsError, RuntimeError):
    """Preview requested for a project whose status is not ``running``."""

    def __init__(self, project_id: str, status: str):
        super().__init__(f"Project {project_id} is offline (status: {status})")
        self.project_id = project_id
        self.status = status


class PreviewEntryMissingError(VeHostsError, FileNotFoundError):
    """The HTML entry file for a preview is missing."""

    def __init__(self, project_id: str, key: str):
        super().__init__(f"Main file missing for preview of project {project_id}: {key}")
        self.project_id = project_id
        self.key = key


class ProjectBusyError(VeHostsError, RuntimeError):
    """A run for this project is already in progress."""

    def __init__(self, project_id: str):
        super().__init__(f"Project {project_id} is already running a job")
        self.project_id = project_id


class MetadataStoreError(VeHostsError, RuntimeError):
    """The project metadata backend rejected or failed a request."""


class InvalidArtifactPathError(VeHostsError, ValueError):
    """A storage path would leave its ``{owner_key}/{project_slug}`` prefix."""

    def __init__(self, path: str):
        super().__init__(f"Path escapes the project: {path}")
        self.path = path
