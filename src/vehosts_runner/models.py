# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class ProjectLanguage(str, Enum):
    PYTHON = "python"
    HTML = "html"
    NODEJS = "nodejs"
    TYPESCRIPT = "typescript"
    PROFILE = "profile"


class ProjectStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


class LogType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    OUTPUT = "output"


class RunPhase(str, Enum):
    """Phases of a single execution, in order."""

    FETCHING_ENTRY = "fetching_entry"
    INSTALLING_DEPS = "installing_deps"
    EXECUTING = "executing"
    CLEANING_UP = "cleaning_up"
    DONE = "done"


def normalize_path(path: str) -> str:
    """Returns ``path`` with exactly one leading slash."""
    return "/" + path.lstrip("/")


class Project(BaseModel):
    """A hosted project.

    Attributes:
        id: The project id.
        owner_key: The owner's storage key (first segment of every artifact path).
        slug: The project slug (second segment of every artifact path).
        name: Display name.
        language: The project language.
        main_file_path: In-project path of the entry file.
        status: Lifecycle status.
    """

    id: str
    owner_key: str
    slug: str
    name: str = ""
    language: ProjectLanguage
    main_file_path: str
    status: ProjectStatus = ProjectStatus.STOPPED

    @property
    def entry_path(self) -> str:
        return normalize_path(self.main_file_path)

    @property
    def url_slug(self) -> str:
        return f"{self.owner_key}/{self.slug}"

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Project":
        """Builds a Project from a ``projects`` table row.

        Rows carry ``url_slug`` as ``{owner_key}/{slug}`` and ``main_file``
        for the entry path.
        """
        data = dict(record)
        url_slug = data.pop("url_slug", None)
        if url_slug and ("owner_key" not in data or "slug" not in data):
            owner_key, _, slug = str(url_slug).partition("/")
            data.setdefault("owner_key", owner_key)
            data.setdefault("slug", slug)
        if "main_file" in data:
            data.setdefault("main_file_path", data.pop("main_file"))
        return cls.model_validate(data)


class ProjectFile(BaseModel):
    """A file or directory stored in a project."""

    id: str
    project_id: str
    path: str
    name: str
    is_directory: bool = False
    parent_path: str | None = None
    content: str | None = None

    @model_validator(mode="after")
    def _directories_have_no_content(self) -> "ProjectFile":
        if self.is_directory and self.content is not None:
            raise ValueError(f"Directory {self.path} cannot carry content")
        return self


class ExecutionLogRecord(BaseModel):
    """One immutable console log line.

    Attributes:
        id: Unique record id.
        project_id: The project the record belongs to.
        log_type: One of info, success, error, output.
        message: The log text.
        timestamp: Server-side creation time (UTC).
        sequence: Process-wide creation counter, breaks timestamp ties.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    log_type: LogType
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sequence: int = 0

    def to_record(self) -> dict[str, str]:
        """Returns the ``console_logs`` row shape consumed by the dashboard."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "log_type": self.log_type.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class InstallResult(BaseModel):
    """Outcome of a dependency installation step."""

    ok: bool
    stdout: str = ""
    stderr: str = ""
    skipped: bool = False


class ExecutionResult(BaseModel):
    """Represents the result of running a project's entry script.

    Attributes:
        success: True iff the interpreter exited with code 0.
        stdout: Complete captured standard output.
        stderr: Complete captured standard error.
        exit_code: The platform-reported exit code (negative for signals).
        execution_duration: Wall time of the interpreter process in seconds.
        timed_out: Whether the process was killed for exceeding the deadline.
    """

    success: bool
    stdout: str
    stderr: str
    exit_code: int
    execution_duration: float = 0.0
    timed_out: bool = False


class PreviewDocument(BaseModel):
    """An assembled, self-contained HTML document."""

    html: str
    inlined: list[str] = Field(default_factory=list)


class RunRequest(BaseModel):
    """Body of a run trigger. Accepts the dashboard's camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(min_length=1, validation_alias=AliasChoices("projectId", "project_id"))
    owner_key: str = Field(min_length=1, validation_alias=AliasChoices("ownerKey", "userId", "owner_key"))
    project_slug: str = Field(min_length=1, validation_alias=AliasChoices("projectSlug", "project_slug"))


class RunResponse(BaseModel):
    """Synchronous reply to a run trigger."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    output: str = ""
    error: str = ""
    exit_code: int = Field(default=0, alias="exitCode")

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "RunResponse":
        return cls(
            success=result.success,
            output=result.stdout,
            error=result.stderr,
            exit_code=result.exit_code,
        )
