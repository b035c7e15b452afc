# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from vehosts_runner.exceptions import ProjectBusyError
from vehosts_runner.utils.logger import logger


@dataclass
class RunSlot:
    project_id: str
    owner_key: str
    started_at: float


class ProjectRunGuard:
    """Admits at most one run per project at a time.

    A second run for a busy project is rejected immediately rather than
    queued, so two runs never interleave their console logs. Runs for
    different projects do not contend.
    """

    def __init__(self) -> None:
        self.active: dict[str, RunSlot] = {}

    def is_running(self, project_id: str) -> bool:
        return project_id in self.active

    @asynccontextmanager
    async def acquire(self, project_id: str, owner_key: str) -> AsyncIterator[RunSlot]:
        """Claims the run slot for ``project_id`` for the duration of the block.

        Raises:
            ProjectBusyError: If another run of the project is in progress.
        """
        # Check and claim happen without an await in between.
        if project_id in self.active:
            logger.warning(f"Rejected concurrent run of project {project_id}")
            raise ProjectBusyError(project_id)

        slot = RunSlot(project_id=project_id, owner_key=owner_key, started_at=time.time())
        self.active[project_id] = slot
        try:
            yield slot
        finally:
            self.active.pop(project_id, None)
            logger.debug(f"Released run slot for project {project_id} after {time.time() - slot.started_at:.2f}s")
