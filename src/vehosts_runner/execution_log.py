# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

import itertools
from datetime import datetime, timedelta, timezone

from vehosts_runner.metadata import ProjectMetadataStore
from vehosts_runner.models import ExecutionLogRecord, LogType
from vehosts_runner.utils.logger import logger

_LEVELS = {
    LogType.INFO: "INFO",
    LogType.SUCCESS: "SUCCESS",
    LogType.ERROR: "ERROR",
    LogType.OUTPUT: "INFO",
}


class ExecutionLogger:
    """Appends console log records for the dashboard.

    Every record is written before ``emit`` returns, so records emitted by
    one run are persisted in call order. Timestamps issued by one logger are
    strictly increasing.
    """

    def __init__(self, store: ProjectMetadataStore):
        self.store = store
        self._sequence = itertools.count(1)
        self._last_timestamp: datetime | None = None

    def _next_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    async def emit(self, project_id: str, log_type: LogType, message: str) -> ExecutionLogRecord:
        """Writes one log record.

        Args:
            project_id: The project the record belongs to.
            log_type: The record type.
            message: The log text.

        Returns:
            ExecutionLogRecord: The persisted record.
        """
        record = ExecutionLogRecord(
            project_id=project_id,
            log_type=log_type,
            message=message,
            timestamp=self._next_timestamp(),
            sequence=next(self._sequence),
        )
        logger.bind(project_id=project_id).log(_LEVELS[log_type], "[{}] {}", log_type.value, message)
        await self.store.append_log(record)
        return record

    async def info(self, project_id: str, message: str) -> ExecutionLogRecord:
        return await self.emit(project_id, LogType.INFO, message)

    async def success(self, project_id: str, message: str) -> ExecutionLogRecord:
        return await self.emit(project_id, LogType.SUCCESS, message)

    async def error(self, project_id: str, message: str) -> ExecutionLogRecord:
        return await self.emit(project_id, LogType.ERROR, message)

    async def output(self, project_id: str, message: str) -> ExecutionLogRecord:
        return await self.emit(project_id, LogType.OUTPUT, message)
