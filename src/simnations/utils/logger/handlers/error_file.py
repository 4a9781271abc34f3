"""Handler that isolates error-level logs into dedicated files."""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal

from simnations.utils.logger.config import LogEvent, LogLevel
from simnations.utils.logger.handlers.base import BaseLogHandler
from simnations.utils.logger.handlers.job_file import ROTATION_PATTERNS


class ErrorFileHandler(BaseLogHandler):
    """Persist only error and higher severity messages to rotating files."""

    def __init__(
        self,
        base_dir: str,
        filename_prefix: str = "",
        create: bool = True,
        rotation: Literal["daily", "hourly", "per_minute", "per_second"] = "daily",
    ) -> None:
        super().__init__()
        self.base_dir = Path(base_dir)
        self.filename_prefix = filename_prefix
        if create:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._pattern = ROTATION_PATTERNS[rotation]

    def _get_current_filepath(self) -> str:
        pattern = datetime.now(timezone.utc).strftime(self._pattern)
        filename = f"{pattern}.error.log"
        if self.filename_prefix:
            return str(self.base_dir / self.filename_prefix / filename)
        return str(self.base_dir / filename)

    async def push(self, records: List[LogEvent]) -> None:
        """Append only error-or-higher events to the error log file.

        :param records: Buffered log events awaiting persistence.
        """

        errors = [ev.text for ev in records if ev.level.value >= LogLevel.ERROR.value]
        if not errors:
            return
        path = self._get_current_filepath()
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n".join(errors))
            f.write("\n")
            f.flush()
