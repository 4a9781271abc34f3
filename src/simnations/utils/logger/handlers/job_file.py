"""Log handler that writes service and per-pass output to rotating files."""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal

from simnations.utils.logger.config import LogEvent
from simnations.utils.logger.handlers.base import BaseLogHandler

ROTATION_PATTERNS = {
    "daily": "%Y-%m-%d",
    "hourly": "%Y%m%d %H:00:00",
    "per_minute": "%Y%m%d %H:%M:00",
    "per_second": "%Y%m%d %H:%M:%S",
}


class JobRotatingFileHandler(BaseLogHandler):
    """Write buffered log events to rotating log files grouped by prefix."""

    def __init__(
        self,
        base_dir: str,
        filename_prefix: str = "",
        create: bool = True,
        rotation: Literal["daily", "hourly", "per_minute", "per_second"] = "daily",
    ) -> None:
        """Initialise the handler with target directory and rotation scheme.

        :param base_dir: Base directory where log files are written.
        :param filename_prefix: Optional prefix (subdirectory) for log files.
        :param create: Whether to create the directory if missing.
        :param rotation: Frequency granularity for rotating filenames.
        :raises ValueError: If ``rotation`` is not a known granularity.
        """
        super().__init__()

        self.base_dir = Path(base_dir)
        self.filename_prefix = filename_prefix

        if create:
            self.base_dir.mkdir(parents=True, exist_ok=True)

        if rotation not in ROTATION_PATTERNS:
            raise ValueError(f"Unsupported rotation: {rotation}")
        self._pattern = ROTATION_PATTERNS[rotation]

    def _get_current_filepath(self) -> str:
        """Generate a log file path for the current rotation window."""
        pattern = datetime.now(timezone.utc).strftime(self._pattern)
        filename = f"{pattern}.log"

        if self.filename_prefix:
            # logs/economic_update/2025-08-04.log
            return str(self.base_dir / self.filename_prefix / filename)
        return str(self.base_dir / filename)

    async def push(self, records: List[LogEvent]) -> None:
        """Append log records to the current rotation file.

        :param records: Buffered log events awaiting persistence.
        """
        if not records:
            return
        combined_logs = "\n".join([ev.text for ev in records]) + "\n"
        filepath = self._get_current_filepath()

        os.makedirs(os.path.dirname(filepath), exist_ok=True)

        with open(filepath, "a", encoding="utf-8") as file:
            file.write(combined_logs)
            file.flush()
