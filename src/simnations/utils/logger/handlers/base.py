"""Abstract base for log sinks fed by the buffered :class:`Logger`."""

from abc import ABC, abstractmethod
from typing import List, Optional

from simnations.utils.logger.config import LogEvent, LoggerConfig


class BaseLogHandler(ABC):
    """Receive batches of formatted log events from a logger."""

    def __init__(self) -> None:
        self._primary_config: Optional[LoggerConfig] = None

    def add_primary_config(self, config: LoggerConfig) -> None:
        """Remember the owning logger's configuration (format, level)."""
        self._primary_config = config

    @abstractmethod
    async def push(self, records: List[LogEvent]) -> None:
        """Persist or forward a batch of log events."""
