"""Read-only status view of the economic job for operational endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Union

from simnations.model.economic_job import JobStatus
from simnations.utils.model_parser import model_parser

if TYPE_CHECKING:
    from simnations.scheduler.controller import EconomicJobController

NOT_INITIALIZED = "not_initialized"


def serialize_status(status: JobStatus) -> Dict[str, Any]:
    """Flatten a :class:`JobStatus` into JSON-ready primitives."""
    return model_parser(status)


class StatusReporter:
    """Expose the controller's status snapshot, tolerating a missing controller."""

    def __init__(self, controller: Optional["EconomicJobController"]) -> None:
        self._controller = controller

    @property
    def available(self) -> bool:
        return self._controller is not None

    def snapshot(self) -> Optional[Dict[str, Any]]:
        if self._controller is None:
            return None
        return serialize_status(self._controller.get_status())

    def economic_job_status(self) -> Union[Dict[str, Any], str]:
        """Status dict, or ``"not_initialized"`` when no controller exists."""
        snapshot = self.snapshot()
        return NOT_INITIALIZED if snapshot is None else snapshot
