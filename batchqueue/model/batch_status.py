"""
Status model for batch requests.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class StatusFlag(str, Enum):
    """
    Processing status of a batch request.

    - Unknown: no queue entry exists for the key
    - Pending: queued, processing has not started
    - InProgress: claimed by a worker
    - Failed: the request could not be completed
    - Completed: processed, the result is available
    """

    UNKNOWN = "Unknown"
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    FAILED = "Failed"
    COMPLETED = "Completed"


# Statuses of rows that are still outstanding work
INCOMPLETE_STATUSES = (StatusFlag.PENDING, StatusFlag.IN_PROGRESS)


@dataclass
class BatchStatus:
    """
    Status of a batch request as exposed to callers.
    Optional attributes are only filled in by queries that know them.
    """

    key: str
    status: StatusFlag
    url: Optional[str] = None
    estimated_time: Optional[int] = None
    started: Optional[int] = None
    position_in_queue: Optional[int] = None
    eta: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert status to dictionary for serialization, omitting unset fields."""
        data: Dict[str, Any] = {"key": self.key, "status": self.status.value}
        if self.url is not None:
            data["url"] = self.url
        if self.position_in_queue is not None:
            data["positionInQueue"] = self.position_in_queue
        if self.eta is not None:
            data["eta"] = self.eta
        if self.started is not None:
            data["started"] = datetime.fromtimestamp(
                self.started / 1000, tz=timezone.utc
            ).isoformat()
        return data
