"""
QueueEntry model: one persisted row of the queue table.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .batch_request import BatchRequest
from .batch_status import BatchStatus, StatusFlag


@dataclass(frozen=True)
class QueueEntry:
    """
    A single generation of a request in the queue table.
    ``index`` is assigned by the database and orders all entries.
    """

    index: int
    key: str
    status: StatusFlag
    request_uri: str
    params: Optional[str] = None
    estimated_time: Optional[int] = None
    start_time: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "QueueEntry":
        """
        Create an entry from a database row.
        Column names are accepted in the lower case form PostgreSQL returns.

        :param row: Mapping of column name to value, e.g. from ``dict_row``.
        :returns: QueueEntry instance.
        """
        return cls(
            index=row["index"],
            key=row["key"],
            status=StatusFlag(row["status"]),
            request_uri=row["requesturi"],
            params=row.get("params"),
            estimated_time=row.get("estimatedtime"),
            start_time=row.get("starttime"),
        )

    def as_batch_status(self) -> BatchStatus:
        """Project the entry to the status exposed to callers."""
        return BatchStatus(
            key=self.key,
            status=self.status,
            estimated_time=self.estimated_time,
            started=self.start_time,
        )

    def as_batch_request(self) -> BatchRequest:
        """Rebuild the request payload stored in the entry."""
        return BatchRequest.from_parameter_string(
            self.request_uri,
            self.params,
            estimated_time=self.estimated_time,
            key=self.key,
        )

    def is_failed(self) -> bool:
        return self.status == StatusFlag.FAILED

    def is_finished(self) -> bool:
        return self.status in (StatusFlag.COMPLETED, StatusFlag.FAILED)
