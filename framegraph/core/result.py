"""
Outcome of pulling a frame from a sink.

Pulling never overloads a single error channel: "nothing yet" and "done
forever" are ordinary outcomes, distinct from each other and from failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from framegraph.core.errors import ProcessingError
from framegraph.core.frame import Frame


class PullStatus(Enum):
    """Status of a pull."""
    PRODUCED = "produced"
    PENDING = "pending"
    END_OF_STREAM = "end_of_stream"
    ERROR = "error"


@dataclass
class PullResult:
    """Result of a pull on a sink."""
    status: PullStatus
    frame: Optional[Frame] = None
    error: Optional[ProcessingError] = None

    @property
    def produced(self) -> bool:
        return self.status is PullStatus.PRODUCED

    @property
    def pending(self) -> bool:
        return self.status is PullStatus.PENDING

    @property
    def end_of_stream(self) -> bool:
        return self.status is PullStatus.END_OF_STREAM

    @property
    def failed(self) -> bool:
        return self.status is PullStatus.ERROR

    @classmethod
    def produced_result(cls, frame: Frame) -> PullResult:
        return cls(status=PullStatus.PRODUCED, frame=frame)

    @classmethod
    def pending_result(cls) -> PullResult:
        return cls(status=PullStatus.PENDING)

    @classmethod
    def end_of_stream_result(cls) -> PullResult:
        return cls(status=PullStatus.END_OF_STREAM)

    @classmethod
    def failure_result(cls, error: ProcessingError) -> PullResult:
        return cls(status=PullStatus.ERROR, error=error)

    def unwrap(self) -> Optional[Frame]:
        """
        Return the frame, or None for Pending and EndOfStream.

        Raises:
            ProcessingError: If the pull failed
        """
        if self.error is not None:
            raise self.error
        return self.frame

    def __repr__(self) -> str:
        if self.produced:
            return f"PullResult(produced, {self.frame!r})"
        if self.failed:
            return f"PullResult(error, {self.error})"
        return f"PullResult({self.status.value})"
