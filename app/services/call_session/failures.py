"""Observable record of contained, non-fatal pipeline failures."""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, List, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepFailure:
    """A pipeline step that failed without ending the request."""

    call_id: str
    step: str
    error: BaseException
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def description(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


class FailureObserver(Protocol):
    def record(self, failure: StepFailure) -> None:
        ...


class LoggingFailureObserver:
    """Logs each failure and keeps the most recent ones for inspection."""

    def __init__(self, max_recent: int = 200):
        self._recent: Deque[StepFailure] = deque(maxlen=max_recent)

    def record(self, failure: StepFailure) -> None:
        self._recent.append(failure)
        logger.error(
            f"[FAILURE] CallId: {failure.call_id}, Step: {failure.step}, "
            f"Error: {failure.description}",
            exc_info=failure.error,
        )

    @property
    def recent(self) -> List[StepFailure]:
        return list(self._recent)

    def for_call(self, call_id: str) -> List[StepFailure]:
        return [f for f in self._recent if f.call_id == call_id]
