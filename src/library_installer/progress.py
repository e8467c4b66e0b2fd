"""Install progress narration.

Each request owns one ProgressReporter. The reporter records events in order
and forwards each to the caller's sink. The sink is best-effort: a failing
sink is logged and never fails the install.
"""

import logging
from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel
from pydantic import ConfigDict

logger = logging.getLogger(__name__)


class ProgressKind(str, Enum):
    BEGIN = "begin"
    MESSAGE = "message"
    COMPLETE = "complete"


class ProgressEvent(BaseModel):
    """One step of an install narrative."""

    model_config = ConfigDict(frozen=True)

    kind: ProgressKind
    name: str = ""
    message: str = ""
    completed: bool = False


class ProgressReporter:
    """
    Append-only progress narrator for a single install request.

    At most one complete event per reporter, and nothing after it. Failure
    paths never call complete(); errors travel through exceptions.

    Example:
        >>> reporter = ProgressReporter(sink=print)
        >>> reporter.begin("Installing Servo@1.1.0")
        >>> reporter.complete("Installed Servo@1.1.0")
        >>> reporter.completed
        True
    """

    def __init__(self, sink: Callable[[ProgressEvent], None] | None = None):
        self.sink = sink
        self.events: list[ProgressEvent] = []

    @property
    def completed(self) -> bool:
        return bool(self.events) and self.events[-1].completed

    def begin(self, name: str) -> None:
        self._emit(ProgressEvent(kind=ProgressKind.BEGIN, name=name))

    def message(self, message: str) -> None:
        self._emit(ProgressEvent(kind=ProgressKind.MESSAGE, message=message))

    def complete(self, message: str) -> None:
        self._emit(ProgressEvent(kind=ProgressKind.COMPLETE, message=message, completed=True))

    def _emit(self, event: ProgressEvent) -> None:
        if self.completed:
            raise RuntimeError(f"Progress already completed, cannot emit {event.kind.value} event")

        self.events.append(event)

        if self.sink is None:
            return
        try:
            self.sink(event)
        except Exception as e:
            logger.warning(f"Progress sink failed on {event.kind.value} event: {e}")
