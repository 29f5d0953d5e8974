from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class StageError(Exception):
    """Base error envelope. The CLI prints these rather than raw tracebacks."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<stages>"
        return f"{loc}: {self.code}: {self.message}"


class StageLoadError(StageError):
    pass


class StageValidationError(StageError):
    pass


class SchedulingError(StageError):
    """Fatal failures raised by the graph and the schedule engine."""


class CycleDetected(SchedulingError):
    pass


class InvalidStageData(SchedulingError):
    pass


class InvalidMove(SchedulingError):
    pass


class StaleGraph(SchedulingError):
    pass


class MoveRejected(SchedulingError):
    pass
