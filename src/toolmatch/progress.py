"""Progress events pushed while a batch runs.

A stream always ends with exactly one COMPLETE or ERROR event.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.toolmatch.retrieval.models import RecommendationResult


class ProgressStage(str, Enum):
    STARTED = "started"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STAGES = frozenset({ProgressStage.COMPLETE, ProgressStage.ERROR})


@dataclass(frozen=True)
class ProgressEvent:
    stage: ProgressStage
    progress: float
    message: str
    result: Optional[RecommendationResult] = None
    results: tuple[RecommendationResult, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def to_dict(self) -> dict:
        data = {
            "stage": self.stage.value,
            "progress": round(self.progress, 4),
            "message": self.message,
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.results:
            data["results"] = [r.to_dict() for r in self.results]
        return data
