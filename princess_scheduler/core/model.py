from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


class StageCategory(str, Enum):
    ONBOARDING = "onboarding"
    RESEARCH = "research"
    STRATEGY = "strategy"
    BRAND_BUILDING = "brand_building"
    BRAND_COLLATERALS = "brand_collaterals"
    BRAND_ACTIVATION = "brand_activation"
    EMPLOYER_BRANDING = "employer_branding"
    PROJECT_CLOSURE = "project_closure"


class StageStatus(str, Enum):
    NOT_READY = "not_ready"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


# Older project data still carries the pre-rename status.
STATUS_ALIASES: dict[str, StageStatus] = {"not_started": StageStatus.NOT_READY}


@dataclass(frozen=True)
class Stage:
    id: str
    number_index: int
    name: str
    category: StageCategory
    status: StageStatus
    start_date: date
    end_date: date
    dependencies: list[str] = field(default_factory=list)

    is_deliverable: bool = False
    assigned_to: Optional[str] = None

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def is_completed(self) -> bool:
        return self.status is StageStatus.COMPLETED


@dataclass(frozen=True)
class StageDocument:
    schema_version: str
    stages: list[Stage]
    project: Optional[str] = None
    deadline: Optional[date] = None
