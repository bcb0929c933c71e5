"""Progress contracts for the per-user record held by a ProfileStore."""

from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional
from enum import Enum


class StageStatus(str, Enum):
    """Observed status of one stage for one user."""
    LOCKED = "locked"
    ACTIVE = "active"
    COMPLETED = "completed"


class StageProgress(BaseModel):
    """Completion state of a single stage."""
    completed_tasks: List[str] = Field(default_factory=list)
    is_verified: bool = False

    @field_validator('completed_tasks')
    @classmethod
    def dedupe_tasks(cls, v: List[str]) -> List[str]:
        """Drop repeated task ids, keeping first-seen order."""
        return list(dict.fromkeys(v))


class UserProgressRecord(BaseModel):
    """A user's roadmap progress.

    ``current_stage`` is the ceiling on accessible stages; ``None`` means no
    ceiling is recorded. ``version`` increases on every write.
    """
    user_id: str
    current_stage: Optional[int] = Field(default=0, ge=0)
    stage_progress: Dict[int, StageProgress] = Field(default_factory=dict)
    version: int = Field(default=0, ge=0)

    def progress_for(self, stage_id: int) -> StageProgress:
        """Progress entry for a stage, or an empty one if none is stored."""
        return self.stage_progress.get(stage_id) or StageProgress()

    def is_verified(self, stage_id: int) -> bool:
        entry = self.stage_progress.get(stage_id)
        return bool(entry and entry.is_verified)


class ProgressUpdate(BaseModel):
    """Partial update of a progress record; unset fields are left untouched."""
    current_stage: Optional[int] = Field(default=None, ge=0)
    stage_progress: Optional[Dict[int, StageProgress]] = None

    def is_empty(self) -> bool:
        """True when no field was set, i.e. applying it would change nothing."""
        return not self.model_fields_set


class StageSummary(BaseModel):
    """Status and task breakdown of one stage, for display."""
    stage_id: int
    name: str
    status: StageStatus
    completed_tasks: List[str] = Field(default_factory=list)
    remaining_tasks: List[str] = Field(default_factory=list)
    unlocks_feature: Optional[str] = None
