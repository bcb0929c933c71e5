"""Roadmap contracts: the static stage/task table."""

from pydantic import BaseModel, Field, model_validator
from typing import Dict, List, Optional, Tuple
from enum import Enum


class ActionType(str, Enum):
    """How the UI lets the user satisfy a task."""
    UPLOAD_FILE = "UPLOAD_FILE"
    TALK_TO_PILOT = "TALK_TO_PILOT"
    FORM_INPUT = "FORM_INPUT"


class ActionConfig(BaseModel):
    """Parameters for a verification action; which keys apply depends on the type."""
    target_folder: Optional[str] = Field(None, description="Vault folder for uploads")
    ai_analysis_type: Optional[str] = Field(None, description="Document analysis to run on uploads")
    intent: Optional[str] = Field(None, description="Assistant intent for chat actions")
    form_id: Optional[str] = Field(None, description="Form to open for form input")
    allow_multiple: bool = Field(default=False, description="Whether several uploads are accepted")

    model_config = {"frozen": True}


class VerificationAction(BaseModel):
    """Advisory UI metadata attached to a task."""
    type: ActionType
    label: str
    config: ActionConfig = Field(default_factory=ActionConfig)

    model_config = {"frozen": True}


class TaskConfig(BaseModel):
    """A prerequisite action within a stage."""
    id: str = Field(..., min_length=1, description="Task id, unique within its stage")
    label: str
    action: Optional[VerificationAction] = None

    model_config = {"frozen": True}


class StageConfig(BaseModel):
    """One sequential phase of the roadmap."""
    id: int = Field(..., ge=0)
    name: str
    required_tasks: Tuple[TaskConfig, ...] = Field(default_factory=tuple)
    unlocks_feature: Optional[str] = Field(
        None, description="Feature key that becomes visible once this stage unlocks"
    )

    model_config = {"frozen": True}

    @model_validator(mode='after')
    def validate_unique_task_ids(self) -> 'StageConfig':
        """Task ids must be unique within a stage."""
        seen = set()
        for task in self.required_tasks:
            if task.id in seen:
                raise ValueError(f"Duplicate task id '{task.id}' in stage {self.id}")
            seen.add(task.id)
        return self

    @property
    def task_ids(self) -> List[str]:
        return [t.id for t in self.required_tasks]


class RoadmapConfig(BaseModel):
    """The ordered roadmap. Stage ids are contiguous from 0."""
    stages: Tuple[StageConfig, ...] = Field(..., min_length=1)

    model_config = {"frozen": True}

    @model_validator(mode='after')
    def validate_stage_ids(self) -> 'RoadmapConfig':
        """Stages must be listed in order with ids 0..N and no gaps."""
        ids = [s.id for s in self.stages]
        if ids != list(range(len(ids))):
            raise ValueError(f"Stage ids must be contiguous from 0, got {ids}")

        features = [s.unlocks_feature for s in self.stages if s.unlocks_feature]
        if len(features) != len(set(features)):
            raise ValueError(f"Feature keys must be unique across stages, got {features}")
        return self

    @property
    def final_stage_id(self) -> int:
        return len(self.stages) - 1

    def has_stage(self, stage_id: int) -> bool:
        return 0 <= stage_id < len(self.stages)

    def get_stage(self, stage_id: int) -> Optional[StageConfig]:
        """Get a stage by id, or None if it is not configured."""
        if not self.has_stage(stage_id):
            return None
        return self.stages[stage_id]

    def required_task_ids(self, stage_id: int) -> List[str]:
        stage = self.get_stage(stage_id)
        return stage.task_ids if stage else []

    def feature_thresholds(self) -> Dict[str, int]:
        """Map each feature key to the stage that unlocks it."""
        return {s.unlocks_feature: s.id for s in self.stages if s.unlocks_feature}
