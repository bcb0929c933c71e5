"""Pydantic contracts for the roadmap gate.

The static roadmap table and every persisted progress record are typed
through these contracts.
"""

from .roadmap_contracts import (
    ActionType,
    ActionConfig,
    VerificationAction,
    TaskConfig,
    StageConfig,
    RoadmapConfig,
)

from .progress_contracts import (
    StageStatus,
    StageProgress,
    UserProgressRecord,
    ProgressUpdate,
    StageSummary,
)

__all__ = [
    # Roadmap
    "ActionType",
    "ActionConfig",
    "VerificationAction",
    "TaskConfig",
    "StageConfig",
    "RoadmapConfig",
    # Progress
    "StageStatus",
    "StageProgress",
    "UserProgressRecord",
    "ProgressUpdate",
    "StageSummary",
]
