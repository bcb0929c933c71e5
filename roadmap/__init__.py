"""Roadmap module: stage gating, the built-in roadmap, and its errors."""

from .errors import (
    RoadmapError,
    InvalidStageError,
    UnknownTaskError,
    StageAdvanceError,
    StageLockedError,
    InvalidRoadmapError,
    PersistenceError,
    WriteConflictError,
)
from .catalog import DEFAULT_ROADMAP, load_roadmap
from .gate import StageGate, get_stage_gate

__all__ = [
    "RoadmapError",
    "InvalidStageError",
    "UnknownTaskError",
    "StageAdvanceError",
    "StageLockedError",
    "InvalidRoadmapError",
    "PersistenceError",
    "WriteConflictError",
    "DEFAULT_ROADMAP",
    "load_roadmap",
    "StageGate",
    "get_stage_gate",
]
