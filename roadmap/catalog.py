"""Built-in roadmap and loading of roadmap overrides."""

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from config import settings
from contracts import (
    ActionConfig,
    ActionType,
    RoadmapConfig,
    StageConfig,
    TaskConfig,
    VerificationAction,
)
from roadmap.errors import InvalidRoadmapError


logger = logging.getLogger(__name__)


def _upload(label: str, folder: str, analysis: Optional[str] = None, multiple: bool = False) -> VerificationAction:
    return VerificationAction(
        type=ActionType.UPLOAD_FILE,
        label=label,
        config=ActionConfig(target_folder=folder, ai_analysis_type=analysis, allow_multiple=multiple),
    )


def _pilot(label: str, intent: str) -> VerificationAction:
    return VerificationAction(type=ActionType.TALK_TO_PILOT, label=label, config=ActionConfig(intent=intent))


def _form(label: str, form_id: str) -> VerificationAction:
    return VerificationAction(type=ActionType.FORM_INPUT, label=label, config=ActionConfig(form_id=form_id))


DEFAULT_ROADMAP = RoadmapConfig(stages=(
    StageConfig(
        id=0,
        name="Orientation",
        required_tasks=(
            TaskConfig(id="profile_setup", label="Complete Smart Onboarding",
                       action=_pilot("Start Onboarding Chat", "onboarding-intro")),
            TaskConfig(id="inspiration_upload", label="Upload Inspiration",
                       action=_upload("Upload Images", "Inspiration", multiple=True)),
        ),
    ),
    StageConfig(
        id=1,
        name="Financial Foundation",
        required_tasks=(
            TaskConfig(id="lender_path", label="Select Financial Pathway",
                       action=_form("Select Path", "select-lender-type")),
            TaskConfig(id="proof_of_funds", label="Upload Pre-Approval / POF",
                       action=_upload("Upload Financials", "Financials", "pre-approval")),
            TaskConfig(id="hard_budget", label="Define Hard Budget Cap",
                       action=_form("Set Budget", "set-hard-budget")),
        ),
        unlocks_feature="TheLedger",
    ),
    StageConfig(
        id=2,
        name="Land Acquisition",
        required_tasks=(
            TaskConfig(id="land_contract", label="Upload Land Contract/Deed",
                       action=_upload("Upload Contract", "Land", "contract")),
            TaskConfig(id="survey_report", label="Upload Survey/Soil Report",
                       action=_upload("Upload Survey", "Land", "survey")),
            TaskConfig(id="address_confirm", label="Confirm Site Address",
                       action=_form("Confirm Address", "confirm-address")),
        ),
    ),
    StageConfig(
        id=3,
        name="Design & Engineering",
        required_tasks=(
            TaskConfig(id="design_contract", label="Sign Design-Only Agreement",
                       action=_upload("Upload Agreement", "Contracts", "pcs-agreement")),
            TaskConfig(id="floor_plans", label="Finalize Floor Plans",
                       action=_upload("Upload Plans", "Plans", "floor-plan")),
            TaskConfig(id="builder_select", label="Select Builder",
                       action=_pilot("Vet Builders", "vet-builders")),
        ),
        unlocks_feature="TheTeam",
    ),
    StageConfig(
        id=4,
        name="Preconstruction",
        required_tasks=(
            TaskConfig(id="construction_contract", label="Sign Construction Contract",
                       action=_upload("Upload Contract", "Contracts")),
            TaskConfig(id="permit_receipt", label="Verify Permit Submission",
                       action=_upload("Upload Receipt", "Permits")),
            TaskConfig(id="bank_closing", label="Bank Closing Complete",
                       action=_form("Confirm Closing", "confirm-closing")),
        ),
    ),
    StageConfig(
        id=5,
        name="Construction",
        required_tasks=(
            TaskConfig(id="schedule_uploaded", label="Upload Construction Schedule",
                       action=_upload("Upload Schedule", "Schedules")),
            TaskConfig(id="first_draw", label="First Draw Processed",
                       action=_form("Verify Draw", "verify-draw")),
        ),
        unlocks_feature="TheJobsite",
    ),
    StageConfig(
        id=6,
        name="The Summit",
        required_tasks=(
            TaskConfig(id="punch_list", label="Final Walkthrough List",
                       action=_form("Start Punch List", "punch-list")),
            TaskConfig(id="occupancy_permit", label="Upload Occupancy Permit",
                       action=_upload("Upload CO", "Permits")),
        ),
    ),
))


def load_roadmap(path: Optional[Union[str, Path]] = None) -> RoadmapConfig:
    """Load the roadmap table.

    Args:
        path: JSON file with a ``stages`` list. Defaults to
              ``settings.roadmap_config_path``; the built-in roadmap is
              returned when neither is set.

    Returns:
        A validated, immutable RoadmapConfig.

    Raises:
        InvalidRoadmapError: If the file is missing, unreadable or invalid.
    """
    source = Path(path) if path else settings.get_roadmap_config_path()
    if source is None:
        return DEFAULT_ROADMAP

    if not source.is_file():
        raise InvalidRoadmapError(f"Roadmap file not found: {source}")

    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidRoadmapError(f"Could not read roadmap {source}: {e}") from e

    try:
        roadmap = RoadmapConfig.model_validate(data)
    except ValidationError as e:
        raise InvalidRoadmapError(f"Invalid roadmap {source}: {e}") from e

    logger.info("Loaded roadmap with %d stages from %s", len(roadmap.stages), source)
    return roadmap
