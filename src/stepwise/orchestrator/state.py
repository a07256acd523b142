"""Run status and the snapshot handed to hosts and the archive."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..plans.models import PlanItem
from ..transcript import TranscriptEntry
from .gate import PendingAction
from .preflight import PreflightResult


class AgentStatus(str, Enum):
	"""Where a run is in its lifecycle."""
	IDLE = "idle"
	PLANNING = "planning"
	PLAN_REVIEW = "plan_review"
	THINKING = "thinking"
	EXECUTING = "executing"
	ACTION_REVIEW = "action_review"
	SUMMARIZING = "summarizing"
	AWAITING_CHANGES_REVIEW = "awaiting_changes_review"
	COMPLETED = "completed"
	FAILED = "failed"


# Statuses from which a new goal may be started
RESTARTABLE_STATUSES = frozenset({
	AgentStatus.IDLE,
	AgentStatus.COMPLETED,
	AgentStatus.FAILED,
	AgentStatus.AWAITING_CHANGES_REVIEW,
})


class RunSnapshot(BaseModel):
	"""Point-in-time copy of a run."""
	run_id: Optional[str] = Field(default=None)
	goal: str = Field(default="")
	status: AgentStatus = Field(default=AgentStatus.IDLE)
	plan: list[PlanItem] = Field(default_factory=list)
	pending_action: Optional[PendingAction] = Field(default=None)
	preflight: Optional[PreflightResult] = Field(default=None, description="Pre-flight checks for the pending action")
	transcript: list[TranscriptEntry] = Field(default_factory=list)
	halt_reason: Optional[str] = Field(default=None, description="Why the run stopped, if it did not complete")
	touched_paths: list[str] = Field(default_factory=list)
	started_at: Optional[str] = Field(default=None)
	ended_at: Optional[str] = Field(default=None)
