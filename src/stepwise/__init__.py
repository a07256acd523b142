"""stepwise - supervised, step-by-step execution of planned goals."""

from .orchestrator import AgentStatus, RunController, RunSnapshot
from .plans import PlanItem, PlanItemStatus, PlanModel
from .transcript import EntryType, TranscriptEntry, TranscriptLog

__version__ = "0.1.0"

__all__ = [
	"AgentStatus",
	"EntryType",
	"PlanItem",
	"PlanItemStatus",
	"PlanModel",
	"RunController",
	"RunSnapshot",
	"TranscriptEntry",
	"TranscriptLog",
]
