"""Orchestrator module - Run control, scheduling, turns, the action gate and pre-flight checks."""

from .collaborators import (
	ActionExecutor,
	ChangeTracker,
	ConversationSession,
	PlanGenerator,
	PreflightChecker,
	SessionFactory,
	ToolCall,
	TurnResponse,
)
from .controller import RunController
from .gate import ActionGate, ActionResult, PendingAction
from .preflight import BasicPreflightChecker, CheckResult, CheckStatus, PreflightResult
from .scheduler import StepScheduler, validate_dependencies
from .state import AgentStatus, RunSnapshot
from .turns import TurnDriver, TurnKind, TurnOutcome

__all__ = [
	"ActionExecutor",
	"ActionGate",
	"ActionResult",
	"AgentStatus",
	"BasicPreflightChecker",
	"ChangeTracker",
	"CheckResult",
	"CheckStatus",
	"ConversationSession",
	"PendingAction",
	"PlanGenerator",
	"PreflightChecker",
	"PreflightResult",
	"RunController",
	"RunSnapshot",
	"SessionFactory",
	"StepScheduler",
	"ToolCall",
	"TurnDriver",
	"TurnKind",
	"TurnOutcome",
	"TurnResponse",
	"validate_dependencies",
]
