"""
Collaborator contracts.

The controller never talks to a model or a tool directly. It goes
through these protocols, which hosts implement with whatever planner,
chat backend and tool runner they have.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from ..plans.models import PlanItem
from .preflight import PreflightResult


@dataclass
class ToolCall:
	"""A tool invocation requested by the conversation session."""
	id: str
	name: str
	args: dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnResponse:
	"""One reply from the conversation session."""
	text: str = ""
	tool_calls: list[ToolCall] = field(default_factory=list)

	@property
	def first_tool_call(self) -> Optional[ToolCall]:
		return self.tool_calls[0] if self.tool_calls else None


@runtime_checkable
class PlanGenerator(Protocol):
	"""Turns a goal into an ordered list of plan items."""

	async def generate_plan(self, goal: str, context_summary: str) -> list[PlanItem]:
		...


@runtime_checkable
class ConversationSession(Protocol):
	"""A stateful chat with a model that can request tools."""

	async def send(self, text: str) -> TurnResponse:
		...

	async def send_tool_result(self, call_id: str, result_text: str) -> TurnResponse:
		...


@runtime_checkable
class SessionFactory(Protocol):
	"""Opens a conversation session seeded with run instructions."""

	async def open_session(self, instructions: str) -> ConversationSession:
		...


@runtime_checkable
class ActionExecutor(Protocol):
	"""Runs an approved tool call and returns its textual result."""

	async def execute(self, tool_name: str, args: dict[str, Any]) -> str:
		...


@runtime_checkable
class ChangeTracker(Protocol):
	"""Reports whether a run left staged changes that need a human look."""

	def has_pending_changes(self) -> bool:
		...


@runtime_checkable
class PreflightChecker(Protocol):
	"""Inspects a proposed action before it is approved. None means nothing to report."""

	async def check(self, tool_name: str, args: dict[str, Any]) -> Optional[PreflightResult]:
		...
