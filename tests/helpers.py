"""Shared fakes for the collaborators a RunController talks to."""

import asyncio
from typing import Any, Optional

from stepwise.errors import ExecutionError
from stepwise.orchestrator.collaborators import ToolCall, TurnResponse
from stepwise.plans.models import PlanItem


def make_items(*rows: tuple) -> list[PlanItem]:
	"""Build plan items from (id, deps) tuples, titled S<id>."""
	items = []
	for row in rows:
		item_id, deps = row[0], row[1] if len(row) > 1 else []
		items.append(PlanItem(
			id=str(item_id),
			title=f"S{item_id}",
			description=f"Do step {item_id}",
			dependencies=[str(d) for d in deps],
		))
	return items


def tool(name: str, call_id: str = "call-1", **args: Any) -> TurnResponse:
	"""A reply that requests one tool call."""
	return TurnResponse(text="", tool_calls=[ToolCall(id=call_id, name=name, args=args)])


def say(text: str) -> TurnResponse:
	"""A reply with text only."""
	return TurnResponse(text=text)


class FakePlanner:
	"""Returns a fixed plan, or raises."""

	def __init__(self, items: Optional[list] = None, error: Optional[Exception] = None):
		self.items = items if items is not None else []
		self.error = error
		self.calls: list[tuple[str, str]] = []

	async def generate_plan(self, goal: str, context_summary: str) -> list:
		self.calls.append((goal, context_summary))
		if self.error:
			raise self.error
		return self.items


class BlockingPlanner:
	"""Never returns until released, to exercise cancellation."""

	def __init__(self, items: list):
		self.items = items
		self.release = asyncio.Event()
		self.started = asyncio.Event()
		self.cancelled = False

	async def generate_plan(self, goal: str, context_summary: str) -> list:
		self.started.set()
		try:
			await self.release.wait()
		except asyncio.CancelledError:
			self.cancelled = True
			raise
		return self.items


class ScriptedSession:
	"""Replies from a script; says "Step complete." once the script runs out."""

	def __init__(self, replies: Optional[list[TurnResponse]] = None):
		self.replies = list(replies or [])
		self.sent: list[str] = []
		self.tool_results: list[tuple[str, str]] = []

	def _next(self) -> TurnResponse:
		if self.replies:
			reply = self.replies.pop(0)
			if isinstance(reply, Exception):
				raise reply
			return reply
		return say("Step complete.")

	async def send(self, text: str) -> TurnResponse:
		self.sent.append(text)
		return self._next()

	async def send_tool_result(self, call_id: str, result_text: str) -> TurnResponse:
		self.tool_results.append((call_id, result_text))
		return self._next()


class FakeSessionFactory:
	"""Hands out one prepared session and remembers the instructions."""

	def __init__(self, session: Optional[ScriptedSession] = None, error: Optional[Exception] = None):
		self.session = session or ScriptedSession()
		self.error = error
		self.instructions: list[str] = []

	async def open_session(self, instructions: str) -> ScriptedSession:
		self.instructions.append(instructions)
		if self.error:
			raise self.error
		return self.session


class FakeExecutor:
	"""Records executed calls and returns canned results."""

	def __init__(self, results: Optional[dict[str, str]] = None, fail: Optional[set[str]] = None):
		self.results = results or {}
		self.fail = fail or set()
		self.executed: list[tuple[str, dict]] = []

	async def execute(self, tool_name: str, args: dict[str, Any]) -> str:
		self.executed.append((tool_name, args))
		if tool_name in self.fail:
			raise ExecutionError(f"{tool_name} blew up", tool_name=tool_name)
		return self.results.get(tool_name, f"{tool_name} ok")


class FakeChangeTracker:
	def __init__(self, pending: bool = True):
		self.pending = pending

	def has_pending_changes(self) -> bool:
		return self.pending
