"""
Action Gate - holds at most one proposed tool call until a human decides.

Nothing leaves the gate for execution without an explicit take(). The
supervisor can edit the arguments while the proposal waits.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..errors import ActionGateError, ExecutionError
from .collaborators import ActionExecutor, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_AGENT_ROLE = "coder"


class PendingAction(BaseModel):
	"""A tool call waiting for approval."""
	id: str = Field(description="Call id from the conversation session")
	tool_name: str
	args: dict[str, Any] = Field(default_factory=dict)
	agent_role: str = Field(default=DEFAULT_AGENT_ROLE, description="Worker the active step is assigned to")


@dataclass
class ActionResult:
	"""Outcome of running an approved action."""
	action: PendingAction
	text: str
	ok: bool


class ActionGate:
	"""Single-slot holding area for proposed actions."""

	def __init__(self):
		self._pending: Optional[PendingAction] = None

	@property
	def pending(self) -> Optional[PendingAction]:
		return self._pending

	@property
	def is_empty(self) -> bool:
		return self._pending is None

	def propose(self, tool_call: ToolCall, agent_role: Optional[str] = None) -> PendingAction:
		"""
		Hold a tool call for review.

		Raises:
			ActionGateError: If a proposal is already waiting
		"""
		if self._pending is not None:
			raise ActionGateError(
				f"Action {self._pending.tool_name} is still pending, cannot propose {tool_call.name}"
			)
		self._pending = PendingAction(
			id=tool_call.id,
			tool_name=tool_call.name,
			args=dict(tool_call.args or {}),
			agent_role=agent_role or DEFAULT_AGENT_ROLE,
		)
		logger.info(f"Action proposed: {tool_call.name} ({self._pending.agent_role})")
		return self._pending

	def edit_args(self, new_args: dict[str, Any]) -> bool:
		"""Replace the pending action's arguments. No-op when the gate is empty."""
		if self._pending is None:
			return False
		self._pending = self._pending.model_copy(update={"args": dict(new_args or {})})
		logger.debug(f"Arguments edited for {self._pending.tool_name}")
		return True

	def take(self) -> Optional[PendingAction]:
		"""Remove the pending action so it can be run. The gate is empty afterwards."""
		action = self._pending
		self._pending = None
		if action is not None:
			logger.info(f"Action approved: {action.tool_name}")
		return action

	def reject(self) -> Optional[PendingAction]:
		"""Drop the pending action without running it."""
		action = self._pending
		self._pending = None
		if action is not None:
			logger.info(f"Action rejected: {action.tool_name}")
		return action

	def clear(self) -> None:
		self._pending = None


async def execute_action(
	action: PendingAction,
	executor: ActionExecutor,
	timeout: Optional[float] = None,
) -> ActionResult:
	"""
	Run an approved action.

	Executor failures don't propagate: they come back as a failed
	ActionResult whose text describes the error.
	"""
	try:
		coro = executor.execute(action.tool_name, dict(action.args))
		if timeout is not None:
			text = await asyncio.wait_for(coro, timeout)
		else:
			text = await coro
		return ActionResult(action=action, text="" if text is None else str(text), ok=True)
	except asyncio.TimeoutError:
		logger.warning(f"Tool {action.tool_name} timed out after {timeout}s")
		return ActionResult(
			action=action,
			text=f"Error executing {action.tool_name}: timed out after {timeout}s",
			ok=False,
		)
	except ExecutionError as e:
		logger.warning(f"Tool {action.tool_name} failed: {e}")
		return ActionResult(action=action, text=f"Error executing {action.tool_name}: {e}", ok=False)
	except Exception as e:
		logger.error(f"Tool {action.tool_name} raised {type(e).__name__}: {e}")
		return ActionResult(action=action, text=f"Error executing {action.tool_name}: {e}", ok=False)
