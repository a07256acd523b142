"""
Run Controller - drives a goal from planning to completion.

Responsibilities:
- Acquire a plan and hold it for review
- Walk the approved plan step by step through the turn driver
- Stop at the action gate until the supervisor decides, with pre-flight
  results on the pending action when a checker is configured
- Contain failures: planning and turn errors end the run, tool errors don't
- Cancel in-flight work on reset

The controller is the only writer of the run status.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from ..config import RunSettings
from ..errors import (
	OrchestratorError,
	PlanningError,
	PlanValidationError,
	RejectedAction,
	RunCancelled,
	TurnError,
)
from ..plans.models import PlanItem, PlanItemStatus, PlanModel
from ..transcript import EntryType, TranscriptListener, TranscriptLog
from .collaborators import (
	ActionExecutor,
	ChangeTracker,
	ConversationSession,
	PlanGenerator,
	PreflightChecker,
	SessionFactory,
)
from .gate import ActionGate, PendingAction, execute_action
from .preflight import PreflightResult
from .scheduler import StepScheduler, validate_dependencies
from .state import RESTARTABLE_STATUSES, AgentStatus, RunSnapshot
from .turns import (
	TurnDriver,
	TurnKind,
	TurnOutcome,
	build_declined_message,
	build_session_instructions,
)

if TYPE_CHECKING:
	from ..archive import TranscriptArchive

logger = logging.getLogger(__name__)

COMPLETION_MESSAGE = "All steps completed successfully."
REJECTION_MESSAGE = "Action rejected by user."

# Argument names treated as file paths the run has touched
PATH_ARG_KEYS = ("path", "file_path", "filePath")


class RunController:
	"""
	State machine for one orchestrated run at a time.

	Every public operation checks the current status first and does
	nothing (returning False) when it doesn't apply, so hosts can wire
	buttons straight to these methods.

	Usage:
		controller = RunController(planner, sessions, executor)
		await controller.start("Add a health check endpoint")
		await controller.approve_plan()
		while controller.status == AgentStatus.ACTION_REVIEW:
			await controller.approve_action()
	"""

	def __init__(
		self,
		planner: PlanGenerator,
		session_factory: SessionFactory,
		executor: ActionExecutor,
		settings: Optional[RunSettings] = None,
		change_tracker: Optional[ChangeTracker] = None,
		archive: Optional["TranscriptArchive"] = None,
		on_status_change: Optional[Callable[[AgentStatus, AgentStatus], None]] = None,
		preflight: Optional[PreflightChecker] = None,
	):
		"""
		Initialize the controller.

		Args:
			planner: Produces the plan for a goal
			session_factory: Opens the conversation session at plan approval
			executor: Runs approved tool calls
			settings: Run settings, defaults when omitted
			change_tracker: Reports staged changes left by a finished run
			archive: Stores finished runs for later inspection
			on_status_change: Callback(old_status, new_status)
			preflight: Checks each proposed action before it is reviewed
		"""
		self.planner = planner
		self.session_factory = session_factory
		self.executor = executor
		self.settings = settings or RunSettings()
		self.change_tracker = change_tracker
		self.archive = archive
		self.on_status_change = on_status_change
		self.preflight = preflight

		self.scheduler = StepScheduler()
		self._status = AgentStatus.IDLE
		self._epoch = 0
		self._inflight: Optional[asyncio.Future] = None
		self._transcript_listeners: list[TranscriptListener] = []
		self._new_run_state()

	# Read-only view

	@property
	def status(self) -> AgentStatus:
		return self._status

	@property
	def goal(self) -> str:
		return self._goal

	@property
	def run_id(self) -> Optional[str]:
		return self._run_id

	@property
	def pending_action(self) -> Optional[PendingAction]:
		return self.gate.pending

	@property
	def preflight_result(self) -> Optional[PreflightResult]:
		"""Pre-flight checks for the pending action, if any were run."""
		return self._preflight_result

	@property
	def halt_reason(self) -> Optional[OrchestratorError]:
		"""Error that stopped the run: a RejectedAction, or the failure cause."""
		return self._halt_reason

	@property
	def touched_paths(self) -> tuple[str, ...]:
		return tuple(self._touched_paths)

	def subscribe(self, listener: TranscriptListener) -> None:
		"""Listen to transcript appends across runs and resets."""
		self._transcript_listeners.append(listener)
		self.transcript.subscribe(listener)

	def snapshot(self) -> RunSnapshot:
		"""Copy of the current run for hosts and the archive."""
		reason = None
		if self._halt_reason is not None:
			reason = f"{type(self._halt_reason).__name__}: {self._halt_reason}"
		pending = self.gate.pending
		return RunSnapshot(
			run_id=self._run_id,
			goal=self._goal,
			status=self._status,
			plan=self.plan.snapshot(),
			pending_action=pending.model_copy(deep=True) if pending else None,
			preflight=self._preflight_result.model_copy(deep=True) if self._preflight_result else None,
			transcript=list(self.transcript.all()),
			halt_reason=reason,
			touched_paths=list(self._touched_paths),
			started_at=self._started_at,
			ended_at=self._ended_at,
		)

	# Planning

	async def start(self, goal: str, context_summary: str = "") -> bool:
		"""
		Begin a new run for a goal and acquire its plan.

		Allowed when idle or after a previous run finished. Any previous
		run state is discarded.

		Returns:
			True if a plan is now waiting for review
		"""
		if self._status not in RESTARTABLE_STATUSES:
			logger.warning(f"start() ignored while {self._status.value}")
			return False
		if not goal or not goal.strip():
			logger.warning("start() ignored: empty goal")
			return False

		self._epoch += 1
		epoch = self._epoch
		self._cancel_inflight()
		self._new_run_state()
		self._goal = goal
		self._run_id = uuid.uuid4().hex[:12]
		self._started_at = datetime.now().isoformat()

		self.transcript.append(EntryType.USER, goal)
		self._set_status(AgentStatus.PLANNING)

		try:
			items = await self._guard(self._generate_plan(goal, context_summary), epoch)
			self._check_plan(items)
		except RunCancelled:
			logger.info(f"Planning for {goal!r} discarded after reset")
			return False
		except PlanningError as e:
			logger.error(f"Planning failed: {e}")
			await self._fail(f"Planning failed: {e}", e)
			return False

		self.plan.replace(items)
		logger.info(f"Plan ready with {len(self.plan)} items")
		self._set_status(AgentStatus.PLAN_REVIEW)
		return True

	async def _generate_plan(self, goal: str, context_summary: str) -> list[PlanItem]:
		timeout = self.settings.plan_timeout_seconds
		try:
			coro = self.planner.generate_plan(goal, context_summary)
			if timeout is not None:
				raw = await asyncio.wait_for(coro, timeout)
			else:
				raw = await coro
		except asyncio.TimeoutError as e:
			raise PlanningError(f"planner timed out after {timeout}s") from e
		except PlanningError:
			raise
		except Exception as e:
			raise PlanningError(str(e) or type(e).__name__) from e

		if raw is None:
			raise PlanningError("planner returned no plan")
		return self._coerce_items(raw)

	def _coerce_items(self, raw: Iterable[Union[PlanItem, dict[str, Any]]]) -> list[PlanItem]:
		try:
			return [
				item if isinstance(item, PlanItem) else PlanItem.model_validate(item)
				for item in raw
			]
		except (ValidationError, TypeError) as e:
			raise PlanValidationError(f"malformed plan item: {e}") from e

	def _check_plan(self, items: list[PlanItem]) -> None:
		for item in items:
			if item.status not in (PlanItemStatus.PENDING, PlanItemStatus.SKIPPED):
				raise PlanValidationError(f"Item {item.id} has status {item.status.value}, expected pending or skipped")
		validate_dependencies(items)

	# Plan review

	def toggle_skip(self, item_id: str) -> bool:
		"""Flip a plan item between pending and skipped while under review."""
		if self._status != AgentStatus.PLAN_REVIEW:
			return False
		return self.plan.toggle_skip(item_id)

	def patch_item(self, item_id: str, **fields: Any) -> bool:
		"""Edit an item's title, description or assigned worker while under review."""
		if self._status != AgentStatus.PLAN_REVIEW:
			return False
		try:
			return self.plan.patch(item_id, **fields)
		except ValueError as e:
			logger.warning(f"Patch of item {item_id} refused: {e}")
			return False

	async def approve_plan(self, edited_plan: Optional[list[Union[PlanItem, dict[str, Any]]]] = None) -> bool:
		"""
		Commit the plan and start working through it.

		Args:
			edited_plan: Replacement items (reordered or rewritten). An
				invalid edit is reported in the transcript and the plan
				stays under review.

		Returns:
			True if the plan was committed
		"""
		if self._status != AgentStatus.PLAN_REVIEW:
			return False

		if edited_plan is not None:
			try:
				items = self._coerce_items(edited_plan)
				self._check_plan(items)
			except PlanningError as e:
				logger.warning(f"Edited plan rejected: {e}")
				self.transcript.append(EntryType.ERROR, f"Plan edit rejected: {e}")
				return False
			self.plan.replace(items)

		epoch = self._epoch
		self._set_status(AgentStatus.THINKING)
		instructions = build_session_instructions(self._goal, self.plan.to_json(), self.settings.completion_tool)
		await self._run(epoch, self._open_and_advance(epoch, instructions))
		return True

	async def _open_and_advance(self, epoch: int, instructions: str) -> None:
		self._session = await self._guard(self._open_session(instructions), epoch)
		await self._advance(epoch)

	async def _open_session(self, instructions: str) -> ConversationSession:
		try:
			session = await self.session_factory.open_session(instructions)
		except Exception as e:
			raise TurnError(f"could not open conversation session: {e}") from e
		if session is None:
			raise TurnError("session factory returned no session")
		return session

	# Action review

	async def approve_action(self) -> bool:
		"""Run the pending action and continue the step with its result."""
		if self._status != AgentStatus.ACTION_REVIEW or self.gate.is_empty:
			return False

		epoch = self._epoch
		action = self.gate.take()
		self._preflight_result = None
		self._set_status(AgentStatus.EXECUTING)
		self.transcript.append(
			EntryType.CALL,
			f"Running {action.tool_name}...",
			tool_name=action.tool_name,
			tool_args=action.args,
		)

		try:
			result = await self._guard(
				execute_action(action, self.executor, timeout=self.settings.tool_timeout_seconds),
				epoch,
			)
		except RunCancelled:
			logger.info(f"Result of {action.tool_name} discarded after reset")
			return False

		self._record_touched(action)
		self.transcript.append(EntryType.RESULT, self._preview(result.text))
		self._set_status(AgentStatus.THINKING)
		await self._run(epoch, self._feed_and_advance(epoch, action.id, result.text))
		return True

	async def reject_action(self) -> bool:
		"""Drop the pending action and stop the run."""
		if self._status != AgentStatus.ACTION_REVIEW:
			return False

		action = self.gate.reject()
		self._preflight_result = None
		self.transcript.append(EntryType.ERROR, REJECTION_MESSAGE)
		self._halt_reason = RejectedAction(action.tool_name if action else "unknown")
		self._ended_at = datetime.now().isoformat()
		self._set_status(AgentStatus.IDLE)
		await self._archive_run()
		return True

	async def update_action_args(self, new_args: dict[str, Any]) -> bool:
		"""Replace the arguments of the pending action and re-run its pre-flight checks."""
		if self._status != AgentStatus.ACTION_REVIEW:
			return False
		if not self.gate.edit_args(new_args):
			return False

		epoch = self._epoch
		action = self.gate.pending
		self._preflight_result = None
		result = await self._check_action(action)
		# Drop results for an action that was approved, declined or reset meanwhile
		if epoch == self._epoch and self.gate.pending is action:
			self._preflight_result = result
		return True

	async def send_feedback(self, feedback: str) -> bool:
		"""
		Decline the pending action but keep the run going.

		The feedback goes back to the session as the result of the declined
		call, so the model can propose something better for the same step.
		"""
		if self._status != AgentStatus.ACTION_REVIEW or self.gate.is_empty:
			return False

		epoch = self._epoch
		action = self.gate.reject()
		self._preflight_result = None
		self.transcript.append(EntryType.ERROR, f"Action declined: {feedback}", tool_name=action.tool_name)
		self._set_status(AgentStatus.THINKING)
		message = build_declined_message(action.tool_name, feedback)
		await self._run(epoch, self._feed_and_advance(epoch, action.id, message))
		return True

	async def finish_changes_review(self) -> bool:
		"""Mark the staged changes of a finished run as reviewed."""
		if self._status != AgentStatus.AWAITING_CHANGES_REVIEW:
			return False
		self._set_status(AgentStatus.COMPLETED)
		await self._archive_run()
		return True

	def reset(self) -> None:
		"""Abandon everything and go back to idle."""
		self._epoch += 1
		self._cancel_inflight()
		self._new_run_state()
		self._set_status(AgentStatus.IDLE)
		logger.info("Run reset")

	# Turn loop

	async def _feed_and_advance(self, epoch: int, call_id: str, result_text: str) -> None:
		outcome = await self._guard(self.turns.feed_result(self._session, call_id, result_text), epoch)
		if await self._apply_outcome(outcome, epoch):
			await self._advance(epoch)

	async def _advance(self, epoch: int) -> None:
		"""Run steps until an action needs review or nothing is left."""
		while True:
			step = self.scheduler.select_next(self.plan)
			if step is None:
				await self._complete(epoch)
				return

			self.plan.mark_active(step.id)
			self._set_status(AgentStatus.THINKING)
			position = self.plan.position(step.id)
			outcome = await self._guard(self.turns.run_turn(step, position, self._session), epoch)
			if not await self._apply_outcome(outcome, epoch):
				return

	async def _apply_outcome(self, outcome: TurnOutcome, epoch: int) -> bool:
		"""
		Act on a classified turn.

		Returns:
			True if the active step finished and the loop should go on
		"""
		active = self.plan.active_item()
		if active is None:
			raise TurnError("turn finished with no active step")

		if outcome.kind == TurnKind.TOOL_CALL:
			role = active.assigned_worker or self.settings.default_agent_role
			action = self.gate.propose(outcome.tool_call, agent_role=role)
			self._preflight_result = await self._guard(self._check_action(action), epoch)
			self._set_status(AgentStatus.ACTION_REVIEW)
			return False

		self.plan.mark_completed(active.id)
		if outcome.kind == TurnKind.AUTO_ADVANCE:
			logger.warning(f"Step {active.id} auto-advanced without a completion signal")
		else:
			logger.info(f"Step {active.id} completed")
		return True

	async def _complete(self, epoch: int) -> None:
		blocked = self.scheduler.blocked_items(self.plan)
		if blocked:
			logger.warning(f"Finishing with unreachable items: {', '.join(i.id for i in blocked)}")

		summary = ""
		if self.settings.summarize_on_completion and self._session is not None:
			self._set_status(AgentStatus.SUMMARIZING)
			try:
				summary = await self._guard(self.turns.request_summary(self._session), epoch)
			except TurnError as e:
				logger.warning(f"Summary failed: {e}")

		if summary:
			self.transcript.append(EntryType.SUMMARY, summary)
		else:
			self.transcript.append(EntryType.RESPONSE, COMPLETION_MESSAGE)

		self._ended_at = datetime.now().isoformat()
		if self._has_pending_changes():
			self._set_status(AgentStatus.AWAITING_CHANGES_REVIEW)
		else:
			self._set_status(AgentStatus.COMPLETED)
		await self._archive_run()

	def _has_pending_changes(self) -> bool:
		if self.change_tracker is None:
			return False
		try:
			return bool(self.change_tracker.has_pending_changes())
		except Exception as e:
			logger.error(f"Change tracker failed: {e}")
			return False

	async def _run(self, epoch: int, coro: Awaitable[None]) -> None:
		"""Await a stretch of the turn loop, containing its failures."""
		try:
			await coro
		except RunCancelled:
			logger.info("Turn result discarded after reset")
		except OrchestratorError as e:
			if epoch != self._epoch:
				return
			logger.error(f"Run failed: {e}")
			await self._fail(f"Turn failed: {e}", e)
		except Exception as e:
			if epoch != self._epoch:
				return
			logger.error(f"Run failed with {type(e).__name__}: {e}")
			error = TurnError(f"unexpected {type(e).__name__}: {e}")
			await self._fail(f"Turn failed: {error}", error)

	async def _check_action(self, action: PendingAction) -> Optional[PreflightResult]:
		"""Run pre-flight checks on a proposed action. Checker errors are logged, not raised."""
		if self.preflight is None:
			return None
		try:
			result = await self.preflight.check(action.tool_name, dict(action.args))
		except Exception as e:
			logger.error(f"Pre-flight check for {action.tool_name} failed: {e}")
			return None
		if result is not None and result.has_errors:
			logger.warning(f"Pre-flight for {action.tool_name}: {result.summary}")
		return result

	async def _fail(self, message: str, error: OrchestratorError) -> None:
		active = self.plan.active_item()
		if active is not None:
			self.plan.mark_failed(active.id)
		self.gate.clear()
		self._preflight_result = None
		self.transcript.append(EntryType.ERROR, message)
		self._halt_reason = error
		self._ended_at = datetime.now().isoformat()
		self._set_status(AgentStatus.FAILED)
		await self._archive_run()

	# Plumbing

	async def _guard(self, coro: Awaitable[Any], epoch: int) -> Any:
		"""
		Await a collaborator call as a cancellable task.

		Raises:
			RunCancelled: If the run was reset while the call was in flight
		"""
		task = asyncio.ensure_future(coro)
		self._inflight = task
		try:
			result = await task
		except asyncio.CancelledError:
			if epoch != self._epoch:
				raise RunCancelled("run was reset") from None
			raise
		finally:
			if self._inflight is task:
				self._inflight = None

		if epoch != self._epoch:
			raise RunCancelled("run was reset")
		return result

	def _cancel_inflight(self) -> None:
		if self._inflight is not None and not self._inflight.done():
			self._inflight.cancel()
		self._inflight = None

	def _new_run_state(self) -> None:
		self.plan = PlanModel()
		self.gate = ActionGate()
		self._preflight_result: Optional[PreflightResult] = None
		self.transcript = TranscriptLog()
		for listener in self._transcript_listeners:
			self.transcript.subscribe(listener)
		self.turns = TurnDriver(self.transcript, self.settings)
		self._session: Optional[ConversationSession] = None
		self._goal = ""
		self._run_id: Optional[str] = None
		self._halt_reason: Optional[OrchestratorError] = None
		self._touched_paths: list[str] = []
		self._started_at: Optional[str] = None
		self._ended_at: Optional[str] = None

	def _set_status(self, status: AgentStatus) -> None:
		old = self._status
		if old == status:
			return
		self._status = status
		logger.info(f"Run {self._run_id or '-'}: {old.value} -> {status.value}")
		if self.on_status_change:
			try:
				self.on_status_change(old, status)
			except Exception as e:
				logger.error(f"Status callback failed: {e}")

	def _preview(self, text: str) -> str:
		limit = self.settings.result_preview_chars
		if len(text) <= limit:
			return text
		return text[:limit] + "..."

	def _record_touched(self, action: PendingAction) -> None:
		for key in PATH_ARG_KEYS:
			path = action.args.get(key)
			if isinstance(path, str) and path and path not in self._touched_paths:
				self._touched_paths.append(path)

	async def _archive_run(self) -> None:
		if self.archive is None or self._run_id is None:
			return
		try:
			await self.archive.save_run(self.snapshot())
		except Exception as e:
			logger.error(f"Failed to archive run {self._run_id}: {e}")
