"""
Turn Driver - runs one conversational turn for the active step.

A turn is a message to the session and the reply that comes back. The
driver records the model's reasoning and decides what the reply means:
a tool call to gate, a completed step, or a step that ended without a
clear signal and is advanced anyway.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..config import RunSettings
from ..errors import TurnError
from ..plans.models import PlanItem
from ..transcript import EntryType, TranscriptLog
from .collaborators import ConversationSession, ToolCall, TurnResponse

logger = logging.getLogger(__name__)

# Tool result that answers the completion tool call
STEP_COMPLETE_ACK = "Step marked complete."

SUMMARY_REQUEST = (
	"All steps are complete. Summarize what was done, which files changed, "
	"and anything the user should check."
)


class TurnKind(str, Enum):
	"""How a turn ended."""
	TOOL_CALL = "tool_call"
	STEP_COMPLETE = "step_complete"
	AUTO_ADVANCE = "auto_advance"


@dataclass
class TurnOutcome:
	"""Classified result of one turn."""
	kind: TurnKind
	text: str = ""
	tool_call: Optional[ToolCall] = None


def build_step_message(step: PlanItem, position: int) -> str:
	"""Message that opens work on a step."""
	return (
		f'We are working on Step {position}: "{step.title}" - {step.description}. '
		"What is the next action?"
	)


def build_session_instructions(goal: str, plan_json: str, completion_tool: str) -> str:
	"""Instructions the conversation session is seeded with at plan approval."""
	try:
		plan_text = json.dumps(json.loads(plan_json), indent=2)
	except json.JSONDecodeError:
		plan_text = plan_json
	return "\n".join([
		"You are an autonomous engineer working through an approved plan, one step at a time.",
		f"Goal: {goal}",
		"",
		"Plan:",
		plan_text,
		"",
		"Request one tool call at a time. Every call is reviewed by a human before it runs.",
		f'When the current step is finished, call the "{completion_tool}" tool '
		"or reply with a short message saying the step is complete.",
	])


def build_declined_message(tool_name: str, feedback: str) -> str:
	"""Tool result sent back when the supervisor declines an action with feedback."""
	return (
		f"[ACTION DECLINED] The supervisor did not run {tool_name}.\n"
		f"Feedback:\n{feedback}\n\n"
		"Please address the feedback and propose a revised action."
	)


class TurnDriver:
	"""
	Sends turn messages and classifies replies.

	The driver holds no session of its own; the caller passes the session
	for the run on every call.
	"""

	def __init__(self, transcript: TranscriptLog, settings: Optional[RunSettings] = None):
		self.transcript = transcript
		self.settings = settings or RunSettings()
		self._auto_advances = 0
		self._open_completion_call: Optional[str] = None

	@property
	def consecutive_auto_advances(self) -> int:
		return self._auto_advances

	@property
	def open_completion_call(self) -> Optional[str]:
		"""Id of a completion tool call the session still expects a result for."""
		return self._open_completion_call

	async def run_turn(self, step: PlanItem, position: int, session: ConversationSession) -> TurnOutcome:
		"""Open work on a step and classify the reply."""
		message = build_step_message(step, position)
		logger.info(f"Turn for step {position} ({step.id}): {step.title}")
		response = await self._send(session, message, "send")
		return self.classify(response)

	async def feed_result(self, session: ConversationSession, call_id: str, result_text: str) -> TurnOutcome:
		"""Return a tool result to the session and classify the reply."""
		response = await self._call(lambda: session.send_tool_result(call_id, result_text), "send_tool_result")
		return self.classify(response)

	async def request_summary(self, session: ConversationSession) -> str:
		"""Ask the session to summarize the finished run."""
		response = await self._send(session, SUMMARY_REQUEST, "summary")
		return response.text.strip()

	async def _send(self, session: ConversationSession, message: str, what: str) -> TurnResponse:
		"""
		Send a user turn.

		A completion tool call left open by the previous step is answered
		first: the message goes back as that call's result.
		"""
		call_id = self._open_completion_call
		if call_id is None:
			return await self._call(lambda: session.send(message), what)
		self._open_completion_call = None
		return await self._call(
			lambda: session.send_tool_result(call_id, f"{STEP_COMPLETE_ACK}\n\n{message}"),
			"send_tool_result",
		)

	async def _call(self, make_call: Callable[[], Awaitable[TurnResponse]], what: str) -> TurnResponse:
		timeout = self.settings.turn_timeout_seconds
		try:
			coro = make_call()
			if timeout is not None:
				response = await asyncio.wait_for(coro, timeout)
			else:
				response = await coro
		except asyncio.TimeoutError as e:
			raise TurnError(f"Session {what} timed out after {timeout}s") from e
		except TurnError:
			raise
		except Exception as e:
			raise TurnError(f"Session {what} failed: {e}") from e

		if response is None:
			raise TurnError(f"Session {what} returned no response")
		return response

	def classify(self, response: TurnResponse) -> TurnOutcome:
		"""
		Decide what a reply means.

		Order: the completion tool, any other tool call, a completion
		phrase in the text, and finally auto-advance.

		Raises:
			TurnError: When too many steps in a row end without a signal
		"""
		text = (response.text or "").strip()
		if text:
			self.transcript.append(EntryType.THOUGHT, text)

		tool_call = response.first_tool_call
		if len(response.tool_calls) > 1:
			logger.warning(f"Session requested {len(response.tool_calls)} tool calls, only {tool_call.name} is surfaced")

		if tool_call is not None and tool_call.name == self.settings.completion_tool:
			self._auto_advances = 0
			self._open_completion_call = tool_call.id
			return TurnOutcome(kind=TurnKind.STEP_COMPLETE, text=text, tool_call=tool_call)

		if tool_call is not None:
			self._auto_advances = 0
			return TurnOutcome(kind=TurnKind.TOOL_CALL, text=text, tool_call=tool_call)

		if self.is_completion_text(text):
			self._auto_advances = 0
			return TurnOutcome(kind=TurnKind.STEP_COMPLETE, text=text)

		self._auto_advances += 1
		limit = self.settings.max_consecutive_auto_advances
		if limit is not None and self._auto_advances > limit:
			raise TurnError(f"No progress signal for {self._auto_advances} consecutive steps")

		logger.warning("Turn ended without a tool call or completion signal, advancing")
		self.transcript.append(
			EntryType.AUTO_ADVANCE,
			"Step ended without a completion signal; advancing to the next step.",
		)
		return TurnOutcome(kind=TurnKind.AUTO_ADVANCE, text=text)

	def is_completion_text(self, text: str) -> bool:
		lowered = text.lower()
		return any(phrase.lower() in lowered for phrase in self.settings.completion_phrases)
