"""Tests for turn classification."""

import asyncio

import pytest

from stepwise.config import RunSettings
from stepwise.errors import TurnError
from stepwise.orchestrator.collaborators import ToolCall, TurnResponse
from stepwise.orchestrator.turns import (
	TurnDriver,
	TurnKind,
	build_session_instructions,
	build_step_message,
)
from stepwise.plans.models import PlanItem
from stepwise.transcript import EntryType, TranscriptLog

from .helpers import ScriptedSession, say, tool


class HangingSession:
	async def send(self, text):
		await asyncio.sleep(10)

	async def send_tool_result(self, call_id, result_text):
		await asyncio.sleep(10)


class BrokenSession:
	async def send(self, text):
		raise ConnectionError("socket closed")

	async def send_tool_result(self, call_id, result_text):
		raise ConnectionError("socket closed")


@pytest.fixture
def transcript():
	return TranscriptLog()


@pytest.fixture
def driver(transcript):
	return TurnDriver(transcript, RunSettings())


@pytest.fixture
def step():
	return PlanItem(id="s1", title="Scaffold", description="Create the project layout")


class TestClassify:
	"""Tests for TurnDriver.classify."""

	def test_tool_call(self, driver, transcript):
		outcome = driver.classify(TurnResponse(
			text="I'll list the files first.",
			tool_calls=[ToolCall(id="c1", name="fs_listFiles", args={"path": "."})],
		))

		assert outcome.kind == TurnKind.TOOL_CALL
		assert outcome.tool_call.name == "fs_listFiles"
		assert transcript.types() == [EntryType.THOUGHT]

	def test_only_first_tool_call_is_surfaced(self, driver):
		outcome = driver.classify(TurnResponse(tool_calls=[
			ToolCall(id="c1", name="first"),
			ToolCall(id="c2", name="second"),
		]))

		assert outcome.tool_call.id == "c1"

	def test_completion_tool(self, driver, transcript):
		"""Test that the structured completion tool ends the step without gating."""
		outcome = driver.classify(tool("step_complete"))

		assert outcome.kind == TurnKind.STEP_COMPLETE
		assert outcome.tool_call.name == "step_complete"
		assert driver.open_completion_call == "call-1"
		assert len(transcript) == 0

	@pytest.mark.parametrize("text", ["Step complete.", "All DONE here", "step COMPLETE"])
	def test_completion_phrases(self, driver, text):
		assert driver.classify(say(text)).kind == TurnKind.STEP_COMPLETE

	def test_custom_completion_phrases(self, transcript):
		driver = TurnDriver(transcript, RunSettings(completion_phrases=("finished",)))

		assert driver.classify(say("Finished!")).kind == TurnKind.STEP_COMPLETE
		assert driver.classify(say("done")).kind == TurnKind.AUTO_ADVANCE

	def test_ambiguous_reply_auto_advances(self, driver, transcript):
		outcome = driver.classify(say("Analyzing..."))

		assert outcome.kind == TurnKind.AUTO_ADVANCE
		assert transcript.types() == [EntryType.THOUGHT, EntryType.AUTO_ADVANCE]
		assert driver.consecutive_auto_advances == 1

	def test_empty_reply_auto_advances_without_thought(self, driver, transcript):
		outcome = driver.classify(TurnResponse())

		assert outcome.kind == TurnKind.AUTO_ADVANCE
		assert transcript.types() == [EntryType.AUTO_ADVANCE]

	def test_auto_advance_bound(self, transcript):
		"""Test that too many silent steps in a row raise TurnError."""
		driver = TurnDriver(transcript, RunSettings(max_consecutive_auto_advances=2))
		driver.classify(say("hmm"))
		driver.classify(say("hmm"))

		with pytest.raises(TurnError):
			driver.classify(say("hmm"))

	def test_progress_resets_auto_advance_count(self, transcript):
		driver = TurnDriver(transcript, RunSettings(max_consecutive_auto_advances=1))
		driver.classify(say("hmm"))
		driver.classify(tool("fs_readFile"))
		driver.classify(say("hmm"))

		assert driver.consecutive_auto_advances == 1

	def test_unbounded_auto_advance(self, transcript):
		driver = TurnDriver(transcript, RunSettings(max_consecutive_auto_advances=None))
		for _ in range(20):
			driver.classify(say("hmm"))

		assert driver.consecutive_auto_advances == 20


class TestTurns:
	"""Tests for sending turns through a session."""

	@pytest.mark.asyncio
	async def test_run_turn_sends_step_message(self, driver, step):
		session = ScriptedSession([tool("fs_listFiles")])

		outcome = await driver.run_turn(step, 1, session)

		assert outcome.kind == TurnKind.TOOL_CALL
		assert session.sent == [
			'We are working on Step 1: "Scaffold" - Create the project layout. What is the next action?'
		]

	@pytest.mark.asyncio
	async def test_feed_result_sends_tool_result(self, driver):
		session = ScriptedSession([say("Step complete.")])

		outcome = await driver.feed_result(session, "c1", "3 files")

		assert outcome.kind == TurnKind.STEP_COMPLETE
		assert session.tool_results == [("c1", "3 files")]

	@pytest.mark.asyncio
	async def test_session_errors_become_turn_errors(self, driver, step):
		with pytest.raises(TurnError, match="socket closed"):
			await driver.run_turn(step, 1, BrokenSession())

	@pytest.mark.asyncio
	async def test_turn_timeout(self, transcript, step):
		driver = TurnDriver(transcript, RunSettings(turn_timeout_seconds=0.01))

		with pytest.raises(TurnError, match="timed out"):
			await driver.run_turn(step, 1, HangingSession())

	@pytest.mark.asyncio
	async def test_request_summary(self, driver):
		session = ScriptedSession([say("  Added a README.  ")])

		assert await driver.request_summary(session) == "Added a README."

	@pytest.mark.asyncio
	async def test_next_step_answers_completion_call(self, driver, step):
		"""Test that the next user turn goes back as the result of the completion call."""
		session = ScriptedSession([tool("step_complete", call_id="sc-1"), say("Step complete.")])
		await driver.run_turn(step, 1, session)

		await driver.run_turn(step, 2, session)

		assert len(session.sent) == 1
		call_id, text = session.tool_results[0]
		assert call_id == "sc-1"
		assert text.startswith("Step marked complete.")
		assert 'Step 2: "Scaffold"' in text
		assert driver.open_completion_call is None

	@pytest.mark.asyncio
	async def test_summary_answers_completion_call(self, driver, step):
		session = ScriptedSession([tool("step_complete", call_id="sc-9"), say("Wrote the scaffold.")])
		await driver.run_turn(step, 1, session)

		assert await driver.request_summary(session) == "Wrote the scaffold."
		assert session.tool_results[0][0] == "sc-9"
		assert "Summarize" in session.tool_results[0][1]


def test_step_message_format(step):
	assert build_step_message(step, 3).startswith('We are working on Step 3: "Scaffold"')


def test_session_instructions_contain_plan(step):
	text = build_session_instructions("Ship it", '[{"id": "s1", "title": "Scaffold"}]', "step_complete")

	assert "Goal: Ship it" in text
	assert '"title": "Scaffold"' in text
	assert '"step_complete"' in text
