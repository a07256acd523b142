"""Tests for the archive of finished runs."""

import pytest

from stepwise.archive import RunNotFoundError, TranscriptArchive
from stepwise.config import RunSettings
from stepwise.orchestrator.controller import RunController
from stepwise.orchestrator.state import AgentStatus, RunSnapshot
from stepwise.transcript import EntryType

from .helpers import FakeExecutor, FakePlanner, FakeSessionFactory, ScriptedSession, make_items, tool


class BrokenArchive:
	async def save_run(self, snapshot):
		raise OSError("disk full")


class TestTranscriptArchive:
	"""Tests for TranscriptArchive storage."""

	@pytest.mark.asyncio
	async def test_save_and_get(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")
		await archive.init()
		snapshot = RunSnapshot(run_id="abc123", goal="goal", status=AgentStatus.COMPLETED, started_at="2026-01-01T10:00:00")

		await archive.save_run(snapshot)
		loaded = await archive.get_run("abc123")
		await archive.close()

		assert loaded == snapshot

	@pytest.mark.asyncio
	async def test_get_missing_raises(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")

		with pytest.raises(RunNotFoundError):
			await archive.get_run("nope")
		await archive.close()

	@pytest.mark.asyncio
	async def test_save_replaces_same_run(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")
		await archive.save_run(RunSnapshot(run_id="r1", goal="g", status=AgentStatus.AWAITING_CHANGES_REVIEW))
		await archive.save_run(RunSnapshot(run_id="r1", goal="g", status=AgentStatus.COMPLETED))

		runs = await archive.list_runs()
		await archive.close()

		assert len(runs) == 1
		assert runs[0].status == AgentStatus.COMPLETED

	@pytest.mark.asyncio
	async def test_list_filters_and_orders(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")
		await archive.save_run(RunSnapshot(run_id="old", goal="g", status=AgentStatus.FAILED, started_at="2026-01-01T10:00:00"))
		await archive.save_run(RunSnapshot(run_id="new", goal="g", status=AgentStatus.COMPLETED, started_at="2026-01-02T10:00:00"))

		all_runs = await archive.list_runs()
		failed = await archive.list_runs(status=AgentStatus.FAILED)
		limited = await archive.list_runs(limit=1)
		await archive.close()

		assert [r.run_id for r in all_runs] == ["new", "old"]
		assert [r.run_id for r in failed] == ["old"]
		assert [r.run_id for r in limited] == ["new"]

	@pytest.mark.asyncio
	async def test_delete(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")
		await archive.save_run(RunSnapshot(run_id="r1", goal="g"))

		assert await archive.delete_run("r1")
		assert not await archive.delete_run("r1")
		await archive.close()

	@pytest.mark.asyncio
	async def test_run_without_id_is_refused(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")

		with pytest.raises(ValueError):
			await archive.save_run(RunSnapshot())
		await archive.close()


class TestControllerArchiving:
	"""Finished runs end up in the archive."""

	@pytest.mark.asyncio
	async def test_completed_run_is_archived(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")
		session = ScriptedSession([tool("fs_writeFile", path="README.md")])
		controller = RunController(
			planner=FakePlanner(make_items((1,))),
			session_factory=FakeSessionFactory(session),
			executor=FakeExecutor(),
			archive=archive,
		)
		await controller.start("Write a README")
		await controller.approve_plan()
		await controller.approve_action()

		stored = await archive.get_run(controller.run_id)
		await archive.close()

		assert stored.status == AgentStatus.COMPLETED
		assert stored.goal == "Write a README"
		assert stored.touched_paths == ["README.md"]
		assert [e.type for e in stored.transcript] == [e.type for e in controller.transcript]

	@pytest.mark.asyncio
	async def test_rejected_run_is_archived_with_reason(self, tmp_path):
		archive = TranscriptArchive(tmp_path / "runs.db")
		controller = RunController(
			planner=FakePlanner(make_items((1,))),
			session_factory=FakeSessionFactory(ScriptedSession([tool("shell_exec", command="rm -rf /")])),
			executor=FakeExecutor(),
			archive=archive,
		)
		await controller.start("goal")
		await controller.approve_plan()
		await controller.reject_action()

		stored = await archive.get_run(controller.run_id)
		await archive.close()

		assert stored.status == AgentStatus.IDLE
		assert stored.halt_reason.startswith("RejectedAction")
		assert stored.transcript[-1].type == EntryType.ERROR

	@pytest.mark.asyncio
	async def test_archive_failure_does_not_change_run(self):
		controller = RunController(
			planner=FakePlanner(make_items((1,))),
			session_factory=FakeSessionFactory(),
			executor=FakeExecutor(),
			settings=RunSettings(),
			archive=BrokenArchive(),
		)
		await controller.start("goal")
		await controller.approve_plan()

		assert controller.status == AgentStatus.COMPLETED
