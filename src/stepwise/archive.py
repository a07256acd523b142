"""
Transcript Archive - SQLite-backed record of finished runs.

Runs are saved once they stop (completed, failed or rejected) so the
transcript can be audited later. In-flight runs are never resumed
from here.
"""

import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from .orchestrator.state import AgentStatus, RunSnapshot

logger = logging.getLogger(__name__)


class RunNotFoundError(Exception):
	"""Raised when an archived run is not found."""
	pass


class TranscriptArchive:
	"""
	SQLite-backed storage for finished runs.

	Usage:
		archive = TranscriptArchive("data/runs.db")
		await archive.init()

		await archive.save_run(controller.snapshot())
		runs = await archive.list_runs(status=AgentStatus.FAILED)
	"""

	def __init__(self, db_path: str | Path):
		"""Initialize the archive."""
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self._db: Optional[aiosqlite.Connection] = None

	async def init(self):
		"""Initialize the database schema."""
		self._db = await aiosqlite.connect(str(self.db_path))
		self._db.row_factory = aiosqlite.Row

		await self._db.execute("""
			CREATE TABLE IF NOT EXISTS runs (
				run_id TEXT PRIMARY KEY,
				goal TEXT NOT NULL,
				status TEXT NOT NULL,
				data TEXT NOT NULL,
				started_at TEXT,
				ended_at TEXT
			)
		""")

		await self._db.execute("""
			CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status)
		""")

		await self._db.commit()
		logger.info(f"Transcript archive initialized: {self.db_path}")

	async def close(self):
		"""Close the database connection."""
		if self._db:
			await self._db.close()
			self._db = None

	async def save_run(self, snapshot: RunSnapshot) -> str:
		"""
		Store a run, replacing any earlier copy with the same id.

		Args:
			snapshot: Snapshot of the finished run

		Returns:
			Run ID
		"""
		if not snapshot.run_id:
			raise ValueError("Cannot archive a run without an id")
		if not self._db:
			await self.init()

		await self._db.execute(
			"""
			INSERT OR REPLACE INTO runs (run_id, goal, status, data, started_at, ended_at)
			VALUES (?, ?, ?, ?, ?, ?)
			""",
			(
				snapshot.run_id,
				snapshot.goal,
				snapshot.status.value,
				snapshot.model_dump_json(),
				snapshot.started_at,
				snapshot.ended_at,
			)
		)
		await self._db.commit()
		logger.info(f"Archived run {snapshot.run_id} ({snapshot.status.value})")
		return snapshot.run_id

	async def get_run(self, run_id: str) -> RunSnapshot:
		"""
		Load an archived run.

		Raises:
			RunNotFoundError: If no run has this id
		"""
		if not self._db:
			await self.init()

		async with self._db.execute(
			"SELECT data FROM runs WHERE run_id = ?",
			(run_id,)
		) as cursor:
			row = await cursor.fetchone()

		if not row:
			raise RunNotFoundError(f"Run not found: {run_id}")

		return RunSnapshot.model_validate_json(row["data"])

	async def list_runs(
		self,
		status: Optional[AgentStatus] = None,
		limit: int = 50,
	) -> list[RunSnapshot]:
		"""
		List archived runs, newest first.

		Args:
			status: Only runs that ended with this status
			limit: Maximum number of runs
		"""
		if not self._db:
			await self.init()

		if status:
			query = "SELECT data FROM runs WHERE status = ? ORDER BY started_at DESC LIMIT ?"
			params: tuple = (status.value, limit)
		else:
			query = "SELECT data FROM runs ORDER BY started_at DESC LIMIT ?"
			params = (limit,)

		async with self._db.execute(query, params) as cursor:
			rows = await cursor.fetchall()

		return [RunSnapshot.model_validate_json(row["data"]) for row in rows]

	async def delete_run(self, run_id: str) -> bool:
		"""Delete an archived run. Returns False if it didn't exist."""
		if not self._db:
			await self.init()

		cursor = await self._db.execute("DELETE FROM runs WHERE run_id = ?", (run_id,))
		await self._db.commit()
		deleted = cursor.rowcount > 0
		if deleted:
			logger.info(f"Deleted archived run {run_id}")
		return deleted
