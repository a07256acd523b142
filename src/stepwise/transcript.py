"""
Transcript - append-only record of everything that happened in a run.

The transcript is what the supervisor reads: the goal, the model's
reasoning, every tool call and its result, errors and the final
response. Entries are immutable once appended.
"""

import copy
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class EntryType(str, Enum):
	"""Kind of transcript entry."""
	USER = "user"
	THOUGHT = "thought"
	CALL = "call"
	RESULT = "result"
	ERROR = "error"
	RESPONSE = "response"
	SUMMARY = "summary"
	AUTO_ADVANCE = "auto_advance"


class TranscriptEntry(BaseModel):
	"""A single transcript line."""
	model_config = ConfigDict(frozen=True)

	id: int = Field(description="Monotonic id, starting at 1 for each run")
	type: EntryType
	text: str
	tool_name: Optional[str] = Field(default=None)
	tool_args: Optional[dict[str, Any]] = Field(default=None)
	timestamp: datetime = Field(default_factory=datetime.now)


TranscriptListener = Callable[[TranscriptEntry], None]


class TranscriptLog:
	"""
	Append-only list of TranscriptEntry.

	There is no way to edit or remove an entry; a reset starts a new log.

	Usage:
		log = TranscriptLog()
		log.subscribe(lambda entry: print(entry.text))
		log.append(EntryType.USER, "Add a README")
	"""

	def __init__(self):
		self._entries: list[TranscriptEntry] = []
		self._listeners: list[TranscriptListener] = []

	def __len__(self) -> int:
		return len(self._entries)

	def __iter__(self) -> Iterator[TranscriptEntry]:
		return iter(tuple(self._entries))

	def append(
		self,
		entry_type: EntryType,
		text: str,
		tool_name: Optional[str] = None,
		tool_args: Optional[dict[str, Any]] = None,
	) -> TranscriptEntry:
		"""
		Append an entry, assigning its id and timestamp.

		Args:
			entry_type: Kind of entry
			text: Display text
			tool_name: Tool involved, for call entries
			tool_args: Tool arguments, copied so later edits don't leak in

		Returns:
			The new entry
		"""
		timestamp = datetime.now()
		if self._entries and timestamp < self._entries[-1].timestamp:
			# Wall clock went backwards, keep timestamps ordered
			timestamp = self._entries[-1].timestamp

		entry = TranscriptEntry(
			id=len(self._entries) + 1,
			type=entry_type,
			text=text,
			tool_name=tool_name,
			tool_args=copy.deepcopy(tool_args) if tool_args is not None else None,
			timestamp=timestamp,
		)
		self._entries.append(entry)

		for listener in list(self._listeners):
			try:
				listener(entry)
			except Exception as e:
				logger.error(f"Transcript listener failed: {e}")

		return entry

	def all(self) -> tuple[TranscriptEntry, ...]:
		return tuple(self._entries)

	def last(self) -> Optional[TranscriptEntry]:
		return self._entries[-1] if self._entries else None

	def of_type(self, entry_type: EntryType) -> list[TranscriptEntry]:
		return [e for e in self._entries if e.type == entry_type]

	def types(self) -> list[EntryType]:
		"""Entry types in order, handy for checking the shape of a run."""
		return [e.type for e in self._entries]

	def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
		"""
		Register a listener called after every append.

		Returns:
			A function that removes the listener
		"""
		self._listeners.append(listener)

		def unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return unsubscribe
