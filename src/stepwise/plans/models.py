"""
Plan Models - Pydantic schemas for the steps of a run.

A plan is an ordered list of items. Declaration order is the scheduling
tie-breaker, dependencies restrict which pending item may start next.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..errors import PlanValidationError


class PlanItemStatus(str, Enum):
	"""Status of a single plan item."""
	PENDING = "pending"
	ACTIVE = "active"
	COMPLETED = "completed"
	SKIPPED = "skipped"
	FAILED = "failed"


# Statuses that satisfy a dependency
RESOLVED_STATUSES = frozenset({PlanItemStatus.COMPLETED, PlanItemStatus.SKIPPED})

# Fields a reviewer may change while the plan is under review
PATCHABLE_FIELDS = frozenset({"title", "description", "assigned_worker"})


class PlanItem(BaseModel):
	"""A single step of the plan."""
	model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

	id: str = Field(description="Unique step identifier")
	title: str = Field(description="Short name of the step")
	description: str = Field(default="", description="What the step should accomplish")
	status: PlanItemStatus = Field(default=PlanItemStatus.PENDING)
	dependencies: list[str] = Field(
		default_factory=list,
		description="Ids of items that must be completed or skipped first",
	)
	assigned_worker: Optional[str] = Field(
		default=None,
		validation_alias=AliasChoices("assigned_worker", "assignedWorker", "assignedAgent"),
		description="Role hint for whoever carries out the step",
	)

	@field_validator("id", mode="before")
	@classmethod
	def _coerce_id(cls, value: Any) -> Any:
		if isinstance(value, int) and not isinstance(value, bool):
			return str(value)
		return value

	@field_validator("dependencies", mode="before")
	@classmethod
	def _normalize_dependencies(cls, value: Any) -> Any:
		if value is None:
			return []
		if isinstance(value, (list, tuple, set, frozenset)):
			seen: list[str] = []
			for dep in value:
				dep = str(dep) if isinstance(dep, int) and not isinstance(dep, bool) else dep
				if dep not in seen:
					seen.append(dep)
			return seen
		return value


class PlanModel:
	"""
	Ordered collection of plan items for one run.

	Items are created in bulk when the plan is acquired and are never
	removed mid-run. Review edits (skip toggles, text patches) are only
	applied while the controller allows them; execution marks go
	through mark_active/mark_completed/mark_failed.
	"""

	def __init__(self, items: Optional[list[PlanItem]] = None):
		self._items: list[PlanItem] = [item.model_copy(deep=True) for item in items or []]

	def __len__(self) -> int:
		return len(self._items)

	def __iter__(self):
		return iter(self._items)

	def get(self, item_id: str) -> Optional[PlanItem]:
		"""Look up an item by id."""
		for item in self._items:
			if item.id == item_id:
				return item
		return None

	def position(self, item_id: str) -> int:
		"""1-based position of an item in declaration order."""
		for index, item in enumerate(self._items):
			if item.id == item_id:
				return index + 1
		raise KeyError(item_id)

	def replace(self, items: list[PlanItem]) -> None:
		"""Swap in a whole new item list (plan acquisition or approved edit)."""
		self._items = [item.model_copy(deep=True) for item in items]

	def toggle_skip(self, item_id: str) -> bool:
		"""Flip an item between pending and skipped. Other statuses are left alone."""
		item = self.get(item_id)
		if item is None:
			return False
		if item.status == PlanItemStatus.PENDING:
			item.status = PlanItemStatus.SKIPPED
		elif item.status == PlanItemStatus.SKIPPED:
			item.status = PlanItemStatus.PENDING
		else:
			return False
		return True

	def patch(self, item_id: str, **fields: Any) -> bool:
		"""
		Update the text fields of an item.

		All fields are validated before any is applied.

		Raises:
			ValueError: On fields that cannot be patched or invalid values
		"""
		item = self.get(item_id)
		if item is None:
			return False
		unknown = set(fields) - PATCHABLE_FIELDS
		if unknown:
			raise ValueError(f"Fields cannot be patched: {', '.join(sorted(unknown))}")
		checked = PlanItem.model_validate({**item.model_dump(), **fields})
		for key in fields:
			setattr(item, key, getattr(checked, key))
		return True

	def active_item(self) -> Optional[PlanItem]:
		for item in self._items:
			if item.status == PlanItemStatus.ACTIVE:
				return item
		return None

	def mark_active(self, item_id: str) -> PlanItem:
		"""Move a pending item to active. Only one item may be active at a time."""
		item = self._require(item_id)
		current = self.active_item()
		if current is not None and current.id != item_id:
			raise PlanValidationError(f"Item {current.id} is already active")
		if item.status != PlanItemStatus.PENDING:
			raise PlanValidationError(f"Item {item_id} is {item.status.value}, not pending")
		item.status = PlanItemStatus.ACTIVE
		return item

	def mark_completed(self, item_id: str) -> PlanItem:
		item = self._require(item_id)
		item.status = PlanItemStatus.COMPLETED
		return item

	def mark_failed(self, item_id: str) -> PlanItem:
		item = self._require(item_id)
		item.status = PlanItemStatus.FAILED
		return item

	def _require(self, item_id: str) -> PlanItem:
		item = self.get(item_id)
		if item is None:
			raise PlanValidationError(f"Unknown plan item: {item_id}")
		return item

	def snapshot(self) -> list[PlanItem]:
		"""Deep copies of the items, safe to hand to a host or UI."""
		return [item.model_copy(deep=True) for item in self._items]

	def get_progress(self) -> dict:
		"""Calculate overall progress."""
		total = len(self._items)
		done = len([i for i in self._items if i.status in RESOLVED_STATUSES])
		return {
			"total_items": total,
			"completed_items": len([i for i in self._items if i.status == PlanItemStatus.COMPLETED]),
			"skipped_items": len([i for i in self._items if i.status == PlanItemStatus.SKIPPED]),
			"failed_items": len([i for i in self._items if i.status == PlanItemStatus.FAILED]),
			"percent_complete": round(done / total * 100, 1) if total > 0 else 0,
		}

	def to_json(self) -> str:
		"""Serialize the items as a JSON array."""
		return "[" + ",".join(item.model_dump_json() for item in self._items) + "]"

	def to_markdown(self) -> str:
		"""Convert the plan to a markdown checklist."""
		lines = []
		for index, item in enumerate(self._items, start=1):
			marker = {
				PlanItemStatus.PENDING: "[ ]",
				PlanItemStatus.ACTIVE: "[~]",
				PlanItemStatus.COMPLETED: "[x]",
				PlanItemStatus.SKIPPED: "[-]",
				PlanItemStatus.FAILED: "[!]",
			}.get(item.status, "[ ]")
			line = f"{index}. {marker} {item.title}"
			if item.dependencies:
				line += f" (after {', '.join(item.dependencies)})"
			lines.append(line)
			if item.description:
				lines.append(f"   _{item.description}_")
		return "\n".join(lines)
