"""
Step Scheduler - picks the next plan item to work on.

Selection is deterministic: the first pending item in declaration
order whose dependencies are all completed or skipped.
"""

import logging
from typing import Iterable, Optional

from ..errors import PlanValidationError
from ..plans.models import RESOLVED_STATUSES, PlanItem, PlanItemStatus, PlanModel

logger = logging.getLogger(__name__)


def validate_dependencies(items: Iterable[PlanItem]) -> None:
	"""
	Check that the plan's dependency graph can be scheduled.

	Raises:
		PlanValidationError: On duplicate ids, unknown or self
			dependencies, or a dependency cycle
	"""
	items = list(items)
	by_id: dict[str, PlanItem] = {}
	for item in items:
		if item.id in by_id:
			raise PlanValidationError(f"Duplicate plan item id: {item.id}")
		by_id[item.id] = item

	for item in items:
		for dep in item.dependencies:
			if dep == item.id:
				raise PlanValidationError(f"Item {item.id} depends on itself")
			if dep not in by_id:
				raise PlanValidationError(f"Item {item.id} depends on unknown item {dep}")

	# Depth-first search with colouring; the stack holds the current path
	WHITE, GREY, BLACK = 0, 1, 2
	colour = {item_id: WHITE for item_id in by_id}

	for root in by_id:
		if colour[root] != WHITE:
			continue
		path: list[str] = []
		stack: list[tuple[str, Iterable[str]]] = [(root, iter(by_id[root].dependencies))]
		colour[root] = GREY
		path.append(root)
		while stack:
			node, deps = stack[-1]
			advanced = False
			for dep in deps:
				if colour[dep] == GREY:
					cycle = path[path.index(dep):] + [dep]
					raise PlanValidationError(f"Dependency cycle: {' -> '.join(cycle)}")
				if colour[dep] == WHITE:
					colour[dep] = GREY
					path.append(dep)
					stack.append((dep, iter(by_id[dep].dependencies)))
					advanced = True
					break
			if not advanced:
				colour[node] = BLACK
				path.pop()
				stack.pop()


class StepScheduler:
	"""Chooses which pending plan item runs next."""

	def is_eligible(self, item: PlanItem, plan: PlanModel) -> bool:
		"""True if the item is pending and all its dependencies are resolved."""
		if item.status != PlanItemStatus.PENDING:
			return False
		for dep in item.dependencies:
			dep_item = plan.get(dep)
			if dep_item is None or dep_item.status not in RESOLVED_STATUSES:
				return False
		return True

	def select_next(self, plan: PlanModel) -> Optional[PlanItem]:
		"""Return the next runnable item, or None when nothing can run."""
		for item in plan:
			if self.is_eligible(item, plan):
				return item
		return None

	def blocked_items(self, plan: PlanModel) -> list[PlanItem]:
		"""Pending items that cannot run yet."""
		return [
			item for item in plan
			if item.status == PlanItemStatus.PENDING and not self.is_eligible(item, plan)
		]
