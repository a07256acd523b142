"""Tests for step selection and dependency validation."""

import pytest

from stepwise.errors import PlanValidationError
from stepwise.orchestrator.scheduler import StepScheduler, validate_dependencies
from stepwise.plans.models import PlanItemStatus, PlanModel

from .helpers import make_items


class TestSelectNext:
	"""Tests for StepScheduler.select_next."""

	@pytest.fixture
	def scheduler(self):
		return StepScheduler()

	def test_declaration_order_without_dependencies(self, scheduler):
		"""Test that independent items run in the order they were declared."""
		plan = PlanModel(make_items((1,), (2,), (3,)))
		order = []
		while (item := scheduler.select_next(plan)) is not None:
			order.append(item.id)
			plan.mark_active(item.id)
			plan.mark_completed(item.id)

		assert order == ["1", "2", "3"]

	def test_dependency_waits_for_completion(self, scheduler):
		"""Test that S2 depending on S1 never starts before S1 completes."""
		plan = PlanModel(make_items((2, [1]), (1,)))

		first = scheduler.select_next(plan)
		assert first.id == "1"

		plan.mark_active("1")
		assert scheduler.select_next(plan) is None

		plan.mark_completed("1")
		assert scheduler.select_next(plan).id == "2"

	def test_skipped_dependency_is_resolved(self, scheduler):
		plan = PlanModel(make_items((1,), (2, [1])))
		plan.toggle_skip("1")

		assert scheduler.select_next(plan).id == "2"

	def test_failed_dependency_blocks(self, scheduler):
		plan = PlanModel(make_items((1,), (2, [1])))
		plan.mark_active("1")
		plan.mark_failed("1")

		assert scheduler.select_next(plan) is None
		assert [i.id for i in scheduler.blocked_items(plan)] == ["2"]

	def test_skipped_items_are_not_selected(self, scheduler):
		plan = PlanModel(make_items((1,), (2,)))
		plan.toggle_skip("1")

		assert scheduler.select_next(plan).id == "2"

	def test_empty_plan(self, scheduler):
		assert scheduler.select_next(PlanModel()) is None
		assert scheduler.blocked_items(PlanModel()) == []

	def test_later_item_runs_when_earlier_is_blocked(self, scheduler):
		"""Test that a blocked item doesn't hold up independent ones after it."""
		plan = PlanModel(make_items((1,), (2, [3]), (3,)))
		plan.mark_active("1")
		plan.mark_completed("1")

		assert scheduler.select_next(plan).id == "3"


class TestValidateDependencies:
	"""Tests for dependency graph validation."""

	def test_valid_graph(self):
		validate_dependencies(make_items((1,), (2, [1]), (3, [1, 2])))

	def test_dangling_dependency(self):
		with pytest.raises(PlanValidationError, match="unknown item 9"):
			validate_dependencies(make_items((1, [9])))

	def test_self_dependency(self):
		with pytest.raises(PlanValidationError, match="depends on itself"):
			validate_dependencies(make_items((1, [1])))

	def test_duplicate_ids(self):
		with pytest.raises(PlanValidationError, match="Duplicate"):
			validate_dependencies(make_items((1,), (1,)))

	def test_cycle_is_reported_with_path(self):
		with pytest.raises(PlanValidationError, match="cycle") as exc_info:
			validate_dependencies(make_items((1, [3]), (2, [1]), (3, [2])))

		message = str(exc_info.value)
		assert "1" in message and "2" in message and "3" in message

	def test_diamond_is_not_a_cycle(self):
		validate_dependencies(make_items((1,), (2, [1]), (3, [1]), (4, [2, 3])))

	def test_validation_does_not_touch_statuses(self):
		items = make_items((1,), (2, [1]))
		validate_dependencies(items)

		assert all(i.status == PlanItemStatus.PENDING for i in items)
