"""Plans module - Plan items, the plan model and planner output parsing."""

from .models import PlanItem, PlanItemStatus, PlanModel
from .parser import parse_plan_response

__all__ = [
	"PlanItem",
	"PlanItemStatus",
	"PlanModel",
	"parse_plan_response",
]
