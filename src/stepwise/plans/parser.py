"""
Parsing of planner output into plan items.

Planner adapters usually get plain text back from a model. This module
pulls the JSON plan out of that text and turns it into PlanItems,
tolerating fenced code blocks and the common wrapper shapes.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from ..errors import PlanningError
from .models import PlanItem, PlanItemStatus

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)

# Keys that may wrap the item array
_WRAPPER_KEYS = ("steps", "plan", "items")


def _extract_json(text: str) -> Any:
	fenced = _FENCE_RE.search(text)
	candidate = fenced.group(1) if fenced else text
	candidate = candidate.strip()
	try:
		return json.loads(candidate)
	except json.JSONDecodeError as e:
		# Fall back to the outermost array in the text
		start = candidate.find("[")
		end = candidate.rfind("]")
		if start != -1 and end > start:
			try:
				return json.loads(candidate[start:end + 1])
			except json.JSONDecodeError:
				pass
		raise PlanningError(f"Invalid JSON in plan response: {e}") from e


def parse_plan_response(text: str) -> list[PlanItem]:
	"""
	Parse a planner's text response into plan items.

	Args:
		text: Raw response, either a JSON array or an object wrapping one
			under "steps", "plan" or "items", optionally in a code fence

	Returns:
		List of pending PlanItems in declaration order

	Raises:
		PlanningError: If no usable plan can be extracted
	"""
	if not text or not text.strip():
		raise PlanningError("Empty plan response")

	data = _extract_json(text)
	if isinstance(data, dict):
		for key in _WRAPPER_KEYS:
			if isinstance(data.get(key), list):
				data = data[key]
				break
		else:
			raise PlanningError("Plan response object has no step list")

	if not isinstance(data, list):
		raise PlanningError(f"Plan response must be a list, got {type(data).__name__}")

	items = []
	for index, raw in enumerate(data, start=1):
		if not isinstance(raw, dict):
			raise PlanningError(f"Plan step {index} is not an object")
		raw = dict(raw)
		raw.setdefault("id", f"step-{index}")
		# Planners don't get to decide execution state
		raw["status"] = PlanItemStatus.PENDING
		try:
			items.append(PlanItem.model_validate(raw))
		except ValidationError as e:
			raise PlanningError(f"Plan step {index} is invalid: {e.errors()[0]['msg']}") from e

	logger.debug(f"Parsed {len(items)} plan items")
	return items
