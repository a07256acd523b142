"""
Error taxonomy for orchestrated runs.

Planning and turn failures are fatal to a run. Execution failures are
recoverable and end up in the transcript as result text. A rejected
action is a deliberate stop by the supervisor, not a failure.
"""


class OrchestratorError(Exception):
	"""Base class for all run errors."""
	pass


class PlanningError(OrchestratorError):
	"""Raised when the planner cannot produce a usable plan."""
	pass


class PlanValidationError(PlanningError):
	"""Raised when a plan's items or dependency graph are inconsistent."""
	pass


class TurnError(OrchestratorError):
	"""Raised when the conversation session fails or stops making progress."""
	pass


class ExecutionError(OrchestratorError):
	"""Raised by executors when a tool invocation fails."""

	def __init__(self, message: str, tool_name: str | None = None):
		super().__init__(message)
		self.tool_name = tool_name


class RejectedAction(OrchestratorError):
	"""Recorded when the supervisor rejects a proposed action."""

	def __init__(self, tool_name: str):
		super().__init__(f"Action {tool_name} rejected by user")
		self.tool_name = tool_name


class ActionGateError(OrchestratorError):
	"""Raised when a second action is proposed while one is pending."""
	pass


class RunCancelled(OrchestratorError):
	"""Raised internally when a result belongs to a run that was reset."""
	pass
