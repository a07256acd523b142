"""Shared utilities for visualizer views."""

import json
from datetime import datetime
from typing import Any, Optional

from ..orchestrator.state import AgentStatus

STATUS_STYLES = {
	AgentStatus.IDLE: "dim",
	AgentStatus.PLANNING: "cyan",
	AgentStatus.PLAN_REVIEW: "yellow",
	AgentStatus.THINKING: "cyan",
	AgentStatus.EXECUTING: "cyan",
	AgentStatus.ACTION_REVIEW: "yellow",
	AgentStatus.SUMMARIZING: "cyan",
	AgentStatus.AWAITING_CHANGES_REVIEW: "yellow",
	AgentStatus.COMPLETED: "green",
	AgentStatus.FAILED: "red",
}


def format_duration(seconds: float) -> str:
	"""Format a duration for display. e.g. '1.2s', '45ms', '2m 3s'."""
	if seconds < 0.001:
		return "<1ms"
	if seconds < 1.0:
		return f"{seconds * 1000:.0f}ms"
	if seconds < 60.0:
		return f"{seconds:.1f}s"
	minutes = int(seconds // 60)
	secs = seconds % 60
	return f"{minutes}m {secs:.0f}s"


def run_duration(started_at: Optional[str], ended_at: Optional[str]) -> str:
	"""Duration between two ISO timestamps, blank if either is missing."""
	if not started_at or not ended_at:
		return ""
	try:
		delta = datetime.fromisoformat(ended_at) - datetime.fromisoformat(started_at)
	except ValueError:
		return ""
	return format_duration(delta.total_seconds())


def format_timestamp(iso_str: str) -> str:
	"""Format an ISO timestamp as relative time (e.g. '2m ago') or absolute."""
	try:
		dt = datetime.fromisoformat(iso_str)
		delta = datetime.now() - dt
		total_secs = int(delta.total_seconds())

		if total_secs < 0:
			return iso_str[:19]
		if total_secs < 60:
			return f"{total_secs}s ago"
		if total_secs < 3600:
			return f"{total_secs // 60}m ago"
		if total_secs < 86400:
			return f"{total_secs // 3600}h ago"
		days = total_secs // 86400
		return f"{days}d ago"
	except (ValueError, TypeError):
		return str(iso_str)[:19]


def truncate_args(args: Optional[dict[str, Any]], max_len: int = 60) -> str:
	"""Shorten tool arguments for table display."""
	if not args:
		return ""
	text = json.dumps(args, default=str)
	if len(text) <= max_len:
		return text
	return text[:max_len - 3] + "..."


def status_style(status: AgentStatus) -> str:
	"""Return a Rich style string for a run status."""
	return STATUS_STYLES.get(status, "white")
