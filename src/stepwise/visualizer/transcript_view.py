"""Rich views for transcripts and archived runs."""

from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..orchestrator.state import RunSnapshot
from ..plans.models import RESOLVED_STATUSES
from ..transcript import EntryType, TranscriptEntry
from .plan_view import render_plan
from .utils import format_timestamp, run_duration, status_style, truncate_args

ENTRY_STYLES = {
	EntryType.USER: "bold",
	EntryType.THOUGHT: "italic",
	EntryType.CALL: "cyan",
	EntryType.RESULT: "",
	EntryType.ERROR: "red",
	EntryType.RESPONSE: "green",
	EntryType.SUMMARY: "green",
	EntryType.AUTO_ADVANCE: "yellow",
}


def render_transcript(entries: Iterable[TranscriptEntry], console: Optional[Console] = None) -> None:
	"""Render transcript entries as a table, oldest first."""
	console = console or Console()
	entries = list(entries)

	if not entries:
		console.print("[dim]Transcript is empty.[/dim]")
		return

	table = Table(title="Transcript")
	table.add_column("#", justify="right", style="dim")
	table.add_column("Time", style="dim")
	table.add_column("Type")
	table.add_column("Text")
	table.add_column("Args", style="dim")

	for entry in entries:
		style = ENTRY_STYLES.get(entry.type, "")
		type_label = f"[{style}]{entry.type.value}[/{style}]" if style else entry.type.value
		table.add_row(
			str(entry.id),
			entry.timestamp.strftime("%H:%M:%S"),
			type_label,
			escape(entry.text),
			escape(truncate_args(entry.tool_args)),
		)

	console.print(table)


def render_run_list(runs: list[RunSnapshot], console: Optional[Console] = None) -> None:
	"""Render a table of archived runs."""
	console = console or Console()

	if not runs:
		console.print("[dim]No runs archived yet.[/dim]")
		return

	table = Table(title="Runs")
	table.add_column("Run ID", style="cyan")
	table.add_column("Goal")
	table.add_column("Status")
	table.add_column("Steps", justify="right")
	table.add_column("Duration", justify="right")
	table.add_column("Started")

	for run in runs:
		style = status_style(run.status)
		done = len([i for i in run.plan if i.status in RESOLVED_STATUSES])
		table.add_row(
			run.run_id or "-",
			escape(run.goal if len(run.goal) <= 50 else run.goal[:47] + "..."),
			f"[{style}]{run.status.value}[/{style}]",
			f"{done}/{len(run.plan)}",
			run_duration(run.started_at, run.ended_at),
			format_timestamp(run.started_at) if run.started_at else "",
		)

	console.print(table)


def render_run(run: RunSnapshot, console: Optional[Console] = None, plan_only: bool = False) -> None:
	"""Render one run: header panel, plan tree and transcript."""
	console = console or Console()
	style = status_style(run.status)

	lines = [
		f"[bold]Goal:[/bold] {escape(run.goal)}",
		f"[bold]Status:[/bold] [{style}]{run.status.value}[/{style}]",
	]
	if run.halt_reason:
		lines.append(f"[bold]Stopped by:[/bold] {escape(run.halt_reason)}")
	if run.started_at:
		lines.append(f"[bold]Started:[/bold] {run.started_at[:19]}")
	duration = run_duration(run.started_at, run.ended_at)
	if duration:
		lines.append(f"[bold]Duration:[/bold] {duration}")
	if run.touched_paths:
		lines.append(f"[bold]Files:[/bold] {escape(', '.join(run.touched_paths))}")
	if run.pending_action:
		lines.append(f"[bold]Pending:[/bold] {escape(run.pending_action.tool_name)} {escape(truncate_args(run.pending_action.args))}")

	console.print(Panel("\n".join(lines), title=f"Run: {run.run_id or '-'}", border_style="cyan"))
	render_plan(run.plan, goal=run.goal, console=console)
	if not plan_only:
		render_transcript(run.transcript, console=console)
