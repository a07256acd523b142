"""Rich views for plans."""

from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from ..plans.models import RESOLVED_STATUSES, PlanItem, PlanItemStatus

STATUS_ICONS = {
	PlanItemStatus.PENDING: "[dim][ ][/dim]",
	PlanItemStatus.ACTIVE: "[yellow][~][/yellow]",
	PlanItemStatus.COMPLETED: "[green][x][/green]",
	PlanItemStatus.SKIPPED: "[dim][-][/dim]",
	PlanItemStatus.FAILED: "[red][!][/red]",
}


def render_plan(items: Iterable[PlanItem], goal: str = "", console: Optional[Console] = None) -> None:
	"""Render plan items as a Rich Tree in declaration order."""
	console = console or Console()
	items = list(items)

	done = len([i for i in items if i.status in RESOLVED_STATUSES])
	tree = Tree(f"[bold]{escape(goal) if goal else 'Plan'}[/bold]  [dim]({done}/{len(items)} steps)[/dim]")

	if not items:
		tree.add("[dim]No steps.[/dim]")

	for index, item in enumerate(items, start=1):
		icon = STATUS_ICONS.get(item.status, "[ ]")
		label = f"{icon} [bold]{index}. {escape(item.title)}[/bold]"
		if item.assigned_worker:
			label += f" [magenta]@{escape(item.assigned_worker)}[/magenta]"
		branch = tree.add(label)
		if item.description:
			branch.add(f"[dim]{escape(item.description)}[/dim]")
		if item.dependencies:
			branch.add(f"[dim]after: {', '.join(item.dependencies)}[/dim]")

	console.print(tree)
