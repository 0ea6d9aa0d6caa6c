"""Final summary rendering: plain text and Rich terminal views."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import FeedbackItem, TerminationReason, Verdict, WorkflowSummary
from .registry import DomainSpec

_REASON_TEXT = {
	TerminationReason.USER_DECLINED: "stopped after the user declined another cycle",
	TerminationReason.MAX_CYCLES_REACHED: "stopped at the cycle limit",
}

_VERDICT_STYLE = {
	Verdict.PASS: "green",
	Verdict.CONDITIONAL_PASS: "yellow",
	Verdict.FAIL: "red",
}


def outcome(summary: WorkflowSummary) -> tuple[str, str]:
	"""
	Label and style for the final outcome.

	A passing gate verdict with open blockers is reported as BLOCKED.
	"""
	if summary.passed:
		return summary.final_verdict.value, _VERDICT_STYLE[summary.final_verdict]
	if summary.final_verdict == Verdict.FAIL:
		return Verdict.FAIL.value, "red"
	blockers = len(summary.unresolved_blockers)
	return f"BLOCKED (gate verdict {summary.final_verdict.value}, {blockers} open blockers)", "red"


def format_summary(summary: WorkflowSummary) -> str:
	"""Plain-text summary. Unresolved items are always listed."""
	label, _ = outcome(summary)
	lines = [
		f"# {summary.domain} workflow: {summary.task}",
		"",
		f"Verdict: {label}",
		f"Cycles: {summary.cycles_run} ({_REASON_TEXT[summary.reason]})",
		"",
		"## Approved",
	]
	lines.extend(_bullets(summary.approved) or ["- (none)"])

	lines.extend(["", "## Unresolved blockers"])
	lines.extend(_bullets(summary.unresolved_blockers, label="[unresolved]") or ["- (none)"])

	lines.extend(["", "## Unresolved recommendations (non-blocking)"])
	lines.extend(_bullets(summary.unresolved_recommendations, label="[unresolved]") or ["- (none)"])
	return "\n".join(lines) + "\n"


def _bullets(items: list[FeedbackItem], label: str = "") -> list[str]:
	prefix = f"{label} " if label else ""
	return [f"- {prefix}{item.attributed()}" for item in items]


def render_summary(summary: WorkflowSummary, console: Optional[Console] = None) -> None:
	"""Render the final summary with Rich."""
	console = console or Console()
	label, style = outcome(summary)

	header = (
		f"[bold]Task:[/bold] {summary.task}\n"
		f"[bold]Verdict:[/bold] [{style}]{label}[/{style}]  |  "
		f"[bold]Cycles:[/bold] {summary.cycles_run}  |  "
		f"{_REASON_TEXT[summary.reason]}"
	)
	console.print(Panel(header, title=f"{summary.domain} workflow", border_style=style))

	if summary.approved:
		console.print(_feedback_table("Approved", summary.approved, "green"))
	else:
		console.print("[dim]No approved items recorded.[/dim]")

	if summary.unresolved:
		console.print(_feedback_table("Unresolved", summary.unresolved, "yellow"))
	else:
		console.print("[green]Nothing unresolved.[/green]")
	console.print()


def _feedback_table(title: str, items: list[FeedbackItem], style: str) -> Table:
	table = Table(title=title, title_style=f"bold {style}", show_lines=False)
	table.add_column("Kind", style="bold")
	table.add_column("Raised by")
	table.add_column("Category", style="dim")
	table.add_column("Finding")
	for item in items:
		table.add_row(
			item.kind.value,
			", ".join([item.collaborator_id, *item.also_raised_by]),
			item.category or "",
			item.text,
		)
	return table


def render_domains(
	domains: list[DomainSpec],
	commands: dict[str, dict[str, str]],
	console: Optional[Console] = None,
) -> None:
	"""Render the configured domains and whether each collaborator has a command."""
	console = console or Console()
	for domain in domains:
		table = Table(title=f"{domain.name}: {domain.description}", title_justify="left")
		table.add_column("Phase")
		table.add_column("Collaborator")
		table.add_column("Command")
		configured = commands.get(domain.name, {})
		rows = [("1 implement", domain.implementer)]
		rows.extend(("2 review", reviewer) for reviewer in domain.reviewers)
		rows.append(("3 gate", domain.gate))
		for phase, cid in rows:
			command = configured.get(cid)
			table.add_row(phase, cid, command if command else "[red]not configured[/red]")
		console.print(table)
		console.print()
