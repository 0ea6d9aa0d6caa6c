"""CLI for aiee-team: backend, frontend, and domains commands."""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from .config import Config, load_config
from .errors import AieeTeamError
from .logging_config import setup_logging
from .models import CycleResult
from .registry import DOMAINS, resolve_domain
from .summary import format_summary, render_domains, render_summary
from .workflow import create_workflow

console = Console()


async def _confirm_continue(next_cycle: int, result: CycleResult) -> bool:
	"""Ask on the terminal whether to run another cycle."""
	caveats = result.review.issues + result.gate_feedback.issues
	console.print(
		f"\nCycle {result.cycle} passed the gate with "
		f"[bold]{result.decision.verdict.value}[/bold] ({len(caveats)} open recommendations)."
	)
	for item in caveats:
		console.print(f"  - {item.attributed()}")
	return await asyncio.to_thread(Confirm.ask, f"Continue to cycle {next_cycle}?", default=False)


def _run_domain(domain: str, task: str, config: Config) -> int:
	"""Run one workflow in the current directory; returns the exit code."""
	if not task.strip():
		console.print("[red]Task description is empty.[/red]")
		return 1
	try:
		workflow = create_workflow(domain, config=config, confirm=_confirm_continue)
	except AieeTeamError as e:
		console.print(f"[red]Configuration error:[/red] {e}")
		console.print(f"Configure collaborator commands in {config.config_file}")
		return 1

	summary = asyncio.run(workflow.run(task, Path.cwd()))
	if console.is_terminal:
		render_summary(summary, console=console)
	else:
		print(format_summary(summary), end="")
	# Outcome is reported in the summary, not the exit status
	return 0


def cmd_backend(args: argparse.Namespace) -> None:
	"""Run the backend workflow."""
	sys.exit(_run_domain("backend", args.task, args.config))


def cmd_frontend(args: argparse.Namespace) -> None:
	"""Run the frontend workflow."""
	sys.exit(_run_domain("frontend", args.task, args.config))


def cmd_domains(args: argparse.Namespace) -> None:
	"""Show each domain's phases and configured commands."""
	config: Config = args.config
	names = list(DOMAINS) + [name for name in config.domains if name not in DOMAINS]
	specs = []
	commands: dict[str, dict[str, str]] = {}
	for name in names:
		settings = config.domain_settings(name)
		try:
			specs.append(resolve_domain(name, settings))
		except AieeTeamError as e:
			console.print(f"[red]{name}:[/red] {e}")
			continue
		commands[name] = settings.get("commands", {})

	console.print(f"Config file: {config.config_file}")
	console.print(f"Max cycles: {config.max_cycles}  |  Reviewer timeout: {config.reviewer_timeout:g}s\n")
	render_domains(specs, commands, console=console)


def main() -> None:
	"""CLI entry point."""
	parser = argparse.ArgumentParser(
		prog="aiee-team",
		description="Quality-gated implement / review / gate workflow",
	)
	subparsers = parser.add_subparsers(dest="command")

	task_help = "Task as '<fix:|feat:|refactor:> <free text>'"

	backend_parser = subparsers.add_parser("backend", help="Run the backend workflow")
	backend_parser.add_argument("task", help=task_help)
	backend_parser.set_defaults(func=cmd_backend)

	frontend_parser = subparsers.add_parser("frontend", help="Run the frontend workflow")
	frontend_parser.add_argument("task", help=task_help)
	frontend_parser.set_defaults(func=cmd_frontend)

	domains_parser = subparsers.add_parser("domains", help="Show domains and collaborator commands")
	domains_parser.set_defaults(func=cmd_domains)

	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	try:
		config = load_config()
	except (ValueError, TypeError, OSError) as e:
		# tomllib.TOMLDecodeError is a ValueError
		console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
		sys.exit(1)
	setup_logging("aiee_team", level=config.log_level, log_dir=config.log_dir)
	args.config = config
	args.func(args)
