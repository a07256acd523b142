"""CLI for stepwise: doctor, and inspection of archived runs."""

import argparse
import asyncio
import platform
import sys
import tomllib
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

from dotenv import load_dotenv
from rich.console import Console

from .archive import RunNotFoundError, TranscriptArchive
from .config import Config, load_config
from .logging_config import setup_logging
from .orchestrator.state import AgentStatus
from .plans.models import PlanModel
from .visualizer import render_run, render_run_list

T = TypeVar("T")

CORE_DEPS = ["pydantic", "aiosqlite", "platformdirs", "python-dotenv", "rich"]


def _with_archive(config: Config, fn: Callable[[TranscriptArchive], Awaitable[T]]) -> T:
	"""Open the run archive, run fn against it, and close it again."""
	async def _run() -> T:
		archive = TranscriptArchive(config.archive_db_path)
		await archive.init()
		try:
			return await fn(archive)
		finally:
			await archive.close()

	return asyncio.run(_run())


def _check_config_toml(config_dir: Path) -> tuple[str, str | None]:
	"""Check config.toml validity. Returns (status_text, issue_or_None)."""
	toml_path = config_dir / "config.toml"
	if not toml_path.exists():
		return "not found (using defaults)", None
	try:
		with open(toml_path, "rb") as f:
			tomllib.load(f)
		return "valid", None
	except tomllib.TOMLDecodeError as e:
		return f"INVALID: {e}", f"config.toml parse error: {e}"


def cmd_doctor(args: argparse.Namespace) -> None:
	"""Health check - verify installation and configuration."""
	print("stepwise doctor")
	print(f"{'=' * 40}")

	config = load_config()
	issues: list[str] = []

	py_ver = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
	print(f"  Python:       {py_ver}")
	print(f"  Platform:     {platform.system()} {platform.machine()}")
	print()

	print("  Core deps:")
	for dep in CORE_DEPS:
		try:
			dep_ver = pkg_version(dep)
			print(f"    {dep:22s} {dep_ver}")
		except Exception:
			print(f"    {dep:22s} NOT INSTALLED")
			issues.append(f"{dep} package not installed")
	print()

	print("  Config:")
	toml_status, toml_issue = _check_config_toml(config.config_dir)
	print(f"    config.toml:         {toml_status}")
	if toml_issue:
		issues.append(toml_issue)
	print(f"    completion tool:     {config.run.completion_tool}")
	print(f"    auto-advance limit:  {config.run.max_consecutive_auto_advances}")
	print()

	print("  Paths:")
	print(f"    Config: {config.config_dir}")
	print(f"    Data:   {config.data_dir}")
	print(f"    Runs:   {config.archive_db_path}")
	print()

	if issues:
		print(f"  Issues ({len(issues)}):")
		for issue in issues:
			print(f"    - {issue}")
		sys.exit(1)
	else:
		print("  All checks passed.")


def cmd_runs(args: argparse.Namespace) -> None:
	"""List archived runs."""
	config = load_config()
	status = AgentStatus(args.status) if args.status else None
	runs = _with_archive(config, lambda archive: archive.list_runs(status=status, limit=args.limit))
	render_run_list(runs, console=Console())


def cmd_show(args: argparse.Namespace) -> None:
	"""Show the plan and transcript of one archived run."""
	config = load_config()
	try:
		run = _with_archive(config, lambda archive: archive.get_run(args.run_id))
	except RunNotFoundError as e:
		print(str(e), file=sys.stderr)
		sys.exit(1)
	render_run(run, console=Console(), plan_only=args.plan_only)


def cmd_export(args: argparse.Namespace) -> None:
	"""Write an archived run as JSON, or its plan as markdown."""
	config = load_config()
	try:
		run = _with_archive(config, lambda archive: archive.get_run(args.run_id))
	except RunNotFoundError as e:
		print(str(e), file=sys.stderr)
		sys.exit(1)

	if args.markdown:
		data = f"# {run.goal}\n\n**Status:** {run.status.value}\n\n" + PlanModel(run.plan).to_markdown()
	else:
		data = run.model_dump_json(indent=2)
	if args.output:
		Path(args.output).write_text(data + "\n")
		print(f"Wrote {args.output}")
	else:
		print(data)


def cmd_delete(args: argparse.Namespace) -> None:
	"""Delete an archived run."""
	config = load_config()
	deleted = _with_archive(config, lambda archive: archive.delete_run(args.run_id))
	if not deleted:
		print(f"Run not found: {args.run_id}", file=sys.stderr)
		sys.exit(1)
	print(f"Deleted {args.run_id}")


def main() -> None:
	"""CLI entry point."""
	load_dotenv()

	parser = argparse.ArgumentParser(
		prog="stepwise",
		description="Supervised step-by-step execution of planned goals",
	)
	parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
	subparsers = parser.add_subparsers(dest="command")

	# doctor
	doctor_parser = subparsers.add_parser("doctor", help="Health check")
	doctor_parser.set_defaults(func=cmd_doctor)

	# runs
	runs_parser = subparsers.add_parser("runs", help="List archived runs")
	runs_parser.add_argument(
		"--status",
		type=str,
		default=None,
		choices=[s.value for s in AgentStatus],
		help="Only runs that ended with this status",
	)
	runs_parser.add_argument("--limit", type=int, default=50, help="Max results")
	runs_parser.set_defaults(func=cmd_runs)

	# show
	show_parser = subparsers.add_parser("show", help="Show an archived run")
	show_parser.add_argument("run_id", help="Run ID")
	show_parser.add_argument("--plan-only", action="store_true", help="Skip the transcript")
	show_parser.set_defaults(func=cmd_show)

	# export
	export_parser = subparsers.add_parser("export", help="Export an archived run as JSON")
	export_parser.add_argument("run_id", help="Run ID")
	export_parser.add_argument("--output", "-o", type=str, default=None, help="Output file (default: stdout)")
	export_parser.add_argument("--markdown", action="store_true", help="Export the plan as a markdown checklist")
	export_parser.set_defaults(func=cmd_export)

	# delete
	delete_parser = subparsers.add_parser("delete", help="Delete an archived run")
	delete_parser.add_argument("run_id", help="Run ID")
	delete_parser.set_defaults(func=cmd_delete)

	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	config = load_config()
	setup_logging(
		level="DEBUG" if args.verbose else config.log_level,
		log_dir=config.log_dir,
	)

	args.func(args)
