"""Tests for the stepwise CLI."""

import argparse
import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from stepwise.archive import TranscriptArchive
from stepwise.cli import cmd_delete, cmd_doctor, cmd_export, cmd_runs, cmd_show, main
from stepwise.config import Config
from stepwise.orchestrator.state import AgentStatus, RunSnapshot
from stepwise.plans.models import PlanItem


@pytest.fixture
def config(tmp_path: Path) -> Config:
	config = Config(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
	config.ensure_dirs()
	return config


@pytest.fixture
def archived(config: Config) -> RunSnapshot:
	run = RunSnapshot(
		run_id="run42",
		goal="Add a changelog",
		status=AgentStatus.COMPLETED,
		plan=[PlanItem(id="1", title="Write CHANGELOG.md")],
		started_at="2026-01-01T10:00:00",
		ended_at="2026-01-01T10:02:00",
	)

	async def _save():
		archive = TranscriptArchive(config.archive_db_path)
		await archive.save_run(run)
		await archive.close()

	asyncio.run(_save())
	return run


@pytest.mark.parametrize("command", ["doctor", "runs", "show", "export", "delete"])
def test_subparsers_registered(command):
	with patch("sys.argv", ["stepwise", command, "--help"]):
		with pytest.raises(SystemExit) as exc_info:
			main()
	assert exc_info.value.code == 0


def test_no_command_prints_help():
	with patch("sys.argv", ["stepwise"]):
		with pytest.raises(SystemExit) as exc_info:
			main()
	assert exc_info.value.code == 1


def test_runs_lists_archived(config, archived, capsys):
	with patch("stepwise.cli.load_config", return_value=config):
		cmd_runs(argparse.Namespace(status=None, limit=50))

	assert "run42" in capsys.readouterr().out


def test_runs_status_filter(config, archived, capsys):
	with patch("stepwise.cli.load_config", return_value=config):
		cmd_runs(argparse.Namespace(status="failed", limit=50))

	assert "No runs archived yet." in capsys.readouterr().out


def test_show_renders_run(config, archived, capsys):
	with patch("stepwise.cli.load_config", return_value=config):
		cmd_show(argparse.Namespace(run_id="run42", plan_only=False))

	out = capsys.readouterr().out
	assert "Add a changelog" in out
	assert "Write CHANGELOG.md" in out


def test_show_missing_run_exits(config, capsys):
	with patch("stepwise.cli.load_config", return_value=config):
		with pytest.raises(SystemExit) as exc_info:
			cmd_show(argparse.Namespace(run_id="nope", plan_only=False))

	assert exc_info.value.code == 1
	assert "Run not found: nope" in capsys.readouterr().err


def test_export_to_file(config, archived, tmp_path):
	out_file = tmp_path / "run.json"
	with patch("stepwise.cli.load_config", return_value=config):
		cmd_export(argparse.Namespace(run_id="run42", output=str(out_file), markdown=False))

	data = json.loads(out_file.read_text())
	assert data["run_id"] == "run42"
	assert data["status"] == "completed"


def test_delete(config, archived, capsys):
	with patch("stepwise.cli.load_config", return_value=config):
		cmd_delete(argparse.Namespace(run_id="run42"))
		with pytest.raises(SystemExit):
			cmd_delete(argparse.Namespace(run_id="run42"))

	assert "Deleted run42" in capsys.readouterr().out


def test_doctor_passes(config, capsys):
	with patch("stepwise.cli.load_config", return_value=config):
		cmd_doctor(argparse.Namespace())

	out = capsys.readouterr().out
	assert "stepwise doctor" in out
	assert "All checks passed." in out


def test_doctor_flags_bad_toml(config, capsys):
	(config.config_dir / "config.toml").write_text("not = [valid")
	with patch("stepwise.cli.load_config", return_value=config):
		with pytest.raises(SystemExit):
			cmd_doctor(argparse.Namespace())

	assert "config.toml parse error" in capsys.readouterr().out


def test_export_markdown(config, archived, capsys):
	with patch("stepwise.cli.load_config", return_value=config):
		cmd_export(argparse.Namespace(run_id="run42", output=None, markdown=True))

	out = capsys.readouterr().out
	assert out.startswith("# Add a changelog")
	assert "1. [ ] Write CHANGELOG.md" in out
