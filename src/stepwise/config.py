"""Configuration system using platformdirs for cross-platform paths."""

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import platformdirs

APP_NAME = "stepwise"
APP_AUTHOR = "stepwise"


@dataclass
class RunSettings:
	"""Knobs for a single run, set from the [run] table of config.toml."""

	# Tool the session calls to say the current step is finished
	completion_tool: str = "step_complete"
	# Case-insensitive phrases that mark a step finished when no tool is called
	completion_phrases: tuple[str, ...] = ("step complete", "done")
	# Steps in a row allowed to end without any signal before the run fails
	max_consecutive_auto_advances: Optional[int] = 3
	# Characters of a tool result shown in the transcript
	result_preview_chars: int = 300
	summarize_on_completion: bool = False
	default_agent_role: str = "coder"

	# Collaborator timeouts in seconds, None waits forever
	plan_timeout_seconds: Optional[float] = None
	turn_timeout_seconds: Optional[float] = None
	tool_timeout_seconds: Optional[float] = None

	def update(self, data: dict) -> None:
		"""Apply known keys from a mapping, ignoring the rest."""
		known = {f.name for f in fields(self)}
		for key, val in data.items():
			if key not in known:
				continue
			if key == "completion_phrases":
				val = tuple(val)
			setattr(self, key, val)


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	config_file: Path = field(init=False)
	archive_db_path: Path = field(init=False)
	log_dir: Path = field(init=False)

	# User-configurable
	log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
	run: RunSettings = field(default_factory=RunSettings)

	def __post_init__(self) -> None:
		self.config_file = self.config_dir / "config.toml"
		self.archive_db_path = self.data_dir / "runs.db"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)


def _apply_env_overrides(config: Config) -> Config:
	"""Apply STEPWISE_* environment variable overrides."""
	env_map = {
		"STEPWISE_CONFIG_DIR": "config_dir",
		"STEPWISE_DATA_DIR": "data_dir",
	}
	for env_key, attr in env_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))

	log_level = os.getenv("STEPWISE_LOG_LEVEL")
	if log_level:
		config.log_level = log_level

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	path_fields = {"config_dir", "data_dir"}
	for key, val in data.items():
		if key == "run" and isinstance(val, dict):
			config.run.update(val)
		elif key in path_fields:
			setattr(config, key, Path(os.path.expanduser(val)))
		elif key == "log_level":
			config.log_level = str(val)

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	# The config dir itself may come from the environment
	config_dir = os.getenv("STEPWISE_CONFIG_DIR")
	if config_dir:
		config.config_dir = Path(config_dir)
		config.__post_init__()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config

