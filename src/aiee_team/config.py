"""Configuration system using platformdirs for cross-platform paths."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import platformdirs

APP_NAME = "aiee-team"
APP_AUTHOR = "aiee-team"


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	config_file: Path = field(init=False)
	log_dir: Path = field(init=False)

	# Iteration policy
	max_cycles: int = 3
	implementer_timeout: float = 1800.0
	reviewer_timeout: float = 600.0
	gate_timeout: float = 900.0
	dedupe_feedback: bool = False

	log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

	# Per-domain overrides: {"backend": {"reviewers": [...], "commands": {...}}}
	domains: dict[str, dict] = field(default_factory=dict)

	def __post_init__(self) -> None:
		self.config_file = self.config_dir / "config.toml"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)

	def domain_settings(self, domain: str) -> dict:
		"""Overrides configured for one domain (empty if none)."""
		return dict(self.domains.get(domain, {}))


_PATH_FIELDS = {"config_dir", "data_dir"}
_FLOAT_FIELDS = {"implementer_timeout", "reviewer_timeout", "gate_timeout"}


def _coerce(attr: str, val: str) -> object:
	"""Convert an environment string to the field's type."""
	if attr in _PATH_FIELDS:
		return Path(val)
	if attr in _FLOAT_FIELDS:
		return float(val)
	if attr == "max_cycles":
		return int(val)
	if attr == "dedupe_feedback":
		return val.strip().lower() in ("1", "true", "yes", "on")
	return val


def _apply_env_overrides(config: Config) -> Config:
	"""Apply AIEE_TEAM_* environment variable overrides."""
	env_map = {
		"AIEE_TEAM_CONFIG_DIR": "config_dir",
		"AIEE_TEAM_DATA_DIR": "data_dir",
		"AIEE_TEAM_MAX_CYCLES": "max_cycles",
		"AIEE_TEAM_IMPLEMENTER_TIMEOUT": "implementer_timeout",
		"AIEE_TEAM_REVIEWER_TIMEOUT": "reviewer_timeout",
		"AIEE_TEAM_GATE_TIMEOUT": "gate_timeout",
		"AIEE_TEAM_DEDUPE_FEEDBACK": "dedupe_feedback",
		"AIEE_TEAM_LOG_LEVEL": "log_level",
	}
	for env_key, attr in env_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, _coerce(attr, val))
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

	for key, val in data.items():
		if key == "domains" and isinstance(val, dict):
			config.domains.update(val)
		elif key in _PATH_FIELDS:
			setattr(config, key, Path(os.path.expanduser(val)))
		elif key in _FLOAT_FIELDS:
			setattr(config, key, float(val))
		elif hasattr(config, key):
			setattr(config, key, val)

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	# The config dir itself may be relocated by env before config.toml is read
	config_dir = os.getenv("AIEE_TEAM_CONFIG_DIR")
	if config_dir:
		config.config_dir = Path(config_dir)
		config.__post_init__()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	if config.max_cycles < 1:
		raise ValueError(f"max_cycles must be at least 1, got {config.max_cycles}")
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config
