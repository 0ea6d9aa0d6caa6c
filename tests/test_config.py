"""Tests for the configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from aiee_team.config import Config, _apply_env_overrides, _apply_toml, load_config


def test_config_defaults():
	"""Config should have sensible defaults."""
	config = Config()
	assert config.config_dir.is_absolute()
	assert config.data_dir.is_absolute()
	assert config.config_file == config.config_dir / "config.toml"
	assert config.log_dir == config.data_dir / "logs"
	assert config.max_cycles == 3
	assert config.reviewer_timeout == 600.0
	assert config.dedupe_feedback is False
	assert config.domains == {}


def test_config_env_overrides():
	"""Environment variables should override defaults, with types coerced."""
	config = Config()
	with patch.dict(os.environ, {
		"AIEE_TEAM_DATA_DIR": "/tmp/test-data",
		"AIEE_TEAM_MAX_CYCLES": "5",
		"AIEE_TEAM_REVIEWER_TIMEOUT": "30",
		"AIEE_TEAM_DEDUPE_FEEDBACK": "true",
	}):
		config = _apply_env_overrides(config)
		assert config.data_dir == Path("/tmp/test-data")
		assert config.log_dir == Path("/tmp/test-data/logs")
		assert config.max_cycles == 5
		assert config.reviewer_timeout == 30.0
		assert config.dedupe_feedback is True


def test_config_toml(tmp_path: Path):
	"""config.toml values and domain tables should be applied."""
	config_dir = tmp_path / "config"
	config_dir.mkdir()
	(config_dir / "config.toml").write_text(
		'max_cycles = 2\n'
		'gate_timeout = 120\n'
		'\n'
		'[domains.backend]\n'
		'reviewers = ["architecture-reviewer", "security-reviewer"]\n'
		'\n'
		'[domains.backend.commands]\n'
		'backend-engineer = "agent implement"\n'
	)
	config = _apply_toml(Config(config_dir=config_dir, data_dir=tmp_path / "data"))

	assert config.max_cycles == 2
	assert config.gate_timeout == 120.0
	assert config.domain_settings("backend")["reviewers"] == ["architecture-reviewer", "security-reviewer"]
	assert config.domain_settings("backend")["commands"] == {"backend-engineer": "agent implement"}
	assert config.domain_settings("frontend") == {}


def test_env_beats_toml(tmp_path: Path):
	config_dir = tmp_path / "config"
	config_dir.mkdir()
	(config_dir / "config.toml").write_text("max_cycles = 2\n")
	with patch.dict(os.environ, {
		"AIEE_TEAM_CONFIG_DIR": str(config_dir),
		"AIEE_TEAM_DATA_DIR": str(tmp_path / "data"),
		"AIEE_TEAM_MAX_CYCLES": "4",
	}):
		config = load_config()
	assert config.max_cycles == 4


def test_load_config_creates_dirs(tmp_path: Path):
	"""load_config should create directories."""
	with patch.dict(os.environ, {
		"AIEE_TEAM_DATA_DIR": str(tmp_path / "data"),
		"AIEE_TEAM_CONFIG_DIR": str(tmp_path / "config"),
	}):
		config = load_config()
		assert config.data_dir.exists()
		assert config.config_dir.exists()
		assert config.log_dir.exists()


def test_load_config_rejects_zero_cycles(tmp_path: Path):
	with patch.dict(os.environ, {
		"AIEE_TEAM_DATA_DIR": str(tmp_path / "data"),
		"AIEE_TEAM_CONFIG_DIR": str(tmp_path / "config"),
		"AIEE_TEAM_MAX_CYCLES": "0",
	}):
		with pytest.raises(ValueError, match="max_cycles"):
			load_config()
