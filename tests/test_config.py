#!/usr/bin/env python3
"""Tests for configuration loading and validation."""
from pathlib import Path

import pytest

from heatscope.config import Config, load_config

CONFIGS = Path(__file__).resolve().parent.parent / "configs"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)


def write(path: Path, text: str) -> str:
    path.write_text(text)
    return str(path)


def test_example_configs_load():
    """The shipped configurations load and validate."""
    synthetic = load_config(str(CONFIGS / "synthetic.yaml"))
    assert isinstance(synthetic, Config)
    assert synthetic.source.kind == "synthetic"
    assert synthetic.global_.window_s == 3600
    assert synthetic.source.components[1].type == "exponential"

    command = load_config(str(CONFIGS / "command.yaml"))
    assert command.source.kind == "command"
    assert command.script == "syscalls.sh"
    assert "aggregation" in command.program
    assert command.max == 64


def test_defaults():
    config = Config()

    assert config.min == 0
    assert config.max == 100000
    assert config.global_.tick_interval_s == 1
    assert config.global_.window_s == 3600
    assert config.server.port == 8001
    assert config.source.kind == "synthetic"


def test_unknown_fields_rejected(tmp_path):
    path = write(tmp_path / "conf.yaml", "min: 0\nmax: 10\nbogus: 1\n")
    with pytest.raises(ValueError, match="validation failed"):
        load_config(path)

    path = write(tmp_path / "nested.yaml", "global:\n  windw_s: 10\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_empty_value_range_rejected(tmp_path):
    path = write(tmp_path / "conf.yaml", "min: 10\nmax: 10\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_command_source_needs_program(tmp_path):
    path = write(tmp_path / "conf.yaml", "source:\n  kind: command\n")
    with pytest.raises(ValueError, match="program"):
        load_config(path)


def test_non_mapping_rejected(tmp_path):
    path = write(tmp_path / "conf.yaml", "- a\n- b\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(path)


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/heatscope.yaml")


def test_missing_script(tmp_path):
    path = write(tmp_path / "conf.yaml", "source:\n  kind: command\nscript: gone.sh\n")
    with pytest.raises(FileNotFoundError, match="gone.sh"):
        load_config(path)


def test_inline_program_wins_over_script(tmp_path):
    path = write(
        tmp_path / "conf.json",
        '{"source": {"kind": "command"}, "program": "echo hi", "script": "gone.sh"}'
    )
    config = load_config(path)
    assert config.program == "echo hi"


def test_raw_program_file(tmp_path):
    """A file that is not YAML/JSON is the program itself."""
    path = write(tmp_path / "trace.sh", "echo '{}'\n")
    config = load_config(path)

    assert config.source.kind == "command"
    assert config.program == "echo '{}'\n"
    assert config.script == path
    assert (config.min, config.max) == (0, 100000)


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    path = write(tmp_path / "conf.yaml", "min: 0\nmax: 10\n")

    config = load_config(path)

    assert config.server.port == 9000
    assert config.global_.log_level == "DEBUG"


def test_conf_view():
    config = Config(program="trace", min=1, max=2)
    assert config.conf_view() == {"program": "trace", "script": None, "min": 1, "max": 2}
