from __future__ import annotations

from pathlib import Path

import pytest

from sproc.config import ConfigError, ConfigLoader
from sproc.models import ShellMode, SpawnOptions


def _write_yaml(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


BASE_CONFIG = """
defaults:
  shell: native
  poll_interval_ms: 25
  max_parallel: 2
  options:
    umask: "022"
    bogus_option: true

logging:
  level: DEBUG
  file_path: "logs/sproc.log"

jobs:
  - name: greet
    command: echo
    args: [hello, 42]
    env:
      GREETING: hi
      DROPPED: null
  - command: ls
    args: "-l"
    shell: shell
    options:
      cwd: /tmp
      unset_env_others: true
"""


def test_loads_batch_config(tmp_path: Path) -> None:
    config_path = tmp_path / "sproc.yml"
    _write_yaml(config_path, BASE_CONFIG)

    config = ConfigLoader(config_path=config_path).load()

    assert config.defaults.poll_interval_ms == 25
    assert config.defaults.max_parallel == 2
    assert config.defaults.options == SpawnOptions(umask=0o022)
    assert config.logging.level == "DEBUG"
    assert config.logging.file_path == "logs/sproc.log"

    greet, listing = config.jobs
    assert greet.name == "greet"
    assert greet.args == ("hello", "42")
    assert greet.shell is ShellMode.NATIVE
    assert greet.env == {"GREETING": "hi", "DROPPED": None}
    assert greet.options == SpawnOptions(umask=0o022)

    assert listing.name == "ls"
    assert listing.args == ("-l",)
    assert listing.shell is ShellMode.SHELL
    assert listing.options == SpawnOptions(
        cwd="/tmp", umask=0o022, unset_env_others=True
    )


def test_uses_sproc_config_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "elsewhere.yml"
    _write_yaml(config_path, "jobs:\n  - command: \"true\"\n")
    monkeypatch.setenv("SPROC_CONFIG", str(config_path))

    config = ConfigLoader().load()

    assert [job.command for job in config.jobs] == ["true"]
    assert config.defaults.max_parallel == 4


def test_defaults_to_sproc_yml_in_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "sproc.yml", "jobs: []\n")
    monkeypatch.delenv("SPROC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)

    config = ConfigLoader().load()

    assert config.jobs == ()


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("- just\n- a list\n", "Expected mapping"),
        ("defaults: {}\n", "Missing config section: jobs"),
        ("jobs: {a: 1}\n", "must be a list"),
        ("jobs:\n  - args: [x]\n", "missing a command"),
        ("jobs:\n  - command: echo\n    shell: zsh\n", "Unknown shell mode"),
        ("defaults:\n  max_parallel: 0\njobs: []\n", "max_parallel"),
        ("defaults:\n  poll_interval_ms: -5\njobs: []\n", "poll_interval_ms"),
        ("defaults:\n  max_parallel: lots\njobs: []\n", "Invalid config value"),
        (
            "jobs:\n  - {name: a, command: echo}\n  - {name: a, command: ls}\n",
            "Duplicate job name",
        ),
        ("jobs:\n  - command: echo\n    options: [cwd]\n", "must be a mapping"),
        ("jobs: [\n", "Invalid YAML"),
    ],
)
def test_rejects_invalid_config(tmp_path: Path, content: str, message: str) -> None:
    config_path = tmp_path / "sproc.yml"
    _write_yaml(config_path, content)

    with pytest.raises(ConfigError, match=message):
        ConfigLoader(config_path=config_path).load()


def test_missing_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing batch config file"):
        ConfigLoader(config_path=tmp_path / "nope.yml").load()
