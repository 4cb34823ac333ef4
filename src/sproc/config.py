from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from sproc.models import ShellMode, SpawnOptions


class ConfigError(ValueError):
    """Raised when a batch file cannot be loaded or fails validation."""


@dataclass(frozen=True)
class JobConfig:
    name: str
    command: str
    args: Tuple[str, ...] = ()
    shell: ShellMode = ShellMode.NATIVE
    env: Dict[str, Optional[str]] = field(default_factory=dict)
    options: SpawnOptions = field(default_factory=SpawnOptions)


@dataclass(frozen=True)
class DefaultsConfig:
    shell: ShellMode = ShellMode.NATIVE
    poll_interval_ms: int = 100
    max_parallel: int = 4
    options: SpawnOptions = field(default_factory=SpawnOptions)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file_path: Optional[str] = None


@dataclass(frozen=True)
class BatchConfig:
    defaults: DefaultsConfig
    logging: LoggingConfig
    jobs: Tuple[JobConfig, ...]


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file: {path}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at root of config file: {path}")
    return data


def _parse_shell(value: Any) -> ShellMode:
    try:
        return ShellMode(str(value).lower())
    except ValueError as exc:
        choices = ", ".join(mode.value for mode in ShellMode)
        raise ConfigError(f"Unknown shell mode {value!r}; expected one of {choices}") from exc


class ConfigLoader:
    def __init__(self, config_path: Path | None = None) -> None:
        self._config_path = config_path
        self._logger = logging.getLogger(self.__class__.__name__)

    def load(self) -> BatchConfig:
        config_path = self._resolve_path()
        if not config_path.exists():
            raise ConfigError(f"Missing batch config file: {config_path}")
        config = self._build_config(_load_yaml(config_path))
        self._validate(config)
        return config

    def _resolve_path(self) -> Path:
        if self._config_path is not None:
            return Path(self._config_path)
        env_path = os.getenv("SPROC_CONFIG")
        if env_path:
            return Path(env_path)
        return Path.cwd() / "sproc.yml"

    def _build_config(self, data: Dict[str, Any]) -> BatchConfig:
        if "jobs" not in data:
            raise ConfigError("Missing config section: jobs")
        defaults_data = data.get("defaults") or {}
        logging_data = data.get("logging") or {}
        jobs_data = data["jobs"] or []
        for section, value in (("defaults", defaults_data), ("logging", logging_data)):
            if not isinstance(value, dict):
                raise ConfigError(f"Config section '{section}' must be a mapping")
        if not isinstance(jobs_data, list):
            raise ConfigError("Config section 'jobs' must be a list")

        try:
            defaults = DefaultsConfig(
                shell=_parse_shell(defaults_data.get("shell", "native")),
                poll_interval_ms=int(defaults_data.get("poll_interval_ms", 100)),
                max_parallel=int(defaults_data.get("max_parallel", 4)),
                options=self._options(defaults_data.get("options")),
            )
            logging_config = LoggingConfig(
                level=str(logging_data.get("level", "INFO")),
                file_path=logging_data.get("file_path"),
            )
            jobs = tuple(
                self._build_job(index, job, defaults)
                for index, job in enumerate(jobs_data)
            )
        except ConfigError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid config value: {exc}") from exc
        return BatchConfig(defaults=defaults, logging=logging_config, jobs=jobs)

    def _build_job(
        self, index: int, data: Any, defaults: DefaultsConfig
    ) -> JobConfig:
        if not isinstance(data, dict):
            raise ConfigError(f"Job #{index} must be a mapping")
        command = str(data.get("command") or "").strip()
        if not command:
            raise ConfigError(f"Job #{index} is missing a command")
        args = data.get("args") or []
        if not isinstance(args, list):
            args = [args]
        env = data.get("env") or {}
        if not isinstance(env, dict):
            raise ConfigError(f"Job #{index} env must be a mapping")
        shell = data.get("shell")
        return JobConfig(
            name=str(data.get("name") or command),
            command=command,
            args=tuple(str(arg) for arg in args),
            shell=_parse_shell(shell) if shell is not None else defaults.shell,
            # A null value unsets the variable for the child.
            env={str(k): None if v is None else str(v) for k, v in env.items()},
            options=defaults.options.merged_with(self._options(data.get("options"))),
        )

    def _options(self, data: Any) -> SpawnOptions:
        if data is not None and not isinstance(data, dict):
            raise ConfigError("Spawn options must be a mapping")
        return SpawnOptions.from_mapping(data, logger=self._logger)

    def _validate(self, config: BatchConfig) -> None:
        if config.defaults.max_parallel < 1:
            raise ConfigError(
                f"max_parallel must be at least 1: {config.defaults.max_parallel}"
            )
        if config.defaults.poll_interval_ms < 0:
            raise ConfigError(
                f"poll_interval_ms must not be negative: {config.defaults.poll_interval_ms}"
            )
        self._validate_job_names(list(config.jobs))

    def _validate_job_names(self, jobs: List[JobConfig]) -> None:
        seen = set()
        for job in jobs:
            if job.name in seen:
                raise ConfigError(f"Duplicate job name: {job.name}")
            seen.add(job.name)
