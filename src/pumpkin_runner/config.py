from __future__ import annotations

import json
import shlex
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

DEFAULT_CONFIG_FILE = "pumpkin.toml"


class ConfigError(RuntimeError):
    """Raised when the runner configuration file cannot be used."""


@dataclass(slots=True)
class CompanionConfig:
    repo_url: str = "https://github.com/Pumpkin-MC/Pumpkin.git"
    directory: str = "Pumpkin"
    binary: str = "pumpkin"


@dataclass(slots=True)
class WorkspaceConfig:
    run_dir: str = ".run"
    plugins_dir: str = "plugins"


@dataclass(slots=True)
class BuildConfig:
    command: str = "cargo"
    manifest: str = "Cargo.toml"

    def argv(self) -> list[str]:
        return _split_command(self.command, "build.command")


@dataclass(slots=True)
class VcsConfig:
    command: str = "git"

    def argv(self) -> list[str]:
        return _split_command(self.command, "vcs.command")


@dataclass(slots=True)
class RunnerConfig:
    companion: CompanionConfig = field(default_factory=CompanionConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    vcs: VcsConfig = field(default_factory=VcsConfig)

    @classmethod
    def default(cls) -> RunnerConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> RunnerConfig:
        return cls(
            companion=_section(CompanionConfig, data, "companion"),
            workspace=_section(WorkspaceConfig, data, "workspace"),
            build=_section(BuildConfig, data, "build"),
            vcs=_section(VcsConfig, data, "vcs"),
        )

    def to_dict(self) -> dict:
        return {
            "companion": {
                "repo_url": self.companion.repo_url,
                "directory": self.companion.directory,
                "binary": self.companion.binary,
            },
            "workspace": {
                "run_dir": self.workspace.run_dir,
                "plugins_dir": self.workspace.plugins_dir,
            },
            "build": {
                "command": self.build.command,
                "manifest": self.build.manifest,
            },
            "vcs": {
                "command": self.vcs.command,
            },
        }


def _split_command(command: str, key: str) -> list[str]:
    try:
        argv = shlex.split(command)
    except ValueError as exc:
        raise ConfigError(f"Invalid {key}: {exc}") from exc
    if not argv:
        raise ConfigError(f"{key} must not be empty.")
    return argv


def _section(section_cls: type, data: dict, name: str):
    values = data.get(name, {})
    if not isinstance(values, dict):
        raise ConfigError(f"[{name}] must be a table.")
    known = {item.name for item in fields(section_cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in [{name}]: {', '.join(unknown)}")
    for key, value in values.items():
        if not isinstance(value, str):
            raise ConfigError(f"{name}.{key} must be a string.")
    return section_cls(**values)


def dumps_toml(config: RunnerConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ("companion", "workspace", "build", "vcs"):
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {json.dumps(str(value), ensure_ascii=False)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> RunnerConfig:
    if not path.exists():
        return RunnerConfig.default()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return RunnerConfig.from_dict(data)


def save_config(path: Path, config: RunnerConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
