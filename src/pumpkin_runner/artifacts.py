from __future__ import annotations

import logging
import re
import shutil
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pumpkin_runner.workspace import Workspace

logger = logging.getLogger(__name__)

SECTION_PATTERN = re.compile(r"^\[\s*([A-Za-z0-9_.\-]+)\s*\]\s*(?:#.*)?$")
NAME_PATTERN = re.compile(r"^name\s*=\s*(.+)$")


class ArtifactError(RuntimeError):
    """Raised when an existing artifact cannot be staged."""


class Platform(str, Enum):
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"


@dataclass(frozen=True, slots=True)
class ArtifactSpec:
    library_prefix: str
    library_extension: str
    build_subdir: str
    executable_suffix: str = ""


ARTIFACT_SPECS: dict[Platform, ArtifactSpec] = {
    Platform.WINDOWS: ArtifactSpec("", ".dll", "release", ".exe"),
    Platform.MACOS: ArtifactSpec("lib", ".dylib", "debug"),
    Platform.LINUX: ArtifactSpec("lib", ".so", "debug"),
}


def resolve_platform(sys_platform: str | None = None) -> Platform:
    value = sys.platform if sys_platform is None else sys_platform
    if value == "win32" or value == "cygwin":
        return Platform.WINDOWS
    if value == "darwin":
        return Platform.MACOS
    return Platform.LINUX


def _unquote(raw: str) -> str:
    value = raw.strip()
    for quote in ('"', "'"):
        if value.startswith(quote):
            end = value.find(quote, 1)
            if end != -1:
                return value[1:end]
    return value.split("#", 1)[0].strip()


def read_project_name(manifest_path: Path) -> str | None:
    """Return ``name`` from the ``[package]`` table of a Cargo manifest.

    Only the one key is needed, so this is a line-level match rather than a
    full TOML parse: section headers are tracked, ``name = "..."`` is accepted
    inside ``[package]`` only, and one layer of single or double quotes is
    trimmed along with any trailing comment.
    """
    if not manifest_path.exists():
        return None
    try:
        content = manifest_path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise ArtifactError(f"Failed to read {manifest_path.name}: {exc}") from exc

    section: str | None = None
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        header = SECTION_PATTERN.match(line)
        if header:
            section = header.group(1)
            continue
        if line.startswith("["):
            section = None
            continue
        if section != "package":
            continue
        match = NAME_PATTERN.match(line)
        if match:
            name = _unquote(match.group(1))
            return name or None
    return None


@dataclass(slots=True)
class StageReport:
    server_binary: Path | None = None
    plugin: Path | None = None
    plugin_filename: str | None = None
    plugin_source: Path | None = None

    @property
    def plugin_missing(self) -> bool:
        return self.plugin_filename is not None and self.plugin is None


class ArtifactResolver:
    def __init__(self, workspace: Workspace, spec: ArtifactSpec, binary_name: str) -> None:
        self.workspace = workspace
        self.spec = spec
        self.binary_name = binary_name

    @property
    def server_filename(self) -> str:
        return f"{self.binary_name}{self.spec.executable_suffix}"

    @property
    def server_source(self) -> Path:
        return self.workspace.companion_dir / "target" / "debug" / self.server_filename

    @property
    def staged_server(self) -> Path:
        return self.workspace.run_dir / self.server_filename

    def plugin_filename(self, project_name: str) -> str:
        crate_name = project_name.replace("-", "_")
        return f"{self.spec.library_prefix}{crate_name}{self.spec.library_extension}"

    def plugin_source(self, project_name: str) -> Path:
        return (
            self.workspace.root_dir
            / "target"
            / self.spec.build_subdir
            / self.plugin_filename(project_name)
        )

    def stage(self, project_name: str | None) -> StageReport:
        report = StageReport()

        if self.server_source.exists():
            _copy(self.server_source, self.staged_server)
            report.server_binary = self.staged_server
        else:
            logger.debug("No server binary at %s, skipping", self.server_source)

        if project_name is None:
            return report

        report.plugin_filename = self.plugin_filename(project_name)
        report.plugin_source = self.plugin_source(project_name)
        if not report.plugin_source.exists():
            logger.warning(
                "Plugin %s not found at %s", report.plugin_filename, report.plugin_source
            )
            return report

        try:
            self.workspace.plugins_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactError(f"Failed to create plugins directory: {exc}") from exc
        destination = self.workspace.plugins_dir / report.plugin_filename
        _copy(report.plugin_source, destination)
        report.plugin = destination
        return report


def _copy(source: Path, destination: Path) -> None:
    logger.debug("Copying %s -> %s", source, destination)
    try:
        shutil.copy2(source, destination)
    except OSError as exc:
        raise ArtifactError(f"Failed to copy {source.name}: {exc}") from exc
