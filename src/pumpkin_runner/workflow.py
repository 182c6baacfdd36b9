from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum

from pumpkin_runner.artifacts import (
    ARTIFACT_SPECS,
    ArtifactResolver,
    Platform,
    StageReport,
    read_project_name,
    resolve_platform,
)
from pumpkin_runner.config import RunnerConfig
from pumpkin_runner.supervisor import ProcessOutcome, ProcessSupervisor
from pumpkin_runner.tools.cargo import Builder, companion_target, local_target
from pumpkin_runner.tools.git import RepoState, RepoSync, SyncAction, SyncResult
from pumpkin_runner.workspace import Workspace

logger = logging.getLogger(__name__)

StatusHook = Callable[[str, str], None]


class WorkflowState(str, Enum):
    IDLE = "idle"
    REPO_READY = "repo_ready"
    SELF_BUILT = "self_built"
    SERVER_BUILT = "server_built"
    STAGED = "staged"
    RUNNING = "running"
    TERMINATED = "terminated"


class WorkflowError(RuntimeError):
    """A stage failed and the rest of the workflow was abandoned."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class PumpkinRunner:
    def __init__(
        self,
        workspace: Workspace,
        config: RunnerConfig | None = None,
        *,
        platform: Platform | None = None,
        status_hook: StatusHook | None = None,
    ) -> None:
        self.workspace = workspace
        self.config = config or RunnerConfig.default()
        self.platform = platform or resolve_platform()
        self.artifact_spec = ARTIFACT_SPECS[self.platform]
        self.status_hook = status_hook
        self.repo = RepoSync(workspace, self.config.companion.repo_url, self.config.vcs.argv())
        self.builder = Builder(self.config.build.argv(), env=workspace.env)
        self.resolver = ArtifactResolver(
            workspace, self.artifact_spec, self.config.companion.binary
        )
        self.state = WorkflowState.IDLE
        self.history: list[WorkflowState] = [WorkflowState.IDLE]

    def _emit(self, level: str, message: str) -> None:
        if self.status_hook is not None:
            self.status_hook(level, message)

    def _advance(self, state: WorkflowState) -> None:
        logger.debug("Workflow %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @contextmanager
    def _stage(self, stage: str) -> Iterator[None]:
        try:
            yield
        except WorkflowError:
            raise
        except RuntimeError as exc:
            self._emit("error", f"{stage} failed")
            raise WorkflowError(stage, str(exc)) from exc

    def init(self, force: bool = False) -> SyncResult:
        self._emit("stage", "Initializing Pumpkin environment...")
        with self._stage("Create run directory"):
            self.workspace.ensure_run_dir()
        result = self._sync_repo(force)
        self._advance(WorkflowState.REPO_READY)
        self._emit("done", "Initialization complete!")
        return result

    def run(self, force: bool = False, skip_self_build: bool = False) -> ProcessOutcome:
        self._emit("stage", "Starting Pumpkin runner...")
        with self._stage("Create run directory"):
            self.workspace.ensure_run_dir()

        if force or not self.workspace.companion_dir.exists():
            self._sync_repo(force)
        self._advance(WorkflowState.REPO_READY)

        if not skip_self_build:
            self._build_current_project()
        self._advance(WorkflowState.SELF_BUILT)

        self._build_server()
        self._advance(WorkflowState.SERVER_BUILT)

        self._stage_artifacts()
        self._advance(WorkflowState.STAGED)

        return self._run_server()

    def clean(self) -> bool:
        self._emit("stage", f"Cleaning {self.workspace.run_dir.name} directory...")
        with self._stage("Clean"):
            removed = self.workspace.remove_run_dir()
        self._emit("done", "Clean complete!")
        return removed

    def _sync_repo(self, force: bool) -> SyncResult:
        name = self.workspace.companion_dir.name
        if self.repo.state() is RepoState.PRESENT:
            if force:
                self._emit("info", f"Force rebuilding {name}...")
            else:
                self._emit("info", f"{name} repository already exists, pulling latest changes...")
        else:
            self._emit("info", f"Cloning {name} repository...")

        with self._stage("Repository setup"):
            result = self.repo.ensure(force)

        if result.action is SyncAction.UPDATED:
            self._emit("success", f"{name} repository updated!")
        elif result.action is SyncAction.STALE:
            self._emit(
                "warning",
                "Git pull failed, continuing with existing version... "
                "(use --force to re-clone)",
            )
        else:
            self._emit("success", f"{name} repository cloned successfully!")
        return result

    def _build_current_project(self) -> None:
        self._emit("info", "Building current project...")
        target = local_target(self.workspace, self.platform)
        if target.release_mode:
            self._emit(
                "warning",
                "  Windows detected: Using release build for plugin compatibility",
            )
        with self._stage("Plugin build"):
            self.builder.build(target)
        self._emit("success", "Plugin built successfully!")

    def _build_server(self) -> None:
        self._emit("info", "Building Pumpkin server...")
        with self._stage("Server build"):
            self.builder.build(companion_target(self.workspace))
        self._emit("success", "Pumpkin server built successfully!")

    def _stage_artifacts(self) -> StageReport:
        self._emit("info", f"Copying artifacts to {self.workspace.run_dir.name} directory...")
        with self._stage("Artifact staging"):
            manifest = self.workspace.root_dir / self.config.build.manifest
            project_name = read_project_name(manifest)
            report = self.resolver.stage(project_name)

        if report.server_binary is not None:
            self._emit("success", "  Copied Pumpkin server binary")
        if report.plugin is not None:
            plugins = self.workspace.plugins_dir.name
            self._emit("success", f"  Copied plugin {report.plugin_filename} to {plugins}/")
        elif report.plugin_missing:
            self._emit(
                "warning",
                f"  Plugin {report.plugin_filename} not found at {report.plugin_source}",
            )
        self._emit("success", "Artifacts copied successfully!")
        return report

    def _server_starting(self) -> None:
        self._emit("done", "Server is starting... (Press Ctrl+C to stop)")
        self._advance(WorkflowState.RUNNING)

    def _run_server(self) -> ProcessOutcome:
        self._emit("stage", "Starting Pumpkin server...")
        supervisor = ProcessSupervisor(self.workspace, self.resolver.staged_server)
        with self._stage("Server launch"):
            outcome = supervisor.launch(on_start=self._server_starting)
        self._advance(WorkflowState.TERMINATED)

        if outcome.success:
            self._emit("success", "Server stopped successfully")
        else:
            self._emit("error", f"Server stopped with error (exit code {outcome.returncode})")
        return outcome
