import json
import os
import stat
import sys
from pathlib import Path

import pytest
from conftest import server_script

from pumpkin_runner.supervisor import LaunchError, ProcessOutcome, ProcessSupervisor
from pumpkin_runner.workspace import Workspace

posix_only = pytest.mark.skipif(os.name != "posix", reason="script servers need a shebang")


def _staged(tmp_path: Path, content: str | None) -> ProcessSupervisor:
    workspace = Workspace.from_root(tmp_path)
    workspace.ensure_run_dir()
    binary = workspace.run_dir / "pumpkin"
    if content is not None:
        binary.write_text(content, encoding="utf-8")
        binary.chmod(0o644)
    return ProcessSupervisor(workspace, binary)


def test_missing_binary_is_fatal(tmp_path: Path) -> None:
    supervisor = _staged(tmp_path, None)

    with pytest.raises(LaunchError, match="not found"):
        supervisor.launch()


@posix_only
def test_launch_sets_executable_bits_and_runs_in_run_dir(tmp_path: Path) -> None:
    supervisor = _staged(tmp_path, server_script(exit_code=0))

    outcome = supervisor.launch()

    assert outcome == ProcessOutcome(returncode=0)
    assert outcome.success is True
    mode = supervisor.binary.stat().st_mode
    assert mode & stat.S_IXUSR
    assert mode & stat.S_IXOTH
    ran_in = (supervisor.workspace.run_dir / "server-ran.txt").read_text(encoding="utf-8")
    assert Path(ran_in).resolve() == supervisor.workspace.run_dir


@posix_only
def test_prepare_is_idempotent(tmp_path: Path) -> None:
    supervisor = _staged(tmp_path, server_script())

    supervisor.prepare()
    first = supervisor.binary.stat().st_mode
    supervisor.prepare()

    assert supervisor.binary.stat().st_mode == first


@posix_only
def test_failed_server_exit_is_reported_not_raised(tmp_path: Path) -> None:
    supervisor = _staged(tmp_path, server_script(exit_code=3))

    outcome = supervisor.launch()

    assert outcome.success is False
    assert outcome.returncode == 3


@posix_only
def test_unlaunchable_binary_raises(tmp_path: Path) -> None:
    supervisor = _staged(tmp_path, "not a real executable format\n")

    with pytest.raises(LaunchError, match="Failed to start"):
        supervisor.launch()


class _InterruptedOnce:
    def __init__(self, returncode: int) -> None:
        self.returncode = returncode
        self.waits = 0

    def wait(self) -> int:
        self.waits += 1
        if self.waits == 1:
            raise KeyboardInterrupt
        return self.returncode


def test_interrupt_while_waiting_keeps_waiting_for_exit_code() -> None:
    process = _InterruptedOnce(returncode=130)

    assert ProcessSupervisor._wait(process) == 130
    assert process.waits == 2


@posix_only
def test_on_start_runs_once_before_spawn(tmp_path: Path) -> None:
    supervisor = _staged(tmp_path, server_script(exit_code=0))
    marker = supervisor.workspace.run_dir / "server-ran.txt"
    seen: list[bool] = []

    supervisor.launch(on_start=lambda: seen.append(marker.exists()))

    assert seen == [False]
    assert marker.exists()


def test_on_start_is_skipped_when_binary_is_missing(tmp_path: Path) -> None:
    supervisor = _staged(tmp_path, None)
    seen: list[bool] = []

    with pytest.raises(LaunchError):
        supervisor.launch(on_start=lambda: seen.append(True))

    assert seen == []


@posix_only
def test_server_sees_only_the_workspace_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PUMPKIN_AMBIENT", "leaked")
    workspace = Workspace.from_root(tmp_path, env={"ONLY_THIS": "1"})
    workspace.ensure_run_dir()
    binary = workspace.run_dir / "pumpkin"
    binary.write_text(
        f"#!{sys.executable}\n"
        "import json, os\n"
        "with open('env.json', 'w') as fh:\n"
        "    json.dump(sorted(os.environ), fh)\n",
        encoding="utf-8",
    )

    ProcessSupervisor(workspace, binary).launch()

    keys = json.loads((workspace.run_dir / "env.json").read_text(encoding="utf-8"))
    assert "ONLY_THIS" in keys
    assert "PUMPKIN_AMBIENT" not in keys
