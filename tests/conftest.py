import json
import shlex
import subprocess
import sys
from pathlib import Path

import pytest

FAKE_CARGO = """\
import json
import os
import sys
from pathlib import Path

here = Path(__file__).resolve().parent
behaviour = json.loads((here / "cargo-behaviour.json").read_text(encoding="utf-8"))
cwd = Path.cwd()
with (here / "cargo-calls.jsonl").open("a", encoding="utf-8") as log:
    log.write(json.dumps({"cwd": cwd.name, "args": sys.argv[1:]}) + "\\n")

code = behaviour["fail"].get(cwd.name)
if code:
    sys.stderr.write(f"error[E0425]: cannot find value in {cwd.name}\\n")
    sys.exit(code)

for relative, content in behaviour["outputs"].get(cwd.name, []):
    target = cwd / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
"""

FAKE_GIT = """\
import json
import subprocess
import sys
from pathlib import Path

here = Path(__file__).resolve().parent
with (here / "git-calls.jsonl").open("a", encoding="utf-8") as log:
    log.write(json.dumps(sys.argv[1:]) + "\\n")
sys.exit(subprocess.run(["git", *sys.argv[1:]]).returncode)
"""

SERVER_TEMPLATE = """\
#!{python}
import pathlib
import sys

pathlib.Path("server-ran.txt").write_text(str(pathlib.Path.cwd()), encoding="utf-8")
sys.exit({exit_code})
"""


def run(cmd: list[str], cwd: Path) -> str:
    proc = subprocess.run(cmd, cwd=cwd, check=True, text=True, capture_output=True)
    return proc.stdout.strip()


def server_script(exit_code: int = 0) -> str:
    return SERVER_TEMPLATE.format(python=sys.executable, exit_code=exit_code)


def python_command(script: Path) -> str:
    return shlex.join([sys.executable, str(script)])


class FakeCargo:
    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.script = directory / "fake_cargo.py"
        self.script.write_text(FAKE_CARGO, encoding="utf-8")
        self.behaviour: dict = {"fail": {}, "outputs": {}}
        self._save()

    @property
    def command(self) -> str:
        return python_command(self.script)

    @property
    def argv(self) -> list[str]:
        return [sys.executable, str(self.script)]

    def _save(self) -> None:
        (self.directory / "cargo-behaviour.json").write_text(
            json.dumps(self.behaviour), encoding="utf-8"
        )

    def fail_in(self, directory_name: str, exit_code: int = 101) -> None:
        self.behaviour["fail"][directory_name] = exit_code
        self._save()

    def produce(self, directory_name: str, relative: str, content: str) -> None:
        self.behaviour["outputs"].setdefault(directory_name, []).append([relative, content])
        self._save()

    def calls(self) -> list[dict]:
        log = self.directory / "cargo-calls.jsonl"
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]


class FakeGit:
    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.script = directory / "fake_git.py"
        self.script.write_text(FAKE_GIT, encoding="utf-8")

    @property
    def command(self) -> str:
        return python_command(self.script)

    @property
    def argv(self) -> list[str]:
        return [sys.executable, str(self.script)]

    def subcommands(self) -> list[str]:
        log = self.directory / "git-calls.jsonl"
        if not log.exists():
            return []
        return [json.loads(line)[0] for line in log.read_text(encoding="utf-8").splitlines()]


@pytest.fixture
def origin_repo(tmp_path: Path) -> Path:
    origin = tmp_path / "origin" / "Pumpkin"
    origin.mkdir(parents=True)
    run(["git", "init"], cwd=origin)
    run(["git", "config", "user.email", "test@example.com"], cwd=origin)
    run(["git", "config", "user.name", "Test User"], cwd=origin)
    (origin / "README.md").write_text("pumpkin\n", encoding="utf-8")
    run(["git", "add", "README.md"], cwd=origin)
    run(["git", "commit", "-m", "seed"], cwd=origin)
    return origin


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "my-plugin"
    root.mkdir()
    (root / "Cargo.toml").write_text(
        '[package]\nname = "my-plugin"\nversion = "0.1.0"\n\n'
        '[lib]\ncrate-type = ["cdylib"]\n',
        encoding="utf-8",
    )
    return root


@pytest.fixture
def fake_cargo(tmp_path: Path) -> FakeCargo:
    directory = tmp_path / "tools"
    directory.mkdir(exist_ok=True)
    return FakeCargo(directory)


@pytest.fixture
def fake_git(tmp_path: Path) -> FakeGit:
    directory = tmp_path / "tools"
    directory.mkdir(exist_ok=True)
    return FakeGit(directory)
