from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click

from pumpkin_runner import __version__
from pumpkin_runner.config import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    RunnerConfig,
    load_config,
    save_config,
)
from pumpkin_runner.workflow import PumpkinRunner, WorkflowError
from pumpkin_runner.workspace import Workspace, WorkspaceError

CARGO_SUBCOMMAND = "pumpkin"

STATUS_STYLES: dict[str, dict[str, object]] = {
    "stage": {"fg": "yellow", "bold": True},
    "done": {"fg": "green", "bold": True},
    "info": {"fg": "blue"},
    "success": {"fg": "green"},
    "warning": {"fg": "yellow"},
    "error": {"fg": "red"},
}


@dataclass(slots=True)
class CliOptions:
    force: bool = False
    skip_self_build: bool = False
    config_value: str = DEFAULT_CONFIG_FILE


@dataclass(slots=True)
class Runtime:
    config_path: Path
    config: RunnerConfig
    runner: PumpkinRunner


def _echo_status(level: str, message: str) -> None:
    click.secho(message, **STATUS_STYLES.get(level, {}))


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("pumpkin_runner")
    if not verbose:
        # status lines already cover warnings for interactive use
        package_logger.setLevel(logging.ERROR)
        return
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)


def _resolve_config_path(root_dir: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = root_dir / config_path
    return config_path.resolve()


def _load_runtime(options: CliOptions) -> Runtime:
    root_dir = Path.cwd().resolve()
    config_path = _resolve_config_path(root_dir, options.config_value)
    try:
        config = load_config(config_path)
        workspace = Workspace.from_root(root_dir, config)
        runner = PumpkinRunner(workspace, config, status_hook=_echo_status)
    except (ConfigError, WorkspaceError) as exc:
        raise click.ClickException(str(exc)) from exc
    return Runtime(config_path=config_path, config=config, runner=runner)


@click.group(invoke_without_command=True)
@click.option("-f", "--force", is_flag=True, help="Force rebuild of Pumpkin even if it exists.")
@click.option("--skip-self-build", is_flag=True, help="Skip building the current project.")
@click.option("--config", "config_value", default=DEFAULT_CONFIG_FILE, show_default=True)
@click.option("-v", "--verbose", is_flag=True, help="Log every subprocess and file operation.")
@click.version_option(__version__, prog_name="cargo-pumpkin")
@click.pass_context
def cli(
    ctx: click.Context,
    force: bool,
    skip_self_build: bool,
    config_value: str,
    verbose: bool,
) -> None:
    """Build and run your Pumpkin plugin."""
    _configure_logging(verbose)
    ctx.obj = CliOptions(force=force, skip_self_build=skip_self_build, config_value=config_value)
    if ctx.invoked_subcommand is None:
        ctx.invoke(run_command)


@cli.command("init")
@click.option("-f", "--force", is_flag=True, help="Delete and re-clone the Pumpkin checkout.")
@click.option(
    "--write-config",
    is_flag=True,
    help="Write the effective configuration to the config file.",
)
@click.pass_obj
def init_command(options: CliOptions, force: bool, write_config: bool) -> None:
    """Initialize and setup the environment."""
    runtime = _load_runtime(options)
    try:
        runtime.runner.init(force=force or options.force)
    except WorkflowError as exc:
        raise click.ClickException(str(exc)) from exc

    if write_config:
        save_config(runtime.config_path, runtime.config)
        click.echo(f"Config: {runtime.config_path}")


@cli.command("run")
@click.option("-f", "--force", is_flag=True, help="Delete and re-clone the Pumpkin checkout.")
@click.option("--skip-self-build", is_flag=True, help="Skip building the current project.")
@click.pass_obj
def run_command(options: CliOptions, force: bool, skip_self_build: bool) -> None:
    """Build and run the server."""
    runtime = _load_runtime(options)
    try:
        runtime.runner.run(
            force=force or options.force,
            skip_self_build=skip_self_build or options.skip_self_build,
        )
    except WorkflowError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("clean")
@click.pass_obj
def clean_command(options: CliOptions) -> None:
    """Clean the run directory."""
    runtime = _load_runtime(options)
    try:
        runtime.runner.clean()
    except WorkflowError as exc:
        raise click.ClickException(str(exc)) from exc


def main(argv: list[str] | None = None) -> None:
    args = list(sys.argv[1:] if argv is None else argv)
    # cargo runs external subcommands as `cargo-pumpkin pumpkin <args>`
    if args and args[0] == CARGO_SUBCOMMAND:
        args = args[1:]
    cli.main(args=args, prog_name="cargo pumpkin")
