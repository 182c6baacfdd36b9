from pumpkin_runner.tools.base import ToolExecutionError, ToolNotFoundError
from pumpkin_runner.tools.cargo import BuildTarget, Builder
from pumpkin_runner.tools.git import RepoState, RepoSync, SyncAction, SyncResult

__all__ = [
    "BuildTarget",
    "Builder",
    "RepoState",
    "RepoSync",
    "SyncAction",
    "SyncResult",
    "ToolExecutionError",
    "ToolNotFoundError",
]
