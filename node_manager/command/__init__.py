"""Command execution and file transfer against nodes."""

from node_manager.command.fake import FakeRunner
from node_manager.command.local import LocalRunner
from node_manager.command.runner import (
    SLOW_COMMAND_THRESHOLD,
    CopyableFile,
    RunResult,
    Runner,
)

__all__ = [
    "Runner",
    "RunResult",
    "CopyableFile",
    "LocalRunner",
    "FakeRunner",
    "SLOW_COMMAND_THRESHOLD",
]
