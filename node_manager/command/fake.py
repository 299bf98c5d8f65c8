"""In-memory runner for tests.

``FakeRunner`` never executes anything. Commands must be registered up front
with their canned output; copied files are kept in memory under their asset
name, decoded as latin-1 so every byte survives. Both maps are lock-guarded
so lifecycle and caching threads can share one instance.
"""

import threading
import time

from node_manager.command.runner import CopyableFile, RunResult, Runner
from node_manager.exceptions import NotFoundError, UnregisteredCommandError
from node_manager.logging_config import get_logger

logger = get_logger(__name__)


class FakeRunner(Runner):
    """Deterministic runner returning registered outputs."""

    target = "fake"

    def __init__(self):
        self._lock = threading.Lock()
        self._commands: dict[str, str] = {}
        self._files: dict[str, str] = {}

    def _run(self, args: list[str], start: float) -> RunResult:
        key = " ".join(args)
        with self._lock:
            out = self._commands.get(key)
            registered = key in self._commands
        if not registered:
            raise UnregisteredCommandError(key, self.commands())

        return RunResult(
            args=tuple(args), stdout=out or "", stderr=out or "", duration=time.monotonic() - start
        )

    def copy(self, file: CopyableFile) -> None:
        contents = file.read().decode("latin-1")
        with self._lock:
            self._files[file.asset_name] = contents

    def remove(self, file: CopyableFile) -> None:
        with self._lock:
            self._files.pop(file.asset_name, None)

    def set_command_to_output(self, cmd_to_output: dict[str, str]) -> None:
        """Register commands (space-joined argv) and their output."""
        with self._lock:
            for cmd, out in cmd_to_output.items():
                logger.debug(f"fake command {cmd!r} -> {out!r}")
                self._commands[cmd] = out

    def set_file_to_contents(self, file_to_contents: dict[str, str]) -> None:
        with self._lock:
            self._files.update(file_to_contents)

    def get_file_to_contents(self, filename: str) -> str:
        """Return what was copied under ``filename``.

        Raises:
            NotFoundError: If nothing is stored under that name
        """
        with self._lock:
            if filename not in self._files:
                raise NotFoundError(f"unavailable file: {filename}")
            return self._files[filename]

    def commands(self) -> list[str]:
        """Every registered command, sorted."""
        with self._lock:
            return sorted(self._commands)

    def dump_maps(self) -> str:
        """Render the stored commands and filenames for debugging."""
        with self._lock:
            lines = ["Commands:"]
            lines += [f"  {k}: {v}" for k, v in sorted(self._commands.items())]
            lines.append("Filenames:")
            lines += [f"  {k}" for k in sorted(self._files)]
        return "\n".join(lines)
