"""Common types for running commands and transferring files on a node."""

import shlex
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from node_manager.logging_config import get_logger

logger = get_logger(__name__)

# Invocations slower than this are logged at INFO.
SLOW_COMMAND_THRESHOLD = 1.0


@dataclass(frozen=True)
class RunResult:
    """Outcome of a single command execution."""

    args: tuple[str, ...]
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    def command(self) -> str:
        """The command line as it would be typed into a shell."""
        return shlex.join(self.args)

    def output(self) -> str:
        """Combined stdout and stderr, for error messages."""
        out = ""
        if self.stdout:
            out += f"-- stdout --\n{self.stdout}\n"
        if self.stderr:
            out += f"** stderr **\n{self.stderr}\n"
        return out


@dataclass
class CopyableFile:
    """A unit of file transfer: bytes plus where they go and with what mode.

    Exactly one of ``source`` (a local path) or ``content`` must be set.
    """

    asset_name: str
    target_dir: str
    target_name: str
    permissions: str = "0644"
    source: Path | None = None
    content: bytes | None = field(default=None, repr=False)

    def __post_init__(self):
        if (self.source is None) == (self.content is None):
            raise ValueError("CopyableFile needs exactly one of source or content")
        if self.source is not None:
            self.source = Path(self.source)
        int(self.permissions, 8)

    @classmethod
    def from_path(cls, path: str | Path, target_dir: str, target_name: str | None = None,
                  permissions: str = "0644") -> "CopyableFile":
        """Build a file backed by a local path."""
        path = Path(path)
        return cls(
            asset_name=str(path),
            target_dir=target_dir,
            target_name=target_name or path.name,
            permissions=permissions,
            source=path,
        )

    @classmethod
    def from_bytes(cls, content: bytes, target_dir: str, target_name: str,
                   permissions: str = "0644") -> "CopyableFile":
        """Build an in-memory file; its asset name is the target path."""
        return cls(
            asset_name=str(PurePosixPath(target_dir) / target_name),
            target_dir=target_dir,
            target_name=target_name,
            permissions=permissions,
            content=content,
        )

    @property
    def target_path(self) -> str:
        return str(PurePosixPath(self.target_dir) / self.target_name)

    @property
    def mode(self) -> int:
        return int(self.permissions, 8)

    def read(self) -> bytes:
        """Return the file's bytes."""
        if self.content is not None:
            return self.content
        return self.source.read_bytes()


class Runner(ABC):
    """Runs commands and transfers files against one target.

    Subclasses implement ``_run``, ``copy`` and ``remove``. ``run_cmd`` times
    and logs every invocation uniformly.
    """

    #: Short description of the target used in log lines.
    target: str = "runner"

    def run_cmd(self, args: list[str]) -> RunResult:
        """Run ``args`` on the target.

        Raises:
            ExecutionError: If the command exits non-zero or cannot be run
        """
        args = [str(a) for a in args]
        logger.debug(f"({self.target}) Run: {shlex.join(args)}")
        start = time.monotonic()
        try:
            return self._run(args, start)
        finally:
            elapsed = time.monotonic() - start
            if elapsed > SLOW_COMMAND_THRESHOLD:
                logger.info(f"({self.target}) Done: {shlex.join(args)}: ({elapsed:.3f}s)")
            else:
                logger.debug(f"({self.target}) Done: {shlex.join(args)}: ({elapsed:.3f}s)")

    @abstractmethod
    def _run(self, args: list[str], start: float) -> RunResult:
        """Execute ``args`` and build a RunResult timed from ``start``."""

    @abstractmethod
    def copy(self, file: CopyableFile) -> None:
        """Write ``file`` to its target path, replacing existing contents."""

    @abstractmethod
    def remove(self, file: CopyableFile) -> None:
        """Delete ``file`` from its target path."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.target})"
