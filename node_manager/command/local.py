"""Runner that executes commands on the local host."""

import os
import subprocess
import time
from pathlib import Path

from node_manager.command.runner import CopyableFile, RunResult, Runner
from node_manager.exceptions import ExecutionError


class LocalRunner(Runner):
    """Runs commands as child processes of this one."""

    target = "local"

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def _run(self, args: list[str], start: float) -> RunResult:
        try:
            proc = subprocess.run(args, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ExecutionError(
                f"command not found: {args[0]}", str(e), argv=args, stderr=str(e)
            ) from e
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else e.stderr
            raise ExecutionError(
                f"command timed out after {self.timeout}s: {' '.join(args)}",
                argv=args,
                stderr=stderr or "",
            ) from e

        rr = RunResult(
            args=tuple(args),
            stdout=proc.stdout,
            stderr=proc.stderr,
            duration=time.monotonic() - start,
        )
        if proc.returncode != 0:
            raise ExecutionError(
                f"{rr.command()}: exit status {proc.returncode}",
                rr.output() or None,
                argv=args,
                exit_code=proc.returncode,
                stderr=proc.stderr,
            )
        return rr

    def copy(self, file: CopyableFile) -> None:
        dest = Path(file.target_path)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            tmp = dest.with_name(f".{dest.name}.tmp")
            tmp.write_bytes(file.read())
            os.chmod(tmp, file.mode)
            tmp.replace(dest)
        except OSError as e:
            raise ExecutionError(f"copying {file.asset_name} to {dest}: {e}", stderr=str(e)) from e

    def remove(self, file: CopyableFile) -> None:
        try:
            Path(file.target_path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ExecutionError(f"removing {file.target_path}: {e}", stderr=str(e)) from e
