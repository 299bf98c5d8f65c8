"""Runner that executes commands on a remote node over SSH."""

import os
import shlex
import threading
import time
from dataclasses import dataclass

import paramiko

from node_manager.command.runner import CopyableFile, RunResult, Runner
from node_manager.exceptions import ExecutionError
from node_manager.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class SSHConfig:
    """Configuration for an SSH connection."""

    host: str
    user: str
    port: int = 22
    key_path: str | None = None
    timeout: float = 30.0


class RemoteRunner(Runner):
    """Runs commands on a node through a paramiko SSH session.

    The connection is opened lazily on first use and shared by all calls.
    """

    def __init__(self, config: SSHConfig, client: paramiko.SSHClient | None = None):
        self.config = config
        self.target = f"ssh {config.user}@{config.host}:{config.port}"
        self._client = client
        self._lock = threading.Lock()

    def _connect(self) -> paramiko.SSHClient:
        with self._lock:
            if self._client is not None:
                return self._client

            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

            key_filename = None
            if self.config.key_path:
                expanded_path = os.path.expanduser(self.config.key_path)
                if os.path.exists(expanded_path):
                    key_filename = expanded_path

            try:
                client.connect(
                    hostname=self.config.host,
                    port=self.config.port,
                    username=self.config.user,
                    key_filename=key_filename,
                    timeout=self.config.timeout,
                )
            except paramiko.AuthenticationException as e:
                raise ExecutionError(
                    f"SSH authentication failed for {self.config.user}@{self.config.host}",
                    "Check the SSH key configured with NODE_MGR_SSH_KEY_PATH",
                ) from e
            except (paramiko.SSHException, OSError) as e:
                raise ExecutionError(f"Failed to connect to {self.config.host}: {e}") from e

            self._client = client
            return client

    def _exec(self, command: str, stdin_data: bytes | None = None) -> tuple[str, str, int]:
        client = self._connect()
        try:
            stdin, stdout, stderr = client.exec_command(command)
            if stdin_data is not None:
                stdin.write(stdin_data)
                stdin.channel.shutdown_write()
            exit_status = stdout.channel.recv_exit_status()
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
        except paramiko.SSHException as e:
            raise ExecutionError(
                f"SSH connection lost during command execution: {command}", stderr=str(e)
            ) from e
        return out, err, exit_status

    def _run(self, args: list[str], start: float) -> RunResult:
        out, err, exit_status = self._exec(shlex.join(args))
        rr = RunResult(args=tuple(args), stdout=out, stderr=err, duration=time.monotonic() - start)
        if exit_status != 0:
            raise ExecutionError(
                f"{rr.command()}: exit status {exit_status}",
                rr.output() or None,
                argv=args,
                exit_code=exit_status,
                stderr=err,
            )
        return rr

    def copy(self, file: CopyableFile) -> None:
        dest = shlex.quote(file.target_path)
        command = (
            f"sudo mkdir -p {shlex.quote(file.target_dir)} && "
            f"sudo tee {dest} > /dev/null && "
            f"sudo chmod {file.permissions} {dest}"
        )
        _, err, exit_status = self._exec(command, stdin_data=file.read())
        if exit_status != 0:
            raise ExecutionError(
                f"copying {file.asset_name} to {self.config.host}:{file.target_path}",
                err or None,
                exit_code=exit_status,
                stderr=err,
            )

    def remove(self, file: CopyableFile) -> None:
        self.run_cmd(["sudo", "rm", "-f", file.target_path])

    def close(self) -> None:
        """Close the underlying SSH connection."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
