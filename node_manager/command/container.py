"""Runner that executes commands inside a container."""

import io
import tarfile
import time

import docker
from docker.errors import APIError, NotFound

from node_manager.command.runner import CopyableFile, RunResult, Runner
from node_manager.exceptions import ExecutionError


class ContainerRunner(Runner):
    """Runs commands in a container's namespaces through the docker API."""

    def __init__(self, container_name: str, client: docker.DockerClient | None = None):
        self.container_name = container_name
        self.target = f"container {container_name}"
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def _container(self):
        try:
            return self.client.containers.get(self.container_name)
        except NotFound as e:
            raise ExecutionError(f"container {self.container_name} not found") from e
        except APIError as e:
            raise ExecutionError(f"inspecting container {self.container_name}: {e}") from e

    def _run(self, args: list[str], start: float) -> RunResult:
        container = self._container()
        try:
            exit_code, (out, err) = container.exec_run(args, demux=True)
        except APIError as e:
            raise ExecutionError(
                f"exec in {self.container_name} failed: {e}", argv=args, stderr=str(e)
            ) from e

        rr = RunResult(
            args=tuple(args),
            stdout=(out or b"").decode("utf-8", errors="replace"),
            stderr=(err or b"").decode("utf-8", errors="replace"),
            duration=time.monotonic() - start,
        )
        if exit_code != 0:
            raise ExecutionError(
                f"{rr.command()}: exit status {exit_code}",
                rr.output() or None,
                argv=args,
                exit_code=exit_code,
                stderr=rr.stderr,
            )
        return rr

    def copy(self, file: CopyableFile) -> None:
        self.run_cmd(["mkdir", "-p", file.target_dir])

        data = file.read()
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w") as tar:
            info = tarfile.TarInfo(name=file.target_name)
            info.size = len(data)
            info.mode = file.mode
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(data))
        buf.seek(0)

        try:
            ok = self._container().put_archive(file.target_dir, buf.getvalue())
        except APIError as e:
            raise ExecutionError(
                f"copying {file.asset_name} into {self.container_name}: {e}", stderr=str(e)
            ) from e
        if not ok:
            raise ExecutionError(f"copying {file.asset_name} into {self.container_name} failed")

    def remove(self, file: CopyableFile) -> None:
        self.run_cmd(["rm", "-f", file.target_path])
