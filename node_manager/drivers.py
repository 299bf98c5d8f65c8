"""Backend drivers that host cluster nodes.

The set of drivers is closed: ``new_driver`` maps a driver name onto one of the
classes below when settings are loaded.
"""

from abc import ABC, abstractmethod

import docker
from docker.errors import APIError, DockerException, NotFound

from node_manager.command.container import ContainerRunner
from node_manager.command.local import LocalRunner
from node_manager.command.remote import RemoteRunner, SSHConfig
from node_manager.command.runner import Runner
from node_manager.exceptions import ConfigurationError, DriverError, ExecutionError
from node_manager.logging_config import get_logger
from node_manager.models.cluster import ClusterConfig
from node_manager.models.node import Node
from node_manager.settings import Settings

logger = get_logger(__name__)

# Image every container-backed node boots from.
BASE_IMAGE = "gcr.io/k8s-minikube/kicbase:v0.0.17"

CONTAINER_DRIVERS = ("docker",)


def is_container_driver(name: str) -> bool:
    """Return whether nodes of driver ``name`` run as containers."""
    return name in CONTAINER_DRIVERS


class Driver(ABC):
    """Creates, inspects and destroys the hosts backing nodes."""

    name: str = ""

    #: Whether stopping a node takes its host down. Drivers that borrow an
    #: existing machine leave it running and only Kubernetes is stopped.
    owns_host: bool = True

    def attach(self, cc: ClusterConfig) -> None:
        """Learn about the nodes of profile ``cc`` before operating on them."""

    @abstractmethod
    def is_host_running(self, name: str) -> bool:
        """Return whether the host for node ``name`` is up."""

    @abstractmethod
    def provision(self, cc: ClusterConfig, node: Node) -> None:
        """Create (or restart) the host for ``node``."""

    @abstractmethod
    def stop(self, name: str) -> None:
        """Halt the host for node ``name`` once the kubelet is stopped."""

    @abstractmethod
    def destroy(self, name: str) -> None:
        """Remove the host for node ``name`` and everything it owns."""

    @abstractmethod
    def command_runner(self, node: Node) -> Runner:
        """Runner executing commands on ``node``."""


class DockerDriver(Driver):
    """Runs each node as a privileged container."""

    name = "docker"

    def __init__(self, client: docker.DockerClient | None = None, base_image: str = BASE_IMAGE):
        self._client = client
        self.base_image = base_image

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise DriverError(
                    "Cannot connect to the docker daemon",
                    "Make sure docker is installed and running",
                ) from e
        return self._client

    def is_host_running(self, name: str) -> bool:
        try:
            container = self.client.containers.get(name)
        except NotFound:
            return False
        except APIError as e:
            raise DriverError(f"Failed to inspect container {name}", str(e)) from e
        return container.status == "running"

    def provision(self, cc: ClusterConfig, node: Node) -> None:
        try:
            container = self.client.containers.get(node.name)
        except NotFound:
            container = None
        except APIError as e:
            raise DriverError(f"Failed to inspect container {node.name}", str(e)) from e

        try:
            if container is None:
                logger.info(f"Creating container {node.name} from {self.base_image}")
                container = self.client.containers.run(
                    self.base_image,
                    name=node.name,
                    hostname=node.name,
                    detach=True,
                    privileged=True,
                    tmpfs={"/tmp": "", "/run": ""},
                    volumes={"/lib/modules": {"bind": "/lib/modules", "mode": "ro"}},
                    labels={"node-manager.profile": cc.name, "node-manager.node": node.name},
                    ports={f"{node.port}/tcp": None},
                )
            elif container.status != "running":
                logger.info(f"Starting existing container {node.name}")
                container.start()
            container.reload()
        except APIError as e:
            raise DriverError(f"Failed to provision container {node.name}", str(e)) from e

        networks = container.attrs.get("NetworkSettings", {}).get("Networks", {})
        for network in networks.values():
            if network.get("IPAddress"):
                node.ip = network["IPAddress"]
                break

    def stop(self, name: str) -> None:
        try:
            self.client.containers.get(name).stop()
        except NotFound:
            logger.debug(f"Container {name} already gone")
        except APIError as e:
            raise DriverError(f"Failed to stop container {name}", str(e)) from e

    def destroy(self, name: str) -> None:
        try:
            self.client.containers.get(name).remove(force=True, v=True)
        except NotFound:
            logger.debug(f"Container {name} already gone")
        except APIError as e:
            raise DriverError(f"Failed to remove container {name}", str(e)) from e

    def command_runner(self, node: Node) -> Runner:
        return ContainerRunner(node.name, client=self.client)


class SSHDriver(Driver):
    """Uses existing machines reachable over SSH."""

    name = "ssh"
    owns_host = False

    def __init__(self, user: str, key_path: str | None = None, port: int = 22):
        self.user = user
        self.key_path = key_path
        self.port = port
        self._runners: dict[str, RemoteRunner] = {}
        self._hosts: dict[str, str] = {}

    def attach(self, cc: ClusterConfig) -> None:
        for node in cc.nodes:
            if node.ip:
                self._hosts[node.name] = node.ip

    def _runner_for(self, name: str) -> RemoteRunner | None:
        host = self._hosts.get(name)
        if host is None:
            return None
        if name not in self._runners:
            self._runners[name] = RemoteRunner(
                SSHConfig(host=host, user=self.user, port=self.port, key_path=self.key_path)
            )
        return self._runners[name]

    def command_runner(self, node: Node) -> Runner:
        if not node.ip:
            raise DriverError(f"Node {node.name} has no address", "Pass --ip when adding it")
        self._hosts[node.name] = node.ip
        return self._runner_for(node.name)

    def is_host_running(self, name: str) -> bool:
        runner = self._runner_for(name)
        if runner is None:
            return False
        try:
            runner.run_cmd(["true"])
        except ExecutionError:
            return False
        return True

    def provision(self, cc: ClusterConfig, node: Node) -> None:
        runner = self.command_runner(node)
        try:
            runner.run_cmd(["sudo", "mkdir", "-p", "/var/lib/node-manager"])
        except ExecutionError as e:
            raise DriverError(f"Host {node.ip} is not usable", e.format_message()) from e

    def stop(self, name: str) -> None:
        logger.debug(f"Leaving host for {name} running")

    def destroy(self, name: str) -> None:
        runner = self._runner_for(name)
        if runner is None:
            logger.debug(f"No connection to {name}, nothing to clean up")
            return
        try:
            runner.run_cmd(["sudo", "kubeadm", "reset", "--force"])
            runner.run_cmd(["sudo", "rm", "-rf", "/var/lib/node-manager"])
        except ExecutionError as e:
            raise DriverError(f"Failed to clean up host for {name}", e.format_message()) from e
        finally:
            runner.close()
            self._runners.pop(name, None)


class NoneDriver(Driver):
    """Runs the single node directly on this host."""

    name = "none"
    owns_host = False

    def __init__(self, runner: Runner | None = None):
        self.runner = runner or LocalRunner()

    def is_host_running(self, name: str) -> bool:
        return True

    def provision(self, cc: ClusterConfig, node: Node) -> None:
        if len(cc.nodes) > 1:
            raise DriverError("The none driver supports a single node only")

    def stop(self, name: str) -> None:
        logger.debug(f"Leaving this host running for {name}")

    def destroy(self, name: str) -> None:
        try:
            self.runner.run_cmd(["sudo", "kubeadm", "reset", "--force"])
        except ExecutionError as e:
            raise DriverError(f"Failed to reset host for {name}", e.format_message()) from e

    def command_runner(self, node: Node) -> Runner:
        return self.runner


def new_driver(name: str, settings: Settings) -> Driver:
    """Return the driver called ``name``."""
    if name == DockerDriver.name:
        return DockerDriver()
    if name == SSHDriver.name:
        return SSHDriver(settings.ssh_user, settings.ssh_key_path, settings.ssh_port)
    if name == NoneDriver.name:
        return NoneDriver()
    raise ConfigurationError(
        f"Unsupported driver: {name}",
        f"Supported drivers: {DockerDriver.name}, {SSHDriver.name}, {NoneDriver.name}",
    )
