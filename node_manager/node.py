"""Node lifecycle orchestration.

``NodeManager`` adds, starts, stops and deletes the nodes of a cluster profile.
Node status is never stored: it is probed from the driver every time it is
needed, since hosts can be stopped or removed behind our back.
"""

import threading
import time

from node_manager.bootstrapper import Bootstrapper
from node_manager.cache.pipeline import CachePipeline
from node_manager.command.runner import Runner
from node_manager.config import ProfileStore
from node_manager.drivers import Driver
from node_manager.exceptions import (
    DriverError,
    FatalDeleteError,
    NodeManagerError,
    NotFoundError,
    ValidationError,
)
from node_manager.logging_config import get_logger
from node_manager.models.cluster import ClusterConfig
from node_manager.models.node import Node, NodeStatus
from node_manager.retry import expo
from node_manager.settings import Settings
from node_manager.sysinit import detect

logger = get_logger(__name__)

KUBELET_SERVICE = "kubelet"

# Bounds for waiting on a host to report stopped after shutdown.
STOP_VERIFY_INTERVAL = 2.0
STOP_VERIFY_TIMEOUT = 60.0
STOP_VERIFY_RETRIES = 3


class HostStillRunning(DriverError):
    """Raised while waiting for a host to stop."""


class NodeManager:
    """Lifecycle operations on the nodes of a profile."""

    def __init__(
        self,
        settings: Settings,
        store: ProfileStore,
        driver: Driver,
        bootstrapper: Bootstrapper,
        pipeline: CachePipeline,
        sleep=time.sleep,
    ):
        self.settings = settings
        self.store = store
        self.driver = driver
        self.bootstrapper = bootstrapper
        self.pipeline = pipeline
        self.sleep = sleep
        self._provisioning: set[str] = set()
        self._lock = threading.Lock()

    def retrieve(self, cc: ClusterConfig, name: str) -> tuple[Node, int]:
        """Find a node by name.

        Raises:
            NotFoundError: If the profile has no such node
        """
        found = cc.find_node(name)
        if found is None:
            raise NotFoundError(
                f"Node '{name}' not found in profile '{cc.name}'",
                f"Known nodes: {', '.join(n.name for n in cc.nodes) or '(none)'}",
            )
        return found

    def status(self, cc: ClusterConfig, name: str) -> NodeStatus:
        """Derive a node's status from the live backend."""
        if cc.find_node(name) is None:
            return NodeStatus.DELETED
        with self._lock:
            if name in self._provisioning:
                return NodeStatus.PROVISIONING

        self.driver.attach(cc)
        try:
            running = self.driver.is_host_running(name)
        except NodeManagerError as e:
            logger.warning(f"Unable to get status of node {name}: {e}")
            return NodeStatus.UNKNOWN
        return NodeStatus.RUNNING if running else NodeStatus.STOPPED

    def runner(self, cc: ClusterConfig, node: Node) -> Runner:
        self.driver.attach(cc)
        return self.driver.command_runner(node)

    def add(self, cc: ClusterConfig, node: Node) -> None:
        """Record a new node in the profile and start it.

        The node stays recorded if starting fails, so start can be retried.

        Raises:
            ValidationError: If a node with the same name exists
        """
        if cc.find_node(node.name) is not None:
            raise ValidationError(f"Node '{node.name}' already exists in profile '{cc.name}'")

        logger.info(f"Adding node {node.name} ({node.role}) to profile {cc.name}")
        cc.add_node(node)
        self.store.save(cc)
        self.start(cc, node)

    def start(self, cc: ClusterConfig, node: Node) -> None:
        """Provision a node if needed and bring Kubernetes up on it.

        Partially created backend resources are left in place on failure.
        """
        version = cc.version_for(node)
        logger.info(f"Starting node {node.name} with Kubernetes {version}")

        with self._lock:
            self._provisioning.add(node.name)
        try:
            request = self.pipeline.request_for(cc)
            cache_group = self.pipeline.begin_cache_required_images(request)

            self.driver.attach(cc)
            if not self.driver.is_host_running(node.name):
                self.driver.provision(cc, node)
                self.store.save(cc)

            self.pipeline.cache_binaries(version)
            self.pipeline.wait_cache_required_images(cache_group)

            runner = self.runner(cc, node)
            self.pipeline.transfer_binaries(version, runner)
            self.pipeline.cache_and_load_configured_images()

            init = detect(runner)
            init.enable(KUBELET_SERVICE)
            init.start(KUBELET_SERVICE)
        finally:
            with self._lock:
                self._provisioning.discard(node.name)

        logger.info(f"Node {node.name} is running")

    def stop(self, cc: ClusterConfig, node: Node) -> None:
        """Stop the kubelet, then halt the host through the driver.

        Hosts the driver does not own are left running. For the others, wait
        until the driver reports the host stopped.

        Raises:
            ExecutionError: If stopping the kubelet fails
            DriverError: If the host cannot be halted or keeps running
        """
        logger.info(f"Stopping node {node.name}")
        runner = self.runner(cc, node)

        detect(runner).stop(KUBELET_SERVICE)
        self.driver.stop(node.name)
        if not self.driver.owns_host:
            logger.info(f"Kubernetes stopped on {node.name}, host left running")
            return

        def _verify():
            if self.driver.is_host_running(node.name):
                raise HostStillRunning(f"Node {node.name} is still running")

        expo(
            _verify,
            STOP_VERIFY_INTERVAL,
            STOP_VERIFY_TIMEOUT,
            STOP_VERIFY_RETRIES,
            retry_on=(HostStillRunning,),
            sleep=self.sleep,
        )
        logger.info(f"Node {node.name} stopped")

    def delete(self, cc: ClusterConfig, name: str) -> Node:
        """Stop (best effort) and destroy a node, then drop it from the profile.

        Raises:
            NotFoundError: If the profile has no such node
            FatalDeleteError: If the backend could not be destroyed; the profile
                is left unchanged
        """
        node, _ = self.retrieve(cc, name)

        if self.status(cc, name) == NodeStatus.RUNNING:
            try:
                self.stop(cc, node)
            except NodeManagerError as e:
                logger.warning(f"Failed to stop node {name}, will still try to delete: {e}")

        try:
            self.driver.destroy(name)
        except NodeManagerError as e:
            logger.error(f"Failed to delete node {name}: {e}")
            raise FatalDeleteError(f"Failed to delete node {name}", e.format_message()) from e

        cc.remove_node(name)
        self.store.save(cc)
        logger.info(f"Deleted node {name} from profile {cc.name}")
        return node
