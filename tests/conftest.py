"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
from hypothesis import Verbosity, settings

from node_manager.bootstrapper import Bootstrapper
from node_manager.cache.images import ImageCache
from node_manager.cache.pipeline import CachePipeline
from node_manager.command.fake import FakeRunner
from node_manager.config import ConfigFile, ProfileStore
from node_manager.drivers import Driver
from node_manager.exceptions import CacheError, DriverError
from node_manager.models import ClusterConfig, KubernetesConfig, Node
from node_manager.node import NodeManager
from node_manager.settings import Settings

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


# Commands a systemd node answers during start and stop
SYSTEMD_COMMANDS = {
    "systemctl --version": "systemd 245",
    "sudo systemctl daemon-reload": "",
    "sudo systemctl enable kubelet": "",
    "sudo systemctl start kubelet": "",
    "sudo systemctl stop kubelet": "",
}


class FakeDriver(Driver):
    """Driver keeping host state in memory."""

    name = "fake"

    def __init__(self):
        self.running: dict[str, bool] = {}
        self.runners: dict[str, FakeRunner] = {}
        self.provisioned: list[str] = []
        self.stopped: list[str] = []
        self.destroyed: list[str] = []
        self.ignore_stop = False
        self.fail_destroy = False
        self.fail_status = False

    def runner_for(self, name: str) -> FakeRunner:
        if name not in self.runners:
            self.runners[name] = FakeRunner()
        return self.runners[name]

    def is_host_running(self, name: str) -> bool:
        if self.fail_status:
            raise DriverError(f"cannot reach {name}")
        return self.running.get(name, False)

    def provision(self, cc, node) -> None:
        self.provisioned.append(node.name)
        self.running[node.name] = True
        node.ip = "192.168.49.2"

    def stop(self, name: str) -> None:
        self.stopped.append(name)
        if not self.ignore_stop:
            self.running[name] = False

    def destroy(self, name: str) -> None:
        self.destroyed.append(name)
        if self.fail_destroy:
            raise DriverError(f"Failed to remove container {name}", "device busy")
        self.running.pop(name, None)

    def command_runner(self, node):
        return self.runner_for(node.name)


class FakeDownloader:
    """Downloader writing placeholder bytes instead of touching the network."""

    def __init__(self):
        self.calls: list[tuple[str, Path]] = []
        self.fail_urls: set[str] = set()

    def download(self, url, dest):
        dest = Path(dest)
        self.calls.append((url, dest))
        if any(part in url for part in self.fail_urls):
            raise CacheError(f"Failed to download {url}: HTTP 404")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(f"contents of {url}".encode())
        return dest


class FakeImageClient:
    """Image client writing tarballs without a docker daemon."""

    def __init__(self):
        self.saved: list[str] = []
        self.loaded: list[Path] = []
        self.daemon: list[str] = []
        self.fail_refs: set[str] = set()

    def save(self, ref, dest):
        self.saved.append(ref)
        if ref in self.fail_refs:
            raise CacheError(f"Failed to pull {ref}", "manifest unknown")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(ref.encode())

    def load(self, path):
        self.loaded.append(path)

    def write_to_daemon(self, ref):
        self.daemon.append(ref)


class StubBootstrapper(Bootstrapper):
    """Bootstrapper needing a single binary and a fixed set of images."""

    name = "stub"

    def __init__(self, images=None):
        self.images = images or ["k8s.gcr.io/pause:3.2", "k8s.gcr.io/etcd:3.4.13-0"]

    def cached_binaries(self):
        return ["kubeadm"]

    def cached_images(self, image_repository, version):
        return list(self.images)


@pytest.fixture
def node_settings(tmp_path):
    """Settings rooted in a temporary home directory."""
    return Settings(home=tmp_path / "home", profile="test", driver="fake")


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def fake_downloader():
    return FakeDownloader()


@pytest.fixture
def fake_image_client():
    return FakeImageClient()


@pytest.fixture
def stub_bootstrapper():
    return StubBootstrapper()


@pytest.fixture
def pipeline(node_settings, stub_bootstrapper, fake_downloader, fake_image_client):
    """Cache pipeline wired to in-memory fakes."""
    return CachePipeline(
        node_settings,
        stub_bootstrapper,
        downloader=fake_downloader,
        images=ImageCache(node_settings.images_dir, client=fake_image_client),
        config_file=ConfigFile(node_settings.config_file),
    )


@pytest.fixture
def profile_store(node_settings):
    return ProfileStore(node_settings.profiles_dir)


@pytest.fixture
def manager(node_settings, profile_store, fake_driver, stub_bootstrapper, pipeline):
    """Node manager wired to in-memory fakes, never sleeping."""
    return NodeManager(
        node_settings,
        profile_store,
        fake_driver,
        stub_bootstrapper,
        pipeline,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def cluster(profile_store):
    """Saved two node profile."""
    cc = ClusterConfig(
        name="test",
        driver="fake",
        nodes=[
            Node(name="node1", control_plane=True, worker=True),
            Node(name="node2"),
        ],
        kubernetes_config=KubernetesConfig(kubernetes_version="v1.20.0"),
    )
    profile_store.save(cc)
    return cc


@pytest.fixture
def systemd_commands():
    """Outputs for the commands a healthy systemd node answers."""
    return dict(SYSTEMD_COMMANDS)
