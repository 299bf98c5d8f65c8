"""Artifact caching pipeline.

Images required by the control plane are cached in the background while
binaries are cached in the foreground. The caller joins the image tasks at an
explicit point; image failures are reported there but never cancel siblings.
"""

import sys
import threading
from pathlib import Path, PurePosixPath

from rich.console import Console

from node_manager.bootstrapper import Bootstrapper
from node_manager.cache.download import (
    Downloader,
    binary_url,
    host_arch,
    host_os,
    preload_tarball_name,
    preload_tarball_url,
)
from node_manager.cache.images import ImageCache
from node_manager.command.runner import CopyableFile, Runner
from node_manager.config import ConfigFile
from node_manager.drivers import BASE_IMAGE, is_container_driver
from node_manager.exceptions import CacheError, NodeManagerError
from node_manager.logging_config import get_logger
from node_manager.models.cache import CacheRequest, CacheResult
from node_manager.models.cluster import ClusterConfig
from node_manager.settings import Settings
from node_manager.tasks import TaskGroup

logger = get_logger(__name__)

# Where binaries are placed on a node.
NODE_BINARIES_DIR = "/var/lib/node-manager/binaries"

# Nodes always run linux.
NODE_OS = "linux"


def kubectl_binary_name(os_name: str) -> str:
    return "kubectl.exe" if os_name == "windows" else "kubectl"


class CachePipeline:
    """Caches Kubernetes binaries and images under the settings' home."""

    def __init__(
        self,
        settings: Settings,
        bootstrapper: Bootstrapper,
        downloader: Downloader | None = None,
        images: ImageCache | None = None,
        config_file: ConfigFile | None = None,
        console: Console | None = None,
    ):
        self.settings = settings
        self.bootstrapper = bootstrapper
        self.downloader = downloader or Downloader()
        self.images = images or ImageCache(settings.images_dir)
        self.config_file = config_file or ConfigFile(settings.config_file)
        self.console = console or Console()
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(path, threading.Lock())

    def request_for(self, cc: ClusterConfig) -> CacheRequest:
        """Build the cache request for a profile's Kubernetes version."""
        k8s = cc.kubernetes_config
        return CacheRequest(
            kubernetes_version=k8s.kubernetes_version,
            image_repository=k8s.image_repository,
            binaries=self.bootstrapper.cached_binaries(),
            images=self.bootstrapper.cached_images(k8s.image_repository, k8s.kubernetes_version),
        )

    # Images

    def begin_cache_required_images(self, request: CacheRequest) -> TaskGroup | None:
        """Start caching the request's images in the background.

        Returns None when image caching is turned off.
        """
        if not self.settings.cache_images:
            return None
        group = TaskGroup("cache-required-images")
        group.go(self.cache_images, request.images)
        return group

    def wait_cache_required_images(self, group: TaskGroup | None) -> None:
        """Block until background image caching is done; failures are logged."""
        if group is None:
            return
        try:
            group.wait()
        except Exception as e:
            logger.error(f"Error caching images: {e}")

    def cache_images(self, images: list[str]) -> list[CacheResult]:
        """Cache every image, raising CacheError with the first failure."""
        return self.images.cache_images(images)

    # Binaries

    def binary_path(self, binary: str, version: str) -> Path:
        return self.settings.cache_dir / version / binary

    def cache_binary(self, binary: str, version: str, os_name: str, arch: str) -> CacheResult:
        """Cache one release binary; an existing file is a hit."""
        dest = self.binary_path(binary, version)
        with self._lock_for(dest):
            if dest.exists():
                logger.debug(f"{binary} {version} already cached at {dest}")
                return CacheResult(artifact=binary, path=str(dest), hit=True)
            self.downloader.download(binary_url(binary, version, os_name, arch), dest)
            if os_name != "windows":
                dest.chmod(0o755)
        return CacheResult(artifact=binary, path=str(dest))

    def cache_kubectl_binary(self, version: str) -> CacheResult:
        """Cache kubectl for the host operating system."""
        os_name = host_os()
        return self.cache_binary(kubectl_binary_name(os_name), version, os_name, host_arch())

    def cache_bootstrapper_binaries(self, version: str) -> list[CacheResult]:
        """Cache the bootstrapper binaries for the node platform in parallel."""
        group = TaskGroup("cache-binaries")
        futures = [
            group.go(self.cache_binary, binary, version, NODE_OS, host_arch())
            for binary in self.bootstrapper.cached_binaries()
        ]
        try:
            group.wait()
        except NodeManagerError as e:
            results = [f.result() for f in futures if f.exception() is None]
            raise CacheError(f"Failed to cache binaries for {version}", str(e), results) from e
        return [f.result() for f in futures]

    def cache_binaries(self, version: str) -> list[CacheResult]:
        """Cache bootstrapper binaries and kubectl for ``version``."""
        results = self.cache_bootstrapper_binaries(version)
        results.append(self.cache_kubectl_binary(version))
        return results

    def transfer_binaries(self, version: str, runner: Runner) -> None:
        """Copy cached bootstrapper binaries onto a node."""
        target_dir = str(PurePosixPath(NODE_BINARIES_DIR) / version)
        for binary in self.bootstrapper.cached_binaries():
            path = self.binary_path(binary, version)
            if not path.exists():
                raise CacheError(
                    f"{binary} {version} is not cached", "Run the cache step before transferring"
                )
            logger.info(f"Transferring {binary} to {runner.target}:{target_dir}")
            runner.copy(CopyableFile.from_path(path, target_dir, binary, permissions="0755"))

    # Container driver artifacts

    def preload_path(self, version: str) -> Path:
        return self.settings.cache_dir / "preloaded-tarball" / preload_tarball_name(version)

    def cache_preload_tarball(self, version: str) -> CacheResult:
        dest = self.preload_path(version)
        if dest.exists():
            return CacheResult(artifact=dest.name, path=str(dest), hit=True)
        self.downloader.download(preload_tarball_url(version), dest)
        return CacheResult(artifact=dest.name, path=str(dest))

    def begin_download_container_artifacts(self, group: TaskGroup, version: str) -> None:
        """Download the node base image and preloaded images tarball."""
        logger.info("Beginning downloading container driver artifacts")
        group.go(self.images.client.write_to_daemon, BASE_IMAGE)
        group.go(self.cache_preload_tarball, version)

    def wait_download_container_artifacts(self, group: TaskGroup) -> None:
        try:
            group.wait()
        except Exception as e:
            logger.error(f"Error downloading container driver artifacts: {e}")
            return
        logger.info("Successfully downloaded all container driver artifacts")

    # Images listed in the config file

    def save_images_to_tar_from_config(self) -> None:
        """Cache the images listed in the config file as tarballs."""
        images = self.config_file.cached_images()
        if not images:
            return
        self.cache_images(images)

    def cache_and_load_configured_images(self) -> None:
        """Cache the images listed in the config file and load them into the daemon."""
        images = self.config_file.cached_images()
        if not images:
            logger.debug("No images listed in config file")
            return
        self.cache_images(images)
        self.images.load_images(images)

    # Download only

    def _fatal(self, message: str, err: Exception) -> None:
        logger.error(f"{message}: {err}")
        self.console.print(f"[red]✗ {message}:[/red] {err}")
        sys.exit(1)

    def handle_download_only(
        self, cache_group: TaskGroup | None, version: str, driver_name: str
    ) -> None:
        """Finish every download and exit the process.

        Returns without doing anything unless download-only mode is on.
        """
        if not self.settings.download_only:
            return

        artifacts_group = TaskGroup("container-artifacts")
        if is_container_driver(driver_name):
            self.begin_download_container_artifacts(artifacts_group, version)

        try:
            self.cache_binaries(version)
        except NodeManagerError as e:
            self._fatal("Failed to cache binaries", e)

        self.wait_cache_required_images(cache_group)
        self.wait_download_container_artifacts(artifacts_group)

        try:
            self.save_images_to_tar_from_config()
        except NodeManagerError as e:
            self._fatal("Failed to cache images to tar", e)

        self.console.print("[green]✓[/green] Download complete!")
        sys.exit(0)
