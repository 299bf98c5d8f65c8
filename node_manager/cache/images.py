"""Container image caching through the local docker daemon."""

import threading
from pathlib import Path

import docker
from docker.errors import APIError, DockerException, ImageNotFound

from node_manager.exceptions import CacheError
from node_manager.logging_config import get_logger
from node_manager.models.cache import CacheResult
from node_manager.retry import expo
from node_manager.tasks import TaskGroup

logger = get_logger(__name__)


def image_path(images_dir: str | Path, ref: str) -> Path:
    """Path of the tarball caching ``ref``.

    ``k8s.gcr.io/pause:3.2`` is stored as ``<images_dir>/k8s.gcr.io/pause_3.2``.
    """
    return Path(images_dir) / Path(*ref.replace(":", "_").split("/"))


def split_tag(ref: str) -> tuple[str, str | None]:
    """Split ``repo:tag`` into its parts; a registry port is not a tag."""
    if "@" in ref:
        return ref, None
    head, _, tail = ref.rpartition(":")
    if head and "/" not in tail:
        return head, tail
    return ref, None


class ImageClient:
    """Pulls, saves and loads images with the docker SDK."""

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        initial_interval: float = 1.0,
        max_elapsed: float = 120.0,
        max_retries: int | None = 5,
    ):
        self._client = client
        self.initial_interval = initial_interval
        self.max_elapsed = max_elapsed
        self.max_retries = max_retries

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise CacheError(
                    "Cannot connect to the docker daemon",
                    "Make sure docker is installed and running",
                ) from e
        return self._client

    def pull(self, ref: str):
        """Pull ``ref`` into the daemon, retrying transient failures."""
        repository, tag = split_tag(ref)

        def _pull():
            return self.client.images.pull(repository, tag=tag)

        try:
            return expo(
                _pull, self.initial_interval, self.max_elapsed, self.max_retries,
                retry_on=(APIError,),
            )
        except APIError as e:
            raise CacheError(f"Failed to pull {ref}", str(e)) from e

    def write_to_daemon(self, ref: str) -> None:
        """Make ``ref`` available in the local daemon, pulling if needed."""
        try:
            self.client.images.get(ref)
            logger.debug(f"{ref} already present in daemon")
            return
        except ImageNotFound:
            pass
        self.pull(ref)

    def save(self, ref: str, dest: Path) -> None:
        """Write ``ref`` as a tarball to ``dest``."""
        image = self.pull(ref)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(f"{dest.name}.tmp")
        try:
            with open(tmp, "wb") as f:
                for chunk in image.save(named=True):
                    f.write(chunk)
        except (APIError, OSError) as e:
            tmp.unlink(missing_ok=True)
            raise CacheError(f"Failed to save {ref} to {dest}", str(e)) from e
        tmp.replace(dest)

    def load(self, path: Path) -> None:
        """Load an image tarball into the daemon."""
        try:
            with open(path, "rb") as f:
                self.client.images.load(f.read())
        except (APIError, OSError) as e:
            raise CacheError(f"Failed to load image from {path}", str(e)) from e


class ImageCache:
    """Image tarballs stored under ``<home>/images``."""

    def __init__(self, images_dir: str | Path, client: ImageClient | None = None):
        self.images_dir = Path(images_dir)
        self.client = client or ImageClient()
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(path, threading.Lock())

    def path(self, ref: str) -> Path:
        return image_path(self.images_dir, ref)

    def cache_image(self, ref: str) -> CacheResult:
        """Cache ``ref`` unless a tarball already exists."""
        dest = self.path(ref)
        with self._lock_for(dest):
            if dest.exists():
                logger.debug(f"{ref} exists at {dest}, skipping")
                return CacheResult(artifact=ref, path=str(dest), hit=True)
            logger.info(f"Caching image {ref} -> {dest}")
            self.client.save(ref, dest)
        return CacheResult(artifact=ref, path=str(dest))

    def cache_images(self, refs: list[str]) -> list[CacheResult]:
        """Cache every image in parallel.

        All images are attempted even if some fail.

        Raises:
            CacheError: Carrying the first failure and every image's result
        """
        group = TaskGroup("cache-images")
        futures = [(ref, group.go(self.cache_image, ref)) for ref in refs]
        first = None
        try:
            group.wait()
        except Exception as e:
            first = e

        results = []
        for ref, future in futures:
            err = future.exception()
            if err is None:
                results.append(future.result())
            else:
                results.append(CacheResult(artifact=ref, path=str(self.path(ref)), error=str(err)))

        if first is not None:
            failed = next(ref for ref, future in futures if future.exception() is first)
            raise CacheError(
                f"Failed to cache image {failed}", str(first), results=results
            ) from first
        return results

    def load_images(self, refs: list[str]) -> None:
        """Load cached tarballs into the daemon."""
        for ref in refs:
            path = self.path(ref)
            logger.info(f"Loading image {ref} from {path}")
            self.client.load(path)
