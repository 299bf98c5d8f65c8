"""HTTP downloads of Kubernetes release artifacts."""

import hashlib
import platform
from pathlib import Path

import requests

from node_manager.exceptions import CacheError
from node_manager.logging_config import get_logger
from node_manager.retry import expo

logger = get_logger(__name__)

RELEASE_URL = "https://storage.googleapis.com/kubernetes-release/release"
PRELOAD_URL = "https://storage.googleapis.com/minikube-preloaded-volume-tarballs"
PRELOAD_VERSION = "v8"

_ARCH_ALIASES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64"}


def host_os() -> str:
    """Operating system name as used in release URLs (linux, darwin, windows)."""
    return platform.system().lower()


def host_arch() -> str:
    """CPU architecture as used in release URLs (amd64, arm64, ...)."""
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def binary_url(binary: str, version: str, os_name: str, arch: str) -> str:
    """URL of a Kubernetes release binary."""
    return f"{RELEASE_URL}/{version}/bin/{os_name}/{arch}/{binary}"


def preload_tarball_name(version: str, runtime: str = "docker", arch: str | None = None) -> str:
    """File name of the preloaded images tarball for a Kubernetes version."""
    return (
        f"preloaded-images-k8s-{PRELOAD_VERSION}-{version}-{runtime}-overlay2-"
        f"{arch or host_arch()}.tar.lz4"
    )


def preload_tarball_url(version: str, runtime: str = "docker", arch: str | None = None) -> str:
    return f"{PRELOAD_URL}/{preload_tarball_name(version, runtime, arch)}"


class Downloader:
    """Streams URLs to local files, retrying transient failures.

    Files are written next to their destination and renamed into place once
    complete, so an interrupted download never looks like a cached file.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = 60.0,
        initial_interval: float = 1.0,
        max_elapsed: float = 120.0,
        max_retries: int | None = 5,
        verify_checksum: bool = True,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.initial_interval = initial_interval
        self.max_elapsed = max_elapsed
        self.max_retries = max_retries
        self.verify_checksum = verify_checksum

    def _get(self, url: str) -> requests.Response:
        resp = self.session.get(url, stream=True, timeout=self.timeout)
        if 400 <= resp.status_code < 500:
            resp.close()
            raise CacheError(f"Failed to download {url}: HTTP {resp.status_code}")
        resp.raise_for_status()
        return resp

    def _expected_sha256(self, url: str) -> str | None:
        try:
            resp = self.session.get(f"{url}.sha256", timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug(f"No checksum for {url}: {e}")
            return None
        if resp.status_code != 200:
            logger.debug(f"No checksum for {url}: HTTP {resp.status_code}")
            return None
        return resp.text.split()[0].strip() if resp.text.strip() else None

    def download(self, url: str, dest: str | Path) -> Path:
        """Download ``url`` to ``dest``.

        Raises:
            CacheError: If the download fails permanently or the checksum differs
        """
        dest = Path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"Failed to create {dest.parent}", str(e)) from e
        tmp = dest.with_name(f"{dest.name}.download")

        def _attempt() -> str:
            digest = hashlib.sha256()
            with self._get(url) as resp, open(tmp, "wb") as f:
                for chunk in resp.iter_content(chunk_size=1 << 20):
                    f.write(chunk)
                    digest.update(chunk)
            return digest.hexdigest()

        logger.info(f"Downloading {url} -> {dest}")
        try:
            actual = expo(
                _attempt,
                self.initial_interval,
                self.max_elapsed,
                self.max_retries,
                retry_on=(requests.RequestException, OSError),
            )
        except (requests.RequestException, OSError) as e:
            tmp.unlink(missing_ok=True)
            raise CacheError(f"Failed to download {url}", str(e)) from e
        except CacheError:
            tmp.unlink(missing_ok=True)
            raise

        if self.verify_checksum:
            expected = self._expected_sha256(url)
            if expected and expected != actual:
                tmp.unlink(missing_ok=True)
                raise CacheError(
                    f"Checksum mismatch for {url}", f"expected {expected}, got {actual}"
                )

        tmp.replace(dest)
        return dest
