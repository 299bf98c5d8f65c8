"""Runtime settings for node manager.

Settings are read once at startup (command line options override environment
variables prefixed with ``NODE_MGR_``) and handed to the pipeline and the
orchestrator explicitly.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from node_manager.models.cluster import DEFAULT_KUBERNETES_VERSION


class Settings(BaseSettings):
    """Node manager settings."""

    model_config = SettingsConfigDict(env_prefix="NODE_MGR_", extra="ignore")

    home: Path = Field(default_factory=lambda: Path.home() / ".node-manager")
    profile: str = "node-manager"
    driver: str = "docker"
    bootstrapper: str = "kubeadm"
    kubernetes_version: str = DEFAULT_KUBERNETES_VERSION
    image_repository: str = ""
    cache_images: bool = True
    download_only: bool = False
    ssh_user: str = "docker"
    ssh_key_path: str | None = None
    ssh_port: int = 22

    @property
    def cache_dir(self) -> Path:
        """Directory holding version-keyed binaries."""
        return self.home / "cache"

    @property
    def images_dir(self) -> Path:
        """Directory holding image tarballs."""
        return self.home / "images"

    @property
    def profiles_dir(self) -> Path:
        return self.home / "profiles"

    @property
    def config_file(self) -> Path:
        """User config file holding the cached image list."""
        return self.home / "config" / "config.yaml"
