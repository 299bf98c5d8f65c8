"""Profile persistence and the user config file.

Profiles are stored as plain YAML documents (one per profile). The user config
file is edited with ruamel.yaml so comments and formatting written by hand are
preserved across writes.
"""

import shutil
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from node_manager.exceptions import ConfigLoadError, ConfigurationError, NotFoundError
from node_manager.logging_config import get_logger
from node_manager.models.cluster import ClusterConfig

logger = get_logger(__name__)

# Key in the user config file listing images to cache.
CACHE_IMAGES_KEY = "cache"


class ProfileStore:
    """Load and persist cluster profiles under ``<home>/profiles``."""

    def __init__(self, profiles_dir: str | Path):
        """Initialize the store.

        Args:
            profiles_dir: Directory containing one sub-directory per profile
        """
        self.profiles_dir = Path(profiles_dir)

    def path(self, name: str) -> Path:
        return self.profiles_dir / name / "config.yaml"

    def exists(self, name: str) -> bool:
        return self.path(name).exists()

    def load(self, name: str) -> ClusterConfig:
        """Load a profile.

        Raises:
            NotFoundError: If the profile does not exist
            ConfigLoadError: If the profile cannot be read or is invalid
        """
        path = self.path(name)
        logger.debug(f"Loading profile '{name}' from {path}")

        if not path.exists():
            raise NotFoundError(
                f"Profile '{name}' not found",
                f"Expected location: {path.absolute()}\n"
                f"Create it with: node-mgr start --profile {name}",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read profile '{name}': {e}")
            raise ConfigLoadError(
                f"Failed to read profile '{name}': {e}",
                f"The file may be corrupted or have invalid YAML syntax: {path.absolute()}",
            ) from e

        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Profile '{name}' is empty or malformed",
                f"Expected a mapping at the top level of {path.absolute()}",
            )

        try:
            return ClusterConfig(**data)
        except PydanticValidationError as e:
            raise ConfigLoadError(f"Profile '{name}' failed validation", str(e)) from e

    def save(self, cc: ClusterConfig) -> None:
        """Persist a profile, replacing any previous version atomically."""
        path = self.path(cc.name)
        logger.debug(f"Saving profile '{cc.name}' to {path}")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".yaml.tmp")
            with open(tmp, "w") as f:
                yaml.safe_dump(cc.model_dump(mode="json"), f, default_flow_style=False)
            tmp.replace(path)
        except OSError as e:
            logger.error(f"Failed to write profile '{cc.name}': {e}")
            raise ConfigurationError(
                f"Failed to write profile '{cc.name}': {e}",
                "Check disk space and file system permissions",
            ) from e

        logger.info(f"Saved profile '{cc.name}' with {len(cc.nodes)} node(s)")


class ConfigFile:
    """The user config file (``<home>/config/config.yaml``)."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.yaml = YAML()
        self.yaml.preserve_quotes = True
        self.yaml.default_flow_style = False
        self.yaml.indent(mapping=2, sequence=2, offset=0)

    def read(self) -> dict:
        """Read the config file.

        A missing or empty file reads as an empty mapping.

        Raises:
            ConfigLoadError: If the file cannot be read or parsed
        """
        if not self.path.exists():
            logger.debug(f"Config file {self.path} does not exist")
            return CommentedMap()

        try:
            with open(self.path) as f:
                data = self.yaml.load(f)
        except Exception as e:
            logger.error(f"Failed to read config file: {e}", exc_info=True)
            raise ConfigLoadError(
                f"Failed to read config file: {e}",
                f"The file may be corrupted or have invalid YAML syntax. "
                f"Check the file at: {self.path.absolute()}",
            ) from e

        if data is None:
            return CommentedMap()
        if not isinstance(data, dict):
            raise ConfigLoadError(
                "Config file must contain a mapping", f"Check the file at: {self.path.absolute()}"
            )
        return data

    def write(self, data: dict) -> None:
        """Write the config file, keeping a backup of the previous version."""
        logger.debug(f"Writing config file: {self.path}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                shutil.copy2(self.path, self.path.with_suffix(".yaml.backup"))
            with open(self.path, "w") as f:
                self.yaml.dump(data, f)
        except OSError as e:
            logger.error(f"Failed to write config file: {e}")
            raise ConfigurationError(
                f"Failed to write config file: {e}",
                "Check disk space and file system permissions",
            ) from e

    def cached_images(self) -> list[str]:
        """Image names listed under the ``cache`` key."""
        values = self.read().get(CACHE_IMAGES_KEY)
        if not values:
            return []
        if not isinstance(values, dict):
            raise ConfigLoadError(
                f"'{CACHE_IMAGES_KEY}' in {self.path} must be a mapping of image names"
            )
        return list(values.keys())

    def add_cached_images(self, images: list[str]) -> None:
        data = self.read()
        if not isinstance(data.get(CACHE_IMAGES_KEY), dict):
            data[CACHE_IMAGES_KEY] = CommentedMap()
        for image in images:
            data[CACHE_IMAGES_KEY][image] = None
        self.write(data)

    def remove_cached_images(self, images: list[str]) -> None:
        data = self.read()
        cached = data.get(CACHE_IMAGES_KEY) or {}
        for image in images:
            cached.pop(image, None)
        if CACHE_IMAGES_KEY in data:
            data[CACHE_IMAGES_KEY] = cached
        self.write(data)
