"""Data models for cluster profiles."""

import re

from pydantic import BaseModel, Field, field_validator

from node_manager.models.node import VERSION_PATTERN, Node

DEFAULT_KUBERNETES_VERSION = "v1.20.0"


class KubernetesConfig(BaseModel):
    """Kubernetes settings shared by every node of a profile."""

    kubernetes_version: str = DEFAULT_KUBERNETES_VERSION
    image_repository: str = ""
    container_runtime: str = "docker"

    @field_validator("kubernetes_version")
    @classmethod
    def validate_kubernetes_version(cls, v: str) -> str:
        """Validate kubernetes_version follows semantic versioning."""
        if not v:
            raise ValueError("kubernetes_version cannot be empty")
        if not VERSION_PATTERN.fullmatch(v):
            raise ValueError(
                f"kubernetes_version '{v}' must follow semantic versioning (e.g., v1.20.0)"
            )
        return v


class ClusterConfig(BaseModel):
    """A named cluster profile."""

    name: str
    driver: str = "docker"
    nodes: list[Node] = Field(default_factory=list)
    kubernetes_config: KubernetesConfig = Field(default_factory=KubernetesConfig)
    addons: dict[str, bool] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate profile name is usable as a directory name."""
        if not v:
            raise ValueError("name cannot be empty")
        if not re.fullmatch(r"[a-zA-Z0-9][a-zA-Z0-9._-]*", v):
            raise ValueError(f"profile name '{v}' contains invalid characters")
        return v

    @field_validator("nodes")
    @classmethod
    def validate_unique_nodes(cls, v: list[Node]) -> list[Node]:
        """Validate node names are unique within the profile."""
        names = [n.name for n in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate node names: {', '.join(duplicates)}")
        return v

    def find_node(self, name: str) -> tuple[Node, int] | None:
        """Return the node called ``name`` and its index, or None."""
        for i, node in enumerate(self.nodes):
            if node.name == name:
                return node, i
        return None

    def add_node(self, node: Node) -> None:
        """Append a node; names must stay unique."""
        if self.find_node(node.name) is not None:
            raise ValueError(f"node '{node.name}' already exists in profile '{self.name}'")
        self.nodes.append(node)

    def remove_node(self, name: str) -> Node:
        """Remove and return the node called ``name``."""
        found = self.find_node(name)
        if found is None:
            raise KeyError(name)
        node, index = found
        del self.nodes[index]
        return node

    def version_for(self, node: Node) -> str:
        """Kubernetes version a node runs, falling back to the profile's."""
        return node.kubernetes_version or self.kubernetes_config.kubernetes_version
