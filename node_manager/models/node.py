"""Data models for cluster nodes."""

import re
from enum import Enum

from pydantic import BaseModel, field_validator

VERSION_PATTERN = re.compile(r"^v\d+\.\d+\.\d+([-+][0-9A-Za-z.-]+)?$")


class NodeStatus(str, Enum):
    """Lifecycle status of a node, derived from the live backend."""

    UNKNOWN = "Unknown"
    PROVISIONING = "Provisioning"
    RUNNING = "Running"
    STOPPED = "Stopped"
    DELETED = "Deleted"


class Node(BaseModel):
    """Node configuration model."""

    name: str
    control_plane: bool = False
    worker: bool = True
    ip: str = ""
    port: int = 8443
    kubernetes_version: str = ""

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate node name follows DNS naming conventions."""
        if not v:
            raise ValueError("name cannot be empty")
        if len(v) > 253:
            raise ValueError("name cannot exceed 253 characters")
        # RFC 1123 hostname validation
        name_pattern = re.compile(
            r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$", re.IGNORECASE
        )
        if not name_pattern.fullmatch(v):
            raise ValueError(
                f"name '{v}' must contain only alphanumeric characters, "
                "hyphens, and dots, and cannot start or end with a hyphen"
            )
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in the TCP range."""
        if not 0 < v < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {v}")
        return v

    @field_validator("kubernetes_version")
    @classmethod
    def validate_kubernetes_version(cls, v: str) -> str:
        """Validate kubernetes_version when one is pinned on the node."""
        if v and not VERSION_PATTERN.fullmatch(v):
            raise ValueError(f"kubernetes_version '{v}' must look like v1.20.0")
        return v

    @property
    def role(self) -> str:
        """Human readable role used in tables and logs."""
        return "control-plane" if self.control_plane else "worker"
