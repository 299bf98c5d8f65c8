"""Data models for cluster configuration and state."""

from node_manager.models.cache import CacheRequest, CacheResult
from node_manager.models.cluster import ClusterConfig, KubernetesConfig
from node_manager.models.node import Node, NodeStatus

__all__ = [
    "Node",
    "NodeStatus",
    "ClusterConfig",
    "KubernetesConfig",
    "CacheRequest",
    "CacheResult",
]
