"""Local Kubernetes node lifecycle and artifact cache manager."""

__version__ = "0.1.0"
