"""Local cache of Kubernetes binaries and container images."""

from node_manager.cache.download import Downloader
from node_manager.cache.images import ImageCache, ImageClient, image_path
from node_manager.cache.pipeline import CachePipeline

__all__ = ["CachePipeline", "Downloader", "ImageCache", "ImageClient", "image_path"]
