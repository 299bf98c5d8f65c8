"""Data models for artifact cache requests and outcomes."""

from pydantic import BaseModel, Field


class CacheRequest(BaseModel):
    """Artifacts needed to bring a Kubernetes version online."""

    kubernetes_version: str
    image_repository: str = ""
    binaries: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class CacheResult(BaseModel):
    """Outcome of caching a single artifact."""

    artifact: str
    path: str = ""
    hit: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
