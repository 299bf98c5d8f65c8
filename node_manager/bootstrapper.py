"""Bootstrapper collaborators: what a Kubernetes version needs on a node."""

from abc import ABC, abstractmethod

from node_manager.exceptions import ConfigurationError

DEFAULT_IMAGE_REPOSITORY = "k8s.gcr.io"
STORAGE_PROVISIONER_IMAGE = "gcr.io/k8s-minikube/storage-provisioner:v4"

# Control plane component images that do not follow the Kubernetes version,
# keyed by minor version. Versions newer than the table use the last entry.
_COMPONENT_VERSIONS = {
    18: {"pause": "3.2", "etcd": "3.4.3-0", "coredns": "1.6.7"},
    19: {"pause": "3.2", "etcd": "3.4.9-1", "coredns": "1.7.0"},
    20: {"pause": "3.2", "etcd": "3.4.13-0", "coredns": "1.7.0"},
    21: {"pause": "3.4.1", "etcd": "3.4.13-0", "coredns": "v1.8.0"},
}


def minor_version(version: str) -> int:
    """Return the minor component of a ``vMAJOR.MINOR.PATCH`` version."""
    try:
        return int(version.lstrip("v").split(".")[1])
    except (IndexError, ValueError) as e:
        raise ConfigurationError(f"Invalid Kubernetes version: {version}") from e


class Bootstrapper(ABC):
    """Turns a provisioned host into a Kubernetes node."""

    name: str = ""

    @abstractmethod
    def cached_binaries(self) -> list[str]:
        """Binaries to cache and transfer to every node."""

    @abstractmethod
    def cached_images(self, image_repository: str, version: str) -> list[str]:
        """Images the control plane needs for ``version``."""


class Kubeadm(Bootstrapper):
    """kubeadm based bootstrapper."""

    name = "kubeadm"

    def cached_binaries(self) -> list[str]:
        return ["kubelet", "kubeadm"]

    def cached_images(self, image_repository: str, version: str) -> list[str]:
        repo = image_repository or DEFAULT_IMAGE_REPOSITORY
        minor = minor_version(version)
        components = _COMPONENT_VERSIONS.get(minor)
        if components is None:
            oldest, newest = min(_COMPONENT_VERSIONS), max(_COMPONENT_VERSIONS)
            components = _COMPONENT_VERSIONS[oldest if minor < oldest else newest]

        coredns = f"{repo}/coredns:{components['coredns']}"
        if components["coredns"].startswith("v"):
            coredns = f"{repo}/coredns/coredns:{components['coredns']}"

        return [
            f"{repo}/kube-proxy:{version}",
            f"{repo}/kube-scheduler:{version}",
            f"{repo}/kube-controller-manager:{version}",
            f"{repo}/kube-apiserver:{version}",
            f"{repo}/pause:{components['pause']}",
            f"{repo}/etcd:{components['etcd']}",
            coredns,
            STORAGE_PROVISIONER_IMAGE,
        ]


def new_bootstrapper(name: str) -> Bootstrapper:
    """Return the bootstrapper called ``name``."""
    if name == Kubeadm.name:
        return Kubeadm()
    raise ConfigurationError(
        f"Unknown bootstrapper: {name}", f"Supported bootstrappers: {Kubeadm.name}"
    )
