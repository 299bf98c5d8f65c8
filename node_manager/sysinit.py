"""Init system control on a node, driven through a Runner."""

from abc import ABC, abstractmethod

from node_manager.command.runner import Runner
from node_manager.exceptions import ExecutionError


class InitSystem(ABC):
    """Service manager running on a node."""

    name: str = ""

    def __init__(self, runner: Runner):
        self.runner = runner

    @abstractmethod
    def active(self, svc: str) -> bool:
        """Return whether ``svc`` is running."""

    @abstractmethod
    def start(self, svc: str) -> None: ...

    @abstractmethod
    def stop(self, svc: str) -> None: ...

    @abstractmethod
    def force_stop(self, svc: str) -> None:
        """Terminate a service with prejudice."""

    @abstractmethod
    def restart(self, svc: str) -> None: ...

    @abstractmethod
    def enable(self, svc: str) -> None: ...

    @abstractmethod
    def disable(self, svc: str) -> None: ...


class Systemd(InitSystem):
    """Service manager for systemd distributions."""

    name = "systemd"

    def _reload(self) -> None:
        self.runner.run_cmd(["sudo", "systemctl", "daemon-reload"])

    def active(self, svc: str) -> bool:
        try:
            self.runner.run_cmd(["sudo", "systemctl", "is-active", "--quiet", "service", svc])
        except ExecutionError:
            return False
        return True

    def start(self, svc: str) -> None:
        self._reload()
        self.runner.run_cmd(["sudo", "systemctl", "start", svc])

    def stop(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "systemctl", "stop", svc])

    def force_stop(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "systemctl", "stop", "-f", svc])

    def restart(self, svc: str) -> None:
        self._reload()
        self.runner.run_cmd(["sudo", "systemctl", "restart", svc])

    def enable(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "systemctl", "enable", svc])

    def disable(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "systemctl", "disable", svc])


class OpenRC(InitSystem):
    """Service manager for hosts using SysV-style ``service`` scripts."""

    name = "openrc"

    def active(self, svc: str) -> bool:
        try:
            self.runner.run_cmd(["sudo", "service", svc, "status"])
        except ExecutionError:
            return False
        return True

    def start(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "service", svc, "start"])

    def stop(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "service", svc, "stop"])

    def force_stop(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "pkill", "-9", "-f", svc])

    def restart(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "service", svc, "restart"])

    def enable(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "rc-update", "add", svc, "default"])

    def disable(self, svc: str) -> None:
        self.runner.run_cmd(["sudo", "rc-update", "del", svc, "default"])


def uses_systemd(runner: Runner) -> bool:
    try:
        runner.run_cmd(["systemctl", "--version"])
    except ExecutionError:
        return False
    return True


def detect(runner: Runner) -> InitSystem:
    """Pick the init system running behind ``runner``."""
    if uses_systemd(runner):
        return Systemd(runner)
    return OpenRC(runner)
