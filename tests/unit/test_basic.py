"""Basic tests to verify project setup."""


def test_import_node_manager():
    """Test that node_manager package can be imported."""
    import node_manager

    assert node_manager.__version__ == "0.1.0"


def test_import_cli():
    """Test that CLI module can be imported."""
    from node_manager import cli

    assert cli.app is not None


def test_import_models():
    """Test that models module can be imported."""
    from node_manager import models

    assert models.Node is not None
    assert models.ClusterConfig is not None


def test_new_driver_and_bootstrapper():
    from node_manager.bootstrapper import Kubeadm, new_bootstrapper
    from node_manager.drivers import DockerDriver, NoneDriver, SSHDriver, new_driver
    from node_manager.settings import Settings

    settings = Settings()

    assert isinstance(new_driver("docker", settings), DockerDriver)
    assert isinstance(new_driver("ssh", settings), SSHDriver)
    assert isinstance(new_driver("none", settings), NoneDriver)
    assert isinstance(new_bootstrapper("kubeadm"), Kubeadm)
