"""Main CLI entry point for node management."""

from pathlib import Path

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from node_manager.exceptions import FatalDeleteError, NodeManagerError, NotFoundError, UsageError
from node_manager.logging_config import get_logger, setup_logging
from node_manager.settings import Settings

app = typer.Typer(
    name="node-mgr",
    help="Local Kubernetes node lifecycle management",
    add_completion=False,
)
node_app = typer.Typer(help="Add, start, stop and delete nodes of a profile")
cache_app = typer.Typer(help="Manage images cached for every profile")
app.add_typer(node_app, name="node")
app.add_typer(cache_app, name="cache")

console = Console()
logger = get_logger(__name__)


def _print_error(e: NodeManagerError, prefix: str = "Error") -> None:
    console.print(f"[red]{prefix}:[/red] {e.message}")
    if e.details:
        console.print(f"\n{e.details}")


def _require_name(name: str) -> None:
    if not name:
        _print_error(UsageError("name is required"))
        raise typer.Exit(code=1)


def build_manager(settings: Settings):
    """Wire the orchestrator and its collaborators from ``settings``.

    An existing profile keeps the driver it was created with; ``settings.driver``
    only applies to profiles that do not exist yet.
    """
    from node_manager.bootstrapper import new_bootstrapper
    from node_manager.cache import CachePipeline
    from node_manager.config import ProfileStore
    from node_manager.drivers import new_driver
    from node_manager.node import NodeManager

    store = ProfileStore(settings.profiles_dir)
    driver_name = settings.driver
    if store.exists(settings.profile):
        driver_name = store.load(settings.profile).driver

    bootstrapper = new_bootstrapper(settings.bootstrapper)
    pipeline = CachePipeline(settings, bootstrapper, console=console)
    return NodeManager(
        settings,
        store,
        new_driver(driver_name, settings),
        bootstrapper,
        pipeline,
    )


def _build(settings: Settings):
    """Build the manager or exit with a diagnostic."""
    try:
        return build_manager(settings)
    except NodeManagerError as e:
        logger.error(f"Failed to set up node manager: {e}")
        _print_error(e)
        raise typer.Exit(code=1)


# Global callback to set up logging and settings
@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile to operate on"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")

    try:
        settings = Settings()
    except PydanticValidationError as e:
        console.print("[red]Invalid settings:[/red]")
        for error in e.errors():
            field = ".".join(str(x) for x in error["loc"])
            console.print(f"  - {field}: {error['msg']}")
        raise typer.Exit(code=1)

    if profile:
        settings = settings.model_copy(update={"profile": profile})
    ctx.obj = settings


def _load_profile(manager):
    """Load the configured profile or exit with a diagnostic."""
    name = manager.settings.profile
    try:
        return manager.store.load(name)
    except NodeManagerError as e:
        _print_error(e)
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    from node_manager import __version__

    typer.echo(f"node-manager version {__version__}")


@app.command()
def start(
    ctx: typer.Context,
    kubernetes_version: str | None = typer.Option(
        None, "--kubernetes-version", help="Kubernetes version to run (e.g. v1.20.0)"
    ),
    driver: str | None = typer.Option(None, "--driver", "-d", help="Driver: docker, ssh or none"),
    download_only: bool = typer.Option(
        False, "--download-only", help="Download all artifacts, then exit without starting"
    ),
    cache_images: bool | None = typer.Option(
        None,
        "--cache-images/--no-cache-images",
        help="Cache control plane images under the node manager home",
    ),
) -> None:
    """
    Start the profile, creating it with a single control plane node if needed.

    With --download-only every binary and image is cached and nothing is
    provisioned.
    """
    from node_manager.models import ClusterConfig, KubernetesConfig, Node

    settings: Settings = ctx.obj
    update = {"download_only": download_only or settings.download_only}
    if kubernetes_version:
        update["kubernetes_version"] = kubernetes_version
    if driver:
        update["driver"] = driver
    if cache_images is not None:
        update["cache_images"] = cache_images
    settings = settings.model_copy(update=update)

    try:
        manager = build_manager(settings)
        store = manager.store

        if store.exists(settings.profile):
            cc = store.load(settings.profile)
        else:
            cc = ClusterConfig(
                name=settings.profile,
                driver=settings.driver,
                nodes=[Node(name=settings.profile, control_plane=True, worker=True)],
                kubernetes_config=KubernetesConfig(
                    kubernetes_version=settings.kubernetes_version,
                    image_repository=settings.image_repository,
                ),
            )

        version = cc.kubernetes_config.kubernetes_version
        if settings.download_only:
            pipeline = manager.pipeline
            group = pipeline.begin_cache_required_images(pipeline.request_for(cc))
            pipeline.handle_download_only(group, version, cc.driver)
            return

        if not store.exists(cc.name):
            store.save(cc)
        console.print(f"Starting profile '{cc.name}' with Kubernetes {version}")
        for node in cc.nodes:
            manager.start(cc, node)
            console.print(f"[green]✓[/green] Node '{node.name}' started")

    except PydanticValidationError as e:
        console.print("[red]Validation Error:[/red]")
        for error in e.errors():
            field = ".".join(str(x) for x in error["loc"])
            console.print(f"  - {field}: {error['msg']}")
        raise typer.Exit(code=1)
    except NodeManagerError as e:
        logger.error(f"Start failed: {e}")
        _print_error(e, "Failed to start")
        raise typer.Exit(code=1)


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the live status of every node in the profile."""
    manager = _build(ctx.obj)
    cc = _load_profile(manager)

    table = Table(title=f"Profile {cc.name}")
    table.add_column("Name", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("IP")
    table.add_column("Kubernetes")
    table.add_column("Status", style="green")

    for node in cc.nodes:
        table.add_row(
            node.name,
            node.role,
            node.ip or "-",
            cc.version_for(node),
            manager.status(cc, node.name).value,
        )

    console.print(table)


@node_app.command("add")
def node_add(
    ctx: typer.Context,
    name: str | None = typer.Option(None, "--name", "-n", help="Node name (generated if omitted)"),
    control_plane: bool = typer.Option(False, "--control-plane", help="Run a control plane"),
    worker: bool = typer.Option(True, "--worker/--no-worker", help="Schedule workloads"),
    ip: str = typer.Option("", "--ip", help="Address of the host (ssh driver)"),
) -> None:
    """Add a node to the profile and start it."""
    from node_manager.models import Node

    manager = _build(ctx.obj)
    cc = _load_profile(manager)

    if not name:
        name = f"{cc.name}-m{len(cc.nodes) + 1:02d}"

    try:
        node = Node(name=name, control_plane=control_plane, worker=worker, ip=ip)
    except PydanticValidationError as e:
        console.print("[red]Validation Error:[/red]")
        for error in e.errors():
            field = ".".join(str(x) for x in error["loc"])
            console.print(f"  - {field}: {error['msg']}")
        raise typer.Exit(code=1)

    try:
        manager.add(cc, node)
    except NodeManagerError as e:
        logger.error(f"Failed to add node {name}: {e}")
        _print_error(e, f"Failed to add node {name}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Added node '{name}' to profile '{cc.name}'")
    console.print(f"  Role: {node.role}")


@node_app.command("start")
def node_start(
    ctx: typer.Context,
    name: str = typer.Option("", "--name", "-n", help="Name of the node to start"),
) -> None:
    """Start a stopped node."""
    _require_name(name)

    manager = _build(ctx.obj)
    cc = _load_profile(manager)
    try:
        node, _ = manager.retrieve(cc, name)
        manager.start(cc, node)
    except NodeManagerError as e:
        logger.error(f"Failed to start node {name}: {e}")
        _print_error(e, f"Failed to start node {name}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Node '{name}' started")


@node_app.command("stop")
def node_stop(
    ctx: typer.Context,
    name: str = typer.Option("", "--name", "-n", help="Name of the node to stop"),
) -> None:
    """Stop a running node."""
    _require_name(name)

    manager = _build(ctx.obj)
    cc = _load_profile(manager)
    try:
        node, _ = manager.retrieve(cc, name)
        manager.stop(cc, node)
    except NodeManagerError as e:
        logger.error(f"Failed to stop node {name}: {e}")
        _print_error(e, f"Failed to stop node {name}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Node '{name}' stopped")


@node_app.command("delete")
def node_delete(
    ctx: typer.Context,
    name: str = typer.Option("", "--name", "-n", help="Name of the node to delete"),
) -> None:
    """
    Delete a node from the profile.

    The node is stopped first when it is running; a failed stop is only a
    warning. A failure to destroy the backing host leaves the profile unchanged.
    """
    _require_name(name)

    manager = _build(ctx.obj)
    cc = _load_profile(manager)
    try:
        manager.delete(cc, name)
    except NotFoundError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except FatalDeleteError as e:
        _print_error(e, "Failed to delete node")
        raise typer.Exit(code=1)
    except NodeManagerError as e:
        logger.error(f"Failed to delete node {name}: {e}")
        _print_error(e, f"Failed to delete node {name}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Node '{name}' was successfully deleted")


@node_app.command("list")
def node_list(ctx: typer.Context) -> None:
    """List the nodes of the profile."""
    manager = _build(ctx.obj)
    cc = _load_profile(manager)

    if not cc.nodes:
        console.print("[yellow]No nodes in profile[/yellow]")
        return
    for node in cc.nodes:
        console.print(f"{node.name}\t{node.ip or '-'}")


@cache_app.command("add")
def cache_add(
    ctx: typer.Context,
    images: list[str] = typer.Argument(..., help="Images to cache"),
) -> None:
    """Cache images and remember them so every node start loads them."""
    manager = _build(ctx.obj)
    pipeline = manager.pipeline
    try:
        pipeline.cache_images(images)
        pipeline.config_file.add_cached_images(images)
    except NodeManagerError as e:
        logger.error(f"Failed to cache images: {e}")
        _print_error(e, "Failed to cache images")
        raise typer.Exit(code=1)

    for image in images:
        console.print(f"[green]✓[/green] Cached {image}")


@cache_app.command("delete")
def cache_delete(
    ctx: typer.Context,
    images: list[str] = typer.Argument(..., help="Images to forget"),
) -> None:
    """Forget cached images and remove their tarballs."""
    manager = _build(ctx.obj)
    pipeline = manager.pipeline
    try:
        pipeline.config_file.remove_cached_images(images)
    except NodeManagerError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    for image in images:
        path = pipeline.images.path(image)
        path.unlink(missing_ok=True)
        console.print(f"[green]✓[/green] Removed {image}")


@cache_app.command("list")
def cache_list(ctx: typer.Context) -> None:
    """List images recorded in the config file."""
    manager = _build(ctx.obj)
    try:
        images = manager.pipeline.config_file.cached_images()
    except NodeManagerError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    if not images:
        console.print("[yellow]No cached images[/yellow]")
        return
    for image in images:
        typer.echo(image)


@cache_app.command("reload")
def cache_reload(ctx: typer.Context) -> None:
    """Re-cache the configured images and load them into the image daemon."""
    manager = _build(ctx.obj)
    try:
        manager.pipeline.cache_and_load_configured_images()
    except NodeManagerError as e:
        logger.error(f"Failed to reload cached images: {e}")
        _print_error(e, "Failed to reload cached images")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Cached images reloaded")


if __name__ == "__main__":
    app()
