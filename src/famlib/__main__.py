"""Entry point for the Family Library command line."""

import sys
from pathlib import Path

import click

from famlib import __version__


def setup_logging():
    """Setup application logging."""
    from famlib.utils.logger import setup_logging as init_logging

    logger = init_logging()

    # Setup exception hook to log crashes
    def exception_hook(exc_type, exc_value, exc_tb):
        logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = exception_hook
    return logger


_logger = setup_logging()

from famlib.core.batch_loader import BatchLoader, ConflictPolicy  # noqa: E402
from famlib.core.catalog import LibraryIndexer, LibrarySession  # noqa: E402
from famlib.core.host import ConflictChoice  # noqa: E402
from famlib.core.package_host import FolderWorkspace, IdleLoop, PackageHost, PackageRenderer  # noqa: E402
from famlib.core.placement import DeferredPlacement  # noqa: E402
from famlib.core.tag_system import DEFAULT_TOGGLE_GROUPS, MODE_2D, MODE_3D  # noqa: E402
from famlib.core.task_queue import LibraryTaskQueue, LibraryTaskRequest, LibraryTaskType  # noqa: E402
from famlib.core.thumbnail_generator import ThumbnailGenerator  # noqa: E402
from famlib.utils.logger import configure_file_logging, set_logging_enabled  # noqa: E402
from famlib.utils.settings import Settings  # noqa: E402

_CHOICES = {
    "o": ConflictChoice.OVERWRITE,
    "s": ConflictChoice.SKIP,
    "a": ConflictChoice.OVERWRITE_ALL,
    "l": ConflictChoice.SKIP_ALL,
    "c": ConflictChoice.CANCEL,
}

_POLICIES = {
    "ask": ConflictPolicy.ASK,
    "overwrite": ConflictPolicy.OVERWRITE,
    "skip": ConflictPolicy.SKIP,
}


def echo_notifier(title: str, message: str) -> None:
    click.echo(f"[{title}] {message}")


def ask_conflict(name: str, path: Path) -> ConflictChoice:
    """Ask on the terminal how to resolve a name collision."""
    click.echo(f"'{name}' is already loaded.")
    try:
        answer = click.prompt(
            "[o]verwrite, [s]kip, overwrite [a]ll, skip a[l]l, [c]ancel",
            type=click.Choice(list(_CHOICES), case_sensitive=False),
        )
    except click.Abort:
        return ConflictChoice.CANCEL
    return _CHOICES[answer.lower()]


def _make_queue(
    workspace: Path | None = None,
    policy: ConflictPolicy = ConflictPolicy.ASK,
    idle: IdleLoop | None = None,
) -> LibraryTaskQueue:
    host = PackageHost()
    idle = idle or IdleLoop()

    def loader_factory(request: LibraryTaskRequest) -> BatchLoader:
        target = FolderWorkspace(workspace)
        placement = DeferredPlacement(
            idle, lambda t: target.request_placement(t.asset, t.variant)
        )
        placement.placement_requested.connect(
            lambda t: echo_notifier("Family Library", f"Placing {t.asset.name} : {t.variant}")
        )
        return BatchLoader(target, ask_conflict, placement, echo_notifier, policy)

    return LibraryTaskQueue(
        LibraryIndexer(host),
        ThumbnailGenerator(host, PackageRenderer(), echo_notifier),
        loader_factory,
        echo_notifier,
    )


def _run(queue: LibraryTaskQueue, request: LibraryTaskRequest):
    queue.submit(request)
    queue.run_pending()
    if request.error:
        raise click.ClickException(request.error)
    return request.result


def _echo_progress(current: int, total: int, name: str) -> None:
    click.echo(f"[{current}/{total}] {name}")


def _resolve_root(settings: Settings, root: Path | None) -> Path | None:
    return root if root is not None else settings.load_library_root()


def _open_session(settings: Settings, root: Path | None) -> LibrarySession:
    session = LibrarySession(settings, extension=PackageHost.asset_extension, root=root)
    session.refresh()
    return session


_root_option = click.option(
    "--root", type=click.Path(file_okay=False, path_type=Path), help="Library root folder."
)
_progress_option = click.option("--progress", is_flag=True, help="Print each file as it is indexed.")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="famlib")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settings INI file (default: per-user).",
)
@click.pass_context
def cli(ctx: click.Context, settings_path: Path | None) -> None:
    """Catalog, preview and load design asset packages."""
    settings = Settings(settings_path) if settings_path else Settings()
    configure_file_logging(settings)
    ctx.obj = settings
    _logger.debug(f"Running command: {ctx.invoked_subcommand}")


@cli.command()
@_root_option
@click.option("--prune", is_flag=True, help="Drop entries whose file is gone.")
@_progress_option
@click.pass_obj
def index(settings: Settings, root: Path | None, prune: bool, progress: bool) -> None:
    """Update the catalog of a library root."""
    request = LibraryTaskRequest(
        LibraryTaskType.BUILD_INDEX,
        library_root=_resolve_root(settings, root),
        prune_missing=prune,
        progress_callback=_echo_progress if progress else None,
    )
    click.echo(_run(_make_queue(), request))


@cli.command()
@_root_option
@click.option("--size", type=click.IntRange(min=1), help="Thumbnail size in pixels.")
@_progress_option
@click.pass_obj
def thumbs(settings: Settings, root: Path | None, size: int | None, progress: bool) -> None:
    """Render thumbnails, then update the catalog."""
    request = LibraryTaskRequest(
        LibraryTaskType.GENERATE_THUMBNAILS_AND_INDEX,
        library_root=_resolve_root(settings, root),
        thumbnail_pixel_size=size or settings.load_thumbnail_size(),
        progress_callback=_echo_progress if progress else None,
    )
    thumbnail_result, index_result = _run(_make_queue(), request)
    click.echo(thumbnail_result)
    click.echo(index_result)


@cli.command()
@_root_option
@click.option("--mode", type=click.Choice([MODE_2D, MODE_3D]), default=MODE_3D, show_default=True)
@click.option(
    "--toggle",
    "toggles",
    multiple=True,
    type=click.Choice([group.name for group in DEFAULT_TOGGLE_GROUPS]),
    help="Toggle group to activate. Repeatable.",
)
@click.option("--category", default="All", show_default=True)
@click.argument("text", required=False, default="")
@click.pass_obj
def search(
    settings: Settings,
    root: Path | None,
    mode: str,
    toggles: tuple[str, ...],
    category: str,
    text: str,
) -> None:
    """List catalog items matching the filters."""
    session = _open_session(settings, root)
    session.filter.set_mode(mode)
    for name in toggles:
        session.filter.set_toggle(name, True)
    session.filter.selected_category = category
    session.filter.search_text = text
    for item in session.refilter():
        tags = ", ".join(item.user_tags)
        columns = (item.relative_path, item.category, item.format_version, item.last_modified_local, tags)
        click.echo("\t".join(columns))


@cli.command()
@_root_option
@click.argument("relative_path")
@click.argument("tag_name", metavar="TAG")
@click.option("--remove", is_flag=True, help="Remove the tag instead of adding it.")
@click.pass_obj
def tag(settings: Settings, root: Path | None, relative_path: str, tag_name: str, remove: bool) -> None:
    """Add or remove a tag on a catalog item."""
    session = _open_session(settings, root)
    item = session.find(relative_path)
    if item is None:
        raise click.ClickException(f"Not in catalog: {relative_path}")
    if remove:
        session.remove_item_tag(item, tag_name)
    else:
        session.add_item_tag(item, tag_name)
    click.echo(f"{item.relative_path}: {', '.join(item.user_tags)}")


@cli.command()
@click.option(
    "--workspace",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder to load packages into.",
)
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("--place", is_flag=True, help="Place a single loaded asset.")
@click.option(
    "--on-conflict",
    type=click.Choice(list(_POLICIES)),
    default="ask",
    show_default=True,
)
@click.pass_obj
def load(settings: Settings, workspace: Path, paths: tuple[Path, ...], place: bool, on_conflict: str) -> None:
    """Load asset packages into a workspace folder."""
    idle = IdleLoop()
    queue = _make_queue(workspace, _POLICIES[on_conflict], idle)
    request = LibraryTaskRequest(
        LibraryTaskType.LOAD_SELECTED,
        paths=list(paths),
        place_after_loading=place,
    )
    report = _run(queue, request)

    # No event loop on the command line, the idle signal is raised here
    idle.pump()
    if report.cancelled:
        raise click.ClickException("Cancelled, nothing was loaded")


@cli.command()
@_root_option
@click.option("--size", type=click.IntRange(min=1), help="Thumbnail size in pixels.")
@click.option(
    "--logging/--no-logging",
    "logging_enabled",
    default=None,
    help="Write a log file next to the settings file.",
)
@click.pass_obj
def config(settings: Settings, root: Path | None, size: int | None, logging_enabled: bool | None) -> None:
    """Show or change settings."""
    if root is not None:
        settings.save_library_root(root)
    if size is not None:
        settings.save_thumbnail_size(size)
    if logging_enabled is not None:
        set_logging_enabled(logging_enabled, settings)
    click.echo(f"settings: {settings.file_path}")
    click.echo(f"library root: {settings.load_library_root() or ''}")
    click.echo(f"thumbnail size: {settings.load_thumbnail_size()}")
    click.echo(f"file logging: {'on' if settings.load_logging_enabled() else 'off'}")
    click.echo(f"user tags: {', '.join(settings.load_user_tags())}")


def main() -> None:
    cli(prog_name="famlib")


if __name__ == "__main__":
    main()
