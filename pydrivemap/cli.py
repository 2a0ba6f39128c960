"""CLI interface for pydrivemap."""

import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich.progress import Progress, SpinnerColumn, TextColumn

from .api import DriveClient
from .config import config
from .discovery import (
    AlwaysSync,
    InheritSync,
    NeverSync,
    SyncIfNotIgnored,
    SyncStrategy,
)
from .exceptions import DriveMapError
from .mapping.ignore import FileIgnorer, load_ignore_file
from .mapping.registry import ROOT_KEY, FilesystemMapper
from .output import OutputFormatter
from .remote_explorer import RemoteExplorer
from .workflow import (
    configure_root,
    crawl as crawl_remote,
    discover as discover_remote,
    is_configured,
    sync_all,
    update_synced_directories,
)

logger = logging.getLogger(__name__)

SYNC_MODES = ("inherit", "always", "never", "if-not-ignored")


def _make_explorer(ctx: Any) -> RemoteExplorer:
    client = DriveClient(access_token=ctx.obj.get("token"), timeout=config.timeout)
    return RemoteExplorer(client, page_size=config.max_page_size)


def _load_mapper() -> FilesystemMapper:
    remote_root, local_root = config.require_roots()
    return FilesystemMapper.load_or_bootstrap(remote_root, local_root, config.map_file)


def _ignorer() -> Optional[FileIgnorer]:
    """Global ignore rules plus the local root's ignore file, if any."""
    global_ignorer = config.global_ignorer()
    if global_ignorer is None:
        return None
    return (
        load_ignore_file(global_ignorer.base_directory, default=global_ignorer)
        or global_ignorer
    )


def _spinner(out: OutputFormatter) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        disable=out.quiet or out.json_output,
    )


def _require_configuration(ctx: Any, out: OutputFormatter) -> None:
    if not config.remote_root or config.local_root is None:
        out.error("pydrivemap is not configured.")
        out.info("Run 'pydrivemap init LOCAL_ROOT' to configure the local root")
        ctx.exit(1)


@click.group()
@click.option(
    "--token",
    "-t",
    envvar="PYDRIVEMAP_ACCESS_TOKEN",
    help="OAuth access token for the Drive API",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pydrivemap")
@click.pass_context
def main(
    ctx: Any,
    token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pydrivemap - Map and pull a remote Drive folder tree to a local directory."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydrivemap").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("local_root", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--remote-root",
    "-r",
    default=ROOT_KEY,
    show_default=True,
    help="ID of the remote folder to map (default: the Drive root)",
)
@click.option(
    "--map-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to store the directory map",
)
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing map")
@click.pass_context
def init(
    ctx: Any,
    local_root: Path,
    remote_root: str,
    map_file: Optional[Path],
    force: bool,
) -> None:
    """Map LOCAL_ROOT to a remote folder and start a new directory map."""
    out: OutputFormatter = ctx.obj["out"]
    map_file = (map_file or config.map_file).absolute()

    if map_file.exists() and not force:
        out.error(f"Map file {map_file} already exists.")
        out.info("Use --force to start a new map")
        ctx.exit(1)

    try:
        explorer = _make_explorer(ctx) if remote_root == ROOT_KEY else None
        mapper = configure_root(remote_root, local_root, map_file, explorer)
    except DriveMapError as e:
        out.error(f"Initialization failed: {e}")
        ctx.exit(1)

    config.local_root = mapper.root.local_path
    config.remote_root = mapper.root.remote_id
    config.map_file = map_file
    config.crawl = True
    config.synced_dir_ids = []
    config.save()

    if out.json_output:
        out.output_json(
            {
                "local_root": str(mapper.root.local_path),
                "remote_root": mapper.root.remote_id,
                "map_file": str(map_file),
            }
        )
        return

    out.print_summary(
        "Initialization Complete",
        [
            ("Local root", str(mapper.root.local_path)),
            ("Remote root", mapper.root.remote_id),
            ("Map file", str(map_file)),
            ("Config file", str(config.get_config_path())),
        ],
    )


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show the configuration and the size of the directory map."""
    out: OutputFormatter = ctx.obj["out"]
    _require_configuration(ctx, out)

    map_file = config.map_file
    data: dict[str, Any] = {
        "local_root": str(config.local_root),
        "remote_root": config.remote_root,
        "map_file": str(map_file),
        "configured": is_configured(map_file),
        "mappings": 0,
        "synced": 0,
        "complete": False,
    }
    if data["configured"]:
        mapper = FilesystemMapper.load(map_file)
        data["mappings"] = len(mapper)
        data["synced"] = len(mapper.synced_mappings())
        data["complete"] = mapper.root.subdirs_up_to_date

    if out.json_output:
        out.output_json(data)
        return

    out.print_summary(
        "Status",
        [
            ("Local root", data["local_root"]),
            ("Remote root", str(data["remote_root"])),
            ("Map file", data["map_file"]),
            ("Map file valid", "yes" if data["configured"] else "no"),
            ("Mapped folders", str(data["mappings"])),
            ("Synced folders", str(data["synced"])),
            ("Fully discovered", "yes" if data["complete"] else "no"),
        ],
    )


@main.command()
@click.argument("remote_id", required=False)
@click.option(
    "--depth",
    "-d",
    type=click.IntRange(min=0),
    help="Levels to expand below the start folder (default: unlimited)",
)
@click.option("--bfs", is_flag=True, help="Expand level by level")
@click.option(
    "--sync-mode",
    type=click.Choice(SYNC_MODES),
    default="inherit",
    show_default=True,
    help="Sync flag of newly mapped folders",
)
@click.option("--no-ignore", is_flag=True, help="Also expand ignored folders")
@click.option(
    "--map-always", is_flag=True, help="Update already mapped folders in place"
)
@click.pass_context
def discover(
    ctx: Any,
    remote_id: Optional[str],
    depth: Optional[int],
    bfs: bool,
    sync_mode: str,
    no_ignore: bool,
    map_always: bool,
) -> None:
    """Discover remote folders below REMOTE_ID (default: the root).

    Examples:
        pydrivemap discover                  # Discover everything
        pydrivemap discover --depth 0        # Only the root's subfolders
        pydrivemap discover 1AbC --bfs -d 2  # Two levels below folder 1AbC
    """
    out: OutputFormatter = ctx.obj["out"]
    _require_configuration(ctx, out)

    try:
        mapper = _load_mapper()
        root = mapper.root if remote_id is None else mapper.get_mapping(remote_id)
        if root is None:
            out.error(f"Folder {remote_id} is not mapped.")
            ctx.exit(1)

        ignorer = _ignorer()
        sync: SyncStrategy
        if sync_mode == "always":
            sync = AlwaysSync()
        elif sync_mode == "never":
            sync = NeverSync()
        elif sync_mode == "if-not-ignored":
            if ignorer is None:
                out.error("Local root does not exist, cannot apply ignore rules.")
                ctx.exit(1)
            sync = SyncIfNotIgnored(ignorer)
        else:
            sync = InheritSync()

        explorer = _make_explorer(ctx)
        with _spinner(out) as progress:
            progress.add_task(f"Discovering folders below {root.name}...", total=None)
            stats = discover_remote(
                mapper,
                explorer,
                root=root,
                max_depth=depth,
                breadth_first=bfs,
                sync=sync,
                ignorer=ignorer,
                override_ignores=no_ignore,
                map_always=map_always,
            )
    except DriveMapError as e:
        out.error(f"Discovery failed: {e}")
        ctx.exit(1)

    if out.json_output:
        out.output_json(
            {
                "visited": stats.visited,
                "mapped": stats.mapped,
                "pruned": stats.pruned,
                "complete": root.subdirs_up_to_date,
            }
        )
        return

    out.success(
        f"Visited {stats.visited} folder(s), mapped {stats.mapped} new folder(s)"
    )
    if not root.subdirs_up_to_date:
        out.info("Some folders were not expanded; run discover again to go deeper")


@main.command()
@click.pass_context
def crawl(ctx: Any) -> None:
    """Map every remote folder in one listing."""
    out: OutputFormatter = ctx.obj["out"]
    _require_configuration(ctx, out)

    try:
        mapper = _load_mapper()
        explorer = _make_explorer(ctx)
        with _spinner(out) as progress:
            progress.add_task("Listing all remote folders...", total=None)
            created = crawl_remote(mapper, explorer, _ignorer())
    except DriveMapError as e:
        out.error(f"Crawl failed: {e}")
        ctx.exit(1)

    config.crawl = False
    config.save()

    if out.json_output:
        out.output_json({"mapped": created, "total": len(mapper)})
        return
    out.success(f"Mapped {created} new folder(s), {len(mapper)} in total")


@main.command()
@click.pass_context
def tree(ctx: Any) -> None:
    """Print the directory map."""
    out: OutputFormatter = ctx.obj["out"]
    _require_configuration(ctx, out)

    try:
        mapper = _load_mapper()
    except DriveMapError as e:
        out.error(f"Cannot load the directory map: {e}")
        ctx.exit(1)

    if out.json_output:
        out.output_json(mapper.to_dict())
        return
    out.print_tree(mapper.root)


@main.command()
@click.argument("remote_id")
@click.option("--off", is_flag=True, help="Stop syncing the folder")
@click.pass_context
def select(ctx: Any, remote_id: str, off: bool) -> None:
    """Select REMOTE_ID and its subfolders for sync (or deselect with --off).

    Selecting discovers the folder's subtree first; ignored subfolders are
    left unselected.
    """
    out: OutputFormatter = ctx.obj["out"]
    _require_configuration(ctx, out)

    try:
        mapper = _load_mapper()
        mapping = mapper.get_mapping(remote_id)
        if off:
            if mapping is None:
                out.error(f"Folder {remote_id} is not mapped.")
                ctx.exit(1)
            nodes = list(mapping.walk_with_self())
            changed = mapper.deep_set_sync(mapping, False)
        else:
            explorer = _make_explorer(ctx)
            if mapping is None:
                mapping = mapper.map_path_to_root(remote_id, explorer, sync=True)
            ignorer = _ignorer()
            if not mapping.subdirs_up_to_date:
                discover_remote(
                    mapper,
                    explorer,
                    root=mapping,
                    sync=NeverSync(),
                    ignorer=ignorer,
                    save=False,
                )
            nodes = [
                node
                for node in mapping.walk_with_self()
                if node is mapping
                or ignorer is None
                or not ignorer.is_ignored(node.local_path)
            ]
            changed = 0
            for node in nodes:
                if not node.sync:
                    mapper.set_sync(node, True)
                    changed += 1
        mapper.save()
    except DriveMapError as e:
        out.error(f"Selection failed: {e}")
        ctx.exit(1)

    subtree = [node.remote_id for node in nodes]
    if off:
        removed = set(subtree)
        config.synced_dir_ids = [i for i in config.synced_dir_ids if i not in removed]
    else:
        config.synced_dir_ids = config.synced_dir_ids + subtree
    config.save()

    if out.json_output:
        out.output_json({"folder": remote_id, "sync": not off, "changed": changed})
        return
    state = "no longer synced" if off else "synced"
    out.success(f"{mapping.local_path} is {state} ({changed} folder(s) changed)")


@main.command()
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Parallel downloads per directory",
)
@click.option(
    "--no-update",
    is_flag=True,
    help="Do not refresh synced folders from the remote before syncing",
)
@click.pass_context
def sync(ctx: Any, dry_run: bool, workers: int, no_update: bool) -> None:
    """Pull every synced folder from the remote.

    Missing and outdated files are downloaded; local files are never
    uploaded or deleted.
    """
    out: OutputFormatter = ctx.obj["out"]
    _require_configuration(ctx, out)

    try:
        mapper = _load_mapper()
        explorer = _make_explorer(ctx)
        ignorer = _ignorer()

        if not dry_run and config.crawl:
            out.info("First run: mapping all remote folders...")
            crawl_remote(mapper, explorer, ignorer)
            config.crawl = False
            config.save()

        if not dry_run and not no_update:
            config.synced_dir_ids = update_synced_directories(
                mapper, explorer, config.synced_dir_ids, ignorer
            )
            config.save()

        if not mapper.synced_mappings():
            out.warning("No folders are selected for sync.")
            out.info("Use 'pydrivemap select REMOTE_ID' to select folders")

        with _spinner(out) as progress:
            task = progress.add_task("Syncing...", total=None)
            totals = sync_all(
                mapper,
                explorer,
                max_workers=workers,
                dry_run=dry_run,
                on_directory=lambda mapping: progress.update(
                    task, description=f"Syncing {mapping.local_path}..."
                ),
            )
    except DriveMapError as e:
        out.error(f"Sync failed: {e}")
        ctx.exit(1)

    if out.json_output:
        out.output_json({"dry_run": dry_run, **totals})
        return

    out.print("")
    out.success("Dry run complete!" if dry_run else "Sync complete!")
    verb = "Would download" if dry_run else "Downloaded"
    out.info(f"Directories: {totals['directories']}")
    out.info(f"  {verb}: {totals['downloads']} file(s)")
    out.info(f"  Up to date: {totals['skips']} file(s)")
    if totals["directories_created"]:
        out.info(f"  Created: {totals['directories_created']} director(y/ies)")


if __name__ == "__main__":
    main()
