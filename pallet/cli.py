"""pallet CLI — the main entry point for managing a crate registry."""

import functools
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pallet import __version__
from pallet.errors import PalletError

console = Console()
err_console = Console(stderr=True)

REGISTRY_OPTION_HELP = "Registry directory (default: $PALLET_REGISTRY or the current directory)"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _handle_errors(fn):
    """Report registry errors as a red one-liner and exit 1."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except PalletError as e:
            err_console.print(f"[red]error:[/] {escape(str(e))}", highlight=False, soft_wrap=True)
            sys.exit(1)

    return wrapper


def registry_option(fn):
    return click.option(
        "--registry",
        "-r",
        "registry_dir",
        envvar="PALLET_REGISTRY",
        default=".",
        show_envvar=True,
        type=click.Path(file_okay=False),
        help=REGISTRY_OPTION_HELP,
    )(fn)


def _open(registry_dir: str):
    from pallet.registry.local_registry import Registry

    return Registry.open(registry_dir)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """pallet — a self-hosted Cargo registry kept as plain files.

    Initialize a registry directory, add .crate archives to it and serve the
    directory with any static web server; cargo reads it as a sparse
    registry.
    """
    _setup_logging(verbose)


# ── Init ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("path", type=click.Path(file_okay=False))
@click.option("--base-url", default=None, help="URL the registry directory will be served at")
@click.option("--defaults", "use_defaults", is_flag=True, help="Do not prompt; use default answers")
@click.option("--api/--no-api", default=False, help="Advertise an API URL in config.json")
@click.option(
    "--flag",
    "flags",
    multiple=True,
    type=click.Choice(["html", "fsync"]),
    help="Enable a registry flag (repeatable)",
)
@click.option("--lock-timeout", type=float, default=None, help="Seconds to wait for a package lock")
@click.option("--force", is_flag=True, help="Overwrite the config of a non-empty directory")
@_handle_errors
def init(
    path: str,
    base_url: str | None,
    use_defaults: bool,
    api: bool,
    flags: tuple,
    lock_timeout: float | None,
    force: bool,
):
    """Initialize a new registry at PATH."""
    from pallet.registry.config import DEFAULT_FLAGS, DEFAULT_LOCK_TIMEOUT
    from pallet.registry.local_registry import initialize

    selected = set(flags)
    if use_defaults:
        if not base_url:
            raise click.UsageError("--base-url is required with --defaults")
        selected |= DEFAULT_FLAGS
    else:
        if not base_url:
            base_url = click.prompt("Base URL the registry will be served at", default="http://127.0.0.1:8000/")
        if not flags and click.confirm("Generate a browsable index.html?", default=True):
            selected.add("html")

    reg = initialize(
        path,
        base_url,
        api_enabled=api,
        defaults=selected,
        force=force,
        lock_timeout=lock_timeout if lock_timeout is not None else DEFAULT_LOCK_TIMEOUT,
    )

    console.print(f"\n[bold blue]pallet[/] — Initialized registry at {reg.root}\n")
    console.print(f"  Download template: {reg.config.download_template}")
    console.print("  Add it to .cargo/config.toml:\n")
    console.print(f'    [registries.my-registry]\n    index = "{reg.index_url}"\n', markup=False, highlight=False)


# ── Add ──────────────────────────────────────────────────────────────


@main.command()
@click.argument("crates", nargs=-1, required=True, type=click.Path(dir_okay=False))
@registry_option
@_handle_errors
def add(crates: tuple, registry_dir: str):
    """Add one or more .crate archives to the registry."""
    reg = _open(registry_dir)
    for crate_path in crates:
        entry = reg.publish(crate_path)
        console.print(f"  Added: [cyan]{entry.name}[/] {entry.vers} (sha256 {entry.cksum[:12]})")


# ── List ─────────────────────────────────────────────────────────────


@main.command(name="list")
@registry_option
@click.option("--plain", is_flag=True, help="Print 'name version' lines instead of a table")
@_handle_errors
def list_entries(registry_dir: str, plain: bool):
    """List every published version in the registry."""
    reg = _open(registry_dir)
    rows = list(reg.list_entries())

    if plain:
        for row in rows:
            suffix = " (yanked)" if row.yanked else ""
            click.echo(f"{row.name} {row.version}{suffix}")
        return

    if not rows:
        console.print("[yellow]Registry is empty.[/]")
        return

    table = Table(title=f"Registry ({len(rows)} versions)")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Yanked", justify="center")

    for row in rows:
        yanked = "[red]Y[/]" if row.yanked else ""
        table.add_row(row.name, row.version, yanked)

    console.print(table)


# ── Yank / Unyank / Remove ───────────────────────────────────────────


@main.command()
@click.argument("name")
@click.argument("version")
@registry_option
@_handle_errors
def yank(name: str, version: str, registry_dir: str):
    """Mark NAME VERSION as yanked."""
    entry = _open(registry_dir).yank(name, version)
    console.print(f"  Yanked: {entry.qualified_id}")


@main.command()
@click.argument("name")
@click.argument("version")
@registry_option
@_handle_errors
def unyank(name: str, version: str, registry_dir: str):
    """Clear the yanked flag of NAME VERSION."""
    entry = _open(registry_dir).unyank(name, version)
    console.print(f"  Unyanked: {entry.qualified_id}")


@main.command(name="rm")
@click.argument("name")
@click.argument("version")
@registry_option
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@_handle_errors
def remove(name: str, version: str, registry_dir: str, yes: bool):
    """Delete NAME VERSION and its archive from the registry."""
    reg = _open(registry_dir)
    if not yes:
        click.confirm(f"Remove {name}@{version}? Prefer 'pallet yank' for published crates", abort=True)
    entry = reg.remove(name, version)
    console.print(f"  Removed: {entry.qualified_id}")


# ── Check ────────────────────────────────────────────────────────────


@main.command()
@registry_option
@click.option("--no-checksums", is_flag=True, help="Skip hashing stored archives")
@click.option("--plain", is_flag=True, help="Print one line per issue instead of a table")
@_handle_errors
def check(registry_dir: str, no_checksums: bool, plain: bool):
    """Compare index entries against stored archives."""
    reg = _open(registry_dir)
    issues = reg.check(verify_checksums=not no_checksums)

    if plain:
        for issue in issues:
            click.echo(issue.summary())
        if issues:
            sys.exit(1)
        return

    console.print(f"\n[bold blue]pallet[/] — Checking: {reg.root}\n")
    if not issues:
        console.print("  [green]OK[/] index and archives are consistent")
        return

    table = Table(title=f"{len(issues)} issue(s)")
    table.add_column("Kind", style="red", no_wrap=True)
    table.add_column("Crate", style="cyan")
    table.add_column("Version")
    table.add_column("Path")
    table.add_column("Detail")
    for issue in issues:
        table.add_row(issue.kind, issue.name, issue.version, issue.path, issue.detail)
    console.print(table)
    sys.exit(1)


# ── HTML ─────────────────────────────────────────────────────────────


@main.command(name="generate-html")
@registry_option
@_handle_errors
def generate_html(registry_dir: str):
    """Regenerate index.html for the registry."""
    from pallet.registry.html import write_html

    dest = write_html(_open(registry_dir))
    console.print(f"  Wrote {dest}")


# ── Serve ────────────────────────────────────────────────────────────


@main.command()
@registry_option
@click.option("--bind", default="127.0.0.1", help="Address to listen on")
@click.option("--port", "-p", default=8000, type=int, help="Port to listen on")
@_handle_errors
def serve(registry_dir: str, bind: str, port: int):
    """Serve the registry directory read-only over HTTP."""
    from pallet.server import make_server

    reg = _open(registry_dir)
    server = make_server(reg.root, bind, port)
    console.print(f"\n[bold blue]pallet[/] — Serving {reg.root} on http://{bind}:{port}/ (Ctrl-C to stop)\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
