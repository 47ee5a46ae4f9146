"""Typer-based CLI for pacdump."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__, config_manager
from .config_manager import Settings
from .errors import DatabaseRegistrationError, PackageNotFoundError
from .models import PackageRecord
from .orchestrator import PackageFilters, QueryOrchestrator, open_from_settings
from .reverse_deps import ReverseDepsDatabase
from .storage import DatabaseHandle

console = Console()

app = typer.Typer(
    help="📦 pacdump: dump pacman package databases as enriched JSON.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

FIXTURE_HELP = "Read packages from a JSON universe file instead of the pacman databases."


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"pacdump v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: int) -> None:
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG
    logging.basicConfig(level=level, stream=sys.stderr, format="# %(levelname)s %(name)s: %(message)s")
    logging.getLogger("pacdump").setLevel(level)


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Report diagnostics on stderr (-v: info, -vv: debug).",
    ),
):
    """pacdump: query the local and sync pacman databases."""
    _configure_logging(verbose)


def _settings(fixture: Optional[Path]) -> Settings:
    settings = config_manager.load_settings()
    if fixture is not None:
        settings = replace(settings, fixture=fixture)
    return settings


def _open_handle(settings: Settings) -> DatabaseHandle:
    try:
        return open_from_settings(settings)
    except DatabaseRegistrationError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)


def _flag(value: Optional[bool], settings: Settings, name: str) -> bool:
    return settings.defaults.get(name, False) if value is None else value


@app.command("dump")
def dump(
    sync: Optional[bool] = typer.Option(
        None,
        "--sync/--local",
        help="Query the sync databases instead of the local database of installed packages.",
    ),
    all_packages: Optional[bool] = typer.Option(
        None,
        "--all/--explicit",
        help="Include packages installed as dependencies, not only explicitly installed ones.",
    ),
    plain: Optional[bool] = typer.Option(
        None,
        "--plain/--enrich",
        help="Emit records from the queried databases only, without local/sync reconciliation.",
    ),
    recurse: Optional[str] = typer.Option(
        None, "--recurse", "-r", help="Dump the dependency closure of this package; implies --all."
    ),
    optional: bool = typer.Option(False, "--optional", help="With --recurse, follow optional dependencies too."),
    summary: bool = typer.Option(
        False, "--summary", help="With --recurse, print only name=version of each package."
    ),
    fixture: Optional[Path] = typer.Option(None, "--fixture", "-f", exists=True, dir_okay=False, help=FIXTURE_HELP),
    indent: Optional[int] = typer.Option(None, "--indent", min=0, help="Pretty-print JSON with this indent."),
):
    """Dump package records as a JSON array on stdout."""
    if recurse is None and (optional or summary):
        raise typer.BadParameter("--optional and --summary require --recurse")

    settings = _settings(fixture)
    filters = PackageFilters(
        sync=_flag(sync, settings, "sync"),
        all=_flag(all_packages, settings, "all"),
        plain=_flag(plain, settings, "plain"),
        recurse=recurse,
        optional=optional,
        summary=summary,
    )
    handle = _open_handle(settings)
    try:
        payload = QueryOrchestrator(handle, filters).run()
    except PackageNotFoundError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        handle.close()

    typer.echo(json.dumps(payload, indent=indent))


def _dep_lines(deps) -> str:
    lines = []
    for dep in deps:
        text = dep.dep_string
        if dep.satisfier and dep.satisfier.split("=", 1)[0] != dep.name:
            text += f" ({dep.satisfier})"
        if dep.description:
            text += f": {dep.description}"
        lines.append(text)
    return "\n".join(lines) or "-"


def _render_record(record: PackageRecord) -> Table:
    table = Table(title=f"{record.name} {record.version}", show_header=False, title_justify="left")
    table.add_column("Field", style="bold cyan", no_wrap=True)
    table.add_column("Value")

    table.add_row("Repository", record.repository or "-")
    table.add_row("Description", record.description or "-")
    table.add_row("Architecture", record.architecture or "-")
    table.add_row("URL", record.url or "-")
    table.add_row("Licenses", " ".join(record.licenses) or "-")
    table.add_row("Groups", " ".join(record.groups) or "-")
    table.add_row("Provides", _dep_lines(record.provides))
    table.add_row("Depends On", _dep_lines(record.depends_on))
    table.add_row("Optional Deps", _dep_lines(record.optional_deps))
    table.add_row("Required By", " ".join(record.required_by) or "-")
    table.add_row("Optional For", " ".join(record.optional_for) or "-")
    table.add_row("Conflicts With", _dep_lines(record.conflicts_with))
    table.add_row("Replaces", _dep_lines(record.replaces))
    table.add_row("Packager", record.packager or "-")
    table.add_row("Install Reason", record.install_reason)
    table.add_row("Install Script", "Yes" if record.install_script else "No")
    table.add_row("Validated By", " ".join(record.validated_by))
    if record.key_ids is not None:
        table.add_row("Key IDs", "\n".join(record.key_ids))
    if record.companion is not None:
        other = record.companion
        table.add_row("Companion", f"{other.repository}: {other.name} {other.version} ({other.packager or '-'})")
    return table


@app.command("show")
def show(
    name: str = typer.Argument(..., help="Package name."),
    sync: bool = typer.Option(False, "--sync", help="Look the package up in the sync databases."),
    plain: bool = typer.Option(False, "--plain", help="Skip local/sync reconciliation."),
    fixture: Optional[Path] = typer.Option(None, "--fixture", "-f", exists=True, dir_okay=False, help=FIXTURE_HELP),
):
    """Show one package as a table."""
    settings = _settings(fixture)
    handle = _open_handle(settings)
    try:
        orchestrator = QueryOrchestrator(handle, PackageFilters(sync=sync, all=True, plain=plain))
        record = orchestrator.lookup(name)
    except PackageNotFoundError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        handle.close()

    console.print(_render_record(record))


@app.command("rdeps")
def rdeps(
    name: str = typer.Argument(..., help="Package name."),
    fixture: Optional[Path] = typer.Option(None, "--fixture", "-f", exists=True, dir_okay=False, help=FIXTURE_HELP),
):
    """Print the reverse dependencies of a package, by kind, as JSON."""
    settings = _settings(fixture)
    handle = _open_handle(settings)
    try:
        reverse_deps = ReverseDepsDatabase.from_handle(handle)
    finally:
        handle.close()
    typer.echo(json.dumps({"name": name, **reverse_deps.for_package(name)}))


@app.command("show-config")
def show_config():
    """Print the effective configuration."""
    typer.echo(json.dumps(config_manager.load_settings().as_dict(), indent=2))


@app.command("set-config")
def set_config(
    root: Optional[str] = typer.Option(None, "--root", help="Installation root (overrides pacman-conf RootDir)."),
    dbpath: Optional[str] = typer.Option(None, "--dbpath", help="Database path (overrides pacman-conf DBPath)."),
    repo: Optional[List[str]] = typer.Option(None, "--repo", help="Sync repository to register; repeatable."),
    fixture: Optional[str] = typer.Option(None, "--fixture", help="Default package universe file."),
    default_sync: Optional[bool] = typer.Option(None, "--default-sync/--default-local"),
    default_all: Optional[bool] = typer.Option(None, "--default-all/--default-explicit"),
    default_plain: Optional[bool] = typer.Option(None, "--default-plain/--default-enrich"),
):
    """Persist configuration values to config.toml."""
    ok = config_manager.save_pacman_config(root=root, dbpath=dbpath, repos=repo or None, fixture=fixture)
    flags = {
        key: value
        for key, value in (("sync", default_sync), ("all", default_all), ("plain", default_plain))
        if value is not None
    }
    if flags:
        ok = config_manager.save_default_filters(**flags) and ok
    if not ok:
        typer.echo("❌ Failed to write configuration.", err=True)
        raise typer.Exit(code=1)
    typer.echo("✅ Configuration saved.")


@app.command("reset-config")
def reset_config():
    """Delete config.toml and return to defaults."""
    if config_manager.clear_config():
        typer.echo("Configuration removed.")
    else:
        typer.echo("No configuration to remove.")


if __name__ == "__main__":
    app()
