"""Introspection CLI over registry dump files.

``metaforge show FILE`` lists entities and their fields, ``metaforge
relations FILE`` lists the derived entity relations, ``metaforge stats
FILE`` counts items per type. ``--json`` switches every command to
machine-readable output. Installed plugins are loaded for every command, so
types they declare are known when the file is read.
"""

from __future__ import annotations

import json
from io import StringIO
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from metaforge import __version__
from metaforge.config.logging import configure_logging
from metaforge.domain.types import BuiltinType
from metaforge.plugins.manager import PluginManager
from metaforge.registry.derived import enable_entity_relation_derivation, get_entity_relations
from metaforge.registry.serialization import dump_item, load_registry, read_registry_file
from metaforge.registry.store import MetadataRegistry

METAFORGE_THEME = Theme(
    {
        "mf.name": "bold",
        "mf.type": "cyan",
        "mf.key": "bold yellow",
        "mf.relation": "magenta",
        "mf.dim": "dim",
    }
)


def create_console(*, width: int | None = None) -> Console:
    """Console rendering to a StringIO buffer (no color outside a TTY)."""
    return Console(file=StringIO(), theme=METAFORGE_THEME, highlight=False, width=width or 120)


def _emit(console: Console) -> None:
    assert isinstance(console.file, StringIO)
    click.echo(console.file.getvalue(), nl=False)


def _load(path: Path) -> MetadataRegistry:
    registry = MetadataRegistry()
    enable_entity_relation_derivation(registry)
    # plugin types must exist before the dump is loaded into them
    plugins = PluginManager()
    plugins.discover_and_load()
    plugins.bind_registry(registry)
    try:
        items = read_registry_file(path)
    except (OSError, ValueError) as exc:
        msg = f"Cannot read registry file {path}: {exc}"
        raise click.ClickException(msg) from exc
    load_registry(registry, items)
    return registry


@click.group()
@click.version_option(version=__version__, prog_name="metaforge")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, verbose: bool, log_json: bool) -> None:
    """metaforge — inspect registry dump files."""
    configure_logging(verbose=verbose, log_json=log_json)
    ctx.obj = {"json": json_output}


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def show(ctx: click.Context, file: Path) -> None:
    """List entities, value objects, and their fields."""
    registry = _load(file)
    names = [
        *registry.get_by_type(BuiltinType.ENTITY),
        *registry.get_by_type(BuiltinType.VALUE_OBJECT),
    ]

    if ctx.obj["json"]:
        entries = [registry.get(name) for name in names]
        click.echo(json.dumps([dump_item(e) for e in entries if e is not None], indent=2))
        return

    console = create_console()
    for name in names:
        entity = registry.get_entity(name)
        if entity is None:
            continue
        table = Table(
            title=f"[mf.name]{entity.name}[/] [mf.dim]({entity.kind})[/]",
            show_header=True,
            pad_edge=False,
        )
        table.add_column("Field")
        table.add_column("Type", style="mf.type")
        table.add_column("Required")
        table.add_column("Relation", style="mf.relation")
        for fld in entity.fields:
            label = f"[mf.key]{fld.name}[/]" if fld.primary_key else fld.name
            relation = ""
            if fld.is_relation:
                relation = f"{fld.relation or 'relation'} -> {fld.target_name or '?'}"
            table.add_row(label, fld.semantic_type.value, "yes" if fld.required else "", relation)
        console.print(table)
    if not names:
        console.print("[mf.dim]No entities.[/]")
    _emit(console)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def relations(ctx: click.Context, file: Path) -> None:
    """List relations derived from entity fields."""
    found = get_entity_relations(_load(file))

    if ctx.obj["json"]:
        payload = [r.model_dump(mode="json", by_alias=True) for r in found]
        click.echo(json.dumps(payload, indent=2))
        return

    console = create_console()
    table = Table(show_header=True, pad_edge=False)
    for column in ("Source", "Field", "Kind", "Target"):
        table.add_column(column)
    for relation in found:
        table.add_row(
            relation.source,
            relation.field_name,
            f"[mf.relation]{relation.relation_type}[/]",
            relation.target,
        )
    console.print(table)
    _emit(console)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def stats(ctx: click.Context, file: Path) -> None:
    """Count items per type, grouped by layer."""
    registry = _load(file)
    counts = {t: n for t, n in registry.get_stats().items() if n}

    if ctx.obj["json"]:
        click.echo(json.dumps(counts, indent=2, sort_keys=True))
        return

    console = create_console()
    table = Table(show_header=True, pad_edge=False)
    table.add_column("Layer")
    table.add_column("Type", style="mf.type")
    table.add_column("Count", justify="right")
    rows: list[tuple[str, str, Any]] = [
        (registry.type_layer(t).value, registry.type_label(t), n) for t, n in counts.items()
    ]
    for layer, label, count in sorted(rows):
        table.add_row(layer, label, str(count))
    console.print(table)
    _emit(console)
