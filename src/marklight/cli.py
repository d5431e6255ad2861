"""Maintenance commands for the local highlight store.

Usage:
    marklight highlights                     # list documents with highlights
    marklight highlights notes.md            # list saved highlights
    marklight export notes.md > notes.json   # dump the stored record
    marklight render page.html --key notes.md
    marklight forget notes.md                # delete saved highlights
    marklight colors list | add RGBA | delete NAME
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

console = Console()
# Data goes to stdout, status to stderr, so output can be redirected
err_console = Console(stderr=True)


def _print_stats(label: str, stats: dict[str, int]) -> None:
    err_console.print(f"{label}:")
    for name, value in stats.items():
        err_console.print(f"  {name + ':':<12}{value}")


async def _list_documents() -> int:
    from marklight.db.highlight_sets import list_highlight_sets

    records = await list_highlight_sets()
    if not records:
        err_console.print("[yellow]No saved highlights[/]")
        return 1

    table = Table(title="Saved highlight sets")
    table.add_column("Document key", no_wrap=True)
    table.add_column("Highlights", justify="right")
    table.add_column("Saved")
    for record in records:
        saved = datetime.fromtimestamp(record.saved_at / 1000, UTC)
        table.add_row(
            record.document_key,
            str(len(record.spans)),
            saved.strftime("%Y-%m-%d %H:%M:%S UTC"),
        )
    console.print(table)
    return 0


async def _highlights(path: Path | None) -> int:
    from marklight.engine.models import document_key
    from marklight.engine.persistence import PersistenceAdapter

    if path is None:
        return await _list_documents()
    key = document_key(path)
    record = await PersistenceAdapter(debounce_seconds=0).export_record(key)
    if record is None:
        err_console.print(f"[yellow]No saved highlights for[/] {path} ({key})")
        return 1

    table = Table(title=f"{path} ({key})")
    table.add_column("Offset", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("Colour")
    table.add_column("Text", overflow="fold")
    for span in record.spans:
        table.add_row(str(span.offset), str(span.length), span.color, span.text)
    console.print(table)
    return 0


async def _export(path: Path) -> int:
    from marklight.engine.models import document_key
    from marklight.engine.persistence import PersistenceAdapter

    record = await PersistenceAdapter(debounce_seconds=0).export_record(
        document_key(path)
    )
    if record is None:
        err_console.print(f"[yellow]No saved highlights for[/] {path}")
        return 1
    print(json.dumps(record.model_dump(by_alias=True), indent=2, ensure_ascii=False))
    return 0


async def _render(html_path: Path, key_path: Path | None) -> int:
    from marklight.engine.annotator import AnnotationEngine
    from marklight.engine.models import document_key
    from marklight.engine.persistence import PersistenceAdapter
    from marklight.tree.html_bridge import parse_html

    tree = parse_html(html_path.read_text(encoding="utf-8"))
    engine = AnnotationEngine(tree, persistence=PersistenceAdapter(debounce_seconds=0))
    report = await engine.restore_for_document(document_key(key_path or html_path))
    print(engine.render_html())
    _print_stats(
        "Restore",
        {
            "Exact": report.exact,
            "Relocated": report.relocated,
            "Dropped": report.dropped,
        },
    )
    return 0


async def _forget(path: Path) -> int:
    from marklight.engine.models import document_key
    from marklight.engine.persistence import PersistenceAdapter

    if await PersistenceAdapter(debounce_seconds=0).delete(document_key(path)):
        err_console.print(f"[green]Deleted highlights for[/] {path}")
        return 0
    err_console.print(f"[yellow]No saved highlights for[/] {path}")
    return 1


async def _colors(action: str, value: str | None) -> int:
    from marklight.db.colors import (
        delete_custom_color,
        list_custom_colors,
        save_custom_color,
    )
    from marklight.engine.palette import BUILTIN_COLORS, ColorPalette

    if action == "list":
        table = Table(title="Highlight colours")
        table.add_column("Name")
        table.add_column("RGBA")
        table.add_column("Kind")
        for name, rgba in BUILTIN_COLORS.items():
            table.add_row(name, rgba, "built-in")
        for name, rgba in (await list_custom_colors()).items():
            table.add_row(name, rgba, "custom")
        console.print(table)
        return 0

    assert value is not None  # argparse enforces the operand
    if action == "add":
        palette = ColorPalette(await list_custom_colors())
        try:
            name = palette.add_custom(value)
        except ValueError as exc:
            err_console.print(f"[red]Error:[/] {exc}")
            return 2
        await save_custom_color(name, palette.resolve(name))
        console.print(name)
        return 0

    if await delete_custom_color(value):
        err_console.print(f"[green]Deleted colour[/] {value}")
        return 0
    err_console.print(f"[yellow]No custom colour named[/] {value}")
    return 1


async def _run(command: Callable[[], Awaitable[int]]) -> int:
    from marklight.db.engine import close_db

    try:
        return await command()
    finally:
        await close_db()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marklight",
        description="Inspect and maintain saved highlight annotations.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser(
        "highlights",
        help="List the saved highlights of a document, or every saved document.",
    )
    p.add_argument(
        "path", type=Path, nargs="?", default=None, help="Markdown document path."
    )

    p = sub.add_parser("export", help="Print a document's stored record as JSON.")
    p.add_argument("path", type=Path, help="Markdown document path.")

    p = sub.add_parser(
        "render", help="Apply saved highlights to rendered HTML and print it."
    )
    p.add_argument("html", type=Path, help="Rendered HTML file.")
    p.add_argument(
        "--key",
        type=Path,
        default=None,
        help="Document the highlights belong to (defaults to the HTML file).",
    )

    p = sub.add_parser("forget", help="Delete the saved highlights of a document.")
    p.add_argument("path", type=Path, help="Markdown document path.")

    p = sub.add_parser("colors", help="Manage custom highlight colours.")
    colors = p.add_subparsers(dest="action", required=True)
    colors.add_parser("list", help="List built-in and custom colours.")
    add = colors.add_parser("add", help="Add a custom colour.")
    add.add_argument("value", metavar="RGBA", help='e.g. "rgba(120, 200, 255, 0.4)"')
    delete = colors.add_parser("delete", help="Delete a custom colour.")
    delete.add_argument("value", metavar="NAME")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``marklight``."""
    from marklight import _setup_logging

    args = _build_parser().parse_args(argv)
    _setup_logging()

    match args.command:
        case "highlights":
            command = partial(_highlights, args.path)
        case "export":
            command = partial(_export, args.path)
        case "render":
            if not args.html.is_file():
                err_console.print(f"[red]Error:[/] {args.html} not found")
                sys.exit(2)
            command = partial(_render, args.html, args.key)
        case "forget":
            command = partial(_forget, args.path)
        case _:
            command = partial(_colors, args.action, getattr(args, "value", None))

    sys.exit(asyncio.run(_run(command)))
