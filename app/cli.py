from __future__ import annotations

from pathlib import Path
from typing import NoReturn, cast

import typer
import uvicorn
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from app.config import load_settings
from app.web_main import create_app
from app.wiring import build_session
from domain.errors import InvalidOperationError, MalformedDocumentError
from domain.models import (
    ARCH_PREFERENCES,
    DEFAULT_NODE_TEXT,
    DEFAULT_ROOT_TEXT,
    ArchPreference,
    Node,
)
from domain.services.document_codec import parse_document_bytes
from domain.services.editor_session import EditorSession

app = typer.Typer(no_args_is_help=True)
console = Console()

DocumentOption = typer.Option(None, "--document", "-d", help="Mind map JSON file to edit.")
ConfigOption = typer.Option(None, "--config", help="YAML settings file.")


def _open_session(document: Path | None, config: Path | None) -> EditorSession:
    settings = load_settings(config)
    if document is not None:
        settings.storage.document_path = document
    session = build_session(settings, restore=False)
    try:
        session.restore(strict=True)
    except MalformedDocumentError as exc:
        console.print(f"[red]Cannot read {settings.storage.document_path}:[/] {exc}")
        raise typer.Exit(code=1) from exc
    return session


def _print_notices(session: EditorSession) -> None:
    for notice in session.drain_notices():
        style = "red" if notice.level == "error" else "yellow"
        console.print(f"[{style}]{notice.message}[/]")


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{message}[/]")
    raise typer.Exit(code=1)


def _tree_branch(node: Node, branch: Tree) -> None:
    for child in node.children:
        _tree_branch(child, branch.add(_node_label(child)))


def _node_label(node: Node) -> str:
    label = f"{node.text} [dim]({node.id}, col {node.column})[/]"
    if node.relations:
        targets = ", ".join(relation.target_id for relation in node.relations)
        label += f" [cyan]-> {targets}[/]"
    return label


@app.command("new")
def new_document(
    text: str = typer.Option(DEFAULT_ROOT_TEXT, help="Root node text."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing document."),
    document: Path | None = DocumentOption,
    config: Path | None = ConfigOption,
) -> None:
    settings = load_settings(config)
    if document is not None:
        settings.storage.document_path = document
    path = settings.storage.document_path
    if path.exists() and not force:
        _fail(f"Document already exists: {path} (use --force)")
    session = build_session(settings, restore=False)
    session.mutations.update_node_text(session.document.root.id, text)
    session.persist()
    console.print(f"[green]Created[/] {path} root={session.document.root.id}")


@app.command("show")
def show(document: Path | None = DocumentOption, config: Path | None = ConfigOption) -> None:
    session = _open_session(document, config)
    root = session.document.root
    tree = Tree(_node_label(root))
    _tree_branch(root, tree)
    console.print(tree)


@app.command("layout")
def layout(document: Path | None = DocumentOption, config: Path | None = ConfigOption) -> None:
    session = _open_session(document, config)
    plan = session.relayout()
    table = Table("id", "text", "column", "x", "y", "width", "height")
    for node in session.document.iter_nodes():
        placement = plan.placements[node.id]
        table.add_row(
            node.id,
            node.text,
            str(node.column),
            f"{placement.position.x:g}",
            f"{placement.position.y:g}",
            f"{placement.size.width:g}",
            f"{placement.size.height:g}",
        )
    console.print(table)


@app.command("validate")
def validate(input_path: Path = typer.Argument(..., help="Mind map JSON file to validate.")) -> None:
    if not input_path.exists():
        _fail(f"File not found: {input_path}")
    try:
        parsed = parse_document_bytes(input_path.read_bytes())
    except MalformedDocumentError as exc:
        console.print(f"[red]Validation failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Valid mind map:[/] {input_path} ({len(parsed.node_ids())} nodes)")


@app.command("add-node")
def add_node(
    parent_id: str = typer.Argument(..., help="Parent node id."),
    text: str = typer.Option(DEFAULT_NODE_TEXT, help="Node text."),
    document: Path | None = DocumentOption,
    config: Path | None = ConfigOption,
) -> None:
    session = _open_session(document, config)
    node = session.mutations.add_node(parent_id, text)
    if node is None:
        _fail(f"Node not found: {parent_id}")
    console.print(f"[green]Added[/] {node.id} under {parent_id}")


@app.command("move")
def move(
    node_id: str = typer.Argument(..., help="Node to move."),
    parent_id: str = typer.Argument(..., help="New parent node id."),
    document: Path | None = DocumentOption,
    config: Path | None = ConfigOption,
) -> None:
    session = _open_session(document, config)
    try:
        moved = session.mutations.move_node_to(node_id, parent_id)
    except InvalidOperationError as exc:
        console.print(f"[red]Move rejected:[/] {exc}")
        raise typer.Exit(code=1) from exc
    if not moved:
        _fail(f"Node not found: {node_id} or {parent_id}")
    console.print(f"[green]Moved[/] {node_id} under {parent_id}")


@app.command("relate")
def relate(
    source_id: str = typer.Argument(..., help="Relation source node id."),
    target_id: str = typer.Argument(..., help="Relation target node id."),
    arch: str = typer.Option("auto", help="Arch preference: auto, up or down."),
    document: Path | None = DocumentOption,
    config: Path | None = ConfigOption,
) -> None:
    if arch not in ARCH_PREFERENCES:
        _fail(f"Unknown arch preference: {arch}")
    session = _open_session(document, config)
    result = session.mutations.toggle_relation(source_id, target_id, cast(ArchPreference, arch))
    if result is None:
        _fail(f"Nothing to toggle between {source_id} and {target_id}")
    _print_notices(session)


@app.command("delete")
def delete(
    node_id: str = typer.Argument(..., help="Node to delete with its subtree."),
    document: Path | None = DocumentOption,
    config: Path | None = ConfigOption,
) -> None:
    session = _open_session(document, config)
    try:
        deleted = session.mutations.delete_node(node_id)
    except InvalidOperationError as exc:
        console.print(f"[red]Delete rejected:[/] {exc}")
        raise typer.Exit(code=1) from exc
    if not deleted:
        _fail(f"Node not found: {node_id}")
    console.print(f"[green]Deleted[/] {node_id}")


@app.command("export")
def export(
    output_path: Path = typer.Argument(..., help="Where to write the document."),
    document: Path | None = DocumentOption,
    config: Path | None = ConfigOption,
) -> None:
    session = _open_session(document, config)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(session.export_document())
    console.print(f"[green]Wrote[/] {output_path}")


@app.command("import")
def import_file(
    input_path: Path = typer.Argument(..., help="Mind map JSON file, current or legacy format."),
    document: Path | None = DocumentOption,
    config: Path | None = ConfigOption,
) -> None:
    if not input_path.exists():
        _fail(f"File not found: {input_path}")
    session = _open_session(document, config)
    loaded = session.import_document(input_path.read_bytes())
    _print_notices(session)
    if not loaded:
        raise typer.Exit(code=1)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8000, help="Port to listen on."),
    config: Path | None = ConfigOption,
) -> None:
    settings = load_settings(config)
    console.print(f"[green]Serving[/] {settings.storage.document_path} on http://{host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port)


if __name__ == "__main__":
    app()
