"""
Document Q&A Pipeline - CLI Entry Point
----------------------------------------
Exposes Typer commands over the orchestration pipeline.

Usage:
    python -m docqa.main process --bucket docs --key spec.pdf --doc-id d1 --epic-id e1
    python -m docqa.main process ... --type question --prompt "What is the SLA?"
    python -m docqa.main process ... --json        # print the raw {statusCode, body}
    python -m docqa.main probe --doc-id d1 --epic-id e1
    python -m docqa.main partitions --stage dev
"""
from __future__ import annotations

import asyncio
import json
from typing import Optional

import orjson
import typer
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from docqa.config import DEFAULT_CONFIG_PATH, index_dir_for_stage, load_config
from docqa.index.faiss_index import FAISSVectorIndex
from docqa.index.probe import IndexStateProbe
from docqa.schemas import DocumentIdentity, Mode, Stage
from docqa.serving.orchestrator import build_orchestrator, handle
from docqa.utils.logger import setup_from_config

app = typer.Typer(
    name="docqa",
    help="Document Q&A - extract, summarize or question one indexed document",
    add_completion=False,
)
console = Console()


def _open_index(cfg: dict, stage: Stage) -> FAISSVectorIndex:
    return FAISSVectorIndex.open(
        index_dir_for_stage(cfg, stage.value),
        dimensions=cfg["embedding"]["dimensions"],
    )


# --- Commands -----------------------------------------------------------------

@app.command()
def process(
    bucket: str = typer.Option(..., "--bucket", "-b", help="Bucket holding the document"),
    key: str = typer.Option(..., "--key", "-k", help="Object key of the document"),
    doc_id: str = typer.Option(..., "--doc-id", help="Document identifier"),
    epic_id: str = typer.Option(..., "--epic-id", help="Epic (group) identifier"),
    mode: Mode = typer.Option(Mode.EXTRACT, "--type", "-t", help="extract | summarize | question"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Question (question mode)"),
    stage: Stage = typer.Option(Stage.DEV, "--stage", help="dev | prod"),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"),
    json_out: bool = typer.Option(False, "--json", help="Print the raw {statusCode, body} response"),
) -> None:
    """
    Run one request: ingest the document if needed, then answer.

    \b
    Steps:
      1. Probe the (epic, doc) partition
      2. Load + chunk + summarise + index   (only when empty)
      3. Retrieve context for the mode
      4. One completion call
    """
    cfg = load_config(config)
    setup_from_config(cfg)

    event = {
        "bucket": bucket,
        "key": key,
        "documentId": doc_id,
        "epicId": epic_id,
        "stage": stage.value,
        "type": mode.value,
        "humanPrompt": prompt,
    }

    with console.status(f"[cyan]Processing ({mode.value})...[/cyan]"):
        response = asyncio.run(handle(event, lambda s: build_orchestrator(cfg, s)))

    if json_out:
        console.print_json(json.dumps(response))
        raise typer.Exit(0 if response["statusCode"] == 200 else 1)

    body = orjson.loads(response["body"])
    if response["statusCode"] != 200:
        console.print(
            Panel(
                f"[red]{body.get('error', 'unknown error')}[/red]",
                title="[red]Failed[/red]",
                border_style="red",
                expand=False,
            )
        )
        raise typer.Exit(1)

    console.print()
    console.print(
        Panel(
            Markdown(body["result"]),
            title=f"[bold green]{mode.value.capitalize()}[/bold green]",
            border_style="green",
            expand=True,
        )
    )


@app.command()
def probe(
    doc_id: str = typer.Option(..., "--doc-id", help="Document identifier"),
    epic_id: str = typer.Option(..., "--epic-id", help="Epic (group) identifier"),
    stage: Stage = typer.Option(Stage.DEV, "--stage", help="dev | prod"),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"),
) -> None:
    """Report whether a document's partition already holds records."""
    cfg = load_config(config)
    identity = DocumentIdentity(epic_id=epic_id, doc_id=doc_id)
    index = _open_index(cfg, stage)

    empty = asyncio.run(IndexStateProbe(index).is_empty(identity))
    if empty:
        console.print(f"[yellow]{identity}: not indexed[/yellow]")
    else:
        console.print(f"[green]{identity}: indexed ({index.count(identity)} records)[/green]")


@app.command()
def partitions(
    stage: Stage = typer.Option(Stage.DEV, "--stage", help="dev | prod"),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"),
) -> None:
    """List every indexed (epic, doc) partition."""
    cfg = load_config(config)
    index = _open_index(cfg, stage)
    listing = index.partitions()

    if not listing:
        console.print(f"[yellow]No partitions indexed for stage '{stage.value}'.[/yellow]")
        raise typer.Exit(0)

    table = Table("Epic", "Document", "Records", box=box.SIMPLE, header_style="bold dim")
    for entry in listing:
        table.add_row(entry["epicId"], entry["docId"], str(entry["vectors"]))
    console.print(table)
    console.print(f"[dim]{index.total_vectors:,} vectors | dims={index.dimensions}[/dim]")


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
