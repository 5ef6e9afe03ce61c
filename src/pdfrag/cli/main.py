import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from pdfrag.core.config import load_settings
from pdfrag.core.errors import NotFoundError, PdfRagError
from pdfrag.core.logging_config import configure_logging
from pdfrag.core.pipeline import DocumentPipeline, build_pipeline

app = typer.Typer(help="pdfrag: ask questions about your PDF documents")
console = Console(soft_wrap=True)


def _open_pipeline() -> DocumentPipeline:
    settings = load_settings()
    configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    try:
        return build_pipeline(settings)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        raise typer.Exit(1)


@app.command()
def init():
    """Create the pgvector extension, documents table and index."""
    async def _run():
        async with _open_pipeline():
            pass

    try:
        asyncio.run(_run())
    except PdfRagError as e:
        console.print(f"[red]Error initializing database:[/] {e}")
        raise typer.Exit(1)

    console.print("[green]✅ Database initialized[/]")


@app.command()
def add(
    path: str,
    atomic: bool = typer.Option(True, "--atomic/--no-atomic", help="Insert each document's chunks in one transaction"),
):
    """Ingest a PDF file, or every PDF in a directory."""
    input_path = Path(path)
    if not input_path.exists():
        console.print(f"[red]Error:[/] Path {path} does not exist")
        raise typer.Exit(1)

    async def _run():
        async with _open_pipeline() as pipeline:
            if input_path.is_dir():
                return await pipeline.add_directory(input_path, atomic=atomic)
            return await pipeline.add_document(input_path, atomic=atomic)

    try:
        with console.status("[bold green]Processing PDFs..."):
            result = asyncio.run(_run())
    except PdfRagError as e:
        console.print(f"[red]Error during ingestion:[/] {e}")
        raise typer.Exit(1)

    if isinstance(result, list):
        console.print(f"[green]✅ Added {input_path.name} with {len(result)} chunks[/]")
        return

    console.print(f"[bold]Documents processed:[/] {len(result.ingested)}")
    console.print(f"[bold]Total chunks created:[/] {sum(len(ids) for ids in result.ingested.values())}")
    for filename, error in result.failed.items():
        console.print(f"[yellow]Skipped {filename}:[/] {error}")
    if result.failed:
        raise typer.Exit(1)


@app.command()
def search(
    query: str,
    limit: int = typer.Option(3, help="Maximum number of results"),
):
    """Show the stored chunks closest to a query."""
    async def _run():
        async with _open_pipeline() as pipeline:
            return await pipeline.search_similar(query, limit)

    try:
        with console.status("[bold green]Searching..."):
            results = asyncio.run(_run())
    except (PdfRagError, ValueError) as e:
        console.print(f"[red]Error during search:[/] {e}")
        raise typer.Exit(1)

    if not results:
        console.print("[yellow]No results found.[/]")
        return

    for i, doc in enumerate(results, 1):
        console.print(f"[bold]{i}. {doc.filename}[/] (distance: {doc.similarity:.4f})")
        console.print(f"   [green]Snippet:[/] {doc.content[:200]}")


@app.command()
def ask(
    question: str,
    limit: int = typer.Option(3, help="Number of chunks to use as context"),
):
    """Answer a question from the stored documents."""
    async def _run():
        async with _open_pipeline() as pipeline:
            return await pipeline.ask_about_documents(question, limit)

    try:
        with console.status("[bold green]Thinking..."):
            response = asyncio.run(_run())
    except (PdfRagError, ValueError) as e:
        console.print(f"[red]Error answering question:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[bold]Q:[/] {question}")
    console.print(f"[bold]A:[/] {response.answer}")
    if response.source_documents:
        sources = ", ".join(doc.filename for doc in response.source_documents)
        console.print(f"[dim]Sources: {sources}[/]")


@app.command("list")
def list_documents():
    """List stored documents, newest first."""
    async def _run():
        async with _open_pipeline() as pipeline:
            return await pipeline.list_documents()

    try:
        docs = asyncio.run(_run())
    except PdfRagError as e:
        console.print(f"[red]Error listing documents:[/] {e}")
        raise typer.Exit(1)

    if not docs:
        console.print("[yellow]No documents stored.[/]")
        return

    table = Table(title="Documents")
    table.add_column("Filename", style="bold")
    table.add_column("Chunks", justify="right")
    table.add_column("Added")
    table.add_column("Preview")
    for doc in docs:
        table.add_row(doc.filename, str(doc.chunk_count), f"{doc.created_at:%Y-%m-%d %H:%M}", doc.preview)
    console.print(table)


@app.command()
def delete(filename: str):
    """Delete every chunk stored for a filename."""
    async def _run():
        async with _open_pipeline() as pipeline:
            return await pipeline.delete_document_by_filename(filename)

    try:
        deleted = asyncio.run(_run())
    except NotFoundError:
        console.print(f"[red]Error:[/] Document {filename} not found")
        raise typer.Exit(1)
    except PdfRagError as e:
        console.print(f"[red]Error deleting document:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✅ Deleted {filename} ({deleted} chunks)[/]")


if __name__ == "__main__":
    app()
