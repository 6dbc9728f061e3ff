"""CLI interface for hybridrag.

Typer-based command-line interface with Rich output formatting.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, NoReturn

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from hybridrag import __version__
from hybridrag.chunk import ParagraphChunker
from hybridrag.exceptions import HybridRagError
from hybridrag.ingest import TextLoader
from hybridrag.pipeline import Pipeline
from hybridrag.project import ProjectManager
from hybridrag.registry import default_registry
from hybridrag.retrieve import RetrievalEngine, coerce_mode
from hybridrag.types import RetrievalMode

if TYPE_CHECKING:
    from hybridrag.config import HybridRagConfig
    from hybridrag.embed.base import BaseEmbedder
    from hybridrag.store import SqliteStore
    from hybridrag.types import PipelineTrace, RetrievalResult

__all__ = ["app"]

app = typer.Typer(
    name="hybridrag",
    help="Hybrid vector + keyword retrieval over your documents.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Hybrid vector + keyword retrieval over your documents."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_project() -> tuple[ProjectManager, HybridRagConfig, SqliteStore]:
    pm = ProjectManager()
    if not pm.is_initialized:
        console.print(
            "[yellow]No hybridrag project found.[/yellow] Run [bold]hybridrag init[/bold] first."
        )
        raise typer.Exit(code=1)
    try:
        config, store = pm.load()
    except HybridRagError as e:
        _fail("Failed to open project", e)
    return pm, config, store


def _make_embedder(config: HybridRagConfig) -> BaseEmbedder:
    return default_registry.create("embedding", config.embedding.provider, config)


def _fail(message: str, error: Exception) -> NoReturn:
    console.print(f"[red]{message}:[/red] {error}")
    raise typer.Exit(code=1) from error


@app.command()
def version() -> None:
    """Show hybridrag version."""
    console.print(f"hybridrag {__version__}")


@app.command()
def init(
    name: Annotated[
        str,
        typer.Option("--name", "-n", help="Project name"),
    ] = "",
) -> None:
    """Initialize a new hybridrag project in the current directory."""
    pm = ProjectManager()
    try:
        rag_dir = pm.init(name=name)
    except HybridRagError as e:
        _fail("Failed to initialize project", e)

    console.print(f"[green]Initialized hybridrag project[/green] at {rag_dir}")

    console.print("\nNext steps:")
    console.print("  hybridrag add <file>     Add a document")
    console.print("  hybridrag embed          Generate embeddings")
    console.print('  hybridrag search "..."   Query the corpus')


@app.command()
def status() -> None:
    """Show project status: documents, chunks, embeddings, retrieval settings."""
    pm = ProjectManager()
    try:
        st = pm.status()
    except HybridRagError as e:
        _fail("Failed to read project", e)

    if not st.initialized:
        console.print(
            "[yellow]No hybridrag project found.[/yellow] Run [bold]hybridrag init[/bold] first."
        )
        raise typer.Exit(code=1)

    console.print(f"[bold]hybridrag project:[/bold] {st.root.name}")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("metric", style="dim")
    table.add_column("value", style="bold")
    table.add_row("Documents", str(st.document_count))
    table.add_row("Chunks", str(st.chunk_count))
    table.add_row("Embedded", f"{st.embedded_count}/{st.chunk_count}")
    if st.config:
        table.add_row("Embedding", f"{st.config.embedding.provider}/{st.config.embedding.model}")
        table.add_row("Mode", st.config.retrieval.mode)
    console.print(table)

    if st.document_count == 0:
        console.print(
            "\n[dim]No documents indexed yet. Run [bold]hybridrag add <file>[/bold] to start.[/dim]"
        )
    elif st.embedded_count < st.chunk_count:
        console.print("\n[dim]Some chunks lack embeddings. Run [bold]hybridrag embed[/bold].[/dim]")


@app.command()
def add(
    paths: Annotated[
        list[Path] | None,
        typer.Argument(help="File path(s) to add"),
    ] = None,
) -> None:
    """Add text document(s) to the corpus."""
    _, config, store = _load_project()

    if not paths:
        console.print(
            "[yellow]No file paths provided.[/yellow] Usage: hybridrag add <file> [file ...]"
        )
        raise typer.Exit(code=1)

    pipeline = Pipeline(
        loader=TextLoader(),
        chunker=ParagraphChunker(),
        store=store,
        config=config,
    )

    added = 0
    total_chunks = 0
    for path in paths:
        try:
            document, chunks = pipeline.add_document(path.resolve())
        except HybridRagError as e:
            console.print(f"  [red]Error adding {path.name}:[/red] {e}")
            continue
        console.print(
            f"  [green]Added {document.file_name}[/green] "
            f"(id={document.document_id}, {len(chunks)} chunks)"
        )
        added += 1
        total_chunks += len(chunks)

    if added:
        console.print(f"\n[green]Added {added} document(s)[/green] ({total_chunks} chunks total)")
    else:
        raise typer.Exit(code=1)


@app.command()
def docs() -> None:
    """List documents in the corpus."""
    _, _, store = _load_project()
    try:
        documents = store.get_documents()
    except HybridRagError as e:
        _fail("Failed to list documents", e)

    if not documents:
        console.print("[dim]No documents.[/dim]")
        return

    table = Table("ID", "Name", "Chunks", "Added")
    for doc in documents:
        chunk_count = len(store.get_document_chunks(doc.document_id))
        table.add_row(
            str(doc.document_id),
            doc.file_name,
            str(chunk_count),
            doc.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command()
def remove(
    document_id: Annotated[int, typer.Argument(help="Document ID (see 'hybridrag docs')")],
) -> None:
    """Remove a document and its chunks."""
    _, config, store = _load_project()
    pipeline = Pipeline(loader=TextLoader(), chunker=ParagraphChunker(), store=store, config=config)
    try:
        count = pipeline.remove(document_id)
    except HybridRagError as e:
        _fail("Failed to remove document", e)
    console.print(f"[green]Removed document {document_id}[/green] ({count} chunks)")


@app.command()
def embed(
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", "-b", help="Chunks per embedding request"),
    ] = None,
) -> None:
    """Generate embeddings for chunks that have none yet."""
    _, config, store = _load_project()

    processed = 0
    try:
        pipeline = Pipeline(
            loader=TextLoader(),
            chunker=ParagraphChunker(),
            store=store,
            config=config,
            embedder=_make_embedder(config),
        )
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Embedding", total=None)
            for event in pipeline.generate_embeddings(batch_size):
                progress.update(task, completed=event.processed, total=event.total)
                processed = event.processed
    except HybridRagError as e:
        _fail("Embedding failed", e)

    if processed:
        console.print(f"[green]Embedded {processed} chunk(s)[/green]")
    else:
        console.print("[dim]All chunks already have embeddings.[/dim]")


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    mode: Annotated[
        RetrievalMode | None,
        typer.Option("--mode", "-m", help="vector, keyword or hybrid"),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Number of results"),
    ] = None,
    min_similarity: Annotated[
        float | None,
        typer.Option("--min-similarity", "-s", help="Cosine floor for vector hits"),
    ] = None,
    rrf_k: Annotated[
        float | None,
        typer.Option("--rrf-k", help="Reciprocal rank fusion constant"),
    ] = None,
    balance: Annotated[
        float | None,
        typer.Option("--balance", help="Vector vs keyword weight, 0..1"),
    ] = None,
    trace: Annotated[
        bool,
        typer.Option("--trace", "-t", help="Show every candidate and stage timings"),
    ] = False,
) -> None:
    """Search the corpus. Options default to the [retrieval] config section."""
    _, config, store = _load_project()
    rcfg = config.retrieval
    try:
        effective_mode = mode or coerce_mode(rcfg.mode)
    except HybridRagError as e:
        _fail("Invalid retrieval mode in config", e)

    try:
        embedder = _make_embedder(config) if effective_mode.uses_vector else None
        engine = RetrievalEngine.from_config(config, store, embedder)
        kwargs = {
            "top_k": top_k if top_k is not None else rcfg.top_k,
            "min_similarity": min_similarity if min_similarity is not None else rcfg.min_similarity,
            "mode": effective_mode,
            "rrf_k": rrf_k if rrf_k is not None else rcfg.rrf_k,
            "hybrid_balance": balance if balance is not None else rcfg.hybrid_balance,
        }
        if trace:
            result, pipeline_trace = engine.retrieve_with_trace(query, **kwargs)
        else:
            result = engine.retrieve(query, **kwargs)
            pipeline_trace = None
    except HybridRagError as e:
        _fail("Search failed", e)

    _print_results(result)
    if pipeline_trace is not None:
        _print_trace(pipeline_trace)


@app.command()
def context(
    query: Annotated[str, typer.Argument(help="Question to gather context for")],
    top_k: Annotated[
        int,
        typer.Option("--top-k", "-k", help="Number of chunks"),
    ] = 3,
    min_similarity: Annotated[
        float,
        typer.Option("--min-similarity", "-s", help="Cosine floor"),
    ] = 0.75,
) -> None:
    """Print vector-search context for a query, ready to paste into a prompt."""
    _, config, store = _load_project()
    try:
        engine = RetrievalEngine.from_config(config, store, _make_embedder(config))
        text = engine.get_relevant_context(query, top_k=top_k, min_similarity=min_similarity)
    except HybridRagError as e:
        _fail("Context retrieval failed", e)

    if not text:
        console.print("[dim]No relevant context found.[/dim]")
        return
    console.print(text, markup=False, highlight=False)


def _print_results(result: RetrievalResult) -> None:
    m = result.metrics
    if not result.chunks:
        console.print("[yellow]No results.[/yellow]")
    for rank, chunk in enumerate(result.chunks, start=1):
        console.print(
            f"\n[bold]{rank}. {chunk.document_name}[/bold] #{chunk.chunk_index} "
            f"[dim](fused={chunk.fused_score:.4f} vector={chunk.vector_score:.3f} "
            f"keyword={chunk.keyword_score:.3f})[/dim]"
        )
        console.print(chunk.content, markup=False, highlight=False)

    console.print(
        f"\n[dim]{m.mode.value}: {m.final_results} results, "
        f"{m.vector_matches} vector / {m.keyword_matches} keyword matches, "
        f"{m.total_chunks_searched} chunks scanned, {m.total_time_ms:.1f}ms "
        f"(embedding {m.embedding_time_ms:.1f}ms)[/dim]"
    )


def _print_trace(trace: PipelineTrace) -> None:
    table = Table(
        title=f"{trace.fusion_formula} · {trace.included_chunks}/{trace.total_candidates} included"
    )
    table.add_column("#", justify="right")
    table.add_column("Source")
    table.add_column("Chunk", justify="right")
    table.add_column("Vector", justify="right")
    table.add_column("Keyword", justify="right")
    table.add_column("Fused", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Terms")
    table.add_column("Preview", overflow="fold")

    for c in trace.candidates:
        style = "green" if c.included else "dim"
        table.add_row(
            str(c.rank),
            c.source_name,
            "" if c.chunk_index is None else str(c.chunk_index),
            f"{c.vector_score:.3f}",
            f"{c.keyword_score:.3f}",
            f"{c.final_score:.4f}",
            str(c.token_count),
            ", ".join(c.matched_terms),
            c.preview,
            style=style,
        )
    console.print(table)

    for timing in trace.timings:
        console.print(f"  [dim]{timing}[/dim]")
    console.print(f"  [bold]total: {trace.total_time_ms:.1f}ms[/bold]")
