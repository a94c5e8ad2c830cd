"""CLI entrypoints for the research tree engine."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from researchtree.audit import AuditLog
from researchtree.completion import LLMCompletionService
from researchtree.config import EngineConfig, Settings, load_settings
from researchtree.literature import InMemoryLiterature, LiteratureResolver, SemanticScholarSearch
from researchtree.llm.client import LLMClient
from researchtree.logging import configure_logging, get_logger
from researchtree.mcts.expander import Expander
from researchtree.mcts.scheduler import TreeScheduler
from researchtree.models.statistics import TreeStatistics
from researchtree.models.tree import ResearchTree, TreeParams
from researchtree.recording.file_recorder import FileEventRecorder
from researchtree.store.statistics import best_nodes, calculate_tree_statistics
from researchtree.store.tree_store import TreeStore
from researchtree.sync.batch import fold_batches, load_batches
from researchtree.sync.sinks import ArtifactSink, FileArtifactSink, RedisArtifactSink

app = typer.Typer(add_completion=False, help="Grow research trees with Monte-Carlo tree search")
logger = get_logger(__name__)
console = Console()


def _build_sink(settings: Settings) -> ArtifactSink:
    if settings.redis_enabled:
        return RedisArtifactSink(redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix)
    return FileArtifactSink(settings.artifacts_dir)


def _print_statistics(tree: ResearchTree, stats: TreeStatistics) -> None:
    console.print(f"[bold]{tree.title}[/bold]  tree={tree.id}  status={tree.status.value}")
    summary = Table(show_header=False)
    summary.add_row("nodes", str(stats.total_nodes))
    summary.add_row("max depth", str(stats.max_depth))
    summary.add_row("average depth", f"{stats.average_depth:.2f}")
    summary.add_row("total visits", str(stats.total_visits))
    summary.add_row("branching factor", f"{stats.branching_factor:.2f}")
    console.print(summary)

    if stats.best_paths:
        paths = Table("path", "depth", "avg score")
        for p in stats.best_paths:
            paths.add_row(" > ".join(p.node_ids), str(p.depth), f"{p.average_score:.3f}")
        console.print(paths)


@app.command()
def run(
    topic: str = typer.Argument(..., help="Root research topic."),
    session: str = typer.Option("cli", "--session", help="Session id owning the tree"),
    max_nodes: int | None = typer.Option(None, "--max-nodes", help="Overrides RESEARCHTREE_MAX_NODES"),
    max_depth: int | None = typer.Option(None, "--max-depth", help="Overrides RESEARCHTREE_MAX_DEPTH"),
    artifacts_dir: Path | None = typer.Option(
        None,
        "--artifacts-dir",
        help="Artifacts directory (overrides RESEARCHTREE_ARTIFACTS_DIR)",
    ),
) -> None:
    """Grow a research tree for TOPIC and print its statistics."""

    settings = load_settings()
    if artifacts_dir is not None:
        settings.artifacts_dir = artifacts_dir
    configure_logging(settings.log_level)

    params = TreeParams(
        exploration_weight=settings.exploration_weight,
        max_depth=max_depth or settings.max_depth,
        max_nodes=max_nodes or settings.max_nodes,
        max_children_per_node=settings.max_children_per_node,
    )
    config = EngineConfig.from_settings(settings)

    store = TreeStore()
    audit = AuditLog()
    library = InMemoryLiterature()
    search = SemanticScholarSearch(
        api_key=settings.s2_api_key,
        base_url=settings.s2_api_base_url,
        timeout_s=settings.s2_timeout_s,
        max_retries=settings.s2_max_retries,
        retry_backoff_s=settings.s2_retry_backoff_s,
        retry_max_backoff_s=settings.s2_retry_max_backoff_s,
    )
    completion = LLMCompletionService(LLMClient(settings))
    expander = Expander(store, audit, completion, search, config)

    tree = store.create_tree(session, params, topic=topic)
    settings.artifacts_dir.mkdir(parents=True, exist_ok=True)
    recorder = FileEventRecorder(settings.artifacts_dir / f"{tree.id}.events.jsonl")
    scheduler = TreeScheduler(
        store,
        audit,
        expander,
        config=config,
        sink=_build_sink(settings),
        recorder=recorder,
        library=library,
    )

    logger.info("CLI run requested", extra={"tree_id": tree.id, "topic": topic})
    tree = asyncio.run(scheduler.run(tree.id))

    nodes = store.list_nodes(tree.id)
    _print_statistics(tree, calculate_tree_statistics(nodes))

    resolver = LiteratureResolver(library)
    for node in best_nodes(nodes, limit=5):
        refs = resolver.resolve(node)
        paper = refs.primary.title if refs.primary else "-"
        console.print(f"{node.id}  {node.mean_reward:.3f}  {node.topic}  [dim]{paper}[/dim]")


@app.command()
def stats(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSONL artifact file of one tree"),
) -> None:
    """Print statistics of the last snapshot stored in an artifact file."""

    data = fold_batches(load_batches(path))
    if data is None:
        raise typer.BadParameter(f"{path} holds no artifact batches")
    _print_statistics(data.tree, calculate_tree_statistics(data.nodes))
    typer.echo(f"iterations={len(data.iterations)} expansions={len(data.expansions)}")


if __name__ == "__main__":
    app()
