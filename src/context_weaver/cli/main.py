"""CLI entry point for context-weaver.

Invoked as::

    context-weaver [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m context_weaver.cli.main

Every command that takes FILE reads a conversation from a JSON array of
messages or from JSON Lines (one message object per line).  Each message
needs ``role`` and ``content``; ``id``, ``timestamp``, ``pinned``,
``importance`` and ``metadata`` are optional.

Commands
--------
- version    — Show version information
- score      — Show the importance score of every message
- search     — Rank messages by TF-IDF similarity to a query
- pairs      — Show question/answer pairs and the ones kept under a budget
- summarize  — Summarize the conversation locally
- context    — Run smart context selection and show the result
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
import pydantic
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from context_weaver.session.state import Message

console = Console()

_PREVIEW_CHARS = 60


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------


def _load_messages(path: str) -> list[Message]:
    """Read messages from a JSON array or JSON Lines file; exit on error."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        console.print(f"[red]Failed to read input:[/red] {exc}")
        sys.exit(1)

    try:
        stripped = raw.strip()
        if stripped.startswith("["):
            records = json.loads(stripped)
        else:
            records = [json.loads(line) for line in stripped.splitlines() if line.strip()]
        return [Message.model_validate(record) for record in records]
    except (ValueError, pydantic.ValidationError) as exc:
        console.print(f"[red]Invalid message file:[/red] {exc}")
        sys.exit(1)


def _preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > _PREVIEW_CHARS:
        text = text[: _PREVIEW_CHARS - 3] + "..."
    return escape(text)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="context-weaver")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Token-budgeted context selection for LLM conversations"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from context_weaver import __version__

    console.print(f"[bold]context-weaver[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# score
# ---------------------------------------------------------------------------


@cli.command(name="score")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--threshold",
    default=None,
    type=click.FloatRange(0.0, 1.0),
    help="Only show messages scoring at or above this value.",
)
def score_command(file: str, threshold: float | None) -> None:
    """Show the auto-importance score of every message in FILE."""
    from context_weaver.selective.importance_scorer import AutoImportance

    scored = AutoImportance().score_messages(_load_messages(file))

    table = Table(title="Importance scores", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Role", style="cyan")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Content")
    for index, (message, score) in enumerate(scored):
        if threshold is not None and score < threshold:
            continue
        table.add_row(str(index), message.role.value, f"{score:.2f}", _preview(message.content))
    console.print(table)


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@cli.command(name="search")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("query")
@click.option("--top-k", default=5, show_default=True, help="Maximum results.")
@click.option("--min-score", default=0.1, show_default=True, help="Minimum cosine similarity.")
def search_command(file: str, query: str, top_k: int, min_score: float) -> None:
    """Rank messages in FILE by TF-IDF similarity to QUERY."""
    from context_weaver.context.semantic_index import SemanticIndex

    index = SemanticIndex()
    for message in _load_messages(file):
        index.add(message)
    hits = index.search(query, top_k=top_k, min_score=min_score)

    if not hits:
        console.print("[yellow]No matching messages.[/yellow]")
        return

    table = Table(title=f"Results for {escape(repr(query))}")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Role", style="cyan")
    table.add_column("Content")
    for hit in hits:
        table.add_row(f"{hit.score:.3f}", hit.message.role.value, _preview(hit.message.content))
    console.print(table)


# ---------------------------------------------------------------------------
# pairs
# ---------------------------------------------------------------------------


@cli.command(name="pairs")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-tokens", default=4000, show_default=True, help="Token budget for selection.")
@click.option("--query", default=None, help="Current user query (enables reference selection).")
@click.option("--min-recent", default=3, show_default=True, help="Most recent pairs always considered.")
def pairs_command(file: str, max_tokens: int, query: str | None, min_recent: int) -> None:
    """Show conversation pairs in FILE and which survive the budget."""
    from context_weaver.context.pairs import ConversationPairManager

    manager = ConversationPairManager()
    pairs = manager.build_pairs(_load_messages(file))
    kept = {
        pair.id
        for pair in manager.select_pairs(
            pairs, max_tokens=max_tokens, current_query=query, min_recent_pairs=min_recent
        )
    }

    table = Table(title="Conversation pairs")
    table.add_column("Pair", style="cyan")
    table.add_column("Importance", justify="right")
    table.add_column("Ref", justify="center")
    table.add_column("Topic")
    table.add_column("Kept", justify="center")
    for pair in pairs:
        table.add_row(
            pair.id,
            f"{pair.importance:.2f}",
            ", ".join(pair.referenced_pair_ids) or ("yes" if pair.has_reference else ""),
            pair.topic or "",
            "[green]yes[/green]" if pair.id in kept else "[red]no[/red]",
        )
    console.print(table)

    stats = manager.stats(pairs)
    console.print(
        f"{stats['total_pairs']} pairs, {stats['pairs_with_references']} with references, "
        f"{stats['pairs_with_steps']} with steps, avg importance {stats['avg_importance']:.2f}"
    )


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------


@cli.command(name="summarize")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--mode",
    type=click.Choice(["context", "extractive"], case_sensitive=False),
    default="context",
    show_default=True,
    help="'context' lists user points and assistant actions; 'extractive' keeps top sentences.",
)
@click.option("--max-sentences", default=3, show_default=True, help="Sentences kept (extractive).")
def summarize_command(file: str, mode: str, max_sentences: int) -> None:
    """Summarize the conversation in FILE without calling a model."""
    from context_weaver.context.summarizer import LocalSummarizer
    from context_weaver.errors import ConfigurationError

    try:
        summarizer = LocalSummarizer(max_sentences=max_sentences)
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    messages = _load_messages(file)
    if mode.lower() == "extractive":
        text = summarizer.summarize(messages)
    else:
        text = summarizer.summarize_for_context(messages)
    console.print(Panel(escape(text), title="Summary", expand=True))


# ---------------------------------------------------------------------------
# context
# ---------------------------------------------------------------------------


@cli.command(name="context")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-tokens", default=4000, show_default=True, help="Token budget.")
@click.option("--query", default=None, help="Current user query for the semantic boost.")
@click.option(
    "--threshold", default=0.3, show_default=True, help="Minimum importance for unpinned messages."
)
@click.option("--json-output", is_flag=True, help="Output raw JSON instead of formatted view.")
def context_command(
    file: str,
    max_tokens: int,
    query: str | None,
    threshold: float,
    json_output: bool,
) -> None:
    """Select the context for the conversation in FILE under a token budget."""
    from context_weaver.errors import ContextWeaverError
    from context_weaver.session.state import ContextResult
    from context_weaver.session.weaver import SmartContextWeaver

    messages = _load_messages(file)

    async def _run() -> ContextResult:
        weaver = SmartContextWeaver(token_limit=max(max_tokens, 1))
        await weaver.import_session("cli", messages)
        return await weaver.get_context(
            "cli",
            max_tokens=max_tokens,
            current_query=query,
            importance_threshold=threshold,
        )

    try:
        result = asyncio.run(_run())
    except ContextWeaverError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    if json_output:
        click.echo(result.model_dump_json(indent=2))
        return

    table = Table(title=f"Context ({result.token_count}/{max_tokens} tokens)")
    table.add_column("Role", style="cyan")
    table.add_column("Content")
    for message in result.messages:
        table.add_row(message.role.value, _preview(message.content))
    console.print(table)
    console.print(
        f"{result.message_count} of {len(messages)} messages, "
        f"{result.pinned_count} pinned, "
        f"summary included: {'yes' if result.was_summarized else 'no'}"
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    cli()
