#!/usr/bin/env python3
"""
Context Assembly CLI
====================

Debugging front end for the context-assembly engine. Runs the keyword
ranking and prompt assembly against a real directory and shows what a
model would be given.

Commands:
--------
    # Ranked files for a question
    context-assembly rank "where is parseJSON defined"

    # Context snippets the provider would attach
    context-assembly context "how are tokens estimated" --top-k 3

    # Full budget-truncated prompt, optionally continuing a saved transcript
    context-assembly prompt "explain truncate_prompt" --transcript 2024-01-01T00_00_00.000Z
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .context_provider import KeywordContextProvider
from .models import Message, PromptBudget, Speaker
from .recipes import ChatQuestion
from .store import TranscriptStore
from .tokens import TokenEstimator
from .transcript import Transcript
from .workspace import FileSystemReader, StaticRootResolver, WorkspaceSearcher

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

console = Console()

DEFAULT_PREAMBLE = (
    "You are a helpful coding assistant. Answer questions about the code "
    "in the user's workspace using the provided context."
)


@dataclass
class CliConfig:
    """
    Options for one CLI run.

    Attributes:
        workspace: Directory searched for context
        budget: Token budgets (environment overrides applied)
        store_dir: Where transcripts are saved
        verbose: Enable debug logging and tracebacks
    """
    workspace: Path = field(default_factory=Path.cwd)
    budget: PromptBudget = field(default_factory=PromptBudget)
    store_dir: Path = field(default_factory=lambda: Path(".chat_transcripts"))
    verbose: bool = False


def build_provider(config: CliConfig) -> KeywordContextProvider:
    return KeywordContextProvider(
        searcher=WorkspaceSearcher(config.workspace),
        reader=FileSystemReader(),
        root_resolver=StaticRootResolver(config.workspace),
        budget=config.budget,
    )


# =============================================================================
# COMMANDS
# =============================================================================


async def run_rank(config: CliConfig, query: str, as_json: bool) -> int:
    provider = build_provider(config)
    ranked = await provider.rank_files(query)

    if as_json:
        print(json.dumps([item.model_dump() for item in ranked], indent=2))
        return 0

    if not ranked:
        console.print("[yellow]No matching files.[/yellow]")
        return 0

    table = Table(title=f"Ranked files for: {query}")
    table.add_column("#", justify="right")
    table.add_column("File")
    table.add_column("Score", justify="right")
    table.add_column("Terms")
    for position, item in enumerate(ranked, start=1):
        terms = ", ".join(
            f"{term}={value:.2f}" for term, value in item.score_components.items() if value > 0
        )
        table.add_row(str(position), item.filename, f"{item.score:.3f}", terms)
    console.print(table)
    return 0


async def run_context(config: CliConfig, query: str, as_json: bool) -> int:
    provider = build_provider(config)
    messages = await provider.get_context_messages(query)

    if as_json:
        print(json.dumps([m.model_dump(mode="json", by_alias=True) for m in messages], indent=2))
        return 0

    if not messages:
        console.print("[yellow]No context found.[/yellow]")
        return 0

    estimator = TokenEstimator.from_budget(config.budget)
    for message in messages:
        if message.speaker != Speaker.HUMAN:
            continue
        console.print(Panel(
            message.text,
            title=f"[bold]{message.file}[/bold] (~{estimator.estimate(message)} tokens)",
            border_style="cyan",
        ))
    return 0


async def run_prompt(config: CliConfig, query: str, transcript_id: str | None, as_json: bool) -> int:
    store = TranscriptStore(config.store_dir, budget=config.budget)
    transcript = await store.load(transcript_id) if transcript_id else None
    if transcript is None:
        transcript = Transcript(budget=config.budget)

    interaction = ChatQuestion(build_provider(config)).get_interaction(query)
    transcript.add_interaction(interaction)

    preamble = [
        Message(speaker=Speaker.HUMAN, text=DEFAULT_PREAMBLE),
        Message(speaker=Speaker.ASSISTANT, text="Understood."),
    ]
    prompt = await transcript.to_prompt(preamble)
    path = await store.save(transcript)

    if as_json:
        print(json.dumps({
            "transcriptId": transcript.id,
            "savedTo": str(path),
            "messages": [m.model_dump(mode="json", by_alias=True) for m in prompt],
        }, indent=2))
        return 0

    estimator = TokenEstimator.from_budget(config.budget)
    for message in prompt:
        console.print(Panel(
            message.text or "[dim](awaiting response)[/dim]",
            title=f"{message.speaker.value} (~{estimator.estimate(message)} tokens)",
            border_style="green" if message.speaker == Speaker.HUMAN else "blue",
        ))
    console.print(
        f"[dim]{estimator.estimate_many(prompt)} of {config.budget.max_available_prompt_length} "
        f"tokens used; transcript {transcript.id} saved to {path}[/dim]"
    )
    return 0


# =============================================================================
# CLI INTERFACE
# =============================================================================


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="context-assembly",
        description="Keyword context ranking and prompt assembly",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s rank "where is parseJSON defined"
  %(prog)s context "how are tokens estimated" --top-k 3
  %(prog)s prompt "explain truncate_prompt" --max-tokens 2000
        """,
    )

    parser.add_argument(
        "command",
        choices=["rank", "context", "prompt"],
        help="What to show",
    )

    parser.add_argument(
        "query",
        help="The question (natural language)",
    )

    parser.add_argument(
        "--workspace", "-w",
        type=Path,
        default=Path.cwd(),
        help="Workspace directory (default: current)",
    )

    parser.add_argument(
        "--top-k", "-k",
        type=int,
        help="Number of ranked files used as context",
    )

    parser.add_argument(
        "--max-tokens",
        type=int,
        help="Total prompt budget in estimated tokens",
    )

    parser.add_argument(
        "--transcript", "-t",
        metavar="TRANSCRIPT_ID",
        help="Continue a saved transcript (prompt command)",
    )

    parser.add_argument(
        "--store-dir",
        type=Path,
        default=Path(".chat_transcripts"),
        help="Transcript directory (default: .chat_transcripts)",
    )

    parser.add_argument(
        "--output-json",
        action="store_true",
        help="Print results as JSON",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CliConfig:
    budget = PromptBudget.from_env()
    overrides: dict[str, int] = {}
    if args.top_k is not None:
        overrides["keyword_top_k"] = args.top_k
    if args.max_tokens is not None:
        overrides["max_available_prompt_length"] = args.max_tokens
    if overrides:
        budget = PromptBudget.model_validate({**budget.model_dump(), **overrides})

    return CliConfig(
        workspace=args.workspace.resolve(),
        budget=budget,
        store_dir=args.store_dir,
        verbose=args.verbose,
    )


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr,
    )

    try:
        config = build_config(args)
        logger.debug("cli_started", command=args.command, workspace=str(config.workspace))

        if args.command == "rank":
            return await run_rank(config, args.query, args.output_json)
        if args.command == "context":
            return await run_context(config, args.query, args.output_json)
        return await run_prompt(config, args.query, args.transcript, args.output_json)

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        if args.verbose:
            console.print_exception()
        else:
            console.print(f"[red]Error: {e}[/red]")
        return 1


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
