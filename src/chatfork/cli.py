"""
chatfork CLI - terminal front end for branching conversations.

Every command loads the conversation from the configured store, applies one
engine operation, and prints the active transcript with its branch markers.
"""

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chatfork.branching.conversation import Conversation, new_conversation
from chatfork.branching.engine import MutationEngine
from chatfork.branching.navigator import BranchNavigator
from chatfork.branching.projector import TranscriptProjector
from chatfork.config import settings
from chatfork.exceptions import ChatforkError, ReplyGenerationFailedError
from chatfork.generation import ReplyGenerator, create_generator
from chatfork.logging_config import setup_logging
from chatfork.models.tree import MessageRole
from chatfork.storage.base import ConversationStore

app = typer.Typer(
    name="chatfork",
    help="chatfork - branching AI chat conversations",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)

ROLE_STYLES = {
    MessageRole.SYSTEM: "dim",
    MessageRole.USER: "bold cyan",
    MessageRole.ASSISTANT: "bold green",
}


@app.callback()
def main() -> None:
    """Initialize logging for every command."""
    try:
        setup_logging(context="cli")
    except PermissionError:
        logging.basicConfig(level=logging.INFO)


@contextmanager
def open_store() -> Iterator[ConversationStore]:
    """Open the conversation store selected by ``STORAGE_BACKEND``."""
    if settings.storage_backend == "json":
        from chatfork.storage.json_store import JsonFileConversationStore

        yield JsonFileConversationStore(settings.conversations_dir)
        return

    from chatfork.db.connection import db_session, init_db
    from chatfork.db.repositories import SqlConversationRepository

    init_db()
    with db_session() as db:
        yield SqlConversationRepository(db)


def get_generator() -> ReplyGenerator:
    """Build the reply generator from settings."""
    base_url = settings.openai_base_url if settings.reply_provider == "openai" else None
    return create_generator(
        provider_type=settings.reply_provider,  # type: ignore[arg-type]
        api_key=settings.reply_api_key,
        base_url=base_url,
        max_tokens=settings.reply_max_tokens,
        temperature=settings.reply_temperature,
    )


def resolve_node_id(conversation: Conversation, node_ref: str) -> str:
    """Accept a full node id or a unique prefix of one."""
    if node_ref in conversation.nodes:
        return node_ref
    matches = [nid for nid in conversation.nodes if nid.startswith(node_ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        console.print(f"[bold red]Error:[/bold red] No message matches {node_ref!r}")
    else:
        console.print(
            f"[bold red]Error:[/bold red] {node_ref!r} is ambiguous "
            f"({len(matches)} messages match)"
        )
    raise typer.Exit(1)


def print_transcript(conversation: Conversation) -> None:
    """Print the active path with per-message branch markers."""
    console.print(f"[bold]{escape(conversation.title)}[/bold] [dim]({conversation.id})[/dim]")
    console.print(f"  Model: {conversation.model}")
    console.print()
    for message in TranscriptProjector().view(conversation):
        marker = ""
        if message.has_branches:
            marker = f" [yellow]< {message.branch_index + 1}/{message.branch_count} >[/yellow]"
        style = ROLE_STYLES[message.role]
        console.print(
            f"[{style}]{message.role.value}[/{style}] "
            f"[dim]{message.node_id[:8]}[/dim]{marker}"
        )
        console.print(message.content, markup=False)
        for ref in message.attachments:
            console.print(f"  [dim]attachment: {ref}[/dim]")
        console.print()


def _run_mutation(conversation_id: str, operation) -> None:
    """Load, mutate via the engine, and print; shared by mutating commands."""
    try:
        generator = get_generator()
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    with open_store() as store:
        try:
            conversation = store.load(conversation_id)
        except ChatforkError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)

        engine = MutationEngine(generator, store=store)
        try:
            asyncio.run(operation(engine, conversation))
        except ReplyGenerationFailedError as e:
            print_transcript(conversation)
            console.print(f"[bold red]Reply failed:[/bold red] {e.reason}")
            if e.node_id:
                console.print(
                    f"Retry with: chatfork retry {conversation.id} {e.node_id[:8]}"
                )
            raise typer.Exit(2)
        except ChatforkError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)

        print_transcript(conversation)


@app.command()
def new(
    title: Optional[str] = typer.Option(None, help="Conversation title"),
    model: Optional[str] = typer.Option(None, help="Model identifier"),
    system: Optional[str] = typer.Option(None, help="System prompt (tree root)"),
) -> None:
    """Create an empty conversation."""
    conversation = new_conversation(
        title=title or settings.default_title,
        model=model or settings.default_model,
        system_prompt=system if system is not None else settings.default_system_prompt,
    )
    with open_store() as store:
        store.save(conversation)
    console.print(f"[green]✓ Created conversation[/green] {conversation.id}")


@app.command("list")
def list_conversations() -> None:
    """List stored conversations."""
    with open_store() as store:
        ids = store.list_ids()
        if not ids:
            console.print("[yellow]No conversations yet[/yellow]")
            return

        table = Table(title="Conversations")
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        table.add_column("Updated")
        for conversation_id in ids:
            try:
                conversation = store.load(conversation_id)
            except ChatforkError as e:
                logger.warning(f"Skipping conversation {conversation_id}: {e}")
                table.add_row(conversation_id, "[red]unreadable[/red]", "-", "-")
                continue
            table.add_row(
                conversation.id,
                escape(conversation.title),
                str(len(conversation.nodes)),
                conversation.updated_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)


@app.command()
def show(conversation_id: str = typer.Argument(..., help="Conversation ID")) -> None:
    """Show the active transcript."""
    with open_store() as store:
        try:
            conversation = store.load(conversation_id)
        except ChatforkError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)
        print_transcript(conversation)


@app.command()
def send(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    text: str = typer.Argument(..., help="Message text"),
    image: Optional[List[str]] = typer.Option(None, help="Image URL to attach"),
) -> None:
    """Send a message at the end of the active path."""

    async def operation(engine: MutationEngine, conversation: Conversation) -> None:
        await engine.append_turn(conversation, text, image or [])

    _run_mutation(conversation_id, operation)


@app.command()
def edit(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    node: str = typer.Argument(..., help="User message ID (or prefix)"),
    text: str = typer.Argument(..., help="Replacement text"),
) -> None:
    """Edit a user message, forking a new branch."""

    async def operation(engine: MutationEngine, conversation: Conversation) -> None:
        await engine.edit_message(conversation, resolve_node_id(conversation, node), text)

    _run_mutation(conversation_id, operation)


@app.command()
def regenerate(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    node: str = typer.Argument(..., help="Assistant message ID (or prefix)"),
) -> None:
    """Regenerate an assistant reply as a new branch."""

    async def operation(engine: MutationEngine, conversation: Conversation) -> None:
        await engine.regenerate(conversation, resolve_node_id(conversation, node))

    _run_mutation(conversation_id, operation)


@app.command()
def retry(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    node: str = typer.Argument(..., help="User message ID (or prefix)"),
) -> None:
    """Request a reply for a user message whose reply failed."""

    async def operation(engine: MutationEngine, conversation: Conversation) -> None:
        await engine.retry_reply(conversation, resolve_node_id(conversation, node))

    _run_mutation(conversation_id, operation)


@app.command()
def branch(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    node: str = typer.Argument(..., help="Any message ID (or prefix) at the fork"),
    index: int = typer.Argument(..., help="1-based branch number to switch to"),
) -> None:
    """Switch the branch shown at a message."""
    with open_store() as store:
        try:
            conversation = store.load(conversation_id)
            BranchNavigator(conversation.nodes).select_branch(
                conversation, resolve_node_id(conversation, node), index - 1
            )
            store.save(conversation)
        except ChatforkError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)
        print_transcript(conversation)


@app.command("init-db")
def init_db_command() -> None:
    """Create database tables."""
    from chatfork.db.connection import init_db

    init_db()
    console.print("[green]✓ Database initialized[/green]")


if __name__ == "__main__":
    app()
