"""TheReader CLI application using Typer."""

import asyncio
from typing import Annotated
from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from thereader import __version__
from thereader.config import settings
from thereader.utils.exceptions import ReaderError

app = typer.Typer(
    name="thereader",
    help="TheReader - photograph a book, then listen to it with word highlighting",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        console.print(f"[bold cyan]TheReader[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """TheReader - photograph a book, then listen to it with word highlighting."""
    pass


async def validate_database_connectivity() -> None:
    """
    Validate database connectivity.

    Raises:
        typer.Exit: If database connection fails
    """
    from thereader.db.session import engine

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
    except (OSError, SQLAlchemyError) as e:
        console.print("\n[bold red]Database Connection Failed:[/bold red]")
        console.print(f"  {e}")
        console.print(
            "\n[yellow]Hint:[/yellow] Verify DATABASE_URL and ensure the database is running"
        )
        raise typer.Exit(code=1) from None


def fail(error: ReaderError) -> None:
    """Print an application error and exit non-zero."""
    console.print(f"\n[bold red]Error ({error.code}):[/bold red] {error.message}")
    raise typer.Exit(code=1)


@app.command("init-db")
def init_db_command() -> None:
    """
    Create all tables directly from the models.

    Use for local development; production databases use ``alembic upgrade head``.
    """
    from thereader.db.session import close_db, init_db

    async def run() -> None:
        await validate_database_connectivity()
        await init_db()
        await close_db()

    asyncio.run(run())
    console.print("[green]✓ Database tables created[/green]")


@app.command("create-user")
def create_user(
    email: Annotated[str, typer.Argument(help="Email address of the new user")],
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Display name"),
    ] = None,
) -> None:
    """
    Create a user and print an access token for them.

    Examples:
        thereader create-user reader@example.com --name "Sam"
    """
    from thereader.api.security import create_access_token
    from thereader.db.repositories.user_repository import UserRepository
    from thereader.db.session import AsyncSessionLocal

    async def run() -> UUID:
        await validate_database_connectivity()
        async with AsyncSessionLocal() as session:
            repo = UserRepository(session)
            if await repo.get_by_email(email) is not None:
                console.print(f"[bold red]Error:[/bold red] User {email} already exists")
                raise typer.Exit(code=1)
            user = await repo.create_user(email, display_name=name)
            await session.commit()
            return user.id

    user_id = asyncio.run(run())
    token = create_access_token(user_id)
    console.print(
        Panel.fit(
            f"[bold green]User created[/bold green]\n\n"
            f"User ID: {user_id}\n"
            f"Token: {token}",
            border_style="green",
        )
    )


@app.command("issue-token")
def issue_token(
    email: Annotated[str, typer.Argument(help="Email address of an existing user")],
    expires_minutes: Annotated[
        int | None,
        typer.Option("--expires-minutes", help="Token lifetime (default: JWT_EXPIRES_MINUTES)"),
    ] = None,
) -> None:
    """Print a fresh access token for an existing user."""
    from thereader.api.security import create_access_token
    from thereader.db.repositories.user_repository import UserRepository
    from thereader.db.session import AsyncSessionLocal

    async def run() -> UUID | None:
        async with AsyncSessionLocal() as session:
            user = await UserRepository(session).get_by_email(email)
            return user.id if user else None

    user_id = asyncio.run(run())
    if user_id is None:
        console.print(f"[bold red]Error:[/bold red] No user with email {email}")
        raise typer.Exit(code=1)
    console.print(create_access_token(user_id, expires_minutes))


@app.command("set-voice")
def set_voice(
    email: Annotated[str, typer.Argument(help="Email address of an existing user")],
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", help="ElevenLabs API key"),
    ] = None,
    voice_id: Annotated[
        str | None,
        typer.Option("--voice-id", help="ElevenLabs voice id"),
    ] = None,
    language: Annotated[
        str | None,
        typer.Option("--language", help="Preferred language code"),
    ] = None,
) -> None:
    """
    Store a user's text-to-speech credentials.

    Examples:
        thereader set-voice reader@example.com --api-key sk_... --voice-id 21m00Tcm4TlvDq8ikWAM
    """
    from thereader.db.repositories.user_repository import UserRepository
    from thereader.db.session import AsyncSessionLocal

    if api_key is None and voice_id is None and language is None:
        console.print("[bold red]Error:[/bold red] Nothing to update")
        raise typer.Exit(code=1)

    async def run() -> bool:
        async with AsyncSessionLocal() as session:
            repo = UserRepository(session)
            user = await repo.get_by_email(email)
            if user is None:
                return False
            await repo.upsert_preferences(
                user.id,
                elevenlabs_api_key=api_key,
                elevenlabs_voice_id=voice_id,
                language=language,
            )
            await session.commit()
            return True

    if not asyncio.run(run()):
        console.print(f"[bold red]Error:[/bold red] No user with email {email}")
        raise typer.Exit(code=1)
    console.print("[green]✓ Preferences updated[/green]")


@app.command("sweep-sessions")
def sweep_sessions() -> None:
    """Mark capture sessions past their expiry as expired."""
    from thereader.core.capture.coordinator import CaptureCoordinator
    from thereader.core.storage import get_artifact_store
    from thereader.db.session import AsyncSessionLocal

    async def run() -> int:
        coordinator = CaptureCoordinator(AsyncSessionLocal, get_artifact_store())
        return await coordinator.sweep_expired()

    expired = asyncio.run(run())
    console.print(f"[green]✓ {expired} session(s) expired[/green]")


@app.command()
def ingest(
    token: Annotated[str, typer.Argument(help="Capture session token")],
) -> None:
    """
    Complete a capture session and run ingestion in the foreground.

    Also retries a session whose previous ingestion failed.

    Examples:
        thereader ingest 6b0d4c0f...
    """
    from thereader.core.capture.coordinator import CaptureCoordinator
    from thereader.core.ingestion.cover_analysis import CoverAnalyzer
    from thereader.core.ingestion.pipeline import IngestionPipeline
    from thereader.core.storage import get_artifact_store
    from thereader.core.vision.extractor import BlockExtractor
    from thereader.db.session import AsyncSessionLocal

    console.print(
        Panel.fit(
            "[bold cyan]TheReader[/bold cyan] - Book Ingestion\n"
            f"Version {__version__}",
            border_style="cyan",
        )
    )

    async def run() -> None:
        await validate_database_connectivity()
        store = get_artifact_store()
        coordinator = CaptureCoordinator(AsyncSessionLocal, store)
        await coordinator.complete(token)

        with Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
        ) as progress:
            task_id = progress.add_task("Queued", total=None)

            def on_progress(label: str, steps_done: int, steps_total: int) -> None:
                progress.update(
                    task_id,
                    description=label,
                    completed=steps_done,
                    total=steps_total,
                )

            pipeline = IngestionPipeline(
                AsyncSessionLocal,
                store,
                BlockExtractor.from_settings(),
                CoverAnalyzer(),
                on_progress=on_progress,
            )
            book = await pipeline.run(token)

        if book is None:
            console.print("\n[yellow]Book was deleted while processing[/yellow]")
            return

        console.print(
            Panel.fit(
                f"[bold green]Ingestion Complete[/bold green]\n\n"
                f"Book ID: {book.id}\n"
                f"Title: {book.title}\n"
                f"Category: {book.category}",
                title="Success",
                border_style="green",
            )
        )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Ingestion cancelled by user (Ctrl+C)[/yellow]")
        raise typer.Exit(code=130) from None
    except ReaderError as e:
        fail(e)


@app.command("books")
def list_books(
    email: Annotated[str, typer.Argument(help="Email address of the owner")],
    category: Annotated[
        str | None,
        typer.Option("--category", "-c", help="Only books in this category"),
    ] = None,
) -> None:
    """List a user's books."""
    from thereader.db.repositories.book_repository import BookRepository
    from thereader.db.repositories.user_repository import UserRepository
    from thereader.db.session import AsyncSessionLocal

    async def run() -> None:
        async with AsyncSessionLocal() as session:
            user = await UserRepository(session).get_by_email(email)
            if user is None:
                console.print(f"[bold red]Error:[/bold red] No user with email {email}")
                raise typer.Exit(code=1)
            books = await BookRepository(session).list_for_owner(user.id, category)

        if not books:
            console.print("[yellow]No books found[/yellow]")
            return

        table = Table(title=f"Books ({len(books)} total)")
        table.add_column("ID", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("Category")
        table.add_column("Status")
        table.add_column("Created", style="dim")
        for book in books:
            table.add_row(
                str(book.id),
                book.title or "-",
                book.category or "-",
                book.status,
                book.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    asyncio.run(run())


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes")] = False,
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    console.print(f"[bold cyan]TheReader API[/bold cyan] on http://{host}:{port}")
    console.print(f"  Storage: {settings.storage_backend}")
    uvicorn.run("thereader.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
