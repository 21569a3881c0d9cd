"""Typer CLI for PageGuard."""

import asyncio
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="pageguard", help="PageGuard: single-session watermarked document viewer")
console = Console()


def _run_with_db(fn):
    """Open the configured database, run ``fn(db)``, close it again."""
    from pageguard.common.config import get_settings
    from pageguard.common.database import DatabaseManager

    async def runner():
        db = DatabaseManager(get_settings())
        await db.init()
        await db.create_all()
        try:
            return await fn(db)
        finally:
            await db.close()

    return asyncio.run(runner())


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the PageGuard API server."""
    import uvicorn
    from pageguard.app import create_app

    console.print(f"[bold green]Starting PageGuard on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def keygen():
    """Print a fresh encryption master key (64 hex chars)."""
    from pageguard.documents.crypto import generate_master_key

    console.print(generate_master_key())


@app.command()
def register(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF or image to protect"),
    doc_id: str = typer.Argument(..., help="Document id used in viewer URLs"),
    title: Optional[str] = typer.Option(None, help="Display title (defaults to file name)"),
    password: Optional[str] = typer.Option(None, help="Require this password to view"),
    custom_text: Optional[str] = typer.Option(None, help="Extra watermark text"),
    show_ip: bool = typer.Option(True, help="Show viewer IP in watermark"),
    show_timestamp: bool = typer.Option(True, help="Show time in watermark"),
    show_session_id: bool = typer.Option(True, help="Show session id in watermark"),
):
    """Encrypt a file into storage and register it for viewing."""
    from pageguard.common.config import get_settings
    from pageguard.documents import renderer, storage
    from pageguard.documents.crypto import encrypt_buffer
    from pageguard.documents.registry import IMAGE_CONTENT_TYPES, DocumentRegistry, WatermarkPolicy

    settings = get_settings()
    try:
        key = settings.master_key
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    content_type = mimetypes.guess_type(source.name)[0] or "application/pdf"
    data = source.read_bytes()
    page_count = None
    if content_type not in IMAGE_CONTENT_TYPES:
        if not renderer.is_valid_pdf(data):
            console.print(f"[bold red]Error:[/bold red] {source} is not a readable PDF")
            raise typer.Exit(1)
        content_type = "application/pdf"
        page_count = renderer.get_page_count(data)

    suffix = source.suffix.lstrip(".") or "bin"
    policy = WatermarkPolicy(
        show_ip=show_ip,
        show_timestamp=show_timestamp,
        show_session_id=show_session_id,
        custom_text=custom_text,
    )

    async def create(db):
        async with db.get_session() as session:
            registry = DocumentRegistry()
            # The stored file of an existing id must stay untouched.
            if await registry.get_document(session, doc_id) is not None:
                return None
            encrypted_path = storage.write_encrypted(
                settings.storage_dir, f"{doc_id}.{suffix}.enc", encrypt_buffer(data, key),
            )
            return await registry.create_document(
                session,
                doc_id=doc_id,
                title=title or source.stem,
                encrypted_path=encrypted_path,
                content_type=content_type,
                page_count=page_count,
                watermark_policy=policy,
                password=password,
            )

    document = _run_with_db(create)
    if document is None:
        console.print(f"[bold red]Error:[/bold red] document {doc_id} is already registered")
        raise typer.Exit(1)
    console.print(f"[bold green]Registered[/bold green] {document.doc_id}: \"{document.title}\"")
    console.print(f"  Stored at: {document.encrypted_path}")


@app.command("set-password")
def set_password(
    doc_id: str = typer.Argument(..., help="Document id"),
    password: Optional[str] = typer.Option(None, help="New password"),
    clear: bool = typer.Option(False, "--clear", help="Remove the password"),
):
    """Set or remove a document's viewing password."""
    from pageguard.common.exceptions import DocumentNotFoundError
    from pageguard.documents.registry import ClearPassword, DocumentRegistry, SetPassword

    if clear == bool(password):
        console.print("[bold red]Error:[/bold red] pass exactly one of --password or --clear")
        raise typer.Exit(2)
    change = ClearPassword() if clear else SetPassword(password)

    async def apply(db):
        async with db.get_session() as session:
            return await DocumentRegistry().change_password(session, doc_id, change)

    try:
        document = _run_with_db(apply)
    except DocumentNotFoundError as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)
    state = "protected" if document.requires_password else "open"
    console.print(f"[bold]{doc_id}[/bold] is now {state}")


@app.command()
def deactivate(doc_id: str = typer.Argument(..., help="Document id")):
    """Stop serving a document."""
    from pageguard.common.exceptions import DocumentNotFoundError
    from pageguard.documents.registry import STATUS_INACTIVE, DocumentRegistry

    async def apply(db):
        async with db.get_session() as session:
            return await DocumentRegistry().set_status(session, doc_id, STATUS_INACTIVE)

    try:
        _run_with_db(apply)
    except DocumentNotFoundError as e:
        console.print(f"[bold red]{e.code}[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print(f"[bold]{doc_id}[/bold] deactivated")


@app.command("cleanup-nonces")
def cleanup_nonces(
    older_than_days: int = typer.Option(7, help="Delete nonces older than this many days"),
):
    """Purge old nonce records."""
    from pageguard.nonces.service import NonceService

    async def purge(db):
        async with db.get_session() as session:
            return await NonceService().cleanup_old(session, older_than_days)

    removed = _run_with_db(purge)
    console.print(f"Removed {removed} nonce(s)")


@app.command()
def suspicious(
    since_minutes: int = typer.Option(60, help="Look-back window"),
    min_attempts: int = typer.Option(5, help="Minimum invalid nonce attempts"),
):
    """List IPs with many invalid nonce attempts."""
    from pageguard.access_log.service import AccessLogService

    async def query(db):
        async with db.get_session() as session:
            return await AccessLogService().get_suspicious_activity(
                session, since_minutes=since_minutes, min_invalid_attempts=min_attempts,
            )

    rows = _run_with_db(query)
    if not rows:
        console.print("[green]No suspicious activity[/green]")
        return
    table = Table("IP", "Invalid attempts")
    for row in rows:
        table.add_row(row["ip"], str(row["count"]))
    console.print(table)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check PageGuard server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
