"""CLI interface for wayfarer."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from wayfarer.config import WayfarerConfig, load_config, merge_cli_overrides
from wayfarer.exports import ExportKind, fetch_export, write_export
from wayfarer.integrations.auth import AuthClient
from wayfarer.integrations.backend import BackendClient
from wayfarer.models import Journal, Session
from wayfarer.postcards.inbox import delete_postcard, received_postcards, sent_postcards
from wayfarer.postcards.wizard import (
    STEP_LABELS,
    Next,
    PostcardWizard,
    SelectEntry,
    SelectJournal,
    SetMessage,
    SetRecipient,
    TogglePhoto,
    WizardStep,
    photo_choices,
    recipient_choices,
)
from wayfarer.session import SessionStore
from wayfarer.shared.errors import BackendError, WayfarerError
from wayfarer.stats import build_explore_feed, compute_profile_stats

app = typer.Typer(
    name="wayfarer",
    help="Travel journal client: journals, entries, stats and postcards.",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from wayfarer import __version__

        console.print(f"wayfarer {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a wayfarer TOML config file."),
    ] = None,
    api_url: Annotated[
        Optional[str],
        typer.Option("--api-url", help="Base URL of the travel backend."),
    ] = None,
    auth_url: Annotated[
        Optional[str],
        typer.Option("--auth-url", help="Base URL of the authentication service."),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", help="Request timeout in seconds."),
    ] = None,
    session_file: Annotated[
        Optional[Path],
        typer.Option("--session-file", help="Where the login session is stored."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """Wayfarer - keep travel journals and send postcards."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    config = load_config(config_path)
    ctx.obj = merge_cli_overrides(
        config,
        api_url=api_url,
        auth_url=auth_url,
        timeout=timeout,
        session_file=str(session_file) if session_file else None,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context) -> WayfarerConfig:
    return ctx.obj if isinstance(ctx.obj, WayfarerConfig) else load_config()


def _store(config: WayfarerConfig) -> SessionStore:
    return SessionStore(config.session.resolved_path)


def _client(config: WayfarerConfig, session: Session | None) -> BackendClient:
    return BackendClient(config.to_backend_config(), session=session)


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[red]Error:[/red] {exc}")
    return typer.Exit(1)


def _logged_in(config: WayfarerConfig) -> Session:
    try:
        return _store(config).require()
    except WayfarerError as exc:
        console.print("Run [bold]wayfarer login[/bold] first.")
        raise _fail(exc) from exc


def _date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _journal_table(title: str, journals: list[Journal]) -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("Created")
    table.add_column("Description")
    for journal in journals:
        table.add_row(
            str(journal.id),
            journal.title,
            _date(journal.created_at),
            journal.description[:60],
        )
    return table


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@app.command()
def login(
    ctx: typer.Context,
    username: Annotated[str, typer.Option(prompt=True, help="Account username.")],
    password: Annotated[str, typer.Option(prompt=True, hide_input=True, help="Account password.")],
) -> None:
    """Log in and remember the session."""
    config = _config(ctx)
    try:
        session = AuthClient(config.to_backend_config()).login(username, password)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    _store(config).save(session)
    console.print(f"[green]Logged in as {session.user.display_name}[/green]")


@app.command()
def register(
    ctx: typer.Context,
    name: Annotated[str, typer.Option(prompt=True, help="Display name.")],
    username: Annotated[str, typer.Option(prompt=True, help="Account username.")],
    email: Annotated[str, typer.Option(prompt=True, help="Email address.")],
    password: Annotated[
        str,
        typer.Option(prompt=True, hide_input=True, confirmation_prompt=True, help="Password."),
    ],
) -> None:
    """Create an account."""
    config = _config(ctx)
    try:
        user = AuthClient(config.to_backend_config()).register(name, username, email, password)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Registered {user.username} (id {user.id}).[/green] Now run wayfarer login.")


@app.command()
def logout(ctx: typer.Context) -> None:
    """Forget the stored session."""
    _store(_config(ctx)).clear()
    console.print("Logged out.")


@app.command()
def whoami(ctx: typer.Context) -> None:
    """Show the logged-in user."""
    session = _logged_in(_config(ctx))
    user = session.user
    console.print(f"{user.display_name} (@{user.username}, id {user.id}) {user.email}")


# ---------------------------------------------------------------------------
# Journals and entries
# ---------------------------------------------------------------------------


@app.command()
def journals(ctx: typer.Context) -> None:
    """List your journals."""
    config = _config(ctx)
    session = _logged_in(config)
    try:
        items = _client(config, session).list_journals(session.user.id)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    if not items:
        console.print("[yellow]No journals yet.[/yellow]")
        return
    console.print(_journal_table("Journals", items))


@app.command("journal-create")
def journal_create(
    ctx: typer.Context,
    title: Annotated[str, typer.Option("--title", "-t", help="Journal title.")],
    description: Annotated[str, typer.Option("--description", "-d", help="Description.")] = "",
    cover: Annotated[
        Optional[Path],
        typer.Option("--cover", help="Cover image to upload.", exists=True, dir_okay=False),
    ] = None,
) -> None:
    """Create a journal, optionally with a cover image."""
    config = _config(ctx)
    session = _logged_in(config)
    if not 2 <= len(title.strip()) <= 100:
        raise _fail(ValueError("Title must be between 2 and 100 characters"))
    client = _client(config, session)
    try:
        journal = client.create_journal(
            Journal(user_id=session.user.id, title=title.strip(), description=description)
        )
        if cover is not None and journal.id is not None:
            client.upload_cover_image(journal.id, cover)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Created journal {journal.id}: {journal.title}[/green]")


@app.command("journal-delete")
def journal_delete(
    ctx: typer.Context,
    journal_id: Annotated[int, typer.Argument(help="Journal to delete.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete a journal."""
    config = _config(ctx)
    session = _logged_in(config)
    if not yes:
        typer.confirm(f"Delete journal {journal_id}?", abort=True)
    try:
        _client(config, session).delete_journal(journal_id)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    console.print(f"Deleted journal {journal_id}.")


@app.command()
def entries(
    ctx: typer.Context,
    journal_id: Annotated[int, typer.Argument(help="Journal whose entries to list.")],
) -> None:
    """List the entries of a journal."""
    config = _config(ctx)
    session = _logged_in(config)
    try:
        items = _client(config, session).list_entries(journal_id)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    table = Table(title=f"Entries in journal {journal_id}")
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("Location")
    table.add_column("Photos", justify="right")
    table.add_column("Created")
    for entry in items:
        table.add_row(
            str(entry.id),
            entry.title,
            entry.location_name or "-",
            str(len(entry.media_attachments)),
            _date(entry.created_at),
        )
    console.print(table)


@app.command("entry-show")
def entry_show(
    ctx: typer.Context,
    entry_id: Annotated[int, typer.Argument(help="Entry to show.")],
) -> None:
    """Show one entry with its media."""
    config = _config(ctx)
    session = _logged_in(config)
    client = _client(config, session)
    try:
        entry = client.get_entry(entry_id)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    console.print(f"[bold]{entry.title}[/bold]  ({_date(entry.created_at)})")
    if entry.location_name:
        coords = f" [{entry.latitude}, {entry.longitude}]" if entry.latitude is not None else ""
        console.print(f"Location: {entry.location_name}{coords}")
    console.print()
    console.print(entry.content)
    for media in entry.media_attachments:
        caption = f" - {media.caption}" if media.caption else ""
        console.print(f"  #{media.id} {client.resolve_media_url(media.url)}{caption}")


@app.command("upload-photo")
def upload_photo(
    ctx: typer.Context,
    entry_id: Annotated[int, typer.Argument(help="Entry to attach the photo to.")],
    path: Annotated[Path, typer.Argument(help="Image file.", exists=True, dir_okay=False)],
    caption: Annotated[Optional[str], typer.Option("--caption", help="Photo caption.")] = None,
) -> None:
    """Upload a photo and attach it to an entry."""
    config = _config(ctx)
    session = _logged_in(config)
    try:
        media = _client(config, session).upload_entry_image(entry_id, path, caption)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Uploaded media {media.id} to entry {entry_id}.[/green]")


@app.command()
def geocode(
    ctx: typer.Context,
    location: Annotated[str, typer.Argument(help="Place name to look up.")],
) -> None:
    """Resolve a place name to coordinates."""
    config = _config(ctx)
    session = _logged_in(config)
    result = _client(config, session).geocode(location)
    console.print(f"{result.display_name}: {result.lat}, {result.lng}")


# ---------------------------------------------------------------------------
# Stats and explore
# ---------------------------------------------------------------------------


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show your journal, entry, location and photo counts."""
    config = _config(ctx)
    session = _logged_in(config)
    try:
        result = compute_profile_stats(_client(config, session), session.user.id)
    except BackendError as exc:
        console.print("[yellow]Stats unavailable.[/yellow]")
        raise _fail(exc) from exc

    table = Table(title=f"Stats for {session.user.display_name}")
    table.add_column("Journals", justify="right")
    table.add_column("Entries", justify="right")
    table.add_column("Locations", justify="right")
    table.add_column("Photos", justify="right")
    table.add_row(
        str(result.journal_count),
        str(result.entry_count),
        str(result.location_count),
        str(result.photo_count),
    )
    console.print(table)
    if result.locations:
        console.print(f"Visited: {', '.join(result.locations)}")


@app.command()
def explore(ctx: typer.Context) -> None:
    """Browse other travellers and the newest journals."""
    config = _config(ctx)
    session = _logged_in(config)
    try:
        feed = build_explore_feed(_client(config, session), config.explore.recent_journals)
    except WayfarerError as exc:
        raise _fail(exc) from exc

    people = Table(title="Travellers")
    people.add_column("User")
    people.add_column("Journals", justify="right")
    people.add_column("Recent")
    for card in feed.users:
        people.add_row(
            f"{card.user.display_name} (@{card.user.username})",
            str(card.journal_count),
            ", ".join(j.title for j in card.recent_journals) or "-",
        )
    console.print(people)

    latest = Table(title="Latest journals")
    latest.add_column("ID", justify="right")
    latest.add_column("Title")
    latest.add_column("Author")
    latest.add_column("Created")
    for item in feed.journals:
        latest.add_row(
            str(item.journal.id), item.journal.title, item.author_name, _date(item.journal.created_at)
        )
    console.print(latest)


# ---------------------------------------------------------------------------
# Postcards
# ---------------------------------------------------------------------------


@app.command()
def inbox(
    ctx: typer.Context,
    sent: Annotated[bool, typer.Option("--sent", help="Show postcards you sent instead.")] = False,
) -> None:
    """List received (or sent) postcards, newest first."""
    config = _config(ctx)
    session = _logged_in(config)
    client = _client(config, session)
    try:
        if sent:
            items = sent_postcards(client, session.user.id)
        else:
            items = received_postcards(client, session.user.id)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    if not items:
        console.print("[yellow]No postcards.[/yellow]")
        return
    for postcard in items:
        other = postcard.receiver if sent else postcard.sender
        label = "To" if sent else "From"
        console.print(
            f"[bold]#{postcard.id}[/bold] {label} {other.display_name}"
            f"  ({_date(postcard.created_at)}, {len(postcard.photo_urls)} photo(s))"
        )
        console.print(f"  {postcard.description}")


@app.command()
def postcard(
    ctx: typer.Context,
    journal_id: Annotated[int, typer.Option("--journal", "-j", help="Journal to pick from.")],
    entry_id: Annotated[int, typer.Option("--entry", "-e", help="Entry (memory) to share.")],
    photo_ids: Annotated[
        list[int], typer.Option("--photo", "-p", help="Media id to include (repeatable).")
    ],
    recipient: Annotated[str, typer.Option("--to", help="Recipient user id or username.")],
    message: Annotated[str, typer.Option("--message", "-m", help="Message text.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Send without confirmation.")] = False,
) -> None:
    """Send a postcard built from one of your journal entries."""
    config = _config(ctx)
    session = _logged_in(config)
    client = _client(config, session)
    wizard = PostcardWizard(
        client, session, reset_delay=config.postcards.reset_delay_seconds
    )

    try:
        own_journals = client.list_journals(session.user.id)
        entry = client.get_entry(entry_id)
        users = recipient_choices(client.list_users(), session.user.id)
    except WayfarerError as exc:
        raise _fail(exc) from exc

    if not any(j.id == journal_id for j in own_journals):
        raise _fail(ValueError(f"Journal {journal_id} is not one of your journals"))
    if entry.journal_id != journal_id:
        raise _fail(ValueError(f"Entry {entry_id} is not in journal {journal_id}"))

    target = next(
        (u for u in users if str(u.id) == recipient or u.username == recipient), None
    )
    if target is None:
        raise _fail(ValueError(f"Selected recipient not found: {recipient}"))

    photo_ids = list(dict.fromkeys(photo_ids))
    available = {m.id: m for m in photo_choices(entry)}
    unknown = [pid for pid in photo_ids if pid not in available]
    if unknown:
        raise _fail(ValueError(f"Entry {entry_id} has no photo(s) {unknown}"))

    wizard.dispatch(SelectJournal(journal_id))
    wizard.dispatch(SelectEntry(entry_id))
    wizard.dispatch(Next())
    for pid in photo_ids:
        wizard.dispatch(TogglePhoto(available[pid]))
    wizard.dispatch(Next())
    wizard.dispatch(SetRecipient(target.id))
    wizard.dispatch(SetMessage(message))
    wizard.dispatch(Next())

    if wizard.step != WizardStep.REVIEW:
        raise _fail(ValueError(f"Postcard incomplete at step '{STEP_LABELS[wizard.step]}'"))

    console.print(f"[bold]From:[/bold] {session.user.display_name}")
    console.print(f"[bold]To:[/bold] {target.display_name}")
    console.print(f"[bold]Memory:[/bold] {entry.title}")
    for photo in wizard.draft.photos:
        console.print(f"  {client.resolve_media_url(photo.url)}")
    console.print(f"[bold]Message:[/bold] {wizard.draft.message}")

    if not yes:
        typer.confirm("Send this postcard?", abort=True)

    try:
        sent = wizard.send()
    except WayfarerError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Postcard {sent.id} sent to {target.display_name}![/green]")


@app.command("postcard-delete")
def postcard_delete(
    ctx: typer.Context,
    postcard_id: Annotated[int, typer.Argument(help="Postcard to delete.")],
) -> None:
    """Delete a postcard from your inbox."""
    config = _config(ctx)
    session = _logged_in(config)
    try:
        delete_postcard(_client(config, session), postcard_id)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    console.print(f"Deleted postcard {postcard_id}.")


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


@app.command()
def export(
    ctx: typer.Context,
    kind: Annotated[ExportKind, typer.Argument(help="profile, complete or journal.")],
    target_id: Annotated[
        Optional[int],
        typer.Option("--id", help="User id (profile/complete) or journal id. Defaults to you."),
    ] = None,
    output: Annotated[
        Path, typer.Option("--output", "-o", help="Directory to write the XML file to.")
    ] = Path("."),
    include_media: Annotated[
        bool, typer.Option("--include-media", help="Include media in complete exports.")
    ] = False,
) -> None:
    """Download an XML export."""
    config = _config(ctx)
    session = _logged_in(config)
    if target_id is None:
        if kind == ExportKind.JOURNAL:
            raise _fail(ValueError("--id is required for journal exports"))
        target_id = session.user.id
    try:
        document = fetch_export(_client(config, session), kind, target_id, include_media)
    except WayfarerError as exc:
        raise _fail(exc) from exc
    path = write_export(document, output)
    console.print(f"[green]Saved {path}[/green]")
