"""MangaView CLI - search, browse and read manga from the terminal."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mangaview_api.deps import Settings, load_settings
from mangaview_catalog_client import MangaDexClient
from mangaview_core_schemas import LoadForm, RecoveryAction, SectionSort
from mangaview_services import (
    CatalogService,
    HttpGateway,
    HttpImageLoader,
    ImageRelayService,
    LoadedImage,
    ServiceGateway,
    handle_key,
    open_chapter,
    page_window,
)
from mangaview_services.exceptions import ServiceError
from mangaview_storage import ProgressStore

app = typer.Typer(
    name="mangaview",
    help="Search, browse and read manga from the terminal",
    no_args_is_help=True,
)
console = Console()

ACTION_HINTS = {
    RecoveryAction.RETRY: "[bold]r[/bold] retry",
    RecoveryAction.SWITCH_METHOD: "[bold]t[/bold] switch loading method",
    RecoveryAction.EXTERNAL_LINK: "[bold]o[/bold] open on the catalog site",
    RecoveryAction.RELOAD: "[bold]l[/bold] reload chapter",
}


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def run_async(coro):
    """Run an async coroutine.

    Handles both standalone CLI usage and environments with existing event loops
    (Jupyter notebooks, IDEs, etc.) by using nest_asyncio when needed.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is None:
        return asyncio.run(coro)

    # Event loop already running (Jupyter, IDE, etc.)
    import nest_asyncio
    nest_asyncio.apply()
    return loop.run_until_complete(coro)


def make_client(settings: Settings) -> MangaDexClient:
    return MangaDexClient(
        api_url=settings.api_url,
        mangaplus_url=settings.mangaplus_url,
        timeout=settings.timeout,
        image_timeout=settings.image_timeout,
    )


def make_service(client: MangaDexClient, settings: Settings) -> CatalogService:
    return CatalogService(
        client=client,
        relay_url=settings.relay_url,
        site_url=settings.site_url,
        uploads_url=settings.uploads_url,
        prefer_proxy=settings.prefer_proxy,
        page_size=settings.page_size,
    )


def call_service(method: str, *args, **kwargs) -> Any:
    """Run one CatalogService call, printing service errors and exiting."""
    settings = load_settings()

    async def do_call():
        async with make_client(settings) as client:
            service = make_service(client, settings)
            return await getattr(service, method)(*args, **kwargs)

    try:
        return run_async(do_call())
    except ServiceError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        if e.external_url:
            console.print(f"[dim]Read it on the catalog site: {e.external_url}[/dim]")
        raise typer.Exit(1)


def format_page_window(current: int, total_pages: int) -> str:
    """Render search page buttons, e.g. ``1 … 4 [5] 6 … 20``."""
    parts = []
    for number in page_window(current, total_pages):
        if number is None:
            parts.append("…")
        elif number == current:
            parts.append(f"[bold reverse] {number} [/bold reverse]")
        else:
            parts.append(str(number))
    return " ".join(parts)


def summary_table(items, title: Optional[str] = None) -> Table:
    table = Table(show_header=True, title=title)
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Year", justify="right")
    for item in items:
        table.add_row(item.id, item.title, item.status or "-", str(item.year or "-"))
    return table


@app.command()
def search(
    query: str = typer.Argument(..., help="Title to search for"),
    page: int = typer.Option(1, "--page", "-p", min=1, help="Results page"),
):
    """Search the catalog by title."""
    with console.status(f"Searching for '{query}'..."):
        results = call_service("search", query, page)

    if not results.items:
        console.print(f"[yellow]No results found for '{query}'.[/yellow]")
        return

    console.print(summary_table(results.items, title=f"Results for '{query}' ({results.total} total)"))
    if results.total_pages > 1:
        console.print(f"\nPage {format_page_window(results.page, results.total_pages)}")


@app.command()
def sections(
    sort: SectionSort = typer.Argument(SectionSort.POPULAR, help="Section ordering"),
):
    """List a home page section."""
    with console.status("Loading section..."):
        items = call_service("list_section", sort.value)

    titles = {
        SectionSort.POPULAR: "Popular",
        SectionSort.RECENT: "Recently Updated",
        SectionSort.TOP_RATED: "Top Rated",
        SectionSort.NEW: "New Titles",
    }
    console.print(summary_table(items, title=titles[sort]))


@app.command()
def show(
    series_id: str = typer.Argument(..., help="Series ID"),
):
    """Show series details and chapters grouped by volume."""
    with console.status("Loading series..."):
        details = call_service("get_series_details", series_id)

    credits = ", ".join(details.authors) or "Unknown"
    if details.artists and details.artists != details.authors:
        credits += f" / art: {', '.join(details.artists)}"

    console.print(Panel(
        f"[bold]{details.title}[/bold]\n\n"
        f"Status: {details.status_label}    Demographic: {details.demographic_label}\n"
        f"By: {credits}\n\n"
        f"{details.description}\n\n"
        f"[dim]{details.external_url}[/dim]",
        title=f"{details.chapter_count} chapters",
        border_style="blue",
    ))

    if not details.chapters_by_volume:
        console.print("[yellow]No chapters available.[/yellow]")
        return

    for volume, chapters in details.chapters_by_volume.items():
        table = Table(show_header=True, title=volume if volume.startswith("No ") else f"Volume {volume}")
        table.add_column("Chapter")
        table.add_column("Title")
        table.add_column("Group")
        table.add_column("Pages", justify="right")
        table.add_column("ID", style="dim")
        for chapter in chapters:
            table.add_row(chapter.label, chapter.title or "", chapter.group_name, str(chapter.pages), chapter.id)
        console.print(table)


@app.command()
def chapter(
    chapter_id: str = typer.Argument(..., help="Chapter ID"),
):
    """Show chapter metadata."""
    with console.status("Loading chapter..."):
        info = call_service("get_chapter_info", chapter_id)

    lines = [f"[bold]{info.display_title}[/bold]"]
    if info.manga_title:
        lines.append(f"Series: {info.manga_title}")
    if info.volume:
        lines.append(f"Volume: {info.volume}")
    lines.append(f"Group: {info.group_name}")
    lines.append(f"Language: {info.translated_language}")
    lines.append(f"Pages: {info.pages}")
    if info.publish_at:
        lines.append(f"Published: {info.publish_at:%Y-%m-%d}")
    lines.append(f"\n[dim]{info.external_url}[/dim]")
    console.print(Panel("\n".join(lines), border_style="blue"))


@app.command()
def mangaplus(
    title_id: str = typer.Argument(..., help="MangaPlus title ID"),
):
    """List the chapters of a MangaPlus title."""
    with console.status("Loading MangaPlus chapters..."):
        chapters = call_service("get_mangaplus_chapters", title_id)

    table = Table(show_header=True)
    table.add_column("Chapter")
    table.add_column("Name")
    table.add_column("ID", style="dim")
    for entry in chapters:
        table.add_row(entry.number, entry.name, entry.id)
    console.print(table)


class ConsoleView:
    """Reader view that prints to the terminal and records progress."""

    def __init__(
        self,
        chapter_id: str,
        store: ProgressStore,
        save_pages: bool = False,
        manga_id: Optional[str] = None,
    ):
        self.chapter_id = chapter_id
        self.store = store
        self.save_pages = save_pages
        self.manga_id = manga_id
        self.total_pages = 0
        self.prev_enabled = False
        self.next_enabled = False
        self.external_url: Optional[str] = None

    def show_loading(self, page: int) -> None:
        console.print(f"[dim]Loading page {page}...[/dim]")

    def show_page(self, page: int, image: LoadedImage, form: LoadForm) -> None:
        size_kb = len(image.data) / 1024
        message = f"[green]Page {page}[/green] ({image.content_type}, {size_kb:.0f} KB via {form.value})"
        if self.save_pages:
            path = self.store.save_page(self.chapter_id, page, image.data, image.extension)
            message += f" -> {path}"
        console.print(message)

    def show_page_error(
        self, page: int, actions: Sequence[RecoveryAction], external_url: str
    ) -> None:
        self.external_url = external_url
        hints = "\n".join(f"  {ACTION_HINTS[action]}" for action in actions)
        console.print(Panel(
            f"Page {page} could not be loaded.\n\n{hints}\n\n[dim]{external_url}[/dim]",
            title="Failed to load page",
            border_style="red",
        ))

    def show_chapter_error(
        self, message: str, actions: Sequence[RecoveryAction], external_url: Optional[str]
    ) -> None:
        self.external_url = external_url
        hints = "\n".join(f"  {ACTION_HINTS[action]}" for action in actions)
        link = f"\n\n[dim]{external_url}[/dim]" if external_url else ""
        console.print(Panel(
            f"{message}\n\n{hints}{link}",
            title="Failed to load chapter",
            border_style="red",
        ))

    def set_navigation(self, prev_enabled: bool, next_enabled: bool) -> None:
        self.prev_enabled = prev_enabled
        self.next_enabled = next_enabled

    def set_indicator(self, text: str) -> None:
        console.print(f"[bold]{text}[/bold]")

    def replace_location(self, page: int) -> None:
        if self.total_pages:
            self.store.save_progress(self.chapter_id, page, self.total_pages, self.manga_id)

    def prompt(self) -> str:
        keys = []
        if self.prev_enabled:
            keys.append("p")
        if self.next_enabled:
            keys.append("n")
        keys.extend(["<number>", "r", "t", "o", "q"])
        return escape(f"[{'/'.join(keys)}]> ")


def open_external(url: Optional[str]) -> None:
    if not url:
        console.print("[yellow]No external link available.[/yellow]")
        return
    console.print(f"Opening {url}")
    typer.launch(url)


@app.command()
def read(
    chapter_id: str = typer.Argument(..., help="Chapter ID"),
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Start page (defaults to saved progress)"),
    direct: bool = typer.Option(False, "--direct", help="Try direct image URLs before the relay"),
    data_saver: bool = typer.Option(True, "--data-saver/--full-quality", help="Image quality"),
    api: Optional[str] = typer.Option(None, "--api", help="Read through a running MangaView API at this URL"),
    save: bool = typer.Option(False, "--save", help="Save loaded pages to the data directory"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Progress and page storage directory"),
):
    """Read a chapter interactively.

    Keys: n next, p previous, a number to jump, r retry, t switch loading
    method, o open on the catalog site, q quit.
    """
    settings = load_settings()
    store = ProgressStore(data_dir or settings.data_dir)

    if page is None:
        saved = store.load_progress(chapter_id)
        if saved is not None and not saved.finished:
            page = saved.page
            console.print(f"[dim]Resuming at page {page} of {saved.total_pages}[/dim]")

    view = ConsoleView(chapter_id, store, save_pages=save)

    async def session() -> None:
        async with httpx.AsyncClient(timeout=settings.image_timeout, follow_redirects=True) as http:
            if api:
                gateway = HttpGateway(http, api)
                loader = HttpImageLoader(http, base_url=api)
                catalog_client = None
            else:
                catalog_client = make_client(settings)
                gateway = ServiceGateway(make_service(catalog_client, settings))
                relay = ImageRelayService(catalog_client, allowed_hosts=settings.allowed_image_hosts)
                loader = HttpImageLoader(http, relay=relay, relay_path=settings.relay_url)

            try:
                await reader_loop(gateway, loader)
            finally:
                if catalog_client is not None:
                    await catalog_client.aclose()

    async def reader_loop(gateway, loader) -> None:
        while True:
            with console.status("Loading chapter..."):
                controller = await open_chapter(
                    gateway,
                    chapter_id,
                    view,
                    loader,
                    data_saver=data_saver,
                    start_page=page,
                    prefer_proxy=False if direct else None,
                )
            if controller is not None:
                break
            choice = console.input(escape("[l/o/q]> ")).strip().lower()
            if choice == "o":
                open_external(view.external_url)
                return
            if choice != "l":
                return

        view.total_pages = controller.total_pages
        view.replace_location(controller.current_page)
        await controller.settle()

        while True:
            command = console.input(view.prompt()).strip()
            if command in ("q", "quit"):
                return
            if command == "o":
                open_external(controller.external_url)
                continue
            if command.isdigit():
                target = int(command)
                if not controller.state.contains(target):
                    console.print(f"[yellow]Pages run from 1 to {controller.total_pages}.[/yellow]")
                    continue
                controller.go_to_page(target)
            elif not handle_key(controller, command):
                console.print("[yellow]Unknown command.[/yellow]")
                continue
            await controller.settle()

    run_async(session())


@app.command()
def progress(
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Progress storage directory"),
    clear: Optional[str] = typer.Option(None, "--clear", help="Forget progress for this chapter ID"),
):
    """Show saved reading progress."""
    settings = load_settings()
    store = ProgressStore(data_dir or settings.data_dir)

    if clear:
        if store.clear_progress(clear):
            console.print(f"[green]Cleared progress for {clear}[/green]")
        else:
            console.print(f"[yellow]No progress saved for {clear}[/yellow]")
        return

    entries = store.list_progress()
    if not entries:
        console.print("[yellow]No reading progress saved yet.[/yellow]")
        return

    table = Table(show_header=True)
    table.add_column("Chapter", style="dim")
    table.add_column("Page", justify="right")
    table.add_column("Updated")
    for entry in entries:
        status = " [green]done[/green]" if entry.finished else ""
        table.add_row(entry.chapter_id, f"{entry.page} / {entry.total_pages}{status}", f"{entry.updated_at:%Y-%m-%d %H:%M}")
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
):
    """Start the MangaView API server."""
    import uvicorn

    settings = load_settings()

    console.print("\n[bold]MangaView API Server[/bold]")
    console.print(f"  Catalog: {settings.api_url}")
    console.print(f"  URL: http://{host}:{port}")
    console.print(f"  Docs: http://{host}:{port}/docs")
    console.print()

    if reload:
        uvicorn.run(
            "mangaview_api.app:app",
            host=host,
            port=port,
            reload=True,
        )
    else:
        from mangaview_api.app import create_app

        uvicorn.run(create_app(make_client(settings)), host=host, port=port)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
