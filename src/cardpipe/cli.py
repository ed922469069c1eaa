"""CLI interface for Cardpipe."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from cardpipe import __version__
from cardpipe.config import Settings, get_settings
from cardpipe.database.repository import Repository
from cardpipe.database.storage import AssetStorage
from cardpipe.exceptions import CardNotFoundError
from cardpipe.logging_config import setup_logging
from cardpipe.models.card import Card
from cardpipe.models.card_type import CardType
from cardpipe.models.processing import StageKey

app = typer.Typer(
    name="cardpipe",
    help="Card enrichment pipeline: classification, link previews and processing status.",
    no_args_is_help=True,
)
console = Console()

STATE_STYLES = {
    "pending": "yellow",
    "in_progress": "blue",
    "completed": "green",
    "failed": "red",
}


def get_repository(settings: Settings) -> Repository:
    """Get repository instance, ensuring data directory exists."""
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    return Repository(settings.database_url)


def get_pipeline(settings: Settings, repo: Repository, fetch_links: bool = True):
    """Build the pipeline, with a scraper when link fetching is enabled."""
    from cardpipe.services.pipeline import CardPipeline
    from cardpipe.services.scraper_client import ScraperClient

    scraper = None
    if fetch_links and settings.scraper_endpoint:
        scraper = ScraperClient(
            endpoint=settings.scraper_endpoint,
            api_key=settings.scraper_api_key,
            timeout=settings.scraper_timeout,
        )
    return CardPipeline(
        repo,
        AssetStorage(repo.session_factory),
        scraper=scraper,
        max_attempts=settings.stage_max_attempts,
    )


def get_admin(settings: Settings, repo: Repository, fetch_links: bool = True):
    """Build the pipeline admin with an inline scheduler."""
    from cardpipe.services.pipeline import InlineScheduler
    from cardpipe.services.pipeline_admin import PipelineAdmin

    scheduler = InlineScheduler(get_pipeline(settings, repo, fetch_links))
    return PipelineAdmin(repo, AssetStorage(repo.session_factory), scheduler, settings)


def load_settings() -> Settings:
    try:
        return get_settings()
    except Exception as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)


def require_card(repo: Repository, card_id: str) -> Card:
    card = repo.get_card(card_id)
    if card is None:
        console.print(f"[red]Card {card_id} not found.[/red]")
        raise typer.Exit(1)
    return card


def format_state(value: Optional[str]) -> str:
    if not value:
        return "[dim](unset)[/dim]"
    style = STATE_STYLES.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def print_processing_status(card: Card) -> None:
    table = Table(title="Processing Status")
    table.add_column("Stage", style="cyan")
    table.add_column("Status")
    table.add_column("Confidence", justify="right")
    table.add_column("Error", style="red")

    for stage in StageKey:
        status = card.processing_status.get(stage)
        if status is None:
            table.add_row(stage.value, format_state(None), "", "")
            continue
        confidence = f"{status.confidence:.2f}" if status.confidence is not None else ""
        table.add_row(stage.value, format_state(status.status.value), confidence, status.error or "")

    console.print(table)


@app.command()
def add(
    content: str = typer.Argument("", help="Card content (text, quote, colors...)"),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Linked URL"),
    user_id: str = typer.Option("local", "--user", help="Owning user ID"),
    card_type: CardType = typer.Option(CardType.TEXT, "--type", "-t", help="Initial type guess"),
    tags: list[str] = typer.Option([], "--tag", help="Tag (repeatable)"),
    mime_type: Optional[str] = typer.Option(None, "--mime-type", help="Attached file MIME type"),
    process: bool = typer.Option(False, "--process", "-p", help="Run the pipeline after adding"),
):
    """Add a card."""
    settings = load_settings()
    repo = get_repository(settings)

    card = Card(
        user_id=user_id,
        content=content,
        url=url,
        type=card_type,
        tags=list(tags),
        file_metadata={"mime_type": mime_type} if mime_type else None,
    )
    card = repo.add_card(card)
    console.print(f"[green]✓[/green] Added card [bold]{card.id}[/bold]")

    if process:
        run(card.id, fetch_links=True)


@app.command()
def show(card_id: str = typer.Argument(..., help="Card ID")):
    """Show a card and its processing status."""
    settings = load_settings()
    repo = get_repository(settings)
    card = require_card(repo, card_id)

    console.print(f"[bold]Card {card.id}[/bold]")
    console.print(f"  [bold]Type:[/bold] {card.type.value}")
    console.print(f"  [bold]Content:[/bold] {card.content or '(empty)'}")
    if card.url:
        console.print(f"  [bold]URL:[/bold] {card.url}")
    if card.colors:
        console.print(f"  [bold]Colors:[/bold] {', '.join(card.colors)}")
    if card.tags:
        console.print(f"  [bold]Tags:[/bold] {', '.join(card.tags)}")
    if card.type == CardType.LINK:
        status = card.metadata_status.value if card.metadata_status else None
        console.print(f"  [bold]Metadata status:[/bold] {format_state(status)}")
    if card.metadata_title:
        console.print(f"  [bold]Title:[/bold] {card.metadata_title}")
    if card.metadata_description:
        console.print(f"  [bold]Description:[/bold] {card.metadata_description}")
    if card.is_deleted:
        console.print("  [red]Deleted[/red]")
    console.print()

    print_processing_status(card)


@app.command()
def classify(card_id: str = typer.Argument(..., help="Card ID")):
    """Classify a card and seed its processing stages."""
    from cardpipe.services.classifier import ClassificationEngine

    settings = load_settings()
    repo = get_repository(settings)

    try:
        result = ClassificationEngine(repo).classify(card_id)
    except CardNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] {card_id}: [bold]{result.type.value}[/bold] "
        f"(confidence {result.confidence:.2f})"
    )
    flags = [name for name, value in result.to_dict().items() if value is True]
    if flags:
        console.print(f"  [dim]{', '.join(flags)}[/dim]")


@app.command()
def run(
    card_id: str = typer.Argument(..., help="Card ID"),
    fetch_links: bool = typer.Option(
        True, "--fetch-links/--no-fetch-links", help="Fetch link previews from the scraper"
    ),
):
    """Run the enrichment pipeline for a card."""
    settings = load_settings()
    repo = get_repository(settings)
    pipeline = get_pipeline(settings, repo, fetch_links)

    try:
        with console.status("[yellow]Running pipeline...[/yellow]"):
            result = pipeline.run(card_id)
    except CardNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] Classified as [bold]{result.classification.type.value}[/bold] "
        f"({result.classification.confidence:.2f})"
    )
    if result.link_metadata is not None:
        if result.link_metadata.success:
            console.print(f"  [green]✓[/green] Link preview fetched from {result.link_metadata.normalized_url}")
        else:
            console.print(
                f"  [red]✗[/red] Link preview {result.link_metadata.status}: "
                f"{result.link_metadata.error_message or result.link_metadata.error_type}"
            )
    for stage in result.completed_stages:
        console.print(f"  [green]✓[/green] {stage.value}")
    for stage, error in result.failed_stages.items():
        console.print(f"  [red]✗[/red] {stage.value}: {error}")

    card = repo.get_card(card_id)
    if card is not None:
        console.print()
        print_processing_status(card)


@app.command()
def reset(
    card_id: str = typer.Argument(..., help="Card ID"),
    schedule: bool = typer.Option(
        True, "--schedule/--no-schedule", help="Run the pipeline again after resetting"
    ),
):
    """Reset a card's processing state and AI output."""
    settings = load_settings()
    repo = get_repository(settings)
    admin = get_admin(settings, repo)

    if schedule:
        result = admin.refresh_card_processing(card_id)
        if not result.success:
            console.print(f"[red]Card {card_id} not found.[/red]")
            raise typer.Exit(1)
        console.print(f"[green]✓[/green] Reset and reprocessed card {card_id}")
        return

    try:
        reset_result = admin.reset_card_processing_state(card_id)
    except CardNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Reset card {card_id}")
    if reset_result.cleared_thumbnail:
        console.print("  [dim]Thumbnail cleared[/dim]")


@app.command()
def backfill(
    fetch_links: bool = typer.Option(
        True, "--fetch-links/--no-fetch-links", help="Fetch link previews from the scraper"
    ),
):
    """Reset and reprocess every card missing AI output."""
    settings = load_settings()
    repo = get_repository(settings)
    admin = get_admin(settings, repo, fetch_links)

    with console.status("[yellow]Running AI backfill...[/yellow]"):
        summary = admin.retry_ai_backfill()

    console.print("[bold]Backfill summary:[/bold]")
    console.print(f"  Enqueued: [green]{summary.enqueued_count}[/green]")
    console.print(f"  Still missing AI output: [yellow]{summary.pending_sample_count}[/yellow]")
    if summary.failed_card_ids:
        console.print(f"  Failed: [red]{len(summary.failed_card_ids)}[/red]")
        for failed_id in summary.failed_card_ids:
            console.print(f"    [red]✗[/red] {failed_id}")


@app.command()
def status():
    """Show card counts and pipeline health."""
    settings = load_settings()

    if not settings.database_path.exists():
        console.print("[yellow]Database not yet initialized. Run 'cardpipe add' first.[/yellow]")
        raise typer.Exit(0)

    repo = get_repository(settings)
    overview = get_admin(settings, repo, fetch_links=False).get_overview()

    table = Table(title="Cardpipe Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("Total Cards", str(overview.total_cards))
    table.add_row("  Active", str(overview.active_cards))
    table.add_row("  Deleted", str(overview.deleted_cards))
    table.add_row("Users", str(overview.unique_users))
    table.add_row("Created (7 days)", str(overview.created_last_seven_days))
    table.add_row("Created (30 days)", str(overview.created_last_thirty_days))
    table.add_row("", "")
    for type_name, count in sorted(overview.cards_by_type.items()):
        table.add_row(f"Type: {type_name}", str(count))
    table.add_row("", "")
    for status_name, count in overview.metadata_status.items():
        table.add_row(f"Link metadata: {status_name}", str(count))
    table.add_row("", "")
    table.add_row("Missing AI Metadata", str(overview.missing_ai_metadata))
    table.add_row("Pending Enrichment", str(overview.pending_enrichment))
    table.add_row("Failed Cards", str(overview.failed_cards))
    console.print(table)

    stages = Table(title="Stages")
    stages.add_column("Stage", style="cyan")
    stages.add_column("Pending", justify="right", style="yellow")
    stages.add_column("In Progress", justify="right", style="blue")
    stages.add_column("Failed", justify="right", style="red")
    for stage, summary in overview.stage_summaries.items():
        stages.add_row(stage.value, str(summary.pending), str(summary.in_progress), str(summary.failed))
    console.print(stages)

    if overview.missing_cards:
        missing = Table(title="Cards Needing Attention")
        missing.add_column("Card", style="cyan")
        missing.add_column("Type")
        missing.add_column("Reasons", style="yellow")
        for item in overview.missing_cards:
            missing.add_row(item.card_id, item.type.value, "; ".join(item.reasons))
        console.print(missing)

    if overview.is_approximate:
        console.print(
            f"[dim]Scan limit of {settings.overview_scan_limit} cards reached; counts are approximate.[/dim]"
        )


@app.command()
def config():
    """Show current configuration."""
    settings = load_settings()

    table = Table(title="Cardpipe Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    api_key_masked = (
        settings.scraper_api_key[:6] + "..." if len(settings.scraper_api_key) > 6 else "***"
    ) if settings.scraper_api_key else "(not set)"

    table.add_row("Database Path", str(settings.database_path))
    table.add_row("Scraper Endpoint", settings.scraper_endpoint or "(disabled)")
    table.add_row("Scraper API Key", api_key_masked)
    table.add_row("Scraper Timeout", f"{settings.scraper_timeout:g}s")
    table.add_row("Stage Max Attempts", str(settings.stage_max_attempts))
    table.add_row("Backfill Limit", str(settings.backfill_limit))
    table.add_row("Missing Cards Sample", str(settings.missing_cards_sample_limit))
    table.add_row("Overview Scan Limit", str(settings.overview_scan_limit))
    table.add_row("Log Level", settings.log_level)

    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"Cardpipe v{__version__}")


@app.callback()
def main():
    """
    Cardpipe - card enrichment pipeline.

    Classifies saved cards, fetches link previews, tracks per-stage
    processing status and lets you reset or backfill cards.
    """
    setup_logging(load_settings().log_level)


if __name__ == "__main__":
    app()
