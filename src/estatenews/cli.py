"""CLI interface for estatenews."""

from __future__ import annotations

import logging
import signal
import threading
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from sqlalchemy.engine import Engine

from estatenews.config import EstateNewsConfig, load_config, merge_cli_overrides
from estatenews.notifications import EmailRateLimiter, FanoutSummary, NotificationFanout
from estatenews.pipeline import (
    ArticleSynthesizer,
    DiscoveryReport,
    HeroImageStep,
    NewsItem,
    StageModels,
    run_news_discovery,
)
from estatenews.prompts import PromptStore
from estatenews.shared.blob import create_blob_store
from estatenews.shared.email import create_email_transport
from estatenews.shared.errors import ConfigurationError, EstateNewsError
from estatenews.shared.images import ImageGenerator
from estatenews.shared.llm import create_text_client
from estatenews.store import ArticleStore, SubscriberStore, create_db_engine, init_db

app = typer.Typer(
    name="estatenews",
    help="Generate commercial real estate news articles and notify subscribers.",
    no_args_is_help=True,
)
prompts_app = typer.Typer(help="Inspect and edit AI prompts.", no_args_is_help=True)
app.add_typer(prompts_app, name="prompts")

console = Console()

logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from estatenews import __version__

        console.print(f"estatenews {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a TOML config file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Estate News - AI news generation and email fan-out."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.obj = {"config_path": config_path}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _load(ctx: typer.Context, **overrides: Any) -> EstateNewsConfig:
    path = (ctx.obj or {}).get("config_path")
    return merge_cli_overrides(load_config(path), **overrides)


def _open_engine(config: EstateNewsConfig) -> Engine:
    engine = create_db_engine(config.database.url, echo=config.database.echo)
    init_db(engine)
    return engine


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[red]Error:[/red] {exc}")
    return typer.Exit(1)


def _build_fanout(config: EstateNewsConfig, engine: Engine) -> NotificationFanout:
    transport = create_email_transport(config)
    subscribers = SubscriberStore(engine)
    limiter = EmailRateLimiter(
        subscribers,
        cap=config.notifications.daily_cap,
        window=timedelta(hours=config.notifications.window_hours),
    )
    return NotificationFanout(
        ArticleStore(engine),
        subscribers,
        transport,
        limiter,
        site_url=config.email.site_url,
        default_category_name=config.notifications.default_category_name,
        digest_days=config.notifications.digest_days,
        max_workers=config.notifications.max_workers,
    )


def _build_image_step(config: EstateNewsConfig, engine: Engine, prompts: PromptStore) -> HeroImageStep | None:
    generator = ImageGenerator(
        config.ai.gemini_api_key,
        model=config.ai.image_model,
        max_retries=config.retry.max_retries,
    )
    if not generator.is_configured():
        logger.info("Skipping image generation - GEMINI_API_KEY not configured")
        return None
    return HeroImageStep(generator, create_blob_store(config), ArticleStore(engine), prompts)


def _build_synthesizer(config: EstateNewsConfig, engine: Engine, prompts: PromptStore) -> ArticleSynthesizer:
    text_client = create_text_client(config)
    image_step = _build_image_step(config, engine, prompts) if config.pipeline.generate_images else None
    on_publish = None
    if config.pipeline.notify_on_publish:
        on_publish = _build_fanout(config, engine).notify_published
    return ArticleSynthesizer(
        ArticleStore(engine),
        text_client,
        StageModels.from_config(config.ai),
        prompts=prompts,
        image_step=image_step,
        on_publish=on_publish,
    )


def _print_fanout(summary: FanoutSummary) -> None:
    table = Table(title=summary.email_type.value.replace("_", " ").title())
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in summary.as_dict().items():
        if key in ("email_type", "message"):
            continue
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)
    if summary.message:
        console.print(summary.message)
    for result in summary.results:
        if result.error:
            console.print(f"[yellow]{result.email}[/yellow]: {result.error}")


def _print_discovery(report: DiscoveryReport) -> None:
    table = Table(title="News discovery")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Outcome")
    table.add_column("Detail")
    for idx, item in enumerate(report.items, start=1):
        detail = item.slug or item.error or ""
        table.add_row(str(idx), item.title, item.outcome.value, detail)
    console.print(table)
    console.print(
        f"total={report.total} succeeded={report.succeeded} "
        f"duplicates={report.duplicates} failed={report.failed}"
        + (" [yellow](cancelled)[/yellow]" if report.cancelled else "")
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db_cmd(
    ctx: typer.Context,
    seed: Annotated[
        bool,
        typer.Option("--seed", help="Install default categories and prompts."),
    ] = False,
) -> None:
    """Create database tables."""
    config = _load(ctx)
    engine = _open_engine(config)
    console.print(f"[green]Schema ready[/green] at {config.database.url}")
    if seed:
        categories = ArticleStore(engine).seed_categories()
        inserted = PromptStore(engine).seed_defaults()
        console.print(f"Seeded {len(categories)} categories and {inserted} prompts")


@app.command()
def discover(
    ctx: typer.Context,
    cooldown: Annotated[
        Optional[float],
        typer.Option("--cooldown", help="Seconds to wait between items."),
    ] = None,
    max_items: Annotated[
        Optional[int],
        typer.Option("--max-items", help="Maximum news items to process."),
    ] = None,
    images: Annotated[
        Optional[bool],
        typer.Option("--images/--no-images", help="Generate hero images."),
    ] = None,
    notify: Annotated[
        Optional[bool],
        typer.Option("--notify/--no-notify", help="Notify subscribers on publish."),
    ] = None,
) -> None:
    """Fetch today's news and turn each item into an article."""
    config = _load(ctx, cooldown=cooldown, max_items=max_items, images=images, notify=notify)
    stop = threading.Event()
    try:
        engine = _open_engine(config)
        prompts = PromptStore(engine)
        synthesizer = _build_synthesizer(config, engine, prompts)
    except EstateNewsError as exc:
        raise _fail(exc) from exc

    previous = signal.signal(signal.SIGTERM, lambda *_: stop.set())
    try:
        report = run_news_discovery(
            synthesizer.text_client,
            synthesizer,
            model=config.ai.model_for("news"),
            prompts=prompts,
            max_items=config.pipeline.max_items,
            cooldown_seconds=config.pipeline.item_cooldown_seconds,
            stop_event=stop,
        )
    except EstateNewsError as exc:
        raise _fail(exc) from exc
    finally:
        signal.signal(signal.SIGTERM, previous)
    _print_discovery(report)


@app.command()
def process(
    ctx: typer.Context,
    title: Annotated[str, typer.Option("--title", help="News item title.")],
    summary: Annotated[str, typer.Option("--summary", help="News item summary.")],
    source: Annotated[
        Optional[list[str]],
        typer.Option("--source", help="Source URL (repeatable)."),
    ] = None,
    date: Annotated[str, typer.Option("--date", help="Date hint.")] = "",
    images: Annotated[
        Optional[bool],
        typer.Option("--images/--no-images", help="Generate a hero image."),
    ] = None,
    notify: Annotated[
        Optional[bool],
        typer.Option("--notify/--no-notify", help="Notify subscribers on publish."),
    ] = None,
) -> None:
    """Turn a single news item into an article."""
    config = _load(ctx, images=images, notify=notify)
    try:
        item = NewsItem(title=title, summary=summary, sources=source or [], date=date)
        engine = _open_engine(config)
        synthesizer = _build_synthesizer(config, engine, PromptStore(engine))
    except (EstateNewsError, ValueError) as exc:
        raise _fail(exc) from exc

    result = synthesizer.process(item)
    if result.success:
        console.print(f"[green]Published[/green] {result.slug} (id={result.article_id})")
        if result.image_url:
            console.print(f"Image: {result.image_url}")
        return
    if result.duplicate:
        console.print(f"[yellow]Duplicate:[/yellow] {result.error}")
        return
    console.print(f"[red]Failed:[/red] {result.error}")
    raise typer.Exit(1)


@app.command()
def notify(
    ctx: typer.Context,
    article_id: Annotated[int, typer.Argument(help="Article id.")],
) -> None:
    """Send immediate notifications for one article."""
    config = _load(ctx)
    try:
        fanout = _build_fanout(config, _open_engine(config))
        summary = fanout.send_article_notifications(article_id)
    except (EstateNewsError, LookupError) as exc:
        raise _fail(exc) from exc
    _print_fanout(summary)


@app.command()
def digest(ctx: typer.Context) -> None:
    """Send the weekly digest."""
    config = _load(ctx)
    try:
        fanout = _build_fanout(config, _open_engine(config))
    except EstateNewsError as exc:
        raise _fail(exc) from exc
    _print_fanout(fanout.send_weekly_digest())


@app.command("regenerate-image")
def regenerate_image(
    ctx: typer.Context,
    article_id: Annotated[int, typer.Argument(help="Article id.")],
    description: Annotated[
        Optional[str],
        typer.Option("--description", "-d", help="Extra instructions for the image."),
    ] = None,
) -> None:
    """Generate a new hero image for an article."""
    config = _load(ctx)
    engine = _open_engine(config)
    try:
        step = _build_image_step(config, engine, PromptStore(engine))
        if step is None:
            raise ConfigurationError("GEMINI_API_KEY not configured")
        url = step.regenerate(article_id, description)
    except (EstateNewsError, LookupError) as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Image updated:[/green] {url}")


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def _prompt_store(ctx: typer.Context) -> PromptStore:
    return PromptStore(_open_engine(_load(ctx)), cache_ttl=0)


@prompts_app.command("list")
def prompts_list(ctx: typer.Context) -> None:
    """List stored prompts."""
    records = _prompt_store(ctx).list_prompts()
    if not records:
        console.print("No prompts stored. Run [bold]estatenews init-db --seed[/bold].")
        return
    table = Table(title="AI prompts")
    table.add_column("Key")
    table.add_column("Name")
    table.add_column("Section")
    table.add_column("Model")
    for record in records:
        table.add_row(record.key, record.name, record.section or "", record.model or "")
    console.print(table)


@prompts_app.command("show")
def prompts_show(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Prompt key.")],
) -> None:
    """Show a prompt and its saved versions."""
    store = _prompt_store(ctx)
    record = store.get_record(key)
    if record is None:
        raise _fail(LookupError(f"Unknown prompt key: {key!r}"))
    console.print(f"[bold]{record.name}[/bold] ({record.key})")
    console.print(record.prompt, markup=False)
    versions = store.list_versions(key)
    if versions:
        table = Table(title="Versions")
        table.add_column("Id", justify="right")
        table.add_column("Version", justify="right")
        table.add_column("Created")
        table.add_column("Change")
        for version in versions:
            created = version.created_at.isoformat(timespec="seconds") if version.created_at else ""
            table.add_row(str(version.id), str(version.version_number), created, version.change_description or "")
        console.print(table)


@prompts_app.command("set")
def prompts_set(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Prompt key.")],
    file: Annotated[
        Path,
        typer.Argument(help="File containing the new prompt text.", exists=True, dir_okay=False),
    ],
    message: Annotated[
        Optional[str],
        typer.Option("--message", "-m", help="Change description."),
    ] = None,
) -> None:
    """Replace a prompt's text, saving the previous version."""
    record = _prompt_store(ctx).set_prompt(
        key,
        file.read_text(encoding="utf-8"),
        change_description=message,
    )
    console.print(f"[green]Updated[/green] {record.key}")


@prompts_app.command("restore")
def prompts_restore(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Prompt key.")],
    version_id: Annotated[int, typer.Argument(help="Version id (see 'prompts show').")],
) -> None:
    """Restore a saved version of a prompt."""
    try:
        record = _prompt_store(ctx).restore_version(key, version_id)
    except LookupError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Restored[/green] {record.key} from version id {version_id}")


if __name__ == "__main__":
    app()
