"""Command line interface for the ZC Charts package."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import List, Optional

import typer

from .controller import ChartController
from .logging_config import configure_logging
from .models import BackupOutcome, LiveOutcome
from .page import Page
from .runtime import ChartRuntime
from .security import mask_key, validate_key_format
from .settings import Settings, get_settings
from .timeframes import TIMEFRAMES, describe_timeframes

app = typer.Typer(
    add_completion=True,
    help="Render economic indicator charts from the ZC data API.",
)

_LOGGER = logging.getLogger(__name__)
_DEFAULT_OUTPUT_PATH = Path("data") / "charts.html"


def _settings_from_context(ctx: typer.Context) -> Settings:
    settings_obj = (ctx.obj or {}).get("settings")
    if isinstance(settings_obj, Settings):
        return settings_obj
    settings = get_settings()  # pragma: no cover - callback always runs first
    ctx.ensure_object(dict)["settings"] = settings
    return settings


def _status_line(controller: ChartController) -> str:
    outcome = controller.outcome
    label = f"{controller.key} ({controller.config.slug})"
    if isinstance(outcome, (LiveOutcome, BackupOutcome)) and controller.handle is not None:
        return f"  {label}: {outcome.source}, {controller.handle.point_count} points"
    error = controller.surface.error
    message = error.message if error is not None else "not loaded"
    return f"  {label}: error: {message}"


@app.callback()
def configure_cli(
    ctx: typer.Context,
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging verbosity. One of: CRITICAL, ERROR, WARNING, INFO, DEBUG.",
        show_default=True,
    ),
) -> None:
    """Configure application-wide dependencies for CLI commands."""

    ctx.ensure_object(dict)
    settings = get_settings()
    try:
        configure_logging(log_level, api_key=settings.api_key)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    ctx.obj["settings"] = settings
    if settings.api_key:
        _LOGGER.debug("API key loaded from environment (%s).", mask_key(settings.api_key))
    else:
        _LOGGER.debug("No API key configured; charts will render configuration errors.")


@app.command("timeframes")
def timeframes(
    today: Optional[str] = typer.Option(
        None,
        "--today",
        help="Reference date (YYYY-MM-DD) used instead of the current date.",
    ),
) -> None:
    """List the supported timeframe tokens and their cutoff dates."""

    try:
        reference = date.fromisoformat(today) if today else None
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid date: {today}") from exc

    for token, cutoff in describe_timeframes(reference):
        typer.echo(f"{token:>4}: {cutoff.isoformat() if cutoff else 'no cutoff'}")


@app.command("check-key")
def check_key(
    ctx: typer.Context,
    api_key: Optional[str] = typer.Argument(
        None, help="Key to check; defaults to the configured ZC_CHARTS_API_KEY."
    ),
) -> None:
    """Check the API key format without contacting the data API."""

    key = api_key or _settings_from_context(ctx).api_key
    if not key:
        typer.echo("No API key configured.")
        raise typer.Exit(code=1)
    if not validate_key_format(key):
        typer.echo(f"API key {mask_key(key)} has an invalid format.")
        raise typer.Exit(code=1)
    typer.echo(f"API key {mask_key(key)} has a valid format.")


async def _render(
    settings: Settings, page: Page, export_dir: Optional[Path]
) -> tuple[list[str], str]:
    async with ChartRuntime(settings, export_dir=export_dir) as runtime:
        registry = await runtime.mount(page)
        lines = [_status_line(registry.get(key)) for key in registry.keys()]
        if export_dir is not None:
            for key in list(registry.keys()):
                registry.get(key).export()
        return lines, page.to_html()


@app.command("render")
def render(
    ctx: typer.Context,
    slugs: Optional[List[str]] = typer.Argument(None, help="Indicator slugs to chart."),
    page_path: Optional[Path] = typer.Option(
        None,
        "--page",
        "-p",
        help="HTML file whose data-chart-config elements declare the charts.",
    ),
    library: Optional[str] = typer.Option(
        None, "--library", help="Chart library for slug arguments (chartjs or highcharts)."
    ),
    timeframe: str = typer.Option(
        "1y",
        "--timeframe",
        "-t",
        help=f"Timeframe for slug arguments. One of: {', '.join(TIMEFRAMES)}.",
        show_default=True,
    ),
    output: Path = typer.Option(
        _DEFAULT_OUTPUT_PATH,
        "--output",
        "-o",
        help="Where to write the rendered page snapshot.",
        show_default=True,
    ),
    export_dir: Optional[Path] = typer.Option(
        None,
        "--export-dir",
        help="Also export each rendered chart as a standalone HTML file here.",
    ),
) -> None:
    """Load charts from the data API and write the rendered markup."""

    settings = _settings_from_context(ctx)
    default_library = library or settings.default_library

    if page_path is not None:
        if not page_path.exists():
            raise typer.BadParameter(f"Page file not found: {page_path}")
        page = Page.from_html(page_path.read_text(encoding="utf-8"), default_library=default_library)
    elif slugs:
        page = Page.from_declarations(
            [{"id": slug, "timeframe": timeframe} for slug in slugs],
            default_library=default_library,
        )
    else:
        raise typer.BadParameter("Provide at least one slug or --page.")

    if not len(page):
        typer.echo("No chart declarations found.")
        raise typer.Exit(code=1)

    lines, markup = asyncio.run(_render(settings, page, export_dir))
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(markup, encoding="utf-8")

    typer.echo(f"Rendered {len(lines)} chart(s):")
    for line in lines:
        typer.echo(line)
    typer.echo(f"Saved page snapshot to {output}")


def main() -> None:  # pragma: no cover - console script entry point
    app()
