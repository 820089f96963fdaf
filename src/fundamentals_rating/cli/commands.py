"""Typer-based command-line interface for the fundamentals rating workflow."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from config import Config
from fundamentals_rating.domain.models.signals import ScanResult
from fundamentals_rating.domain.services.filing_signals import SIGNAL_CATALOG
from fundamentals_rating.domain.services.rules import RULES
from fundamentals_rating.infrastructure.data_providers.local_filings import LocalFilingFetcher
from fundamentals_rating.utils.logging import configure_logging
from fundamentals_rating.workflows.graph import RatingWorkflow
from fundamentals_rating.workflows.scanning import FilingScanService
from fundamentals_rating.workflows.state import RatingState

console = Console()
app = typer.Typer(help="Rate US-listed companies from fundamentals and filing signals.")


@dataclass
class AppContext:
    config: Config
    workflow: RatingWorkflow


def _init_context(debug_override: Optional[bool], offline: bool) -> AppContext:
    config = Config.from_env()
    if debug_override is not None:
        config.debug = debug_override
    configure_logging(config.debug)
    workflow = RatingWorkflow(config=config, offline=offline)
    return AppContext(config=config, workflow=workflow)


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: Optional[bool] = typer.Option(
        None,
        "--debug/--no-debug",
        help="Override APP_DEBUG for this invocation.",
    ),
    offline: bool = typer.Option(False, "--offline", help="Never contact EDGAR; use local filings and cache only."),
) -> None:
    """Initialise shared application context."""
    ctx.obj = _init_context(debug, offline)
    ctx.call_on_close(ctx.obj.workflow.close)


@app.command()
def rate(
    ctx: typer.Context,
    ticker: str = typer.Argument(..., help="Ticker symbol, e.g. AAPL"),
    periods_file: Optional[Path] = typer.Option(
        None, "--periods-file", help="JSON file of raw reported periods (otherwise the database is used)."
    ),
    filings_dir: Optional[Path] = typer.Option(
        None, "--filings-dir", help="Directory of saved filings to scan instead of EDGAR."
    ),
    price_file: Optional[Path] = typer.Option(None, "--price-file", help="JSON file of daily closes."),
    sector: Optional[str] = typer.Option(None, "--sector", help="Override the detected sector."),
    depth: Optional[int] = typer.Option(None, "--depth", help="Number of recent filings to scan."),
    force: bool = typer.Option(False, "--force", help="Ignore cached filing signals."),
    deep: bool = typer.Option(False, "--deep", help="Add amended-filing and insider-pattern checks."),
    emit_json: bool = typer.Option(False, "--json", help="Persist the workflow state as JSON."),
    markdown_path: Optional[Path] = typer.Option(None, "--markdown", help="Where to write the Markdown report."),
) -> None:
    """Run the rating workflow for a single ticker."""
    if ctx.obj is None:
        raise typer.Exit(code=1)

    context: AppContext = ctx.obj
    ticker = ticker.upper()
    console.rule(f"Rating {ticker}")

    with console.status("[bold cyan]Running workflow..."):
        result: RatingState = context.workflow.run(
            ticker,
            periods_file=periods_file,
            filings_dir=filings_dir,
            price_file=price_file,
            sector=sector,
            scan_depth=depth,
            force_scan=force,
            deep_scan=deep,
        )

    _report_result(context, result, emit_json=emit_json, markdown_path=markdown_path)
    if result.get("rating") is None:
        raise typer.Exit(code=1)


@app.command()
def scan(
    ctx: typer.Context,
    tickers: List[str] = typer.Argument(..., help="One or more tickers to scan."),
    depth: Optional[int] = typer.Option(None, "--depth", help="Number of recent filings to scan."),
    force: bool = typer.Option(False, "--force", help="Ignore cached filing signals."),
    deep: bool = typer.Option(False, "--deep", help="Add amended-filing and insider-pattern checks."),
    filings_dir: Optional[Path] = typer.Option(
        None, "--filings-dir", help="Directory of saved filings (single ticker only)."
    ),
    emit_json: bool = typer.Option(False, "--json", help="Print results as JSON."),
) -> None:
    """Scan recent filings for risk and catalyst signals without rating."""
    if ctx.obj is None:
        raise typer.Exit(code=1)

    context: AppContext = ctx.obj
    if filings_dir is not None and len(tickers) > 1:
        console.print("[bold red]--filings-dir only supports a single ticker.[/bold red]")
        raise typer.Exit(code=2)
    if filings_dir is None and context.workflow.context.edgar_factory is None:
        console.print("[bold red]Offline mode needs --filings-dir to scan.[/bold red]")
        raise typer.Exit(code=2)

    with console.status("[bold cyan]Scanning filings..."):
        results = asyncio.run(
            _scan_tickers(context, tickers, depth=depth, force=force, deep=deep, filings_dir=filings_dir)
        )

    if emit_json:
        payload = {ticker: result.to_dict() for ticker, result in results.items()}
        console.print_json(json.dumps(payload))
        return
    for ticker, result in results.items():
        _print_scan(ticker, result)


@app.command()
def batch(
    ctx: typer.Context,
    tickers: List[str] = typer.Argument(..., help="One or more tickers, e.g. AAPL MSFT"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Concurrent filing scans."),
    force: bool = typer.Option(False, "--force", help="Ignore cached filing signals."),
) -> None:
    """Scan filings concurrently, then rate each ticker from stored periods."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj

    scans: Dict[str, ScanResult] = {}
    if context.workflow.context.edgar_factory is not None:
        with console.status("[bold cyan]Scanning filings..."):
            scans = asyncio.run(
                _scan_tickers(
                    context,
                    tickers,
                    force=force,
                    max_concurrency=concurrency or context.config.max_concurrency,
                )
            )

    table = Table(title="Batch Ratings", header_style="bold magenta")
    table.add_column("Ticker", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Tier")
    table.add_column("Signals", justify="right")
    table.add_column("Errors", justify="right")

    for tk in tickers:
        tk = tk.upper()
        console.rule(f"Batch rating {tk}")
        result: RatingState = context.workflow.run(tk, scan=scans.get(tk))
        rating = result.get("rating")
        if result.get("markdown_report"):
            output_md = context.config.output_dir / f"{tk}.md"
            context.workflow.persist_markdown(result["markdown_report"], output_md)
            console.print(f"Markdown report available at {output_md}")
        if result.get("errors"):
            console.print(f"[yellow]Completed with errors for {tk}: {result['errors']}[/yellow]")
        table.add_row(
            tk,
            str(rating.normalized_score) if rating else "-",
            rating.tier if rating else "-",
            str(len(result.get("signals") or [])),
            str(len(result.get("errors", []))),
        )

    console.print(table)


@app.command()
def rules(ctx: typer.Context) -> None:
    """List the rule catalog with weights and data windows."""
    if ctx.obj is None:
        raise typer.Exit(code=1)

    table = Table(title="Rating Rules")
    table.add_column("#", style="cyan")
    table.add_column("Rule")
    table.add_column("Weight", justify="right")
    table.add_column("Window")

    for idx, rule in enumerate(RULES, start=1):
        table.add_row(str(idx), rule.name, str(rule.weight), rule.window)

    console.print(table)


@app.command()
def signals(ctx: typer.Context) -> None:
    """List the filing signal catalog."""
    if ctx.obj is None:
        raise typer.Exit(code=1)

    table = Table(title="Filing Signals")
    table.add_column("ID", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Severity")
    table.add_column("Title")

    for definition in SIGNAL_CATALOG:
        table.add_row(definition.id, f"{definition.score:+d}", definition.resolved_severity, definition.title)

    console.print(table)


@app.command()
def plan(ctx: typer.Context) -> None:
    """Display the workflow stages for quick operator reference."""
    if ctx.obj is None:
        raise typer.Exit(code=1)

    context: AppContext = ctx.obj
    table = Table(title="Workflow Stages")
    table.add_column("Step", style="cyan")
    table.add_column("Description")

    for idx, step in enumerate(context.workflow.describe_stages(), start=1):
        table.add_row(str(idx), step)

    console.print(table)


# ----------------------------
# Internal helpers
# ----------------------------


async def _scan_tickers(
    context: AppContext,
    tickers: List[str],
    *,
    depth: Optional[int] = None,
    force: bool = False,
    deep: bool = False,
    filings_dir: Optional[Path] = None,
    max_concurrency: Optional[int] = None,
) -> Dict[str, ScanResult]:
    workflow_context = context.workflow.context
    options = dict(depth=depth or context.config.scan_depth, force=force, deep=deep)
    if filings_dir is not None:
        service = FilingScanService(
            LocalFilingFetcher(filings_dir), workflow_context.signal_cache, workflow_context.scanner
        )
        ticker = tickers[0].upper()
        return {ticker: await service.scan(ticker, **options)}

    fetcher = workflow_context.edgar_factory()
    try:
        service = FilingScanService(fetcher, workflow_context.signal_cache, workflow_context.scanner)
        return await service.scan_many(
            tickers,
            max_concurrency=max_concurrency or context.config.max_concurrency,
            **options,
        )
    finally:
        await fetcher.aclose()


def _report_result(
    context: AppContext,
    result: RatingState,
    *,
    emit_json: bool,
    markdown_path: Optional[Path],
) -> None:
    ticker = result.get("ticker", "?")
    if result.get("errors"):
        console.print("[bold red]Workflow completed with errors:[/bold red]")
        for err in result["errors"]:
            console.print(f" - {err}")
    else:
        console.print("[bold green]Workflow completed successfully.[/bold green]")

    _print_run_summary(result)
    _print_reasons(result)

    if emit_json:
        target = context.config.output_dir / f"{ticker}_state.json"
        context.workflow.persist_state(result, target)
        console.print(f"State saved to {target}")

    if result.get("markdown_report"):
        output_md = markdown_path or context.config.output_dir / f"{ticker}.md"
        context.workflow.persist_markdown(result["markdown_report"], output_md)
        console.print(f"Markdown report available at {output_md}")


def _print_run_summary(state: RatingState) -> None:
    """Pretty-print a short run summary for operators."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key")
    table.add_column("Value")

    rating = state.get("rating")
    narrative = state.get("narrative")
    table.add_row("Ticker", state.get("ticker", "?"))
    table.add_row("Company", state.get("company_name") or "N/A")
    table.add_row("Sector", f"{state.get('sector') or 'N/A'} ({state.get('sector_source') or 'default'})")
    table.add_row("Report Date", state.get("report_date") or "N/A")
    if rating is not None:
        table.add_row("Score", f"{rating.normalized_score} / 100 ({rating.tier})")
        table.add_row("Completeness", f"{rating.completeness.percent:.0f}%")
        table.add_row("Filing Score", f"{rating.filing_score:+d}")
    if narrative is not None and narrative.momentum is not None:
        table.add_row("Momentum", f"{narrative.momentum.score} ({narrative.momentum.label})")
    table.add_row("Signals", str(len(state.get("signals") or [])))
    table.add_row("Errors", str(len(state.get("errors", []))))

    console.print(table)


def _print_reasons(state: RatingState) -> None:
    rating = state.get("rating")
    if rating is None:
        return
    table = Table(title="Rule Breakdown", header_style="bold magenta")
    table.add_column("Rule")
    table.add_column("Weight", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Detail")

    for reason in rating.reasons:
        if reason.skipped:
            score = "[dim]n/a[/dim]"
        elif reason.score > 0:
            score = f"[green]{reason.score:+d}[/green]"
        elif reason.score < 0:
            score = f"[red]{reason.score:+d}[/red]"
        else:
            score = "0"
        table.add_row(reason.name, str(reason.weight), score, reason.message)

    console.print(table)


def _print_scan(ticker: str, result: ScanResult) -> None:
    meta = result.meta
    console.rule(f"{ticker} filing signals")
    if meta.latest_form:
        console.print(f"Latest filing: {meta.latest_form} filed {meta.latest_filed or 'unknown'}")
    if meta.note:
        console.print(f"[yellow]{meta.note}[/yellow]")
    if not result.signals:
        console.print("No signals detected.")
        return

    table = Table(header_style="bold magenta")
    table.add_column("Signal", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Severity")
    table.add_column("Filing")
    table.add_column("Snippet")
    for signal in result.signals:
        scored = f"{signal.score:+d}" if signal.include_in_score else f"({signal.score:+d})"
        table.add_row(
            signal.title,
            scored,
            signal.severity,
            f"{signal.form or '?'} {signal.filed or ''}".strip(),
            signal.snippet[:160],
        )
    console.print(table)
