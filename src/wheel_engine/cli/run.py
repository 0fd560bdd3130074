#!/usr/bin/env python3
"""Command line entry point for the wheel engine."""

from __future__ import annotations

import asyncio
import json
import sys
import uuid
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Literal, Optional

import click
from rich.console import Console
from rich.table import Table

from ..__version__ import API_VERSION, __version__, get_version_string
from ..analytics import WheelSummary
from ..api import AnalysisResult, PositionAnalyzer, parse_account
from ..config import EngineConfig, load_config
from ..exceptions import ConfigurationError, StoreInitializationError
from ..greeks import GreeksCache, GreeksFetcher, PolygonGreeksProvider
from ..models import AccountContext, Strategy
from ..storage import open_store
from ..utils import get_logger, run_context, setup_structured_logging

logger = get_logger(__name__)

console = Console()

OutputFormat = Literal["text", "json"]


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise click.ClickException(f"Cannot read {what} file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{what.capitalize()} file {path} is not valid JSON: {e}") from e


def _load_inputs(
    positions_path: Path, account_path: Optional[Path], prices_path: Optional[Path]
) -> tuple[list[Any], AccountContext, dict[str, float]]:
    """
    Positions may be a bare list of legs or an object holding ``legs`` and
    optionally ``account`` and ``prices``; separate files win over embedded
    sections.
    """
    payload = _read_json(positions_path, "positions")
    account_data: Any = None
    prices: Any = {}

    if isinstance(payload, dict):
        legs = payload.get("legs", payload.get("positions"))
        account_data = payload.get("account")
        prices = payload.get("prices") or {}
    else:
        legs = payload

    if not isinstance(legs, list):
        raise click.ClickException("Positions must be a JSON list of legs or an object with 'legs'")

    if account_path is not None:
        account_data = _read_json(account_path, "account")
    if prices_path is not None:
        prices = _read_json(prices_path, "prices")

    if not isinstance(prices, dict):
        raise click.ClickException("Prices must be a JSON object of symbol to price")

    try:
        account = parse_account(account_data)
        price_map = {str(k).upper(): float(v) for k, v in prices.items()}
    except (TypeError, ValueError) as e:
        raise click.ClickException(f"Invalid account or prices: {e}") from e

    return legs, account, price_map


def _money(value: Optional[float], unbounded: bool = False) -> str:
    if unbounded:
        return "unbounded"
    if value is None:
        return "n/a"
    return f"${value:,.2f}"


def _percent(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.1%}"


def _strategy_table(strategies: tuple[Strategy, ...]) -> Table:
    table = Table(title="Strategies", show_header=True, header_style="bold magenta")
    table.add_column("Symbol", style="cyan")
    table.add_column("Strategy")
    table.add_column("Expiry")
    table.add_column("Legs")
    table.add_column("Net Premium", justify="right")
    table.add_column("Max Profit", justify="right")
    table.add_column("Max Loss", justify="right")
    table.add_column("Breakeven", justify="right")
    table.add_column("Risk")

    for s in strategies:
        risk = s.risk
        table.add_row(
            s.symbol,
            s.name,
            s.expiry.isoformat(),
            "\n".join(str(leg) for leg in s.legs),
            _money(risk.net_premium),
            _money(risk.max_profit, risk.max_profit_unbounded),
            _money(risk.max_loss, risk.max_loss_unbounded),
            ", ".join(f"{b:.2f}" for b in risk.breakevens) or "n/a",
            risk.risk_kind.value,
        )
    return table


def _wheel_table(result: AnalysisResult) -> Table:
    table = Table(title="Wheel Metrics", show_header=True, header_style="bold magenta")
    table.add_column("Leg", style="cyan")
    table.add_column("Premium", justify="right")
    table.add_column("Option MTM", justify="right")
    table.add_column("Wheel Net", justify="right")
    table.add_column("Assignment", justify="right")
    table.add_column("Source")

    for m in result.wheel_metrics:
        source = m.assignment_source.value + (" (stale)" if m.greeks_stale else "")
        table.add_row(
            str(m.leg),
            _money(m.premium_collected),
            _money(m.option_mtm),
            _money(m.wheel_net),
            _percent(m.assignment_probability),
            source,
        )
    return table


def _summary_table(summaries: tuple[WheelSummary, ...]) -> Table:
    table = Table(title="Per-Symbol Summary", show_header=True, header_style="bold magenta")
    table.add_column("Symbol", style="cyan")
    table.add_column("Phase")
    table.add_column("Premium", justify="right")
    table.add_column("Option MTM", justify="right")
    table.add_column("Wheel P&L", justify="right")
    table.add_column("Mark P&L", justify="right")

    for s in summaries:
        table.add_row(
            s.symbol,
            s.phase.value,
            _money(s.total_premium),
            _money(s.total_option_mtm),
            _money(s.wheel_pnl),
            _money(s.mark_pnl),
        )
    return table


def render_text(result: AnalysisResult) -> None:
    console.print(f"\n[bold blue]Wheel Engine v{__version__} position analysis[/bold blue]")
    console.print(_strategy_table(result.strategies))

    if result.wheel_metrics:
        console.print(_wheel_table(result))
    if result.summaries:
        console.print(_summary_table(result.summaries))

    for bucket in result.timeframes:
        console.print(
            f"{bucket.label}: premium {_money(bucket.total_premium)}, "
            f"net {_money(bucket.net_pnl)}, "
            f"avg assignment {_percent(bucket.avg_assignment_probability)}"
        )

    if result.rejected:
        console.print(f"\n[yellow]Skipped {len(result.rejected)} malformed leg(s):[/yellow]")
        for r in result.rejected:
            console.print(f"   #{r.index}: {r.reason}")


async def _analyze_with_greeks(
    analyzer: PositionAnalyzer,
    config: EngineConfig,
    legs: list[Any],
    account: AccountContext,
    prices: dict[str, float],
    as_of: Optional[date],
) -> AnalysisResult:
    store = open_store(config.storage)
    api_key = config.greeks.api_key.get_secret_value() if config.greeks.api_key else None
    async with PolygonGreeksProvider(
        api_key=api_key,
        base_url=config.greeks.base_url,
        timeout=config.greeks.request_timeout_seconds,
    ) as provider:
        fetcher = GreeksFetcher.from_config(config.greeks, provider, store)
        return await analyzer.analyze_with_greeks(legs, account, fetcher, prices, as_of)


def _load_config_or_fail(config_path: Optional[Path], verbose: bool) -> EngineConfig:
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    setup_structured_logging(
        log_level="DEBUG" if verbose else config.logging.level,
        log_file=config.logging.file,
        include_stdout=verbose,
        log_format=config.logging.format,
    )
    return config


@click.group()
@click.version_option(__version__, message=get_version_string())
def main() -> None:
    """Options position analytics for wheel traders."""


@main.command()
@click.argument("positions", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--account",
    "account_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Account snapshot JSON (sharesPerSymbol, costBasisPerSymbol, cashBalance)",
)
@click.option(
    "--prices",
    "prices_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON object of underlying prices",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration YAML",
)
@click.option("--fetch-greeks", is_flag=True, help="Fetch Greeks for short legs from the provider")
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Valuation date for yields and timeframe buckets",
)
@click.option("--verbose", is_flag=True, help="Verbose logging to stderr")
def analyze(
    positions: Path,
    account_path: Optional[Path],
    prices_path: Optional[Path],
    output_format: OutputFormat,
    config_path: Optional[Path],
    fetch_greeks: bool,
    as_of: Optional[datetime],
    verbose: bool,
) -> None:
    """Classify POSITIONS and report risk and wheel metrics."""
    config = _load_config_or_fail(config_path, verbose)
    legs, account, prices = _load_inputs(positions, account_path, prices_path)
    valuation_date = as_of.date() if as_of is not None else None
    analyzer = PositionAnalyzer(config)

    with run_context(uuid.uuid4().hex[:12], command="analyze", fetch_greeks=fetch_greeks):
        try:
            if fetch_greeks:
                result = asyncio.run(
                    _analyze_with_greeks(analyzer, config, legs, account, prices, valuation_date)
                )
            else:
                result = analyzer.analyze(legs, account, prices, as_of=valuation_date)
        except StoreInitializationError as e:
            logger.error("Greeks store unavailable", extra={"error": str(e)})
            raise click.ClickException(f"{e} ({e.recovery_action})") from e

    if output_format == "json":
        payload = {"api_version": API_VERSION, **result.to_dict()}
        click.echo(json.dumps(payload, indent=2, default=str))
    else:
        render_text(result)


@main.command("cache-stats")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration YAML",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
def cache_stats(config_path: Optional[Path], output_format: OutputFormat) -> None:
    """Show what the configured Greeks cache holds."""
    config = _load_config_or_fail(config_path, verbose=False)

    try:
        store = open_store(config.storage)
    except StoreInitializationError as e:
        raise click.ClickException(f"{e} ({e.recovery_action})") from e

    cache = GreeksCache(
        store,
        stale_after=timedelta(minutes=config.greeks.stale_after_minutes),
        ttl=timedelta(minutes=config.greeks.ttl_minutes),
    )
    stats = cache.stats()

    if output_format == "json":
        click.echo(json.dumps({"backend": config.storage.backend, **stats.to_dict()}, indent=2))
        return

    table = Table(title="Greeks Cache", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Backend", config.storage.backend)
    table.add_row("Path", str(config.storage.path) if config.storage.path else "-")
    for status, count in stats.entries.items():
        table.add_row(f"Entries ({status})", str(count))
    table.add_row("Store resets", str(stats.store_resets))
    table.add_row("Corrupt entries", str(stats.corrupt_entries))
    console.print(table)


if __name__ == "__main__":
    sys.exit(main())
