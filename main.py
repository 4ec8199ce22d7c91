#!/usr/bin/env python3
"""CoinWatch - CLI Entry Point."""
import sys
import json
import time
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()


class DecimalType(click.ParamType):
    name = "decimal"

    def convert(self, value, param, ctx):
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value))
        except InvalidOperation:
            self.fail(f"{value!r} is not a valid number", param, ctx)


DECIMAL = DecimalType()


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from monitor.api import create_provider
    from monitor.monitor import CoinWatchMonitor
    from alerts.channels import ConsoleChannel, FileChannel, HistoryChannel

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db_cfg = config["database"]
    db = Database(db_cfg["path"], owner=db_cfg.get("owner", ""))
    db.connect()

    provider = create_provider(config)

    sinks = [HistoryChannel(db), FileChannel(config["alerts"].get("log_file", "data/alerts.jsonl"))]
    # Console only if running interactively
    if sys.stdout.isatty():
        sinks.append(ConsoleChannel(console))

    monitor = CoinWatchMonitor(db, provider, sinks, config)
    return {"config": config, "db": db, "provider": provider, "monitor": monitor}


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="coinwatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """CoinWatch - live crypto prices, one-shot price alerts & portfolio P/L."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
        ctx.call_on_close(lambda: _close_components(ctx.obj["_components"]))
    return ctx.obj["_components"]


def _close_components(c):
    c["monitor"].close()
    c["provider"].close()
    c["db"].close()


def _fail(message):
    console.print(f"[red]✗[/red] {message}")
    sys.exit(1)


def _fmt_price(value):
    from utils.formatters import format_usd
    return format_usd(value)


# ──────────────────────────────────────────────────────
# SETUP / STATUS
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def setup(ctx):
    """First-time setup: initialize DB, test the API, fetch initial data."""
    from utils.errors import CoinWatchError
    c = _get_components(ctx)
    console.print("[bold cyan]CoinWatch - Setup[/bold cyan]\n")
    console.print("[green]✓[/green] Database initialized")

    console.print("Testing API connectivity...")
    try:
        ok = c["provider"].ping()
    except CoinWatchError as e:
        ok = False
        console.print(f"  [dim]{e}[/dim]")
    console.print(f"  {'[green]✓[/green]' if ok else '[red]✗[/red]'} CoinGecko")

    console.print("\nFetching market snapshot...")
    try:
        snapshot = c["monitor"].ensure_snapshot(timeout=120)
        console.print(f"[green]✓[/green] Loaded {len(snapshot)} coins")
    except CoinWatchError as e:
        console.print(f"[red]✗[/red] Fetch failed: {e}")

    console.print("\n[bold]Setup complete![/bold] Run [bold]python main.py watch[/bold] to start monitoring.\n")


@cli.command()
@click.pass_context
def status(ctx):
    """Show market data freshness and alert/holding counts."""
    from utils.formatters import time_ago
    c = _get_components(ctx)
    s = c["monitor"].status()
    alerts = c["db"].list_alerts()
    holdings = c["db"].list_holdings()
    active = sum(1 for a in alerts if a.is_active)

    console.print(f"Market data: {s['coins']} coins, updated {time_ago(s['fetched_at'])}")
    console.print(f"Alerts: {active} active / {len(alerts)} total")
    console.print(f"Holdings: {len(holdings)}")
    if s["last_error"]:
        console.print(f"[yellow]Last refresh error:[/yellow] {s['last_error']}")


# ──────────────────────────────────────────────────────
# MARKET
# ──────────────────────────────────────────────────────
@cli.group()
def market():
    """Market listing with search and paging."""
    pass


@market.command("list")
@click.option("--page", "page_number", default=1, type=int, help="Page number (1-based)")
@click.option("--search", default="", help="Filter by name or symbol (disables paging)")
@click.option("--page-size", default=None, type=int, help="Coins per page")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def market_list(ctx, page_number, search, page_size, as_json):
    """List coins by market cap."""
    from utils.errors import CoinWatchError
    from utils.formatters import format_usd, format_pct
    c = _get_components(ctx)
    try:
        window = c["monitor"].market_page(search, page_number, page_size)
    except CoinWatchError as e:
        _fail(f"Market data unavailable: {e}")

    if as_json:
        click.echo(json.dumps([
            {"id": q.id, "name": q.name, "symbol": q.display_symbol,
             "current_price": str(q.current_price),
             "price_change_pct_24h": str(q.price_change_pct_24h),
             "market_cap": str(q.market_cap)}
            for q in window.items
        ], indent=2))
        return

    if not window.items:
        console.print("[dim]No cryptocurrencies found.[/dim]")
        return

    table = Table(title="Crypto Market")
    table.add_column("Coin", style="bold")
    table.add_column("Symbol")
    table.add_column("Price", justify="right")
    table.add_column("24h", justify="right")
    table.add_column("Market Cap", justify="right")
    for q in window.items:
        table.add_row(q.name, q.display_symbol, format_usd(q.current_price),
                      format_pct(q.price_change_pct_24h, with_color=True),
                      format_usd(q.market_cap, compact=True))
    console.print(table)
    if window.searching:
        console.print(f"[dim]{window.total_items} matches for '{search}'[/dim]")
    else:
        console.print(f"[dim]Page {window.number} of {window.total_pages}[/dim]")


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Price alerts."""
    pass


def _alerts_table(rows, title="Alerts"):
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Coin", style="bold")
    table.add_column("Condition")
    table.add_column("Target", justify="right")
    table.add_column("Status")
    for a in rows:
        state = "[green]Active[/green]" if a.is_active else "[dim]Inactive[/dim]"
        table.add_row(str(a.id), f"{a.coin_name} ({a.symbol.upper()})", a.condition.value,
                      _fmt_price(a.target_price), state)
    return table


@alerts.command("add")
@click.option("--coin", "coin_id", required=True, help="Coin id, e.g. bitcoin")
@click.option("--price", "target_price", required=True, type=DECIMAL, help="Target price in USD")
@click.option("--condition", default="above", type=click.Choice(["above", "below"]))
@click.option("--inactive", is_flag=True, help="Create the alert switched off")
@click.pass_context
def alerts_add(ctx, coin_id, target_price, condition, inactive):
    """Create a price alert."""
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    try:
        alert = c["monitor"].create_alert(coin_id, target_price, condition, is_active=not inactive)
    except (ValueError, StoreUnavailable) as e:
        _fail(f"Failed to save alert: {e}")
    console.print(f"[green]✓[/green] Alert {alert.id} created: {alert.describe()}")


@alerts.command("list")
@click.pass_context
def alerts_list(ctx):
    """List alerts."""
    c = _get_components(ctx)
    rows = c["db"].list_alerts()
    if not rows:
        console.print("[dim]No alerts found. Create your first alert![/dim]")
        return
    console.print(_alerts_table(rows))


@alerts.command("edit")
@click.argument("alert_id", type=int)
@click.option("--price", "target_price", default=None, type=DECIMAL, help="New target price")
@click.option("--condition", default=None, type=click.Choice(["above", "below"]))
@click.option("--activate/--deactivate", "is_active", default=None, help="Switch the alert on or off")
@click.pass_context
def alerts_edit(ctx, alert_id, target_price, condition, is_active):
    """Edit an alert. Use --activate to re-arm one that already fired."""
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    changes = {}
    if target_price is not None:
        if target_price <= 0:
            _fail("Target price must be positive")
        changes["target_price"] = target_price
    if condition is not None:
        changes["condition"] = condition
    if is_active is not None:
        changes["is_active"] = is_active
    if not changes:
        _fail("Nothing to change")
    try:
        alert = c["db"].update_alert(alert_id, **changes)
    except KeyError:
        _fail(f"Alert {alert_id} not found")
    except StoreUnavailable as e:
        _fail(f"Failed to update alert: {e}")
    console.print(f"[green]✓[/green] Alert {alert.id} updated: {alert.describe()}")


@alerts.command("delete")
@click.argument("alert_id", type=int)
@click.pass_context
def alerts_delete(ctx, alert_id):
    """Delete an alert."""
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    try:
        c["db"].delete_alert(alert_id)
    except StoreUnavailable as e:
        _fail(f"Failed to delete alert: {e}")
    console.print(f"[green]✓[/green] Alert {alert_id} deleted")


@alerts.command("check")
@click.pass_context
def alerts_check(ctx):
    """Run one evaluation pass: fire and deactivate crossed alerts."""
    from concurrent.futures import TimeoutError as PassTimeout
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    try:
        report = c["monitor"].evaluator.evaluate_once(timeout=300)
    except StoreUnavailable as e:
        _fail(f"Alert store unavailable: {e}")
    except PassTimeout:
        _fail("Alert check timed out")
    if not report.triggered:
        console.print("All clear - no alerts triggered.")
    for event in report.triggered:
        console.print(f"[bold]🚨 {event.message}[/bold]")
    for alert_id, reason in report.skipped.items():
        console.print(f"[yellow]Skipped alert {alert_id}:[/yellow] {reason}")
    for alert_id in report.persist_failures:
        console.print(f"[red]Alert {alert_id} fired but could not be deactivated; will retry[/red]")
    console.print(f"[dim]{report.summary()}[/dim]")


@alerts.command("test")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive alerts")
@click.pass_context
def alerts_test(ctx, include_inactive):
    """Dry run: show which alerts would fire, without notifying or deactivating."""
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    try:
        rows = c["monitor"].evaluator.preview(include_inactive=include_inactive)
    except StoreUnavailable as e:
        _fail(f"Alert store unavailable: {e}")
    if not rows:
        console.print("[dim]No alerts to test.[/dim]")
        return
    table = Table(title="Alert Dry Run")
    table.add_column("ID", justify="right")
    table.add_column("Coin", style="bold")
    table.add_column("Rule")
    table.add_column("Price", justify="right")
    table.add_column("Would Fire")
    for r in rows:
        a = r["alert"]
        price = _fmt_price(r["price"]) if r["price"] is not None else f"[yellow]{r['error']}[/yellow]"
        fire = "[bold red]YES[/bold red]" if r["would_fire"] else "[green]no[/green]"
        table.add_row(str(a.id), a.coin_name, f"{a.condition.value} {_fmt_price(a.target_price)}",
                      price, fire)
    console.print(table)


@alerts.command("history")
@click.option("--limit", default=20, type=int, help="Number of events to show")
@click.pass_context
def alerts_history(ctx, limit):
    """Show recently triggered alerts."""
    from utils.formatters import format_timestamp
    c = _get_components(ctx)
    events = c["db"].get_recent_triggers(limit)
    if not events:
        console.print("[dim]No alerts triggered yet.[/dim]")
        return
    for e in events:
        console.print(f"[dim]{format_timestamp(e.triggered_at)}[/dim] {e.message}")


# ──────────────────────────────────────────────────────
# PORTFOLIO
# ──────────────────────────────────────────────────────
@cli.group()
def portfolio():
    """Holdings and live profit/loss."""
    pass


@portfolio.command("add")
@click.option("--coin", "coin_id", required=True, help="Coin id, e.g. bitcoin")
@click.option("--quantity", required=True, type=DECIMAL, help="Amount held")
@click.option("--price", "purchase_price", required=True, type=DECIMAL, help="Purchase price per coin (USD)")
@click.option("--date", "purchase_date", default=None, type=click.DateTime(["%Y-%m-%d"]),
              help="Purchase date (YYYY-MM-DD)")
@click.pass_context
def portfolio_add(ctx, coin_id, quantity, purchase_price, purchase_date):
    """Add a holding."""
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    try:
        holding = c["monitor"].create_holding(
            coin_id, quantity, purchase_price,
            purchase_date.date() if purchase_date else None,
        )
    except (ValueError, StoreUnavailable) as e:
        _fail(f"Save failed: {e}")
    console.print(f"[green]✓[/green] Added holding {holding.id}: {holding.quantity} {holding.symbol.upper()}")


@portfolio.command("list")
@click.pass_context
def portfolio_list(ctx):
    """List holdings (without live prices)."""
    from utils.formatters import format_quantity
    c = _get_components(ctx)
    rows = c["db"].list_holdings()
    if not rows:
        console.print("[dim]No holdings yet. Add one with: python main.py portfolio add[/dim]")
        return
    table = Table(title="Holdings")
    table.add_column("ID", justify="right")
    table.add_column("Coin", style="bold")
    table.add_column("Quantity", justify="right")
    table.add_column("Buy Price", justify="right")
    table.add_column("Date")
    for h in rows:
        table.add_row(str(h.id), f"{h.coin_name} ({h.symbol.upper()})", format_quantity(h.quantity),
                      _fmt_price(h.purchase_price),
                      h.purchase_date.isoformat() if h.purchase_date else "-")
    console.print(table)


@portfolio.command("edit")
@click.argument("holding_id", type=int)
@click.option("--quantity", default=None, type=DECIMAL)
@click.option("--price", "purchase_price", default=None, type=DECIMAL)
@click.option("--date", "purchase_date", default=None, type=click.DateTime(["%Y-%m-%d"]))
@click.pass_context
def portfolio_edit(ctx, holding_id, quantity, purchase_price, purchase_date):
    """Edit a holding."""
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    changes = {}
    if quantity is not None:
        if quantity <= 0:
            _fail("Quantity must be positive")
        changes["quantity"] = quantity
    if purchase_price is not None:
        if purchase_price < 0:
            _fail("Purchase price cannot be negative")
        changes["purchase_price"] = purchase_price
    if purchase_date is not None:
        changes["purchase_date"] = purchase_date.date()
    if not changes:
        _fail("Nothing to change")
    try:
        c["db"].update_holding(holding_id, **changes)
    except KeyError:
        _fail(f"Holding {holding_id} not found")
    except StoreUnavailable as e:
        _fail(f"Save failed: {e}")
    console.print(f"[green]✓[/green] Holding {holding_id} updated")


@portfolio.command("delete")
@click.argument("holding_id", type=int)
@click.pass_context
def portfolio_delete(ctx, holding_id):
    """Delete a holding."""
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    try:
        c["db"].delete_holding(holding_id)
    except StoreUnavailable as e:
        _fail(f"Delete failed: {e}")
    console.print(f"[green]✓[/green] Holding {holding_id} deleted")


@portfolio.command("status")
@click.pass_context
def portfolio_status(ctx):
    """Value holdings at live prices."""
    from utils.errors import StoreUnavailable
    from utils.formatters import format_usd, format_pct, format_quantity
    c = _get_components(ctx)
    try:
        valuation = c["monitor"].valuate_portfolio()
    except StoreUnavailable as e:
        _fail(f"Failed to load portfolio: {e}")
    if not valuation.holdings:
        console.print("[dim]No holdings yet.[/dim]")
        return

    table = Table(title="Portfolio")
    table.add_column("Coin", style="bold")
    table.add_column("Quantity", justify="right")
    table.add_column("Buy Price", justify="right")
    table.add_column("Current", justify="right")
    table.add_column("Value", justify="right")
    table.add_column("P/L", justify="right")
    table.add_column("P/L %", justify="right")
    for v in valuation.holdings:
        h = v.holding
        current = format_usd(v.current_price) if v.price_available else "[yellow]n/a[/yellow]"
        pl_color = "green" if v.profit_loss >= 0 else "red"
        table.add_row(f"{h.coin_name} ({h.symbol.upper()})", format_quantity(h.quantity),
                      format_usd(h.purchase_price), current, format_usd(v.market_value),
                      f"[{pl_color}]{format_usd(v.profit_loss)}[/{pl_color}]",
                      format_pct(v.profit_loss_pct, with_color=True))
    console.print(table)

    pl_color = "green" if valuation.profit_loss >= 0 else "red"
    console.print(f"Total value: [bold]{format_usd(valuation.total_value)}[/bold]  "
                  f"Cost: {format_usd(valuation.total_cost)}  "
                  f"P/L: [{pl_color}]{format_usd(valuation.profit_loss)} "
                  f"({format_pct(valuation.profit_loss_pct)})[/{pl_color}]")
    if valuation.partial:
        console.print(f"[yellow]Prices unavailable for {', '.join(valuation.missing_prices)}; "
                      f"valued at $0[/yellow]")


@portfolio.command("export")
@click.option("--format", "fmt", default="csv", type=click.Choice(["csv", "json"]))
@click.option("--output", default=None, help="Output file path")
@click.pass_context
def portfolio_export(ctx, fmt, output):
    """Export the current valuation."""
    from portfolio.export import export_valuation
    from utils.errors import StoreUnavailable
    c = _get_components(ctx)
    try:
        valuation = c["monitor"].valuate_portfolio()
    except StoreUnavailable as e:
        _fail(f"Failed to load portfolio: {e}")
    path = export_valuation(valuation, output or f"data/portfolio.{fmt}", fmt)
    if path:
        console.print(f"[green]✓[/green] Exported to {path}")
    else:
        console.print("[dim]No holdings to export[/dim]")


# ──────────────────────────────────────────────────────
# WATCH
# ──────────────────────────────────────────────────────
@cli.command()
@click.pass_context
def watch(ctx):
    """Poll prices and evaluate alerts until Ctrl-C."""
    c = _get_components(ctx)
    monitor = c["monitor"]

    def _refreshed(snapshot):
        console.print(f"[dim]Market refreshed: {len(snapshot)} coins[/dim]")

    def _failed(error):
        console.print(f"[yellow]Refresh failed, showing previous data: {error}[/yellow]")

    def _alerts_failed(error):
        console.print(f"[yellow]Alert check skipped, will retry: {error}[/yellow]")

    monitor.poller.on_refresh(_refreshed)
    monitor.poller.on_error(_failed)
    monitor.evaluator.on_error(_alerts_failed)
    monitor.start()
    console.print("[bold cyan]Watching... press Ctrl-C to stop[/bold cyan]")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        monitor.stop(wait=True)


if __name__ == "__main__":
    cli()
