"""Rich-based console dashboard with a plain-text mode.

:class:`ConsoleDashboard` renders a :class:`~polysim.domain.values.DashboardSnapshot`
(account stats, open positions, recent trades and thoughts) and per-cycle
reports.  ``use_rich=False`` prints simple aligned text instead, which is
what log files and tests want.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from rich.console import Console as RichConsole
from rich.table import Table as RichTable

from polysim.domain.entities import Thought, Trade
from polysim.domain.values import ZERO, CycleReport, DashboardSnapshot, PositionView

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_SPARK_CHARS = " " + "▁▂▃▄▅▆▇█"


def _sparkline(values: list[float], width: int = 40) -> str:
    """Return a Unicode sparkline for *values*, down-sampled to *width*."""
    if not values:
        return ""

    if len(values) > width:
        bin_size = len(values) / width
        sampled: list[float] = []
        for i in range(width):
            chunk = values[int(i * bin_size) : int((i + 1) * bin_size)]
            sampled.append(sum(chunk) / len(chunk) if chunk else 0.0)
        values = sampled

    lo, hi = min(values), max(values)
    span = hi - lo if hi != lo else 1.0
    n_chars = len(_SPARK_CHARS) - 1
    return "".join(
        _SPARK_CHARS[max(0, min(n_chars, int((v - lo) / span * n_chars)))] for v in values
    )


def cumulative_pnl(trades: Sequence[Trade]) -> list[float]:
    """Running realized P&L over SELL trades, oldest first.

    *trades* is in log order (most recent first).
    """
    total = ZERO
    series: list[float] = []
    for trade in reversed(trades):
        if trade.is_closing:
            total += trade.pnl
            series.append(float(total))
    return series


def _money(value: Decimal) -> str:
    return f"${value:,.2f}"


def _signed(value: Decimal) -> str:
    return f"+${value:,.2f}" if value >= 0 else f"-${-value:,.2f}"


def _colour(value: Decimal) -> str:
    if value > 0:
        return "green"
    if value < 0:
        return "red"
    return "white"


def _clock(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


# ---------------------------------------------------------------------------
# ConsoleDashboard
# ---------------------------------------------------------------------------


class ConsoleDashboard:
    """Console presentation of the trading ledger.

    Parameters
    ----------
    use_rich:
        Render with ``rich`` tables (default) or plain ``print()`` output.
    file:
        Output stream.  Defaults to ``sys.stdout``.
    """

    def __init__(self, use_rich: bool = True, file: Any = None) -> None:
        self._file = file or sys.stdout
        self._use_rich = use_rich
        self._console = RichConsole(file=self._file) if use_rich else None

    def _plain_print(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("file", self._file)
        print(*args, **kwargs)

    # -- public API --------------------------------------------------------

    def print_snapshot(self, snapshot: DashboardSnapshot) -> None:
        """Print stats, positions, recent trades and recent thoughts."""
        if self._console is not None:
            self._print_snapshot_rich(snapshot)
        else:
            self._print_snapshot_plain(snapshot)

    def print_cycle(self, index: int, report: CycleReport) -> None:
        """Print a one-line summary of a finished cycle plus its trades."""
        line = (
            f"Cycle {index}: refreshed {report.prices_refreshed}, "
            f"closed {len(report.closed)}, opened {len(report.opened)} "
            f"({report.elapsed_seconds:.2f}s)"
        )
        trades = [*report.closed, *report.opened]
        if self._console is not None:
            self._console.print(f"[bold]{line}[/bold]")
            for trade in trades:
                colour = "red" if trade.is_closing else "green"
                self._console.print(
                    f"  [{colour}]{trade.action.value}[/{colour}] "
                    f"{trade.outcome} @ {trade.price:.3f}  {trade.market_title}"
                )
            for warning in report.warnings:
                self._console.print(f"  [yellow]warning:[/yellow] {warning}")
        else:
            self._plain_print(line)
            for trade in trades:
                self._plain_print(
                    f"  {trade.action.value} {trade.outcome} @ {trade.price:.3f}  "
                    f"{trade.market_title}"
                )
            for warning in report.warnings:
                self._plain_print(f"  warning: {warning}")

    # ======================================================================
    # Rich implementation
    # ======================================================================

    def _print_snapshot_rich(self, snapshot: DashboardSnapshot) -> None:
        assert self._console is not None
        stats = snapshot.stats

        summary = RichTable(title="Account", show_header=False, header_style="bold cyan")
        summary.add_column("Metric", style="bold")
        summary.add_column("Value", justify="right")
        summary.add_row("Balance", _money(stats.balance))
        summary.add_row("Total value", _money(stats.total_value))
        ret = stats.return_percent
        summary.add_row("Return", f"[{_colour(ret)}]{ret}%[/{_colour(ret)}]")
        summary.add_row(
            "Realized P&L",
            f"[{_colour(stats.total_pnl)}]{_signed(stats.total_pnl)}[/{_colour(stats.total_pnl)}]",
        )
        summary.add_row(
            "Unrealized P&L",
            f"[{_colour(stats.unrealized_pnl)}]{_signed(stats.unrealized_pnl)}"
            f"[/{_colour(stats.unrealized_pnl)}]",
        )
        summary.add_row("Trades", str(stats.total_trades))
        summary.add_row("Win rate", f"{stats.win_rate}% ({stats.wins}W/{stats.losses}L)")
        summary.add_row("Open positions", str(stats.active_positions))
        if stats.best_trade is not None:
            summary.add_row("Best trade", _signed(stats.best_trade.pnl))
        if stats.worst_trade is not None:
            summary.add_row("Worst trade", _signed(stats.worst_trade.pnl))

        self._console.print()
        self._console.print(summary)
        self._console.print(self._positions_table(snapshot.positions))
        self._console.print(self._trades_table(snapshot.recent_trades))

        spark = _sparkline(cumulative_pnl(snapshot.recent_trades))
        if spark:
            self._console.print(f"[bold]Realized P&L[/bold] {spark}")

        if snapshot.recent_thoughts:
            self._console.print()
            self._console.print("[bold]Recent thoughts[/bold]")
            for thought in snapshot.recent_thoughts:
                self._console.print(self._thought_line(thought, markup=True))
        self._console.print()

    @staticmethod
    def _positions_table(positions: Sequence[PositionView]) -> RichTable:
        table = RichTable(title="Open Positions", show_header=True, header_style="bold cyan")
        table.add_column("Market", style="bold", max_width=48)
        table.add_column("Outcome")
        table.add_column("Shares", justify="right")
        table.add_column("Entry", justify="right")
        table.add_column("Price", justify="right")
        table.add_column("Value", justify="right")
        table.add_column("P&L", justify="right")
        for view in positions:
            p = view.position
            colour = _colour(view.pnl)
            table.add_row(
                p.market_title or p.market_id,
                p.outcome,
                f"{p.shares:,.2f}",
                f"{p.entry_price:.3f}",
                f"{p.current_price:.3f}",
                _money(view.current_value),
                f"[{colour}]{_signed(view.pnl)} ({view.pnl_percent}%)[/{colour}]",
            )
        return table

    @staticmethod
    def _trades_table(trades: Sequence[Trade]) -> RichTable:
        table = RichTable(title="Recent Trades", show_header=True, header_style="bold cyan")
        table.add_column("Time")
        table.add_column("Action")
        table.add_column("Market", max_width=40)
        table.add_column("Outcome")
        table.add_column("Price", justify="right")
        table.add_column("Total", justify="right")
        table.add_column("P&L", justify="right")
        table.add_column("Reason", style="dim")
        for t in trades:
            action_colour = "red" if t.is_closing else "green"
            pnl = f"[{_colour(t.pnl)}]{_signed(t.pnl)}[/{_colour(t.pnl)}]" if t.is_closing else ""
            table.add_row(
                _clock(t.created_at),
                f"[{action_colour}]{t.action.value}[/{action_colour}]",
                t.market_title or t.market_id,
                t.outcome,
                f"{t.price:.3f}",
                _money(t.total),
                pnl,
                t.reason,
            )
        return table

    @staticmethod
    def _thought_line(thought: Thought, markup: bool) -> str:
        label = thought.action.value if thought.action is not None else "NOTE"
        prefix = f"{_clock(thought.created_at)} {label} {thought.outcome}".rstrip()
        if markup:
            return f"  [dim]{prefix}[/dim] {thought.content}"
        return f"  {prefix} {thought.content}"

    # ======================================================================
    # Plain-text implementation
    # ======================================================================

    def _print_snapshot_plain(self, snapshot: DashboardSnapshot) -> None:
        stats = snapshot.stats
        self._plain_print()
        self._plain_print("Account")
        self._plain_print(f"  Balance         {_money(stats.balance)}")
        self._plain_print(f"  Total value     {_money(stats.total_value)}")
        self._plain_print(f"  Return          {stats.return_percent}%")
        self._plain_print(f"  Realized P&L    {_signed(stats.total_pnl)}")
        self._plain_print(f"  Unrealized P&L  {_signed(stats.unrealized_pnl)}")
        self._plain_print(f"  Trades          {stats.total_trades}")
        self._plain_print(
            f"  Win rate        {stats.win_rate}% ({stats.wins}W/{stats.losses}L)"
        )
        self._plain_print(f"  Open positions  {stats.active_positions}")

        self._plain_print()
        self._plain_print("Open Positions")
        if not snapshot.positions:
            self._plain_print("  (none)")
        for view in snapshot.positions:
            p = view.position
            self._plain_print(
                f"  {p.outcome:<4} {p.entry_price:.3f} -> {p.current_price:.3f}  "
                f"{_signed(view.pnl)} ({view.pnl_percent}%)  {p.market_title or p.market_id}"
            )

        self._plain_print()
        self._plain_print("Recent Trades")
        if not snapshot.recent_trades:
            self._plain_print("  (none)")
        for t in snapshot.recent_trades:
            pnl = f"  {_signed(t.pnl)}" if t.is_closing else ""
            self._plain_print(
                f"  {_clock(t.created_at)} {t.action.value:<4} {t.outcome:<4} "
                f"@ {t.price:.3f}  {_money(t.total)}{pnl}  {t.market_title or t.market_id}"
            )

        spark = _sparkline(cumulative_pnl(snapshot.recent_trades))
        if spark:
            self._plain_print()
            self._plain_print(f"Realized P&L {spark}")

        if snapshot.recent_thoughts:
            self._plain_print()
            self._plain_print("Recent thoughts")
            for thought in snapshot.recent_thoughts:
                self._plain_print(self._thought_line(thought, markup=False))
        self._plain_print()
