"""Command-line interface for polysim.

Provides subcommands for running analysis cycles, printing the dashboard,
and querying version and configuration.  Each subcommand imports its
dependencies lazily so that ``polysim info`` works even when optional
LLM packages are missing.

Entry point
-----------
The ``main()`` function is registered as a console script in
``pyproject.toml``::

    [project.scripts]
    polysim = "polysim.cli:main"

Usage examples::

    polysim run --cycles 5 --interval 60 --db ledger.db
    polysim run --live --cycles 1 --verbose
    polysim dashboard --json --db ledger.db
    polysim info
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from typing import Any

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="polysim",
        description="polysim -- paper-trading simulator for prediction markets.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show version and exit.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON config file with trading/storage/provider/reasoner sections.",
    )
    common.add_argument(
        "--db",
        type=str,
        default=None,
        help="SQLite ledger path (use ':memory:' for a throwaway ledger).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Enable DEBUG logging.",
    )

    # -- run ---------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run analysis cycles.",
        description="Refresh prices, close and open positions, then show the dashboard.",
    )
    run_parser.add_argument(
        "--cycles",
        type=int,
        default=1,
        help="Number of analysis cycles to run. (default: 1)",
    )
    run_parser.add_argument(
        "--interval",
        type=float,
        default=0.0,
        help="Seconds to sleep between cycles. (default: 0)",
    )
    run_parser.add_argument(
        "--live",
        action="store_true",
        default=False,
        help="Use the live Polymarket Gamma API instead of simulated markets.",
    )
    run_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for trading decisions and simulated markets.",
    )
    run_parser.add_argument(
        "--plain",
        action="store_true",
        default=False,
        help="Plain-text output instead of rich tables.",
    )

    # -- dashboard -----------------------------------------------------------
    dash_parser = subparsers.add_parser(
        "dashboard",
        parents=[common],
        help="Print the current dashboard.",
        description="Print account stats, positions, recent trades and thoughts.",
    )
    dash_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the snapshot as JSON.",
    )
    dash_parser.add_argument(
        "--plain",
        action="store_true",
        default=False,
        help="Plain-text output instead of rich tables.",
    )

    # -- info --------------------------------------------------------------
    subparsers.add_parser(
        "info",
        parents=[common],
        help="Show version, resolved configuration and optional dependencies.",
    )

    return parser


# =========================================================================
# Helpers
# =========================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _resolve_sections(args: argparse.Namespace) -> dict[str, Any]:
    """Merge defaults, the config file, environment, and CLI flags.

    Later sources win: environment variables override the file's trading
    section and flags override everything.
    """
    from polysim.infrastructure.config import (
        ProviderConfig,
        ReasonerConfig,
        StorageConfig,
        TradingConfig,
        load_config_file,
    )

    if args.config:
        sections = load_config_file(args.config)
        sections["trading"] = TradingConfig.from_env(base=sections["trading"])
    else:
        sections = {
            "trading": TradingConfig.from_env(),
            "storage": StorageConfig(),
            "provider": ProviderConfig(),
            "reasoner": ReasonerConfig(),
        }

    if getattr(args, "db", None):
        sections["storage"] = dataclasses.replace(
            sections["storage"], backend="sqlite", path=args.db
        )
    if getattr(args, "live", False):
        sections["provider"] = dataclasses.replace(sections["provider"], kind="gamma")
    if getattr(args, "seed", None) is not None:
        sections["provider"] = dataclasses.replace(sections["provider"], seed=args.seed)
    return sections


# =========================================================================
# Subcommand handlers
# =========================================================================


async def _run_cycles(engine: Any, args: argparse.Namespace, dashboard: Any) -> None:
    import asyncio

    for index in range(1, args.cycles + 1):
        report = await engine.run_analysis_cycle()
        dashboard.print_cycle(index, report)
        if index < args.cycles and args.interval > 0:
            await asyncio.sleep(args.interval)
    dashboard.print_snapshot(await engine.get_dashboard_snapshot())


def _cmd_run(args: argparse.Namespace) -> int:
    """Handle the ``run`` subcommand."""
    import asyncio
    import random

    from polysim.presentation.console import ConsoleDashboard
    from polysim.services.engine import create_engine

    if args.cycles < 1:
        print("Error: --cycles must be >= 1", file=sys.stderr)
        return 1

    sections = _resolve_sections(args)
    rng = random.Random(args.seed)
    engine = create_engine(sections, rng=rng)
    dashboard = ConsoleDashboard(use_rich=not args.plain)

    logger.info(
        "Running %d cycle(s) against %s markets, ledger=%s",
        args.cycles,
        sections["provider"].kind,
        sections["storage"].path if sections["storage"].backend == "sqlite" else "memory",
    )
    try:
        asyncio.run(_run_with_cleanup(engine, args, dashboard))
    finally:
        engine.store.close()
    return 0


async def _run_with_cleanup(engine: Any, args: argparse.Namespace, dashboard: Any) -> None:
    try:
        await _run_cycles(engine, args, dashboard)
    finally:
        await engine.provider.aclose()


def _cmd_dashboard(args: argparse.Namespace) -> int:
    """Handle the ``dashboard`` subcommand."""
    import asyncio

    from polysim.infrastructure.serialization import snapshot_to_dict
    from polysim.presentation.console import ConsoleDashboard
    from polysim.services.engine import create_engine

    engine = create_engine(_resolve_sections(args))

    async def _snapshot() -> Any:
        try:
            return await engine.get_dashboard_snapshot()
        finally:
            await engine.provider.aclose()

    try:
        snapshot = asyncio.run(_snapshot())
    finally:
        engine.store.close()

    if args.json:
        print(json.dumps(snapshot_to_dict(snapshot), indent=2))
    else:
        ConsoleDashboard(use_rich=not args.plain).print_snapshot(snapshot)
    return 0


def _cmd_info(args: argparse.Namespace) -> int:
    """Handle the ``info`` subcommand."""
    from polysim import __version__

    print(f"polysim v{__version__}")
    print()

    sections = _resolve_sections(args)
    print("Configuration:")
    print(
        json.dumps(
            {name: cfg.to_dict() for name, cfg in sections.items() if hasattr(cfg, "to_dict")},
            indent=2,
        )
    )
    print()

    deps = {
        "httpx": "Polymarket Gamma API client",
        "pydantic": "API payload and structured output models",
        "rich": "Console dashboard",
        "langchain_core": "LLM reasoning chains",
        "langchain_anthropic": "Anthropic reasoner (optional)",
        "langchain_openai": "OpenAI reasoner (optional)",
    }
    print("Dependencies:")
    for pkg, desc in deps.items():
        try:
            mod = __import__(pkg)
            version = getattr(mod, "__version__", "unknown")
            print(f"  [installed] {pkg} {version} -- {desc}")
        except ImportError:
            print(f"  [missing]   {pkg} -- {desc}")
    return 0


# =========================================================================
# Main entry point
# =========================================================================


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parameters
    ----------
    argv:
        Command-line arguments.  Defaults to ``sys.argv[1:]``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from polysim import __version__

        print(f"polysim {__version__}")
        sys.exit(0)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handlers: dict[str, Any] = {
        "run": _cmd_run,
        "dashboard": _cmd_dashboard,
        "info": _cmd_info,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.verbose)
    try:
        exit_code = handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        exit_code = 130
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)
