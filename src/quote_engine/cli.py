#!/usr/bin/env python3
"""
Quote engine command line.

Resolves quotes, history, index series or news and prints the result as
JSON on stdout. Logs go to stderr.

Usage:
    quote-engine quotes BTC-EUR RHM.DE URTH
    quote-engine history AAPL --period 1Y
    quote-engine indices --period 3M
    quote-engine news AAPL MSFT --limit 5
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger

from quote_engine.core.config import EngineConfig
from quote_engine.core.errors import InvalidInputError
from quote_engine.core.logging_config import configure_logging
from quote_engine.services.data.orchestrator import FallbackOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quote-engine",
        description="Resolve market data across CoinGecko, Yahoo, Alpha Vantage and Stooq"
    )
    parser.add_argument("--log-level", default="WARNING",
                        help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--json-logs", action="store_true", help="Serialize logs as JSON")
    parser.add_argument("--log-dir", type=Path, default=None,
                        help="Also write rotating log files to this directory")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Overall resolution deadline in seconds")

    sub = parser.add_subparsers(dest="command", required=True)

    quotes = sub.add_parser("quotes", help="Current quotes")
    quotes.add_argument("symbols", nargs="+", help="Symbols (BTC-EUR, RHM.DE, AAPL, ...)")
    quotes.add_argument("--keep-usd", action="store_true",
                        help="Do not convert USD equity quotes to EUR")

    history = sub.add_parser("history", help="Price history")
    history.add_argument("symbols", nargs="+")
    history.add_argument("--period", default=None, help="1W, 1M, 3M, 6M, 1Y, 3Y or MAX")

    index = sub.add_parser("indices", help="Index performance series")
    index.add_argument("keys", nargs="*", help="Catalog keys or tickers (default: all)")
    index.add_argument("--period", default=None, help="1W, 1M, 3M, 6M, 1Y, 3Y or MAX")

    news = sub.add_parser("news", help="News & sentiment (Alpha Vantage)")
    news.add_argument("tickers", nargs="+")
    news.add_argument("--limit", type=int, default=15)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    configure_logging(
        level=args.log_level.upper(),
        log_dir=args.log_dir,
        enable_file=args.log_dir is not None,
        serialize=args.json_logs
    )

    overrides = {}
    if args.timeout is not None:
        overrides["resolve_timeout"] = args.timeout
    if getattr(args, "keep_usd", False):
        overrides["convert_usd_to_eur"] = False

    try:
        orchestrator = FallbackOrchestrator(EngineConfig.from_env(**overrides))

        if args.command == "quotes":
            result = orchestrator.quotes(args.symbols)
        elif args.command == "history":
            result = orchestrator.history(args.symbols, period=args.period)
        elif args.command == "indices":
            result = orchestrator.indices(args.keys or None, period=args.period)
        else:
            result = orchestrator.news(args.tickers, limit=args.limit)

        print(json.dumps(result.to_dict(), indent=2))
        return 0

    except (InvalidInputError, ValueError) as e:
        logger.error(f"Invalid input: {e}")
        return 2

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
