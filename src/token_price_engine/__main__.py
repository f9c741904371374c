"""Command-line entry point.

Usage examples:
  python -m token_price_engine run            # scheduler service until interrupted
  python -m token_price_engine price ETH
  python -m token_price_engine price 0x... --chain bsc --skip-cache
  python -m token_price_engine status --probe
  python -m token_price_engine cleanup-cache
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from token_price_engine.config import ConfigurationError, Settings, get_settings
from token_price_engine.providers.models import Chain
from token_price_engine.service import PriceService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="token-price-engine",
        description="Resolve token prices across market-data sources and run price alerts.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the alert scheduler until interrupted")
    run.add_argument("--dry-run", action="store_true", help="Log alerts instead of sending them")

    price = sub.add_parser("price", help="Resolve one token and print the market record")
    price.add_argument("reference", help="Ticker symbol or contract address")
    price.add_argument("--chain", choices=[c.value for c in Chain], default=None)
    price.add_argument("--skip-cache", action="store_true", help="Bypass cached records")

    status = sub.add_parser("status", help="Show per-source health")
    status.add_argument("--probe", action="store_true", help="Send a probe request to every source")

    sub.add_parser("cleanup-cache", help="Remove expired cache entries once")
    return parser


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.get_logging_level(), format=LOG_FORMAT)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _run(settings: Settings) -> int:
    service = PriceService(settings)
    await service.run()
    return 0


async def _price(settings: Settings, reference: str, chain: str | None, skip_cache: bool) -> int:
    async with PriceService(settings, run_scheduler=False) as service:
        record = await service.resolve(reference, chain, skip_cache=skip_cache)
    if record is None:
        print(json.dumps({"reference": reference, "chain": chain, "found": False}))
        return 1
    print(json.dumps(record.to_dict(), indent=2))
    return 0


async def _status(settings: Settings, probe: bool) -> int:
    async with PriceService(settings, run_scheduler=False) as service:
        status = await service.provider_status(probe=probe)
    payload: dict[str, Any] = {
        "primary": status.primary,
        "sources": [
            {
                "name": s.name,
                "healthy": s.healthy,
                "consecutive_failures": s.state.consecutive_failures,
                "backoff_seconds": s.state.backoff_seconds,
                "probing": s.state.probing,
                "last_error": s.state.last_error,
                "probe_ok": s.probe_ok,
            }
            for s in status.sources
        ],
    }
    print(json.dumps(payload, indent=2))
    return 0


async def _cleanup_cache(settings: Settings) -> int:
    async with PriceService(settings, run_scheduler=False) as service:
        removed = await service.cleanup_cache()
    print(json.dumps({"removed": removed}))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = get_settings()
        if args.command == "run" and args.dry_run:
            settings = settings.model_copy(update={"dry_run": True})
        settings.validate_requirements(command=args.command)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    _configure_logging(settings)
    logger.debug("Settings: %s", settings.redacted_summary())

    try:
        if args.command == "run":
            return asyncio.run(_run(settings))
        if args.command == "price":
            return asyncio.run(_price(settings, args.reference, args.chain, args.skip_cache))
        if args.command == "status":
            return asyncio.run(_status(settings, args.probe))
        return asyncio.run(_cleanup_cache(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
