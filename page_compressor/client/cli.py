"""Command-line entry point for the browser client runtime."""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from page_compressor.client.background import BackgroundService
from page_compressor.client.browser import BrowserRuntime
from page_compressor.services.errors import CompressorError

logger = logging.getLogger("page_compressor.client.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Load pages in a headless browser with heavy resources blocked"
    )
    parser.add_argument("urls", nargs="+", help="One or more URLs to visit")
    parser.add_argument(
        "--keep-css",
        action="store_true",
        help="Leave stylesheets and scripts alone (images, media and fonts are still blocked)",
    )
    parser.add_argument(
        "--baseline",
        action="store_true",
        help="Visit each URL once with optimization off first to record a baseline",
    )
    parser.add_argument("--settle", type=float, default=None, help="Seconds to wait after load before measuring")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


async def run(args: argparse.Namespace) -> int:
    background = BackgroundService()
    background.install()
    runtime = BrowserRuntime(background, headless=not args.headed, settle_delay_seconds=args.settle)

    failures = 0
    for url in args.urls:
        try:
            if args.baseline:
                await runtime.visit(url)
            await background.handle(
                {"action": "setState", "extensionEnabled": True, "cssRemovalEnabled": not args.keep_css}
            )
            result = await runtime.visit(url)
        except CompressorError as e:
            logger.error("Failed to optimize %s: %s", url, e)
            failures += 1
            continue
        finally:
            await background.handle({"action": "setState", "extensionEnabled": False})

        report = result.metrics.model_dump(by_alias=True) if result.metrics else {}
        print(json.dumps({"url": result.url, "metrics": report}, indent=2))

    logger.info("Blocked %d requests", runtime.blocked_requests)
    return 1 if failures else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
