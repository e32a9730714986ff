"""
PlaceLens - Main Entry Point

Naver Place listing diagnosis: crawl, score, discover competitors and
generate improvement content.

Usage:
    python main.py diagnose https://naver.me/xxxx --industry cafe
    python main.py diagnose 1234567890 --industry hairshop --paid
"""

import argparse
import asyncio
import logging
import sys

import structlog

from placelens.browser.session import shutdown_browser_manager
from placelens.config import get_settings
from placelens.services.diagnosis import DiagnosisService


def configure_logging() -> None:
    """Install the structlog processor chain (JSON lines unless LOG_JSON=false)."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=settings.log_level)

    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="placelens", description="Naver Place listing diagnosis")
    commands = parser.add_subparsers(dest="command", required=True)

    diagnose = commands.add_parser("diagnose", help="Diagnose one listing")
    diagnose.add_argument("url", help="Listing URL, naver.me short link or place id")
    diagnose.add_argument("--industry", default="hairshop", help="hairshop, cafe or restaurant")
    diagnose.add_argument("--paid", action="store_true", help="Add competitors and generated content")
    diagnose.add_argument("--search-phrase", default=None, help="Competitor search phrase override")
    diagnose.add_argument("--target-score", type=int, default=None, help="Generated content target score")
    return parser


async def run_diagnosis(args: argparse.Namespace) -> int:
    service = DiagnosisService()
    try:
        if args.paid:
            result = await service.diagnose_paid(
                args.url,
                args.industry,
                search_phrase=args.search_phrase,
                target_score=args.target_score,
            )
            await service.discovery.drain_abandoned()
        else:
            result = await service.diagnose(args.url, args.industry)
    finally:
        await shutdown_browser_manager()

    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the command line."""
    configure_logging()
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logger.info("placelens_start", command=args.command, environment=settings.app_env)
    return asyncio.run(run_diagnosis(args))


if __name__ == "__main__":
    sys.exit(main())
