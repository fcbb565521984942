"""Command-line front end for generating PDFs without running the server.

Usage:
    doccraft generate --docs 01-intro.md,02-guide.md --title "My Document"
    doccraft sweep --max-age-hours 24
    doccraft list
"""

import argparse
import asyncio
import sys
import time

import structlog

from doccraft.config import ServiceConfig
from doccraft.generation import (
    EngineUnavailableError,
    GenerationError,
    GenerationService,
    build_service,
)
from doccraft.logging_setup import configure_logging


log = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doccraft", description="DocCraft PDF command-line tool")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="render documents into a PDF")
    gen.add_argument("--docs", default="01-intro.md,02-guide.md", help="comma-separated markdown files")
    gen.add_argument("--title", default="DocCraft Demo")
    gen.add_argument("--subtitle", default="Generated from CLI")
    gen.add_argument("--author", default=None)
    gen.add_argument("--date", default=None)

    sweep = sub.add_parser("sweep", help="delete cached PDFs older than a given age")
    sweep.add_argument("--max-age-hours", type=float, default=24.0)

    sub.add_parser("list", help="list cached PDFs")
    return parser


async def _generate(service: GenerationService, args: argparse.Namespace) -> int:
    try:
        result = await service.generate(
            args.docs,
            title=args.title,
            subtitle=args.subtitle,
            author=args.author,
            date=args.date,
            request_token=f"cli_{int(time.time() * 1000)}",
        )
    except EngineUnavailableError:
        print("Pandoc is not installed or not available in PATH", file=sys.stderr)
        print("Please install Pandoc: https://pandoc.org/installing.html", file=sys.stderr)
        return 1
    except GenerationError as e:
        print(f"Error generating PDF: {e.detail}", file=sys.stderr)
        return 1

    print(f"Output: {result.artifact.path}")
    print(f"Size: {result.size / 1024:.2f} KB")
    print(f"Cached: {'Yes' if result.cached else 'No'}")
    return 0


async def _sweep(service: GenerationService, args: argparse.Namespace) -> int:
    removed = await service.sweep_old_artifacts(args.max_age_hours * 3600)
    print(f"Removed {removed} cached PDF(s)")
    return 0


async def _list(service: GenerationService, args: argparse.Namespace) -> int:
    for artifact in await service.store.list_artifacts():
        print(f"{artifact.filename}\t{artifact.size}")
    return 0


_COMMANDS = {"generate": _generate, "sweep": _sweep, "list": _list}


def main(argv: list[str] | None = None, config: ServiceConfig | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = config or ServiceConfig.from_env()
    configure_logging(config.log_level)
    try:
        service = build_service(config)
    except GenerationError as e:
        print(f"Startup failed: {e.detail}", file=sys.stderr)
        return 1
    log.info("Running command", command=args.command)
    return asyncio.run(_COMMANDS[args.command](service, args))


if __name__ == "__main__":
    sys.exit(main())
