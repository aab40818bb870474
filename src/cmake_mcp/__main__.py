"""Entry point for cmake-mcp server."""

import argparse
import asyncio
import logging
import os
import sys

from .build import BuildManager, CMakeSettings
from .build.policy import DEFAULT_BUILD_TYPE, DEFAULT_GENERATOR
from .server import create_server
from .utils.project import configure_project_root, find_cmake_source_root


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="CMake MCP Server - Configure, build and inspect CMake projects via MCP"
    )
    parser.add_argument(
        "--source",
        type=str,
        default=None,
        help="CMake source directory containing the top-level CMakeLists.txt.",
    )
    parser.add_argument(
        "--source-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect the source directory from the current working directory. "
        "Searches upward for CMakePresets.json, CMakeLists.txt or .git markers. "
        "Cannot be used with --source.",
    )
    parser.add_argument(
        "--build-dir",
        type=str,
        default=None,
        help="Build directory (default: <source>/build).",
    )
    parser.add_argument(
        "--generator",
        type=str,
        default=DEFAULT_GENERATOR,
        help=f"CMake generator (default: {DEFAULT_GENERATOR}).",
    )
    parser.add_argument(
        "--build-type",
        type=str,
        default=DEFAULT_BUILD_TYPE,
        help=f"CMAKE_BUILD_TYPE or multi-config configuration (default: {DEFAULT_BUILD_TYPE}).",
    )
    return parser.parse_args(argv)


async def main() -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args()

    if args.source_from_cwd:
        if args.source is not None:
            logger.error("--source-from-cwd cannot be used with --source")
            sys.exit(1)
        source = str(find_cmake_source_root())
        logger.info(f"Auto-detected source directory: {source}")
    else:
        source = args.source

    configure_project_root(
        use_source_from_cwd=args.source_from_cwd,
        explicit_source_path=source,
        startup_cwd=os.getcwd(),
    )

    # Without a source directory, settings are resolved from MCP roots on first use
    settings = None
    if source is not None:
        settings = CMakeSettings(
            source_directory=source,
            build_directory=args.build_dir,
            generator=args.generator,
            build_type=args.build_type,
        )
        logger.info(
            f"Starting CMake MCP Server (source: {settings.source_directory}, "
            f"build: {settings.build_directory})..."
        )
    else:
        logger.info("Starting CMake MCP Server (source from client roots)...")

    mcp = create_server(settings)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        cancelled = await BuildManager().cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} running invocation(s)")
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
