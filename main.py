import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version

from services.base import APIError
from services.config import ConfigError, ConfigManager, parse_duration
from tv_cleaner import TVCleaner

PACKAGE_NAME = "tv-cleaner-3k"

logger = logging.getLogger(__name__)


def duration_arg(value: str):
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PACKAGE_NAME,
        description="Clean up media that has been fully downloaded in Sonarr and fully watched.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    tv = subparsers.add_parser("tv", help="clean up watched TV seasons")
    tv.add_argument(
        "-f",
        "--delete-files",
        action="store_true",
        help="Actually unmonitor and delete seasons (default is a dry run)",
    )
    tv.add_argument(
        "--retain-for",
        type=duration_arg,
        metavar="DURATION",
        help="Keep fully-watched seasons this long after airing, e.g. '14d' (overrides config)",
    )
    tv.add_argument("-c", "--config", help="Path to config.yaml")
    tv.add_argument("-v", "--verbose", action="store_true", help="Log every skipped season")

    subparsers.add_parser("version", help="display version information")
    return parser


def get_version() -> str:
    try:
        return version(PACKAGE_NAME)
    except PackageNotFoundError:
        return "unknown"


def run_tv(args) -> int:
    try:
        config = ConfigManager(args.config, retain_for=args.retain_for).config
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    try:
        cleaner = TVCleaner(config)
        report = cleaner.clean_tv(delete_files=args.delete_files)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except APIError as e:
        logger.error(f"Aborting, nothing was deleted: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    finally:
        config.clear_secrets()

    return 0 if report.ok else 1


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "version":
        print(f"{PACKAGE_NAME} {get_version()}")
        return 0

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    return run_tv(args)


if __name__ == "__main__":
    sys.exit(main())
