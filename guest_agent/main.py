import argparse
import json
import sys
from pathlib import Path

from loguru import logger

from guest_agent.config.directories import DirectoriesProvider
from guest_agent.config.settings import load_options
from guest_agent.logging import setup_logging
from guest_agent.platform.exceptions import PlatformError
from guest_agent.platform.provider import PlatformProvider
from guest_agent.retry import RetryExhaustedError
from guest_agent.storage.exceptions import StorageError


def build_parser():
    parser = argparse.ArgumentParser(description="VM guest agent platform setup")
    parser.add_argument(
        "-p",
        "--platform",
        default="ubuntu",
        help="Guest OS family (ubuntu, centos, dummy)",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--settings", type=Path, help="Path to the agent settings JSON file")
    parser.add_argument("--ephemeral-disk-path", help="Set up the ephemeral disk at this device")
    parser.add_argument("--vitals", action="store_true", help="Print current vitals as JSON")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug)

    options = load_options(args.settings)
    provider = PlatformProvider(options, DirectoriesProvider())
    try:
        platform = provider.get(args.platform)
        logger.info(f"Using platform {args.platform}")

        if args.ephemeral_disk_path:
            platform.setup_ephemeral_disk_with_path(args.ephemeral_disk_path)

        if args.vitals:
            print(json.dumps(platform.get_vitals().to_dict(), indent=2))
    except (PlatformError, StorageError, RetryExhaustedError) as error:
        logger.error(f"{type(error).__name__}: {error}")
        return 1
    finally:
        provider.shutdown(timeout=1.0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
