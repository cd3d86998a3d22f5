#!/usr/bin/env python3
"""Fleet Updater CLI.

This module provides a command-line interface for pushing one set of target
application versions to every device listed in a batch file. Devices are
identified by MAC address and updated concurrently through the fleet
profile-management API.

Architecture:
    - FleetConfig carries endpoint, token, caller identity and worker count
    - CsvDeviceReader / WorkbookDeviceReader validate the device list
    - Dispatcher fans the update out over a pool of UpdateClient workers

Environment Variables:
    - FLEET_API_URL: Profile API base URL (default: http://fleet.intra.example.com:6565)
    - FLEET_AUTH_TOKEN: Static authentication token (warns when unset)

Example Usage:
    $ python main.py music_app=v1.4.10 devices.csv         # Update from a CSV file
    $ python main.py -n 8 a=v1.0.0 b=v2.1.3 devices.xlsx   # Eight workers, workbook input
    $ cat devices.csv | python main.py -v a=v1.0.0 -       # Read devices from stdin
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.fleet.api import ConfigurationError, FleetConfig, parse_application_versions
from src.fleet.api.config import DEFAULT_WORKERS
from src.fleet.batch import BatchReport, batch_update, open_device_reader

logger = logging.getLogger(__name__)


@dataclass
class CommandArgs:
    """Validated command line."""

    device_list: str
    workers: int = DEFAULT_WORKERS
    applications: dict[str, str] = field(default_factory=dict)
    verbose: bool = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        usage="%(prog)s [options] [application_id=vM.m.p ...] device_csv",
        description="Update application versions on a fleet of devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py music_app=v1.4.10 devices.csv       # Update every device in devices.csv
  python main.py -n 8 music_app=v1.4.10 devices.csv  # Use eight parallel workers
  python main.py music_app=v1.4.10 -                 # Read the device list from stdin

The device list needs a header row with a 'mac_addresses' column.
        """
    )

    parser.add_argument(
        "-v",
        dest="verbose",
        action="store_true",
        help="verbose mode"
    )
    parser.add_argument(
        "-n",
        dest="workers",
        type=int,
        default=DEFAULT_WORKERS,
        metavar="WORKERS",
        help=f"number of parallel updates (default: {DEFAULT_WORKERS})"
    )
    parser.add_argument(
        "arguments",
        nargs="*",
        metavar="application_id=vM.m.p ... device_csv",
        help="target versions followed by the device list ('-' for stdin)"
    )
    return parser


def parse_command(argv: Optional[list[str]] = None) -> CommandArgs:
    """Parse the command line.

    The last positional argument is the device list; everything before it
    is an application version spec.

    Raises:
        ConfigurationError: If the device list is missing or a spec is invalid
    """
    args = build_parser().parse_intermixed_args(argv)

    if not args.arguments:
        raise ConfigurationError("Missing 'device_csv' argument.")

    *specs, device_list = args.arguments
    return CommandArgs(
        device_list=device_list,
        workers=args.workers,
        applications=parse_application_versions(specs),
        verbose=args.verbose,
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


async def run(args: CommandArgs) -> BatchReport:
    """Load configuration, open the device list and run the batch."""
    config = FleetConfig.from_env(workers=args.workers)

    with open_device_reader(args.device_list) as reader:
        return await batch_update(config, reader, args.applications)


def main(argv: Optional[list[str]] = None) -> int:
    try:
        args = parse_command(argv)
    except ConfigurationError as e:
        configure_logging(verbose=False)
        logger.error(e.message)
        return 1

    configure_logging(args.verbose)
    logger.debug("Fleet Updater Starting Up")

    try:
        report = asyncio.run(run(args))
    except ConfigurationError as e:
        logger.error(e.message)
        return 1

    summary = report.to_dict()
    logger.info(
        f"Batch complete: {summary['succeeded']} updated, {summary['failed']} failed, "
        f"{summary['skipped_rows']} skipped"
    )
    logger.debug("Fleet Updater Finished")
    return 0


if __name__ == "__main__":
    sys.exit(main())
