#!/usr/bin/env python3
# Call Success Report
# This script reads call detail records from Cassandra, applies optional phone number
# and duration filters, and prints how many of the matching calls were successful.

import argparse
import logging
import sys
from typing import List, Optional

from cassandra import DriverException
from cassandra.cluster import NoHostAvailable

from call_success_processor import (
    DEFAULT_CHUNK_SIZE,
    CallReportError,
    CallSuccessProcessor,
    ConfigurationError,
    FilterCriteria,
)
from cassandra_source import CassandraCallSource

logger = logging.getLogger("CallSuccessReport")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure logging to stderr and optionally to a file.

    Stdout is left to the report line. When the log file cannot be opened,
    stderr logging is still set up before the error is raised.

    Args:
        verbose: Log at DEBUG instead of INFO
        log_file: Path of an additional log file
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            file_error = e

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    if file_error is not None:
        raise ConfigurationError(f"Cannot open log file {log_file}: {str(file_error)}") from file_error


def parse_arguments(argv: Optional[List[str]] = None):
    """
    Parse command line arguments.

    Args:
        argv: Arguments to parse, sys.argv[1:] when omitted

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description='Report the ratio of successful calls in calldrop.userdata.')
    parser.add_argument('--contact-points', '-c', required=True,
                        help='Contact points, e.g. "127.0.0.1", "127.0.0.1,127.0.0.2", "server1.domain.com"')
    parser.add_argument('--ssl-cert-path', '-s', help='SSL cert to use while connecting')
    parser.add_argument('--filter-user-phone-number', help='Phone number to filter on')
    parser.add_argument('--duration-min', help='Minimum duration to filter on, as "hours:minutes:seconds"')
    parser.add_argument('--duration-max', help='Maximum duration to filter on, as "hours:minutes:seconds"')
    parser.add_argument('--fetch-size', type=int, default=DEFAULT_CHUNK_SIZE,
                        help=f'Rows fetched per page (default: {DEFAULT_CHUNK_SIZE})')
    parser.add_argument('--log-file', help='Also write log messages to this file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    args = parser.parse_args(argv)
    if args.fetch_size < 1:
        parser.error('--fetch-size must be a positive integer')
    return args


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the script.

    Args:
        argv: Command line arguments, sys.argv[1:] when omitted

    Returns:
        Exit status, 0 when the report was printed
    """
    args = parse_arguments(argv)

    try:
        setup_logging(args.verbose, args.log_file)

        criteria = FilterCriteria.from_text(
            user_phone_number=args.filter_user_phone_number,
            duration_min=args.duration_min,
            duration_max=args.duration_max,
        )
        logger.debug(f"Filters: {criteria}")

        processor = CallSuccessProcessor(criteria, chunk_size=args.fetch_size)
        with CassandraCallSource(args.contact_points, args.ssl_cert_path,
                                 fetch_size=args.fetch_size) as source:
            result = processor.process_records(source.fetch_call_records())

    except CallReportError as e:
        logger.error(str(e))
        return 1
    except (NoHostAvailable, DriverException) as e:
        logger.error(f"Cassandra error: {str(e)}")
        return 1

    print(result.format_summary())
    return 0


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
