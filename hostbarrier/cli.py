from __future__ import annotations

"""Command-line entry point for the startup barrier.

Usage example:
    hostbarrier -h /etc/cluster/hosts

Blocks until every other host listed in the file has announced readiness,
then prints ``READY`` and exits 0.  Any configuration, socket or deadline
failure exits 1.
"""

from pathlib import Path
from typing import List, Optional
import argparse
import logging
import socket
import sys

from .config import get_config
from .controller import BarrierController
from .errors import BarrierError, ConfigError
from .logger import configure_logging

SUCCESS_MARKER = "READY"

logger = logging.getLogger("hostbarrier")


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors as :class:`ConfigError`."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        raise ConfigError(message)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments.

    ``-h`` names the hostfile, so help is only available as ``--help``.

    Returns:
        Parsed arguments as a namespace.
    """
    parser = _ArgumentParser(
        prog="hostbarrier",
        description="Wait until every host in a hostfile is up.",
        add_help=False,
    )
    parser.add_argument("-h", "--hostfile", dest="hostfile", type=Path, required=True,
                        help="File with one peer hostname per line")
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("--hostname", dest="hostname", default=None,
                        help="Local identity (default: system hostname)")
    parser.add_argument("--port", dest="port", type=int, default=None,
                        help="UDP port to listen and send on (default: 5000)")
    parser.add_argument("--bind-address", dest="bind_address", default=None,
                        help="Address to bind the listener to (default: 0.0.0.0)")
    parser.add_argument("--buffer-size", dest="buffer_size", type=int, default=None,
                        help="Maximum datagram size in bytes (default: 1024)")
    parser.add_argument("--max-attempts", dest="max_attempts", type=int, default=None,
                        help="Announce rounds (default: 5)")
    parser.add_argument("--retry-interval-ms", dest="retry_interval_ms", type=int, default=None,
                        help="Delay between announce rounds (default: 1000)")
    parser.add_argument("--timeout-ms", dest="overall_timeout_ms", type=int, default=None,
                        help="Fail if the barrier is not reached in time (default: wait forever)")
    parser.add_argument("--strict", dest="strict_membership", action="store_true", default=None,
                        help="Reject blank and duplicate hostfile entries")
    parser.add_argument("--early-stop", dest="early_stop", action="store_true", default=None,
                        help="Stop announcing once every peer has been heard")
    parser.add_argument("--log-level", dest="log_level", default=None,
                        help="DEBUG, INFO, WARNING or ERROR (default: INFO)")
    parser.add_argument("--log-file", dest="log_file", default=None,
                        help="Also append log records to this file")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint for the CLI script.

    Returns:
        Process exit status: 0 once the barrier is reached, 1 otherwise.
    """
    try:
        args = parse_args(argv)
        overrides = vars(args).copy()
        hostfile: Path = overrides.pop("hostfile")
        config = get_config(**overrides)
    except ConfigError as exc:
        print(f"hostbarrier: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.log_level, config.log_file)
    self_id = config.hostname or socket.gethostname()

    try:
        BarrierController(hostfile, self_id, config).run()
    except BarrierError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 1

    print(SUCCESS_MARKER, flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
