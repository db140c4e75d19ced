"""Command line entry point."""

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import Config
from .errors import CredentialLocked, TermxferError
from .host.params import parse_address
from .ui.console import Console
from .ui.controller import AppController
from .ui.log_buffer import LogBuffer

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONNECTION_FAILED = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="termxfer",
        description="Browse and transfer files between this machine and a remote host.",
    )
    parser.add_argument(
        "address",
        nargs="?",
        help="[protocol://][user@]host[:port][/path], s3://bucket@region[:profile][/path] or an ssh config alias",
    )
    parser.add_argument("local_dir", nargs="?", help="local start directory")
    parser.add_argument("-b", "--bookmark", help="connect through a saved bookmark")
    parser.add_argument(
        "-P", "--password", action="store_true", help="prompt for a password before connecting"
    )
    parser.add_argument("-c", "--config-dir", type=Path, help="configuration directory")
    parser.add_argument("-D", "--debug", action="store_true", help="log at debug level")
    parser.add_argument("-v", "--version", action="version", version=f"termxfer {__version__}")
    return parser


def setup_logging(log_file: Path, debug: bool, buffer: LogBuffer) -> None:
    """Send records to the log file and the in-memory buffer."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)
    root.addHandler(buffer)
    # Wire-level chatter stays out of the log panel unless debugging.
    for name in ("paramiko", "botocore", "boto3", "s3transfer", "urllib3", "watchdog"):
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)


def _initial_connect(controller: AppController, args: argparse.Namespace) -> bool:
    config = controller.state.config
    secret = getpass.getpass("Password: ") if args.password else None
    if args.bookmark:
        try:
            controller.connect_bookmark(args.bookmark, secret)
        except CredentialLocked as exc:
            print(exc, file=sys.stderr)
            controller.connect_bookmark(args.bookmark, getpass.getpass("Password: "))
    else:
        profile = parse_address(args.address, config.default_protocol, config.ssh_config_path)
        profile.secret = secret
        controller.connect(profile)
    controller.run_until_idle()
    for notification in controller.state.pop_notifications():
        print(f"[{notification.level}] {notification.text}")
    return controller.state.remote is not None


def main(argv: Optional[List[str]] = None) -> int:
    """Run termxfer; return the process exit code."""
    args = build_parser().parse_args(argv)
    config = Config(args.config_dir)
    buffer = LogBuffer()
    try:
        setup_logging(config.log_file, args.debug, buffer)
        controller = AppController.create(config, args.local_dir, buffer)
    except (TermxferError, OSError) as exc:
        print(f"termxfer: {exc}", file=sys.stderr)
        return EXIT_ERROR

    try:
        if args.address or args.bookmark:
            try:
                connected = _initial_connect(controller, args)
            except (KeyError, ValueError) as exc:
                print(f"termxfer: {exc}", file=sys.stderr)
                return EXIT_ERROR
            if not connected:
                return EXIT_CONNECTION_FAILED
        Console(controller).cmdloop()
    except KeyboardInterrupt:
        print()
    except TermxferError as exc:
        logger.exception("Fatal error")
        print(f"termxfer: {exc}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        controller.shutdown()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
