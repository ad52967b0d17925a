"""Command line tool for running event-driven components on the local host."""

import argparse
import asyncio
import logging
import sys
import traceback

from tm_local.exceptions import TmLocalException
from . import apply, delete, get, start, trigger

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for running a local event mesh.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    apply.ApplyAction.register(subparsers)
    start.StartAction.register(subparsers)
    start.StopAction.register(subparsers)
    delete.DeleteAction.register(subparsers)
    get.GetAction.register(subparsers)
    trigger.TriggerAction.register(subparsers)
    return parser


def main() -> None:
    """tm-local command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args()

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except TmLocalException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("tm-local error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
