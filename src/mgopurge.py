#!/usr/bin/env python3
"""
mgopurge: repair mgo/txn transaction corruption in a Juju controller database.

Runs, in order:
1.  Repair of the runaway txn-queue on controllers/apiHostPorts.
2.  Purge of txn-queue entries referencing missing transactions, across
    every non-txn, non-system collection.
3.  Removal of applied transactions from machine txn-queues (--no-machines).
4.  Pruning of completed, unreferenced transactions (--no-prune).
5.  Database compaction (--no-compact).

Usage:
    python src/mgopurge.py --hostname 10.0.0.1 --password secret
"""

import argparse
import logging
import sys

from config import (
    MONGO_HOSTNAME, MONGO_PORT, MONGO_USERNAME, MONGO_PASSWORD, MONGO_SSL,
    MAX_HOST_PORTS_QUEUE
)
from db_utils import dial, get_db
from pipeline import PurgeOptions, PurgePipeline, StageError

logger = logging.getLogger(__name__)

CONTROLLER_PROMPT = """\
This program should only be used to recover from specific transaction
related problems in a Juju database. Casual use is strongly
discouraged. Irreversible damage may be caused to a Juju deployment
through improper use of this tool.

This program should not be run while any Juju controller machine
agents are running.

Have all controller machine agents been shut down?"""


def prompt_yn(question, stdin=None, stdout=None):
    """Ask a yes/no question. Only "y" or "yes" count as yes; EOF is no."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stdout.write(f"{question} [y/n] ")
    stdout.flush()
    answer = stdin.readline()
    if not answer:
        return False
    return answer.strip().lower() in ("y", "yes")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="mgopurge",
        description="Repair transaction related corruption in a Juju MongoDB database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full repair, prompting for confirmation
  mgopurge --hostname 10.0.0.1 --password secret

  # Purge orphaned references only, no prompt
  mgopurge --password secret --yes --no-machines --no-prune --no-compact
        """
    )

    # Connection
    parser.add_argument("--hostname", default=MONGO_HOSTNAME,
                        help="hostname of the Juju MongoDB server")
    parser.add_argument("--port", type=int, default=MONGO_PORT,
                        help="port of the Juju MongoDB server")
    parser.add_argument("--ssl", action=argparse.BooleanOptionalAction, default=MONGO_SSL,
                        help="use SSL to connect to MongoDB")
    parser.add_argument("--username", default=MONGO_USERNAME,
                        help='user for connecting to MongoDB (use "" for no authentication)')
    parser.add_argument("--password", default=MONGO_PASSWORD,
                        help="password for connecting to MongoDB")

    # Stages
    parser.add_argument("--yes", action="store_true",
                        help="answer 'yes' to prompts")
    parser.add_argument("--no-machines", action="store_true",
                        help="skip removal of completed txn-queue entries from machines collection")
    parser.add_argument("--no-prune", action="store_true",
                        help="skip pruning of completed transactions")
    parser.add_argument("--no-compact", action="store_true",
                        help="skip compacting of database")
    parser.add_argument("--max-host-ports-queue", type=int, default=MAX_HOST_PORTS_QUEUE,
                        help="apiHostPorts txn-queue length above which it is truncated "
                             "to outstanding transactions")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")

    args = parser.parse_args(argv)
    if args.username and not args.password:
        parser.error("--password must be used if username is provided")
    return args


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if not args.yes and not prompt_yn(CONTROLLER_PROMPT):
        return 0

    try:
        client = dial(args.hostname, args.port, args.username, args.password, args.ssl)
    except Exception as e:
        logger.error(f"Dial: {e}")
        return 1

    options = PurgeOptions(
        do_machines=not args.no_machines,
        do_prune=not args.no_prune,
        do_compact=not args.no_compact,
        max_host_ports_queue=args.max_host_ports_queue,
    )
    try:
        PurgePipeline(get_db(client), options).run()
    except StageError as e:
        logger.error(f"{e.stage.value}: {e.cause}")
        return 1
    finally:
        client.close()

    logger.info("Done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
