"""Allow running as: python -m tickrun"""

import argparse
import asyncio
import json
import sys

from tickrun import __version__
from tickrun.config import get_client_config
from tickrun.control.client import ControlClient
from tickrun.errors import ControlProtocolError


async def _run_command(args):
    config = get_client_config()
    client = ControlClient(
        url=args.url or config.url,
        reconnect_interval_s=config.reconnect_interval_s,
        max_retries=config.max_retries,
        request_timeout_s=config.request_timeout_s,
        auto_reconnect=config.auto_reconnect,
    )
    async with client:
        if args.command == "ping":
            return await client.ping()
        if args.command == "list":
            return await client.list_tasks(offset=args.offset, limit=args.limit)
        operation = {
            "status": client.check_task_status,
            "pause": client.pause_task,
            "unpause": client.unpause_task,
            "stop": client.stop_task,
        }[args.command]
        return await operation(args.task_id)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="tickrun",
        description="Control tasks in a running tickrun host",
    )
    parser.add_argument(
        "--version", "-v", action="version", version="tickrun {}".format(__version__)
    )
    parser.add_argument("--url", default=None, help="control server URL (default: $TICKRUN_CONTROL_URL)")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("ping", help="check the host is reachable")
    list_parser = commands.add_parser("list", help="list tasks, newest first")
    list_parser.add_argument("--offset", type=int, default=0)
    list_parser.add_argument("--limit", type=int, default=None)
    for name, help_text in (
        ("status", "show one task"),
        ("pause", "pause a task"),
        ("unpause", "resume a paused task"),
        ("stop", "stop a task"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("task_id")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        response = asyncio.run(_run_command(args))
    except (OSError, ControlProtocolError) as e:
        print("error: {}".format(e), file=sys.stderr)
        return 2
    print(json.dumps(response, indent=2))
    return 0 if response.get("ok") else 1


if __name__ == "__main__":
    sys.exit(main())
