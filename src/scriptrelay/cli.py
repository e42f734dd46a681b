"""Command-line interface for scriptrelay.

Provides the main entry point for running the relay server, and small
client commands for sending, polling and inspecting a running relay.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="scriptrelay",
        description="Polling command relay for game-script clients",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/scriptrelay.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the relay server")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port")
    serve_parser.add_argument(
        "--mode", choices=["role", "flat"], default=None,
        help="Visibility filter to use",
    )

    # Client identity shared by the client subcommands
    identity = argparse.ArgumentParser(add_help=False)
    identity.add_argument("--url", type=str, default=None, help="Relay base URL")
    identity.add_argument("--script-id", type=str, default=None)
    identity.add_argument("--sender-id", type=str, default=None)
    identity.add_argument("--sender-name", type=str, default=None)

    send_parser = subparsers.add_parser("send", parents=[identity], help="Send a command")
    send_parser.add_argument("name", type=str, help="Command name (e.g. bring, say)")
    send_parser.add_argument(
        "--arg", action="append", default=[], metavar="KEY=VALUE",
        help="Extra command argument (repeatable)",
    )
    send_parser.add_argument("--target", type=str, default=None, help="Recipient id or name")

    poll_parser = subparsers.add_parser("poll", parents=[identity], help="Poll for commands")
    poll_parser.add_argument(
        "--follow", action="store_true",
        help="Keep polling and print each new command once",
    )

    register_parser = subparsers.add_parser(
        "register", parents=[identity], help="Register this client",
    )
    register_parser.add_argument("--admin", action="store_true", help="Register as an admin")

    subparsers.add_parser("status", parents=[identity], help="Show relay status")
    subparsers.add_parser("users", parents=[identity], help="List registered users")

    return parser.parse_args(argv)


def parse_arg_pairs(pairs: list[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` strings into a dict."""
    result = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        result[key.strip()] = value.strip()
    return result


def _build_client(settings, args):
    from scriptrelay.client import RelayClient

    cc = settings.client
    api_key = settings.auth.api_key.get_secret_value() or None
    return RelayClient(
        base_url=args.url or cc.base_url,
        script_id=args.script_id or cc.script_id,
        sender_id=args.sender_id or cc.sender_id,
        sender_name=args.sender_name or cc.sender_name,
        api_key=api_key,
        timeout=cc.timeout,
    )


async def _run_client(settings, args) -> None:
    """Run one of the client subcommands against a relay."""
    async with _build_client(settings, args) as client:
        if args.command == "send":
            command_id = await client.send(
                args.name, args=args.extra, target=args.target,
            )
            print(f"Sent {args.name} (id {command_id})")

        elif args.command == "register":
            role = await client.register(is_authorized=args.admin)
            print(f"Registered as {role}")

        elif args.command == "poll":
            if args.follow:
                async for command in client.listen(interval=settings.client.poll_interval):
                    print(json.dumps(command))
            else:
                commands = await client.poll()
                for command in commands:
                    print(json.dumps(command))
                print(f"{len(commands)} command(s)")

        elif args.command == "status":
            print(json.dumps(await client.status(), indent=2))

        elif args.command == "users":
            print(json.dumps(await client.users(), indent=2))


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the scriptrelay CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from scriptrelay.config.settings import load_settings
    from scriptrelay.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting relay server")
        from scriptrelay.server import create_app
        import uvicorn
        srv = settings.server
        rc = settings.relay
        app = create_app(
            filter_mode=args.mode or rc.filter_mode,
            capacity=rc.capacity,
            poll_window_ms=rc.poll_window_ms,
            max_age_ms=rc.max_age_ms,
            prune_interval=rc.prune_interval,
            api_key=settings.auth.api_key.get_secret_value() or None,
            require_api_key=settings.auth.require_api_key,
            cors_origins=srv.cors_origins,
        )
        uvicorn.run(
            app,
            host=args.host or srv.host,
            port=args.port or srv.port,
        )

    else:
        from scriptrelay.client import RelayClientError

        if args.command == "send":
            try:
                args.extra = parse_arg_pairs(args.arg)
            except ValueError as e:
                logger.error("%s", e)
                sys.exit(2)

        try:
            asyncio.run(_run_client(settings, args))
        except KeyboardInterrupt:
            logger.info("Interrupted")
        except RelayClientError as e:
            logger.error("%s", e)
            sys.exit(1)


if __name__ == "__main__":
    main()
