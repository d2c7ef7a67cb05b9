"""Command-line entry point.

Usage:
    dataset-viewer serve [--config FILE] [--host HOST] [--port PORT]
    dataset-viewer protocols
"""

import argparse
import sys
import textwrap

from dataset_viewer.config import Config
from dataset_viewer.exceptions import ConfigError
from dataset_viewer.plugins import available_protocols
from dataset_viewer.state import AppState


def cmd_serve(args: argparse.Namespace) -> int:
    if args.config:
        state = AppState.from_config(args.config)
    else:
        state = AppState(Config.from_env())
    state.serve(host=args.host, port=args.port)
    return 0


def cmd_protocols(args: argparse.Namespace) -> int:
    for protocol in available_protocols():
        print(protocol)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dataset-viewer",
        description="Browse and preview files in remote storage and archives",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""
        examples:
          dataset-viewer serve --port 9000
          dataset-viewer serve --config config.yaml
          dataset-viewer protocols
        """),
    )
    sub = parser.add_subparsers(dest="command", help="Command to run")

    p = sub.add_parser("serve", help="Run the HTTP and WebSocket server")
    p.add_argument("-c", "--config", help="YAML or JSON configuration file")
    p.add_argument("--host", help="Host to bind to (overrides config)")
    p.add_argument("--port", type=int, help="Port to bind to (overrides config)")

    sub.add_parser("protocols", help="List the storage protocols that can be connected")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "serve": cmd_serve,
        "protocols": cmd_protocols,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except FileNotFoundError as e:
        print(f"Config file not found: {e.filename}", file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
