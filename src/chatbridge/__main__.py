"""CLI entry point for chatbridge."""

from __future__ import annotations

import argparse
import sys

from chatbridge.config import load_config
from chatbridge.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="chatbridge",
        description="Relay between users' Telegram bots and real-time web clients",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (("start", "Start the relay server"), ("config-check", "Validate configuration")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
        sub.add_argument("-e", "--env", default=".env", help="Path to .env file")

    args = parser.parse_args()

    if args.command is None:
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "start":
        _run(args.config, args.env)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  Listen: {config.server.host}:{config.server.port}")
    print(f"  JWT algorithm: {config.auth.algorithm}")
    print(f"  History limit: {config.relay.history_limit}")


def _run(config_path: str, env_path: str) -> None:
    """Load config and serve the application until interrupted."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, config.log_format)

    import uvicorn

    from chatbridge.app import RelayApp
    from chatbridge.server.api import create_app

    app = create_app(RelayApp(config))
    # uvicorn installs the SIGINT/SIGTERM handlers and drives the lifespan shutdown
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
