"""Command-line interface for the user directory service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from dataclasses import asdict
from typing import Sequence

from userdir.config import (
    ServiceConfig,
    apply_environment_overrides,
    load_service_config,
    resolve_config_path,
)

logger = logging.getLogger("userdir.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User directory service")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP user directory service")
    serve_parser.add_argument("--host", default=None, help="Bind address (overrides the configuration)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: 3000 or $PORT)",
    )
    serve_parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (default: $USERDIR_CONFIG or config/service.yaml)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_config(args: argparse.Namespace) -> ServiceConfig:
    config_path = resolve_config_path(args.config or os.getenv("USERDIR_CONFIG"))
    config = apply_environment_overrides(load_service_config(config_path))
    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if overrides:
        config = ServiceConfig.from_dict({**asdict(config), **overrides})
    return config


def _serve(config: ServiceConfig) -> None:
    from userdir.application import create_application
    import uvicorn

    display_host = "localhost" if config.host in {"0.0.0.0", "::"} else config.host
    logger.info("User directory API running on http://%s:%s", display_host, config.port)
    logger.info("Health check: http://%s:%s/health", display_host, config.port)

    app = create_application(config=config)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    try:
        config = _load_config(args)
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    logging.basicConfig(level=config.log_level, format="%(asctime)s [%(levelname)s] %(message)s")

    if args.command == "serve":
        _serve(config)


if __name__ == "__main__":
    main()
