import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn

from viewcounter.api.context import ServiceContext
from viewcounter.config import AppConfig, load_config, validate_startup
from viewcounter.core.errors import ViewCounterError

logger = logging.getLogger("cli")


def handle_provision(config: AppConfig, args: argparse.Namespace) -> None:
    validate_startup(config)
    ctx = ServiceContext.create(config)
    try:
        ctx.provision()
    finally:
        ctx.close()
    print(f"Provisioned {len(ctx.registry.tenant_ids)} apps in {config.database.path}.")


def handle_check_config(config: AppConfig, args: argparse.Namespace) -> None:
    validate_startup(config)
    print(json.dumps(config.model_dump(), indent=2))


def handle_serve(config: AppConfig, args: argparse.Namespace) -> None:
    from viewcounter.api.main import create_app

    app = create_app(config)
    uvicorn.run(
        app,
        host=args.host or config.server.host,
        port=args.port or config.server.port,
        log_level=args.log_level.lower(),
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="viewcounter CLI")
    parser.add_argument("--config", type=Path, help="Path to viewcounter.yaml")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # provision
    subparsers.add_parser("provision", help="Create tables for every allowed app")

    # check-config
    subparsers.add_parser("check-config", help="Validate and print the configuration")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config)")

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        config = load_config(args.config)
        if args.command == "provision":
            handle_provision(config, args)
        elif args.command == "check-config":
            handle_check_config(config, args)
        elif args.command == "serve":
            handle_serve(config, args)
    except ViewCounterError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
