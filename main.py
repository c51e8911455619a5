"""Command-line interface for the task management service."""

from __future__ import annotations
import argparse
import logging
import os
import signal
import sys
from getpass import getpass
from typing import Sequence

from taskhub.config import Settings, load_settings, resolve_config_path
from taskhub.errors import TaskHubError
from taskhub.users import MIN_PASSWORD_LENGTH

logger = logging.getLogger("taskhub.main")

KNOWN_COMMANDS = {"serve", "grpc", "init-db", "create-user"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (default: TASKHUB_CONFIG or config/config.yaml)",
    )

    parser = argparse.ArgumentParser(description="Task management service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=None, help="Port for the HTTP API")

    grpc_parser = subparsers.add_parser("grpc", parents=[common], help="Start the gRPC server")
    grpc_parser.add_argument("--port", type=int, default=None, help="Port for the gRPC server")

    subparsers.add_parser("init-db", parents=[common], help="Create the MongoDB indexes")

    user_parser = subparsers.add_parser("create-user", parents=[common], help="Create a user account")
    user_parser.add_argument("username", help="Unique username")
    user_parser.add_argument("email", help="Unique email address")
    user_parser.add_argument("--first-name", default=None)
    user_parser.add_argument("--last-name", default=None)

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in KNOWN_COMMANDS:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> Settings:
    return load_settings(resolve_config_path(config or os.getenv("TASKHUB_CONFIG")))


def _serve(settings: Settings, *, host: str | None, port: int | None) -> None:
    from taskhub.application import create_application
    import uvicorn

    host = host or settings.server.http_host
    port = port or settings.server.http_port
    logger.info("Starting task API on http://%s:%s", host, port)

    app = create_application(settings)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="debug" if settings.app.is_development else "info",
    )


def _serve_grpc(settings: Settings, *, port: int | None) -> None:
    from taskhub.application import build_mongo_services
    from taskhub.rpc import GrpcServer

    services = build_mongo_services(settings)
    server = GrpcServer(
        services,
        port=port or settings.server.grpc_port,
        max_workers=settings.server.grpc_max_workers,
    )

    def _handle_sigterm(signum, frame) -> None:
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, _handle_sigterm)
    server.start()
    try:
        server.wait_for_termination()
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
    finally:
        server.stop(grace=5.0)
        services.close()


def _initialise_database(settings: Settings) -> None:
    from taskhub.mongo import MongoStore

    store = MongoStore(settings.database)
    try:
        store.ping()
        store.ensure_indexes()
    finally:
        store.close()
    logger.info("Database %s initialised", settings.database.name)


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {MIN_PASSWORD_LENGTH} characters): ")
        if len(password) < MIN_PASSWORD_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(settings: Settings, args: argparse.Namespace) -> int:
    from taskhub.application import build_mongo_services

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.", file=sys.stderr)
        return 1

    services = build_mongo_services(settings)
    try:
        user = services.users.register(
            args.username,
            args.email,
            password,
            first_name=args.first_name,
            last_name=args.last_name,
        )
    except TaskHubError as exc:
        print(f"Failed to create user: {exc.message}", file=sys.stderr)
        return 1
    finally:
        services.close()

    print(f"Created user {user.id}: {user.username} <{user.email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = _load_settings(getattr(args, "config", None))

    level = logging.DEBUG if settings.app.is_development else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
    elif args.command == "grpc":
        _serve_grpc(settings, port=args.port)
    elif args.command == "init-db":
        _initialise_database(settings)
        print("Database initialisation complete.")
    elif args.command == "create-user":
        return _create_user(settings, args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
