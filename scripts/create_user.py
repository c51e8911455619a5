import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskhub.application import build_mongo_services
from taskhub.config import load_settings, resolve_config_path
from taskhub.errors import TaskHubError
from taskhub.users import MIN_PASSWORD_LENGTH


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a task management user")
    parser.add_argument("username", help="Unique username for login")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("--first-name", default=None)
    parser.add_argument("--last-name", default=None)
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the YAML configuration (defaults to TASKHUB_CONFIG or config/config.yaml)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass(f"Password (at least {MIN_PASSWORD_LENGTH} characters): ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("The two passwords differ, try again.", file=sys.stderr)
            continue
        if len(password) < MIN_PASSWORD_LENGTH:
            print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    settings = load_settings(resolve_config_path(args.config_path or os.getenv("TASKHUB_CONFIG")))
    services = build_mongo_services(settings)

    try:
        user = services.users.register(
            args.username,
            args.email,
            password,
            first_name=args.first_name,
            last_name=args.last_name,
        )
    except TaskHubError as exc:  # duplicates, validation
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        services.close()

    print(f"Created user {user.id}: {user.username} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
