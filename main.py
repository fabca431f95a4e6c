"""Command-line interface for the Messagely service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

import anyio

from messagely.config import Settings, load_settings
from messagely.database import Database
from messagely.errors import ConflictError, NotFoundError, ValidationError
from messagely.passwords import PasswordHasher
from messagely.users import UserStore

logger = logging.getLogger("messagely.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Messagely service utilities")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML settings file (default: MESSAGELY_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the messaging database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the HTTP API (default: 3000)",
    )

    subparsers.add_parser("admin", help="Launch the interactive administration console")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    # Global options come first; the first non-option token is the command.
    index = 0
    while index < len(args_list):
        if args_list[index] == "--config":
            index += 2
        elif args_list[index].startswith("--config="):
            index += 1
        else:
            break

    if index >= len(args_list):
        args_list = [*args_list, "serve"]
    else:
        first = args_list[index]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = [*args_list[:index], "serve", *args_list[index:]]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from messagely.api import create_app
    import uvicorn

    logger.info("Starting Messagely API on http://%s:%s", host, port)

    app = create_app(settings=settings, database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _run_admin_cli(store: UserStore) -> None:
    """Provide an interactive console for administrators."""

    print("Messagely Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Show a user's profile")
            print("  4) Exit")

            choice = input("Enter choice [1-4]: ").strip()

            if choice == "1":
                _list_users(store)
            elif choice == "2":
                _add_user(store)
            elif choice == "3":
                _show_user(store)
            elif choice == "4":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(store: UserStore) -> None:
    users = anyio.run(store.all)
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'Username':<20}  {'Name':<32}  Phone")
    print("-" * 72)
    for user in users:
        name = f"{user.first_name} {user.last_name}"
        print(f"{user.username:<20}  {name:<32}  {user.phone}")


def _add_user(store: UserStore) -> None:
    print("\nCreate a new user (leave the username blank to cancel).")
    username = input("Username: ").strip()
    if not username:
        print("User creation cancelled.")
        return

    fields = {
        "username": username,
        "first_name": input("First name: ").strip(),
        "last_name": input("Last name: ").strip(),
        "phone": input("Phone: ").strip(),
    }

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return
    fields["password"] = password

    try:
        user = anyio.run(store.register, fields)
    except (ValidationError, ConflictError) as exc:
        print(f"Failed to create user: {exc}")
        return

    print(f"Created user {user.username}: {user.first_name} {user.last_name}")


def _show_user(store: UserStore) -> None:
    username = input("Username: ").strip()
    if not username:
        return
    try:
        profile = anyio.run(store.get, username)
    except NotFoundError as exc:
        print(exc)
        return

    last_login = profile.last_login_at.strftime("%Y-%m-%d %H:%M:%S %Z") if profile.last_login_at else "never"
    print(f"{profile.username}: {profile.first_name} {profile.last_name} <{profile.phone}>")
    print(f"  Joined:     {profile.join_at.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    print(f"  Last login: {last_login}")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings(args.config)
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(UserStore(database, PasswordHasher(settings.work_factor)))
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
