#!/usr/bin/env python3
"""
SecureAuth -- User authentication portal over a Parse-compatible BaaS.

Usage:
  python main.py serve --port 5000
  python main.py signup alice alice@example.com
  python main.py login alice
  python main.py whoami
  python main.py logout
  python main.py reset-password alice@example.com
  python main.py users
  python main.py set-role <objectId> admin
  python main.py delete-user <objectId>
  python main.py promote alice            # operator bootstrap, uses the master key

Environment variables:
  SECUREAUTH_URL   Base URL of a running SecureAuth server (default http://localhost:5000).
  PARSE_*          BaaS credentials, read by core/config.py for `serve` and `promote`.
"""

import argparse
import getpass
import os
import sys

from client.portal import PortalClient, PortalError

_DEFAULT_URL = "http://localhost:5000"


def _print_user(user: dict) -> None:
    verified = "verified" if user.get("emailVerified") else "unverified"
    print(f"  {user.get('username')} <{user.get('email')}>  role={user.get('role')}  {verified}")
    print(f"  id={user.get('objectId')}  created={user.get('createdAt', '')[:10]}")


def _password(prompt: str = "Password: ") -> str:
    return getpass.getpass(prompt)


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _promote(args: argparse.Namespace) -> int:
    """Set a role straight through the BaaS. Needs PARSE_MASTER_KEY, not a session."""
    from auth.accounts import AccountError, set_role_by_username
    from core.backend import BackendError, ParseClient
    from core.config import get_settings

    backend = None
    try:
        # Settings raise ValueError when the BaaS credentials are missing.
        backend = ParseClient.from_settings(get_settings())
        user = set_role_by_username(backend, args.username, args.role)
    except (ValueError, AccountError, BackendError) as e:
        print(f"  [!] {e}")
        return 1
    finally:
        if backend is not None:
            backend.close()
    print(f"  {user.username} is now {user.role}.")
    return 0


def _run_client_command(args: argparse.Namespace) -> int:
    client = PortalClient(args.url)
    try:
        if args.command == "signup":
            user = client.signup(args.username, args.email, _password())
            print("Account created. Check your inbox to verify your email address.")
            _print_user(user)
        elif args.command == "login":
            user = client.login(args.username, _password())
            print(f"Logged in as {user['username']}.")
        elif args.command == "logout":
            if client.restore() is None:
                print("Not logged in.")
            else:
                client.logout()
                print("Logged out.")
        elif args.command == "whoami":
            user = client.restore()
            if user is None:
                print("Not logged in.")
                return 1
            _print_user(user)
        elif args.command == "reset-password":
            client.request_password_reset(args.email)
            print("Check your inbox for password reset instructions.")
        elif args.command == "users":
            client.restore()
            users = client.list_users()
            print(f"{len(users)} user(s):")
            for user in users:
                _print_user(user)
        elif args.command == "set-role":
            client.restore()
            user = client.update_user_role(args.user_id, args.role)
            print(f"{user['username']} is now {user['role']}.")
        elif args.command == "delete-user":
            client.restore()
            client.delete_user(args.user_id)
            print("User deleted.")
    except PortalError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        client.close()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="secureauth",
        description="User authentication portal over a Parse-compatible BaaS.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        default=os.environ.get("SECUREAUTH_URL") or _DEFAULT_URL,
        help=f"SecureAuth server base URL (default: $SECUREAUTH_URL or {_DEFAULT_URL})",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the web server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    signup = sub.add_parser("signup", help="Create an account (prompts for a password)")
    signup.add_argument("username")
    signup.add_argument("email")

    login = sub.add_parser("login", help="Log in and store the session (prompts for a password)")
    login.add_argument("username")

    sub.add_parser("logout", help="Revoke the stored session")
    sub.add_parser("whoami", help="Show the signed-in user")

    reset = sub.add_parser("reset-password", help="Email a password-reset link")
    reset.add_argument("email")

    sub.add_parser("users", help="List all users (admin)")

    set_role = sub.add_parser("set-role", help="Change another user's role (admin)")
    set_role.add_argument("user_id", metavar="OBJECT_ID")
    set_role.add_argument("role", choices=["user", "admin"])

    delete = sub.add_parser("delete-user", help="Delete another user's account (admin)")
    delete.add_argument("user_id", metavar="OBJECT_ID")

    promote = sub.add_parser("promote", help="Set a role directly with the master key (bootstrap)")
    promote.add_argument("username")
    promote.add_argument("--role", choices=["user", "admin"], default="admin")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "serve":
        return _serve(args)
    if args.command == "promote":
        return _promote(args)
    return _run_client_command(args)


if __name__ == "__main__":
    sys.exit(main())
