#!/usr/bin/env python3
"""
VaultGuard -- operator command line.

Runs against the same databases as the API (AUTH_DB_URL, AUDIT_DB_URL), so
the commands work with the server up or down.

Usage:
  python main.py seed
  python main.py create-admin ops@example.com "Ops Admin"
  python main.py approve new.user@example.com
  python main.py reject new.user@example.com
  python main.py export-audit --format csv > audit.csv
  python main.py export-audit --format json --output audit.json

Approvals made here are written to the audit trail with actor "system".
"""

import argparse
import getpass
import sys
from pathlib import Path
from typing import Optional

from audit.export import EXPORT_FORMATS, export_filename, render
from audit.store import AuditStore
from auth.errors import AuthError
from auth.models import STATUS_APPROVED, STATUS_REJECTED
from auth.seed import create_admin, seed_demo_accounts
from auth.service import AuthService
from auth.store import UserStore
from auth.validation import RegisterInput, parse
from core.config import get_settings


def _cmd_seed(service: AuthService, args: argparse.Namespace) -> int:
    created = seed_demo_accounts(service.users)
    print(f"  {created} demo account(s) created.")
    return 0


def _cmd_create_admin(service: AuthService, args: argparse.Namespace) -> int:
    password = getpass.getpass("  Password: ")
    if password != getpass.getpass("  Confirm password: "):
        print("  [!] Passwords do not match.")
        return 1
    try:
        data = parse(RegisterInput, name=args.name, email=args.email, password=password)
    except AuthError as e:
        print(f"  [!] {e.message}")
        return 1
    user_id, created = create_admin(service.users, data.email, data.name, data.password)
    if created:
        print(f"  Admin {data.email} created ({user_id}).")
    else:
        print(f"  [!] {data.email} already exists ({user_id}); left unchanged.")
    return 0


def _set_status(service: AuthService, email: str, status: str) -> int:
    user = service.users.find_by_email(email)
    if user is None:
        print(f"  [!] No account for {email}.")
        return 1
    service.set_approval_as_operator(user.id, status)
    print(f"  {user.email} is now {status}.")
    return 0


def _cmd_approve(service: AuthService, args: argparse.Namespace) -> int:
    return _set_status(service, args.email, STATUS_APPROVED)


def _cmd_reject(service: AuthService, args: argparse.Namespace) -> int:
    return _set_status(service, args.email, STATUS_REJECTED)


def _cmd_export_audit(service: AuthService, args: argparse.Namespace) -> int:
    body, _ = render(service.audit.store.list_entries(limit=args.limit), args.format)
    if args.output is None:
        sys.stdout.write(body)
        return 0
    path = Path(args.output)
    if path.is_dir():
        path = path / export_filename(args.format)
    # newline="" keeps the CSV writer's CRLF row endings intact
    path.write_text(body, encoding="utf-8", newline="")
    print(f"  Audit log written to {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultguard",
        description="Operator commands for the VaultGuard authentication service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("seed", help="Create the demo admin and user accounts if missing")
    p.set_defaults(func=_cmd_seed)

    p = sub.add_parser("create-admin", help="Create a verified, approved admin account")
    p.add_argument("email", help="Admin email address")
    p.add_argument("name", help="Display name")
    p.set_defaults(func=_cmd_create_admin)

    p = sub.add_parser("approve", help="Approve a pending account")
    p.add_argument("email", help="Account email address")
    p.set_defaults(func=_cmd_approve)

    p = sub.add_parser("reject", help="Reject an account")
    p.add_argument("email", help="Account email address")
    p.set_defaults(func=_cmd_reject)

    p = sub.add_parser("export-audit", help="Write the audit trail as CSV or JSON")
    p.add_argument(
        "--format",
        choices=EXPORT_FORMATS,
        default="csv",
        help="Output format (default: csv)",
    )
    p.add_argument(
        "--output",
        metavar="PATH",
        default=None,
        help="File or directory to write to (default: stdout)",
    )
    p.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Only the N most recent entries",
    )
    p.set_defaults(func=_cmd_export_audit)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    settings = get_settings()
    users = UserStore(settings.auth_db_url)
    audit_store = AuditStore(settings.audit_db_url)
    try:
        return args.func(AuthService.from_settings(settings, users, audit_store), args)
    finally:
        users.close()
        audit_store.close()


if __name__ == "__main__":
    sys.exit(main())
