#!/usr/bin/env python3
"""
Tabitha Home records -- operator command line.

Bootstraps and maintains the records database without going through the
HTTP API. Reads the same settings (DATABASE_URL, SECRET_KEY, ...) as the
server.

Usage:
  python main.py create-superadmin --email admin@tabithahome.org --first-name Ada --last-name Obi
  python main.py unlock staff@tabithahome.org
  python main.py seed-children --count 10
"""

import argparse
import getpass
import random
import sys
from datetime import date, timedelta
from typing import Optional

from api.models import check_password_strength
from auth.guard import AccountGuard
from auth.models import Account
from auth.store import AccountStore
from core.config import get_settings
from core.constants import Genotype, NigerianState
from records.models import Child
from records.store import RecordStore

_FIRST_NAMES = {
    "Male": ["Chinedu", "Tunde", "Emeka", "Ibrahim", "Segun", "Obinna", "Musa", "Kelechi"],
    "Female": ["Amaka", "Ngozi", "Aisha", "Funke", "Chiamaka", "Halima", "Ifeoma", "Bisi"],
}
_LAST_NAMES = ["Okafor", "Adeyemi", "Bello", "Eze", "Olawale", "Abubakar", "Nwosu", "Ogunleye"]
_CIRCUMSTANCES = [
    "Referred by the state social welfare office after family tracing failed.",
    "Brought in by community leaders following the loss of both parents.",
    "Placed by court order pending a guardianship hearing.",
]


def _read_password(provided: Optional[str]) -> str:
    """Return a password that passes the account password policy, prompting when none is given."""
    password = provided
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Confirm password: "):
            raise SystemExit("  [!] Passwords do not match.")
    if len(password) < 8:
        raise SystemExit("  [!] Password must be at least 8 characters.")
    try:
        check_password_strength(password)
    except ValueError as exc:
        raise SystemExit(f"  [!] {exc}") from exc
    return password


def create_superadmin(store: AccountStore, email: str, first_name: str, last_name: str, password: str) -> Account:
    """Create a super_admin account with full access and no forced password change."""
    if store.email_exists(email):
        raise SystemExit(f"  [!] An account with email {email} already exists.")
    account_id = store.create_account(
        Account(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role="super_admin",
            permissions=["all"],
            password_must_change=False,
            position="Administrator",
            department="Administration",
        ),
        password,
    )
    return store.get_by_id(account_id)


def unlock(store: AccountStore, email: str) -> Account:
    account = store.get_by_email(email)
    if account is None:
        raise SystemExit(f"  [!] No account with email {email}.")
    AccountGuard(store).unlock(account.id)
    return store.get_by_id(account.id)


def seed_children(records: RecordStore, accounts: AccountStore, count: int, seed: Optional[int] = None) -> list[str]:
    """Insert demo child records when the children table is empty.

    Returns the assigned child_ids; an empty list when records already exist.
    created_by is the first super_admin, so one must exist.
    """
    if records.count_children() > 0:
        return []
    owner = accounts.first_with_role("super_admin")
    if owner is None:
        raise SystemExit("  [!] Create a super admin first: python main.py create-superadmin ...")

    rng = random.Random(seed)
    today = date.today()
    states = [s.value for s in NigerianState]
    created: list[str] = []
    for _ in range(count):
        gender = rng.choice(["Male", "Female"])
        child = Child(
            first_name=rng.choice(_FIRST_NAMES[gender]),
            last_name=rng.choice(_LAST_NAMES),
            date_of_birth=(today - timedelta(days=rng.randint(365, 17 * 365))).isoformat(),
            gender=gender,
            genotype=rng.choice([Genotype.aa.value, Genotype.as_.value, Genotype.ss.value]),
            arrival_circumstances=rng.choice(_CIRCUMSTANCES),
            created_by=owner.id,
            state_of_origin=rng.choice(states),
            admission_date=(today - timedelta(days=rng.randint(0, 3 * 365))).isoformat(),
            immunization_status={"bcg": True, "polio": rng.random() < 0.8, "measles": rng.random() < 0.6},
        )
        pk = records.create_child(child)
        created.append(records.get_child(pk).child_id)
    return created


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tabitha-records",
        description="Operator commands for the Tabitha Home records database.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-superadmin --email admin@tabithahome.org --first-name Ada --last-name Obi
  python main.py unlock staff@tabithahome.org
  python main.py seed-children --count 25
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = commands.add_parser("create-superadmin", help="Create the first super admin account")
    create.add_argument("--email", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument(
        "--password",
        default=None,
        help="Password for the account. Prompted for (not echoed) when omitted.",
    )

    unlock_cmd = commands.add_parser("unlock", help="Clear a login lockout")
    unlock_cmd.add_argument("email", metavar="EMAIL")

    seed = commands.add_parser("seed-children", help="Insert demo child records into an empty database")
    seed.add_argument("--count", type=int, default=10, metavar="N", help="Number of records (default: 10)")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    settings = get_settings()
    accounts = AccountStore(settings.database_url)
    try:
        if args.command == "create-superadmin":
            email = args.email.strip().lower()
            password = _read_password(args.password)
            account = create_superadmin(accounts, email, args.first_name.strip(), args.last_name.strip(), password)
            print(f"  Created super admin {account.email} ({account.employee_id}).")

        elif args.command == "unlock":
            account = unlock(accounts, args.email.strip().lower())
            print(f"  Unlocked {account.email} ({account.employee_id}).")

        elif args.command == "seed-children":
            if args.count < 1:
                raise SystemExit("  [!] --count must be at least 1.")
            records = RecordStore(settings.database_url)
            try:
                created = seed_children(records, accounts, args.count)
            finally:
                records.close()
            if created:
                print(f"  Seeded {len(created)} child records ({created[0]} .. {created[-1]}).")
            else:
                print("  Child records already exist; nothing seeded.")
    finally:
        accounts.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
