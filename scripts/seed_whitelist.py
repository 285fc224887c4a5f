"""Add identities to the whitelist (and optionally the admin set).

Usage:
    python scripts/seed_whitelist.py a@uni.edu b@uni.edu
    python scripts/seed_whitelist.py --file emails.txt
    python scripts/seed_whitelist.py --admin prof@uni.edu
    python scripts/seed_whitelist.py --list
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import get_settings
from models.base import normalize_identity
from services.credential_store import CredentialStore
from services.kv_store import create_kv_store


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the ICS TA Bot whitelist")
    parser.add_argument("emails", nargs="*", help="emails to whitelist")
    parser.add_argument("--file", help="file with one email per line (# comments allowed)")
    parser.add_argument("--admin", action="append", default=[], help="email to grant admin rights")
    parser.add_argument("--list", action="store_true", help="print the current whitelist and admins")
    return parser.parse_args(argv)


def _read_emails(path: str) -> list[str]:
    with open(path, encoding="utf-8") as fh:
        return [
            line.strip() for line in fh
            if line.strip() and not line.lstrip().startswith("#")
        ]


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    if settings.store_type != "redis":
        print("STORE_TYPE is not redis; seeding an in-memory store has no lasting effect.")
        return 1

    kv = create_kv_store(settings.store_type, settings.redis_url)
    credentials = CredentialStore(kv, cascade_admin_removal=settings.cascade_admin_removal)
    try:
        if args.list:
            admins = set(await credentials.get_admins())
            for email in await credentials.get_whitelist():
                print(f"{email}{'  (admin)' if email in admins else ''}")
            return 0

        emails = list(args.emails)
        if args.file:
            emails.extend(_read_emails(args.file))
        whitelist = [normalize_identity(e) for e in emails]
        admins = [normalize_identity(e) for e in args.admin]
        if not whitelist and not admins:
            print("Nothing to add.")
            return 1

        for email in whitelist:
            added = await credentials.add_to_whitelist(email)
            print(f"{'Added' if added else 'Already present'}: {email}")
        for email in admins:
            await credentials.add_admin(email)
            print(f"Admin: {email}")
        print(f"Whitelist size: {await credentials.whitelist_size()}")
        return 0
    finally:
        await kv.close()


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(run(_parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
