#!/usr/bin/env python3
"""
Report which invited users still lack a Supabase Auth account.

Read-only except for --magic-link, which sends one sign-in email with
should_create_user=False to prove the identity accepts magic links.

Requirements:
    - SUPABASE_URL environment variable
    - SUPABASE_SERVICE_KEY environment variable
    - SUPABASE_ANON_KEY for --magic-link

Usage:
    python tools/check_auth_status.py
    python tools/check_auth_status.py --email a@x.com --magic-link
"""

import argparse
import os
import sys
from typing import List, Optional

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from supabase import create_client, Client

from services.magic_links import send_magic_link
from services.user_records import (
    UserRecordReadError,
    get_user_auth_status,
    list_users_missing_auth,
    summarize_invited_users,
)


def get_supabase_client(key_var: str = "SUPABASE_SERVICE_KEY") -> Client:
    """
    Create a Supabase client from environment variables.

    Raises:
        SystemExit: If required environment variables are not set
    """
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get(key_var)

    if not url or not key:
        print("ERROR: Missing required environment variables", file=sys.stderr)
        print(f"Please set SUPABASE_URL and {key_var}", file=sys.stderr)
        sys.exit(1)

    return create_client(url, key)


def report_pending(client: Client) -> None:
    pending = list_users_missing_auth(client)
    summary = summarize_invited_users(client)

    print(f"👥 Total invited users: {summary['total_invited']}")
    print(f"✅ With auth accounts: {summary['with_auth']}")
    print(f"❌ Without auth accounts: {summary['without_auth']}")
    print(f"📦 Ordered users with auth: {summary['ordered_with_auth']}")
    print(f"⏳ Not-yet-ordered users with auth: {summary['not_ordered_with_auth']}")

    if not pending:
        print("\n🎉 Every invited user has an auth account.")
        return

    print(f"\n📋 Users still needing auth accounts ({len(pending)}):")
    print("-" * 60)
    for index, user in enumerate(pending, start=1):
        print(f"{index:>3}. {user.email:<45} ordered={user.order_submitted}")
    print("-" * 60)


def report_user(client: Client, email: str, magic_link: bool) -> int:
    status = get_user_auth_status(client, email)
    if status is None:
        print(f"❌ No users row for {email}")
        return 1

    if status.has_auth:
        print(f"✅ {status.email}: auth_user_id = {status.auth_user_id}")
    else:
        print(f"❌ {status.email}: missing auth_user_id")

    if magic_link:
        result = send_magic_link(get_supabase_client("SUPABASE_ANON_KEY"), email)
        if result.success:
            print(f"📨 Magic link sent to {email}")
        else:
            print(f"❌ Magic link failed: {result.error}")
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Report auth account status for invited users.")
    parser.add_argument("--email", help="Check a single user")
    parser.add_argument("--magic-link", action="store_true", help="Also send a magic link to --email")
    args = parser.parse_args(argv)

    if args.magic_link and not args.email:
        parser.error("--magic-link requires --email")

    client = get_supabase_client()
    try:
        if args.email:
            return report_user(client, args.email, args.magic_link)
        report_pending(client)
    except UserRecordReadError as e:
        print(f"\nERROR: Failed to query database: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
