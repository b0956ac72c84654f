#!/usr/bin/env python3
"""
Ensure Supabase Auth accounts exist for imported users.

Calls the ensure-auth-account edge function once, prints every per-user
outcome verbatim, then re-reads the `users` table to confirm that
auth_user_id was written back.

Safe to re-run: users that already have an identity are reported as
existing, never created twice.

Requirements:
    - SUPABASE_URL environment variable
    - SUPABASE_ANON_KEY (or SUPABASE_SERVICE_KEY with --service)
    - SUPABASE_SERVICE_KEY for the verification read

Usage:
    python tools/sync_auth_accounts.py                     # all pending users
    python tools/sync_auth_accounts.py --email a@x.com     # one user
    python tools/sync_auth_accounts.py --service --no-verify
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from supabase import create_client, Client

from api.schemas.account_sync import ReconciliationResult
from services.account_sync import (
    AccountSyncInvoker,
    ConfigurationError,
    DecodeError,
    RemoteFunctionError,
    TransportError,
)
from services.user_records import UserRecordReadError, verify_outcomes

logger = logging.getLogger("auth-sync.tools.sync")


def get_service_client() -> Optional[Client]:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_KEY")
    if not url or not key:
        return None
    return create_client(url, key)


def print_result(result: ReconciliationResult) -> None:
    print(f"📊 Processed: {result.processed} users")
    print(f"✅ Successful: {result.successful}")
    print(f"❌ Errors: {result.errors}")
    print(f"📈 Success rate: {result.success_rate}%")

    if result.results:
        print("\n📝 Detailed results:")
        for index, outcome in enumerate(result.results, start=1):
            status = "✅" if outcome.success else "❌"
            print(f"{index}. {status} {outcome.email}: {outcome.action or '-'}")
            if outcome.auth_user_id:
                print(f"     🔑 Auth ID: {outcome.auth_user_id}")
            if outcome.error:
                print(f"     ❗ Error: {outcome.error}")

        print("\n📊 Summary by action:")
        for action, count in result.action_counts().items():
            print(f"   {action}: {count} users")

    if result.requires_inspection:
        print("\n🚨 No user succeeded. Inspect the errors above and the edge function logs before re-running.")
    elif result.errors:
        print(f"\n⚠️  {result.errors} user(s) need manual remediation (listed above).")


def print_verification(client: Client, result: ReconciliationResult) -> None:
    print("\n🔍 Verifying database changes...")
    statuses = verify_outcomes(client, result)
    linked = sum(1 for s in statuses if s.has_auth)
    print(f"📊 {linked}/{len(statuses)} users now have auth_user_id")
    for index, status in enumerate(statuses, start=1):
        mark = "✅" if status.has_auth else "❌"
        print(f"{index}. {mark} {status.email}: {status.auth_user_id or 'missing auth_user_id'}")


def print_transport_error(e: TransportError) -> None:
    print(f"\n❌ Edge function call failed: {e}", file=sys.stderr)
    if e.status_code is not None:
        print(f"   HTTP status: {e.status_code}", file=sys.stderr)
    if isinstance(e, RemoteFunctionError):
        print(f"   Body (JSON): {e.payload}", file=sys.stderr)
    elif e.body_text:
        print(f"   Body (text): {e.body_text}", file=sys.stderr)
    if e.__cause__ is not None:
        print(f"   Cause: {e.__cause__!r}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ensure Supabase Auth accounts exist for imported users.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--email", help="Process only this user (default: every user without auth_user_id)")
    parser.add_argument("--service", action="store_true", help="Invoke with SUPABASE_SERVICE_KEY instead of the anon key")
    parser.add_argument("--sdk", action="store_true", help="Invoke through supabase.functions.invoke instead of raw HTTP")
    parser.add_argument("--no-verify", action="store_true", help="Skip the users table re-read")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())

    try:
        invoker = AccountSyncInvoker.from_env(use_service_key=True if args.service else None)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    scope = args.email or "all users without auth accounts"
    print(f"🚀 Ensuring auth accounts for: {scope}")
    print(f"   Function: {invoker.settings.function_name}\n")

    with invoker:
        try:
            if args.sdk:
                sdk_client = create_client(invoker.settings.supabase_url, invoker.settings.api_key)
                result = invoker.sync_via_client(sdk_client, single_email=args.email)
            else:
                result = invoker.sync(single_email=args.email)
        except ValueError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        except TransportError as e:
            print_transport_error(e)
            return 1
        except DecodeError as e:
            print(f"\n❌ Could not decode edge function response: {e}", file=sys.stderr)
            print(f"   Raw response: {e.raw_text}", file=sys.stderr)
            return 1

    print_result(result)

    if args.no_verify or not result.results:
        return 0

    client = get_service_client()
    if client is None:
        print("\n⚠️  SUPABASE_SERVICE_KEY not set; skipping verification.")
        return 0
    try:
        print_verification(client, result)
    except UserRecordReadError as e:
        print(f"\n❌ Verification read failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
