"""List unreviewed AI content flags, or resolve one.

Usage:
    python -m scripts.review_flags                       # List open flags
    python -m scripts.review_flags --limit 20
    python -m scripts.review_flags --resolve 3 --reviewer alice --action approved
"""

import argparse
import logging
import sys

from src.audit.models import ReviewFlagRecord
from src.audit.store import get_initialized_connection, query_unreviewed_flags, resolve_review_flag

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)

REVIEW_ACTIONS = ("approved", "user_warned", "account_suspended")


def _print_flag(flag: ReviewFlagRecord) -> None:
    print(
        f"#{flag['id']:<5} {flag['flagged_at']}  risk={flag['risk_level']:<6} "
        f"caller={flag['caller_id']} session={flag['session_id']}"
    )
    print(f"       interaction={flag['interaction_id']} flags={', '.join(flag['flags']) or '-'}")


def main() -> None:
    """Parse args and list or resolve review flags."""
    parser = argparse.ArgumentParser(description="Review flagged coaching interactions")
    parser.add_argument("--db", default=None, help="Audit database path (default: AUDIT_DB_PATH)")
    parser.add_argument("--limit", type=int, default=100, help="Maximum flags to list")
    parser.add_argument("--resolve", type=int, default=None, metavar="FLAG_ID", help="Resolve a flag")
    parser.add_argument("--reviewer", default="", help="Reviewer name, required with --resolve")
    parser.add_argument("--action", choices=REVIEW_ACTIONS, default="approved")
    args = parser.parse_args()

    try:
        conn = get_initialized_connection(args.db)
    except Exception as e:
        print(f"Failed to open audit store: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.resolve is not None:
            if not args.reviewer:
                print("--reviewer is required with --resolve", file=sys.stderr)
                sys.exit(2)
            if resolve_review_flag(conn, args.resolve, reviewer=args.reviewer, action=args.action):
                print(f"Flag #{args.resolve} resolved ({args.action})")
            else:
                print(f"Flag #{args.resolve} not found or already resolved", file=sys.stderr)
                sys.exit(1)
            return

        flags = query_unreviewed_flags(conn, args.limit)
        if not flags:
            print("No unreviewed flags.")
            return
        print(f"{len(flags)} unreviewed flag(s):\n")
        for flag in flags:
            _print_flag(flag)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
