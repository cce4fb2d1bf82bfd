#!/usr/bin/env python3
"""
Issue a local bearer token for development.

In production tokens come from the identity provider; this only signs one
with the configured JWT secret so the API can be exercised by hand.

Usage:
    python scripts/issue_token.py --user-id host-1
    python scripts/issue_token.py --user-id ops-1 --role admin
"""

import argparse
from datetime import timedelta

from app.core.security import create_user_token


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a development access token")
    parser.add_argument("--user-id", required=True, help="Subject (user id)")
    parser.add_argument("--role", action="append", default=[], help="Role claim, repeatable")
    parser.add_argument("--minutes", type=int, default=60, help="Token lifetime in minutes")
    args = parser.parse_args()

    print(create_user_token(args.user_id, roles=args.role, expires_delta=timedelta(minutes=args.minutes)))


if __name__ == "__main__":
    main()
