#!/usr/bin/env python3
"""
Complete trip lifecycle flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_trip_lifecycle.py --booking-id bk_123 --host-id host-1 --renter-id renter-1

The booking must already exist in host_approved or admin_approved, its
start/end times must have passed, and the evidence objects must be uploaded.

Flow:
    1. Host confirms trip start
    2. Renter confirms trip start (settles the booking)
    3. Renter confirms trip end
    4. Host confirms trip end
    5. Renter confirms completion
    6. Host confirms completion
    7. Print ledger
"""

import argparse
import json
import sys

import httpx

from app.core.security import create_user_token

BASE_URL = "http://localhost:8000"


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=10.0)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=10.0)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def confirm(step: int, token: str, booking_id: str, action: str, actor: str, extra: dict | None = None):
    print_step(step, f"{actor} {action}")
    result = api_request(
        token,
        "POST",
        f"/api/v1/bookings/{booking_id}/{action}",
        {"actor": actor, **(extra or {})},
    )
    print(json.dumps(result["data"], indent=2))
    if result["status"] != 200:
        print(f"ERROR: {action} as {actor} failed with {result['status']}")
        sys.exit(1)


def main() -> None:
    global BASE_URL

    parser = argparse.ArgumentParser(description="Drive a booking through start, end and completion")
    parser.add_argument("--booking-id", required=True)
    parser.add_argument("--host-id", required=True)
    parser.add_argument("--renter-id", required=True)
    parser.add_argument("--damage", action="store_true", help="Host reports damage at end")
    parser.add_argument("--base-url", default=BASE_URL)
    args = parser.parse_args()
    BASE_URL = args.base_url

    host_token = create_user_token(args.host_id)
    renter_token = create_user_token(args.renter_id)

    confirm(1, host_token, args.booking_id, "confirm-start", "host")
    confirm(2, renter_token, args.booking_id, "confirm-start", "renter")
    confirm(3, renter_token, args.booking_id, "confirm-end", "renter")
    confirm(4, host_token, args.booking_id, "confirm-end", "host", {"has_damage": args.damage})
    confirm(5, renter_token, args.booking_id, "confirm-completion", "renter")
    confirm(6, host_token, args.booking_id, "confirm-completion", "host")

    print_step(7, "Ledger")
    result = api_request(host_token, "GET", f"/api/v1/bookings/{args.booking_id}/transactions")
    print(json.dumps(result["data"], indent=2))


if __name__ == "__main__":
    main()
