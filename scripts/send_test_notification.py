#!/usr/bin/env python3
"""
Trigger a test error notification and show the resulting stats.

Usage:
    python scripts/send_test_notification.py
    python scripts/send_test_notification.py --wait 5
"""

import argparse
import json
import os
import sys
import time

import httpx

BASE_URL = os.environ.get("EDEN_API_URL", "http://localhost:8000")


def send_test_notification(wait: float) -> None:
    response = httpx.post(f"{BASE_URL}/api/monitoring/test-notification", timeout=10.0)
    if response.status_code != 200:
        print(f"ERROR: Test notification failed with status {response.status_code}")
        print(response.text)
        sys.exit(1)

    error_id = response.json()["error_id"]
    print(f"Reported test error {error_id}")

    # Dispatch runs in the background; give the channels time to answer
    time.sleep(wait)

    config = httpx.get(f"{BASE_URL}/api/monitoring/config", timeout=10.0).json()
    print(f"Active channels: {', '.join(config['active_channels']) or 'none'}")

    stats = httpx.get(f"{BASE_URL}/api/monitoring/stats", timeout=10.0).json()
    print(json.dumps(stats["last_hour"]["notifications"], indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Send a test error notification")
    parser.add_argument("--wait", type=float, default=3.0, help="Seconds to wait for delivery")
    args = parser.parse_args()

    send_test_notification(args.wait)
