#!/usr/bin/env python3
"""
Make requests against the monitoring and health endpoints of a running API.

Usage:
    python scripts/monitoring_request.py
    python scripts/monitoring_request.py GET /api/monitoring/errors?severity=critical
    python scripts/monitoring_request.py POST /api/health/check
"""

import argparse
import json
import os
import sys

import httpx

BASE_URL = os.environ.get("EDEN_API_URL", "http://localhost:8000")


def request(method: str, endpoint: str, data: str | None = None) -> None:
    """Make API request and print the response."""
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, timeout=10.0, follow_redirects=True)
    elif method == "POST":
        body = json.loads(data) if data else {}
        response = httpx.post(url, json=body, timeout=10.0, follow_redirects=True)
    else:
        print(f"ERROR: Unsupported method {method}")
        sys.exit(1)

    print(f"Status: {response.status_code}")
    try:
        print(json.dumps(response.json(), indent=2))
    except json.JSONDecodeError:
        print(response.text)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Query the monitoring API")
    parser.add_argument("method", nargs="?", default="GET")
    parser.add_argument("endpoint", nargs="?", default="/api/monitoring/dashboard")
    parser.add_argument("--data", "-d", help="JSON request body")
    args = parser.parse_args()

    request(args.method.upper(), args.endpoint, args.data)
