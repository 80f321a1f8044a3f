"""Post one PortOne-style notification to a running webhook service.

Useful for manual end-to-end checks and duplicate-delivery testing.
"""

import argparse
import json
from uuid import uuid4

import httpx


def main() -> None:
    """Parse CLI args and deliver one notification."""

    parser = argparse.ArgumentParser(description="Send a payment notification to the webhook endpoint.")
    parser.add_argument("--url", default="http://localhost:8000/api/portone")
    parser.add_argument("--payment-id", required=True)
    parser.add_argument("--status", default="Paid", help="Paid or Cancelled")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the same notification N times")
    args = parser.parse_args()

    payload = {"payment_id": args.payment_id, "status": args.status}
    with httpx.Client(timeout=15.0) as client:
        for _ in range(args.repeat):
            resp = client.post(args.url, json=payload, headers={"x-trace-id": str(uuid4())})
            print(resp.status_code, json.dumps(resp.json(), ensure_ascii=False))


if __name__ == "__main__":
    main()
