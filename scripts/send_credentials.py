#!/usr/bin/env python3
"""
Send PIN or OTP notifications for a batch of users from the command line.
Usage:
  python scripts/send_credentials.py --kind pin --requests users.json
  python scripts/send_credentials.py --kind otp --requests users.json --settings settings.json --dry-run
The requests file holds a JSON list of {"recipient": {...}, "pinOverride": ..., "otpOverride": ...}.
Exit: 0 = every recipient succeeded; 1 = at least one failure; 2 = configuration or input error.
"""
import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

logging.basicConfig(level=logging.WARNING)

load_dotenv()
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from credmail.core.errors import ConfigurationError
from credmail.core.models import CredentialKind, DeliveryRequest
from credmail.services.delivery import DeliveryOrchestrator, prepare_batch
from credmail.settings.store import load_email_settings


def load_requests(path: str) -> list:
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    return [DeliveryRequest.model_validate(item) for item in raw]


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--kind", choices=[k.value for k in CredentialKind], required=True)
    parser.add_argument("--requests", required=True, help="JSON file with delivery requests")
    parser.add_argument("--settings", help="Settings document (defaults to SETTINGS_PATH)")
    parser.add_argument("--dry-run", action="store_true", help="Render only, do not send")
    args = parser.parse_args()

    try:
        requests = load_requests(args.requests)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        print(f"Unable to read requests file {args.requests}: {exc}", file=sys.stderr)
        return 2

    settings = load_email_settings(args.settings)

    try:
        if args.dry_run:
            messages, errors = prepare_batch(requests, args.kind, settings)
            for message in messages:
                print(f"--- to={message.to} type={message.content_type.value}")
                print(f"Subject: {message.subject}")
                print(message.body)
            for error in errors:
                print(f"ERROR {error}")
            return 1 if errors else 0

        result = asyncio.run(DeliveryOrchestrator().deliver(requests, args.kind, settings))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc.message}", file=sys.stderr)
        return 2

    print(f"method={result.method.value} success={result.success} failed={result.failed}")
    for error in result.errors:
        print(f"  {error}")
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
