"""
Diagnostics Runner - Business Profile Connection Check
======================================================

Checks which Business Profile API generation answers for the configured
credential and lists the locations of every account it can see.

Credential, first match wins:
- GBP_ACCESS_TOKEN and/or GBP_REFRESH_TOKEN (delegated user tokens)
- the service account from GOOGLE_SERVICE_ACCOUNT_JSON or
  GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY

    python run_diagnostics.py
"""

import logging
import os
import sys

from brandhub.infrastructure.config import get_settings
from brandhub.infrastructure.gbp import (
    BusinessProfileClient,
    BusinessProfileError,
    DelegatedCredential,
    service_identity,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_credential(settings):
    access = os.getenv("GBP_ACCESS_TOKEN")
    refresh = os.getenv("GBP_REFRESH_TOKEN")
    if access or refresh:
        return DelegatedCredential(access_token=access, refresh_token=refresh)
    return service_identity(settings.service_account)


def run_diagnostics() -> int:
    """Run the connection check. Returns a process exit code."""

    print("\n" + "=" * 60)
    print("   Brand Hub - Business Profile Diagnostics")
    print("=" * 60 + "\n")

    settings = get_settings()
    for issue in settings.validate():
        print(f"   {issue}")

    try:
        client = BusinessProfileClient.from_credential(load_credential(settings), settings)
        print(f"Credential: {client.credentials.kind}\n")
        check = client.check_connection()
    except BusinessProfileError as e:
        print(f"\nConnection failed: {e}")
        if not e.retryable:
            print("   Fix the credential or the API access, then run again.")
        return 1

    print(f"Connected via {check.generation} ({check.host})")
    print(f"Found {len(check.accounts)} account(s)\n")

    stats = {"accounts": len(check.accounts), "locations": 0, "failed": 0}
    for account in check.accounts:
        print(f"{'─' * 40}")
        print(f"Account: {account.display_name or '(unnamed)'} [{account.id}]")
        try:
            locations = client.list_locations(account.id)
        except BusinessProfileError as e:
            stats["failed"] += 1
            logger.warning(f"Could not list locations of {account.id}: {e}")
            print(f"   Locations unavailable: {e.classification.value}")
            continue

        stats["locations"] += len(locations)
        for location in locations:
            print(f"   - {location.display_name or '(untitled)'} [{location.id}]")
        if not locations:
            print("   No locations")

    print("\n" + "=" * 60)
    print("Diagnostics Complete!")
    print(f"   Accounts: {stats['accounts']} | Locations: {stats['locations']} | Failed: {stats['failed']}")
    print("=" * 60 + "\n")
    return 0 if not stats["failed"] else 2


if __name__ == "__main__":
    sys.exit(run_diagnostics())
