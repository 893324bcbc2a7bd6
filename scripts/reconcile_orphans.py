#!/usr/bin/env python3
"""
Delete old video copies left behind by provider migrations.

A migration that uploads to the new provider but fails to delete the old
object marks the lesson `migration-failed-orphan` and records where the
old copy lives. This script retries those deletes.

Usage:
    python scripts/reconcile_orphans.py            # delete orphans
    python scripts/reconcile_orphans.py --dry-run  # list them only

Requires:
    - .env file with Snowflake and Supabase credentials
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from coursecast.api.dependencies import build_storage_service  # noqa: E402
from coursecast.config.settings import get_settings  # noqa: E402

logger = logging.getLogger("reconcile_orphans")


async def reconcile(dry_run: bool = False) -> bool:
    settings = get_settings()
    missing = settings.validate_required_fields()
    if missing:
        print(f"ERROR: Missing configuration: {', '.join(missing)}")
        return False

    service = build_storage_service(settings)

    try:
        orphans = service.list_orphaned()
        print(f"Found {len(orphans)} orphaned video copies")

        for ref in orphans:
            print(f"  {ref.content_id}: {ref.orphan_provider.value}/{ref.orphan_path}")

        if dry_run:
            print("\nDry run - nothing deleted")
            return True

        reconciled = await service.reconcile_orphans()
        print(f"\nDeleted {reconciled} of {len(orphans)} orphaned copies")
        return reconciled == len(orphans)

    finally:
        await service.aclose()


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Delete video copies orphaned by migrations')
    parser.add_argument('--dry-run', action='store_true', help='List orphans only, don\'t delete')
    parser.add_argument('--verbose', action='store_true', help='Show debug logging')
    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    success = asyncio.run(reconcile(dry_run=args.dry_run))

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
