#!/usr/bin/env python3
"""
Expire P2P listings whose expiry time has passed.

Listings do not expire on their own; run this from cron (or any external
scheduler), e.g. every 15 minutes. Each expired listing writes a notification
to its seller's inbox. No websocket clients are attached to this process, so
nothing is pushed live; sellers see the notification on their next inbox read.

Usage:
    cd backend
    python expire_listings.py [--dry-run]

Options:
    --dry-run    Show which listings are due without expiring them
"""

import asyncio
import sys

from assetx.models.database import async_session_factory, utcnow, close_db
from assetx.services.listings import ListingMarket
from assetx.services.notifications import NotificationEmitter


async def skip_broadcast(**event):
    """Websocket delivery is only possible from the API process."""


async def expire_listings(dry_run: bool = False):
    """Expire every active listing past its expiry."""
    now = utcnow()
    emitter = NotificationEmitter(async_session_factory, skip_broadcast)

    async with async_session_factory() as session:
        market = ListingMarket(session, emitter)

        if dry_run:
            due = await market.due_for_expiry(now)
            for listing in due:
                print(f"Listing {listing.id}: {listing.tokens_for_sale} {listing.token_symbol} "
                      f"by {listing.seller_id}, expired at {listing.expires_at:%Y-%m-%d %H:%M}")
            print(f"\n[DRY RUN] Would expire {len(due)} listing(s).")
            return []

        expired = await market.expire_due(now=now)

    if expired:
        print(f"Expired {len(expired)} listing(s): {', '.join(str(i) for i in expired)}")
        print("Sellers were notified through their inbox only.")
    else:
        print("No listings were due.")
    return expired


async def run(dry_run: bool):
    try:
        await expire_listings(dry_run)
    finally:
        await close_db()


def main():
    dry_run = "--dry-run" in sys.argv or "-n" in sys.argv

    if dry_run:
        print("=== DRY RUN MODE ===\n")

    asyncio.run(run(dry_run))


if __name__ == "__main__":
    main()
