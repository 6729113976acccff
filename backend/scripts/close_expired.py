"""Run one expiry sweep from the command line.

Promotes started auctions to active, then resolves every auction whose end
time has passed. Safe to run alongside the API: a sweep that finds nothing
to resolve changes nothing.

Usage:
    cd backend && python -m scripts.close_expired
"""

import asyncio

from app.core.database import async_session_maker, engine
from app.services.settlement_service import SettlementService


async def main():
    async with async_session_maker() as session:
        service = SettlementService(session)
        activated = await service.activate_upcoming()
        result = await service.close_expired_auctions()

    print(f"Activated {activated} upcoming auctions")
    print(f"Closed {result.closed_count} expired auctions")
    for resolution in result.resolutions:
        if resolution.winner_id:
            print(f"  {resolution.auction_id}: sold to {resolution.winner_id} for {resolution.final_price}")
        else:
            print(f"  {resolution.auction_id}: ended with no bids")
    for failure in result.failed:
        print(f"  FAILED {failure.auction_id}: {failure.error}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
