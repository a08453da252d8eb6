"""
Listing lookup.

Orders only ever read a listing once, when they are created.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.errors import NotFoundError
from src.models import Listing, ListingStatus


async def get_orderable_listing(db: AsyncSession, listing_id: int) -> Listing:
    """Return the listing if it exists and is active, else NotFoundError."""
    listing = await db.get(Listing, listing_id)
    if listing is None or listing.status != ListingStatus.ACTIVE:
        raise NotFoundError("Listing not found or not available")
    return listing
