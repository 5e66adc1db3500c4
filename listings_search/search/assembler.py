"""Result assembler: runs a search end to end against the record store.

Data flow:
  1. Normalize raw parameters -> SearchCriteria
  2. Compile -> store predicate + residual amenities filter
  3. Store count (store predicate only) -> total_count
  4. Store page fetch (store predicate, newest first, skip/take)
  5. Residual filter over that page
  6. Decode serialized collections -> ListingView

The residual filter runs after the page boundary is cut. With an amenities
filter active, total_count counts store-side matches only, and a page may
hold fewer than page_size listings even when it is not the last one.
"""

import logging
import sqlite3
from collections.abc import Mapping

from listings_search.core.codec import decode_collection
from listings_search.core.config import SearchConfig
from listings_search.core.db import count_listings, find_listings, get_listing
from listings_search.core.schemas import ListingRecord, ListingView, SearchCriteria, SearchResponse
from listings_search.search.compiler import compile_criteria
from listings_search.search.normalizer import normalize_query

logger = logging.getLogger(__name__)


def to_view(record: ListingRecord) -> ListingView:
    """Shape a stored record for callers, decoding amenities and images."""
    data = record.model_dump()
    data["amenities"] = decode_collection(record.amenities)
    data["images"] = decode_collection(record.images)
    return ListingView.model_validate(data)


def run_search(conn: sqlite3.Connection, criteria: SearchCriteria) -> SearchResponse:
    """Execute already-normalized criteria. StoreError propagates unchanged."""
    compiled = compile_criteria(criteria)

    total_count = count_listings(conn, compiled.store)
    page = find_listings(
        conn,
        compiled.store,
        skip=criteria.offset,
        take=criteria.page_size,
    )
    logger.debug("Store matched %d, page %d holds %d", total_count, criteria.page, len(page))

    if compiled.residual is not None:
        page = compiled.residual(page)

    return SearchResponse(
        listings=[to_view(r) for r in page],
        total_count=total_count,
    )


def search_listings(
    conn: sqlite3.Connection,
    params: Mapping[str, str],
    config: SearchConfig | None = None,
) -> SearchResponse:
    """Search listings from raw query parameters.

    Args:
        conn: Open store connection. Only read from.
        params: Raw query parameters; malformed values are ignored.
        config: Pagination settings.

    Returns:
        SearchResponse with the (possibly under-filled) page and the
        store-side total.

    Raises:
        StoreError: the store failed; no partial result is returned.
    """
    criteria = normalize_query(params, config)
    response = run_search(conn, criteria)
    logger.info(
        "Search page=%d limit=%d: %d returned, %d total",
        criteria.page, criteria.page_size, len(response.listings), response.total_count,
    )
    return response


def get_listing_view(conn: sqlite3.Connection, listing_id: str) -> ListingView | None:
    """Fetch one listing by id, decoded. None if it does not exist."""
    record = get_listing(conn, listing_id)
    return to_view(record) if record is not None else None
