"""FastAPI application exposing listing search over HTTP."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from listings_search.core.config import Settings
from listings_search.core.db import StoreError, connect, init_db
from listings_search.core.schemas import SearchResponse
from listings_search.search.assembler import get_listing_view, search_listings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the API app bound to ``settings`` (defaults when omitted)."""
    settings = settings or Settings()
    db_path = settings.database.path

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting listing search API (db=%s)", db_path)
        init_db(db_path).close()
        yield
        logger.info("Shutting down listing search API")

    app = FastAPI(
        title="Listing Search API",
        description="Search rental listings by location, price, dates and amenities",
        version="0.1.0",
        lifespan=lifespan,
    )

    def get_conn() -> Iterator[sqlite3.Connection]:
        # One connection per request, read-only use.
        try:
            conn = connect(db_path)
        except sqlite3.Error as e:
            raise StoreError(f"connect failed: {e}") from e
        try:
            yield conn
        finally:
            conn.close()

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Failed to fetch listings"})

    @app.get("/health")
    def health_check() -> dict[str, str]:
        """Health check endpoint"""
        return {"status": "healthy"}

    @app.get("/api/listings", response_model=SearchResponse, response_model_by_alias=True)
    def list_listings(
        request: Request,
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> SearchResponse:
        """
        Search listings.

        Query parameters are read raw so that malformed values fall back to
        "no filter" instead of a 422.
        """
        return search_listings(conn, request.query_params, settings.search)

    @app.get("/api/listings/{listing_id}")
    def read_listing(
        listing_id: str,
        conn: sqlite3.Connection = Depends(get_conn),
    ) -> dict[str, Any]:
        """Get a single listing with decoded amenities and images."""
        listing = get_listing_view(conn, listing_id)
        if listing is None:
            raise HTTPException(status_code=404, detail="Listing not found")
        return {"listing": listing.model_dump(mode="json", by_alias=True)}

    return app
