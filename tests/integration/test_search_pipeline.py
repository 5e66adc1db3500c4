"""Integration test: raw parameters -> normalize -> compile -> store -> assemble."""

import sqlite3
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from listings_search.core.codec import encode_collection
from listings_search.core.config import SearchConfig
from listings_search.core.db import StoreError, init_db, insert_listing
from listings_search.core.schemas import ListingRecord
from listings_search.search.assembler import get_listing_view, search_listings

_BASE_TIME = datetime(2025, 1, 1, 9, 0, 0)


def _listing(
    listing_id: str,
    *,
    minutes: int = 0,
    city: str = "Santa Cruz",
    state: str = "CA",
    price: int = 1000,
    bedrooms: int = 1,
    property_type: str = "Apartment",
    available_from: str = "2025-01-01",
    available_to: str = "2025-12-31",
    amenities: list[str] | str | None = None,
    images: list[str] | str | None = None,
) -> ListingRecord:
    if isinstance(amenities, list):
        amenities = encode_collection(amenities)
    if isinstance(images, list):
        images = encode_collection(images)
    return ListingRecord(
        id=listing_id,
        city=city,
        state=state,
        price=price,
        bedrooms=bedrooms,
        property_type=property_type,
        available_from=available_from,
        available_to=available_to,
        amenities=amenities,
        images=images,
        created_at=_BASE_TIME + timedelta(minutes=minutes),
        updated_at=_BASE_TIME + timedelta(minutes=minutes),
    )


def _ids(db: sqlite3.Connection, params: dict[str, str]) -> list[str]:
    return [v.id for v in search_listings(db, params).listings]


# ---------------------------------------------------------------------------
# Scenario: listings A and B
# ---------------------------------------------------------------------------


class TestSantaCruzScenario:
    """A: 1000/2BR/[WiFi], B: 2000/3BR/[WiFi, Gym]."""

    @pytest.fixture
    def store(self, db: sqlite3.Connection) -> sqlite3.Connection:
        insert_listing(db, _listing("A", minutes=0, price=1000, bedrooms=2, amenities=["WiFi"]))
        insert_listing(db, _listing("B", minutes=1, price=2000, bedrooms=3, amenities=["WiFi", "Gym"]))
        return db

    def test_city_and_price(self, store: sqlite3.Connection) -> None:
        assert _ids(store, {"city": "santa cruz", "price": "1500-3000"}) == ["B"]

    def test_amenities(self, store: sqlite3.Connection) -> None:
        assert _ids(store, {"amenities": "WiFi,Gym"}) == ["B"]

    def test_six_plus_bedrooms(self, store: sqlite3.Connection) -> None:
        assert _ids(store, {"bedrooms": "6"}) == []

    def test_no_filters_newest_first(self, store: sqlite3.Connection) -> None:
        response = search_listings(store, {})
        assert [v.id for v in response.listings] == ["B", "A"]
        assert response.total_count == 2

    def test_decoded_fields(self, store: sqlite3.Connection) -> None:
        (b,) = search_listings(store, {"amenities": "Gym"}).listings
        assert b.amenities == ["WiFi", "Gym"]
        assert b.images == []


# ---------------------------------------------------------------------------
# Filter properties
# ---------------------------------------------------------------------------


class TestFilterProperties:
    @pytest.fixture
    def store(self, db: sqlite3.Connection) -> sqlite3.Connection:
        rows = [
            ("p1", 800, 1, "2025-01-01", "2025-03-31", ["WiFi"]),
            ("p2", 1200, 6, "2025-02-01", "2025-06-30", ["WiFi", "Gym"]),
            ("p3", 1800, 7, "2025-03-01", "2025-04-01", ["Gym", "Pool"]),
            ("p4", 2500, 3, "2024-12-01", "2025-12-31", ["WiFi", "Gym", "Pool"]),
            ("p5", 3500, 2, "2025-05-01", "2025-09-30", []),
        ]
        for i, (lid, price, beds, start, end, amenities) in enumerate(rows):
            insert_listing(db, _listing(
                lid, minutes=i, price=price, bedrooms=beds,
                available_from=start, available_to=end, amenities=amenities,
            ))
        return db

    @pytest.mark.parametrize("low,high", [(0, 1000), (1000, 2000), (1200, 1200), (2000, 5000)])
    def test_price_range(self, store: sqlite3.Connection, low: int, high: int) -> None:
        listings = search_listings(store, {"price": f"{low}-{high}"}).listings
        assert all(low <= v.price <= high for v in listings)

    def test_open_upper_price(self, store: sqlite3.Connection) -> None:
        assert set(_ids(store, {"price": "2000+"})) == {"p4", "p5"}

    def test_six_plus_bedrooms(self, store: sqlite3.Connection) -> None:
        listings = search_listings(store, {"bedrooms": "6"}).listings
        assert {v.id for v in listings} == {"p2", "p3"}
        assert all(v.bedrooms >= 6 for v in listings)

    def test_exact_bedrooms(self, store: sqlite3.Connection) -> None:
        assert _ids(store, {"bedrooms": "7"}) == ["p3"]

    def test_coverage_window(self, store: sqlite3.Connection) -> None:
        listings = search_listings(store, {"duration": "2025-02-01-2025-05-01"}).listings
        assert all(
            v.available_from <= date(2025, 2, 1) and v.available_to >= date(2025, 5, 1)
            for v in listings
        )
        ids = {v.id for v in listings}
        assert "p3" not in ids  # available Mar-Apr only
        assert ids == {"p2", "p4"}

    def test_amenities_superset(self, store: sqlite3.Connection) -> None:
        listings = search_listings(store, {"amenities": "WiFi,Gym"}).listings
        assert {v.id for v in listings} == {"p2", "p4"}
        assert all({"WiFi", "Gym"} <= set(v.amenities) for v in listings)

    def test_malformed_price_same_as_absent(self, store: sqlite3.Connection) -> None:
        assert search_listings(store, {"price": "abc"}) == search_listings(store, {})

    def test_malformed_duration_same_as_absent(self, store: sqlite3.Connection) -> None:
        assert search_listings(store, {"duration": "2025-02-01"}) == search_listings(store, {})

    def test_idempotent(self, store: sqlite3.Connection) -> None:
        params = {"price": "1000-3000", "amenities": "Gym", "page": "1", "limit": "3"}
        assert search_listings(store, params) == search_listings(store, params)

    def test_combined_filters(self, store: sqlite3.Connection) -> None:
        params = {"price": "1000-3000", "bedrooms": "6", "amenities": "Pool"}
        assert _ids(store, params) == ["p3"]


# ---------------------------------------------------------------------------
# Pagination and the residual-filter ordering
# ---------------------------------------------------------------------------


class TestPagination:
    @pytest.fixture
    def store(self, db: sqlite3.Connection) -> sqlite3.Connection:
        for i in range(5):
            amenities = ["WiFi", "Gym"] if i % 2 == 0 else ["WiFi"]
            insert_listing(db, _listing(f"l{i}", minutes=i, amenities=amenities))
        return db

    def test_pages_disjoint_and_covering(self, store: sqlite3.Connection) -> None:
        page1 = _ids(store, {"page": "1", "limit": "2"})
        page2 = _ids(store, {"page": "2", "limit": "2"})
        page3 = _ids(store, {"page": "3", "limit": "2"})
        assert page1 == ["l4", "l3"]
        assert page2 == ["l2", "l1"]
        assert page3 == ["l0"]
        assert not set(page1) & set(page2)
        assert set(page1 + page2 + page3) == {f"l{i}" for i in range(5)}

    def test_total_count_independent_of_page(self, store: sqlite3.Connection) -> None:
        for page in ("1", "2", "9"):
            assert search_listings(store, {"page": page, "limit": "2"}).total_count == 5

    def test_page_past_end_is_empty(self, store: sqlite3.Connection) -> None:
        response = search_listings(store, {"page": "10", "limit": "2"})
        assert response.listings == []
        assert response.total_count == 5

    def test_amenities_filter_applied_after_page_cut(self, store: sqlite3.Connection) -> None:
        """Page 1 is [l4, l3]; only l4 has Gym, so the page under-fills."""
        response = search_listings(store, {"amenities": "Gym", "page": "1", "limit": "2"})
        assert [v.id for v in response.listings] == ["l4"]
        # Store-side total, not the amenity-filtered total (3).
        assert response.total_count == 5

    def test_non_final_page_may_be_empty(self, db: sqlite3.Connection) -> None:
        insert_listing(db, _listing("gym-old", minutes=0, amenities=["Gym"]))
        insert_listing(db, _listing("plain-1", minutes=1, amenities=["WiFi"]))
        insert_listing(db, _listing("plain-2", minutes=2, amenities=["WiFi"]))
        page1 = search_listings(db, {"amenities": "Gym", "page": "1", "limit": "2"})
        page2 = search_listings(db, {"amenities": "Gym", "page": "2", "limit": "2"})
        assert page1.listings == []
        assert [v.id for v in page2.listings] == ["gym-old"]
        assert page1.total_count == page2.total_count == 3

    def test_page_with_offset_beyond_integer_range(self, store: sqlite3.Connection) -> None:
        response = search_listings(store, {"page": str(2**62), "limit": "20"})
        assert response.listings == []
        assert response.total_count == 5

    @pytest.mark.parametrize("name", ["price", "bedrooms", "page", "limit"])
    def test_huge_integer_same_as_absent(self, store: sqlite3.Connection, name: str) -> None:
        params = {name: "99999999999999999999"}
        assert search_listings(store, params) == search_listings(store, {})

    def test_default_page_size(self, db: sqlite3.Connection) -> None:
        for i in range(25):
            insert_listing(db, _listing(f"x{i}", minutes=i))
        assert len(search_listings(db, {}).listings) == 20
        assert len(search_listings(db, {"limit": "abc"}).listings) == 20

    def test_page_size_cap(self, db: sqlite3.Connection) -> None:
        for i in range(10):
            insert_listing(db, _listing(f"x{i}", minutes=i))
        response = search_listings(db, {"limit": "1000"}, SearchConfig(default_page_size=4, max_page_size=4))
        assert len(response.listings) == 4


# ---------------------------------------------------------------------------
# Decode failures and store failures
# ---------------------------------------------------------------------------


class TestDecodeFailure:
    @pytest.fixture
    def store(self, db: sqlite3.Connection) -> sqlite3.Connection:
        insert_listing(db, _listing("corrupt", minutes=0, amenities="{not json", images="[broken"))
        insert_listing(db, _listing("good", minutes=1, amenities=["WiFi"], images=["a.jpg"]))
        return db

    def test_corrupt_record_still_listed(self, store: sqlite3.Connection) -> None:
        listings = search_listings(store, {}).listings
        corrupt = next(v for v in listings if v.id == "corrupt")
        assert corrupt.amenities == []
        assert corrupt.images == []

    def test_corrupt_record_excluded_by_amenities_filter(self, store: sqlite3.Connection) -> None:
        assert _ids(store, {"amenities": "WiFi"}) == ["good"]

    def test_good_record_decoded(self, store: sqlite3.Connection) -> None:
        good = get_listing_view(store, "good")
        assert good is not None
        assert good.amenities == ["WiFi"]
        assert good.images == ["a.jpg"]


class TestStoreFailure:
    def test_closed_connection_raises(self, tmp_path: Path) -> None:
        conn = init_db(tmp_path / "gone.db")
        conn.close()
        with pytest.raises(StoreError):
            search_listings(conn, {"city": "santa cruz"})

    def test_missing_table_raises(self, tmp_path: Path) -> None:
        conn = sqlite3.connect(str(tmp_path / "empty.db"))
        try:
            with pytest.raises(StoreError):
                search_listings(conn, {})
        finally:
            conn.close()


class TestGetListingView:
    def test_missing(self, db: sqlite3.Connection) -> None:
        assert get_listing_view(db, "nope") is None
