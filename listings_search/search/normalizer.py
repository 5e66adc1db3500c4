"""Query normalizer: raw query parameters -> SearchCriteria.

Pure functions, one per field. Each returns a validated value or None and
never raises, so a malformed parameter degrades to "no filter on that
dimension" instead of failing the request.
"""

import logging
import re
from collections.abc import Mapping
from datetime import date

from listings_search.core.config import SearchConfig
from listings_search.core.db import SQLITE_MAX_INT
from listings_search.core.schemas import (
    OR_MORE_BEDROOMS,
    BedroomsFilter,
    DateRange,
    PriceRange,
    SearchCriteria,
)

logger = logging.getLogger(__name__)

_UINT_RE = re.compile(r"\d+")
_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")

# Query parameter names (URL concern).
PARAM_CITY = "city"
PARAM_STATE = "state"
PARAM_PRICE = "price"
PARAM_PROPERTY = "property"
PARAM_BEDROOMS = "bedrooms"
PARAM_AMENITIES = "amenities"
PARAM_DURATION = "duration"
PARAM_PAGE = "page"
PARAM_LIMIT = "limit"

DEFAULT_PAGE = 1


def _parse_uint(raw: str | None) -> int | None:
    if raw is None:
        return None
    raw = raw.strip()
    if not _UINT_RE.fullmatch(raw):
        return None
    value = int(raw)
    if value > SQLITE_MAX_INT:
        logger.debug("Ignoring out-of-range integer %r", raw)
        return None
    return value


def parse_text(raw: str | None) -> str | None:
    """Trim a free-text filter; empty means absent."""
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def parse_price(raw: str | None) -> PriceRange | None:
    """Parse ``"N-M"``, ``"N+"`` or ``"N"`` into a PriceRange.

    Unparsable bounds are treated as absent. A lone max gets ``min_price=0``.
    ``"N"`` on its own is a lower bound, like ``"N+"``.
    """
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None

    if value.endswith("+"):
        low, high = _parse_uint(value[:-1]), None
    elif "-" in value:
        low_raw, _, high_raw = value.partition("-")
        low, high = _parse_uint(low_raw), _parse_uint(high_raw)
    else:
        low, high = _parse_uint(value), None

    if low is None and high is None:
        logger.debug("Ignoring malformed price %r", raw)
        return None
    return PriceRange(min_price=low if low is not None else 0, max_price=high)


def parse_bedrooms(raw: str | None) -> BedroomsFilter | None:
    """``"6"`` means six or more; any other non-negative integer is exact."""
    count = _parse_uint(raw)
    if count is None:
        if raw is not None and raw.strip():
            logger.debug("Ignoring malformed bedrooms %r", raw)
        return None
    return BedroomsFilter(value=count, or_more=count == OR_MORE_BEDROOMS)


def parse_amenities(raw: str | None) -> tuple[str, ...] | None:
    """Comma-separated required tags, trimmed, empties and repeats dropped."""
    if raw is None:
        return None
    tags: list[str] = []
    for item in raw.split(","):
        tag = item.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tuple(tags) or None


def parse_date_range(raw: str | None) -> DateRange | None:
    """Parse ``YYYY-MM-DD-YYYY-MM-DD`` into a coverage window.

    Exactly six hyphen-delimited tokens; anything else (or an impossible
    calendar date) yields None rather than a half-parsed range.
    """
    if raw is None:
        return None
    tokens = raw.strip().split("-")
    if len(tokens) != 6:
        if raw.strip():
            logger.debug("Ignoring duration %r: expected 6 tokens, got %d", raw, len(tokens))
        return None
    start_raw, end_raw = "-".join(tokens[:3]), "-".join(tokens[3:])
    if not (_ISO_DATE_RE.fullmatch(start_raw) and _ISO_DATE_RE.fullmatch(end_raw)):
        logger.debug("Ignoring duration %r: dates must be YYYY-MM-DD", raw)
        return None
    try:
        start = date.fromisoformat(start_raw)
        end = date.fromisoformat(end_raw)
    except ValueError:
        logger.debug("Ignoring duration %r: invalid calendar date", raw)
        return None
    return DateRange(start=start, end=end)


def parse_positive_int(raw: str | None, default: int) -> int:
    """Parse a strictly positive integer, falling back to ``default``."""
    value = _parse_uint(raw)
    if value is None or value < 1:
        return default
    return value


def normalize_query(
    params: Mapping[str, str],
    config: SearchConfig | None = None,
) -> SearchCriteria:
    """Build SearchCriteria from raw query parameters.

    Args:
        params: Query string mapping (parameter name -> raw string value).
        config: Pagination settings; defaults to ``SearchConfig()``.

    Returns:
        A fresh SearchCriteria. Never raises on malformed input.
    """
    config = config or SearchConfig()

    page_size = parse_positive_int(params.get(PARAM_LIMIT), config.default_page_size)
    if config.max_page_size is not None and page_size > config.max_page_size:
        logger.debug("Capping limit %d to %d", page_size, config.max_page_size)
        page_size = config.max_page_size

    return SearchCriteria(
        city=parse_text(params.get(PARAM_CITY)),
        state=parse_text(params.get(PARAM_STATE)),
        price=parse_price(params.get(PARAM_PRICE)),
        property_type=parse_text(params.get(PARAM_PROPERTY)),
        bedrooms=parse_bedrooms(params.get(PARAM_BEDROOMS)),
        amenities=parse_amenities(params.get(PARAM_AMENITIES)),
        date_range=parse_date_range(params.get(PARAM_DURATION)),
        page=parse_positive_int(params.get(PARAM_PAGE), DEFAULT_PAGE),
        page_size=page_size,
    )
