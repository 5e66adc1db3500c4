"""Predicate compiler: SearchCriteria -> store predicate + residual filter.

Every field the store can evaluate becomes one SQL clause; clauses are
conjoined. Amenities live in a serialized column the store cannot query, so
they compile to an in-memory filter applied after records are fetched.
"""

import logging
from dataclasses import dataclass
from typing import Any

from listings_search.core.codec import decode_collection
from listings_search.core.db import StorePredicate
from listings_search.core.schemas import ListingRecord, SearchCriteria

logger = logging.getLogger(__name__)

_LIKE_ESCAPE = "\\"


class AmenitiesFilter:
    """Keep records whose decoded amenities include every required tag.

    Subset semantics: a record with undecodable amenities has no tags and can
    never match a non-empty requirement.
    """

    def __init__(self, required: tuple[str, ...]) -> None:
        self._required = frozenset(required)

    @property
    def required(self) -> frozenset[str]:
        return self._required

    def matches(self, record: ListingRecord) -> bool:
        return self._required.issubset(decode_collection(record.amenities))

    def __call__(self, records: list[ListingRecord]) -> list[ListingRecord]:
        if not self._required:
            return records
        result = [r for r in records if self.matches(r)]
        removed = len(records) - len(result)
        if removed:
            logger.debug("AmenitiesFilter: removed %d records", removed)
        return result


@dataclass(frozen=True)
class CompiledQuery:
    """Output of compilation: what the store filters, and what is left over."""

    store: StorePredicate
    residual: AmenitiesFilter | None = None


def _escape_like(value: str) -> str:
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def _contains_clause(column: str, value: str) -> tuple[str, str]:
    """Case-insensitive substring match on ``column``.

    Both sides are casefolded in Python (``CASEFOLD`` is registered by
    :func:`listings_search.core.db.connect`), so non-ASCII text folds too.
    """
    return (
        f"CASEFOLD({column}) LIKE ? ESCAPE '{_LIKE_ESCAPE}'",
        f"%{_escape_like(value.casefold())}%",
    )


def compile_criteria(criteria: SearchCriteria) -> CompiledQuery:
    """Translate criteria into a conjunctive store predicate and residual filter."""
    clauses: list[str] = []
    params: list[Any] = []

    def add(clause: str, *values: Any) -> None:
        clauses.append(clause)
        params.extend(values)

    if criteria.city is not None:
        add(*_contains_clause("city", criteria.city))

    if criteria.state is not None:
        add(*_contains_clause("state", criteria.state))

    if criteria.price is not None:
        add("price >= ?", criteria.price.min_price)
        if criteria.price.max_price is not None:
            add("price <= ?", criteria.price.max_price)

    if criteria.property_type is not None:
        add("property_type = ?", criteria.property_type)

    if criteria.bedrooms is not None:
        if criteria.bedrooms.or_more:
            add("bedrooms >= ?", criteria.bedrooms.value)
        else:
            add("bedrooms = ?", criteria.bedrooms.value)

    # Coverage, not overlap: the listing must be available for the whole window.
    if criteria.date_range is not None:
        add("available_from <= ?", criteria.date_range.start.isoformat())
        add("available_to >= ?", criteria.date_range.end.isoformat())

    residual = AmenitiesFilter(criteria.amenities) if criteria.amenities else None

    logger.debug(
        "Compiled %d store clauses, residual=%s",
        len(clauses), sorted(residual.required) if residual else None,
    )
    return CompiledQuery(
        store=StorePredicate(clauses=tuple(clauses), params=tuple(params)),
        residual=residual,
    )
