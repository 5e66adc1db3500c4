"""Encode/decode for collection fields persisted as a single JSON string.

Decoding never raises: anything that is not a JSON array decodes to ``[]``,
and array items that are not strings are dropped.
"""

import json
import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)


def encode_collection(values: Iterable[str] | None) -> str:
    """Serialize an ordered collection of tags for storage."""
    return json.dumps([str(v) for v in values or []])


def decode_collection(raw: str | None) -> list[str]:
    """Decode a stored collection back into an ordered list of strings."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Undecodable collection value %r, using []", raw)
        return []
    if not isinstance(value, list):
        logger.debug("Collection value is not an array: %r, using []", raw)
        return []
    tags = [v for v in value if isinstance(v, str)]
    if len(tags) != len(value):
        logger.debug("Dropped %d non-string items from %r", len(value) - len(tags), raw)
    return tags
