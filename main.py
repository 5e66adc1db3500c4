"""CLI entry point for the listing search service."""

import argparse
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

import yaml

from listings_search.core.codec import encode_collection
from listings_search.core.config import Settings
from listings_search.core.db import StoreError, init_db, insert_listing
from listings_search.core.schemas import ListingRecord
from listings_search.search.assembler import search_listings

logger = logging.getLogger(__name__)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Listing search - search rental listings and serve the search API",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- serve subcommand ---
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    _add_common(serve_parser)
    serve_parser.add_argument("--host", help="Override api.host from settings")
    serve_parser.add_argument("--port", type=int, help="Override api.port from settings")

    # --- search subcommand ---
    search_parser = subparsers.add_parser(
        "search",
        help="Run one search and print the JSON response",
    )
    _add_common(search_parser)
    search_parser.add_argument(
        "params",
        nargs="*",
        metavar="KEY=VALUE",
        help="Query parameters, e.g. city='santa cruz' price=1000-2000",
    )

    # --- seed subcommand ---
    seed_parser = subparsers.add_parser(
        "seed",
        help="Load listings from a YAML file into the database",
    )
    _add_common(seed_parser)
    seed_parser.add_argument(
        "--file",
        default="config/sample_listings.yaml",
        help="Listings YAML file (default: config/sample_listings.yaml)",
    )

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_params(pairs: list[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` arguments into a query mapping (last one wins)."""
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            msg = f"Expected KEY=VALUE, got {pair!r}"
            raise ValueError(msg)
        params[key] = value
    return params


def load_listings_yaml(path: str | Path) -> list[ListingRecord]:
    """Read listings from YAML; amenities/images are given as plain lists."""
    path = Path(path)
    if not path.exists():
        msg = f"Listings file not found: {path}"
        raise FileNotFoundError(msg)
    raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
    records: list[ListingRecord] = []
    for entry in raw.get("listings", []):
        entry = dict(entry)
        entry.setdefault("id", uuid.uuid4().hex)
        for key in ("amenities", "images"):
            if isinstance(entry.get(key), list):
                entry[key] = encode_collection(entry[key])
        records.append(ListingRecord.model_validate(entry))
    return records


def cmd_serve(settings: Settings, args: argparse.Namespace) -> None:
    """Handle serve subcommand."""
    import uvicorn

    from listings_search.api.app import create_app

    host = args.host or settings.api.host
    port = args.port or settings.api.port
    uvicorn.run(create_app(settings), host=host, port=port)


def cmd_search(settings: Settings, args: argparse.Namespace) -> None:
    """Handle search subcommand."""
    params = parse_params(args.params)
    conn = init_db(settings.database.path)
    try:
        response = search_listings(conn, params, settings.search)
    finally:
        conn.close()
    print(response.model_dump_json(by_alias=True, indent=2))


def cmd_seed(settings: Settings, args: argparse.Namespace) -> None:
    """Handle seed subcommand."""
    records = load_listings_yaml(args.file)
    conn = init_db(settings.database.path)
    inserted = 0
    try:
        for record in records:
            if insert_listing(conn, record):
                inserted += 1
            else:
                logger.info("Listing '%s' already exists - skipping", record.id)
    finally:
        conn.close()
    print(f"Seeded {inserted} of {len(records)} listings into {settings.database.path}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "serve":
        cmd_serve(settings, args)
    elif args.command == "search":
        try:
            cmd_search(settings, args)
        except (StoreError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        try:
            cmd_seed(settings, args)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
