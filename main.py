import argparse
import asyncio
import sys
from pathlib import Path
from typing import List

from loguru import logger

from candsync.clients import EndpointClient
from candsync.config import (
    ENDPOINT_URL,
    LOG_LEVEL,
    MATCH_THRESHOLD_M,
    NICKNAME,
    NOMINATIONS_PATH,
    STORAGE_PATH,
)
from candsync.matchers.proximity_matcher import find_nearby_candidates
from candsync.nomination_source import FileNominationSource
from candsync.operator import ConsoleOperator
from candsync.store import CandidateStore, JsonFileStorage, load_endpoint_url, save_endpoint_url
from candsync.sync_pass import refresh_candidates, run_sync_pass
from candsync.viewport import parse_viewport_from_url, visible_candidates


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync nominations with the candidate endpoint.")
    parser.add_argument("--endpoint", help="Endpoint URL (remembered in storage)")
    parser.add_argument("--storage", default=STORAGE_PATH, help="Local storage file")
    parser.add_argument("--threshold", type=float, default=MATCH_THRESHOLD_M, help="Match radius in meters")
    parser.add_argument("--yes", action="store_true", help="Accept the nearest match for every nomination")
    sub = parser.add_subparsers(dest="command")

    p_sync = sub.add_parser("sync", help="Download candidates, diff and upload nominations")
    p_sync.add_argument("--nominations", default=NOMINATIONS_PATH, help="Nominations export (JSON or CSV)")

    sub.add_parser("refresh", help="Download candidates only")

    p_export = sub.add_parser("export", help="Write the candidate cache to a JSON file")
    p_export.add_argument("file")

    p_import = sub.add_parser("import", help="Replace the candidate cache from a JSON file")
    p_import.add_argument("file")

    sub.add_parser("clear", help="Forget all cached candidates")

    p_visible = sub.add_parser("visible", help="List potential candidates inside a map view")
    p_visible.add_argument("url", help="Map URL containing /<lat>,<lng>,<zoom>")
    p_visible.add_argument("--width", type=int, default=1280)
    p_visible.add_argument("--height", type=int, default=720)

    p_nearby = sub.add_parser("nearby", help="List potential candidates around a coordinate")
    p_nearby.add_argument("lat", type=float)
    p_nearby.add_argument("lng", type=float)
    return parser


async def main(argv: List[str] = None) -> int:
    """
    Entry point for the operator CLI.

    - Resolves the endpoint (flag > storage > environment) and remembers it.
    - Dispatches to the requested command; `sync` is the default.
    - Always closes the endpoint session on exit.
    """
    args = build_parser().parse_args(argv)

    # Initialize logs
    logger.remove()  # Remove default handler
    logger.add(sys.stderr, level=LOG_LEVEL, format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>")

    storage = JsonFileStorage(args.storage)
    if args.endpoint:
        save_endpoint_url(storage, args.endpoint)
    endpoint = load_endpoint_url(storage) or ENDPOINT_URL

    store = CandidateStore(storage)
    store.load()
    operator = ConsoleOperator(assume_defaults=args.yes)
    client = EndpointClient()
    command = args.command or "sync"

    try:
        if command == "sync":
            source = FileNominationSource(getattr(args, "nominations", NOMINATIONS_PATH))
            session = await run_sync_pass(
                source, store, client, operator, endpoint,
                threshold_m=args.threshold, nickname=NICKNAME,
            )
            if session is None:
                return 1
            for line in session.preview_lines():
                print(line)
            return 0 if not session.report.failed_ids else 2

        if command == "refresh":
            return 0 if await refresh_candidates(store, client, operator, endpoint) else 1

        if command == "export":
            Path(args.file).write_text(store.export_json() + "\n", encoding="utf-8")
            operator.status(f"Exported {len(store)} candidates to {args.file}")
            return 0

        if command == "import":
            try:
                count = store.import_json(Path(args.file).read_text(encoding="utf-8"))
            except ValueError as e:
                operator.notice(f"Import failed: {e}")
                return 1
            operator.status(f"Imported {count} candidates.")
            return 0

        if command == "clear":
            store.clear()
            operator.status("Candidate cache cleared.")
            return 0

        if command == "visible":
            viewport = parse_viewport_from_url(args.url, args.width, args.height)
            if viewport is None:
                operator.notice("Map URL has no /<lat>,<lng>,<zoom> segment")
                return 1
            markers = visible_candidates(store.snapshot(), viewport)
            for m in markers:
                print(f"{m.id}\t{m.candidate.title}\t{m.x:.1f}\t{m.y:.1f}")
            operator.status(f"{len(markers)} potential POIs in bounds.")
            return 0

        if command == "nearby":
            for m in find_nearby_candidates(args.lat, args.lng, store.snapshot()):
                print(f"{m.id}\t{m.candidate.title}\t{m.distance_m:.1f} m")
            return 0
    finally:
        # Cleanup: drain deletions and close the session to prevent unclosed connector warnings
        await client.close()

    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
