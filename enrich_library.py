#!/usr/bin/env python3
"""Enrich a Last.fm listening history with MusicBrainz ids and streaming links.

Each stage reads the previous stage's JSON snapshot and writes its own, so the
stages can be run one at a time and an interrupted run picks up where it
stopped.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from rich.console import Console
from rich.logging import RichHandler
from tqdm import tqdm

from config import ConfigurationError, Settings as AppSettings, get_settings
from deemon_command import build_id_command, build_name_command
from identity import IdentityResolver, exact_matcher, fuzzy_matcher
from lastfm_client import LastFMClient, LastFMError
from library import Artist, LookupState, SnapshotError, SnapshotStore, clean_artists
from links import LinkResolver
from musicbrainz_client import MusicBrainzClient

LOG = logging.getLogger("enrich_library")

T = TypeVar("T")


def configure_logging(settings: AppSettings, verbose: bool, debug: bool, log_file: Optional[Path] = None) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if verbose and not debug:
        level = logging.INFO
    if debug:
        level = logging.DEBUG

    handlers: List[logging.Handler] = [RichHandler(console=Console(stderr=True), rich_tracebacks=False, markup=False)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def with_progress(items: Sequence[T], enabled: bool, desc: str) -> Iterable[T]:
    if enabled:
        return tqdm(items, desc=desc, unit="artist")
    return items


def build_lastfm_client(settings: AppSettings) -> LastFMClient:
    api_key, _ = settings.require_lastfm()
    return LastFMClient(
        api_key,
        rate_limit_per_sec=settings.lastfm_requests_per_sec,
        page_size=settings.lastfm_page_size,
        timeout=settings.http_timeout,
        retries=settings.http_retries,
    )


def build_musicbrainz_client(settings: AppSettings) -> MusicBrainzClient:
    return MusicBrainzClient(
        settings.musicbrainz_user_agent,
        request_delay=settings.musicbrainz_request_delay,
        timeout=settings.http_timeout,
        retries=settings.http_retries,
    )


def build_identity_resolver(settings: AppSettings, lastfm: LastFMClient, musicbrainz: MusicBrainzClient) -> IdentityResolver:
    if settings.title_match_mode == "fuzzy":
        matcher = fuzzy_matcher(settings.fuzzy_match_threshold)
    else:
        matcher = exact_matcher
    return IdentityResolver(
        lastfm,
        musicbrainz,
        top_tracks_limit=settings.top_tracks_limit,
        match_threshold=settings.title_match_threshold,
        matcher=matcher,
    )


def fetch_artists(client: LastFMClient, username: str, store: SnapshotStore) -> Optional[List[Dict]]:
    """Page through the user's top artists and write the raw snapshot."""
    artists: List[Dict] = []
    try:
        for artist in client.iter_top_artists(username):
            artists.append(artist)
    except LastFMError as exc:
        LOG.error("Fetching top artists failed after %d artist(s): %s", len(artists), exc)
        return None
    store.save_raw_artists(artists)
    LOG.info("Fetched %d artists for %s", len(artists), username)
    return artists


def clean(store: SnapshotStore, threshold: int, raw_artists: Optional[List[Dict]] = None) -> List[Artist]:
    """Merge raw artists above the play-count threshold into the cleaned snapshot.

    ``raw_artists`` defaults to the raw snapshot on disk.
    """
    if raw_artists is None:
        raw_artists = store.load_raw_artists()
    existing = store.load_artists()
    merged, filtered_out, already_known = clean_artists(raw_artists, existing, threshold)
    LOG.info(
        "Filtered out %d artists with playcount below or equal to %d; %d were already known",
        filtered_out,
        threshold,
        already_known,
    )
    store.save_artists(merged)
    LOG.info("Added %d new artists. Total artists: %d", len(merged) - len(existing), len(merged))
    return merged


def fetch_tracks(
    client: LastFMClient,
    username: Optional[str],
    store: SnapshotStore,
    *,
    skip_existing: bool = False,
    progress: bool = False,
) -> int:
    artists = store.load_artists()
    tracks = store.load_tracks()
    fetched = store.load_fetched_artists()
    if skip_existing:
        # Snapshots written before the fetched record existed only carry track artists.
        done = set(fetched) or {track.artist for track in tracks}
    else:
        done = set()
    added = 0
    failed = 0
    for artist in with_progress(artists, progress, "Tracks"):
        if artist.name in done:
            LOG.debug("Skipping %s; tracks already fetched", artist.name)
            continue
        LOG.info("Fetching songs for %s", artist.name)
        try:
            new_tracks = client.artist_tracks(artist.name, username)
        except LastFMError as exc:
            LOG.warning("Fetching songs for %s failed: %s", artist.name, exc)
            failed += 1
            continue
        except Exception as exc:  # pylint: disable=broad-except
            LOG.exception("Unexpected error while fetching songs for %s: %s", artist.name, exc)
            failed += 1
            continue
        LOG.info("Fetched %d songs for %s", len(new_tracks), artist.name)
        tracks.extend(new_tracks)
        added += len(new_tracks)
        store.save_tracks(tracks)
        if artist.name not in fetched:
            fetched.append(artist.name)
        store.save_fetched_artists(fetched)
    LOG.info("Summary: artists=%d, tracks_added=%d, total_tracks=%d, failed=%d", len(artists), added, len(tracks), failed)
    return added


def resolve_catalog_ids(
    resolver: IdentityResolver,
    store: SnapshotStore,
    *,
    limit: Optional[int] = None,
    progress: bool = False,
) -> Dict[LookupState, int]:
    artists = store.load_artists()
    pending = [artist for artist in artists if artist.catalog_id.is_unresolved]
    LOG.info("Found %d artists without mbid", len(pending))
    if limit is not None:
        pending = pending[:limit]

    outcome = {state: 0 for state in LookupState}
    for artist in with_progress(pending, progress, "MBIDs"):
        try:
            lookup = resolver.resolve(artist.name)
        except Exception as exc:  # pylint: disable=broad-except
            LOG.exception("Unexpected error while resolving %s: %s", artist.name, exc)
            outcome[LookupState.UNRESOLVED] += 1
            continue
        outcome[lookup.state] += 1
        if lookup.is_unresolved:
            continue
        artist.catalog_id = lookup
        store.save_artists(artists)

    LOG.info(
        "Summary: attempted=%d, resolved=%d, not_found=%d, unresolved=%d",
        len(pending),
        outcome[LookupState.RESOLVED],
        outcome[LookupState.CONFIRMED_ABSENT],
        outcome[LookupState.UNRESOLVED],
    )
    return outcome


def resolve_links(
    resolver: LinkResolver,
    store: SnapshotStore,
    *,
    limit: Optional[int] = None,
    progress: bool = False,
) -> Dict[LookupState, int]:
    artists = store.load_artists()
    pending = [
        artist for artist in artists if artist.catalog_id.is_resolved and artist.external_link.is_unresolved
    ]
    LOG.info("Found %d artists with mbid and no %s link attempt", len(pending), resolver.marker)
    if limit is not None:
        pending = pending[:limit]

    outcome = {state: 0 for state in LookupState}
    for artist in with_progress(pending, progress, "Links"):
        try:
            lookup = resolver.resolve(artist.catalog_id.value, artist.name)
        except Exception as exc:  # pylint: disable=broad-except
            LOG.exception("Unexpected error while fetching links for %s: %s", artist.name, exc)
            outcome[LookupState.UNRESOLVED] += 1
            continue
        outcome[lookup.state] += 1
        if lookup.is_unresolved:
            continue
        artist.external_link = lookup
        store.save_artists(artists)

    LOG.info(
        "Summary: attempted=%d, linked=%d, no_link=%d, unresolved=%d",
        len(pending),
        outcome[LookupState.RESOLVED],
        outcome[LookupState.CONFIRMED_ABSENT],
        outcome[LookupState.UNRESOLVED],
    )
    return outcome


def print_command(store: SnapshotStore, by_name: bool) -> int:
    artists = store.load_artists()
    result = build_name_command(artists) if by_name else build_id_command(artists)
    print(result.command)
    if result.skipped:
        LOG.warning("Skipped %d name(s) that are not shell safe:", len(result.skipped))
        for name in result.skipped:
            print(f"  {name}")
    return 0


def cmd_fetch_artists(args: argparse.Namespace, settings: AppSettings, store: SnapshotStore) -> int:
    client = build_lastfm_client(settings)
    _, username = settings.require_lastfm()
    return 0 if fetch_artists(client, username, store) is not None else 1


def cmd_clean(args: argparse.Namespace, settings: AppSettings, store: SnapshotStore) -> int:
    clean(store, settings.playcount_threshold)
    return 0


def cmd_fetch_tracks(args: argparse.Namespace, settings: AppSettings, store: SnapshotStore) -> int:
    client = build_lastfm_client(settings)
    fetch_tracks(
        client,
        settings.lastfm_username,
        store,
        skip_existing=args.skip_existing,
        progress=args.progress,
    )
    return 0


def cmd_resolve_ids(args: argparse.Namespace, settings: AppSettings, store: SnapshotStore) -> int:
    resolver = build_identity_resolver(settings, build_lastfm_client(settings), build_musicbrainz_client(settings))
    resolve_catalog_ids(resolver, store, limit=args.limit, progress=args.progress)
    return 0


def cmd_resolve_links(args: argparse.Namespace, settings: AppSettings, store: SnapshotStore) -> int:
    resolver = LinkResolver(build_musicbrainz_client(settings), settings.link_domain)
    resolve_links(resolver, store, limit=args.limit, progress=args.progress)
    return 0


def cmd_command(args: argparse.Namespace, settings: AppSettings, store: SnapshotStore) -> int:
    return print_command(store, by_name=args.by_name)


def cmd_run(args: argparse.Namespace, settings: AppSettings, store: SnapshotStore) -> int:
    _, username = settings.require_lastfm()
    lastfm = build_lastfm_client(settings)
    musicbrainz = build_musicbrainz_client(settings)

    fetched = fetch_artists(lastfm, username, store)
    if fetched is None:
        return 1
    clean(store, settings.playcount_threshold, fetched)
    if args.with_tracks:
        fetch_tracks(lastfm, username, store, skip_existing=True, progress=args.progress)
    resolve_catalog_ids(
        build_identity_resolver(settings, lastfm, musicbrainz),
        store,
        limit=args.limit,
        progress=args.progress,
    )
    resolve_links(
        LinkResolver(musicbrainz, settings.link_domain),
        store,
        limit=args.limit,
        progress=args.progress,
    )
    LOG.info("Requests: lastfm=%d, musicbrainz=%d", lastfm.api_calls, musicbrainz.api_calls)
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace, AppSettings, SnapshotStore], int]] = {
    "fetch-artists": cmd_fetch_artists,
    "clean": cmd_clean,
    "fetch-tracks": cmd_fetch_tracks,
    "resolve-ids": cmd_resolve_ids,
    "resolve-links": cmd_resolve_links,
    "command": cmd_command,
    "run": cmd_run,
}


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Enrich Last.fm top artists with MusicBrainz ids and streaming links."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable informational logging.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar for per-artist stages.")
    parser.add_argument("--dry-run", action="store_true", help="Do not write snapshots; just log what would change.")
    parser.add_argument("--log-file", help="Also write debug logs to this file.")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("fetch-artists", help="Download the user's top artists from Last.fm.")
    subparsers.add_parser("clean", help="Merge artists above the play-count threshold into the cleaned snapshot.")

    tracks = subparsers.add_parser("fetch-tracks", help="Download top tracks for every cleaned artist.")
    tracks.add_argument(
        "--skip-existing",
        action="store_true",
        help="Skip artists that already have tracks in the tracks snapshot.",
    )

    for name, help_text in (
        ("resolve-ids", "Look up MusicBrainz ids for artists that lack one."),
        ("resolve-links", "Look up streaming links for artists with a MusicBrainz id."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--limit", type=int, default=None, help="Process at most N artists.")

    command = subparsers.add_parser("command", help="Print a deemon monitor command for the enriched artists.")
    command.add_argument(
        "--by-name",
        action="store_true",
        help="Monitor artists without a link by name instead of monitoring linked artists by id.",
    )

    run = subparsers.add_parser("run", help="Fetch, clean and resolve ids and links in one go.")
    run.add_argument("--with-tracks", action="store_true", help="Also fetch top tracks for new artists.")
    run.add_argument("--limit", type=int, default=None, help="Resolve at most N artists per stage.")
    return parser


def run(args: argparse.Namespace) -> int:
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.ERROR)
        LOG.error("Configuration error: %s", exc)
        return 1

    log_path = Path(args.log_file).expanduser() if args.log_file else None
    configure_logging(settings, verbose=args.verbose, debug=args.debug, log_file=log_path)

    store = SnapshotStore.from_settings(settings, dry_run=args.dry_run)
    start_time = time.perf_counter()
    try:
        exit_code = COMMANDS[args.command](args, settings, store)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return 1
    except SnapshotError as exc:
        LOG.error("Snapshot error: %s", exc)
        return 1
    LOG.debug("%s finished in %.2fs", args.command, time.perf_counter() - start_time)
    return exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
