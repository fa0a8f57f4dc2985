"""Artist/track records and the JSON snapshots that carry them between stages."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict, Iterable, List, Optional, Tuple

LOG = logging.getLogger("library")

CATALOG_ID_KEY = "mbid"
LINK_KEY = "external_link"
LEGACY_LINK_KEYS = ("deezer_link",)


class SnapshotError(Exception):
    """Raised when a snapshot file cannot be read or written."""


class LookupState(Enum):
    UNRESOLVED = "unresolved"
    CONFIRMED_ABSENT = "confirmed_absent"
    RESOLVED = "resolved"


@dataclass(frozen=True, slots=True)
class Lookup:
    """Outcome of an enrichment lookup.

    ``UNRESOLVED`` means nobody has looked yet (or the last attempt failed),
    ``CONFIRMED_ABSENT`` means a lookup ran and found nothing, and
    ``RESOLVED`` carries the value that was found.
    """

    state: LookupState
    value: Optional[str] = None

    @classmethod
    def unresolved(cls) -> Lookup:
        return cls(LookupState.UNRESOLVED)

    @classmethod
    def absent(cls) -> Lookup:
        return cls(LookupState.CONFIRMED_ABSENT)

    @classmethod
    def resolved(cls, value: str) -> Lookup:
        if not value:
            raise ValueError("A resolved lookup needs a non-empty value")
        return cls(LookupState.RESOLVED, value)

    @classmethod
    def from_json(cls, raw: Any) -> Lookup:
        if raw is None:
            return cls.unresolved()
        text = str(raw).strip()
        if not text:
            return cls.absent()
        return cls.resolved(text)

    def to_json(self) -> Optional[str]:
        """Return the persisted form; ``None`` means the key is omitted."""
        if self.state is LookupState.RESOLVED:
            return self.value
        if self.state is LookupState.CONFIRMED_ABSENT:
            return ""
        return None

    @property
    def is_unresolved(self) -> bool:
        return self.state is LookupState.UNRESOLVED

    @property
    def is_resolved(self) -> bool:
        return self.state is LookupState.RESOLVED


@dataclass(slots=True)
class Artist:
    name: str
    playcount: int
    url: str
    catalog_id: Lookup = field(default_factory=Lookup.unresolved)
    external_link: Lookup = field(default_factory=Lookup.unresolved)

    @classmethod
    def from_lastfm(cls, payload: Dict[str, Any]) -> Artist:
        """Build an artist from a raw ``user.gettopartists`` entry.

        Last.fm reports an empty mbid for artists it cannot map, which only
        means MusicBrainz was never asked, so it stays unresolved.
        """
        mbid = str(payload.get("mbid") or "").strip()
        return cls(
            name=str(payload["name"]),
            playcount=parse_playcount(payload.get("playcount")),
            url=str(payload.get("url", "")),
            catalog_id=Lookup.resolved(mbid) if mbid else Lookup.unresolved(),
        )

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> Artist:
        link_raw = payload.get(LINK_KEY)
        if link_raw is None:
            for legacy_key in LEGACY_LINK_KEYS:
                if payload.get(legacy_key) is not None:
                    link_raw = payload[legacy_key]
                    break
        return cls(
            name=str(payload["name"]),
            playcount=parse_playcount(payload.get("playcount")),
            url=str(payload.get("url", "")),
            catalog_id=Lookup.from_json(payload.get(CATALOG_ID_KEY)),
            external_link=Lookup.from_json(link_raw),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "playcount": self.playcount, "url": self.url}
        mbid = self.catalog_id.to_json()
        if mbid is not None:
            data[CATALOG_ID_KEY] = mbid
        link = self.external_link.to_json()
        if link is not None:
            data[LINK_KEY] = link
        return data


@dataclass(slots=True)
class Track:
    name: str
    artist: str

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> Track:
        return cls(name=str(payload["name"]), artist=str(payload["artist"]))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "artist": self.artist}


def parse_playcount(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


def clean_artists(
    raw_artists: Iterable[Dict[str, Any]],
    existing: List[Artist],
    threshold: int,
) -> Tuple[List[Artist], int, int]:
    """Merge raw Last.fm artists above ``threshold`` into ``existing``.

    Returns ``(merged, filtered_out, already_known)``. Existing entries are
    kept untouched and first-write-wins applies to names.
    """
    merged = list(existing)
    known = {artist.name for artist in merged}
    filtered_out = 0
    already_known = 0
    for payload in raw_artists:
        artist = Artist.from_lastfm(payload)
        if artist.playcount <= threshold:
            filtered_out += 1
            continue
        if artist.name in known:
            already_known += 1
            continue
        known.add(artist.name)
        merged.append(artist)
    return merged, filtered_out, already_known


def write_json_atomic(path: Path, payload: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent)) as tmp:
            json.dump(payload, tmp, indent=2, ensure_ascii=False)
            tmp.flush()
            os.fsync(tmp.fileno())
            temp_name = tmp.name
        os.replace(temp_name, path)
    except OSError as exc:
        raise SnapshotError(f"Failed to write {path}: {exc}") from exc


def read_json_list(path: Path) -> List[Any]:
    if not path.exists():
        LOG.debug("Snapshot %s does not exist yet; starting empty", path)
        return []
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError) as exc:
        raise SnapshotError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(payload, list):
        raise SnapshotError(f"Snapshot {path} did not contain a JSON array")
    return payload


class SnapshotStore:
    """The stage checkpoints: raw artists, cleaned artists and tracks."""

    def __init__(self, raw_artists_path: Path, cleaned_artists_path: Path, tracks_path: Path, *, dry_run: bool = False) -> None:
        self.raw_artists_path = raw_artists_path
        self.cleaned_artists_path = cleaned_artists_path
        self.tracks_path = tracks_path
        self.dry_run = dry_run
        # Dry runs keep their writes here so later stages see them.
        self._pending: Dict[Path, List[Any]] = {}

    @classmethod
    def from_settings(cls, settings: Any, *, dry_run: bool = False) -> SnapshotStore:
        return cls(
            settings.raw_artists_path,
            settings.cleaned_artists_path,
            settings.tracks_path,
            dry_run=dry_run,
        )

    def load_raw_artists(self) -> List[Dict[str, Any]]:
        return [entry for entry in self._read(self.raw_artists_path) if isinstance(entry, dict)]

    def save_raw_artists(self, artists: List[Dict[str, Any]]) -> None:
        self._write(self.raw_artists_path, artists)

    def load_artists(self) -> List[Artist]:
        entries = self._read(self.cleaned_artists_path)
        try:
            return [Artist.from_dict(entry) for entry in entries]
        except (KeyError, TypeError) as exc:
            raise SnapshotError(f"Malformed artist entry in {self.cleaned_artists_path}: {exc!r}") from exc

    def save_artists(self, artists: List[Artist]) -> None:
        self._write(self.cleaned_artists_path, [artist.to_dict() for artist in artists])

    def load_tracks(self) -> List[Track]:
        entries = self._read(self.tracks_path)
        try:
            return [Track.from_dict(entry) for entry in entries]
        except (KeyError, TypeError) as exc:
            raise SnapshotError(f"Malformed track entry in {self.tracks_path}: {exc!r}") from exc

    def save_tracks(self, tracks: List[Track]) -> None:
        self._write(self.tracks_path, [track.to_dict() for track in tracks])

    @property
    def fetched_artists_path(self) -> Path:
        """Names of the artists whose tracks were fetched, kept beside the tracks snapshot."""
        return self.tracks_path.with_name(f"{self.tracks_path.stem}_fetched.json")

    def load_fetched_artists(self) -> List[str]:
        return [name for name in self._read(self.fetched_artists_path) if isinstance(name, str)]

    def save_fetched_artists(self, names: List[str]) -> None:
        self._write(self.fetched_artists_path, names)

    def _read(self, path: Path) -> List[Any]:
        if path in self._pending:
            return list(self._pending[path])
        return read_json_list(path)

    def _write(self, path: Path, payload: List[Any]) -> None:
        if self.dry_run:
            LOG.debug("[dry-run] Skipping write of %d entries to %s", len(payload), path)
            self._pending[path] = list(payload)
            return
        write_json_atomic(path, payload)
        LOG.debug("Persisted %d entries to %s", len(payload), path)
