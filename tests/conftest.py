"""Shared fixtures for the enrichment tests."""

from __future__ import annotations

from typing import List

import pytest

from library import Artist, Lookup, SnapshotStore


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore(
        tmp_path / "user_artists.json",
        tmp_path / "user_artists_cleaned.json",
        tmp_path / "user_songs.json",
    )


@pytest.fixture
def sample_artists() -> List[Artist]:
    return [
        Artist("Muse", 120, "https://www.last.fm/music/Muse", catalog_id=Lookup.resolved("9c9f1380")),
        Artist("Genesis", 80, "https://www.last.fm/music/Genesis"),
        Artist("Sigur Rós", 60, "https://www.last.fm/music/Sigur+R%C3%B3s", catalog_id=Lookup.absent()),
        Artist("Air", 40, "https://www.last.fm/music/Air"),
    ]
