"""Tests for artist records, cleaning and snapshot persistence."""

import json

import pytest

from library import Artist, Lookup, LookupState, SnapshotError, SnapshotStore, Track, clean_artists


def raw(name: str, playcount, mbid: str = "") -> dict:
    return {
        "name": name,
        "playcount": str(playcount),
        "mbid": mbid,
        "url": f"https://www.last.fm/music/{name}",
        "streamable": "0",
    }


class TestLookup:
    @pytest.mark.parametrize(
        "raw_value, state",
        [
            (None, LookupState.UNRESOLVED),
            ("", LookupState.CONFIRMED_ABSENT),
            ("a74b1b7f-71a5-4011-9441-d0b5e4122711", LookupState.RESOLVED),
        ],
    )
    def test_from_json(self, raw_value, state) -> None:
        lookup = Lookup.from_json(raw_value)

        assert lookup.state is state
        assert lookup.to_json() == raw_value

    def test_resolved_requires_value(self) -> None:
        with pytest.raises(ValueError):
            Lookup.resolved("")


class TestArtist:
    def test_from_lastfm_parses_playcount(self) -> None:
        artist = Artist.from_lastfm(raw("Muse", 1234, "9c9f1380"))

        assert artist.playcount == 1234
        assert artist.catalog_id.value == "9c9f1380"

    def test_empty_lastfm_mbid_is_unresolved(self) -> None:
        artist = Artist.from_lastfm(raw("Rootkit", 50))

        assert artist.catalog_id.is_unresolved
        assert "mbid" not in artist.to_dict()

    def test_to_dict_keeps_confirmed_absence(self) -> None:
        artist = Artist("Air", 40, "u", catalog_id=Lookup.resolved("x"), external_link=Lookup.absent())

        assert artist.to_dict() == {"name": "Air", "playcount": 40, "url": "u", "mbid": "x", "external_link": ""}

    def test_legacy_snapshot_fields(self) -> None:
        artist = Artist.from_dict(
            {"name": "Muse", "playcount": "12", "url": "u", "mbid": None, "deezer_link": "https://deezer.com/artist/705"}
        )

        assert artist.catalog_id.is_unresolved
        assert artist.external_link.value == "https://deezer.com/artist/705"


class TestCleanArtists:
    def test_threshold_is_exclusive(self) -> None:
        merged, filtered_out, _ = clean_artists([raw("Edge", 10), raw("Above", 11), raw("Below", 3)], [], 10)

        assert [artist.name for artist in merged] == ["Above"]
        assert filtered_out == 2

    def test_existing_entries_win(self) -> None:
        existing = [Artist("Muse", 100, "u", catalog_id=Lookup.resolved("mbid-1"), external_link=Lookup.absent())]
        merged, _, already_known = clean_artists([raw("Muse", 500, "other"), raw("Air", 50)], existing, 10)

        assert [artist.name for artist in merged] == ["Muse", "Air"]
        assert merged[0].playcount == 100
        assert merged[0].catalog_id.value == "mbid-1"
        assert merged[0].external_link.state is LookupState.CONFIRMED_ABSENT
        assert already_known == 1

    def test_duplicates_within_batch(self) -> None:
        merged, _, already_known = clean_artists([raw("Muse", 50), raw("Muse", 40)], [], 10)

        assert len(merged) == 1
        assert merged[0].playcount == 50
        assert already_known == 1

    def test_merge_is_idempotent(self, store: SnapshotStore) -> None:
        payload = [raw("Muse", 50), raw("Air", 20), raw("Quiet", 1)]
        once, _, _ = clean_artists(payload, [], 10)
        store.save_artists(once)
        first = store.cleaned_artists_path.read_text(encoding="utf-8")

        twice, _, _ = clean_artists(payload, store.load_artists(), 10)
        store.save_artists(twice)

        assert store.cleaned_artists_path.read_text(encoding="utf-8") == first

    def test_existing_never_removed(self) -> None:
        existing = [Artist("Old Favourite", 5, "u")]
        merged, _, _ = clean_artists([raw("Muse", 50)], existing, 10)

        assert [artist.name for artist in merged] == ["Old Favourite", "Muse"]


class TestSnapshotStore:
    def test_missing_files_read_as_empty(self, store: SnapshotStore) -> None:
        assert store.load_artists() == []
        assert store.load_tracks() == []
        assert store.load_raw_artists() == []

    def test_round_trip(self, store: SnapshotStore, sample_artists) -> None:
        store.save_artists(sample_artists)

        assert store.load_artists() == sample_artists
        data = json.loads(store.cleaned_artists_path.read_text(encoding="utf-8"))
        assert data[2] == {
            "name": "Sigur Rós",
            "playcount": 60,
            "url": "https://www.last.fm/music/Sigur+R%C3%B3s",
            "mbid": "",
        }

    def test_tracks_round_trip(self, store: SnapshotStore) -> None:
        tracks = [Track("Uprising", "Muse"), Track("Uprising", "Muse")]
        store.save_tracks(tracks)

        assert store.load_tracks() == tracks

    def test_dry_run_does_not_write(self, tmp_path, sample_artists) -> None:
        store = SnapshotStore(tmp_path / "a.json", tmp_path / "b.json", tmp_path / "c.json", dry_run=True)
        store.save_artists(sample_artists)

        assert not (tmp_path / "b.json").exists()

    def test_dry_run_reads_back_its_writes(self, tmp_path, sample_artists) -> None:
        store = SnapshotStore(tmp_path / "a.json", tmp_path / "b.json", tmp_path / "c.json", dry_run=True)
        store.save_artists(sample_artists)
        store.save_fetched_artists(["Muse"])

        assert store.load_artists() == sample_artists
        assert store.load_fetched_artists() == ["Muse"]
        assert not store.fetched_artists_path.exists()

    def test_fetched_artists_sit_beside_tracks(self, store: SnapshotStore) -> None:
        store.save_fetched_artists(["Muse", "Genesis"])

        assert store.fetched_artists_path == store.tracks_path.with_name("user_songs_fetched.json")
        assert store.load_fetched_artists() == ["Muse", "Genesis"]

    def test_invalid_json(self, store: SnapshotStore) -> None:
        store.cleaned_artists_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(SnapshotError):
            store.load_artists()

    def test_non_list_payload(self, store: SnapshotStore) -> None:
        store.tracks_path.write_text('{"name": "x"}', encoding="utf-8")

        with pytest.raises(SnapshotError):
            store.load_tracks()

    def test_malformed_entry(self, store: SnapshotStore) -> None:
        store.cleaned_artists_path.write_text('[{"playcount": 3}]', encoding="utf-8")

        with pytest.raises(SnapshotError):
            store.load_artists()
