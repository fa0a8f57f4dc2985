"""Tests for the MusicBrainz id disambiguation."""

from identity import IdentityResolver, count_matches, exact_matcher, fuzzy_matcher, normalize_for_match
from lastfm_client import LastFMError
from library import LookupState
from musicbrainz_client import CandidateMatch, MusicBrainzError

from fakes import FakeCatalogProvider, FakeStatsProvider


def candidates(*ids: str) -> list:
    return [CandidateMatch(catalog_id=cid, display_name=f"Artist {cid}") for cid in ids]


class TestSearchOutcomes:
    def test_zero_results_is_not_found(self) -> None:
        stats = FakeStatsProvider(["A"])
        catalog = FakeCatalogProvider([])
        result = IdentityResolver(stats, catalog).resolve("Nobody")

        assert result.state is LookupState.CONFIRMED_ABSENT
        assert result.to_json() == ""
        assert stats.calls == []

    def test_single_result_is_trusted_without_ground_truth(self) -> None:
        stats = FakeStatsProvider(["A"])
        catalog = FakeCatalogProvider(candidates("only-one"))
        result = IdentityResolver(stats, catalog).resolve("Rootkit")

        assert result.state is LookupState.RESOLVED
        assert result.value == "only-one"
        assert stats.calls == []
        assert catalog.release_calls == []

    def test_search_failure_leaves_artist_unresolved(self) -> None:
        catalog = FakeCatalogProvider(errors={"search": MusicBrainzError("HTTP 503")})
        result = IdentityResolver(FakeStatsProvider(), catalog).resolve("Muse")

        assert result.is_unresolved


class TestDisambiguation:
    def test_first_candidate_with_a_match_wins(self) -> None:
        stats = FakeStatsProvider(["A", "B", "C"])
        catalog = FakeCatalogProvider(
            candidates("c1", "c2", "c3"),
            releases={"c1": ["X", "Y"], "c2": ["A", "Z"], "c3": ["A", "B", "C"]},
        )
        result = IdentityResolver(stats, catalog).resolve("Genesis")

        assert result.value == "c2"
        # c3 matches better but is never looked at
        assert catalog.release_calls == ["c1", "c2"]

    def test_ground_truth_fetched_once_with_limit(self) -> None:
        stats = FakeStatsProvider(["A"])
        catalog = FakeCatalogProvider(candidates("c1", "c2"), releases={"c2": ["A"]})
        IdentityResolver(stats, catalog, top_tracks_limit=50).resolve("Genesis")

        assert stats.calls == [("Genesis", 50)]

    def test_no_matching_candidate_is_not_found(self) -> None:
        stats = FakeStatsProvider(["A", "B"])
        catalog = FakeCatalogProvider(candidates("c1", "c2"), releases={"c1": ["X"], "c2": ["Y"]})
        result = IdentityResolver(stats, catalog).resolve("Genesis")

        assert result.state is LookupState.CONFIRMED_ABSENT

    def test_titles_compare_exactly(self) -> None:
        stats = FakeStatsProvider(["Hysteria"])
        catalog = FakeCatalogProvider(candidates("c1", "c2"), releases={"c1": ["hysteria"], "c2": ["Hysteria "]})
        result = IdentityResolver(stats, catalog).resolve("Muse")

        assert result.state is LookupState.CONFIRMED_ABSENT

    def test_threshold_is_tunable(self) -> None:
        stats = FakeStatsProvider(["A", "B", "C"])
        catalog = FakeCatalogProvider(
            candidates("c1", "c2"),
            releases={"c1": ["A"], "c2": ["A", "B"]},
        )
        result = IdentityResolver(stats, catalog, match_threshold=2).resolve("Genesis")

        assert result.value == "c2"

    def test_ground_truth_failure_leaves_artist_unresolved(self) -> None:
        stats = FakeStatsProvider(error=LastFMError("timeout"))
        catalog = FakeCatalogProvider(candidates("c1", "c2"), releases={"c1": ["A"]})
        result = IdentityResolver(stats, catalog).resolve("Genesis")

        assert result.is_unresolved
        assert catalog.release_calls == []

    def test_failed_candidate_is_skipped(self) -> None:
        stats = FakeStatsProvider(["A"])
        catalog = FakeCatalogProvider(
            candidates("c1", "c2"),
            releases={"c2": ["A"]},
            errors={"c1": MusicBrainzError("HTTP 500")},
        )
        result = IdentityResolver(stats, catalog).resolve("Genesis")

        assert result.value == "c2"

    def test_failed_candidate_without_match_stays_unresolved(self) -> None:
        stats = FakeStatsProvider(["A"])
        catalog = FakeCatalogProvider(
            candidates("c1", "c2"),
            releases={"c2": ["B"]},
            errors={"c1": MusicBrainzError("HTTP 500")},
        )
        result = IdentityResolver(stats, catalog).resolve("Genesis")

        assert result.is_unresolved


class TestMatchers:
    def test_count_matches_exact(self) -> None:
        assert count_matches(["A", "B", "C"], ["A", "Z", "C"], exact_matcher) == 2

    def test_normalize_for_match(self) -> None:
        assert normalize_for_match("Hysteria (2011 Remaster)") == "hysteria"
        assert normalize_for_match("Beyoncé") == "beyonce"
        assert normalize_for_match("Rock & Roll") == "rock and roll"

    def test_fuzzy_matcher_ignores_decorations(self) -> None:
        matcher = fuzzy_matcher(90)

        assert matcher("Hysteria", ["Hysteria (Remastered)"])
        assert not matcher("Hysteria", ["Uprising"])

    def test_fuzzy_mode_resolves_near_titles(self) -> None:
        stats = FakeStatsProvider(["Supermassive Black Hole"])
        catalog = FakeCatalogProvider(
            candidates("c1", "c2"),
            releases={"c1": ["Something Else"], "c2": ["Supermassive Black Hole (Live)"]},
        )
        result = IdentityResolver(stats, catalog, matcher=fuzzy_matcher(90)).resolve("Muse")

        assert result.value == "c2"
