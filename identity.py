"""Match a Last.fm artist name to a MusicBrainz artist id.

A search with a single hit is trusted as is. With several hits the artist's
Last.fm top tracks act as ground truth: candidates are walked in the order
MusicBrainz returned them and the first one whose release titles share at
least ``match_threshold`` titles with the ground truth wins.
"""

from __future__ import annotations

import logging
import re
import string
import unicodedata
from typing import Callable, Iterable, List, Optional

from rapidfuzz import fuzz

from library import Lookup
from providers import ProviderError

LOG = logging.getLogger("identity")

BRACKETED_RE = re.compile(r"\(.*?\)|\[.*?\]|\{.*?\}")
VERSION_SUFFIX_RE = re.compile(r"\b(remaster(?:ed)?|live|mono mix|stereo mix|version)\b.*$")
PUNCT_TABLE = str.maketrans("", "", string.punctuation)

TitleMatcher = Callable[[str, List[str]], bool]


def normalize_for_match(value: Optional[str]) -> str:
    if not value:
        return ""
    text = unicodedata.normalize("NFC", value)
    text = text.replace("&", " and ")
    text = text.lower()
    text = BRACKETED_RE.sub(" ", text)
    text = VERSION_SUFFIX_RE.sub(" ", text)
    text = text.translate(PUNCT_TABLE)
    text = "".join(ch for ch in unicodedata.normalize("NFKD", text) if not unicodedata.combining(ch))
    return " ".join(text.split())


def exact_matcher(title: str, candidate_titles: List[str]) -> bool:
    return title in candidate_titles


def fuzzy_matcher(threshold: int) -> TitleMatcher:
    def match(title: str, candidate_titles: List[str]) -> bool:
        wanted = normalize_for_match(title)
        if not wanted:
            return False
        return any(fuzz.ratio(wanted, normalize_for_match(other)) >= threshold for other in candidate_titles)

    return match


def count_matches(ground_truth: Iterable[str], candidate_titles: List[str], matcher: TitleMatcher = exact_matcher) -> int:
    return sum(1 for title in ground_truth if matcher(title, candidate_titles))


class IdentityResolver:
    def __init__(
        self,
        stats_provider,
        catalog_provider,
        *,
        top_tracks_limit: int = 100,
        match_threshold: int = 1,
        matcher: TitleMatcher = exact_matcher,
    ) -> None:
        self.stats_provider = stats_provider
        self.catalog_provider = catalog_provider
        self.top_tracks_limit = top_tracks_limit
        self.match_threshold = max(1, match_threshold)
        self.matcher = matcher

    def resolve(self, artist_name: str) -> Lookup:
        """Return the resolved id, a confirmed absence, or unresolved on failure."""
        LOG.info("Fetching mbid for %s", artist_name)
        try:
            result = self.catalog_provider.search_artists(artist_name)
        except ProviderError as exc:
            LOG.warning("Search for %s failed: %s", artist_name, exc)
            return Lookup.unresolved()

        if result.count == 0 or not result.candidates:
            LOG.info("No mbid found for %s", artist_name)
            return Lookup.absent()

        if result.count == 1:
            candidate = result.candidates[0]
            LOG.info("Found mbid for %s: %s", artist_name, candidate.catalog_id)
            return Lookup.resolved(candidate.catalog_id)

        LOG.info("Found %d results for %s", result.count, artist_name)
        try:
            ground_truth = self.stats_provider.top_track_titles(artist_name, self.top_tracks_limit)
        except ProviderError as exc:
            LOG.warning("Could not fetch top tracks for %s: %s", artist_name, exc)
            return Lookup.unresolved()

        had_failure = False
        for candidate in result.candidates:
            try:
                candidate_titles = self.catalog_provider.release_titles(candidate.catalog_id, self.top_tracks_limit)
            except ProviderError as exc:
                LOG.warning("Could not fetch releases for %s (%s): %s", candidate.display_name, candidate.catalog_id, exc)
                had_failure = True
                continue
            matches = count_matches(ground_truth, candidate_titles, self.matcher)
            LOG.debug("Candidate %s (%s) shares %d title(s)", candidate.display_name, candidate.catalog_id, matches)
            if matches >= self.match_threshold:
                LOG.info("Found mbid for %s: %s", candidate.display_name, candidate.catalog_id)
                return Lookup.resolved(candidate.catalog_id)

        if had_failure:
            LOG.info("No mbid confirmed for %s; some candidates could not be checked", artist_name)
            return Lookup.unresolved()
        LOG.info("No mbid found for %s", artist_name)
        return Lookup.absent()
