"""MusicBrainz client: artist search, release titles and URL relations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import requests

from providers import ProviderError, Throttle, build_session

LOG = logging.getLogger("musicbrainz_client")

MUSICBRAINZ_API_URL = "https://musicbrainz.org/ws/2"


class MusicBrainzError(ProviderError):
    """Raised when MusicBrainz cannot be reached or answers unexpectedly."""


@dataclass(slots=True)
class CandidateMatch:
    """Catalog search hit considered during disambiguation."""

    catalog_id: str
    display_name: str


@dataclass(slots=True)
class SearchResult:
    count: int
    candidates: List[CandidateMatch] = field(default_factory=list)


class MusicBrainzClient:
    def __init__(
        self,
        user_agent: str,
        *,
        request_delay: float = 0.5,
        timeout: float = 20.0,
        retries: int = 0,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.throttle = Throttle(request_delay)
        self.session = build_session(retries, headers={"User-Agent": user_agent, "Accept": "application/json"})
        self.api_calls = 0

    def get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{MUSICBRAINZ_API_URL}/{endpoint}"
        request_params = {**params, "fmt": "json"}
        self.throttle.wait()
        try:
            LOG.debug("GET %s with params %s", url, request_params)
            response = self.session.get(url, params=request_params, timeout=self.timeout)
            self.api_calls += 1
        except requests.RequestException as exc:
            raise MusicBrainzError(f"MusicBrainz request to {endpoint} failed: {exc}") from exc

        if response.status_code != 200:
            raise MusicBrainzError(f"MusicBrainz endpoint {endpoint} returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise MusicBrainzError(f"Invalid JSON response from {endpoint}: {exc}") from exc
        if not isinstance(payload, dict):
            raise MusicBrainzError(f"Malformed response from {endpoint}: expected a JSON object")
        return payload

    def search_artists(self, name: str) -> SearchResult:
        payload = self.get("artist", {"query": name})
        candidates = [
            CandidateMatch(catalog_id=str(entry["id"]), display_name=str(entry.get("name", "")))
            for entry in payload.get("artists", [])
        ]
        count = payload.get("count", len(candidates))
        LOG.debug("Search for '%s' returned %s result(s).", name, count)
        return SearchResult(count=int(count), candidates=candidates)

    def release_titles(self, catalog_id: str, limit: int = 100) -> List[str]:
        """Titles of the artist's releases, used as a stand-in for top tracks."""
        payload = self.get("release", {"artist": catalog_id, "limit": limit})
        return [str(entry["title"]) for entry in payload.get("releases", [])]

    def artist_urls(self, catalog_id: str) -> List[str]:
        payload = self.get(f"artist/{catalog_id}", {"inc": "url-rels"})
        urls: List[str] = []
        for relation in payload.get("relations") or []:
            resource = (relation.get("url") or {}).get("resource")
            if resource:
                urls.append(str(resource))
        return urls
