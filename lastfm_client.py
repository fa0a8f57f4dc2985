"""Last.fm client: user top artists and per-artist top tracks."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from library import Track
from providers import ProviderError, Throttle, build_session

LOG = logging.getLogger("lastfm_client")

LASTFM_API_URL = "https://ws.audioscrobbler.com/2.0/"


class LastFMError(ProviderError):
    """Raised when Last.fm cannot be reached or reports an error."""


def _as_list(value: Any) -> List[Dict[str, Any]]:
    # Last.fm collapses single-item collections into a bare object.
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return value
    return []


class LastFMClient:
    def __init__(
        self,
        api_key: str,
        *,
        rate_limit_per_sec: float = 4.0,
        page_size: int = 200,
        timeout: float = 20.0,
        retries: int = 0,
    ) -> None:
        self.api_key = api_key
        self.page_size = page_size
        self.timeout = timeout
        self.throttle = Throttle(1.0 / max(rate_limit_per_sec, 0.01))
        self.session = build_session(retries)
        self.api_calls = 0

    def get(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        request_params = dict(params)
        request_params["method"] = method
        request_params["api_key"] = self.api_key
        request_params["format"] = "json"

        self.throttle.wait()
        try:
            response = self.session.get(LASTFM_API_URL, params=request_params, timeout=self.timeout)
            self.api_calls += 1
        except requests.RequestException as exc:
            raise LastFMError(f"Last.fm request error for {method}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise LastFMError(
                f"Invalid JSON response from Last.fm for {method} (HTTP {response.status_code})"
            ) from exc

        if isinstance(payload, dict) and "error" in payload:
            raise LastFMError(
                f"Last.fm reported error {payload.get('error')} for {method}: {payload.get('message', '')}"
            )
        if response.status_code != 200:
            raise LastFMError(f"Unexpected Last.fm status {response.status_code} for {method}")
        if not isinstance(payload, dict):
            raise LastFMError(f"Unexpected Last.fm payload for {method}")
        return payload

    def iter_pages(self, method: str, params: Dict[str, Any], collection: str) -> Iterator[Dict[str, Any]]:
        """Yield the ``collection`` object of every page until Last.fm runs out.

        Continuation follows ``totalPages > page``; the generator cannot be
        restarted halfway.
        """
        page = 1
        while True:
            LOG.debug("Fetching %s page %d", method, page)
            payload = self.get(method, {**params, "limit": self.page_size, "page": page})
            try:
                body = payload[collection]
                total_pages = int(body["@attr"]["totalPages"])
            except (KeyError, TypeError, ValueError) as exc:
                raise LastFMError(f"Unexpected Last.fm payload for {method}: {exc!r}") from exc
            yield body
            if total_pages > page:
                page += 1
            else:
                break

    def iter_top_artists(self, username: str) -> Iterator[Dict[str, Any]]:
        for body in self.iter_pages("user.gettopartists", {"user": username}, "topartists"):
            yield from _as_list(body.get("artist"))

    def artist_tracks(self, artist_name: str, username: Optional[str] = None) -> List[Track]:
        params: Dict[str, Any] = {"artist": artist_name}
        if username:
            params["user"] = username
        tracks: List[Track] = []
        for body in self.iter_pages("artist.gettoptracks", params, "toptracks"):
            for entry in _as_list(body.get("track")):
                artist = entry.get("artist")
                artist_label = artist.get("name") if isinstance(artist, dict) else artist
                tracks.append(Track(name=str(entry["name"]), artist=str(artist_label or artist_name)))
        return tracks

    def top_track_titles(self, artist_name: str, limit: int = 100) -> List[str]:
        """Return the artist's global top track titles, single page only."""
        method = "artist.gettoptracks"
        payload = self.get(method, {"artist": artist_name, "limit": limit})
        try:
            return [str(entry["name"]) for entry in _as_list(payload["toptracks"].get("track"))]
        except (KeyError, TypeError, AttributeError) as exc:
            raise LastFMError(f"Unexpected Last.fm payload for {method}: {exc!r}") from exc
