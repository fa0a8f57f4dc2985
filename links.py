"""Pick a streaming-service link out of an artist's MusicBrainz URL relations."""

from __future__ import annotations

import logging
from typing import Iterable

from library import Lookup
from providers import ProviderError

LOG = logging.getLogger("links")


def select_link(urls: Iterable[str], marker: str) -> str:
    """Return the first URL containing ``marker``, or an empty string."""
    for url in urls:
        if marker in url:
            return url
    return ""


class LinkResolver:
    def __init__(self, catalog_provider, marker: str = "deezer") -> None:
        self.catalog_provider = catalog_provider
        self.marker = marker

    def resolve(self, catalog_id: str, artist_name: str) -> Lookup:
        LOG.info("Fetching artist links for %s", artist_name)
        try:
            urls = self.catalog_provider.artist_urls(catalog_id)
        except ProviderError as exc:
            LOG.warning("Could not fetch links for %s: %s", artist_name, exc)
            return Lookup.unresolved()
        if not urls:
            LOG.info("No links found for %s", artist_name)
            return Lookup.absent()
        LOG.debug("Links for %s: %s", artist_name, urls)
        link = select_link(urls, self.marker)
        if not link:
            LOG.info("No %s link among %d link(s) for %s", self.marker, len(urls), artist_name)
            return Lookup.absent()
        return Lookup.resolved(link)
