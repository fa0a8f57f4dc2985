"""Shared HTTP plumbing for the Last.fm and MusicBrainz clients."""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


class ProviderError(Exception):
    """Raised when a remote provider request fails."""


def build_session(retries: int, headers: Optional[Dict[str, str]] = None) -> requests.Session:
    session = requests.Session()
    if headers:
        session.headers.update(headers)
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class Throttle:
    """Keeps successive requests at least ``interval`` seconds apart."""

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval = max(interval, 0.0)
        self._clock = clock
        self._sleep = sleep
        self._last_request_ts: Optional[float] = None

    def wait(self) -> None:
        if self._last_request_ts is not None:
            wait_for = self._last_request_ts + self.interval - self._clock()
            if wait_for > 0:
                self._sleep(wait_for)
        self._last_request_ts = self._clock()
