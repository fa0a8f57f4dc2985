"""Central configuration helpers for the enrichment scripts."""

from __future__ import annotations

import os
import unicodedata
import warnings
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from dotenv import find_dotenv, load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent

# Load the checkout .env first, then the one found from the working directory without clobbering.
load_dotenv(dotenv_path=PROJECT_ROOT / ".env", override=False)
load_dotenv(find_dotenv(usecwd=True), override=False)

LEGACY_ENV_NAMES: Dict[str, list[str]] = {
    "LASTFM_USERNAME": ["LASTFM_USER"],
    "LASTFM_REQUESTS_PER_SEC": ["LASTFM_RATE_LIMIT_PER_SEC"],
    "PLAYCOUNT_THRESHOLD": ["MUSICMAN_PLAYCOUNT_THRESHOLD"],
    "MUSICBRAINZ_USER_AGENT": ["MUSICBRAINZ_AGENT"],
    "TITLE_MATCH_THRESHOLD": ["MATCH_THRESHOLD"],
    "FUZZY_MATCH_THRESHOLD": ["FUZZ_THRESHOLD"],
}

TITLE_MATCH_MODES = ("exact", "fuzzy")

_WARNED: set[tuple[str, str]] = set()

class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

def _coerce_str(value: str) -> str:
    return unicodedata.normalize("NFC", value.strip())

def _get_env(name: str) -> Optional[str]:
    candidates = [name] + LEGACY_ENV_NAMES.get(name, [])
    for candidate in candidates:
        raw = os.getenv(candidate)
        if raw is None or raw.strip() == "":
            continue
        if candidate != name:
            _warn_once(candidate, name)
        return raw
    return None

def _warn_once(old_name: str, new_name: str) -> None:
    key = (old_name, new_name)
    if key in _WARNED:
        return
    _WARNED.add(key)
    warnings.warn(
        f"Environment variable {old_name} is deprecated; use {new_name} instead.",
        DeprecationWarning,
        stacklevel=3,
    )

def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = _get_env(name)
    if raw is None or raw.strip() == "":
        return _coerce_str(default) if isinstance(default, str) else default
    return _coerce_str(raw)


def env_int(name: str, default: Optional[int] = None, *, min_value: Optional[int] = None) -> int:
    raw = _get_env(name)
    if raw is None or raw.strip() == "":
        if default is None:
            raise ConfigurationError(f"Missing required integer environment variable: {name}")
        value = int(default)
    else:
        try:
            value = int(raw.strip())
        except ValueError as exc:
            raise ConfigurationError(f"Environment variable {name} must be an integer, got {raw!r}") from exc
    if min_value is not None and value < min_value:
        raise ConfigurationError(f"Environment variable {name} must be >= {min_value}, got {value}")
    return value

def env_float(name: str, default: Optional[float] = None, *, min_value: Optional[float] = None) -> float:
    raw = _get_env(name)
    if raw is None or raw.strip() == "":
        if default is None:
            raise ConfigurationError(f"Missing required float environment variable: {name}")
        value = float(default)
    else:
        try:
            value = float(raw.strip())
        except ValueError as exc:
            raise ConfigurationError(f"Environment variable {name} must be a float, got {raw!r}") from exc
    if min_value is not None and value < min_value:
        raise ConfigurationError(f"Environment variable {name} must be >= {min_value}, got {value}")
    return value

def env_path(name: str, default: Optional[str] = None) -> Path:
    raw = env_str(name, default)
    if raw is None or raw == "":
        raise ConfigurationError(f"Missing required path environment variable: {name}")
    return _resolve_path_relative(raw)

@dataclass(frozen=True)
class Settings:
    lastfm_api_key: Optional[str]
    lastfm_username: Optional[str]
    lastfm_requests_per_sec: float
    lastfm_page_size: int
    playcount_threshold: int
    musicbrainz_user_agent: str
    musicbrainz_request_delay: float
    http_timeout: float
    http_retries: int
    data_dir: Path
    raw_artists_file: str
    cleaned_artists_file: str
    tracks_file: str
    top_tracks_limit: int
    title_match_threshold: int
    title_match_mode: str
    fuzzy_match_threshold: int
    link_domain: str
    log_level: str

    @property
    def raw_artists_path(self) -> Path:
        return self.data_dir / self.raw_artists_file

    @property
    def cleaned_artists_path(self) -> Path:
        return self.data_dir / self.cleaned_artists_file

    @property
    def tracks_path(self) -> Path:
        return self.data_dir / self.tracks_file

    def require_lastfm(self) -> tuple[str, str]:
        """Return (api_key, username) or raise if either is missing."""
        if not self.lastfm_api_key:
            raise ConfigurationError("Missing required LASTFM_API_KEY environment variable.")
        if not self.lastfm_username:
            raise ConfigurationError("Missing required LASTFM_USERNAME environment variable.")
        return self.lastfm_api_key, self.lastfm_username

    @classmethod
    def from_env(cls) -> Settings:
        defaults = {
            "LASTFM_REQUESTS_PER_SEC": "4",
            "LASTFM_PAGE_SIZE": "200",
            "PLAYCOUNT_THRESHOLD": "10",
            "MUSICBRAINZ_USER_AGENT": "musicman/1.0 ( https://github.com/musicman )",
            "MUSICBRAINZ_REQUEST_DELAY": "0.5",
            "HTTP_TIMEOUT": "20",
            "HTTP_RETRIES": "0",
            "DATA_DIR": ".",
            "RAW_ARTISTS_FILE": "user_artists.json",
            "CLEANED_ARTISTS_FILE": "user_artists_cleaned.json",
            "TRACKS_FILE": "user_songs.json",
            "TOP_TRACKS_LIMIT": "100",
            "TITLE_MATCH_THRESHOLD": "1",
            "TITLE_MATCH_MODE": "exact",
            "FUZZY_MATCH_THRESHOLD": "90",
            "LINK_DOMAIN": "deezer",
            "LOG_LEVEL": "INFO",
        }

        values = {key: env_str(key, defaults.get(key)) for key in defaults}

        title_match_mode = (values["TITLE_MATCH_MODE"] or defaults["TITLE_MATCH_MODE"]).lower()
        if title_match_mode not in TITLE_MATCH_MODES:
            raise ConfigurationError(
                f"TITLE_MATCH_MODE must be one of {', '.join(TITLE_MATCH_MODES)}, got {title_match_mode!r}"
            )

        return cls(
            lastfm_api_key=env_str("LASTFM_API_KEY"),
            lastfm_username=env_str("LASTFM_USERNAME"),
            lastfm_requests_per_sec=env_float(
                "LASTFM_REQUESTS_PER_SEC", defaults["LASTFM_REQUESTS_PER_SEC"], min_value=0.01
            ),
            lastfm_page_size=env_int("LASTFM_PAGE_SIZE", defaults["LASTFM_PAGE_SIZE"], min_value=1),
            playcount_threshold=env_int("PLAYCOUNT_THRESHOLD", defaults["PLAYCOUNT_THRESHOLD"], min_value=0),
            musicbrainz_user_agent=values["MUSICBRAINZ_USER_AGENT"] or defaults["MUSICBRAINZ_USER_AGENT"],
            musicbrainz_request_delay=env_float(
                "MUSICBRAINZ_REQUEST_DELAY", defaults["MUSICBRAINZ_REQUEST_DELAY"], min_value=0.0
            ),
            http_timeout=env_float("HTTP_TIMEOUT", defaults["HTTP_TIMEOUT"], min_value=1.0),
            http_retries=env_int("HTTP_RETRIES", defaults["HTTP_RETRIES"], min_value=0),
            data_dir=env_path("DATA_DIR", defaults["DATA_DIR"]),
            raw_artists_file=values["RAW_ARTISTS_FILE"] or defaults["RAW_ARTISTS_FILE"],
            cleaned_artists_file=values["CLEANED_ARTISTS_FILE"] or defaults["CLEANED_ARTISTS_FILE"],
            tracks_file=values["TRACKS_FILE"] or defaults["TRACKS_FILE"],
            top_tracks_limit=env_int("TOP_TRACKS_LIMIT", defaults["TOP_TRACKS_LIMIT"], min_value=1),
            title_match_threshold=env_int("TITLE_MATCH_THRESHOLD", defaults["TITLE_MATCH_THRESHOLD"], min_value=1),
            title_match_mode=title_match_mode,
            fuzzy_match_threshold=env_int("FUZZY_MATCH_THRESHOLD", defaults["FUZZY_MATCH_THRESHOLD"], min_value=1),
            link_domain=values["LINK_DOMAIN"] or defaults["LINK_DOMAIN"],
            log_level=(values["LOG_LEVEL"] or defaults["LOG_LEVEL"]).upper(),
        )

def _resolve_path_relative(raw: str) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    try:
        return path.resolve()
    except OSError:
        return path

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance populated from the environment."""
    return Settings.from_env()


__all__ = [
    "ConfigurationError",
    "Settings",
    "env_float",
    "env_int",
    "env_path",
    "env_str",
    "get_settings",
]
