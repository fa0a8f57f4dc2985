"""Render the enriched artist list as a ``deemon monitor`` command line."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

from library import Artist

DEEMON_MONITOR = "deemon monitor"
UNSAFE_NAME_CHARS = frozenset("()[]-,.'\"/\\:;!?&*#@%$^~`|=+<>_{}")


@dataclass(slots=True)
class DeemonCommand:
    command: str
    skipped: List[str] = field(default_factory=list)


def link_id(link: str) -> str:
    return link.rstrip("/").split("/")[-1]


def is_shell_safe_name(name: str) -> bool:
    if not name.isascii():
        return False
    return not any(ch in UNSAFE_NAME_CHARS for ch in name)


def build_id_command(artists: Iterable[Artist]) -> DeemonCommand:
    """One ``--artist-id`` pair per artist with a resolved link."""
    parts = [DEEMON_MONITOR]
    for artist in artists:
        if artist.external_link.is_resolved:
            parts.append(f"--artist-id {link_id(artist.external_link.value)}")
    return DeemonCommand(command=" ".join(parts))


def build_name_command(artists: Iterable[Artist]) -> DeemonCommand:
    """Quoted names of artists without a link; unsafe names are reported instead."""
    command = DEEMON_MONITOR + " "
    skipped: List[str] = []
    for artist in artists:
        if artist.external_link.is_resolved:
            continue
        if not is_shell_safe_name(artist.name):
            skipped.append(artist.name)
            continue
        command += f'"{artist.name}", '
    return DeemonCommand(command=command, skipped=skipped)
