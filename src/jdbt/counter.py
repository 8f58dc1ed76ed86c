"""Sizing of the progress denominator before any data is generated."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .config import ProcessConfiguration
from .db import (
    TweakDB,
    PLAYLIST_METADATA_WHERE,
    PLAYLIST_TRACKLIST_WHERE,
    TRACK_NUMBER_WHERE,
    ALBUM_METADATA_WHERE,
)
from .progress import RunContext


FEATURE_PLAYLISTS = "playlists"
FEATURE_TRACKLISTS = "tracklists"
FEATURE_TRACK_NUMBERS = "track_numbers"
FEATURE_ALBUMS = "albums"


@dataclass(frozen=True)
class _Feature:
    name: str
    predicate: Tuple[str, tuple]
    # Progress units per row: generation + application, albums only apply
    weight: int
    description: str


_FEATURES = (
    _Feature(FEATURE_PLAYLISTS, PLAYLIST_METADATA_WHERE, 2, "playlists to update image, artists and album metadata"),
    _Feature(FEATURE_TRACKLISTS, PLAYLIST_TRACKLIST_WHERE, 2, "playlists to update audio tracks list"),
    _Feature(FEATURE_TRACK_NUMBERS, TRACK_NUMBER_WHERE, 2, "tracks to update track number"),
    _Feature(FEATURE_ALBUMS, ALBUM_METADATA_WHERE, 1, "albums to update image, artists and album metadata"),
)


def enabled_features(cfg: ProcessConfiguration) -> List[str]:
    enabled = []
    if cfg.playlist_metadata_enabled:
        enabled.append(FEATURE_PLAYLISTS)
    if cfg.process_playlist_tracklist:
        enabled.append(FEATURE_TRACKLISTS)
    if cfg.process_tracks_numbers:
        enabled.append(FEATURE_TRACK_NUMBERS)
    if cfg.albums_enabled:
        enabled.append(FEATURE_ALBUMS)
    return enabled


def count_rows(db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext) -> Dict[str, int]:
    """Rows needing repair per enabled feature.

    A failing count is logged and treated as zero rows.
    """
    enabled = set(enabled_features(cfg))
    counts: Dict[str, int] = {}
    for feature in _FEATURES:
        if feature.name not in enabled:
            continue
        where, params = feature.predicate
        try:
            count = db.count_items(where, params)
        except sqlite3.Error as e:
            ctx.log.warning(f"Unable to perform count operation. Where statement is: {where}. SQLite3 error: {e}.")
            count = 0
        ctx.log.info(f"Found {count} {feature.description}.")
        counts[feature.name] = count
    return counts


def count_operations(db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext) -> int:
    """Fix the run's total number of progress steps and return it."""
    counts = count_rows(db, cfg, ctx)
    weights = {feature.name: feature.weight for feature in _FEATURES}
    total = sum(weights[name] * count for name, count in counts.items())
    ctx.set_total(total)
    return total
