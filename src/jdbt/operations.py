"""In-memory update operations produced by the generators."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class PlaylistImageOperation:
    """Metadata for a playlist (or album) folder."""
    path: Path
    image_data: str
    artist: str
    album: str


@dataclass
class TrackNumberOperation:
    path: Path
    track_number: int


@dataclass
class PlaylistTracklistOperation:
    """Member tracks of an empty playlist; `track_ids` is parallel to `tracks`."""
    path: Path
    tracks: List[Path] = field(default_factory=list)
    track_ids: List[str] = field(default_factory=list)
