"""Artist, album and track number parsing from file and folder names.

Folders are expected as ``Artist - Album`` and tracks as
``NN - Title.mp3`` or, for multi-disc sets, ``D-NN - Title.mp3``.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

SEPARATOR = " - "
UNKNOWN_ARTIST = "Unknown"
TRACK_EXTENSION = ".mp3"


def split_artist_album(text: str) -> Optional[Tuple[str, str]]:
    """Split ``Artist - Album`` on the first separator.

    Further separators stay in the album part. Returns None when the text
    has no separator.
    """
    parts = text.split(SEPARATOR)
    if len(parts) < 2:
        return None
    return parts[0], SEPARATOR.join(parts[1:])


def resolve_artist_album(primary: str, secondary: str) -> Tuple[str, str]:
    """Artist and album from the first candidate that splits.

    Falls back to (Unknown, secondary) when neither does.
    """
    for text in (primary, secondary):
        result = split_artist_album(text)
        if result is not None:
            return result
    return UNKNOWN_ARTIST, secondary


def list_mp3_files(directory: Path) -> List[Path]:
    """The .mp3 files of a directory in lexicographic path order."""
    with os.scandir(directory) as it:
        files = [Path(entry.path) for entry in it if Path(entry.name).suffix == TRACK_EXTENSION]
    return sorted(files, key=str)


def _ordinal(track_path: Path, siblings: Sequence[Path]) -> int:
    count = 1
    for sibling in sorted(siblings, key=str):
        if sibling.suffix != TRACK_EXTENSION:
            continue
        if sibling == track_path:
            break
        count += 1
    return count


def resolve_track_number(track_path: Path, siblings: Optional[Sequence[Path]] = None) -> Optional[int]:
    """Track number encoded in a track filename.

    ``07 - Title`` gives 7 and ``1-07 - Title`` gives 7. For any other disc
    the embedded number restarts per disc, so the position of the file among
    the folder's .mp3 files is used instead. `siblings` defaults to the
    contents of the file's folder.

    Returns None when the name can't be parsed.
    """
    track_path = Path(track_path)
    parts = track_path.stem.split(SEPARATOR)
    if len(parts) < 2:
        return None

    number_part = parts[0]
    disc_parts = number_part.split("-")
    try:
        if len(disc_parts) > 1:
            if disc_parts[0] == "1":
                return int(disc_parts[1])
            if siblings is None:
                siblings = list_mp3_files(track_path.parent)
            return _ordinal(track_path, siblings)
        return int(number_part)
    except ValueError:
        return None
