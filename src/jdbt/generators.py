"""Generation of update operations (read-only queries, filesystem and image I/O).

Every generator polls the run's abort flag before each row and returns the
operations produced so far when it is set. A database error ends the phase:
it is recorded in the run context and the partial list is returned.
"""

from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional

from .artwork import compute_image_descriptor
from .config import ProcessConfiguration
from .db import (
    TweakDB,
    PLAYLIST_METADATA_WHERE,
    PLAYLIST_TRACKLIST_WHERE,
    TRACK_NUMBER_WHERE,
    ALBUM_METADATA_WHERE,
)
from .operations import PlaylistImageOperation, PlaylistTracklistOperation, TrackNumberOperation
from .parser import list_mp3_files, resolve_artist_album, resolve_track_number
from .progress import RunContext


def _row_path(row: sqlite3.Row) -> Optional[Path]:
    value = row["Path"]
    return Path(value) if value else None


def _playlist_operation(row: sqlite3.Row, cfg: ProcessConfiguration, ctx: RunContext) -> Optional[PlaylistImageOperation]:
    playlist_path = _row_path(row)
    if playlist_path is None or not playlist_path.exists():
        ctx.log.warning(f"Playlist path '{playlist_path}' doesn't exist!")
        return None

    ctx.log.info(f"Generate metadata information of playlist '{playlist_path.name}'.")
    folder = playlist_path.parent
    image_data = compute_image_descriptor(folder, cfg.image_name) if cfg.process_playlist_images else ""
    artist, album = resolve_artist_album(folder.name, playlist_path.stem)
    return PlaylistImageOperation(playlist_path, image_data, artist, album)


def generate_playlist_image_operations(
    db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext
) -> List[PlaylistImageOperation]:
    """Image, artist and album data for playlists missing any of them."""
    operations: List[PlaylistImageOperation] = []
    if not cfg.playlist_metadata_enabled:
        return operations

    where, params = PLAYLIST_METADATA_WHERE
    try:
        with closing(db.iter_items(where, params)) as rows:
            for row in rows:
                if ctx.aborted:
                    return operations
                op = _playlist_operation(row, cfg, ctx)
                if op is not None:
                    operations.append(op)
                ctx.advance()
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to generate playlist metadata. SQLite3 error: {e}")
    return operations


def generate_albums_operations(
    db: TweakDB,
    cfg: ProcessConfiguration,
    ctx: RunContext,
    playlist_operations: List[PlaylistImageOperation],
) -> List[PlaylistImageOperation]:
    """Image, artist and album data for album rows.

    An album whose folder already holds a processed playlist reuses that
    playlist's data. Album rows are counted once, at application, so this
    phase does not advance progress.
    """
    operations: List[PlaylistImageOperation] = []
    if not cfg.albums_enabled:
        return operations

    by_folder: Dict[Path, PlaylistImageOperation] = {}
    for op in playlist_operations:
        by_folder.setdefault(op.path.parent, op)

    where, params = ALBUM_METADATA_WHERE
    try:
        with closing(db.iter_items(where, params)) as rows:
            for row in rows:
                if ctx.aborted:
                    return operations

                album_path = _row_path(row)
                if album_path is None or not album_path.exists():
                    ctx.log.warning(f"Album path '{album_path}' doesn't exist!")
                    continue

                ctx.log.info(f"Generate metadata information of album '{album_path.name}'.")
                known = by_folder.get(album_path)
                if known is not None:
                    operations.append(PlaylistImageOperation(album_path, known.image_data, known.artist, known.album))
                    continue

                image_data = compute_image_descriptor(album_path, cfg.image_name) if cfg.process_playlist_images else ""
                artist, album = resolve_artist_album(album_path.name, album_path.name)
                operations.append(PlaylistImageOperation(album_path, image_data, artist, album))
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to generate album metadata. SQLite3 error: {e}")
    return operations


def generate_tracks_number_operations(
    db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext
) -> List[TrackNumberOperation]:
    operations: List[TrackNumberOperation] = []
    if not cfg.process_tracks_numbers:
        return operations

    where, params = TRACK_NUMBER_WHERE
    try:
        with closing(db.iter_items(where, params)) as rows:
            for row in rows:
                if ctx.aborted:
                    return operations

                track_path = _row_path(row)
                if track_path is None or not track_path.exists():
                    ctx.log.warning(f"Track path '{track_path}' doesn't exist!")
                    ctx.advance()
                    continue

                track_number = resolve_track_number(track_path)
                if track_number is None:
                    ctx.log.warning(f"Track path '{track_path}' split error!")
                else:
                    operations.append(TrackNumberOperation(track_path, track_number))
                ctx.advance()
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to generate track numbers. SQLite3 error: {e}")
    return operations


def generate_playlist_tracks_operations(
    db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext
) -> List[PlaylistTracklistOperation]:
    """Track lists for playlists still holding Jellyfin's empty payload.

    Members are the .mp3 files of the playlist folder; each is resolved to its
    item id. Files without a track row are left out of the list.
    """
    operations: List[PlaylistTracklistOperation] = []
    if not cfg.process_playlist_tracklist:
        return operations

    where, params = PLAYLIST_TRACKLIST_WHERE
    try:
        with closing(db.iter_items(where, params)) as rows:
            for row in rows:
                if ctx.aborted:
                    return operations

                playlist_path = _row_path(row)
                if playlist_path is None or not playlist_path.parent.is_dir():
                    ctx.log.warning(f"Playlist folder of '{playlist_path}' doesn't exist!")
                    ctx.advance()
                    continue

                ctx.log.info(f"Generate track information of playlist '{playlist_path.name}'.")
                op = PlaylistTracklistOperation(playlist_path)
                for track in list_mp3_files(playlist_path.parent):
                    track_id = db.lookup_track_id(str(track))
                    if track_id is None:
                        ctx.log.warning(f"Track '{track}' is not in the database, left out of '{playlist_path.name}'.")
                        continue
                    op.tracks.append(track)
                    op.track_ids.append(track_id)
                operations.append(op)
                ctx.advance()
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to generate playlist track lists. SQLite3 error: {e}")
    return operations
