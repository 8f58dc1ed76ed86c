"""Application of generated operations as parameterized UPDATE statements.

Each applier prepares one statement, then for every operation: polls the
abort flag, checks its folder is still there, binds and executes. Skipped
operations still advance progress. Executed statements are committed when
the applier returns, whatever the reason.
"""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from .config import ProcessConfiguration
from .db import TweakDB, TABLE_NAME, PLAYLIST_TYPE, ALBUM_TYPE, TRACK_TYPE, EMPTY_PLAYLIST_TEXT
from .operations import PlaylistImageOperation, PlaylistTracklistOperation, TrackNumberOperation
from .progress import RunContext

LIKE_ESCAPE = "!"


def metadata_set_clause(cfg: ProcessConfiguration) -> str:
    """SET assignments for the enabled metadata features ("" if none)."""
    parts = []
    if cfg.process_tracks_artists:
        parts.append("Artists = :artist, AlbumArtists = :artist, Album = :album")
    if cfg.process_playlist_images:
        parts.append("Images = :image")
    return ", ".join(parts)


def metadata_params(op: PlaylistImageOperation, cfg: ProcessConfiguration, path: str) -> dict:
    params = {"path": path}
    if cfg.process_tracks_artists:
        params["artist"] = op.artist
        params["album"] = op.album
    if cfg.process_playlist_images:
        params["image"] = op.image_data
    return params


def folder_like_pattern(folder: str) -> str:
    """LIKE pattern matching everything below `folder`."""
    escaped = (
        folder.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return escaped + os.sep + "%"


def date_last_saved(now: Optional[datetime] = None) -> str:
    """UTC timestamp with the 7 fractional digits .NET writes."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond:06d}0Z"


def playlist_payload(op: PlaylistTracklistOperation, now: Optional[datetime] = None) -> bytes:
    """Compact JSON payload for a playlist holding `op.tracks`."""
    document = json.loads(EMPTY_PLAYLIST_TEXT)
    document["LinkedChildren"] = [
        {"Path": track.name, "Type": "Manual", "ItemId": track_id}
        for track, track_id in zip(op.tracks, op.track_ids)
    ]
    document["DateLastSaved"] = date_last_saved(now)
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _mark_modified(ctx: RunContext, rowcount: int) -> None:
    ctx.log.debug(f"{rowcount} row(s) updated")
    if rowcount > 0:
        ctx.modified = True


def update_playlist_images(
    db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext, operations: List[PlaylistImageOperation]
) -> None:
    """Write playlist metadata to every audio item below each playlist folder."""
    if not operations or not cfg.playlist_metadata_enabled:
        return

    sql = (
        f"UPDATE {TABLE_NAME} SET {metadata_set_clause(cfg)} "
        f"WHERE Path LIKE :path ESCAPE '{LIKE_ESCAPE}' AND MediaType = 'Audio'"
    )
    try:
        with db.prepared_update(sql) as stmt:
            for op in operations:
                if ctx.aborted:
                    return
                folder = op.path.parent
                ctx.log.info(f"Apply update for '{folder.name}' playlist metadata.")
                if not folder.is_dir():
                    ctx.log.warning(f"Playlist folder '{folder}' doesn't exist anymore, skipped.")
                    ctx.advance()
                    continue
                rowcount = stmt.execute(metadata_params(op, cfg, folder_like_pattern(str(folder))))
                _mark_modified(ctx, rowcount)
                ctx.advance()
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to update playlist metadata. SQLite3 error: {e}")


def update_album_operations(
    db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext, operations: List[PlaylistImageOperation]
) -> None:
    if not operations or not cfg.albums_enabled:
        return

    sql = (
        f"UPDATE {TABLE_NAME} SET {metadata_set_clause(cfg)} "
        f"WHERE Path = :path AND MediaType IS NULL AND type = '{ALBUM_TYPE}'"
    )
    try:
        with db.prepared_update(sql) as stmt:
            for op in operations:
                if ctx.aborted:
                    return
                ctx.log.info(f"Apply update for '{op.path.name}' album metadata.")
                if not op.path.exists():
                    ctx.log.warning(f"Album path '{op.path}' doesn't exist anymore, skipped.")
                    ctx.advance()
                    continue
                rowcount = stmt.execute(metadata_params(op, cfg, os.path.realpath(op.path)))
                _mark_modified(ctx, rowcount)
                ctx.advance()
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to update album metadata. SQLite3 error: {e}")


def update_track_numbers(
    db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext, operations: List[TrackNumberOperation]
) -> None:
    if not operations or not cfg.process_tracks_numbers:
        return

    sql = f"UPDATE {TABLE_NAME} SET IndexNumber = :index WHERE Path = :path AND type = '{TRACK_TYPE}'"
    try:
        with db.prepared_update(sql) as stmt:
            for op in operations:
                if ctx.aborted:
                    return
                if not op.path.parent.is_dir():
                    ctx.log.warning(f"Track folder of '{op.path}' doesn't exist anymore, skipped.")
                    ctx.advance()
                    continue
                ctx.log.info(f"Apply update for '{op.path.stem}' track, track number is {op.track_number}.")
                rowcount = stmt.execute({"index": op.track_number, "path": str(op.path)})
                _mark_modified(ctx, rowcount)
                ctx.advance()
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to update track numbers. SQLite3 error: {e}")


def update_playlist_tracks(
    db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext, operations: List[PlaylistTracklistOperation]
) -> None:
    if not operations or not cfg.process_playlist_tracklist:
        return

    sql = f"UPDATE {TABLE_NAME} SET data = :data WHERE Path = :path AND type = '{PLAYLIST_TYPE}'"
    try:
        with db.prepared_update(sql) as stmt:
            for op in operations:
                if ctx.aborted:
                    return
                folder = op.path.parent
                ctx.log.info(f"Apply update for '{folder.name}' playlist tracks list.")
                if not folder.is_dir():
                    ctx.log.warning(f"Playlist folder '{folder}' doesn't exist anymore, skipped.")
                    ctx.advance()
                    continue
                payload = playlist_payload(op)
                rowcount = stmt.execute({"data": sqlite3.Binary(payload), "path": str(op.path)})
                _mark_modified(ctx, rowcount)
                ctx.advance()
    except sqlite3.Error as e:
        ctx.record_error(f"Unable to update playlist track lists. SQLite3 error: {e}")
