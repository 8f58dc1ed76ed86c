import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Sequence, Union
from loguru import logger

# Jellyfin table and item types to modify
TABLE_NAME = "TypedBaseItems"
PLAYLIST_TYPE = "MediaBrowser.Controller.Playlists.Playlist"
ALBUM_TYPE = "MediaBrowser.Controller.Entities.Audio.MusicAlbum"
TRACK_TYPE = "MediaBrowser.Controller.Entities.Audio.Audio"

# Column Jellyfin uses as the "N" formatted item id in playlist LinkedChildren
ITEM_ID_COLUMN = "PresentationUniqueKey"

# Payload Jellyfin stores for a playlist whose tracks were never filled in.
EMPTY_PLAYLIST_TEXT = (
    '{"OwnerUserId":"00000000000000000000000000000000","Shares":[],"PlaylistMediaType":"Audio",'
    '"IsRoot":false,"LinkedChildren":[],"IsHD":false,"IsShortcut":false,"Width":0,"Height":0,'
    '"ExtraIds":[],"DateLastSaved":"0001-01-01T00:00:00.0000000Z","RemoteTrailers":[],'
    '"SupportsExternalTransfer":false}'
)
EMPTY_PLAYLIST_BLOB = EMPTY_PLAYLIST_TEXT.encode("utf-8")

_MISSING_METADATA = "(Images IS NULL OR Album IS NULL OR Artists IS NULL)"

# Row selection predicates: (WHERE clause, parameters)
PLAYLIST_METADATA_WHERE = (f"type = ? AND {_MISSING_METADATA}", (PLAYLIST_TYPE,))
PLAYLIST_TRACKLIST_WHERE = ("type = ? AND data = ?", (PLAYLIST_TYPE, EMPTY_PLAYLIST_BLOB))
TRACK_NUMBER_WHERE = ("type = ? AND IndexNumber IS NULL", (TRACK_TYPE,))
ALBUM_METADATA_WHERE = (f"type = ? AND {_MISSING_METADATA}", (ALBUM_TYPE,))

Params = Union[Sequence[Any], Mapping[str, Any]]


class PreparedUpdate:
    """One UPDATE statement executed repeatedly with new bindings.

    sqlite3 keeps the compiled statement in the connection cache; the cursor
    is what this object holds and releases.
    """

    def __init__(self, cursor: sqlite3.Cursor, sql: str):
        self._cursor = cursor
        self.sql = sql
        self.executed = 0

    def execute(self, params: Params) -> int:
        self._cursor.execute(self.sql, params)
        self.executed += 1
        return self._cursor.rowcount

    def close(self) -> None:
        self._cursor.close()


class TweakDB:
    """Access layer for a Jellyfin library database."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._conn = threading.local()

    @property
    def conn(self) -> sqlite3.Connection:
        if not hasattr(self._conn, "connection"):
            self._conn.connection = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.connection.row_factory = sqlite3.Row
        return self._conn.connection

    def close(self) -> None:
        conn = getattr(self._conn, "connection", None)
        if conn is not None:
            conn.close()
            del self._conn.connection

    def commit(self):
        self.conn.commit()

    def count_items(self, where: str, params: Params = ()) -> int:
        """COUNT(*) of the items matching a predicate."""
        row = self.conn.execute(f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE {where}", params).fetchone()
        return int(row[0]) if row else 0

    def iter_items(self, where: str, params: Params = ()) -> Iterator[sqlite3.Row]:
        """Iterate full item rows matching a predicate.

        The cursor is closed when the caller stops iterating early.
        """
        cursor = self.conn.execute(f"SELECT * FROM {TABLE_NAME} WHERE {where}", params)
        try:
            for row in cursor:
                yield row
        finally:
            cursor.close()

    def lookup_track_id(self, path: str) -> Optional[str]:
        """Item id of the audio track stored at `path`."""
        row = self.conn.execute(
            f"SELECT * FROM {TABLE_NAME} WHERE type = ? AND Path = ?", (TRACK_TYPE, path)
        ).fetchone()
        if row is None:
            return None
        value = row[ITEM_ID_COLUMN]
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.hex()
        return str(value)

    @contextmanager
    def prepared_update(self, sql: str) -> Iterator[PreparedUpdate]:
        """Hold one UPDATE for the lifetime of an applier call.

        Whatever was executed is committed on exit, including on abort or
        error; the cursor is released on every path.
        """
        stmt = PreparedUpdate(self.conn.cursor(), sql)
        try:
            yield stmt
        finally:
            stmt.close()
            if stmt.executed:
                self.commit()
                logger.debug(f"Committed {stmt.executed} statement(s): {sql}")
