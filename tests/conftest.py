import sqlite3
import uuid
from pathlib import Path

import pytest
from loguru import logger
from PIL import Image

from jdbt.config import ProcessConfiguration
from jdbt.db import TweakDB, PLAYLIST_TYPE, ALBUM_TYPE, TRACK_TYPE, EMPTY_PLAYLIST_BLOB

SCHEMA = """
CREATE TABLE TypedBaseItems (
    guid GUID PRIMARY KEY NOT NULL,
    type TEXT NOT NULL,
    data BLOB NULL,
    ParentId GUID NULL,
    Path TEXT NULL,
    IndexNumber INT NULL,
    Name TEXT NULL,
    MediaType TEXT NULL,
    Images TEXT NULL,
    Artists TEXT NULL,
    AlbumArtists TEXT NULL,
    Album TEXT NULL,
    PresentationUniqueKey TEXT NULL
)
"""


@pytest.fixture(autouse=True)
def quiet_logger():
    # Each test starts without the default stderr sink
    logger.remove()
    yield
    logger.remove()


class Library:
    """A Jellyfin-like database plus the media folders its rows point to."""

    def __init__(self, root: Path):
        self.root = root
        self.media = root / "media"
        self.media.mkdir()
        self.db_path = root / "library.db"
        conn = sqlite3.connect(self.db_path)
        conn.execute(SCHEMA)
        conn.commit()
        conn.close()
        self.db = TweakDB(self.db_path)

    def insert(self, item_type: str, path, **columns) -> str:
        item_id = columns.pop("PresentationUniqueKey", uuid.uuid4().hex)
        values = {"guid": uuid.uuid4().bytes, "type": item_type, "Path": str(path) if path is not None else None,
                  "PresentationUniqueKey": item_id}
        values.update(columns)
        names = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(f"INSERT INTO TypedBaseItems ({names}) VALUES ({marks})", tuple(values.values()))
        return item_id

    def folder(self, name: str) -> Path:
        path = self.media / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def track(self, folder: Path, name: str, *, index=None, row=True) -> Path:
        path = folder / name
        path.write_bytes(b"ID3")
        if row:
            self.insert(TRACK_TYPE, path, MediaType="Audio", IndexNumber=index)
        return path

    def playlist(self, folder: Path, name: str = "playlist.m3u", *, empty_payload=False, **columns) -> Path:
        path = folder / name
        path.write_text("#EXTM3U\n", encoding="utf-8")
        if empty_payload:
            columns.setdefault("data", EMPTY_PLAYLIST_BLOB)
        self.insert(PLAYLIST_TYPE, path, **columns)
        return path

    def album(self, folder: Path, **columns) -> Path:
        self.insert(ALBUM_TYPE, folder, **columns)
        return folder

    def rows(self, where: str = "1", params=()):
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            return conn.execute(f"SELECT * FROM TypedBaseItems WHERE {where} ORDER BY Path", params).fetchall()

    def dump(self):
        return [tuple(row) for row in self.rows()]


@pytest.fixture
def library(tmp_path):
    lib = Library(tmp_path)
    yield lib
    lib.db.close()


@pytest.fixture
def all_features():
    return ProcessConfiguration(image_name="cover")


def make_image(path: Path, size=(64, 48), mode="RGB", color=(200, 30, 30)) -> Path:
    if mode == "RGBA":
        color = color + (255,)
    elif mode == "L":
        color = color[0]
    Image.new(mode, size, color).save(path)
    return path


@pytest.fixture
def image_factory():
    return make_image
