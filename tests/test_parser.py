import unittest
from pathlib import Path
import tempfile

from jdbt.parser import (
    list_mp3_files,
    resolve_artist_album,
    resolve_track_number,
    split_artist_album,
)


def test_split_artist_album_basic():
    assert split_artist_album("Beatles - Abbey Road") == ("Beatles", "Abbey Road")


def test_split_artist_album_keeps_extra_separators_in_album():
    assert split_artist_album("Pink Floyd - The Wall - Disc 1") == ("Pink Floyd", "The Wall - Disc 1")


def test_split_artist_album_without_separator():
    assert split_artist_album("NoSeparatorHere") is None
    # A hyphen without surrounding spaces is not a separator
    assert split_artist_album("AC-DC") is None


def test_resolve_artist_album_prefers_primary():
    assert resolve_artist_album("Beatles - Abbey Road", "Other - Thing") == ("Beatles", "Abbey Road")


def test_resolve_artist_album_falls_back_to_secondary():
    assert resolve_artist_album("Compilations", "Queen - Greatest Hits") == ("Queen", "Greatest Hits")


def test_resolve_artist_album_unknown_fallback():
    assert resolve_artist_album("NoSeparatorHere", "AlsoNone") == ("Unknown", "AlsoNone")


def test_track_number_simple():
    assert resolve_track_number(Path("/music/A - B/07 - Song.mp3"), siblings=[]) == 7


def test_track_number_first_disc_ignores_siblings():
    siblings = [Path(f"/music/x/{n}.mp3") for n in ("a", "b", "c")]
    assert resolve_track_number(Path("/music/x/1-07 - Track Title.mp3"), siblings) == 7


def test_track_number_unparseable():
    assert resolve_track_number(Path("/music/x/NoSeparator.mp3"), siblings=[]) is None
    assert resolve_track_number(Path("/music/x/Intro - Song.mp3"), siblings=[]) is None


class TestMultiDiscOrdinal(unittest.TestCase):
    def test_later_disc_uses_position_among_mp3_files(self):
        with tempfile.TemporaryDirectory() as td:
            folder = Path(td)
            names = [
                "2-01 - First.mp3",
                "2-02 - Second.mp3",
                "2-03 - Third.mp3",
                "2-03 - Track Title.mp3",
                "2-05 - Fifth.mp3",
            ]
            for name in names:
                (folder / name).write_bytes(b"")
            # Non mp3 entries don't take a position
            (folder / "2-00 - cover.jpg").write_bytes(b"")

            target = folder / "2-03 - Track Title.mp3"
            self.assertEqual(resolve_track_number(target), 4)

    def test_explicit_siblings_are_sorted(self):
        folder = Path("/music/Album")
        siblings = [folder / "2-02 - b.mp3", folder / "2-01 - a.mp3", folder / "2-03 - c.mp3"]
        self.assertEqual(resolve_track_number(folder / "2-03 - c.mp3", siblings), 3)

    def test_list_mp3_files_sorted_and_filtered(self):
        with tempfile.TemporaryDirectory() as td:
            folder = Path(td)
            for name in ("b.mp3", "a.mp3", "c.flac", "cover.jpg"):
                (folder / name).write_bytes(b"")
            self.assertEqual([p.name for p in list_mp3_files(folder)], ["a.mp3", "b.mp3"])


if __name__ == "__main__":
    unittest.main()
