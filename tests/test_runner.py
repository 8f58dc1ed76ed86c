"""End to end runs against a small Jellyfin-like library."""

import json
import sqlite3
import threading
from unittest.mock import patch

import pytest
from PIL import Image

from jdbt.config import ProcessConfiguration
from jdbt.db import PLAYLIST_TYPE, TRACK_TYPE, ALBUM_TYPE
from jdbt.progress import ABORTED_MESSAGE, RunContext, RunStatus
from jdbt.runner import TweakWorker, run_tweaks


@pytest.fixture
def populated(library, image_factory):
    folder = library.folder("Beatles - Abbey Road")
    image_factory(folder / "cover.jpg", size=(120, 80))
    library.playlist(folder, empty_payload=True)
    library.album(folder)
    library.track(folder, "01 - Come Together.mp3")
    library.track(folder, "02 - Something.mp3")
    return library


def _counting_context(**kwargs):
    ctx = RunContext(**kwargs)
    advances = []
    original = ctx.advance

    def advance():
        advances.append(1)
        original()

    ctx.advance = advance
    return ctx, advances


def test_full_run_fills_everything(populated, all_features):
    result = run_tweaks(populated.db, all_features, RunContext())

    assert result.status is RunStatus.COMPLETED
    assert result.error is None
    assert result.modified
    assert result.progress == 100

    tracks = populated.rows("type = ?", (TRACK_TYPE,))
    assert [t["IndexNumber"] for t in tracks] == [1, 2]
    assert {(t["Artists"], t["Album"]) for t in tracks} == {("Beatles", "Abbey Road")}
    assert all(t["Images"].split("*")[3:5] == ["120", "80"] for t in tracks)

    album = populated.rows("type = ?", (ALBUM_TYPE,))[0]
    assert album["Images"] == tracks[0]["Images"]

    playlist = populated.rows("type = ?", (PLAYLIST_TYPE,))[0]
    children = json.loads(playlist["data"])["LinkedChildren"]
    assert [c["Path"] for c in children] == ["01 - Come Together.mp3", "02 - Something.mp3"]
    assert [c["ItemId"] for c in children] == [t["PresentationUniqueKey"] for t in tracks]


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        dict(process_albums=False),
        dict(process_playlist_images=False),
        dict(process_playlist_images=False, process_tracks_artists=False),
        dict(process_playlist_tracklist=False, process_tracks_numbers=False),
    ],
)
def test_progress_steps_match_counted_total(populated, kwargs):
    ctx, advances = _counting_context()
    result = run_tweaks(populated.db, ProcessConfiguration(**kwargs), ctx)

    assert result.status is RunStatus.COMPLETED
    assert len(advances) == ctx.total_operations
    assert ctx.operation_count == ctx.total_operations


def test_nothing_to_do(library, all_features):
    ctx = RunContext()
    result = run_tweaks(library.db, all_features, ctx)

    assert result.status is RunStatus.COMPLETED
    assert result.progress == 100
    assert not result.modified
    logs = [m.value for m in ctx.channel.drain() if m.kind == "log"]
    assert "No update operations to perform." in logs


def test_abort_during_generation_writes_nothing(populated, all_features):
    event = threading.Event()
    # Abort as soon as the first step is reported
    ctx = RunContext(abort_event=event, progress_callback=lambda value: value > 0 and event.set())
    before = populated.dump()

    result = run_tweaks(populated.db, all_features, ctx)

    assert result.status is RunStatus.ABORTED
    assert result.error == ABORTED_MESSAGE
    assert not result.modified
    assert populated.dump() == before


def test_unexpected_exception_ends_errored(populated, all_features):
    ctx = RunContext()
    with patch("jdbt.runner.generate_tracks_number_operations", side_effect=RuntimeError("boom")):
        result = run_tweaks(populated.db, all_features, ctx)

    assert result.status is RunStatus.ERRORED
    assert result.error == "Exception: boom"
    # The result is still the last message of the run
    assert ctx.channel.drain()[-1].value == result


def test_database_error_stops_only_its_phase(populated, all_features):
    with sqlite3.connect(populated.db_path) as conn:
        conn.execute(
            "CREATE TRIGGER no_index BEFORE UPDATE OF IndexNumber ON TypedBaseItems "
            "BEGIN SELECT RAISE(ABORT, 'index is read only'); END"
        )

    result = run_tweaks(populated.db, all_features, RunContext())

    assert result.status is RunStatus.ERRORED
    assert "index is read only" in result.error
    assert result.modified
    tracks = populated.rows("type = ?", (TRACK_TYPE,))
    assert all(t["IndexNumber"] is None for t in tracks)
    # Other phases still ran
    assert all(t["Artists"] == "Beatles" for t in tracks)
    playlist = populated.rows("type = ?", (PLAYLIST_TYPE,))[0]
    assert json.loads(playlist["data"])["LinkedChildren"]


def test_undecodable_cover_does_not_fail_the_run(populated, all_features, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

    result = run_tweaks(populated.db, all_features, RunContext())

    assert result.status is RunStatus.COMPLETED
    tracks = populated.rows("type = ?", (TRACK_TYPE,))
    assert [t["IndexNumber"] for t in tracks] == [1, 2]
    assert all(t["Artists"] == "Beatles" and t["Images"] == "" for t in tracks)


def test_channel_order(populated, all_features):
    ctx = RunContext()
    run_tweaks(populated.db, all_features, ctx)

    messages = list(ctx.channel)
    assert messages[0].kind == "progress" and messages[0].value == 0
    assert messages[-1].kind == "result"
    progress = [m.value for m in messages if m.kind == "progress"]
    assert progress == sorted(progress)
    assert progress[-1] == 100
    logs = [m.value for m in messages if m.kind == "log"]
    assert logs.index("Generating UPDATE data...") < logs.index("Finished!")


def test_worker_thread(populated, all_features):
    seen = []
    worker = TweakWorker(populated.db, all_features, progress_callback=seen.append)
    worker.start()
    messages = list(worker.channel)
    worker.join(timeout=30)

    assert not worker.is_alive()
    assert worker.result.status is RunStatus.COMPLETED
    assert messages[-1].value == worker.result
    assert seen[0] == 0 and seen[-1] == 100


def test_worker_stopped_before_start(populated, all_features):
    before = populated.dump()
    worker = TweakWorker(populated.db, all_features)
    worker.stop()
    worker.start()
    worker.join(timeout=30)

    assert worker.result.status is RunStatus.ABORTED
    assert populated.dump() == before
