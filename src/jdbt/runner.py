"""Orchestration of a database tweak run."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from loguru import logger

from .appliers import update_album_operations, update_playlist_images, update_playlist_tracks, update_track_numbers
from .config import ProcessConfiguration
from .counter import count_operations
from .db import TweakDB
from .generators import (
    generate_albums_operations,
    generate_playlist_image_operations,
    generate_playlist_tracks_operations,
    generate_tracks_number_operations,
)
from .logging import add_channel_sink, log_event, remove_sink, truncate
from .progress import ABORTED_MESSAGE, RunChannel, RunContext, RunResult, RunStatus


PHASE_COUNT = "count"
PHASE_GENERATE = "generate"
PHASE_APPLY = "apply"


def _aborted(ctx: RunContext) -> RunResult:
    ctx.log.warning(ABORTED_MESSAGE)
    return ctx.result(RunStatus.ABORTED, ABORTED_MESSAGE)


def _process(db: TweakDB, cfg: ProcessConfiguration, ctx: RunContext) -> RunResult:
    ctx.start()

    total = count_operations(db, cfg, ctx)
    log_event(PHASE_COUNT, run_id=ctx.run_id, total=total, level="DEBUG")
    if total == 0:
        ctx.log.info("No update operations to perform.")
        ctx.report(100)
        return ctx.result(RunStatus.COMPLETED)

    ctx.log.info("Generating UPDATE data...")

    playlist_operations = generate_playlist_image_operations(db, cfg, ctx)
    if ctx.aborted:
        return _aborted(ctx)

    tracklist_operations = generate_playlist_tracks_operations(db, cfg, ctx)
    if ctx.aborted:
        return _aborted(ctx)

    track_operations = generate_tracks_number_operations(db, cfg, ctx)
    if ctx.aborted:
        return _aborted(ctx)

    album_operations = generate_albums_operations(db, cfg, ctx, playlist_operations)
    if ctx.aborted:
        return _aborted(ctx)

    log_event(
        PHASE_GENERATE,
        run_id=ctx.run_id,
        playlists=len(playlist_operations),
        tracklists=len(tracklist_operations),
        tracks=len(track_operations),
        albums=len(album_operations),
        level="DEBUG",
    )
    ctx.log.info("Finished generating data, updating database. Please wait...")

    update_playlist_images(db, cfg, ctx, playlist_operations)
    if ctx.aborted:
        return _aborted(ctx)

    update_album_operations(db, cfg, ctx, album_operations)
    if ctx.aborted:
        return _aborted(ctx)

    update_track_numbers(db, cfg, ctx, track_operations)
    if ctx.aborted:
        return _aborted(ctx)

    update_playlist_tracks(db, cfg, ctx, tracklist_operations)
    if ctx.aborted:
        return _aborted(ctx)

    log_event(PHASE_APPLY, run_id=ctx.run_id, operations=ctx.operation_count, modified=ctx.modified, level="DEBUG")

    if ctx.last_error:
        return ctx.result(RunStatus.ERRORED, ctx.last_error)

    ctx.log.info("Finished!")
    ctx.report(100)
    return ctx.result(RunStatus.COMPLETED)


def run_tweaks(db: TweakDB, cfg: ProcessConfiguration, ctx: Optional[RunContext] = None) -> RunResult:
    """Count, generate and apply all enabled repairs in sequence.

    Progress, log lines and finally the result are put on `ctx.channel`.
    Never raises: unexpected exceptions end the run as errored.
    """
    ctx = ctx or RunContext()
    sink_id = add_channel_sink(ctx.channel, ctx.run_id)
    try:
        with logger.contextualize(run_id=ctx.run_id):
            try:
                result = _process(db, cfg, ctx)
            except Exception as e:
                logger.exception("Tweak run failed")
                result = ctx.result(RunStatus.ERRORED, truncate(f"Exception: {e}"))
    finally:
        remove_sink(sink_id)
    ctx.channel.put_result(result)
    return result


class TweakWorker(threading.Thread):
    """Runs `run_tweaks` in the background; `stop()` may be called from any thread."""

    def __init__(
        self,
        db: TweakDB,
        cfg: ProcessConfiguration,
        *,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> None:
        super().__init__(name="jdbt-worker", daemon=True)
        self.db = db
        self.cfg = cfg
        self.channel = RunChannel()
        self.context = RunContext(self.channel, progress_callback=progress_callback)
        self.result: Optional[RunResult] = None

    def stop(self) -> None:
        self.context.request_abort()

    def run(self) -> None:
        try:
            self.result = run_tweaks(self.db, self.cfg, self.context)
        finally:
            # Connections are per thread; this one dies with the worker.
            self.db.close()
