from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import TweakSettings, cli_overrides_from_args
from .counter import count_rows
from .db import TweakDB
from .logging import setup_console
from .progress import RunContext, RunStatus
from .runner import TweakWorker


EXIT_OK = 0
EXIT_USAGE = 1
EXIT_ERRORED = 2
EXIT_ABORTED = 3

_FEATURE_FLAGS = (
    ("images", "process_playlist_images", "playlist and album image blurhashes"),
    ("tracklists", "process_playlist_tracklist", "track lists of empty playlists"),
    ("artists", "process_tracks_artists", "artists and album names"),
    ("track-numbers", "process_tracks_numbers", "missing track numbers"),
    ("albums", "process_albums", "album rows metadata"),
)


def _add_feature_flags(p: argparse.ArgumentParser) -> None:
    for flag, dest, what in _FEATURE_FLAGS:
        group = p.add_mutually_exclusive_group()
        group.add_argument(f"--{flag}", dest=dest, action="store_const", const=True, default=None, help=f"Fill {what}")
        group.add_argument(f"--no-{flag}", dest=dest, action="store_const", const=False, help=f"Do not fill {what}")
    p.add_argument(
        "--image-name",
        dest="image_name",
        default=None,
        help="Substring of the cover image filename searched in each folder (default from settings)",
    )


def _open_db(db_path: Optional[str]) -> Optional[TweakDB]:
    if not db_path:
        logger.error("No database given; use --db or set db_path in the config")
        return None
    path = Path(db_path).expanduser()
    if not path.is_file():
        logger.error(f"Database file does not exist: {path}")
        return None
    return TweakDB(path)


def cmd_count(cfg: TweakSettings) -> int:
    db = _open_db(cfg.db_path)
    if db is None:
        return EXIT_USAGE
    try:
        counts = count_rows(db, cfg.process_configuration(), RunContext())
    finally:
        db.close()
    for feature, count in counts.items():
        print(f"{feature}: {count}")
    return EXIT_OK


def cmd_process(cfg: TweakSettings) -> int:
    db = _open_db(cfg.db_path)
    if db is None:
        return EXIT_USAGE

    worker = TweakWorker(db, cfg.process_configuration())
    # No run_id: main thread lines stay out of the run's channel
    log = logger.bind(command="process", worker=worker.name)
    log.info(f"Processing {db.path}")
    worker.start()
    try:
        for msg in worker.channel:
            if msg.kind == "progress":
                print(f"\rProgress: {msg.value:3d}%", end="", file=sys.stderr, flush=True)
            elif msg.kind == "result":
                print(file=sys.stderr)
    except KeyboardInterrupt:
        log.warning("Interrupted, stopping after the current row...")
        worker.stop()
    worker.join()

    result = worker.result
    if result is None:
        return EXIT_ERRORED
    if result.status is RunStatus.ABORTED:
        log.warning(f"Aborted; database {'was' if result.modified else 'was not'} modified")
        return EXIT_ABORTED
    if result.status is RunStatus.ERRORED:
        log.error(result.error)
        return EXIT_ERRORED
    log.info(f"Done; database {'was' if result.modified else 'was not'} modified")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="jellyfin-db-tweaker")
    # Config/Logging options (defaults resolved via TweakSettings)
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/jellyfin-db-tweaker/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    p.add_argument(
        "--log-json",
        dest="log_json",
        default=None,
        help="Path to write JSON lines log (structured events)",
    )
    sub = p.add_subparsers(dest="cmd")

    for name, help_text in (
        ("process", "Fill missing metadata in a Jellyfin library database"),
        ("count", "Only count the rows that need repairs"),
    ):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--db", dest="db_path", default=None, help="Path to Jellyfin's library.db")
        _add_feature_flags(sp)

    args = p.parse_args(argv)
    # Load settings: defaults + TOML + env + CLI overrides
    overrides = cli_overrides_from_args(args)
    cfg = TweakSettings.load(config_path=Path(args.config_path).expanduser() if args.config_path else None, overrides=overrides)

    # Write config and exit if requested
    if args.write_config:
        written = cfg.write(Path(args.config_path).expanduser() if args.config_path else None)
        print(f"Config written to: {written}")
        return EXIT_OK

    setup_console(cfg.log_level, cfg.log_json)
    if args.cmd == "process":
        return cmd_process(cfg)
    if args.cmd == "count":
        return cmd_count(cfg)
    p.error("a command is required")
    return EXIT_USAGE


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
