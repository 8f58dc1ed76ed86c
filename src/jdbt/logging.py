from __future__ import annotations
import sys
from typing import Optional, Any, Dict
from loguru import logger


def setup_console(level: str = "INFO", json_path: Optional[str] = None) -> None:
    """Human console output plus an optional JSON lines file."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), enqueue=True, backtrace=False, diagnose=False)
    if json_path:
        setup_json(json_path)

def setup_json(path: str, level: str = "DEBUG") -> None:
    logger.add(path, level=level.upper(), serialize=True, enqueue=True)

def add_channel_sink(channel, run_id: str, level: str = "DEBUG") -> int:
    """Forward the log lines of one run to its channel.

    The sink is not enqueued: lines reach the channel in the worker thread,
    in order with the progress updates of the same run.
    """
    def channel_sink(msg: "loguru.Message"):
        record = msg.record
        channel.put_log(record["level"].name, str(record["message"]).rstrip())

    return logger.add(
        channel_sink,
        level=level.upper(),
        format="{message}",
        filter=lambda record: record["extra"].get("run_id") == run_id,
        catch=True,
    )

def remove_sink(handler_id: int) -> None:
    try:
        logger.remove(handler_id)
    except ValueError:
        # Already removed, e.g. by a logger.remove() from the host application
        pass

def log_event(action: str, **fields: Any) -> None:
    # Strip None values; msg and level are not structured fields
    clean: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    msg = clean.pop("msg", action)
    level = clean.pop("level", "INFO").upper()
    logger.bind(action=action, **clean).log(level, msg)


def truncate(text: str, max_len: int = 4096, max_lines: int = 20) -> str:
    """Truncate a string to a max length and/or max number of lines."""
    if not text:
        return ""
    lines = text.strip().splitlines()
    if len(lines) > max_lines:
        text = "\n".join(["... (truncated)"] + lines[-max_lines:])

    if len(text) > max_len:
        text = "... (truncated)\n" + text[-max_len:]
    return text
