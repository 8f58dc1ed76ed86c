"""Run-scoped progress, cancellation and message channel.

A `RunContext` replaces process-wide counters: it owns the operation counter,
the fixed total used as progress denominator, the abort flag and the last
error of a single run. Everything a caller needs to display (progress, log
lines, the terminal result) is put on a `RunChannel` in the order it happened.
"""
from __future__ import annotations

import queue
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Literal, Optional

from loguru import logger


ABORTED_MESSAGE = "Aborted operation."


class RunStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"


@dataclass(frozen=True)
class RunResult:
    status: RunStatus
    error: Optional[str] = None
    modified: bool = False
    progress: int = 0


@dataclass(frozen=True)
class RunMessage:
    kind: Literal["progress", "log", "result"]
    value: Any
    level: Optional[str] = None


class RunChannel:
    """Ordered messages from the worker to whoever drives the UI."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[RunMessage]" = queue.Queue()

    def put_progress(self, value: int) -> None:
        self._queue.put(RunMessage("progress", value))

    def put_log(self, level: str, text: str) -> None:
        self._queue.put(RunMessage("log", text, level))

    def put_result(self, result: RunResult) -> None:
        self._queue.put(RunMessage("result", result))

    def get(self, timeout: Optional[float] = None) -> Optional[RunMessage]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[RunMessage]:
        items: List[RunMessage] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def __iter__(self) -> Iterator[RunMessage]:
        # Blocks until the terminal result has been delivered
        while True:
            msg = self._queue.get()
            yield msg
            if msg.kind == "result":
                return


class RunContext:
    def __init__(
        self,
        channel: Optional[RunChannel] = None,
        *,
        abort_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[int], None]] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.channel = channel or RunChannel()
        self.run_id = run_id or str(uuid.uuid4())
        self.log = logger.bind(run_id=self.run_id)
        self._abort = abort_event or threading.Event()
        self._progress_callback = progress_callback
        self.operation_count = 0
        self.total_operations: Optional[int] = None
        self.progress = 0
        self.last_error: Optional[str] = None
        self.modified = False

    # -- cancellation --------------------------------------------------
    def request_abort(self) -> None:
        """Safe to call from any thread."""
        self._abort.set()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    # -- progress ------------------------------------------------------
    def set_total(self, total: int) -> None:
        if self.total_operations is not None:
            raise RuntimeError("total operations already fixed for this run")
        self.total_operations = total

    def advance(self) -> None:
        """Count one generation or application step."""
        self.operation_count += 1
        if not self.total_operations:
            return
        self.report(min(100, (self.operation_count * 100) // self.total_operations))

    def report(self, value: int) -> None:
        # Monotonic: a lower value never replaces a higher one
        if value <= self.progress:
            return
        self.progress = value
        self.channel.put_progress(value)
        if self._progress_callback:
            self._progress_callback(value)

    def start(self) -> None:
        self.channel.put_progress(self.progress)
        if self._progress_callback:
            self._progress_callback(self.progress)

    # -- errors --------------------------------------------------------
    def record_error(self, message: str) -> None:
        # Single slot, the most recent error wins
        self.last_error = message
        self.log.error(message)

    def result(self, status: RunStatus, error: Optional[str] = None) -> RunResult:
        return RunResult(
            status=status,
            error=error,
            modified=self.modified,
            progress=self.progress,
        )
