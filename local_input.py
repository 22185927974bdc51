"""Background reader that turns terminal lines into server requests."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from config import PROMPT
from history import CommandHistory

logger = logging.getLogger(__name__)

InputFunc = Callable[[str], str]
SubmitFunc = Callable[[str], None]


class LocalInputFeeder:
    """Reads one line at a time on a daemon thread and hands it to ``submit``.

    The feeder never touches sockets itself. ``submit`` is expected to queue
    the line for the thread that owns the readiness loop.
    """

    def __init__(
        self,
        submit: SubmitFunc,
        *,
        history: CommandHistory,
        prompt: str = PROMPT,
        input_func: InputFunc = input,
    ) -> None:
        self._submit = submit
        self._history = history
        self._prompt = prompt
        self._input_func = input_func
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="local-input",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 0.1) -> None:
        # A blocked terminal read cannot be interrupted; the thread is a
        # daemon and exits after its current read returns.
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def feed_line(self, line: str) -> bool:
        text = line.strip()
        if not text:
            return False
        self._history.record(text)
        self._submit(text + "\n")
        return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                line = self._input_func(self._prompt)
            except EOFError:
                logger.info("Local input closed, terminal commands disabled")
                return
            if self._stop_event.is_set():
                return
            self.feed_line(line)
