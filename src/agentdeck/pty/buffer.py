"""Tail buffer for session output."""

from __future__ import annotations

import threading

OUTPUT_BUFFER_SIZE = 50 * 1024  # 50KB


class OutputBuffer:
    """Thread-safe trailing window over a session's output.

    Holds at most ``max_chars`` characters: each append keeps only the
    newest suffix and silently drops the oldest text. The buffer serves
    point-in-time "recent output" queries for consumers that attach late;
    live delivery goes through the output callback, never through here.

    Once :meth:`freeze` is called (the session went offline) the content
    is fixed and further appends are ignored.
    """

    def __init__(self, max_chars: int = OUTPUT_BUFFER_SIZE) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self._max_chars = max_chars
        self._text = ""
        self._total_chars = 0  # Total chars ever appended
        self._frozen = False
        self._lock = threading.Lock()

    def append(self, text: str) -> bool:
        """Append a chunk. Returns False if the buffer is frozen."""
        if not text:
            return True
        with self._lock:
            if self._frozen:
                return False
            self._text = (self._text + text)[-self._max_chars :]
            self._total_chars += len(text)
            return True

    def read(self) -> str:
        """Snapshot of the retained output."""
        with self._lock:
            return self._text

    def read_tail(self, n: int) -> str:
        """The last ``n`` characters of the retained output."""
        if n <= 0:
            return ""
        with self._lock:
            return self._text[-n:]

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        with self._lock:
            return self._frozen

    @property
    def max_chars(self) -> int:
        return self._max_chars

    @property
    def total_chars(self) -> int:
        """Total number of characters ever appended."""
        with self._lock:
            return self._total_chars

    def __len__(self) -> int:
        with self._lock:
            return len(self._text)

    def clear(self) -> None:
        with self._lock:
            self._text = ""
            self._total_chars = 0
