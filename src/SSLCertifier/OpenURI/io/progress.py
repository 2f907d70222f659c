"""Progress callbacks for streamed bodies.

``content_length_proc`` fires exactly once, before the first body byte, with
the expected size or ``None`` when the size is not derivable (chunked bodies
without Content-Length, FTP servers without SIZE). ``progress_proc`` then
receives the cumulative byte count after every chunk. Both run synchronously
on the calling thread; exceptions raised by them propagate to the caller.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

__all__ = ["ProgressReporter"]


class ProgressReporter:
    def __init__(
        self,
        content_length_proc: Optional[Callable[[Optional[int]], Any]] = None,
        progress_proc: Optional[Callable[[int], Any]] = None,
    ) -> None:
        self._content_length_proc = content_length_proc
        self._progress_proc = progress_proc
        self._started = False
        self.bytes_read = 0

    @classmethod
    def from_options(cls, options: Any) -> "ProgressReporter":
        return cls(options.content_length_proc, options.progress_proc)

    @property
    def wants_total(self) -> bool:
        return self._content_length_proc is not None

    def start(self, total: Optional[int]) -> None:
        if self._started:
            return
        self._started = True
        if self._content_length_proc is not None:
            self._content_length_proc(total)

    def advance(self, nbytes: int) -> None:
        if not nbytes:
            return
        self.bytes_read += nbytes
        if self._progress_proc is not None:
            self._progress_proc(self.bytes_read)
