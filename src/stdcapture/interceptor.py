"""Redirect one standard stream to an OS pipe and drain it on a thread.

A ``StreamInterceptor`` swaps the writer held by a ``StreamHandle`` (by
default ``sys.stdout`` or ``sys.stderr``) for the write end of a fresh
pipe.  A background thread copies the read end into memory so that
writers never block on a full pipe, however much they write.

Handles are process-wide slots.  Only one capture session may be active
per handle at a time; overlapping or nested sessions on the same handle
are not supported and are not detected.
"""

from __future__ import annotations

import contextlib
import io
import os
import shutil
import sys
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import IO, Any, Callable

from .models import CaptureOptions

CopyFn = Callable[[IO[bytes], IO[bytes], int], object]


@dataclass(frozen=True)
class StreamHandle:
    """A named attribute slot holding the current writer of a stream."""

    owner: Any
    name: str

    def get(self) -> Any:
        return getattr(self.owner, self.name)

    def set(self, value: Any) -> None:
        setattr(self.owner, self.name, value)


STDOUT = StreamHandle(sys, "stdout")
STDERR = StreamHandle(sys, "stderr")


def copy_stream(src: IO[bytes], dst: IO[bytes], chunk_size: int) -> None:
    """Copy *src* into *dst* until end-of-stream."""
    shutil.copyfileobj(src, dst, chunk_size)


class StreamInterceptor:
    """Capture everything written through one ``StreamHandle``.

    Usage::

        restore, finish = StreamInterceptor(STDOUT).begin()
        try:
            print("some output")
            text, err = finish()
        finally:
            restore()

    ``finish`` closes the pipe's write end *before* waiting on the drain
    thread; the drain only sees end-of-stream once every write end is
    closed.
    """

    def __init__(
        self,
        handle: StreamHandle,
        options: CaptureOptions | None = None,
        *,
        copy: CopyFn | None = None,
    ) -> None:
        self.handle = handle
        self.options = options or CaptureOptions()
        self._copy = copy
        self._original: Any = None
        self._reader: IO[bytes] | None = None
        self._writer: IO[str] | None = None
        self._thread: threading.Thread | None = None
        self._result: Future | None = None
        self._finished = False

    @property
    def active(self) -> bool:
        """*True* between ``begin()`` and ``finish()``."""
        return self._result is not None and not self._finished

    # ── session ──────────────────────────────────────────────────────────

    def begin(self) -> tuple[Callable[[], None], Callable[[], tuple[str, Exception | None]]]:
        """Point the handle at a new pipe and return ``(restore, finish)``.

        If the handle cannot be swapped, the pipe and drain thread are
        released before the error propagates.
        """
        if self._result is not None:
            raise RuntimeError(f"capture of {self.handle.name} already started")

        original = self.handle.get()

        read_fd, write_fd = os.pipe()
        self._reader = open(read_fd, "rb")
        try:
            self._writer = open(
                write_fd,
                "w",
                encoding=self.options.encoding,
                errors=self.options.errors,
                newline="",
            )
        except BaseException:
            os.close(write_fd)
            self._reader.close()
            raise
        self._result = Future()

        # The drain must be reading before anyone can write to the pipe.
        self._thread = threading.Thread(
            target=self._drain,
            name=f"stdcapture-{self.handle.name}",
            daemon=True,
        )
        try:
            self._thread.start()
            self.handle.set(self._writer)
        except BaseException:
            self._abort()
            raise

        self._original = original
        return self.restore, self.finish

    def restore(self) -> None:
        """Put the handle's pre-``begin`` writer back."""
        if self._result is None:
            raise RuntimeError(f"capture of {self.handle.name} was never started")
        self.handle.set(self._original)

    def finish(self) -> tuple[str, Exception | None]:
        """Close the write end, wait for the drain and return ``(text, error)``.

        On a copy failure *text* holds whatever was captured before the
        failure; callers decide whether to keep it.
        """
        if self._result is None:
            raise RuntimeError(f"capture of {self.handle.name} was never started")
        if self._finished:
            raise RuntimeError(f"capture of {self.handle.name} already finished")
        self._finished = True

        close_error: Exception | None = None
        try:
            self._writer.close()
        except (OSError, ValueError) as exc:
            close_error = exc

        data, copy_error = self._result.result()
        self._thread.join()
        text = data.decode(self.options.encoding, self.options.errors)
        return text, copy_error or close_error

    def close(self) -> None:
        """Release the pipe when the session ends without ``finish()``."""
        if not self.active:
            return
        self._finished = True
        with contextlib.suppress(OSError, ValueError):
            self._writer.close()
        self._thread.join()

    def _abort(self) -> None:
        """Undo a partially completed ``begin()``."""
        self._finished = True
        with contextlib.suppress(OSError, ValueError):
            self._writer.close()
        if self._thread.ident is not None:
            self._thread.join()
        self._reader.close()

    # ── drain thread ─────────────────────────────────────────────────────

    def _drain(self) -> None:
        buf = io.BytesIO()
        error: Exception | None = None
        copy = self._copy or copy_stream
        try:
            try:
                copy(self._reader, buf, self.options.chunk_size)
            except Exception as exc:
                error = exc
                self._discard()
        finally:
            self._reader.close()
            self._result.set_result((buf.getvalue(), error))

    def _discard(self) -> None:
        """Read and drop the rest of the pipe so writers never block."""
        with contextlib.suppress(OSError, ValueError):
            while self._reader.read(self.options.chunk_size):
                pass
