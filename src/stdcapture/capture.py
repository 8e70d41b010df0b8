"""Run a callable and capture what it writes to stdout and stderr.

Entry point: ``output(fn)``.  Both streams are redirected for the
duration of the call, split into lines afterwards, and every failure
(the callable's own exception and any capture failure) is joined into a
single ``CaptureErrorGroup``.
"""

from __future__ import annotations

import contextlib
from typing import Any, Callable, Sequence

from .interceptor import STDERR, STDOUT, CopyFn, StreamHandle, StreamInterceptor
from .models import CaptureOptions, CaptureResult


class CaptureError(RuntimeError):
    """Raised (inside a group) when draining a captured stream failed."""

    stream = ""

    def __init__(self, cause: BaseException | None = None) -> None:
        message = f"{self.stream} capture failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.__cause__ = cause


class StdoutCaptureError(CaptureError):
    stream = "stdout"


class StderrCaptureError(CaptureError):
    stream = "stderr"


class CaptureErrorGroup(ExceptionGroup):
    """All errors from one capture session, in the order they occurred."""

    def derive(self, excs: Sequence[Exception]) -> CaptureErrorGroup:
        return CaptureErrorGroup(self.message, excs)

    def contains(self, target: BaseException | type[BaseException]) -> bool:
        """Return *True* if *target* is anywhere in the group.

        *target* is either an exception instance (matched by identity) or
        an exception class (matched by ``isinstance``).  Nested groups and
        ``__cause__`` chains are searched.
        """
        return _matches(self, target, set())


def _matches(
    exc: BaseException | None,
    target: BaseException | type[BaseException],
    seen: set[int],
) -> bool:
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(target, type):
            if isinstance(exc, target):
                return True
        elif exc is target:
            return True
        if isinstance(exc, BaseExceptionGroup):
            if any(_matches(e, target, seen) for e in exc.exceptions):
                return True
        exc = exc.__cause__
    return False


def split_lines(text: str, terminator: str = "\n") -> list[str] | None:
    """Split *text* into lines, dropping one trailing empty segment.

    Returns *None* for empty text so "nothing written" stays distinct
    from "wrote an empty line" (``"\\n"`` gives ``[""]``).
    """
    if not text:
        return None
    lines = text.split(terminator)
    if lines[-1] == "":
        lines.pop()
    return lines


def output(
    fn: Callable[..., Any],
    *args: Any,
    stdout: StreamHandle = STDOUT,
    stderr: StreamHandle = STDERR,
    options: CaptureOptions | None = None,
    copy: CopyFn | None = None,
    **kwargs: Any,
) -> CaptureResult:
    """Call ``fn(*args, **kwargs)`` and return the lines it wrote.

    An ``Exception`` raised by *fn* is not propagated; it becomes the
    first member of ``result.error``.  If draining a stream fails, that
    stream's output is discarded (reported as *None*) and a
    ``StdoutCaptureError`` / ``StderrCaptureError`` joins the group.

    Exceptions that are not ``Exception`` subclasses (``KeyboardInterrupt``,
    ``SystemExit``) propagate once both streams are restored.

    The keyword arguments *stdout*, *stderr*, *options* and *copy* are
    consumed by ``output`` itself and are never forwarded to *fn*; wrap
    *fn* in a ``functools.partial`` or lambda to pass keywords with those
    names.

    Not reentrant: only one ``output`` call may be active per handle.
    """
    options = options or CaptureOptions()
    out_capture = StreamInterceptor(stdout, options, copy=copy)
    err_capture = StreamInterceptor(stderr, options, copy=copy)
    errors: list[Exception] = []

    with contextlib.ExitStack() as stack:
        restore_out, finish_out = out_capture.begin()
        stack.callback(restore_out)
        stack.callback(out_capture.close)

        restore_err, finish_err = err_capture.begin()
        stack.callback(restore_err)
        stack.callback(err_capture.close)

        try:
            fn(*args, **kwargs)
        except Exception as exc:
            errors.append(exc)

        out_text, out_error = finish_out()
        if out_error is not None:
            errors.append(StdoutCaptureError(out_error))
            out_text = ""

        err_text, err_error = finish_err()
        if err_error is not None:
            errors.append(StderrCaptureError(err_error))
            err_text = ""

    terminator = options.line_terminator
    return CaptureResult(
        stdout=split_lines(out_text, terminator),
        stderr=split_lines(err_text, terminator),
        error=CaptureErrorGroup("errors during output capture", errors) if errors else None,
    )
