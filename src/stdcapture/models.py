"""Capture options (pydantic) and the capture result record."""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

from pydantic import BaseModel, field_validator

if TYPE_CHECKING:
    from .capture import CaptureErrorGroup


class CaptureOptions(BaseModel):
    encoding: str = "utf-8"
    errors: str = "replace"
    line_terminator: str = "\n"
    chunk_size: int = 64 * 1024

    @field_validator("encoding")
    @classmethod
    def known_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown encoding: {v}") from None
        return v

    @field_validator("errors")
    @classmethod
    def known_error_handler(cls, v: str) -> str:
        try:
            codecs.lookup_error(v)
        except LookupError:
            raise ValueError(f"unknown codec error handler: {v}") from None
        return v

    @field_validator("line_terminator")
    @classmethod
    def non_empty_terminator(cls, v: str) -> str:
        if not v:
            raise ValueError("line_terminator must not be empty")
        return v

    @field_validator("chunk_size")
    @classmethod
    def positive_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("chunk_size must be positive")
        return v


@dataclass(frozen=True)
class CaptureResult:
    """Lines written to each stream during a capture, plus the joined error.

    ``stdout`` / ``stderr`` are *None* when nothing was written, never an
    empty list.
    """

    stdout: list[str] | None
    stderr: list[str] | None
    error: CaptureErrorGroup | None = None

    def __iter__(self) -> Iterator:
        return iter((self.stdout, self.stderr, self.error))

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise the joined error group, if any."""
        if self.error is not None:
            raise self.error
