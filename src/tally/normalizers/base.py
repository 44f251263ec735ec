"""Shared types for output normalizers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from tally.models.result import RunSummary


class Framework(Enum):
    """Test runner whose output is being reconciled.

    The tag selects the normalizer; see :func:`tally.normalizers.get_normalizer`.
    """

    JEST = "jest"
    VITEST = "vitest"
    NODE_TEST = "node-test"
    BUN = "bun"
    DENO = "deno"

    @classmethod
    def from_name(cls, name: str) -> Framework:
        """Parse a framework name case-insensitively.

        Raises:
            ValueError: If *name* is not a known framework.
        """
        key = name.strip().lower().replace("_", "-")
        if key == "node":
            key = cls.NODE_TEST.value
        for member in cls:
            if member.value == key:
                return member
        known = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown framework {name!r} (expected one of: {known})")


@dataclass(frozen=True)
class NotRecoverable:
    """Normalization produced no usable result model."""

    reason: str
    """Human-readable diagnostic, suitable for logs."""


class Normalizer(Protocol):
    """Converts raw runner output into the canonical result model."""

    def __call__(self, raw_output: str, *, file_path: str = "") -> RunSummary | NotRecoverable:
        """Normalize *raw_output*.

        Args:
            raw_output: Captured runner output, possibly mixed with log noise.
            file_path: Test file the output belongs to.  Only formats that carry
                no location of their own use it.

        Returns:
            A ``RunSummary``, or ``NotRecoverable`` describing why none could
            be produced.  Normalizers never raise for any input text.
        """
        ...
