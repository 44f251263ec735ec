"""Declared test identifiers handed in by the host's test tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tally.utils.coerce import to_int

_RANGE_PAIR = 2


@dataclass(frozen=True)
class LineRange:
    """0-based, inclusive line span of a test declaration."""

    start: int
    end: int


@dataclass(frozen=True)
class DeclaredTestIdentifier:
    """A statically known test node the host expects a verdict for.

    tally never modifies identifiers; they are owned by the caller.
    """

    id: str
    """Stable identifier of the test node."""

    label: str
    """Display name.  May contain template placeholders (``%i``, ``$a``, ``${x}``)."""

    file_path: str = ""
    """Test file that declares the node."""

    line_range: LineRange | None = None
    """Declaration span, when known."""

    ancestors: tuple[str, ...] = ()
    """Labels of the enclosing groups, outermost first (file node excluded)."""

    @property
    def short_name(self) -> str:
        """Last whitespace-delimited token of the label."""
        parts = self.label.split()
        return parts[-1] if parts else self.label

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeclaredTestIdentifier:
        """Build an identifier from a mapping as found in a tests file.

        ``id`` defaults to the label.  ``line_range`` is ``[start, end]`` or
        ``{"start": ..., "end": ...}``.
        """
        label = str(data.get("label") or "")
        raw_range = data.get("line_range")
        line_range: LineRange | None = None
        if isinstance(raw_range, (list, tuple)) and len(raw_range) == _RANGE_PAIR:
            line_range = LineRange(start=to_int(raw_range[0]), end=to_int(raw_range[1]))
        elif isinstance(raw_range, dict) and "start" in raw_range:
            start = to_int(raw_range["start"])
            line_range = LineRange(start=start, end=to_int(raw_range.get("end"), default=start))
        raw_ancestors = data.get("ancestors")
        return cls(
            id=str(data.get("id") or label),
            label=label,
            file_path=str(data.get("file_path", "")),
            line_range=line_range,
            ancestors=(
                tuple(str(a) for a in raw_ancestors) if isinstance(raw_ancestors, list) else ()
            ),
        )
