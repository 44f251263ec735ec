"""Attribute assertion records to declared test identifiers.

Declared identifiers come from static source (``it.each`` templates and
all), while records come from the runtime, where one template expands
into many records.  Matching is permissive about placeholders but never
attributes one record to two identifiers: a consumed-position set scoped to
one :func:`match` call enforces that for the whole pass.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tally.models.identifier import DeclaredTestIdentifier
    from tally.models.result import AssertionRecord

logger = logging.getLogger(__name__)

# ── Placeholders ─────────────────────────────────────────────────

# printf-style (``%s``, ``%i``, ``%#`` …), ``${expression}`` interpolation
# and ``$name`` / ``$name.path`` substitution.
_PLACEHOLDER = r"%[psdifjo#%]|\$\{[^}]*\}|\$[A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)*"
_PLACEHOLDER_RE = re.compile(_PLACEHOLDER, re.IGNORECASE)

_WILDCARD = "(.*?)"

# Runners suffix duplicate titles with a counter, e.g. ``adds (2)``.
_DUPLICATE_COUNTER_RE = re.compile(r" \(\d+\)")


def has_placeholder(label: str) -> bool:
    """Return ``True`` if *label* contains a template placeholder."""
    return _PLACEHOLDER_RE.search(label) is not None


def is_only_placeholder(label: str) -> bool:
    """Return ``True`` if *label* is a single placeholder and nothing else.

    Such a label compiles to a pattern matching every name.
    """
    return _PLACEHOLDER_RE.fullmatch(label.strip()) is not None


def label_to_pattern(label: str) -> str:
    """Compile *label* into a regular expression source.

    Each placeholder becomes a non-greedy wildcard group; everything else
    is escaped so it matches verbatim.  The pattern is for matching only.
    """
    parts: list[str] = []
    cursor = 0
    for placeholder in _PLACEHOLDER_RE.finditer(label):
        parts.append(re.escape(label[cursor : placeholder.start()]))
        parts.append(_WILDCARD)
        cursor = placeholder.end()
    parts.append(re.escape(label[cursor:]))
    return "".join(parts)


@lru_cache(maxsize=512)
def _compiled(label: str) -> re.Pattern[str]:
    return re.compile(label_to_pattern(label), re.DOTALL)


def matches_label(name: str, label: str) -> bool:
    """Return ``True`` if *name* equals *label* or fits its placeholder pattern."""
    if name == label:
        return True
    if not has_placeholder(label):
        return False
    return _compiled(label).fullmatch(name) is not None


# ── Record predicates ────────────────────────────────────────────


def _matches_with_counter(actual: str, expected: str) -> bool:
    if not expected or not actual.startswith(expected):
        return False
    return _DUPLICATE_COUNTER_RE.fullmatch(actual[len(expected) :]) is not None


def _matches_by_ancestors(record: AssertionRecord, identifier: DeclaredTestIdentifier) -> bool:
    declared = identifier.ancestors
    observed = record.ancestor_titles
    if not declared:
        return not observed
    if len(observed) < len(declared):
        return False
    return observed[len(observed) - len(declared) :] == declared


def record_matches(record: AssertionRecord, identifier: DeclaredTestIdentifier) -> bool:
    """Return ``True`` if *record* could be the outcome of *identifier*."""
    label = identifier.label
    if is_only_placeholder(label):
        return _matches_by_ancestors(record, identifier)
    return (
        matches_label(record.title, label)
        or matches_label(record.full_name, label)
        or matches_label(record.path, label)
        or _matches_with_counter(record.title, label)
        or _matches_with_counter(record.path, label)
    )


def find_potential_matches(
    records: Sequence[AssertionRecord],
    identifier: DeclaredTestIdentifier,
) -> list[int]:
    """Return the positions of every record that could belong to *identifier*."""
    return [index for index, record in enumerate(records) if record_matches(record, identifier)]


def find_best_match(
    candidates: Sequence[int],
    records: Sequence[AssertionRecord],
    identifier: DeclaredTestIdentifier,
    consumed: set[int],
) -> int | None:
    """Pick one of several same-named candidates for *identifier*.

    Consumed positions are never chosen.  The record whose 1-based source
    line is closest to the declaration's first line wins; records without a
    location come after those with one, and remaining ties go to the
    earliest position.  Without a declared line range the earliest unused
    candidate wins.
    """
    available = [position for position in candidates if position not in consumed]
    if not available:
        return None
    if identifier.line_range is None:
        return available[0]

    target = identifier.line_range.start + 1

    def _distance(position: int) -> tuple[int, int, int]:
        location = records[position].location
        if location is None:
            return (1, 0, position)
        return (0, abs(location.line - target), position)

    return min(available, key=_distance)


# ── Matching pass ────────────────────────────────────────────────


@dataclass(frozen=True)
class Match:
    """Records attributed to one declared identifier."""

    identifier: DeclaredTestIdentifier
    positions: tuple[int, ...] = ()
    """Positions in the flattened record sequence; empty when unmatched."""

    aggregated: bool = False
    """``True`` when a template identifier collected several records."""


@dataclass(frozen=True)
class MatchResult:
    """Outcome of one matching pass, one ``Match`` per identifier in order."""

    records: tuple[AssertionRecord, ...]
    matches: tuple[Match, ...] = field(default_factory=tuple)

    @property
    def consumed(self) -> list[int]:
        """Every attributed position, in attribution order."""
        return [position for m in self.matches for position in m.positions]

    def records_for(self, match: Match) -> list[AssertionRecord]:
        return [self.records[position] for position in match.positions]


def match(
    records: Sequence[AssertionRecord],
    identifiers: Sequence[DeclaredTestIdentifier],
) -> MatchResult:
    """Attribute *records* to *identifiers*, processing identifiers in order.

    For each identifier the unconsumed potential matches decide the outcome:

    * none: unmatched;
    * several, and the label has a placeholder: all of them, aggregated;
    * exactly one: that record;
    * several literal matches: :func:`find_best_match`.
    """
    consumed: set[int] = set()
    matches: list[Match] = []

    for identifier in identifiers:
        potential = find_potential_matches(records, identifier)
        candidates = [position for position in potential if position not in consumed]
        if len(candidates) < len(potential):
            logger.debug(
                "%d record(s) for %r already attributed to earlier tests",
                len(potential) - len(candidates),
                identifier.label,
            )

        if not candidates:
            matches.append(Match(identifier=identifier))
            continue

        if has_placeholder(identifier.label) and len(candidates) > 1:
            logger.debug(
                "Aggregating %d records under template %r", len(candidates), identifier.label
            )
            entry = Match(identifier=identifier, positions=tuple(candidates), aggregated=True)
        elif len(candidates) == 1:
            entry = Match(identifier=identifier, positions=(candidates[0],))
        else:
            best = find_best_match(candidates, records, identifier, consumed)
            logger.debug(
                "Tie-break for %r picked record %s of %d candidates",
                identifier.label,
                best,
                len(candidates),
            )
            entry = Match(identifier=identifier, positions=(best,) if best is not None else ())

        consumed.update(entry.positions)
        matches.append(entry)

    return MatchResult(records=tuple(records), matches=tuple(matches))
