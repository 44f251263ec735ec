"""Convert raw runner output into the canonical result model."""

from __future__ import annotations

from tally.normalizers.base import Framework, Normalizer, NotRecoverable
from tally.normalizers.json_output import normalize_jest, normalize_vitest
from tally.normalizers.junit import normalize_junit
from tally.normalizers.tap import normalize_tap

_NORMALIZERS: dict[Framework, Normalizer] = {
    Framework.JEST: normalize_jest,
    Framework.VITEST: normalize_vitest,
    Framework.NODE_TEST: normalize_tap,
    Framework.BUN: normalize_junit,
    Framework.DENO: normalize_junit,
}


def get_normalizer(framework: Framework) -> Normalizer:
    """Return the normalizer for *framework*."""
    return _NORMALIZERS[framework]


__all__ = [
    "Framework",
    "Normalizer",
    "NotRecoverable",
    "get_normalizer",
    "normalize_jest",
    "normalize_junit",
    "normalize_tap",
    "normalize_vitest",
]
