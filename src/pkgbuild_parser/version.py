"""Version ordering for epoch/pkgver/pkgrel triples.

Segment comparison follows rpmvercmp: strings are walked in lock-step as
runs of digits or letters, separators are skipped, and a tilde sorts
before everything else, including the end of the string. Upgrade
decisions depend on this ordering, so keep it exact.
"""

from __future__ import annotations

import functools
from enum import IntEnum

from .models import Version


class Ordering(IntEnum):
    """Result of a three-way comparison."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


def _is_separator(char: str) -> bool:
    return not (char.isascii() and char.isalnum()) and char != "~"


def _is_digit(char: str) -> bool:
    return "0" <= char <= "9"


def _is_alpha(char: str) -> bool:
    return char.isascii() and char.isalpha()


def compare_segments(a: str, b: str) -> Ordering:
    """Compare two version (or release) strings segment by segment."""
    if a == b:
        return Ordering.EQUAL

    i = j = 0
    len_a, len_b = len(a), len(b)
    while i < len_a or j < len_b:
        while i < len_a and _is_separator(a[i]):
            i += 1
        while j < len_b and _is_separator(b[j]):
            j += 1

        # Tilde sorts lower than anything, even an exhausted string
        tilde_a = i < len_a and a[i] == "~"
        tilde_b = j < len_b and b[j] == "~"
        if tilde_a or tilde_b:
            if not tilde_a:
                return Ordering.GREATER
            if not tilde_b:
                return Ordering.LESS
            i += 1
            j += 1
            continue

        if i >= len_a or j >= len_b:
            break

        start_a, start_b = i, j
        if _is_digit(a[i]):
            while i < len_a and _is_digit(a[i]):
                i += 1
            while j < len_b and _is_digit(b[j]):
                j += 1
            numeric = True
        else:
            while i < len_a and _is_alpha(a[i]):
                i += 1
            while j < len_b and _is_alpha(b[j]):
                j += 1
            numeric = False

        segment_a = a[start_a:i]
        segment_b = b[start_b:j]

        # Digit segments beat letter segments
        if not segment_b:
            return Ordering.GREATER if numeric else Ordering.LESS

        if numeric:
            segment_a = segment_a.lstrip("0")
            segment_b = segment_b.lstrip("0")
            if len(segment_a) != len(segment_b):
                return Ordering.GREATER if len(segment_a) > len(segment_b) else Ordering.LESS

        if segment_a != segment_b:
            return Ordering.GREATER if segment_a > segment_b else Ordering.LESS

    if i >= len_a and j >= len_b:
        return Ordering.EQUAL
    # Whichever side still has content is newer
    return Ordering.LESS if i >= len_a else Ordering.GREATER


def compare(a: Version, b: Version) -> Ordering:
    """Order two versions: epoch first, then pkgver, then pkgrel."""
    if a.epoch != b.epoch:
        return Ordering.GREATER if a.epoch > b.epoch else Ordering.LESS
    result = compare_segments(a.pkgver, b.pkgver)
    if result is not Ordering.EQUAL:
        return result
    return compare_segments(a.pkgrel, b.pkgrel)


def vercmp(a: str, b: str) -> int:
    """Compare two ``[epoch:]pkgver[-pkgrel]`` strings, like pacman's vercmp.

    Returns -1, 0 or 1.
    """
    return int(compare(Version.parse(a), Version.parse(b)))


version_key = functools.cmp_to_key(compare)
